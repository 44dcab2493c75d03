import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from contabil.db import models

logger = logging.getLogger("contabil.notifications")


def users_for_client(db: Session, client_id: str) -> list[models.User]:
    return (
        db.query(models.User)
        .join(models.user_clients, models.user_clients.c.user_id == models.User.id)
        .filter(models.user_clients.c.client_id == client_id)
        .order_by(models.User.created_at)
        .all()
    )


def notify_user(
    db: Session,
    user_id: str,
    message: str,
    link: Optional[str] = None,
    dedupe_key: Optional[str] = None,
) -> models.AppNotification:
    notification = models.AppNotification(
        user_id=user_id,
        message=message,
        link=link,
        dedupe_key=dedupe_key,
        read=False,
    )
    db.add(notification)
    return notification


def notify_client_users(
    db: Session,
    client_id: str,
    message: str,
    link: Optional[str] = None,
) -> list[models.AppNotification]:
    """Write one notification per user whose access set includes the client.

    The caller owns the transaction.
    """
    created = [notify_user(db, user.id, message, link) for user in users_for_client(db, client_id)]
    logger.info("fan-out client_id=%s recipients=%s", client_id, len(created))
    return created


def upsert_unread(
    db: Session,
    user_id: str,
    dedupe_key: str,
    message: str,
    link: Optional[str] = None,
) -> str:
    """Create a reminder unless an unread one with the same key is still pending.

    Returns ``"created"``, ``"refreshed"`` (message changed) or ``"skipped"``.
    """
    existing = (
        db.query(models.AppNotification)
        .filter(
            models.AppNotification.user_id == user_id,
            models.AppNotification.dedupe_key == dedupe_key,
            models.AppNotification.read.is_(False),
        )
        .order_by(models.AppNotification.created_at.desc())
        .first()
    )
    if existing is None:
        notify_user(db, user_id, message, link, dedupe_key=dedupe_key)
        return "created"
    if existing.message != message or existing.link != link:
        existing.message = message
        existing.link = link
        existing.created_at = datetime.utcnow()
        return "refreshed"
    return "skipped"


def list_for_user(db: Session, user: models.User, unread_only: bool = False) -> list[models.AppNotification]:
    query = db.query(models.AppNotification).filter(models.AppNotification.user_id == user.id)
    if unread_only:
        query = query.filter(models.AppNotification.read.is_(False))
    return query.order_by(models.AppNotification.created_at.desc()).all()


def mark_all_read(db: Session, user: models.User) -> int:
    updated = (
        db.query(models.AppNotification)
        .filter(
            models.AppNotification.user_id == user.id,
            models.AppNotification.read.is_(False),
        )
        .update({models.AppNotification.read: True}, synchronize_session=False)
    )
    db.commit()
    return updated
