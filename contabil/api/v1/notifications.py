import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from contabil.core.authorization import has_capability
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db
from contabil.notifications.reminders import run_reminder_sweep
from contabil.notifications.service import list_for_user, mark_all_read

router = APIRouter(tags=["Notificacoes"])
logger = logging.getLogger("contabil.notifications")


def to_response(notification: models.AppNotification) -> dict:
    return {
        "id": notification.id,
        "message": notification.message,
        "link": notification.link,
        "read": notification.read,
        "date": notification.created_at,
    }


@router.get("/notificacoes")
def list_notifications(
    unread_only: bool = False,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notifications = list_for_user(db, current_user, unread_only=unread_only)
    unread = sum(1 for n in notifications if not n.read)
    if unread_only:
        unread = len(notifications)
    return {"notificacoes": [to_response(n) for n in notifications], "nao_lidas": unread}


@router.post("/notificacoes/lidas")
def mark_notifications_read(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"atualizadas": mark_all_read(db, current_user)}


@router.post("/notificacoes/lembretes/executar")
def run_reminders(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not has_capability(current_user, "settings"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
    summary = run_reminder_sweep(db)
    logger.info("manual reminder sweep by=%s", current_user.username)
    return summary.as_dict()


@router.post("/notificacoes/{notification_id}/lida")
def mark_notification_read(
    notification_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(models.AppNotification)
        .filter(
            models.AppNotification.id == notification_id,
            models.AppNotification.user_id == current_user.id,
        )
        .first()
    )
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notificacao nao encontrada")
    notification.read = True
    db.commit()
    return to_response(notification)
