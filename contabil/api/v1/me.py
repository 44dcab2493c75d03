from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from contabil.core.authorization import apply_client_scope, user_capabilities
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db

router = APIRouter(tags=["Usuario"])


@router.get("/me")
def get_me(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_client_scope(db.query(models.Client), current_user, models.Client.id)
    clients = query.order_by(models.Client.company).all()
    unread = (
        db.query(models.AppNotification)
        .filter(
            models.AppNotification.user_id == current_user.id,
            models.AppNotification.read.is_(False),
        )
        .count()
    )
    return {
        "user": {
            "id": current_user.id,
            "username": current_user.username,
            "name": current_user.name,
            "email": current_user.email,
            "role": current_user.role,
            "status": current_user.status,
            "capabilities": user_capabilities(current_user),
        },
        "clients": [
            {"id": c.id, "company": c.company, "status": c.status} for c in clients
        ],
        "unread_notifications": unread,
    }
