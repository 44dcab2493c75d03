from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from contabil.core.authorization import apply_client_scope, has_capability, is_admin_user
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db

router = APIRouter(tags=["Dashboard"])


def _invoice_totals(db: Session, user: models.User, invoice_status: str) -> tuple[int, float]:
    query = apply_client_scope(
        db.query(func.count(models.Invoice.id), func.coalesce(func.sum(models.Invoice.amount), 0)),
        user,
        models.Invoice.client_id,
    ).filter(models.Invoice.status == invoice_status)
    count, total = query.one()
    return int(count or 0), float(total or 0)


@router.get("/dashboard/resumo")
def dashboard_summary(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if is_admin_user(current_user) and not has_capability(current_user, "dashboard"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")

    active_clients = (
        apply_client_scope(db.query(models.Client), current_user, models.Client.id)
        .filter(models.Client.status == models.CLIENT_ACTIVE)
        .count()
    )
    pending_count, pending_total = _invoice_totals(db, current_user, models.INVOICE_PENDING)
    overdue_count, overdue_total = _invoice_totals(db, current_user, models.INVOICE_OVERDUE)

    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    received = apply_client_scope(
        db.query(func.coalesce(func.sum(models.Invoice.amount), 0)),
        current_user,
        models.Invoice.client_id,
    ).filter(
        models.Invoice.status == models.INVOICE_PAID,
        models.Invoice.paid_at >= month_start,
    ).scalar()

    pending_tasks = (
        apply_client_scope(db.query(models.Task), current_user, models.Task.client_id)
        .filter(models.Task.status == models.TASK_PENDING)
        .count()
    )
    unread = (
        db.query(models.AppNotification)
        .filter(
            models.AppNotification.user_id == current_user.id,
            models.AppNotification.read.is_(False),
        )
        .count()
    )
    return {
        "clientes_ativos": active_clients,
        "faturas_pendentes": {"quantidade": pending_count, "valor": pending_total},
        "faturas_atrasadas": {"quantidade": overdue_count, "valor": overdue_total},
        "recebido_no_mes": float(received or 0),
        "tarefas_pendentes": pending_tasks,
        "notificacoes_nao_lidas": unread,
    }
