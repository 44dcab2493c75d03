import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from contabil.db import models
from contabil.notifications.service import upsert_unread, users_for_client

logger = logging.getLogger("contabil.reminders")

INVOICE_LINK = "/cobranca"
TASKS_LINK = "/tarefas"


@dataclass
class SweepSummary:
    overdue_marked: int = 0
    invoices_reminded: int = 0
    clients_reminded: int = 0
    created: int = 0
    refreshed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict:
        return asdict(self)

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


def invoice_reminder_message(invoice: models.Invoice) -> str:
    return f'Lembrete: A fatura "{invoice.description}" está pendente de pagamento.'


def tasks_reminder_message(task_count: int, company: str) -> str:
    return (
        f"Lembrete: Você possui {task_count} tarefa(s) pendente(s) em {company}. "
        "Por favor, verifique a seção de tarefas."
    )


def mark_overdue_invoices(db: Session, today: date) -> int:
    invoices = (
        db.query(models.Invoice)
        .filter(
            models.Invoice.status == models.INVOICE_PENDING,
            models.Invoice.due_date < today,
        )
        .all()
    )
    for invoice in invoices:
        invoice.status = models.INVOICE_OVERDUE
    return len(invoices)


def _remind_pending_invoices(db: Session, summary: SweepSummary) -> None:
    invoices = (
        db.query(models.Invoice)
        .options(joinedload(models.Invoice.client))
        .filter(models.Invoice.status.in_(models.INVOICE_OPEN_STATUSES))
        .order_by(models.Invoice.due_date)
        .all()
    )
    for invoice in invoices:
        message = invoice_reminder_message(invoice)
        for user in users_for_client(db, invoice.client_id):
            summary.count(upsert_unread(db, user.id, f"invoice:{invoice.id}", message, INVOICE_LINK))
    summary.invoices_reminded = len(invoices)


def _remind_pending_tasks(db: Session, summary: SweepSummary) -> None:
    rows = (
        db.query(models.Task.client_id)
        .filter(models.Task.status == models.TASK_PENDING)
        .all()
    )
    tasks_by_client = Counter(client_id for (client_id,) in rows)
    for client_id, task_count in tasks_by_client.items():
        client = db.query(models.Client).filter(models.Client.id == client_id).first()
        if not client:
            continue
        message = tasks_reminder_message(task_count, client.company)
        for user in users_for_client(db, client.id):
            summary.count(upsert_unread(db, user.id, f"tasks:{client.id}", message, TASKS_LINK))
        summary.clients_reminded += 1


def run_reminder_sweep(db: Session, now: Optional[datetime] = None) -> SweepSummary:
    now = now or datetime.utcnow()
    logger.info("Running scheduled checks at %s", now.isoformat())
    summary = SweepSummary()
    try:
        summary.overdue_marked = mark_overdue_invoices(db, now.date())
        db.flush()
        _remind_pending_invoices(db, summary)
        _remind_pending_tasks(db, summary)
        db.commit()
    except Exception:
        db.rollback()
        raise
    if summary.invoices_reminded:
        logger.info("Sent reminders for %s pending invoices.", summary.invoices_reminded)
    if summary.clients_reminded:
        logger.info("Sent reminders to %s clients about pending tasks.", summary.clients_reminded)
    logger.info("sweep summary %s", summary.as_dict())
    return summary
