import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from contabil.core.authorization import apply_client_scope, ensure_client_access, require_capability
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db
from contabil.notifications.reminders import INVOICE_LINK
from contabil.notifications.service import notify_client_users
from contabil.services.boleto_pdf import build_boleto_context, render_boleto_pdf

router = APIRouter(tags=["Cobranca"])
logger = logging.getLogger("contabil.invoices")

InvoiceStatus = Literal["Pendente", "Atrasado", "Pago", "Cancelado"]
PaymentMethod = Literal["boleto", "pix", "link"]


class InvoiceCreate(BaseModel):
    client_id: str
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    due_date: date
    payment_methods: list[PaymentMethod] = Field(default_factory=lambda: ["boleto"])


class InvoiceUpdate(BaseModel):
    description: str | None = None
    amount: Decimal | None = Field(None, gt=0)
    due_date: date | None = None
    status: InvoiceStatus | None = None
    payment_methods: list[PaymentMethod] | None = None


def to_response(invoice: models.Invoice) -> dict:
    return {
        "id": invoice.id,
        "client_id": invoice.client_id,
        "company": invoice.client.company if invoice.client else None,
        "description": invoice.description,
        "amount": float(invoice.amount),
        "due_date": invoice.due_date,
        "status": invoice.status,
        "payment_methods": invoice.payment_methods or [],
        "created_at": invoice.created_at,
        "paid_at": invoice.paid_at,
    }


def _get_invoice_or_404(db: Session, invoice_id: str) -> models.Invoice:
    invoice = db.query(models.Invoice).filter(models.Invoice.id == invoice_id).first()
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fatura nao encontrada")
    return invoice


@router.get("/faturas")
def list_invoices(
    client_id: str | None = None,
    status_filter: InvoiceStatus | None = Query(None, alias="status"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_client_scope(db.query(models.Invoice), current_user, models.Invoice.client_id)
    if client_id:
        query = query.filter(models.Invoice.client_id == client_id)
    if status_filter:
        query = query.filter(models.Invoice.status == status_filter)
    invoices = query.order_by(models.Invoice.due_date.desc()).all()
    return {"faturas": [to_response(i) for i in invoices]}


@router.post("/faturas", status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    current_user: models.User = Depends(require_capability("billing")),
    db: Session = Depends(get_db),
):
    client = db.query(models.Client).filter(models.Client.id == payload.client_id).first()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente nao encontrado")
    if client.status != models.CLIENT_ACTIVE:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Cliente inativo")
    invoice = models.Invoice(
        client_id=client.id,
        description=payload.description.strip(),
        amount=payload.amount,
        due_date=payload.due_date,
        status=models.INVOICE_PENDING,
        payment_methods=list(dict.fromkeys(payload.payment_methods)),
    )
    db.add(invoice)
    db.flush()
    notify_client_users(
        db,
        client.id,
        f'Nova fatura disponível: "{invoice.description}"',
        INVOICE_LINK,
    )
    db.commit()
    db.refresh(invoice)
    logger.info("invoice created id=%s client_id=%s", invoice.id, client.id)
    return to_response(invoice)


@router.get("/faturas/{invoice_id}")
def get_invoice(
    invoice_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    invoice = _get_invoice_or_404(db, invoice_id)
    ensure_client_access(current_user, invoice.client_id)
    return to_response(invoice)


@router.patch("/faturas/{invoice_id}")
def update_invoice(
    invoice_id: str,
    payload: InvoiceUpdate,
    current_user: models.User = Depends(require_capability("billing")),
    db: Session = Depends(get_db),
):
    invoice = _get_invoice_or_404(db, invoice_id)
    if payload.description is not None:
        invoice.description = payload.description.strip() or invoice.description
    if payload.amount is not None:
        invoice.amount = payload.amount
    if payload.due_date is not None:
        invoice.due_date = payload.due_date
    if payload.payment_methods is not None:
        invoice.payment_methods = list(dict.fromkeys(payload.payment_methods))
    if payload.status is not None and payload.status != invoice.status:
        invoice.status = payload.status
        invoice.paid_at = datetime.utcnow() if payload.status == models.INVOICE_PAID else None
    db.commit()
    db.refresh(invoice)
    return to_response(invoice)


@router.delete("/faturas/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: str,
    current_user: models.User = Depends(require_capability("billing")),
    db: Session = Depends(get_db),
):
    invoice = _get_invoice_or_404(db, invoice_id)
    db.delete(invoice)
    db.commit()
    return None


@router.get("/faturas/{invoice_id}/boleto")
def get_boleto(
    invoice_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    invoice = _get_invoice_or_404(db, invoice_id)
    ensure_client_access(current_user, invoice.client_id)
    app_settings = db.query(models.AppSettings).filter(models.AppSettings.id == 1).first()
    try:
        pdf_bytes = render_boleto_pdf(build_boleto_context(invoice, invoice.client, app_settings))
    except Exception:
        logger.exception("Erro ao gerar boleto invoice_id=%s", invoice.id)
        return JSONResponse(status_code=500, content={"message": "Ocorreu um erro, tente novamente mais tarde"})
    filename = f"boleto-{invoice.id[:8]}.pdf"
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
