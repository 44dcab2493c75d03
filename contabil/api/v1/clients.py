import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from contabil.core.authorization import apply_client_scope, ensure_client_access, require_capability
from contabil.core.security import get_current_user, get_password_hash
from contabil.db import models
from contabil.db.session import get_db
from contabil.services.cnpj_lookup import CnpjLookupError, CnpjNotFound, lookup_cnpj, only_digits
from contabil.services.tasks import apply_template_set

router = APIRouter(tags=["Clientes"])
logger = logging.getLogger("contabil.clients")

TaxRegime = Literal["SimplesNacional", "LucroPresumido", "LucroReal"]


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    company: str = Field(..., min_length=1)
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    tax_regime: TaxRegime = "SimplesNacional"
    cnaes: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    business_description: str | None = None
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    client_ids: list[str] = Field(default_factory=list)
    task_template_set_id: str | None = None


class ClientUpdate(BaseModel):
    name: str | None = None
    company: str | None = None
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    tax_regime: Optional[TaxRegime] = None
    cnaes: list[str] | None = None
    keywords: list[str] | None = None
    business_description: str | None = None
    password: str | None = None
    client_ids: list[str] | None = None


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def clean_list(values: list[str]) -> list[str]:
    return [item.strip() for item in values if item and item.strip()]


def primary_user(client: models.Client) -> models.User | None:
    candidates = [
        user
        for user in client.users
        if user.role == models.ROLE_CLIENT and user.home_client_id == client.id
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda user: user.created_at or datetime.utcnow())


def to_response(client: models.Client) -> dict:
    user = primary_user(client)
    return {
        "id": client.id,
        "name": client.name,
        "company": client.company,
        "cnpj": client.cnpj,
        "email": client.email,
        "phone": client.phone,
        "tax_regime": client.tax_regime,
        "status": client.status,
        "cnaes": client.cnaes or [],
        "keywords": client.keywords or [],
        "business_description": client.business_description,
        "created_at": client.created_at,
        "user": (
            {
                "id": user.id,
                "username": user.username,
                "client_ids": sorted(c.id for c in user.clients),
            }
            if user
            else None
        ),
    }


def _get_client_or_404(db: Session, client_id: str) -> models.Client:
    client = db.query(models.Client).filter(models.Client.id == client_id).first()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente nao encontrado")
    return client


def _grantable_clients(db: Session, client_ids: list[str]) -> list[models.Client]:
    if not client_ids:
        return []
    return (
        db.query(models.Client)
        .filter(
            models.Client.id.in_(set(client_ids)),
            models.Client.status == models.CLIENT_ACTIVE,
        )
        .all()
    )


def _ensure_unique_cnpj(db: Session, cnpj: str | None, exclude_id: str | None = None) -> None:
    if not cnpj:
        return
    query = db.query(models.Client).filter(models.Client.cnpj == cnpj)
    if exclude_id:
        query = query.filter(models.Client.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="CNPJ ja cadastrado")


def _hash_or_422(password: str) -> str:
    try:
        return get_password_hash(password)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.get("/clientes")
def list_clients(
    status_filter: str | None = Query(None, alias="status"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_client_scope(db.query(models.Client), current_user, models.Client.id)
    if status_filter:
        query = query.filter(models.Client.status == status_filter)
    clients = query.order_by(models.Client.company).all()
    return {"clientes": [to_response(c) for c in clients]}


@router.post("/clientes", status_code=status.HTTP_201_CREATED)
def create_client(
    payload: ClientCreate,
    current_user: models.User = Depends(require_capability("clients")),
    db: Session = Depends(get_db),
):
    cnpj = only_digits(payload.cnpj) or None
    _ensure_unique_cnpj(db, cnpj)
    username = payload.username.strip()
    exists = (
        db.query(models.User)
        .filter(func.lower(models.User.username) == username.lower())
        .first()
    )
    if exists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Nome de usuario ja existe")

    template_set = None
    if payload.task_template_set_id:
        template_set = (
            db.query(models.TaskTemplateSet)
            .filter(models.TaskTemplateSet.id == payload.task_template_set_id)
            .first()
        )
        if not template_set:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Conjunto de tarefas nao encontrado"
            )

    client = models.Client(
        name=payload.name.strip(),
        company=payload.company.strip(),
        cnpj=cnpj,
        email=clean_text(payload.email),
        phone=clean_text(payload.phone),
        tax_regime=payload.tax_regime,
        status=models.CLIENT_ACTIVE,
        cnaes=clean_list(payload.cnaes),
        keywords=clean_list(payload.keywords),
        business_description=clean_text(payload.business_description),
    )
    db.add(client)
    db.flush()

    user = models.User(
        username=username,
        password_hash=_hash_or_422(payload.password),
        name=client.name,
        email=client.email,
        role=models.ROLE_CLIENT,
        status="active",
        home_client_id=client.id,
    )
    user.clients = [client] + [
        other for other in _grantable_clients(db, payload.client_ids) if other.id != client.id
    ]
    db.add(user)

    if template_set:
        created = apply_template_set(db, client, template_set)
        logger.info("template set %s applied to %s (%s tasks)", template_set.name, client.id, len(created))

    db.commit()
    db.refresh(client)
    logger.info("client created id=%s by=%s", client.id, current_user.username)
    return to_response(client)


@router.get("/clientes/{client_id}")
def get_client(
    client_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _get_client_or_404(db, client_id)
    ensure_client_access(current_user, client.id)
    open_invoices = (
        db.query(models.Invoice)
        .filter(
            models.Invoice.client_id == client.id,
            models.Invoice.status.in_(models.INVOICE_OPEN_STATUSES),
        )
        .count()
    )
    pending_tasks = (
        db.query(models.Task)
        .filter(models.Task.client_id == client.id, models.Task.status == models.TASK_PENDING)
        .count()
    )
    return {
        "cliente": to_response(client),
        "visaoGeral": {
            "faturas_em_aberto": open_invoices,
            "tarefas_pendentes": pending_tasks,
        },
    }


@router.patch("/clientes/{client_id}")
def update_client(
    client_id: str,
    payload: ClientUpdate,
    current_user: models.User = Depends(require_capability("clients")),
    db: Session = Depends(get_db),
):
    client = _get_client_or_404(db, client_id)

    if payload.name is not None:
        client.name = clean_text(payload.name) or client.name
    if payload.company is not None:
        client.company = clean_text(payload.company) or client.company
    if payload.cnpj is not None:
        cnpj = only_digits(payload.cnpj) or None
        _ensure_unique_cnpj(db, cnpj, exclude_id=client.id)
        client.cnpj = cnpj
    if payload.email is not None:
        client.email = clean_text(payload.email)
    if payload.phone is not None:
        client.phone = clean_text(payload.phone)
    if payload.tax_regime is not None:
        client.tax_regime = payload.tax_regime
    if payload.cnaes is not None:
        client.cnaes = clean_list(payload.cnaes)
    if payload.keywords is not None:
        client.keywords = clean_list(payload.keywords)
    if payload.business_description is not None:
        client.business_description = clean_text(payload.business_description)

    user = primary_user(client)
    if user is not None:
        if payload.password:
            user.password_hash = _hash_or_422(payload.password)
        if payload.client_ids is not None:
            extra = [c for c in _grantable_clients(db, payload.client_ids) if c.id != client.id]
            user.clients = [client] + extra

    db.commit()
    db.refresh(client)
    return to_response(client)


def _set_status(db: Session, client_id: str, new_status: str) -> dict:
    client = _get_client_or_404(db, client_id)
    client.status = new_status
    db.commit()
    db.refresh(client)
    logger.info("client status id=%s status=%s", client.id, new_status)
    return to_response(client)


@router.post("/clientes/{client_id}/inativar")
def inactivate_client(
    client_id: str,
    current_user: models.User = Depends(require_capability("clients")),
    db: Session = Depends(get_db),
):
    return _set_status(db, client_id, models.CLIENT_INACTIVE)


@router.post("/clientes/{client_id}/reativar")
def reactivate_client(
    client_id: str,
    current_user: models.User = Depends(require_capability("clients")),
    db: Session = Depends(get_db),
):
    return _set_status(db, client_id, models.CLIENT_ACTIVE)


@router.delete("/clientes/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: str,
    current_user: models.User = Depends(require_capability("clients")),
    db: Session = Depends(get_db),
):
    client = _get_client_or_404(db, client_id)
    orphaned = [
        user
        for user in client.users
        if user.role == models.ROLE_CLIENT and all(c.id == client.id for c in user.clients)
    ]
    for user in orphaned:
        db.delete(user)
    homed = db.query(models.User).filter(models.User.home_client_id == client.id).all()
    for user in homed:
        if user not in orphaned:
            user.home_client_id = None
    db.delete(client)
    db.commit()
    logger.info("client deleted id=%s orphan_users=%s", client_id, len(orphaned))
    return None


@router.get("/cnpj/{cnpj}")
def get_cnpj_data(
    cnpj: str,
    current_user: models.User = Depends(require_capability("clients")),
):
    try:
        data = lookup_cnpj(cnpj)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except CnpjNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except CnpjLookupError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Nao foi possivel buscar os dados do CNPJ.",
        ) from exc
    return data.as_dict()
