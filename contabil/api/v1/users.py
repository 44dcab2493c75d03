import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from contabil.core.authorization import CAPABILITY_FLAGS, require_capability, user_capabilities
from contabil.core.security import get_password_hash
from contabil.db import models
from contabil.db.session import get_db

router = APIRouter(tags=["Usuarios"])
logger = logging.getLogger("contabil.users")

Role = Literal["AdminGeral", "Admin", "Cliente"]


class CapabilityFlags(BaseModel):
    can_manage_clients: bool = False
    can_manage_documents: bool = False
    can_manage_billing: bool = False
    can_manage_admins: bool = False
    can_manage_settings: bool = False
    can_view_reports: bool = False
    can_view_dashboard: bool = False
    can_manage_tasks: bool = False


class UserCreate(CapabilityFlags):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str | None = None
    role: Role = "Admin"
    client_ids: list[str] = Field(default_factory=list)


class UserUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: Role | None = None
    status: Literal["active", "inactive"] | None = None
    client_ids: list[str] | None = None
    can_manage_clients: bool | None = None
    can_manage_documents: bool | None = None
    can_manage_billing: bool | None = None
    can_manage_admins: bool | None = None
    can_manage_settings: bool | None = None
    can_view_reports: bool | None = None
    can_view_dashboard: bool | None = None
    can_manage_tasks: bool | None = None


def serialize_user(user: models.User) -> dict:
    data = {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "client_ids": sorted(c.id for c in user.clients),
        "capabilities": user_capabilities(user),
        "created_at": user.created_at,
    }
    for flag in CAPABILITY_FLAGS.values():
        data[flag] = bool(getattr(user, flag))
    return data


def _get_user_or_404(db: Session, user_id: str) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario nao encontrado")
    return user


def _guard_admin_geral(current_user: models.User, *roles: str | None) -> None:
    if models.ROLE_ADMIN_GERAL in roles and current_user.role != models.ROLE_ADMIN_GERAL:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Apenas o AdminGeral pode gerenciar outro AdminGeral",
        )


def _clients_by_ids(db: Session, client_ids: list[str]) -> list[models.Client]:
    if not client_ids:
        return []
    found = (
        db.query(models.Client)
        .filter(
            models.Client.id.in_(set(client_ids)),
            models.Client.status == models.CLIENT_ACTIVE,
        )
        .all()
    )
    if len(found) != len(set(client_ids)):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Cliente invalido ou inativo"
        )
    return found


def _with_home_client(db: Session, user: models.User, clients: list[models.Client]) -> list[models.Client]:
    if not user.home_client_id or any(c.id == user.home_client_id for c in clients):
        return clients
    home = db.query(models.Client).filter(models.Client.id == user.home_client_id).first()
    return [home] + clients if home else clients


@router.get("/usuarios")
def list_users(
    q: str | None = None,
    role: Role | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_capability("admins")),
):
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    if q:
        like = f"%{q.lower()}%"
        query = query.filter(
            or_(
                func.lower(models.User.name).like(like),
                func.lower(models.User.username).like(like),
                func.lower(models.User.email).like(like),
            )
        )
    users = query.order_by(models.User.name).all()
    return {"usuarios": [serialize_user(u) for u in users]}


@router.post("/usuarios", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_capability("admins")),
):
    _guard_admin_geral(current_user, payload.role)
    username = payload.username.strip()
    if db.query(models.User).filter(func.lower(models.User.username) == username.lower()).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Nome de usuario ja existe")
    try:
        password_hash = get_password_hash(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    user = models.User(
        username=username,
        password_hash=password_hash,
        name=payload.name.strip(),
        email=(payload.email or "").strip() or None,
        role=payload.role,
        status="active",
    )
    if payload.role != models.ROLE_CLIENT:
        for flag in CAPABILITY_FLAGS.values():
            setattr(user, flag, getattr(payload, flag))
    user.clients = _clients_by_ids(db, payload.client_ids)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user created id=%s role=%s by=%s", user.id, user.role, current_user.username)
    return serialize_user(user)


@router.get("/usuarios/{user_id}")
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_capability("admins")),
):
    return serialize_user(_get_user_or_404(db, user_id))


@router.patch("/usuarios/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_capability("admins")),
):
    user = _get_user_or_404(db, user_id)
    _guard_admin_geral(current_user, user.role, payload.role)

    if payload.name is not None:
        user.name = payload.name.strip() or user.name
    if payload.email is not None:
        user.email = payload.email.strip() or None
    if payload.password:
        try:
            user.password_hash = get_password_hash(payload.password)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if payload.role is not None:
        user.role = payload.role
    if payload.status is not None:
        if user.id == current_user.id and payload.status != "active":
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Nao e possivel inativar a si mesmo")
        user.status = payload.status
    if payload.client_ids is not None:
        user.clients = _with_home_client(db, user, _clients_by_ids(db, payload.client_ids))
    for flag in CAPABILITY_FLAGS.values():
        value = getattr(payload, flag)
        if value is not None:
            setattr(user, flag, value)
    if user.role == models.ROLE_CLIENT:
        for flag in CAPABILITY_FLAGS.values():
            setattr(user, flag, False)

    db.commit()
    db.refresh(user)
    return serialize_user(user)


@router.delete("/usuarios/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_capability("admins")),
):
    user = _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Nao e possivel excluir a si mesmo")
    _guard_admin_geral(current_user, user.role)
    db.delete(user)
    db.commit()
    logger.info("user deleted id=%s by=%s", user_id, current_user.username)
    return None
