from fastapi import Depends, HTTPException, status
from sqlalchemy import false
from sqlalchemy.orm import Query

from contabil.core.security import get_current_user
from contabil.db import models

CAPABILITY_FLAGS = {
    "clients": "can_manage_clients",
    "documents": "can_manage_documents",
    "billing": "can_manage_billing",
    "admins": "can_manage_admins",
    "settings": "can_manage_settings",
    "reports": "can_view_reports",
    "dashboard": "can_view_dashboard",
    "tasks": "can_manage_tasks",
}


def is_admin_user(user: models.User) -> bool:
    return user.role != models.ROLE_CLIENT


def has_capability(user: models.User, capability: str) -> bool:
    if capability not in CAPABILITY_FLAGS:
        raise ValueError(f"Capacidade desconhecida: {capability}")
    if user.role == models.ROLE_ADMIN_GERAL:
        return True
    if user.role == models.ROLE_CLIENT:
        return False
    return bool(getattr(user, CAPABILITY_FLAGS[capability]))


def user_capabilities(user: models.User) -> list[str]:
    return sorted(code for code in CAPABILITY_FLAGS if has_capability(user, code))


def require_capability(capability: str):
    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if not has_capability(user, capability):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
        return user

    return _dependency


def accessible_client_ids(user: models.User) -> set[str] | None:
    """Client ids the user may see; ``None`` means every client."""
    if is_admin_user(user):
        return None
    return {client.id for client in user.clients}


def apply_client_scope(query: Query, user: models.User, client_field) -> Query:
    allowed = accessible_client_ids(user)
    if allowed is None:
        return query
    if not allowed:
        return query.filter(false())
    return query.filter(client_field.in_(allowed))


def ensure_client_access(user: models.User, client_id: str | None) -> None:
    allowed = accessible_client_ids(user)
    if allowed is None:
        return
    if not client_id or client_id not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cliente nao autorizado para este recurso.",
        )
