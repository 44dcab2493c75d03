import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from contabil.core.authorization import (
    apply_client_scope,
    ensure_client_access,
    has_capability,
    is_admin_user,
    require_capability,
)
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db
from contabil.notifications.reminders import TASKS_LINK
from contabil.notifications.service import notify_client_users
from contabil.services.tasks import complete_task

router = APIRouter(tags=["Tarefas"])
logger = logging.getLogger("contabil.tasks")

TaskStatus = Literal["Pendente", "Concluida"]
Recurrence = Literal["Unica", "Mensal", "Trimestral", "Anual"]


class TaskCreate(BaseModel):
    client_id: str
    description: str = Field(..., min_length=1)
    due_date: date | None = None
    recurrence: Recurrence = "Unica"


class TaskUpdate(BaseModel):
    description: str | None = None
    due_date: date | None = None
    recurrence: Recurrence | None = None
    status: TaskStatus | None = None


class TemplateItemIn(BaseModel):
    description: str = Field(..., min_length=1)
    recurrence: Recurrence = "Mensal"
    due_day: int | None = Field(None, ge=1, le=31)


class TemplateSetCreate(BaseModel):
    name: str = Field(..., min_length=1)
    items: list[TemplateItemIn] = Field(default_factory=list)


def to_response(task: models.Task) -> dict:
    return {
        "id": task.id,
        "client_id": task.client_id,
        "company": task.client.company if task.client else None,
        "description": task.description,
        "status": task.status,
        "due_date": task.due_date,
        "recurrence": task.recurrence,
        "created_at": task.created_at,
        "completed_at": task.completed_at,
    }


def template_to_response(template_set: models.TaskTemplateSet) -> dict:
    return {
        "id": template_set.id,
        "name": template_set.name,
        "items": [
            {
                "id": item.id,
                "description": item.description,
                "recurrence": item.recurrence,
                "due_day": item.due_day,
            }
            for item in template_set.items
        ],
    }


def _get_task_or_404(db: Session, task_id: str) -> models.Task:
    task = db.query(models.Task).filter(models.Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tarefa nao encontrada")
    return task


@router.get("/tarefas")
def list_tasks(
    client_id: str | None = None,
    status_filter: TaskStatus | None = Query(None, alias="status"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_client_scope(db.query(models.Task), current_user, models.Task.client_id)
    if client_id:
        query = query.filter(models.Task.client_id == client_id)
    if status_filter:
        query = query.filter(models.Task.status == status_filter)
    # sem vencimento por ultimo
    tasks = query.order_by(models.Task.due_date.is_(None), models.Task.due_date, models.Task.created_at).all()
    return {"tarefas": [to_response(t) for t in tasks]}


@router.post("/tarefas", status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    current_user: models.User = Depends(require_capability("tasks")),
    db: Session = Depends(get_db),
):
    client = db.query(models.Client).filter(models.Client.id == payload.client_id).first()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente nao encontrado")
    if client.status != models.CLIENT_ACTIVE:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Cliente inativo")
    task = models.Task(
        client_id=client.id,
        description=payload.description.strip(),
        status=models.TASK_PENDING,
        due_date=payload.due_date,
        recurrence=payload.recurrence,
    )
    db.add(task)
    db.flush()
    notify_client_users(db, client.id, f'Nova tarefa atribuída: "{task.description}"', TASKS_LINK)
    db.commit()
    db.refresh(task)
    return to_response(task)


@router.patch("/tarefas/{task_id}")
def update_task(
    task_id: str,
    payload: TaskUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = _get_task_or_404(db, task_id)
    if is_admin_user(current_user):
        if not has_capability(current_user, "tasks"):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
    else:
        ensure_client_access(current_user, task.client_id)
        edited = payload.model_dump(exclude_unset=True, exclude={"status"})
        if edited:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Clientes podem alterar apenas o status da tarefa",
            )

    if payload.description is not None:
        task.description = payload.description.strip() or task.description
    if payload.due_date is not None:
        task.due_date = payload.due_date
    if payload.recurrence is not None:
        task.recurrence = payload.recurrence

    follow_up = None
    if payload.status == models.TASK_DONE:
        follow_up = complete_task(db, task)
    elif payload.status == models.TASK_PENDING:
        task.status = models.TASK_PENDING
        task.completed_at = None

    db.commit()
    db.refresh(task)
    response = to_response(task)
    if follow_up is not None:
        db.refresh(follow_up)
        response["next_task"] = to_response(follow_up)
        logger.info("recurring task %s rolled to %s due=%s", task.id, follow_up.id, follow_up.due_date)
    return response


@router.delete("/tarefas/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: models.User = Depends(require_capability("tasks")),
    db: Session = Depends(get_db),
):
    task = _get_task_or_404(db, task_id)
    db.delete(task)
    db.commit()
    return None


@router.get("/modelos-tarefas")
def list_template_sets(
    current_user: models.User = Depends(require_capability("tasks")),
    db: Session = Depends(get_db),
):
    template_sets = db.query(models.TaskTemplateSet).order_by(models.TaskTemplateSet.name).all()
    return {"modelos": [template_to_response(t) for t in template_sets]}


@router.post("/modelos-tarefas", status_code=status.HTTP_201_CREATED)
def create_template_set(
    payload: TemplateSetCreate,
    current_user: models.User = Depends(require_capability("tasks")),
    db: Session = Depends(get_db),
):
    name = payload.name.strip()
    exists = (
        db.query(models.TaskTemplateSet)
        .filter(func.lower(models.TaskTemplateSet.name) == name.lower())
        .first()
    )
    if exists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Modelo de tarefas ja existe")
    template_set = models.TaskTemplateSet(name=name)
    template_set.items = [
        models.TaskTemplateItem(
            description=item.description.strip(),
            recurrence=item.recurrence,
            due_day=item.due_day,
        )
        for item in payload.items
    ]
    db.add(template_set)
    db.commit()
    db.refresh(template_set)
    return template_to_response(template_set)


@router.delete("/modelos-tarefas/{template_set_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template_set(
    template_set_id: str,
    current_user: models.User = Depends(require_capability("tasks")),
    db: Session = Depends(get_db),
):
    template_set = (
        db.query(models.TaskTemplateSet).filter(models.TaskTemplateSet.id == template_set_id).first()
    )
    if not template_set:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conjunto de tarefas nao encontrado")
    db.delete(template_set)
    db.commit()
    return None
