import calendar
from datetime import date, datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from contabil.db import models

RECURRENCE_STEPS = {
    "Mensal": relativedelta(months=1),
    "Trimestral": relativedelta(months=3),
    "Anual": relativedelta(years=1),
}


def first_due_date(due_day: Optional[int], today: date) -> Optional[date]:
    if not due_day:
        return None
    last_day = calendar.monthrange(today.year, today.month)[1]
    candidate = today.replace(day=min(due_day, last_day))
    if candidate < today:
        following = today + relativedelta(months=1)
        last_day = calendar.monthrange(following.year, following.month)[1]
        candidate = following.replace(day=min(due_day, last_day))
    return candidate


def next_due_date(task: models.Task) -> Optional[date]:
    step = RECURRENCE_STEPS.get(task.recurrence)
    if step is None or task.due_date is None:
        return None
    return task.due_date + step


def apply_template_set(
    db: Session,
    client: models.Client,
    template_set: models.TaskTemplateSet,
    today: Optional[date] = None,
) -> list[models.Task]:
    today = today or date.today()
    tasks = [
        models.Task(
            client_id=client.id,
            description=item.description,
            status=models.TASK_PENDING,
            recurrence=item.recurrence,
            due_date=first_due_date(item.due_day, today),
        )
        for item in template_set.items
    ]
    db.add_all(tasks)
    return tasks


def complete_task(db: Session, task: models.Task, now: Optional[datetime] = None) -> Optional[models.Task]:
    """Mark the task done; recurring tasks with a due date get their next occurrence.

    A task that was reopened and completed again reuses the occurrence it already
    scheduled, so the follow-up is created at most once.
    """
    if task.status == models.TASK_DONE:
        return None
    task.status = models.TASK_DONE
    task.completed_at = now or datetime.utcnow()
    due = next_due_date(task)
    if due is None:
        return None
    existing = (
        db.query(models.Task)
        .filter(
            or_(
                models.Task.previous_task_id == task.id,
                and_(
                    models.Task.client_id == task.client_id,
                    models.Task.description == task.description,
                    models.Task.recurrence == task.recurrence,
                    models.Task.due_date == due,
                ),
            )
        )
        .first()
    )
    if existing is not None:
        return None
    follow_up = models.Task(
        client_id=task.client_id,
        description=task.description,
        status=models.TASK_PENDING,
        recurrence=task.recurrence,
        due_date=due,
        previous_task_id=task.id,
    )
    db.add(follow_up)
    return follow_up
