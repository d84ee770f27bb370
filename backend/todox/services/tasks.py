from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete as sql_delete
from sqlalchemy import func, select, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.database import utcnow
from todox.core.exceptions import NotFoundError, ValidationError
from todox.models.task import Task
from todox.schemas.task import BulkUpdateRequest, TaskCreate, TaskPriority, TaskStatus, TaskUpdate, TimeFilter
from todox.services import categories

TASK_NOT_FOUND = "Task not found"


def window_start(time_filter: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Start of the creation-time window for a list filter, or None for "all".

    Weeks start on Monday; on a Sunday the window reaches back six days.
    """
    now = now or utcnow()
    today = datetime(now.year, now.month, now.day, tzinfo=now.tzinfo or timezone.utc)
    if time_filter == TimeFilter.today:
        return today
    if time_filter == TimeFilter.week:
        return today - timedelta(days=today.weekday())
    if time_filter == TimeFilter.month:
        return today.replace(day=1)
    return None


def _category_clause(category: Optional[str]):
    if not category:
        return None
    if category == "none":
        return Task.category_id.is_(None)
    try:
        return Task.category_id == int(category)
    except ValueError:
        raise ValidationError("Invalid category")


async def get_owned(db: AsyncSession, user_id: int, task_id: int) -> Task:
    result = await db.execute(
        select(Task)
        .where(Task.id == task_id, Task.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    task = result.unique().scalar_one_or_none()
    if task is None:
        # Foreign tasks are reported the same as missing ones
        raise NotFoundError(TASK_NOT_FOUND)
    return task


async def get_many(db: AsyncSession, user_id: int, task_ids: Iterable[int]) -> List[Task]:
    ids = list(task_ids)
    if not ids:
        return []
    result = await db.execute(
        select(Task)
        .where(Task.user_id == user_id, Task.id.in_(ids))
        .order_by(Task.created_at.desc(), Task.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


async def all_for_owner(db: AsyncSession, user_id: int) -> List[Task]:
    result = await db.execute(
        select(Task).where(Task.user_id == user_id).order_by(Task.created_at.desc(), Task.id.desc())
    )
    return list(result.unique().scalars().all())


async def list_tasks(
    db: AsyncSession, user_id: int, time_filter: str = "all", category: Optional[str] = None
) -> Tuple[List[Task], int, int]:
    conditions = [Task.user_id == user_id]
    start = window_start(time_filter)
    if start is not None:
        conditions.append(Task.created_at >= start)
    clause = _category_clause(category)
    if clause is not None:
        conditions.append(clause)

    result = await db.execute(
        select(Task).where(*conditions).order_by(Task.created_at.desc(), Task.id.desc())
    )
    tasks = list(result.unique().scalars().all())

    counts = await db.execute(
        select(Task.status, func.count(Task.id)).where(*conditions).group_by(Task.status)
    )
    by_status = dict(counts.all())
    return tasks, by_status.get(TaskStatus.active.value, 0), by_status.get(TaskStatus.complete.value, 0)


async def calendar(
    db: AsyncSession,
    user_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    category: Optional[str] = None,
) -> List[Task]:
    conditions = [Task.user_id == user_id]
    if start_date:
        conditions.append(Task.due_date >= start_date)
    if end_date:
        conditions.append(Task.due_date <= end_date)
    clause = _category_clause(category)
    if clause is not None:
        conditions.append(clause)

    result = await db.execute(
        select(Task)
        .where(*conditions)
        .order_by(Task.due_date.asc().nulls_last(), Task.created_at.desc(), Task.id.desc())
    )
    return list(result.unique().scalars().all())


async def _ensure_category(db: AsyncSession, user_id: int, category_id: Optional[int]) -> None:
    if category_id is not None and not await categories.find_owned(db, user_id, category_id):
        raise ValidationError("Category does not exist")


async def create(db: AsyncSession, user_id: int, payload: TaskCreate) -> Task:
    await _ensure_category(db, user_id, payload.category)
    task = Task(
        title=payload.title,
        status=TaskStatus.active.value,
        category_id=payload.category,
        due_date=payload.due_date,
        due_time=payload.due_time,
        priority=(payload.priority or TaskPriority.medium).value,
        description=(payload.description or "").strip(),
        attachments=[],
        user_id=user_id,
    )
    db.add(task)
    await db.commit()
    return await get_owned(db, user_id, task.id)


async def update(db: AsyncSession, user_id: int, task_id: int, payload: TaskUpdate) -> Task:
    provided = payload.model_fields_set
    if "category" in provided:
        await _ensure_category(db, user_id, payload.category)

    task = await get_owned(db, user_id, task_id)
    if "title" in provided:
        if payload.title is None:
            raise ValidationError("Title is required")
        task.title = payload.title
    if "status" in provided and payload.status is not None:
        task.status = payload.status.value
    if "completed_at" in provided:
        task.completed_at = payload.completed_at
    if "category" in provided:
        task.category_id = payload.category
    if "due_date" in provided:
        task.due_date = payload.due_date
    if "due_time" in provided:
        task.due_time = payload.due_time or None
    if "priority" in provided:
        task.priority = (payload.priority or TaskPriority.medium).value
    if "description" in provided:
        task.description = (payload.description or "").strip()

    await db.commit()
    return await get_owned(db, user_id, task_id)


async def delete(db: AsyncSession, user_id: int, task_id: int) -> Task:
    task = await get_owned(db, user_id, task_id)
    await db.delete(task)
    await db.commit()
    return task


def _require_ids(task_ids: List[int]) -> None:
    if not task_ids:
        raise ValidationError("taskIds must be a non-empty list")


async def bulk_delete(db: AsyncSession, user_id: int, task_ids: List[int]) -> int:
    _require_ids(task_ids)
    result = await db.execute(
        sql_delete(Task)
        .where(Task.user_id == user_id, Task.id.in_(task_ids))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def bulk_update(db: AsyncSession, user_id: int, payload: BulkUpdateRequest) -> int:
    _require_ids(payload.task_ids)
    values = {}
    if payload.status is not None:
        values["status"] = payload.status.value
    if "completed_at" in payload.model_fields_set:
        values["completed_at"] = payload.completed_at
    if not values:
        return 0

    result = await db.execute(
        sql_update(Task)
        .where(Task.user_id == user_id, Task.id.in_(payload.task_ids))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount
