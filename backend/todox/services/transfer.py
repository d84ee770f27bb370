import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.database import utcnow
from todox.core.storage import BlobStorage, StorageKey, StoragePurpose
from todox.models.task import Task
from todox.schemas.task import TaskImportRecord
from todox.services import categories, formats
from todox.services import tasks as task_service

logger = logging.getLogger(__name__)


@dataclass
class ExportFile:
    """Either raw bytes for a direct download or a URL to a stored copy."""

    filename: str
    media_type: str
    content: Optional[bytes] = None
    url: Optional[str] = None


@dataclass
class ImportResult:
    imported: List[Task] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


def _millis() -> int:
    return int(utcnow().timestamp() * 1000)


async def export_csv(db: AsyncSession, user_id: int) -> ExportFile:
    tasks = await task_service.all_for_owner(db, user_id)
    return ExportFile("tasks.csv", formats.CSV_MEDIA_TYPE, content=formats.encode_csv(tasks))


async def export_xlsx(db: AsyncSession, user_id: int) -> ExportFile:
    tasks = await task_service.all_for_owner(db, user_id)
    content = await run_in_threadpool(formats.encode_xlsx, tasks)
    return ExportFile("tasks.xlsx", formats.XLSX_MEDIA_TYPE, content=content)


async def export_json(db: AsyncSession, storage: BlobStorage, user_id: int) -> ExportFile:
    tasks = await task_service.all_for_owner(db, user_id)
    content = formats.encode_json([formats.task_to_record(task) for task in tasks])
    export = ExportFile("tasks.json", formats.JSON_MEDIA_TYPE, content=content)
    if storage.is_remote:
        key = StorageKey(StoragePurpose.exports, user_id, f"tasks_{_millis()}.json")
        export.url = await run_in_threadpool(storage.store, key, content, formats.JSON_MEDIA_TYPE)
        export.content = None
    return export


async def backup(db: AsyncSession, storage: BlobStorage, user_id: int) -> tuple[ExportFile, int]:
    tasks = await task_service.all_for_owner(db, user_id)
    now = utcnow()
    content = formats.encode_json(formats.backup_document(user_id, tasks, now))
    export = ExportFile(f"todox_backup_{now.date().isoformat()}.json", formats.JSON_MEDIA_TYPE, content=content)
    if storage.is_remote:
        key = StorageKey(StoragePurpose.backups, user_id, f"tasks_backup_{_millis()}.json")
        export.url = await run_in_threadpool(storage.store, key, content, formats.JSON_MEDIA_TYPE)
        export.content = None
    logger.info("Backed up %d tasks for user %s", len(tasks), user_id)
    return export, len(tasks)


def _describe(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


async def _import_record(db: AsyncSession, user_id: int, raw: Any) -> int:
    if not isinstance(raw, dict):
        raise ValueError("Record must be an object")
    try:
        record = TaskImportRecord(**formats.resolve_fields(raw))
    except PydanticValidationError as exc:
        raise ValueError(_describe(exc)) from exc

    category_id = None
    if record.category:
        category = await categories.get_or_create(db, user_id, record.category)
        category_id = category.id

    task = Task(
        title=record.title,
        status=record.status.value,
        category_id=category_id,
        due_date=record.due_date,
        due_time=record.due_time,
        priority=record.priority.value,
        description=record.description,
        attachments=[],
        user_id=user_id,
    )
    db.add(task)
    await db.commit()
    return task.id


async def import_tasks(db: AsyncSession, user_id: int, content_type: Optional[str], data: bytes) -> ImportResult:
    """Create one task per record; bad records are reported, never rolled back together."""
    records = await run_in_threadpool(formats.decode, content_type, data)
    logger.info("Importing %d records for user %s", len(records), user_id)

    imported_ids = []
    result = ImportResult()
    for raw in records:
        try:
            imported_ids.append(await _import_record(db, user_id, raw))
        except (ValueError, SQLAlchemyError) as exc:
            await db.rollback()
            result.errors.append({"data": jsonable_encoder(raw), "error": str(exc)})

    by_id = {task.id: task for task in await task_service.get_many(db, user_id, imported_ids)}
    result.imported = [by_id[task_id] for task_id in imported_ids if task_id in by_id]
    if result.errors:
        logger.info("Import for user %s: %d imported, %d failed", user_id, len(imported_ids), len(result.errors))
    return result
