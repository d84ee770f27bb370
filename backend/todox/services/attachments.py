import logging
import uuid
from pathlib import PurePath

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.database import utcnow
from todox.core.exceptions import NotFoundError, StorageUnavailableError
from todox.core.storage import BlobStorage, StorageKey, StoragePurpose
from todox.models.task import Task
from todox.services import tasks as task_service

logger = logging.getLogger(__name__)


def _attachment_key(attachment: dict):
    if attachment.get("key"):
        return StorageKey.from_path(attachment["key"])
    # Records written before keys were stored only have the signed URL
    return StorageKey.from_url(attachment.get("url", ""))


async def upload(
    db: AsyncSession,
    storage: BlobStorage,
    user_id: int,
    task_id: int,
    filename: str,
    data: bytes,
    content_type: str,
) -> dict:
    task = await task_service.get_owned(db, user_id, task_id)
    if not storage.is_remote:
        raise StorageUnavailableError("Attachment storage is not configured")

    now = utcnow()
    safe_name = PurePath(filename or "file").name
    key = StorageKey(StoragePurpose.attachments, user_id, f"{task_id}/{int(now.timestamp() * 1000)}_{safe_name}")
    url = await run_in_threadpool(storage.store, key, data, content_type)

    attachment = {
        "id": uuid.uuid4().hex,
        "name": safe_name,
        "url": url,
        "type": content_type,
        "size": len(data),
        "uploadedAt": now.isoformat(),
        "key": key.path,
    }
    task.attachments = [*(task.attachments or []), attachment]
    await db.commit()
    logger.info("Attached %s to task %s", key.path, task_id)
    return attachment


async def delete(db: AsyncSession, storage: BlobStorage, user_id: int, task_id: int, attachment_id: str) -> Task:
    task = await task_service.get_owned(db, user_id, task_id)
    attachments = list(task.attachments or [])
    attachment = next((a for a in attachments if a.get("id") == attachment_id), None)
    if attachment is None:
        raise NotFoundError("Attachment not found")

    key = _attachment_key(attachment)
    if key is None:
        logger.warning("Cannot derive storage key for attachment %s; object left in place", attachment_id)
    else:
        # Best effort: a failed delete leaves an orphaned object but never blocks the record update
        await run_in_threadpool(storage.discard, key)

    task.attachments = [a for a in attachments if a.get("id") != attachment_id]
    await db.commit()
    return task
