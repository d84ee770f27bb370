from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.database import get_db
from todox.core.storage import BlobStorage
from todox.dependencies import MB, get_storage, read_upload
from todox.models.user import User
from todox.routers.auth import get_current_user
from todox.schemas.task import (
    AttachmentResponse,
    AttachmentUploadResponse,
    BackupResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkUpdateRequest,
    BulkUpdateResponse,
    CalendarResponse,
    DownloadUrlResponse,
    ImportResponse,
    TaskCreate,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)
from todox.services import attachments as attachment_service
from todox.services import formats, transfer
from todox.services import tasks as task_service
from todox.services.transfer import ExportFile

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    responses={404: {"description": "Not found"}},
)

IMPORT_MAX_BYTES = 10 * MB
ATTACHMENT_MAX_BYTES = 10 * MB
ATTACHMENT_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _download(export: ExportFile) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("", response_model=TaskListResponse)
async def get_tasks(
    filter: str = Query("all"),
    category: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tasks, active_count, complete_count = await task_service.list_tasks(db, current_user.id, filter, category)
    return TaskListResponse(
        tasks=[TaskResponse.model_validate(task) for task in tasks],
        active_count=active_count,
        complete_count=complete_count,
    )


@router.get("/calendar", response_model=CalendarResponse)
async def get_calendar_tasks(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    category: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tasks = await task_service.calendar(db, current_user.id, start_date, end_date, category)
    return CalendarResponse(tasks=[TaskResponse.model_validate(task) for task in tasks])


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.create(db, current_user.id, task_in)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    task_in: TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.update(db, current_user.id, task_id, task_in)


@router.delete("/{task_id}", response_model=TaskResponse)
async def delete_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.delete(db, current_user.id, task_id)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_tasks(
    payload: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    deleted = await task_service.bulk_delete(db, current_user.id, payload.task_ids)
    return BulkDeleteResponse(deleted_count=deleted)


@router.post("/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update_tasks(
    payload: BulkUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    modified = await task_service.bulk_update(db, current_user.id, payload)
    return BulkUpdateResponse(modified_count=modified)


@router.get("/export/{fmt}", response_model=DownloadUrlResponse)
async def export_tasks(
    fmt: Literal["csv", "json", "excel"],
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    if fmt == "csv":
        export = await transfer.export_csv(db, current_user.id)
    elif fmt == "excel":
        export = await transfer.export_xlsx(db, current_user.id)
    else:
        export = await transfer.export_json(db, storage, current_user.id)

    if export.url:
        return DownloadUrlResponse(download_url=export.url)
    return _download(export)


@router.post(
    "/import",
    response_model=ImportResponse,
    response_model_exclude_unset=True,
    status_code=status.HTTP_201_CREATED,
)
async def import_tasks(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await read_upload(
        file,
        formats.IMPORT_CONTENT_TYPES,
        IMPORT_MAX_BYTES,
        "Invalid file type. Only CSV, JSON, and Excel files are allowed.",
    )
    result = await transfer.import_tasks(db, current_user.id, file.content_type, data)
    fields = {
        "message": f"Imported {len(result.imported)} tasks successfully",
        "imported_tasks": [TaskResponse.model_validate(task) for task in result.imported],
    }
    if result.errors:
        fields["errors"] = result.errors
    return ImportResponse(**fields)


@router.post("/backup", response_model=BackupResponse)
async def backup_tasks(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    export, total = await transfer.backup(db, storage, current_user.id)
    if export.url:
        return BackupResponse(message="Tasks backed up successfully", backup_url=export.url, total_tasks=total)
    return _download(export)


@router.post(
    "/{task_id}/attachments",
    response_model=AttachmentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_attachment(
    task_id: int,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    data = await read_upload(file, ATTACHMENT_TYPES, ATTACHMENT_MAX_BYTES, "Invalid file type for attachment.")
    attachment = await attachment_service.upload(
        db, storage, current_user.id, task_id, file.filename, data, file.content_type
    )
    return AttachmentUploadResponse(
        message="Attachment uploaded successfully",
        attachment=AttachmentResponse.model_validate(attachment),
    )


@router.delete("/{task_id}/attachments/{attachment_id}")
async def delete_attachment(
    task_id: int,
    attachment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    await attachment_service.delete(db, storage, current_user.id, task_id, attachment_id)
    return {"message": "Attachment deleted successfully"}
