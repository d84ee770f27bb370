from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    active = "active"
    complete = "complete"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class TimeFilter(str, Enum):
    today = "today"
    week = "week"
    month = "month"
    all = "all"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TaskCreate(CamelModel):
    title: str = Field(..., max_length=200)
    category: Optional[int] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = None
    priority: Optional[TaskPriority] = None
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("category", "due_date", "due_time", "priority", mode="before")
    @classmethod
    def empty_string_is_none(cls, value):
        return None if value == "" else value


class TaskUpdate(CamelModel):
    """Partial update; only fields present in the request body are applied."""

    title: Optional[str] = Field(None, max_length=200)
    status: Optional[TaskStatus] = None
    completed_at: Optional[datetime] = None
    category: Optional[int] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = None
    priority: Optional[TaskPriority] = None
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("category", "due_date", "priority", mode="before")
    @classmethod
    def empty_string_is_none(cls, value):
        return None if value == "" else value


class TaskImportRecord(BaseModel):
    """One imported row after header aliases have been resolved."""

    title: str = Field(..., max_length=200)
    status: TaskStatus = TaskStatus.active
    category: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = None
    priority: TaskPriority = TaskPriority.medium
    description: str = ""

    @field_validator("title", "description", "category", "due_time", mode="before")
    @classmethod
    def coerce_text(cls, value):
        # Spreadsheet cells arrive as numbers, times or datetimes
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, time):
            return value.strftime("%H:%M")
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("description")
    @classmethod
    def strip_description(cls, value: str) -> str:
        return value.strip()

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, value):
        if value is None or isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, datetime):
            return value.date()
        text = str(value).strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise ValueError(f"Invalid due date: {text}")


class BulkDeleteRequest(CamelModel):
    task_ids: List[int]


class BulkUpdateRequest(CamelModel):
    task_ids: List[int]
    status: Optional[TaskStatus] = None
    completed_at: Optional[datetime] = None


class CategoryRef(CamelModel):
    id: int
    name: str


class AttachmentResponse(CamelModel):
    id: str
    name: str
    url: str
    type: str
    size: int
    uploaded_at: datetime


class TaskResponse(CamelModel):
    id: int
    title: str
    status: TaskStatus
    completed_at: Optional[datetime]
    category: Optional[CategoryRef]
    due_date: Optional[date]
    due_time: Optional[str]
    priority: TaskPriority
    description: str
    attachments: List[AttachmentResponse]
    user_id: int
    created_at: datetime
    updated_at: datetime


class TaskListResponse(CamelModel):
    tasks: List[TaskResponse]
    active_count: int
    complete_count: int


class CalendarResponse(CamelModel):
    tasks: List[TaskResponse]


class BulkDeleteResponse(CamelModel):
    deleted_count: int


class BulkUpdateResponse(CamelModel):
    modified_count: int


class ImportResponse(CamelModel):
    message: str
    imported_tasks: List[TaskResponse]
    errors: Optional[List[dict]] = None


class AttachmentUploadResponse(CamelModel):
    message: str
    attachment: AttachmentResponse


class DownloadUrlResponse(CamelModel):
    download_url: str


class BackupResponse(CamelModel):
    message: str
    backup_url: str
    total_tasks: int
