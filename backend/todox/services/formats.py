"""
Byte encodings of a user's tasks: CSV, JSON and XLSX.

Exports flatten a task into a fixed column set with the category rendered by
name. Imports turn an uploaded file back into plain row dicts; mapping those
rows onto task fields goes through FIELD_ALIASES so the service's own headers
("Due Date") and camelCase JSON keys ("dueDate") are both understood.
"""

import csv
import io
import json
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook, load_workbook

from todox.core.exceptions import ImportFormatError, ValidationError
from todox.models.task import Task

CSV_CONTENT_TYPES = {"text/csv", "application/vnd.ms-excel"}
JSON_CONTENT_TYPES = {"application/json"}
XLSX_CONTENT_TYPES = {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"}
IMPORT_CONTENT_TYPES = CSV_CONTENT_TYPES | JSON_CONTENT_TYPES | XLSX_CONTENT_TYPES

CSV_MEDIA_TYPE = "text/csv"
JSON_MEDIA_TYPE = "application/json"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (column header, JSON key)
EXPORT_COLUMNS = [
    ("Title", "title"),
    ("Status", "status"),
    ("Category", "category"),
    ("Due Date", "dueDate"),
    ("Due Time", "dueTime"),
    ("Priority", "priority"),
    ("Description", "description"),
    ("Created At", "createdAt"),
    ("Updated At", "updatedAt"),
    ("Completed At", "completedAt"),
]

# Import field -> accepted source keys, in lookup order
FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "title": ("title", "Title"),
    "status": ("status", "Status"),
    "category": ("category", "Category"),
    "due_date": ("dueDate", "Due Date"),
    "due_time": ("dueTime", "Due Time"),
    "priority": ("priority", "Priority"),
    "description": ("description", "Description"),
}

# What a JSON file looks like when someone saved console output instead of an export
MALFORMED_JSON_MARKER = "[object Object]"


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-05-01T08:30:00.000Z."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def task_to_record(task: Task) -> Dict[str, Any]:
    """JSON export shape; missing values are None."""
    return {
        "title": task.title,
        "status": task.status,
        "category": task.category.name if task.category else None,
        "dueDate": format_date(task.due_date),
        "dueTime": task.due_time or None,
        "priority": task.priority,
        "description": task.description,
        "createdAt": format_timestamp(task.created_at),
        "updatedAt": format_timestamp(task.updated_at),
        "completedAt": format_timestamp(task.completed_at),
    }


def task_to_row(task: Task) -> List[str]:
    """CSV/XLSX row in EXPORT_COLUMNS order; missing values are empty strings."""
    record = task_to_record(task)
    return ["" if record[key] is None else record[key] for _, key in EXPORT_COLUMNS]


def encode_csv(tasks: Sequence[Task]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([header for header, _ in EXPORT_COLUMNS])
    for task in tasks:
        writer.writerow(task_to_row(task))
    return buffer.getvalue().encode("utf-8")


def encode_xlsx(tasks: Sequence[Task]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Tasks"
    sheet.append([header for header, _ in EXPORT_COLUMNS])
    for task in tasks:
        sheet.append(task_to_row(task))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def encode_json(payload: Any) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def backup_document(user_id: int, tasks: Sequence[Task], backup_date: datetime) -> Dict[str, Any]:
    entries = []
    for task in tasks:
        entry = {"id": task.id, **task_to_record(task)}
        entry["attachments"] = [
            {k: v for k, v in attachment.items() if k != "key"} for attachment in task.attachments or []
        ]
        entries.append(entry)
    return {
        "userId": user_id,
        "backupDate": format_timestamp(backup_date),
        "totalTasks": len(entries),
        "tasks": entries,
    }


def decode_csv(data: bytes) -> List[Dict[str, Any]]:
    try:
        text = data.decode("utf-8-sig")
        return [dict(row) for row in csv.DictReader(io.StringIO(text))]
    except (UnicodeDecodeError, csv.Error) as exc:
        raise ImportFormatError("Invalid CSV file. Please check the file format.", str(exc)) from exc


def decode_json(data: bytes) -> List[Any]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ImportFormatError("Invalid JSON file. Please check the file format.", str(exc)) from exc

    if MALFORMED_JSON_MARKER in text:
        raise ImportFormatError(
            "Invalid JSON file. It looks like console output rather than JSON; "
            "please use a JSON file exported from the app."
        )
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFormatError("Invalid JSON file. Please check the file format.", str(exc)) from exc

    # Plain export is a bare array; backups wrap the array in {"tasks": [...]}
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("tasks"), list):
        return parsed["tasks"]
    raise ImportFormatError("Unsupported JSON structure. Expected an array of tasks or an object with a 'tasks' array.")


def decode_xlsx(data: bytes) -> List[Dict[str, Any]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise ImportFormatError("Invalid Excel file. Please check the file format.", str(exc)) from exc

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        headers = next(rows, None)
        if not headers:
            return []
        records = []
        for values in rows:
            record = {
                str(header): value
                for header, value in zip(headers, values)
                if header is not None and value is not None and value != ""
            }
            if record:
                records.append(record)
        return records
    finally:
        workbook.close()


def decode(content_type: Optional[str], data: bytes) -> List[Any]:
    """Parse an uploaded import file into raw records, dispatching on MIME type."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type in CSV_CONTENT_TYPES:
        return decode_csv(data)
    if media_type in JSON_CONTENT_TYPES:
        return decode_json(data)
    if media_type in XLSX_CONTENT_TYPES:
        return decode_xlsx(data)
    raise ValidationError("Unsupported file format. Only CSV, JSON and Excel files are allowed.")


def resolve_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    """Map a raw record onto import fields; the first non-empty alias wins."""
    resolved = {}
    for field, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            value = record.get(alias)
            if value is not None and value != "":
                resolved[field] = value
                break
    return resolved
