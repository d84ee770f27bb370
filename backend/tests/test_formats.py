from datetime import date, datetime, time, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from todox.core.exceptions import ImportFormatError, ValidationError
from todox.schemas.task import TaskImportRecord, TaskPriority, TaskStatus
from todox.services.formats import decode, decode_csv, decode_json, format_timestamp, resolve_fields


def test_resolve_fields_prefers_camel_case_then_header():
    record = {"dueDate": "", "Due Date": "2024-05-01", "title": "a", "Title": "b", "Notes": "ignored"}
    assert resolve_fields(record) == {"due_date": "2024-05-01", "title": "a"}


def test_resolve_fields_skips_missing_values():
    assert resolve_fields({"Title": "x", "Category": None, "Priority": ""}) == {"title": "x"}


def test_decode_json_accepts_both_shapes():
    assert decode_json(b'[{"title": "a"}]') == [{"title": "a"}]
    assert decode_json(b'{"backupDate": "x", "tasks": [{"title": "a"}]}') == [{"title": "a"}]


@pytest.mark.parametrize("payload", [b'{"tasks": {}}', b'"text"', b"42"])
def test_decode_json_rejects_other_shapes(payload):
    with pytest.raises(ImportFormatError) as excinfo:
        decode_json(payload)
    assert excinfo.value.status_code == 400


def test_decode_json_keeps_parser_error():
    with pytest.raises(ImportFormatError) as excinfo:
        decode_json(b"[{")
    assert excinfo.value.error


def test_decode_csv_strips_byte_order_mark():
    assert decode_csv("Title,Priority\nA,low\n".encode("utf-8-sig")) == [{"Title": "A", "Priority": "low"}]


def test_decode_dispatches_on_media_type_parameters():
    assert decode("application/json; charset=utf-8", b"[]") == []
    with pytest.raises(ValidationError):
        decode(None, b"[]")


def test_import_record_defaults():
    record = TaskImportRecord(title=" Walk ")
    assert record.title == "Walk"
    assert record.status is TaskStatus.active
    assert record.priority is TaskPriority.medium
    assert record.description == ""
    assert record.category is None


@pytest.mark.parametrize(
    "value",
    ["2024-05-01", "2024-05-01T00:00:00.000Z", date(2024, 5, 1), datetime(2024, 5, 1, 16, 30)],
)
def test_import_record_due_date_forms(value):
    assert TaskImportRecord(title="x", due_date=value).due_date == date(2024, 5, 1)


def test_import_record_rejects_bad_due_date():
    with pytest.raises(PydanticValidationError, match="Invalid due date"):
        TaskImportRecord(title="x", due_date="next week")


def test_import_record_coerces_spreadsheet_cells():
    record = TaskImportRecord(title=2024, category=7, due_time=time(9, 5))
    assert record.title == "2024"
    assert record.category == "7"
    assert record.due_time == "09:05"


def test_format_timestamp_is_utc_with_milliseconds():
    cest = timezone(timedelta(hours=2))
    assert format_timestamp(datetime(2024, 5, 1, 10, 30, 0, 123456, tzinfo=cest)) == "2024-05-01T08:30:00.123Z"
    assert format_timestamp(datetime(2024, 5, 1, 8, 30)) == "2024-05-01T08:30:00.000Z"
    assert format_timestamp(None) is None


def test_import_record_title_has_same_bound_as_create():
    TaskImportRecord(title="x" * 200)
    with pytest.raises(PydanticValidationError, match="at most 200 characters"):
        TaskImportRecord(title="x" * 201)
