import csv
import io
import json

from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

from conftest import bearer, create_category, create_task, register
from todox.core.storage import LocalBlobStorage
from todox.main import create_app

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADERS = [
    "Title",
    "Status",
    "Category",
    "Due Date",
    "Due Time",
    "Priority",
    "Description",
    "Created At",
    "Updated At",
    "Completed At",
]


def import_file(client, headers, content: bytes, content_type: str, name: str = "tasks"):
    return client.post("/api/tasks/import", files={"file": (name, content, content_type)}, headers=headers)


def comparable(tasks):
    return sorted(
        (
            t["title"],
            t["status"],
            t["category"]["name"] if t["category"] else None,
            t["dueDate"],
            t["priority"],
            t["description"],
        )
        for t in tasks
    )


def seed(client, headers):
    work = create_category(client, headers, "Work")
    create_task(client, headers, title="Report", category=work["id"], dueDate="2024-05-01", dueTime="09:30", priority="high", description="Q2")
    done = create_task(client, headers, title="Call mum")
    client.put(f"/api/tasks/{done['id']}", json={"status": "complete", "completedAt": "2024-05-02T08:00:00Z"}, headers=headers)


def test_csv_export_flattens_tasks(client, alice):
    seed(client, alice)
    response = client.get("/api/tasks/export/csv", headers=alice)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="tasks.csv"' in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.content.decode("utf-8"))))
    assert rows[0] == HEADERS
    by_title = {row[0]: row for row in rows[1:]}
    assert by_title["Report"][1:7] == ["active", "Work", "2024-05-01", "09:30", "high", "Q2"]
    assert by_title["Call mum"][2:5] == ["", "", ""]
    assert by_title["Call mum"][9] == "2024-05-02T08:00:00.000Z"


def test_excel_export_has_tasks_sheet(client, alice):
    seed(client, alice)
    response = client.get("/api/tasks/export/excel", headers=alice)
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX

    workbook = load_workbook(io.BytesIO(response.content))
    sheet = workbook["Tasks"]
    rows = list(sheet.iter_rows(values_only=True))
    assert list(rows[0]) == HEADERS
    assert {row[0] for row in rows[1:]} == {"Report", "Call mum"}


def test_json_export_uploads_to_remote_storage(client, storage, alice):
    seed(client, alice)
    response = client.get("/api/tasks/export/json", headers=alice)
    assert response.status_code == 200
    url = response.json()["downloadUrl"]
    assert "/exports/" in url
    assert url.endswith("?expires=3600")

    (path,) = [p for p in storage.objects if p.startswith("exports/")]
    records = json.loads(storage.objects[path])
    report = next(r for r in records if r["title"] == "Report")
    assert report["category"] == "Work"
    assert report["dueDate"] == "2024-05-01"
    other = next(r for r in records if r["title"] == "Call mum")
    assert other["category"] is None
    assert other["dueDate"] is None
    assert other["dueTime"] is None


def test_json_export_downloads_directly_without_remote_storage(settings, tmp_path):
    with TestClient(create_app(settings, storage=LocalBlobStorage(tmp_path / "uploads"))) as client:
        headers = bearer(register(client, "carol")["token"])
        create_task(client, headers, title="Local")
        response = client.get("/api/tasks/export/json", headers=headers)
        assert response.status_code == 200
        assert 'filename="tasks.json"' in response.headers["content-disposition"]
        assert [r["title"] for r in response.json()] == ["Local"]


def test_json_export_then_import_round_trips(client, storage, alice, bob):
    seed(client, alice)
    client.get("/api/tasks/export/json", headers=alice)
    (path,) = [p for p in storage.objects if p.startswith("exports/")]

    response = import_file(client, bob, storage.objects[path], "application/json", "tasks.json")
    assert response.status_code == 201
    assert "errors" not in response.json()

    original = client.get("/api/tasks", headers=alice).json()["tasks"]
    imported = client.get("/api/tasks", headers=bob).json()["tasks"]
    assert comparable(imported) == comparable(original)


def test_bare_array_and_tasks_object_import_identically(client, alice, bob):
    records = [
        {"title": "One", "category": "Home", "dueDate": "2024-06-01", "priority": "low"},
        {"title": "Two", "status": "complete", "description": "done"},
    ]
    first = import_file(client, alice, json.dumps(records).encode(), "application/json")
    second = import_file(client, bob, json.dumps({"userId": 1, "tasks": records}).encode(), "application/json")
    assert first.status_code == second.status_code == 201
    assert comparable(first.json()["importedTasks"]) == comparable(second.json()["importedTasks"])
    assert [t["title"] for t in first.json()["importedTasks"]] == ["One", "Two"]


def test_import_reuses_existing_category(client, alice):
    home = create_category(client, alice, "Home")
    records = [{"title": "a", "category": "Home"}, {"title": "b", "category": "Home"}, {"title": "c", "category": "home"}]
    body = import_file(client, alice, json.dumps(records).encode(), "application/json").json()

    assert [t["category"]["id"] for t in body["importedTasks"][:2]] == [home["id"], home["id"]]
    names = sorted(c["name"] for c in client.get("/api/categories", headers=alice).json())
    assert names == ["Home", "home"]


def test_import_collects_per_record_errors(client, alice):
    records = [
        {"title": "ok"},
        {"description": "no title"},
        {"title": "bad status", "status": "waiting"},
        {"title": "bad date", "dueDate": "tomorrow"},
        "not an object",
    ]
    response = import_file(client, alice, json.dumps(records).encode(), "application/json")
    assert response.status_code == 201
    body = response.json()
    assert [t["title"] for t in body["importedTasks"]] == ["ok"]
    assert body["message"] == "Imported 1 tasks successfully"
    assert [e["data"] for e in body["errors"]] == records[1:]
    assert "Title" in body["errors"][0]["error"] or "title" in body["errors"][0]["error"]
    assert "Invalid due date" in body["errors"][2]["error"]


def test_csv_import_accepts_export_headers(client, alice):
    content = (
        "Title,Status,Category,Due Date,Due Time,Priority,Description\n"
        "Plan trip,active,Travel,2024-07-01,08:00,high,Book hotel\n"
        "Stretch,complete,,,,,\n"
    ).encode("utf-8-sig")
    body = import_file(client, alice, content, "text/csv", "tasks.csv").json()
    tasks = {t["title"]: t for t in body["importedTasks"]}
    assert tasks["Plan trip"]["category"]["name"] == "Travel"
    assert tasks["Plan trip"]["dueDate"] == "2024-07-01"
    assert tasks["Plan trip"]["dueTime"] == "08:00"
    assert tasks["Stretch"]["status"] == "complete"
    assert tasks["Stretch"]["priority"] == "medium"
    assert tasks["Stretch"]["category"] is None


def test_csv_import_with_legacy_excel_mime_type(client, alice):
    content = b"title,priority\nLowercase headers,low\n"
    body = import_file(client, alice, content, "application/vnd.ms-excel", "tasks.csv").json()
    assert body["importedTasks"][0]["priority"] == "low"


def test_xlsx_import_reads_first_sheet(client, alice):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Title", "Category", "Due Date", "Priority"])
    sheet.append(["From Excel", "Sheets", "2024-08-15", "high"])
    sheet.append([None, None, None, None])
    sheet.append(["Second", None, None, None])
    buffer = io.BytesIO()
    workbook.save(buffer)

    body = import_file(client, alice, buffer.getvalue(), XLSX, "tasks.xlsx").json()
    assert [t["title"] for t in body["importedTasks"]] == ["From Excel", "Second"]
    assert body["importedTasks"][0]["dueDate"] == "2024-08-15"
    assert body["importedTasks"][0]["category"]["name"] == "Sheets"


def test_excel_export_then_import_round_trips(client, alice, bob):
    seed(client, alice)
    exported = client.get("/api/tasks/export/excel", headers=alice).content
    assert import_file(client, bob, exported, XLSX, "tasks.xlsx").status_code == 201
    assert comparable(client.get("/api/tasks", headers=bob).json()["tasks"]) == comparable(
        client.get("/api/tasks", headers=alice).json()["tasks"]
    )


def test_import_rejects_console_output(client, alice):
    response = import_file(client, alice, b"[object Object],[object Object]", "application/json")
    assert response.status_code == 400
    assert "console output" in response.json()["detail"]


def test_import_reports_json_parse_errors(client, alice):
    response = import_file(client, alice, b'{"tasks": [', "application/json")
    assert response.status_code == 400
    assert response.json()["error"]


def test_import_rejects_other_json_shapes(client, alice):
    response = import_file(client, alice, b'{"items": []}', "application/json")
    assert response.status_code == 400


def test_import_rejects_unsupported_types(client, alice):
    response = import_file(client, alice, b"hello", "text/plain", "tasks.txt")
    assert response.status_code == 400


def test_backup_to_remote_storage(client, storage, alice):
    seed(client, alice)
    response = client.post("/api/tasks/backup", headers=alice)
    assert response.status_code == 200
    body = response.json()
    assert body["totalTasks"] == 2
    assert body["backupUrl"].endswith(f"?expires={30 * 24 * 3600}")

    (path,) = [p for p in storage.objects if p.startswith("backups/")]
    document = json.loads(storage.objects[path])
    assert document["totalTasks"] == 2
    assert {t["title"] for t in document["tasks"]} == {"Report", "Call mum"}
    assert all("id" in t and "attachments" in t for t in document["tasks"])


def test_backup_downloads_directly_and_reimports(settings, tmp_path):
    with TestClient(create_app(settings, storage=LocalBlobStorage(tmp_path / "uploads"))) as client:
        carol = bearer(register(client, "carol")["token"])
        dave = bearer(register(client, "dave")["token"])
        seed(client, carol)

        response = client.post("/api/tasks/backup", headers=carol)
        assert response.status_code == 200
        assert "todox_backup_" in response.headers["content-disposition"]

        assert import_file(client, dave, response.content, "application/json").status_code == 201
        assert comparable(client.get("/api/tasks", headers=dave).json()["tasks"]) == comparable(
            client.get("/api/tasks", headers=carol).json()["tasks"]
        )


def test_backup_with_no_tasks_still_produces_artifact(client, storage, alice):
    body = client.post("/api/tasks/backup", headers=alice).json()
    assert body["totalTasks"] == 0
    (path,) = [p for p in storage.objects if p.startswith("backups/")]
    assert json.loads(storage.objects[path])["tasks"] == []


def test_import_reports_overlong_title(client, alice):
    records = [{"title": "x" * 201}, {"title": "fine"}]
    body = import_file(client, alice, json.dumps(records).encode(), "application/json").json()
    assert [t["title"] for t in body["importedTasks"]] == ["fine"]
    assert "at most 200 characters" in body["errors"][0]["error"]
