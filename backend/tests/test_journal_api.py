"""
Journal API contract: window, submissions, record scope, validation, comments.

Requirements:
- Students submit only while the window is open and only once per day (409
  with `submitted_at` on the second attempt).
- Record lists and single reads are scoped per actor; rows outside scope
  look missing (404).
- Validation needs WRITE in scope and a mutating identity equal to the actor.
- Comments need COMMENT in scope; the author is always the caller.
- Cross-origin writes are rejected.
"""
import pytest
import httpx
from httpx import ASGITransport

from backend.web import main
from utils.school import seed_school


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture(autouse=True)
def _school(app_ctx):
    seed_school(app_ctx.directory.store)


def _client(cookies=None) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test", cookies=cookies)


async def _open_window(login):
    async with _client(cookies=login("admin-1")) as admin:
        r = await admin.put("/api/submission-window", json={"is_open": True})
    assert r.status_code == 200
    return r.json()


async def _submit(login, user_id: str, task_id: str = "jurnal-pagi", values=None):
    async with _client(cookies=login(user_id)) as client:
        return await client.post(f"/api/tasks/{task_id}/records", json={"field_values": values or {}})


@pytest.mark.anyio
async def test_window_starts_closed_and_blocks_students(login):
    async with _client(cookies=login("siswa-7a")) as client:
        state = await client.get("/api/submission-window")
        status = await client.get("/api/tasks/jurnal-pagi/submission-status")
    assert state.json()["is_open"] is False
    assert status.json() == {"can_submit": False, "reason": "window closed", "last_submitted_at": None}

    r = await _submit(login, "siswa-7a")
    assert r.status_code == 403
    assert r.json() == {"error": "window_closed"}


@pytest.mark.anyio
async def test_only_admin_toggles_window(login):
    async with _client(cookies=login("teacher-7a")) as client:
        r = await client.put("/api/submission-window", json={"is_open": True})
    assert r.status_code == 403
    state = await _open_window(login)
    assert state["is_open"] is True
    assert state["changed_by"] == "admin-1"


@pytest.mark.anyio
async def test_submit_once_per_day(login):
    await _open_window(login)
    first = await _submit(login, "siswa-7a", values={"kegiatan": "membaca", "durasi_menit": "30"})
    assert first.status_code == 201
    body = first.json()
    assert body["owner_id"] == "siswa-7a"
    assert body["status"] == "pending"
    assert body["field_values"] == {"kegiatan": "membaca", "durasi_menit": "30"}

    second = await _submit(login, "siswa-7a")
    assert second.status_code == 409
    assert second.json() == {"error": "already_submitted", "submitted_at": body["created_at"]}

    async with _client(cookies=login("siswa-7a")) as client:
        status = await client.get("/api/tasks/jurnal-pagi/submission-status")
    assert status.json()["reason"] == "already submitted today"


@pytest.mark.anyio
async def test_invalid_task_or_fields_rejected(login):
    await _open_window(login)
    bad_task = await _submit(login, "siswa-7a", task_id="-jurnal")
    assert bad_task.status_code == 400
    bad_fields = await _submit(login, "siswa-7a", values={"Bad Key": "x"})
    assert bad_fields.status_code == 400
    assert bad_fields.json() == {"error": "bad_request", "detail": "invalid_field_values"}


@pytest.mark.anyio
async def test_record_lists_are_scoped(login):
    await _open_window(login)
    for student in ("siswa-7a", "siswa-7b", "siswa-7c"):
        assert (await _submit(login, student)).status_code == 201

    async def owners(user_id):
        async with _client(cookies=login(user_id)) as client:
            r = await client.get("/api/records")
        assert r.status_code == 200
        return sorted(rec["owner_id"] for rec in r.json()["data"])

    assert await owners("admin-1") == ["siswa-7a", "siswa-7b", "siswa-7c"]
    assert await owners("teacher-7a") == ["siswa-7a"]
    assert await owners("teacher-7b") == ["siswa-7b", "siswa-7c"]
    assert await owners("wali-1") == ["siswa-7a", "siswa-7b"]
    assert await owners("ortu-1") == ["siswa-7a"]
    assert await owners("ortu-none") == []
    assert await owners("siswa-7b") == ["siswa-7b"]
    assert await owners("teacher-none") == []


@pytest.mark.anyio
async def test_record_outside_scope_looks_missing(login):
    await _open_window(login)
    record_id = (await _submit(login, "siswa-7a")).json()["id"]
    async with _client(cookies=login("teacher-7b")) as other:
        hidden = await other.get(f"/api/records/{record_id}")
    async with _client(cookies=login("ortu-1")) as parent:
        visible = await parent.get(f"/api/records/{record_id}")
    assert hidden.status_code == 404
    assert visible.status_code == 200
    assert visible.json()["id"] == record_id


@pytest.mark.anyio
async def test_validation_by_home_teacher(login):
    await _open_window(login)
    record_id = (await _submit(login, "siswa-7a")).json()["id"]
    async with _client(cookies=login("teacher-7a")) as client:
        r = await client.patch(f"/api/records/{record_id}/validation", json={"validated": True})
        undo = await client.patch(f"/api/records/{record_id}/validation", json={"validated": False})
    assert r.status_code == 200
    assert r.json()["validated"] is True
    assert r.json()["validated_by"] == "teacher-7a"
    assert r.json()["status"] == "completed"
    assert undo.json()["status"] == "pending"
    assert undo.json()["validated_by"] is None


@pytest.mark.anyio
async def test_validation_rejects_foreign_mutator_and_out_of_scope(login):
    await _open_window(login)
    record_id = (await _submit(login, "siswa-7a")).json()["id"]
    async with _client(cookies=login("teacher-7a")) as teacher:
        spoof = await teacher.patch(
            f"/api/records/{record_id}/validation", json={"validated": True, "validated_by": "wali-1"}
        )
    async with _client(cookies=login("ortu-1")) as parent:
        parent_try = await parent.patch(f"/api/records/{record_id}/validation", json={"validated": True})
    async with _client(cookies=login("teacher-7b")) as other:
        other_try = await other.patch(f"/api/records/{record_id}/validation", json={"validated": True})
    assert spoof.status_code == 403
    assert parent_try.status_code == 403
    assert other_try.status_code == 404


@pytest.mark.anyio
async def test_comments_scope_and_author(login):
    async with _client(cookies=login("ortu-1")) as parent:
        ok = await parent.post("/api/students/siswa-7a/comments", json={"content": "Terima kasih, Bu."})
        outside = await parent.post("/api/students/siswa-7b/comments", json={"content": "Halo"})
        spoof = await parent.post(
            "/api/students/siswa-7a/comments", json={"content": "Halo", "author_id": "teacher-7a"}
        )
        empty = await parent.post("/api/students/siswa-7a/comments", json={"content": "   "})
    assert ok.status_code == 201
    assert ok.json()["author_id"] == "ortu-1"
    assert outside.status_code == 404
    assert spoof.status_code == 403
    assert empty.status_code == 400

    async with _client(cookies=login("siswa-7a")) as student:
        listed = await student.get("/api/students/siswa-7a/comments")
        other = await student.get("/api/students/siswa-7a-2/comments")
    assert [c["content"] for c in listed.json()["data"]] == ["Terima kasih, Bu."]
    assert other.status_code == 404


@pytest.mark.anyio
async def test_comment_record_must_belong_to_student(login):
    await _open_window(login)
    record_id = (await _submit(login, "siswa-7a-2")).json()["id"]
    async with _client(cookies=login("teacher-7a")) as teacher:
        r = await teacher.post(
            "/api/students/siswa-7a/comments", json={"content": "Bagus", "record_id": record_id}
        )
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_record_id"


@pytest.mark.anyio
async def test_cross_origin_write_rejected(login):
    async with _client(cookies=login("admin-1")) as client:
        r = await client.put(
            "/api/submission-window", json={"is_open": True}, headers={"Origin": "http://evil.example"}
        )
        same = await client.put("/api/submission-window", json={"is_open": True}, headers={"Origin": "http://test"})
    assert r.status_code == 403
    assert r.json() == {"error": "csrf_violation"}
    assert same.status_code == 200
