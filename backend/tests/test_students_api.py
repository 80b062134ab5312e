"""
Roster API contract: scoped student cards with merged aliases, class summary
and the daily inactivity report.
"""
from datetime import datetime, timezone

import pytest
import httpx
from httpx import ASGITransport

from backend.roster.aliases import AliasTable
from backend.web import main
from utils.school import seed_school


pytestmark = pytest.mark.anyio("asyncio")

FIXED_NOW = datetime(2024, 5, 1, 3, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _school(app_ctx):
    seed_school(app_ctx.directory.store)
    app_ctx.aliases = AliasTable.from_groups([["siswa-7a", "siswa-7a-2"]])
    app_ctx.clock = lambda: FIXED_NOW


def _client(cookies=None) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test", cookies=cookies)


async def _seed_records(login, *students):
    async with _client(cookies=login("admin-1")) as admin:
        await admin.put("/api/submission-window", json={"is_open": True})
    for student in students:
        async with _client(cookies=login(student)) as client:
            r = await client.post("/api/tasks/jurnal-pagi/records", json={"field_values": {}})
        assert r.status_code == 201


async def _get(login, user_id, path, **params):
    async with _client(cookies=login(user_id)) as client:
        return await client.get(path, params=params or None)


@pytest.mark.anyio
async def test_teacher_sees_one_card_per_merged_student(login):
    await _seed_records(login, "siswa-7a-2")
    r = await _get(login, "teacher-7a", "/api/students")
    assert r.status_code == 200
    cards = r.json()["data"]
    assert len(cards) == 1
    card = cards[0]
    assert card["id"] == "siswa-7a"
    assert card["name"] == "Andi"
    assert card["class"] == "7A"
    assert card["activities_count"] == 1
    assert card["last_activity"] == FIXED_NOW.isoformat()
    assert card["status"] == "active"


@pytest.mark.anyio
async def test_student_list_scopes(login):
    async def ids(user_id):
        r = await _get(login, user_id, "/api/students")
        return sorted(c["id"] for c in r.json()["data"])

    assert await ids("admin-1") == ["siswa-7a", "siswa-7b", "siswa-7c"]
    assert await ids("wali-1") == ["siswa-7a", "siswa-7b"]
    assert await ids("teacher-7b") == ["siswa-7b", "siswa-7c"]
    assert await ids("ortu-1") == ["siswa-7a"]
    assert await ids("siswa-7c") == ["siswa-7c"]
    assert await ids("teacher-none") == []


@pytest.mark.anyio
async def test_student_name_falls_back_to_email(login):
    r = await _get(login, "teacher-7b", "/api/students/siswa-7b")
    assert r.status_code == 200
    assert r.json()["name"] == "Rina Putri"
    assert r.json()["status"] == "inactive"


@pytest.mark.anyio
async def test_get_student_by_secondary_id_returns_primary(login):
    await _seed_records(login, "siswa-7a", "siswa-7a-2")
    r = await _get(login, "teacher-7a", "/api/students/siswa-7a-2")
    assert r.status_code == 200
    assert r.json()["id"] == "siswa-7a"
    assert r.json()["activities_count"] == 2


@pytest.mark.anyio
async def test_get_student_outside_scope_or_not_student_is_404(login):
    assert (await _get(login, "teacher-7a", "/api/students/siswa-7b")).status_code == 404
    assert (await _get(login, "admin-1", "/api/students/teacher-7a")).status_code == 404
    assert (await _get(login, "admin-1", "/api/students/ghost")).status_code == 404


@pytest.mark.anyio
async def test_admin_class_summary(login):
    await _seed_records(login, "siswa-7a-2", "siswa-7b")
    r = await _get(login, "admin-1", "/api/admin/classes")
    assert r.status_code == 200
    rows = {row["class"]: row for row in r.json()["data"]}
    assert list(rows) == ["7A", "7B", "7C"]
    assert rows["7A"]["total_students"] == 1
    assert rows["7A"]["active_students"] == 1
    assert rows["7B"]["average_activity"] == 1
    assert rows["7C"]["active_students"] == 0
    assert rows["7C"]["last_activity"] is None


@pytest.mark.anyio
async def test_daily_inactive_report(login):
    await _seed_records(login, "siswa-7b")
    r = await _get(login, "wali-1", "/api/reports/daily-inactive", date="2024-05-01")
    assert r.status_code == 200
    body = r.json()
    assert body["date"] == "2024-05-01"
    assert body["total_students"] == 2
    assert body["active_students"] == 1
    assert [s["id"] for s in body["active_students_list"]] == ["siswa-7b"]
    assert [s["id"] for s in body["inactive_students"]] == ["siswa-7a"]
    assert body["active_rate"] == 50


@pytest.mark.anyio
async def test_daily_inactive_defaults_to_today(login):
    await _seed_records(login, "siswa-7a-2")
    r = await _get(login, "teacher-7a", "/api/reports/daily-inactive")
    body = r.json()
    assert body["date"] == "2024-05-01"
    assert body["active_students"] == 1
    assert body["active_rate"] == 100


@pytest.mark.anyio
@pytest.mark.parametrize("raw", ["2024-13-01", "kemarin", "2024-5-1"])
async def test_daily_inactive_rejects_bad_dates(login, raw):
    r = await _get(login, "admin-1", "/api/reports/daily-inactive", date=raw)
    assert r.status_code == 400
    assert r.json() == {"error": "bad_request", "detail": "invalid_date"}


@pytest.mark.anyio
async def test_daily_inactive_is_staff_only(login):
    r = await _get(login, "ortu-1", "/api/reports/daily-inactive")
    assert r.status_code == 403
