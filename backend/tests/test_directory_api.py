"""
Directory API contract: parent link/unlink and the supervision listing.
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


async def _student_ids(client) -> list[str]:
    r = await client.get("/api/students")
    return [c["id"] for c in r.json()["data"]]


@pytest.mark.anyio
async def test_parent_links_and_unlinks_a_student(login):
    async with _client(cookies=login("ortu-none")) as client:
        before = await client.get("/api/parent/dependent")
        linked = await client.post("/api/parent/dependent", json={"student_id": "siswa-7b"})
        scoped = await _student_ids(client)
        unlinked = await client.delete("/api/parent/dependent")
        after = await _student_ids(client)
        again = await client.delete("/api/parent/dependent")
    assert before.json()["relationship_status"] == "no_relationship"
    assert linked.status_code == 200
    assert linked.json()["student"]["id"] == "siswa-7b"
    assert linked.headers.get("Cache-Control") == "private, no-store"
    assert scoped == ["siswa-7b"]
    assert unlinked.status_code == 200
    assert unlinked.json()["relationship_status"] == "no_relationship"
    assert after == []
    assert again.status_code == 400
    assert again.json() == {"error": "bad_request", "detail": "no_dependent"}


@pytest.mark.anyio
async def test_student_linked_elsewhere_is_409(login):
    async with _client(cookies=login("ortu-none")) as client:
        r = await client.post("/api/parent/dependent", json={"student_id": "siswa-7a"})
    assert r.status_code == 409
    assert r.json() == {"error": "already_linked"}


@pytest.mark.anyio
@pytest.mark.parametrize(
    "student_id,status", [("teacher-7a", 404), ("ghost", 404), ("   ", 400)]
)
async def test_link_target_validation(login, student_id, status):
    async with _client(cookies=login("ortu-none")) as client:
        r = await client.post("/api/parent/dependent", json={"student_id": student_id})
    assert r.status_code == status


@pytest.mark.anyio
async def test_non_parents_cannot_use_link_routes(login):
    async with _client(cookies=login("teacher-7a")) as client:
        r = await client.post("/api/parent/dependent", json={"student_id": "siswa-7b"})
    assert r.status_code == 403
    assert r.json() == {"error": "forbidden"}


@pytest.mark.anyio
async def test_cross_origin_link_is_rejected(login):
    async with _client(cookies=login("ortu-none")) as client:
        r = await client.post(
            "/api/parent/dependent", json={"student_id": "siswa-7b"}, headers={"Origin": "http://evil.example"}
        )
        status = await client.get("/api/parent/dependent")
    assert r.status_code == 403
    assert r.json() == {"error": "csrf_violation"}
    assert status.json()["relationship_status"] == "no_relationship"


@pytest.mark.anyio
async def test_admin_lists_supervision_assignments(login):
    async with _client(cookies=login("admin-1")) as client:
        r = await client.get("/api/admin/supervision-assignments")
    assert r.status_code == 200
    rows = {row["student"]["id"]: row for row in r.json()["data"]}
    assert rows["siswa-7c"]["supervisors"] == [{"id": "teacher-7b", "name": "Bu Sari"}]
    assert rows["siswa-7a"]["student"] == {"id": "siswa-7a", "name": "Andi", "class": "7A"}


@pytest.mark.anyio
async def test_supervision_assignments_forbidden_for_supervisors(login):
    async with _client(cookies=login("wali-1")) as client:
        r = await client.get("/api/admin/supervision-assignments")
    assert r.status_code == 403
