# tests/test_todos.py — Todo endpoints: CRUD, lifecycle, tags, listings, reports
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers
from todolist.entities import Todo, utcnow
from todolist.repositories.sql import SqlTodoRepository


def parse_dt(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


async def create(client: AsyncClient, headers: dict, **payload):
    payload.setdefault("title", "Write quarterly report")
    res = await client.post("/api/v1/todos", headers=headers, json=payload)
    assert res.status_code == 201, res.text
    return res.json()["data"]


@pytest.mark.asyncio
class TestTodoWorkflow:
    async def test_register_login_create_complete(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/register", json={
            "name": "Dana Example",
            "email": "dana@todolist.dev",
            "phone": "+55 31 97777-0000",
            "tax_id": "935.411.347-80",
            "username": "dana",
            "password": "D4na!Pass",
        })
        assert res.status_code == 201

        res = await client.post("/api/v1/auth/login", json={"username": "dana", "password": "D4na!Pass"})
        headers = {"Authorization": f"Bearer {res.json()['data']['token']}"}

        before = utcnow()
        todo = await create(client, headers, title="Prepare launch", priority="high")
        assert todo["status"] == "pending"
        assert todo["priority"] == "high"
        due = parse_dt(todo["due_date"])
        assert before + timedelta(days=3) - timedelta(minutes=1) <= due <= utcnow() + timedelta(days=3)

        res = await client.post(f"/api/v1/todos/{todo['id']}/complete", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["status"] == "completed"
        assert res.json()["data"]["completed_at"] is not None

        stats = (await client.get("/api/v1/todos/statistics", headers=headers)).json()["data"]
        assert stats["total"] == 1
        assert stats["by_status"]["completed"] == 1
        assert stats["completion_rate"] == 100.0

    async def test_low_priority_gets_no_due_date(self, client: AsyncClient, test_user):
        todo = await create(client, get_auth_headers(test_user), priority="low")
        assert todo["due_date"] is None

    async def test_numeric_priority(self, client: AsyncClient, test_user):
        todo = await create(client, get_auth_headers(test_user), priority=4)
        assert todo["priority"] == "critical"

    async def test_explicit_due_date_and_tags(self, client: AsyncClient, test_user):
        due = (utcnow() + timedelta(days=10)).replace(microsecond=0)
        todo = await create(
            client, get_auth_headers(test_user),
            description="Numbers for Q3", due_date=due.isoformat(), tags=["work", " finance "],
        )
        assert parse_dt(todo["due_date"]) == due
        assert todo["tags"] == ["work", "finance"]
        assert todo["description"] == "Numbers for Q3"
        assert todo["is_overdue"] is False


@pytest.mark.asyncio
class TestTodoValidation:
    async def test_title_too_short(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/todos", headers=get_auth_headers(test_user), json={"title": "ab"})
        assert res.status_code == 400
        error = res.json()["error"]
        assert error["code"] == "TITLE_TOO_SHORT"
        assert error["details"]["field"] == "title"

    async def test_invalid_priority(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/todos", headers=get_auth_headers(test_user), json={
            "title": "Valid title", "priority": "urgent",
        })
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "INVALID_PRIORITY"

    async def test_due_date_in_past(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/todos", headers=get_auth_headers(test_user), json={
            "title": "Valid title", "due_date": "2020-01-01T00:00:00Z",
        })
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "DUE_DATE_IN_PAST"

    async def test_missing_title(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/todos", headers=get_auth_headers(test_user), json={})
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_unauthenticated(self, client: AsyncClient):
        res = await client.get("/api/v1/todos")
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "UNAUTHENTICATED"


@pytest.mark.asyncio
class TestTodoOwnership:
    async def test_other_user_sees_not_found(self, client: AsyncClient, test_user, other_user):
        todo = await create(client, get_auth_headers(test_user))
        bob = get_auth_headers(other_user)
        url = f"/api/v1/todos/{todo['id']}"

        for res in (
            await client.get(url, headers=bob),
            await client.put(url, headers=bob, json={"title": "Hijacked"}),
            await client.delete(url, headers=bob),
            await client.post(f"{url}/complete", headers=bob),
        ):
            assert res.status_code == 404
            assert res.json()["error"]["code"] == "TODO_NOT_FOUND"

        res = await client.get(url, headers=get_auth_headers(test_user))
        assert res.json()["data"]["title"] == "Write quarterly report"

    async def test_missing_todo(self, client: AsyncClient, test_user):
        res = await client.get("/api/v1/todos/99999", headers=get_auth_headers(test_user))
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "TODO_NOT_FOUND"


@pytest.mark.asyncio
class TestTodoLifecycle:
    async def test_cancel_after_complete_is_rejected(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers)
        await client.post(f"/api/v1/todos/{todo['id']}/complete", headers=headers)

        res = await client.patch(f"/api/v1/todos/{todo['id']}/status", headers=headers, json={"status": "cancelled"})
        assert res.status_code == 400
        error = res.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["details"] == {"from": "completed", "to": "cancelled"}

    async def test_complete_twice(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers)
        await client.post(f"/api/v1/todos/{todo['id']}/complete", headers=headers)
        res = await client.post(f"/api/v1/todos/{todo['id']}/complete", headers=headers)
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "ALREADY_COMPLETED"

    async def test_status_change(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers)
        res = await client.patch(f"/api/v1/todos/{todo['id']}/status", headers=headers, json={"status": "in_progress"})
        assert res.status_code == 200
        assert res.json()["data"]["status"] == "in_progress"

        res = await client.patch(f"/api/v1/todos/{todo['id']}/status", headers=headers, json={"status": "someday"})
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "INVALID_STATUS"

    async def test_partial_update(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        due = (utcnow() + timedelta(days=5)).isoformat()
        todo = await create(client, headers, description="Keep me", due_date=due, priority="medium")

        res = await client.put(f"/api/v1/todos/{todo['id']}", headers=headers, json={
            "title": "Write annual report", "priority": "critical",
        })
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["title"] == "Write annual report"
        assert data["priority"] == "critical"
        assert data["description"] == "Keep me"
        assert data["due_date"] is not None

        res = await client.put(f"/api/v1/todos/{todo['id']}", headers=headers, json={"due_date": None})
        assert res.json()["data"]["due_date"] is None

    async def test_update_rejects_past_due_date(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers)
        res = await client.put(f"/api/v1/todos/{todo['id']}", headers=headers, json={
            "due_date": "2020-01-01T00:00:00Z",
        })
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "DUE_DATE_IN_PAST"

    async def test_delete(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers)
        res = await client.delete(f"/api/v1/todos/{todo['id']}", headers=headers)
        assert res.status_code == 200
        assert res.json()["success"] is True

        res = await client.delete(f"/api/v1/todos/{todo['id']}", headers=headers)
        assert res.status_code == 404

    async def test_tags(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers, tags=["work"])

        res = await client.post(f"/api/v1/todos/{todo['id']}/tags", headers=headers, json={"tag": " urgent "})
        assert res.json()["data"]["tags"] == ["work", "urgent"]

        res = await client.delete(f"/api/v1/todos/{todo['id']}/tags/work", headers=headers)
        assert res.json()["data"]["tags"] == ["urgent"]

        res = await client.post(f"/api/v1/todos/{todo['id']}/tags", headers=headers, json={"tag": "  "})
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "TAG_EMPTY"


@pytest.mark.asyncio
class TestTodoListing:
    async def _seed(self, client, headers):
        report = await create(client, headers, title="Write report", priority="high", tags=["work"])
        await create(client, headers, title="Buy groceries", priority="low", tags=["home"])
        await create(client, headers, title="Clean garage", priority="medium", tags=["home"])
        await client.post(f"/api/v1/todos/{report['id']}/complete", headers=headers)
        return report

    async def test_pagination(self, client: AsyncClient, test_user, other_user):
        headers = get_auth_headers(test_user)
        await self._seed(client, headers)
        await create(client, get_auth_headers(other_user), title="Not visible")

        res = await client.get("/api/v1/todos?size=2", headers=headers)
        assert res.status_code == 200
        body = res.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "page_size": 2, "total": 3, "total_pages": 2}
        assert res.headers["X-Total-Count"] == "3"
        assert res.headers["X-Total-Pages"] == "2"
        assert res.headers["X-Current-Page"] == "1"
        assert res.headers["X-Page-Size"] == "2"

        second = (await client.get("/api/v1/todos?size=2&page=2", headers=headers)).json()
        assert len(second["data"]) == 1

    async def test_sorting(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        await self._seed(client, headers)
        res = await client.get("/api/v1/todos?sort=title:asc", headers=headers)
        assert [t["title"] for t in res.json()["data"]] == ["Buy groceries", "Clean garage", "Write report"]

        res = await client.get("/api/v1/todos?sort_by=priority&order=desc", headers=headers)
        assert res.json()["data"][0]["priority"] == "high"

    async def test_invalid_sort(self, client: AsyncClient, test_user):
        res = await client.get("/api/v1/todos?sort=password", headers=get_auth_headers(test_user))
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "INVALID_SORT"

    async def test_invalid_page_size(self, client: AsyncClient, test_user):
        res = await client.get("/api/v1/todos?size=500", headers=get_auth_headers(test_user))
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "INVALID_PAGINATION"

    @pytest.mark.parametrize("query", ["page=0", "size=0"])
    async def test_zero_page_or_size(self, client: AsyncClient, test_user, query):
        res = await client.get(f"/api/v1/todos?{query}", headers=get_auth_headers(test_user))
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "INVALID_PAGINATION"

    async def test_filters_and_search(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        report = await self._seed(client, headers)

        res = await client.get("/api/v1/todos?status=completed", headers=headers)
        assert [t["id"] for t in res.json()["data"]] == [report["id"]]

        res = await client.get("/api/v1/todos?tags=home", headers=headers)
        assert res.json()["pagination"]["total"] == 2

        res = await client.get("/api/v1/todos?search=GROCER", headers=headers)
        assert [t["title"] for t in res.json()["data"]] == ["Buy groceries"]

        res = await client.get("/api/v1/todos?filter[priority][in]=low,medium", headers=headers)
        assert res.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
class TestTodoReports:
    async def test_popular_tags(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        await create(client, headers, tags=["work", "home"])
        await create(client, headers, tags=["work"])

        res = await client.get("/api/v1/todos/tags/popular?limit=1", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"] == [{"tag": "work", "count": 2}]

    async def test_productivity(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        todo = await create(client, headers, tags=["work"])
        await create(client, headers)
        await client.post(f"/api/v1/todos/{todo['id']}/complete", headers=headers)

        res = await client.get("/api/v1/todos/productivity?days=7", headers=headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["total_created"] == 2
        assert data["total_completed"] == 1
        assert data["completion_rate"] == 50.0

    async def test_start_overdue(self, client: AsyncClient, db_session, test_user):
        repo = SqlTodoRepository(db_session)
        overdue = Todo.create(test_user.id, "Overdue report", now=utcnow() - timedelta(days=3))
        overdue.set_due_date_unchecked(utcnow() - timedelta(days=1))
        await repo.save(overdue)

        headers = get_auth_headers(test_user)
        res = await client.get(f"/api/v1/todos/{overdue.id}", headers=headers)
        assert res.json()["data"]["is_overdue"] is True

        res = await client.post("/api/v1/todos/maintenance/start-overdue", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"] == {"updated": 1}

        res = await client.get(f"/api/v1/todos/{overdue.id}", headers=headers)
        assert res.json()["data"]["status"] == "in_progress"

    async def test_cancel_stale(self, client: AsyncClient, db_session, test_user):
        repo = SqlTodoRepository(db_session)
        stale = Todo.create(test_user.id, "Forgotten errand", now=utcnow() - timedelta(days=60))
        stale.set_due_date_unchecked(utcnow() - timedelta(days=45))
        await repo.save(stale)

        headers = get_auth_headers(test_user)
        res = await client.post("/api/v1/todos/maintenance/cancel-stale?older_than_days=30", headers=headers)
        assert res.json()["data"] == {"cancelled": 1}
