# tests/test_memory_repositories.py — In-memory reference repositories
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from todolist.entities import Person, Todo, User
from todolist.errors import DuplicateEntryError, RecordNotFoundError, ValidationError
from todolist.queries import Filter, QueryOptions, SortField, TodoFilterCriteria
from todolist.valueobjects import Password, Priority, TodoStatus, UserRole, UserStatus

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
PASSWORD = Password.from_hash("$2b$04$placeholderplaceholderpl")


def todo(user_id=1, title="Write report", priority=Priority.MEDIUM, due_in=None, tags=(), created=NOW):
    item = Todo.create(user_id, title, priority=priority, now=created)
    if due_in is not None:
        item.set_due_date_unchecked(NOW + due_in)
    for tag in tags:
        item.add_tag(tag)
    return item


@pytest.mark.asyncio
class TestPersonRepository:
    async def test_save_and_find(self, person_repo):
        person = Person.create("Alice", "alice@todolist.dev", "123", "529.982.247-25")
        await person_repo.save(person)
        assert (await person_repo.find_by_id(person.id)).name == "Alice"
        assert (await person_repo.find_by_email(" ALICE@todolist.dev")).id == person.id
        assert await person_repo.exists_by_tax_id("52998224725")

    async def test_unique_email_and_tax_id(self, person_repo):
        await person_repo.save(Person.create("Alice", "alice@todolist.dev", "123", "529.982.247-25"))
        with pytest.raises(DuplicateEntryError) as exc:
            await person_repo.save(Person.create("Eve", "alice@todolist.dev", "123", "111.444.777-35"))
        assert exc.value.field == "email"
        with pytest.raises(DuplicateEntryError) as exc:
            await person_repo.save(Person.create("Eve", "eve@todolist.dev", "123", "529.982.247-25"))
        assert exc.value.field == "tax_id"

    async def test_missing(self, person_repo):
        with pytest.raises(RecordNotFoundError):
            await person_repo.find_by_id(1)
        with pytest.raises(RecordNotFoundError):
            await person_repo.delete(1)


@pytest.mark.asyncio
class TestUserRepository:
    async def test_returns_copies(self, user_repo):
        user = User.create(10, "alice", PASSWORD)
        await user_repo.save(user)
        loaded = await user_repo.find_by_username("alice")
        loaded.block()
        assert (await user_repo.find_by_id(user.id)).is_active

    async def test_unique_username_and_person(self, user_repo):
        await user_repo.save(User.create(10, "alice", PASSWORD))
        with pytest.raises(DuplicateEntryError) as exc:
            await user_repo.save(User.create(11, "alice", PASSWORD))
        assert exc.value.field == "username"
        with pytest.raises(DuplicateEntryError) as exc:
            await user_repo.save(User.create(10, "bob", PASSWORD))
        assert exc.value.field == "person_id"

    async def test_queries(self, user_repo):
        alice = User.create(10, "alice", PASSWORD)
        bob = User.create(11, "bob", PASSWORD)
        bob.block()
        root = User.create(12, "root", PASSWORD)
        root.change_role(UserRole.ADMIN)
        root.record_successful_login()
        for user in (alice, bob, root):
            await user_repo.save(user)

        assert [u.username for u in await user_repo.find_by_status(UserStatus.BLOCKED)] == ["bob"]
        assert [u.username for u in await user_repo.find_by_role(UserRole.ADMIN)] == ["root"]
        assert [u.username for u in await user_repo.find_inactive_users(30)] == ["alice"]
        assert await user_repo.count() == 3
        assert (await user_repo.count_by_status())[UserStatus.ACTIVE] == 2
        assert (await user_repo.count_by_role())[UserRole.USER] == 2

        ordered = await user_repo.find_all(QueryOptions(order_by="username"))
        assert [u.username for u in ordered] == ["alice", "bob", "root"]
        page = await user_repo.find_all(QueryOptions(order_by="username", limit=1, offset=1))
        assert [u.username for u in page] == ["bob"]


@pytest.mark.asyncio
class TestTodoRepository:
    async def test_save_find_delete(self, todo_repo):
        item = todo(tags=["work"])
        await todo_repo.save(item)
        loaded = await todo_repo.find_by_id(item.id)
        assert loaded.tags == ["work"]
        await todo_repo.delete(item.id)
        with pytest.raises(RecordNotFoundError):
            await todo_repo.find_by_id(item.id)

    async def test_default_order_is_newest_first(self, todo_repo):
        older = todo(title="Older", created=NOW - timedelta(days=1))
        newer = todo(title="Newer")
        await todo_repo.save(older)
        await todo_repo.save(newer)
        assert [t.title.value for t in await todo_repo.find_by_user_id(1)] == ["Newer", "Older"]

    async def test_sort_puts_missing_due_dates_last(self, todo_repo):
        await todo_repo.save(todo(title="No due date"))
        await todo_repo.save(todo(title="Later", due_in=timedelta(days=5)))
        await todo_repo.save(todo(title="Sooner", due_in=timedelta(days=1)))
        options = QueryOptions(sort=(SortField("due_date", False),))
        assert [t.title.value for t in await todo_repo.find_all(options)] == ["Sooner", "Later", "No due date"]

    async def test_rejects_unknown_sort_field(self, todo_repo):
        with pytest.raises(ValidationError):
            await todo_repo.find_all(QueryOptions(order_by="password"))

    async def test_delete_by_user(self, todo_repo):
        await todo_repo.save(todo(user_id=1))
        await todo_repo.save(todo(user_id=1))
        await todo_repo.save(todo(user_id=2))
        assert await todo_repo.delete_by_user_id(1) == 2
        assert await todo_repo.count() == 1


@pytest.mark.asyncio
class TestTodoQueries:
    @pytest_asyncio.fixture
    async def seeded(self, todo_repo):
        items = {
            "report": todo(title="Write report", priority=Priority.HIGH, due_in=timedelta(days=-1), tags=["work"]),
            "groceries": todo(title="Buy groceries", priority=Priority.LOW, due_in=timedelta(hours=3),
                              tags=["home", "errand"]),
            "taxes": todo(title="File taxes", priority=Priority.CRITICAL, due_in=timedelta(days=10),
                          tags=["home", "work"]),
            "someone_else": todo(user_id=2, title="Not mine", tags=["work"]),
        }
        items["taxes"].complete(NOW)
        for item in items.values():
            await todo_repo.save(item)
        return items

    async def test_status_and_priority(self, todo_repo, seeded):
        done = await todo_repo.find_by_user_and_status(1, TodoStatus.COMPLETED)
        assert [t.id for t in done] == [seeded["taxes"].id]
        low = await todo_repo.find_by_user_and_priority(1, Priority.LOW)
        assert [t.id for t in low] == [seeded["groceries"].id]

    async def test_due_queries(self, todo_repo, seeded):
        assert [t.id for t in await todo_repo.find_overdue(1, now=NOW)] == [seeded["report"].id]
        assert [t.id for t in await todo_repo.find_due_today(1, now=NOW)] == [seeded["groceries"].id]
        between = await todo_repo.find_due_between(1, NOW - timedelta(days=1), NOW + timedelta(hours=3))
        assert {t.id for t in between} == {seeded["report"].id, seeded["groceries"].id}

    async def test_tags(self, todo_repo, seeded):
        assert {t.id for t in await todo_repo.find_by_tag(1, "work")} == {seeded["report"].id, seeded["taxes"].id}
        assert [t.id for t in await todo_repo.find_by_tags(1, ["home", "work"])] == [seeded["taxes"].id]
        assert await todo_repo.find_by_tags(1, []) == []

    async def test_search(self, todo_repo, seeded):
        assert [t.id for t in await todo_repo.search(1, "REPORT")] == [seeded["report"].id]

    async def test_filter_criteria(self, todo_repo, seeded):
        criteria = TodoFilterCriteria(user_id=1, statuses=["pending"], tags=["home", "work"])
        found = await todo_repo.find_by_filters(criteria, now=NOW)
        assert {t.id for t in found} == {seeded["report"].id, seeded["groceries"].id}
        assert await todo_repo.count_by_criteria(criteria, now=NOW) == 2

        overdue = TodoFilterCriteria(user_id=1, is_overdue=True)
        assert await todo_repo.count_by_criteria(overdue, now=NOW) == 1

        generic = TodoFilterCriteria(user_id=1, filters=[Filter("priority", ">=", "high")])
        assert await todo_repo.count_by_criteria(generic, now=NOW) == 2

    async def test_counts(self, todo_repo, seeded):
        assert await todo_repo.count() == 4
        assert await todo_repo.count([Filter("user_id", "=", 2)]) == 1
        assert (await todo_repo.count_by_status(1))[TodoStatus.PENDING] == 2
        assert (await todo_repo.count_by_priority(1))[Priority.CRITICAL] == 1

    async def test_statistics(self, todo_repo, seeded):
        stats = await todo_repo.get_statistics(1, now=NOW)
        assert stats.total == 3
        assert stats.by_status["completed"] == 1
        assert stats.by_priority["high"] == 1
        assert stats.overdue == 1
        assert stats.due_today == 1
        assert stats.due_this_week == 1
        assert stats.completed_today == 1
        assert stats.completion_rate == pytest.approx(100 / 3)

    async def test_popular_tags(self, todo_repo, seeded):
        tags = await todo_repo.get_popular_tags(1)
        assert [(t.tag, t.count) for t in tags] == [("home", 2), ("work", 2), ("errand", 1)]
        assert len(await todo_repo.get_popular_tags(1, limit=1)) == 1
