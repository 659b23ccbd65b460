# repositories/memory.py — In-memory reference implementation of every port
# Entities are copied on the way in and out so callers only observe state
# through save(), as with a real database.

import asyncio
import copy
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from todolist.entities import Person, Todo, User, as_utc, utcnow
from todolist.errors import DuplicateEntryError, RecordNotFoundError
from todolist.queries import (
    Filter, QueryOptions, TagCount, TodoFilterCriteria, TodoStatistics,
    TODO_FILTER_FIELDS, TODO_SORT_FIELDS, USER_SORT_FIELDS,
    bind_filters, day_bounds, paginate, sort_items, todo_field_value,
)
from todolist.repositories.base import (
    PersonRepository, TodoQueryRepository, TodoRepository, UserQueryRepository, UserRepository,
)
from todolist.valueobjects import Priority, TodoStatus, UserRole, UserStatus


class InMemoryStore:
    """Shared tables for the in-memory repositories."""

    def __init__(self):
        self.people: Dict[int, Person] = {}
        self.users: Dict[int, User] = {}
        self.todos: Dict[int, Todo] = {}
        self.lock = asyncio.Lock()


def _user_field_value(user: User, name: str) -> Any:
    if name in ("status", "role"):
        return getattr(user, name).value
    return getattr(user, name)


def _select(
    rows: Dict[int, Any],
    predicate: Callable[[Any], bool],
    options: Optional[QueryOptions],
    sort_fields,
    value_of: Callable[[Any, str], Any],
) -> List[Any]:
    options = (options or QueryOptions()).validate(sort_fields)
    matched = [row for row in rows.values() if predicate(row)]
    ordered = sort_items(matched, options.sort_fields(), value_of)
    return [copy.deepcopy(row) for row in paginate(ordered, options)]


# ============================================================
# PEOPLE
# ============================================================

class InMemoryPersonRepository(PersonRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def save(self, person: Person) -> None:
        async with self.store.lock:
            for other in self.store.people.values():
                if other.id == person.id:
                    continue
                if other.email == person.email:
                    raise DuplicateEntryError("person", "email", person.email.value)
                if other.tax_id == person.tax_id:
                    raise DuplicateEntryError("person", "tax_id", person.tax_id.value)
            self.store.people[person.id] = copy.deepcopy(person)

    async def delete(self, person_id: int) -> None:
        async with self.store.lock:
            if self.store.people.pop(person_id, None) is None:
                raise RecordNotFoundError("person", person_id)

    async def find_by_id(self, person_id: int) -> Person:
        person = self.store.people.get(person_id)
        if person is None:
            raise RecordNotFoundError("person", person_id)
        return copy.deepcopy(person)

    async def find_by_email(self, email: str) -> Person:
        email = (email or "").strip().lower()
        for person in self.store.people.values():
            if person.email.value == email:
                return copy.deepcopy(person)
        raise RecordNotFoundError("person", email)

    async def exists_by_email(self, email: str) -> bool:
        email = (email or "").strip().lower()
        return any(p.email.value == email for p in self.store.people.values())

    async def exists_by_tax_id(self, tax_id: str) -> bool:
        return any(p.tax_id.value == tax_id for p in self.store.people.values())


# ============================================================
# USERS
# ============================================================

class InMemoryUserRepository(UserRepository, UserQueryRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def save(self, user: User) -> None:
        async with self.store.lock:
            for other in self.store.users.values():
                if other.id == user.id:
                    continue
                if other.username == user.username:
                    raise DuplicateEntryError("user", "username", user.username)
                if other.person_id == user.person_id:
                    raise DuplicateEntryError("user", "person_id", user.person_id)
            self.store.users[user.id] = copy.deepcopy(user)

    async def delete(self, user_id: int) -> None:
        async with self.store.lock:
            if self.store.users.pop(user_id, None) is None:
                raise RecordNotFoundError("user", user_id)

    async def find_by_id(self, user_id: int) -> User:
        user = self.store.users.get(user_id)
        if user is None:
            raise RecordNotFoundError("user", user_id)
        return copy.deepcopy(user)

    async def _find_one(self, predicate: Callable[[User], bool], key: Any) -> User:
        for user in self.store.users.values():
            if predicate(user):
                return copy.deepcopy(user)
        raise RecordNotFoundError("user", key)

    async def find_by_username(self, username: str) -> User:
        return await self._find_one(lambda u: u.username == username, username)

    async def find_by_person_id(self, person_id: int) -> User:
        return await self._find_one(lambda u: u.person_id == person_id, person_id)

    async def exists_by_username(self, username: str) -> bool:
        return any(u.username == username for u in self.store.users.values())

    async def exists_by_person_id(self, person_id: int) -> bool:
        return any(u.person_id == person_id for u in self.store.users.values())

    # --- queries ---------------------------------------------------

    def _users(self, predicate, options) -> List[User]:
        return _select(self.store.users, predicate, options, USER_SORT_FIELDS, _user_field_value)

    async def find_all(self, options: Optional[QueryOptions] = None) -> List[User]:
        return self._users(lambda u: True, options)

    async def find_by_status(self, status: UserStatus, options: Optional[QueryOptions] = None) -> List[User]:
        return self._users(lambda u: u.status == status, options)

    async def find_by_role(self, role: UserRole, options: Optional[QueryOptions] = None) -> List[User]:
        return self._users(lambda u: u.role == role, options)

    async def find_inactive_users(self, days: int, options: Optional[QueryOptions] = None) -> List[User]:
        cutoff = utcnow() - timedelta(days=days)
        return self._users(
            lambda u: u.status == UserStatus.ACTIVE and (u.last_login_at is None or u.last_login_at < cutoff),
            options,
        )

    async def count(self) -> int:
        return len(self.store.users)

    async def count_by_status(self) -> Dict[UserStatus, int]:
        counts = {status: 0 for status in UserStatus}
        for user in self.store.users.values():
            counts[user.status] += 1
        return counts

    async def count_by_role(self) -> Dict[UserRole, int]:
        counts = {role: 0 for role in UserRole}
        for user in self.store.users.values():
            counts[user.role] += 1
        return counts


# ============================================================
# TODOS
# ============================================================

class InMemoryTodoRepository(TodoRepository, TodoQueryRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _todos(self, predicate: Callable[[Todo], bool], options: Optional[QueryOptions]) -> List[Todo]:
        return _select(self.store.todos, predicate, options, TODO_SORT_FIELDS, todo_field_value)

    async def save(self, todo: Todo) -> None:
        async with self.store.lock:
            self.store.todos[todo.id] = copy.deepcopy(todo)

    async def delete(self, todo_id: int) -> None:
        async with self.store.lock:
            if self.store.todos.pop(todo_id, None) is None:
                raise RecordNotFoundError("todo", todo_id)

    async def find_by_id(self, todo_id: int) -> Todo:
        todo = self.store.todos.get(todo_id)
        if todo is None:
            raise RecordNotFoundError("todo", todo_id)
        return copy.deepcopy(todo)

    async def find_by_user_id(self, user_id: int, options: Optional[QueryOptions] = None) -> List[Todo]:
        return self._todos(lambda t: t.user_id == user_id, options)

    async def delete_by_user_id(self, user_id: int) -> int:
        async with self.store.lock:
            doomed = [tid for tid, t in self.store.todos.items() if t.user_id == user_id]
            for tid in doomed:
                del self.store.todos[tid]
        return len(doomed)

    # --- queries ---------------------------------------------------

    async def find_all(self, options: Optional[QueryOptions] = None) -> List[Todo]:
        return self._todos(lambda t: True, options)

    async def find_by_filters(self, criteria: TodoFilterCriteria, options: Optional[QueryOptions] = None,
                              now: Optional[datetime] = None) -> List[Todo]:
        now = as_utc(now) or utcnow()
        return self._todos(lambda t: criteria.matches(t, now), options)

    async def find_by_user_and_status(self, user_id: int, status: TodoStatus,
                                      options: Optional[QueryOptions] = None) -> List[Todo]:
        status = TodoStatus.parse(status)
        return self._todos(lambda t: t.user_id == user_id and t.status == status, options)

    async def find_by_user_and_priority(self, user_id: int, priority: Priority,
                                        options: Optional[QueryOptions] = None) -> List[Todo]:
        priority = Priority.parse(priority)
        return self._todos(lambda t: t.user_id == user_id and t.priority == priority, options)

    async def find_overdue(self, user_id: int, options: Optional[QueryOptions] = None,
                           now: Optional[datetime] = None) -> List[Todo]:
        now = as_utc(now) or utcnow()
        return self._todos(lambda t: t.user_id == user_id and t.is_overdue(now), options)

    async def find_due_today(self, user_id: int, options: Optional[QueryOptions] = None,
                             now: Optional[datetime] = None) -> List[Todo]:
        start, end = day_bounds(as_utc(now) or utcnow())
        return self._todos(
            lambda t: t.user_id == user_id and t.due_date is not None and start <= t.due_date < end,
            options,
        )

    async def find_due_between(self, user_id: int, start: datetime, end: datetime,
                               options: Optional[QueryOptions] = None) -> List[Todo]:
        start, end = as_utc(start), as_utc(end)
        return self._todos(
            lambda t: t.user_id == user_id and t.due_date is not None and start <= t.due_date <= end,
            options,
        )

    async def find_by_tag(self, user_id: int, tag: str, options: Optional[QueryOptions] = None) -> List[Todo]:
        return self._todos(lambda t: t.user_id == user_id and t.has_tag(tag), options)

    async def find_by_tags(self, user_id: int, tags: List[str], options: Optional[QueryOptions] = None) -> List[Todo]:
        if not tags:
            return []
        return self._todos(lambda t: t.user_id == user_id and all(t.has_tag(tag) for tag in tags), options)

    async def search(self, user_id: int, term: str, options: Optional[QueryOptions] = None) -> List[Todo]:
        criteria = TodoFilterCriteria(user_id=user_id, search_term=term)
        return self._todos(lambda t: criteria.matches(t, utcnow()), options)

    async def count(self, filters: Optional[List[Filter]] = None) -> int:
        bound = bind_filters(filters or [], TODO_FILTER_FIELDS)
        return sum(
            1 for t in self.store.todos.values()
            if all(f.matches(todo_field_value(t, f.field)) for f in bound)
        )

    async def count_by_criteria(self, criteria: TodoFilterCriteria, now: Optional[datetime] = None) -> int:
        now = as_utc(now) or utcnow()
        return sum(1 for t in self.store.todos.values() if criteria.matches(t, now))

    async def count_by_status(self, user_id: int) -> Dict[TodoStatus, int]:
        counts = {status: 0 for status in TodoStatus}
        for todo in self.store.todos.values():
            if todo.user_id == user_id:
                counts[todo.status] += 1
        return counts

    async def count_by_priority(self, user_id: int) -> Dict[Priority, int]:
        counts = {priority: 0 for priority in Priority}
        for todo in self.store.todos.values():
            if todo.user_id == user_id:
                counts[todo.priority] += 1
        return counts

    async def get_statistics(self, user_id: int, now: Optional[datetime] = None) -> TodoStatistics:
        owned = [t for t in self.store.todos.values() if t.user_id == user_id]
        return TodoStatistics.from_todos(owned, as_utc(now) or utcnow())

    async def get_popular_tags(self, user_id: int, limit: int = 10) -> List[TagCount]:
        counter = Counter(
            tag for t in self.store.todos.values() if t.user_id == user_id for tag in t.tags
        )
        ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
        return [TagCount(tag, count) for tag, count in ranked[:limit]]
