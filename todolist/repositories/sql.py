# repositories/sql.py — SQLAlchemy async implementations of the repository ports
# One instance per AsyncSession (i.e. per request). Every write commits so the
# caller reads its own writes.

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, case, delete, desc, distinct, func, not_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from todolist.entities import Person, Todo, User, as_utc, utcnow
from todolist.errors import DuplicateEntryError, RecordNotFoundError, RepositoryError
from todolist.models import PersonModel, TodoModel, TodoTagModel, UserModel
from todolist.queries import (
    Filter, FilterOperator, QueryOptions, TagCount, TodoFilterCriteria, TodoStatistics,
    TODO_FILTER_FIELDS, TODO_SORT_FIELDS, USER_SORT_FIELDS,
    bind_filters, completion_rate, day_bounds,
)
from todolist.repositories.base import (
    PersonRepository, TodoQueryRepository, TodoRepository, UserQueryRepository, UserRepository,
)
from todolist.valueobjects import (
    Email, Password, Priority, TaxID, TodoDescription, TodoStatus, TodoTitle,
    UserRole, UserStatus,
)

logger = logging.getLogger("todolist.repositories")

OPEN_STATUSES = (TodoStatus.PENDING, TodoStatus.IN_PROGRESS)

TODO_COLUMNS = {
    "id": TodoModel.id,
    "user_id": TodoModel.user_id,
    "title": TodoModel.title,
    "description": TodoModel.description,
    "status": TodoModel.status,
    "priority": TodoModel.priority,
    "due_date": TodoModel.due_date,
    "completed_at": TodoModel.completed_at,
    "created_at": TodoModel.created_at,
    "updated_at": TodoModel.updated_at,
}

USER_COLUMNS = {
    "id": UserModel.id,
    "username": UserModel.username,
    "status": UserModel.status,
    "role": UserModel.role,
    "failed_login_attempts": UserModel.failed_login_attempts,
    "last_login_at": UserModel.last_login_at,
    "created_at": UserModel.created_at,
    "updated_at": UserModel.updated_at,
}


# ============================================================
# SHARED HELPERS
# ============================================================

def _apply_options(stmt, options: Optional[QueryOptions], columns: Dict[str, Any], allowed, id_column):
    options = (options or QueryOptions()).validate(allowed)
    for sf in options.sort_fields():
        column = columns[sf.field]
        stmt = stmt.order_by(column.desc().nulls_last() if sf.descending else column.asc().nulls_last())
    stmt = stmt.order_by(id_column.desc())
    if options.offset:
        stmt = stmt.offset(options.offset)
    if options.limit is not None:
        stmt = stmt.limit(options.limit)
    return stmt


def _duplicate_field(error: IntegrityError, candidates: Sequence[str]) -> Optional[str]:
    message = str(error.orig).lower()
    for name in candidates:
        if name in message:
            return name
    return None


async def _commit(db: AsyncSession, entity: str, unique_fields: Sequence[str] = ()) -> None:
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        field = _duplicate_field(e, unique_fields)
        if field is None:
            raise RepositoryError(f"{entity} integrity error: {e.orig}") from e
        raise DuplicateEntryError(entity, field) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to persist {entity}: {e}")
        raise RepositoryError(f"failed to persist {entity}") from e


# ============================================================
# PEOPLE
# ============================================================

def _person_to_entity(row: PersonModel) -> Person:
    return Person(
        id=row.id,
        name=row.name,
        email=Email(row.email),
        phone=row.phone,
        tax_id=TaxID(row.tax_id),
        birth_date=row.birth_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlPersonRepository(PersonRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, person: Person) -> None:
        row = await self.db.get(PersonModel, person.id)
        if row is None:
            row = PersonModel(id=person.id, created_at=person.created_at)
            self.db.add(row)
        row.name = person.name
        row.email = person.email.value
        row.phone = person.phone
        row.tax_id = person.tax_id.value
        row.birth_date = person.birth_date
        row.updated_at = person.updated_at
        await _commit(self.db, "person", ("email", "tax_id"))

    async def delete(self, person_id: int) -> None:
        row = await self.db.get(PersonModel, person_id)
        if row is None:
            raise RecordNotFoundError("person", person_id)
        await self.db.delete(row)
        await _commit(self.db, "person")

    async def find_by_id(self, person_id: int) -> Person:
        row = await self.db.get(PersonModel, person_id)
        if row is None:
            raise RecordNotFoundError("person", person_id)
        return _person_to_entity(row)

    async def find_by_email(self, email: str) -> Person:
        email = (email or "").strip().lower()
        result = await self.db.execute(select(PersonModel).where(PersonModel.email == email))
        row = result.scalar_one_or_none()
        if row is None:
            raise RecordNotFoundError("person", email)
        return _person_to_entity(row)

    async def exists_by_email(self, email: str) -> bool:
        email = (email or "").strip().lower()
        result = await self.db.execute(select(func.count()).select_from(PersonModel).where(PersonModel.email == email))
        return result.scalar_one() > 0

    async def exists_by_tax_id(self, tax_id: str) -> bool:
        result = await self.db.execute(select(func.count()).select_from(PersonModel).where(PersonModel.tax_id == tax_id))
        return result.scalar_one() > 0


# ============================================================
# USERS
# ============================================================

def _user_to_entity(row: UserModel) -> User:
    return User(
        id=row.id,
        person_id=row.person_id,
        username=row.username,
        password=Password.from_hash(row.password_hash),
        status=UserStatus(row.status),
        role=UserRole(row.role),
        failed_login_attempts=row.failed_login_attempts or 0,
        last_login_attempt_at=row.last_login_attempt_at,
        last_login_at=row.last_login_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlUserRepository(UserRepository, UserQueryRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, user: User) -> None:
        row = await self.db.get(UserModel, user.id)
        if row is None:
            row = UserModel(id=user.id, created_at=user.created_at)
            self.db.add(row)
        row.person_id = user.person_id
        row.username = user.username
        row.password_hash = user.password.hash
        row.status = user.status
        row.role = user.role
        row.failed_login_attempts = user.failed_login_attempts
        row.last_login_attempt_at = user.last_login_attempt_at
        row.last_login_at = user.last_login_at
        row.updated_at = user.updated_at
        await _commit(self.db, "user", ("username", "person_id"))

    async def delete(self, user_id: int) -> None:
        row = await self.db.get(UserModel, user_id)
        if row is None:
            raise RecordNotFoundError("user", user_id)
        await self.db.delete(row)
        await _commit(self.db, "user")

    async def find_by_id(self, user_id: int) -> User:
        row = await self.db.get(UserModel, user_id)
        if row is None:
            raise RecordNotFoundError("user", user_id)
        return _user_to_entity(row)

    async def _find_one(self, condition, key) -> User:
        result = await self.db.execute(select(UserModel).where(condition))
        row = result.scalar_one_or_none()
        if row is None:
            raise RecordNotFoundError("user", key)
        return _user_to_entity(row)

    async def find_by_username(self, username: str) -> User:
        return await self._find_one(UserModel.username == username, username)

    async def find_by_person_id(self, person_id: int) -> User:
        return await self._find_one(UserModel.person_id == person_id, person_id)

    async def _exists(self, condition) -> bool:
        result = await self.db.execute(select(func.count()).select_from(UserModel).where(condition))
        return result.scalar_one() > 0

    async def exists_by_username(self, username: str) -> bool:
        return await self._exists(UserModel.username == username)

    async def exists_by_person_id(self, person_id: int) -> bool:
        return await self._exists(UserModel.person_id == person_id)

    # --- queries ---------------------------------------------------

    async def _list(self, conditions, options: Optional[QueryOptions]) -> List[User]:
        stmt = select(UserModel).where(*conditions)
        stmt = _apply_options(stmt, options, USER_COLUMNS, USER_SORT_FIELDS, UserModel.id)
        result = await self.db.execute(stmt)
        return [_user_to_entity(row) for row in result.scalars().all()]

    async def find_all(self, options: Optional[QueryOptions] = None) -> List[User]:
        return await self._list([], options)

    async def find_by_status(self, status: UserStatus, options: Optional[QueryOptions] = None) -> List[User]:
        return await self._list([UserModel.status == UserStatus.parse(status)], options)

    async def find_by_role(self, role: UserRole, options: Optional[QueryOptions] = None) -> List[User]:
        return await self._list([UserModel.role == UserRole.parse(role)], options)

    async def find_inactive_users(self, days: int, options: Optional[QueryOptions] = None) -> List[User]:
        cutoff = utcnow() - timedelta(days=days)
        return await self._list(
            [
                UserModel.status == UserStatus.ACTIVE,
                or_(UserModel.last_login_at.is_(None), UserModel.last_login_at < cutoff),
            ],
            options,
        )

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(UserModel))
        return result.scalar_one()

    async def count_by_status(self) -> Dict[UserStatus, int]:
        counts = {status: 0 for status in UserStatus}
        result = await self.db.execute(select(UserModel.status, func.count()).group_by(UserModel.status))
        for status, total in result.all():
            counts[UserStatus(status)] = total
        return counts

    async def count_by_role(self) -> Dict[UserRole, int]:
        counts = {role: 0 for role in UserRole}
        result = await self.db.execute(select(UserModel.role, func.count()).group_by(UserModel.role))
        for role, total in result.all():
            counts[UserRole(role)] = total
        return counts


# ============================================================
# TODOS
# ============================================================

def _todo_to_entity(row: TodoModel) -> Todo:
    return Todo(
        id=row.id,
        user_id=row.user_id,
        title=TodoTitle(row.title),
        description=TodoDescription(row.description or ""),
        priority=Priority(row.priority),
        status=TodoStatus(row.status),
        due_date=row.due_date,
        completed_at=row.completed_at,
        tags=[t.tag for t in sorted(row.tags, key=lambda t: t.position)],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _filter_value(field: str, value: Any) -> Any:
    if field == "status":
        if isinstance(value, tuple):
            return tuple(TodoStatus.parse(v) for v in value)
        return TodoStatus.parse(value)
    return value


def _filter_clause(f: Filter):
    column = TODO_COLUMNS[f.field]
    op = f.operator
    value = _filter_value(f.field, f.value)
    if op == FilterOperator.EQ:
        return column == value
    if op == FilterOperator.NE:
        return column != value
    if op == FilterOperator.GT:
        return column > value
    if op == FilterOperator.LT:
        return column < value
    if op == FilterOperator.GTE:
        return column >= value
    if op == FilterOperator.LTE:
        return column <= value
    if op == FilterOperator.LIKE:
        return func.lower(column).contains(str(f.value).lower(), autoescape=True)
    if op == FilterOperator.IN:
        return column.in_(value)
    if op == FilterOperator.NOT_IN:
        return column.not_in(value)
    if op == FilterOperator.BETWEEN:
        return column.between(value[0], value[1])
    if op == FilterOperator.REGEX:
        return column.regexp_match(str(f.value))
    if op == FilterOperator.IS_NULL:
        return column.is_(None)
    if op == FilterOperator.IS_NOT_NULL:
        return column.is_not(None)
    raise RepositoryError(f"unhandled filter operator: {op}")


def _overdue_condition(now: datetime):
    return and_(
        TodoModel.due_date.is_not(None),
        TodoModel.due_date < now,
        TodoModel.status.in_(OPEN_STATUSES),
    )


def _search_condition(term: str):
    term = term.lower()
    return or_(
        func.lower(TodoModel.title).contains(term, autoescape=True),
        func.lower(TodoModel.description).contains(term, autoescape=True),
    )


def _criteria_conditions(criteria: TodoFilterCriteria, now: datetime) -> list:
    conditions = []
    if criteria.has_user_filter():
        conditions.append(TodoModel.user_id == criteria.user_id)
    if criteria.has_status_filter():
        conditions.append(TodoModel.status.in_(criteria.statuses))
    if criteria.has_priority_filter():
        conditions.append(TodoModel.priority.in_([int(p) for p in criteria.priorities]))
    if criteria.has_tag_filter():
        tagged = select(TodoTagModel.todo_id).where(TodoTagModel.tag.in_(criteria.tags))
        conditions.append(TodoModel.id.in_(tagged))
    if criteria.is_overdue is True:
        conditions.append(_overdue_condition(now))
    elif criteria.is_overdue is False:
        conditions.append(not_(_overdue_condition(now)))
    if criteria.due_date_from is not None:
        conditions.append(TodoModel.due_date >= criteria.due_date_from)
    if criteria.due_date_to is not None:
        conditions.append(TodoModel.due_date <= criteria.due_date_to)
    if criteria.created_after is not None:
        conditions.append(TodoModel.created_at >= criteria.created_after)
    if criteria.has_search_term():
        conditions.append(_search_condition(criteria.search_term))
    conditions.extend(_filter_clause(f) for f in criteria.filters)
    return conditions


class SqlTodoRepository(TodoRepository, TodoQueryRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _list(self, conditions, options: Optional[QueryOptions]) -> List[Todo]:
        stmt = select(TodoModel).where(*conditions)
        stmt = _apply_options(stmt, options, TODO_COLUMNS, TODO_SORT_FIELDS, TodoModel.id)
        result = await self.db.execute(stmt)
        return [_todo_to_entity(row) for row in result.scalars().all()]

    async def _count(self, conditions) -> int:
        result = await self.db.execute(select(func.count()).select_from(TodoModel).where(*conditions))
        return result.scalar_one()

    # --- commands --------------------------------------------------

    async def save(self, todo: Todo) -> None:
        row = await self.db.get(TodoModel, todo.id)
        if row is None:
            row = TodoModel(id=todo.id, created_at=todo.created_at)
            self.db.add(row)
        row.user_id = todo.user_id
        row.title = todo.title.value
        row.description = todo.description.value
        row.status = todo.status
        row.priority = int(todo.priority)
        row.due_date = todo.due_date
        row.completed_at = todo.completed_at
        row.updated_at = todo.updated_at

        existing = {t.tag: t for t in row.tags}
        synced = []
        for position, tag in enumerate(todo.tags):
            tag_row = existing.get(tag) or TodoTagModel(tag=tag)
            tag_row.position = position
            synced.append(tag_row)
        row.tags = synced
        await _commit(self.db, "todo")

    async def delete(self, todo_id: int) -> None:
        row = await self.db.get(TodoModel, todo_id)
        if row is None:
            raise RecordNotFoundError("todo", todo_id)
        await self.db.delete(row)
        await _commit(self.db, "todo")

    async def find_by_id(self, todo_id: int) -> Todo:
        row = await self.db.get(TodoModel, todo_id)
        if row is None:
            raise RecordNotFoundError("todo", todo_id)
        return _todo_to_entity(row)

    async def find_by_user_id(self, user_id: int, options: Optional[QueryOptions] = None) -> List[Todo]:
        return await self._list([TodoModel.user_id == user_id], options)

    async def delete_by_user_id(self, user_id: int) -> int:
        owned = select(TodoModel.id).where(TodoModel.user_id == user_id)
        await self.db.execute(delete(TodoTagModel).where(TodoTagModel.todo_id.in_(owned)))
        result = await self.db.execute(delete(TodoModel).where(TodoModel.user_id == user_id))
        await _commit(self.db, "todo")
        # drop stale identity-map entries for the removed rows
        self.db.expunge_all()
        return result.rowcount or 0

    # --- queries ---------------------------------------------------

    async def find_all(self, options: Optional[QueryOptions] = None) -> List[Todo]:
        return await self._list([], options)

    async def find_by_filters(self, criteria: TodoFilterCriteria, options: Optional[QueryOptions] = None,
                              now: Optional[datetime] = None) -> List[Todo]:
        return await self._list(_criteria_conditions(criteria, as_utc(now) or utcnow()), options)

    async def find_by_user_and_status(self, user_id: int, status: TodoStatus,
                                      options: Optional[QueryOptions] = None) -> List[Todo]:
        return await self._list(
            [TodoModel.user_id == user_id, TodoModel.status == TodoStatus.parse(status)], options
        )

    async def find_by_user_and_priority(self, user_id: int, priority: Priority,
                                        options: Optional[QueryOptions] = None) -> List[Todo]:
        return await self._list(
            [TodoModel.user_id == user_id, TodoModel.priority == int(Priority.parse(priority))], options
        )

    async def find_overdue(self, user_id: int, options: Optional[QueryOptions] = None,
                           now: Optional[datetime] = None) -> List[Todo]:
        return await self._list(
            [TodoModel.user_id == user_id, _overdue_condition(as_utc(now) or utcnow())], options
        )

    async def find_due_today(self, user_id: int, options: Optional[QueryOptions] = None,
                             now: Optional[datetime] = None) -> List[Todo]:
        start, end = day_bounds(as_utc(now) or utcnow())
        return await self._list(
            [TodoModel.user_id == user_id, TodoModel.due_date >= start, TodoModel.due_date < end], options
        )

    async def find_due_between(self, user_id: int, start: datetime, end: datetime,
                               options: Optional[QueryOptions] = None) -> List[Todo]:
        return await self._list(
            [TodoModel.user_id == user_id, TodoModel.due_date.between(as_utc(start), as_utc(end))], options
        )

    async def find_by_tag(self, user_id: int, tag: str, options: Optional[QueryOptions] = None) -> List[Todo]:
        tagged = select(TodoTagModel.todo_id).where(TodoTagModel.tag == tag.strip())
        return await self._list([TodoModel.user_id == user_id, TodoModel.id.in_(tagged)], options)

    async def find_by_tags(self, user_id: int, tags: List[str], options: Optional[QueryOptions] = None) -> List[Todo]:
        wanted = {t.strip() for t in tags if t and t.strip()}
        if not wanted:
            return []
        tagged_with_all = (
            select(TodoTagModel.todo_id)
            .where(TodoTagModel.tag.in_(wanted))
            .group_by(TodoTagModel.todo_id)
            .having(func.count(distinct(TodoTagModel.tag)) == len(wanted))
        )
        return await self._list([TodoModel.user_id == user_id, TodoModel.id.in_(tagged_with_all)], options)

    async def search(self, user_id: int, term: str, options: Optional[QueryOptions] = None) -> List[Todo]:
        conditions = [TodoModel.user_id == user_id]
        if term and term.strip():
            conditions.append(_search_condition(term.strip()))
        return await self._list(conditions, options)

    # --- aggregations ----------------------------------------------

    async def count(self, filters: Optional[List[Filter]] = None) -> int:
        bound = bind_filters(filters or [], TODO_FILTER_FIELDS)
        return await self._count([_filter_clause(f) for f in bound])

    async def count_by_criteria(self, criteria: TodoFilterCriteria, now: Optional[datetime] = None) -> int:
        return await self._count(_criteria_conditions(criteria, as_utc(now) or utcnow()))

    async def count_by_status(self, user_id: int) -> Dict[TodoStatus, int]:
        counts = {status: 0 for status in TodoStatus}
        result = await self.db.execute(
            select(TodoModel.status, func.count())
            .where(TodoModel.user_id == user_id)
            .group_by(TodoModel.status)
        )
        for status, total in result.all():
            counts[TodoStatus(status)] = total
        return counts

    async def count_by_priority(self, user_id: int) -> Dict[Priority, int]:
        counts = {priority: 0 for priority in Priority}
        result = await self.db.execute(
            select(TodoModel.priority, func.count())
            .where(TodoModel.user_id == user_id)
            .group_by(TodoModel.priority)
        )
        for priority, total in result.all():
            counts[Priority(priority)] = total
        return counts

    async def get_statistics(self, user_id: int, now: Optional[datetime] = None) -> TodoStatistics:
        now = as_utc(now) or utcnow()
        today, tomorrow = day_bounds(now)
        week_end = today + timedelta(days=7)

        def _tally(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await self.db.execute(
            select(
                func.count(TodoModel.id),
                _tally(_overdue_condition(now)),
                _tally(and_(TodoModel.due_date >= today, TodoModel.due_date < tomorrow)),
                _tally(and_(TodoModel.due_date >= today, TodoModel.due_date < week_end)),
                _tally(and_(TodoModel.completed_at >= today, TodoModel.completed_at < tomorrow)),
            ).where(TodoModel.user_id == user_id)
        )
        total, overdue, due_today, due_this_week, completed_today = result.one()

        by_status = await self.count_by_status(user_id)
        by_priority = await self.count_by_priority(user_id)
        return TodoStatistics(
            total=total,
            by_status={status.value: n for status, n in by_status.items()},
            by_priority={priority.label: n for priority, n in by_priority.items()},
            overdue=int(overdue),
            due_today=int(due_today),
            due_this_week=int(due_this_week),
            completed_today=int(completed_today),
            completion_rate=completion_rate(by_status[TodoStatus.COMPLETED], total),
        )

    async def get_popular_tags(self, user_id: int, limit: int = 10) -> List[TagCount]:
        uses = func.count(TodoTagModel.todo_id).label("uses")
        result = await self.db.execute(
            select(TodoTagModel.tag, uses)
            .join(TodoModel, TodoModel.id == TodoTagModel.todo_id)
            .where(TodoModel.user_id == user_id)
            .group_by(TodoTagModel.tag)
            .order_by(desc("uses"), TodoTagModel.tag.asc())
            .limit(limit)
        )
        return [TagCount(tag, count) for tag, count in result.all()]
