# queries.py — Query contract shared by the todo/user query repositories
# Filters use a closed operator set; each repository adapter interprets
# every operator explicitly (SQL expression or in-memory predicate).

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from todolist.entities import Todo, as_utc
from todolist.errors import ValidationError
from todolist.valueobjects import Date, Priority, TodoStatus

DEFAULT_SORT_FIELD = "created_at"


# ============================================================
# FILTER OPERATORS
# ============================================================

class FilterOperator(str, PyEnum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    LIKE = "like"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    REGEX = "regex"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


OPERATOR_ALIASES = {
    "eq": FilterOperator.EQ,
    "==": FilterOperator.EQ,
    "equal": FilterOperator.EQ,
    "equals": FilterOperator.EQ,
    "ne": FilterOperator.NE,
    "neq": FilterOperator.NE,
    "<>": FilterOperator.NE,
    "not_equal": FilterOperator.NE,
    "gt": FilterOperator.GT,
    "lt": FilterOperator.LT,
    "gte": FilterOperator.GTE,
    "ge": FilterOperator.GTE,
    "lte": FilterOperator.LTE,
    "le": FilterOperator.LTE,
    "contains": FilterOperator.LIKE,
    "notin": FilterOperator.NOT_IN,
    "nin": FilterOperator.NOT_IN,
    "regexp": FilterOperator.REGEX,
    "isnull": FilterOperator.IS_NULL,
    "null": FilterOperator.IS_NULL,
    "isnotnull": FilterOperator.IS_NOT_NULL,
    "notnull": FilterOperator.IS_NOT_NULL,
    "not_null": FilterOperator.IS_NOT_NULL,
}

_VALUELESS = (FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL)
_MULTI_VALUE = (FilterOperator.IN, FilterOperator.NOT_IN)


def normalize_operator(raw: Any) -> FilterOperator:
    if isinstance(raw, FilterOperator):
        return raw
    text = str(raw or "").strip().lower()
    try:
        return FilterOperator(text)
    except ValueError:
        pass
    if text in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[text]
    raise ValidationError("INVALID_FILTER", f"unsupported filter operator: {raw}", field="filter")


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


@dataclass(frozen=True)
class Filter:
    """One `field <operator> value` condition."""

    field: str
    operator: FilterOperator
    value: Any = None

    def __post_init__(self):
        op = normalize_operator(self.operator)
        object.__setattr__(self, "operator", op)
        if op in _VALUELESS:
            object.__setattr__(self, "value", None)
        elif op in _MULTI_VALUE:
            object.__setattr__(self, "value", tuple(_as_list(self.value)))
        elif op == FilterOperator.BETWEEN:
            bounds = _as_list(self.value)
            if len(bounds) != 2:
                raise ValidationError(
                    "INVALID_FILTER", "between requires exactly two values", field=self.field
                )
            object.__setattr__(self, "value", tuple(bounds))
        elif op == FilterOperator.REGEX:
            try:
                re.compile(str(self.value))
            except re.error as e:
                raise ValidationError("INVALID_FILTER", f"invalid regular expression: {e}", field=self.field) from None

    def coerce(self, converter: Callable[[Any], Any]) -> "Filter":
        """Return a copy whose value(s) went through `converter`."""
        if self.operator in _VALUELESS or self.operator in (FilterOperator.LIKE, FilterOperator.REGEX):
            return self
        try:
            if isinstance(self.value, tuple):
                value = tuple(converter(v) for v in self.value)
            else:
                value = converter(self.value)
        except ValidationError as e:
            raise ValidationError("INVALID_FILTER", e.message, field=self.field) from None
        except (TypeError, ValueError):
            raise ValidationError(
                "INVALID_FILTER", f"invalid value for {self.field}: {self.value}", field=self.field
            ) from None
        return Filter(self.field, self.operator, value)

    def matches(self, actual: Any) -> bool:
        op = self.operator
        if op == FilterOperator.IS_NULL:
            return actual is None
        if op == FilterOperator.IS_NOT_NULL:
            return actual is not None
        if actual is None:
            return False
        return _MATCHERS[op](actual, self.value)


_MATCHERS: Dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQ: lambda a, v: a == v,
    FilterOperator.NE: lambda a, v: a != v,
    FilterOperator.GT: lambda a, v: a > v,
    FilterOperator.LT: lambda a, v: a < v,
    FilterOperator.GTE: lambda a, v: a >= v,
    FilterOperator.LTE: lambda a, v: a <= v,
    FilterOperator.LIKE: lambda a, v: str(v).lower() in str(a).lower(),
    FilterOperator.IN: lambda a, v: a in v,
    FilterOperator.NOT_IN: lambda a, v: a not in v,
    FilterOperator.BETWEEN: lambda a, v: v[0] <= a <= v[1],
    FilterOperator.REGEX: lambda a, v: re.search(str(v), str(a)) is not None,
}


# ============================================================
# FIELD REGISTRIES
# ============================================================

def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    try:
        return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return Date.parse(text).midnight


def _status_value(value: Any) -> str:
    return TodoStatus.parse(value).value


def _priority_value(value: Any) -> int:
    return int(Priority.parse(value))


# field -> converter for filter values
TODO_FILTER_FIELDS: Dict[str, Callable[[Any], Any]] = {
    "id": int,
    "user_id": int,
    "title": str,
    "description": str,
    "status": _status_value,
    "priority": _priority_value,
    "due_date": parse_datetime,
    "completed_at": parse_datetime,
    "created_at": parse_datetime,
    "updated_at": parse_datetime,
}

TODO_SORT_FIELDS = frozenset(TODO_FILTER_FIELDS) - {"description"}

# Global search skips id, password and timestamp columns
TODO_SEARCH_FIELDS = ("title", "description")

USER_SORT_FIELDS = frozenset({
    "id", "username", "status", "role", "failed_login_attempts",
    "last_login_at", "created_at", "updated_at",
})


def todo_field_value(todo: Todo, name: str) -> Any:
    """Comparable value of a todo attribute, matching the filter converters."""
    if name == "title":
        return todo.title.value
    if name == "description":
        return todo.description.value
    if name == "status":
        return todo.status.value
    if name == "priority":
        return int(todo.priority)
    return getattr(todo, name)


def bind_filters(filters: Iterable[Filter], fields: Dict[str, Callable[[Any], Any]]) -> List[Filter]:
    """Reject unknown fields and convert filter values to the field's type."""
    bound = []
    for f in filters:
        if f.field not in fields:
            raise ValidationError("INVALID_FILTER", f"unknown filter field: {f.field}", field=f.field)
        bound.append(f.coerce(fields[f.field]))
    return bound


# ============================================================
# ORDERING & OPTIONS
# ============================================================

@dataclass(frozen=True)
class SortField:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class QueryOptions:
    limit: Optional[int] = None
    offset: int = 0
    order_by: Optional[str] = None
    order_desc: bool = False
    sort: Tuple[SortField, ...] = ()

    def sort_fields(self) -> Tuple[SortField, ...]:
        if self.sort:
            return self.sort
        if self.order_by:
            return (SortField(self.order_by, self.order_desc),)
        return (SortField(DEFAULT_SORT_FIELD, True),)

    def validate(self, allowed: Iterable[str]) -> "QueryOptions":
        allowed = set(allowed)
        for sf in self.sort_fields():
            if sf.field not in allowed:
                raise ValidationError("INVALID_SORT", f"cannot sort by {sf.field}", field="sort")
        if self.limit is not None and self.limit < 0:
            raise ValidationError("INVALID_PAGINATION", "limit cannot be negative", field="limit")
        if self.offset < 0:
            raise ValidationError("INVALID_PAGINATION", "offset cannot be negative", field="offset")
        return self


def sort_items(items: Sequence[Any], sort: Sequence[SortField], value_of: Callable[[Any, str], Any]) -> List[Any]:
    """Stable multi-key sort; None values sort last; ties broken by id descending."""
    result = sorted(items, key=lambda item: item.id, reverse=True)
    for sf in reversed(sort):
        present = [i for i in result if value_of(i, sf.field) is not None]
        missing = [i for i in result if value_of(i, sf.field) is None]
        present.sort(key=lambda i: value_of(i, sf.field), reverse=sf.descending)
        result = present + missing
    return result


def paginate(items: Sequence[Any], options: QueryOptions) -> List[Any]:
    start = options.offset or 0
    if options.limit is None:
        return list(items[start:])
    return list(items[start:start + options.limit])


# ============================================================
# TODO CRITERIA
# ============================================================

def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = Date.parse(now).midnight
    return start, start + timedelta(days=1)


@dataclass
class TodoFilterCriteria:
    """Structured todo query. Tags match any listed tag; generic `filters` all apply."""

    user_id: Optional[int] = None
    statuses: List[TodoStatus] = field(default_factory=list)
    priorities: List[Priority] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    is_overdue: Optional[bool] = None
    due_date_from: Optional[datetime] = None
    due_date_to: Optional[datetime] = None
    created_after: Optional[datetime] = None
    search_term: str = ""
    filters: List[Filter] = field(default_factory=list)

    def __post_init__(self):
        self.statuses = [TodoStatus.parse(s) for s in self.statuses]
        self.priorities = [Priority.parse(p) for p in self.priorities]
        self.tags = [t.strip() for t in self.tags if t and t.strip()]
        self.due_date_from = as_utc(self.due_date_from)
        self.due_date_to = as_utc(self.due_date_to)
        self.created_after = as_utc(self.created_after)
        self.search_term = (self.search_term or "").strip()
        self.filters = bind_filters(self.filters, TODO_FILTER_FIELDS)

    def has_user_filter(self) -> bool:
        return self.user_id is not None

    def has_status_filter(self) -> bool:
        return bool(self.statuses)

    def has_priority_filter(self) -> bool:
        return bool(self.priorities)

    def has_tag_filter(self) -> bool:
        return bool(self.tags)

    def has_due_date_filter(self) -> bool:
        return self.due_date_from is not None or self.due_date_to is not None

    def has_search_term(self) -> bool:
        return bool(self.search_term)

    def matches(self, todo: Todo, now: datetime) -> bool:
        if self.user_id is not None and todo.user_id != self.user_id:
            return False
        if self.statuses and todo.status not in self.statuses:
            return False
        if self.priorities and todo.priority not in self.priorities:
            return False
        if self.tags and not any(todo.has_tag(t) for t in self.tags):
            return False
        if self.is_overdue is not None and todo.is_overdue(now) != self.is_overdue:
            return False
        if self.has_due_date_filter():
            if todo.due_date is None:
                return False
            if self.due_date_from is not None and todo.due_date < self.due_date_from:
                return False
            if self.due_date_to is not None and todo.due_date > self.due_date_to:
                return False
        if self.created_after is not None and todo.created_at < self.created_after:
            return False
        if self.search_term:
            term = self.search_term.lower()
            if term not in todo.title.value.lower() and term not in todo.description.value.lower():
                return False
        return all(f.matches(todo_field_value(todo, f.field)) for f in self.filters)


# ============================================================
# AGGREGATES
# ============================================================

@dataclass(frozen=True)
class TagCount:
    tag: str
    count: int


def completion_rate(completed: int, total: int) -> float:
    return (completed / total) * 100.0 if total else 0.0


@dataclass
class TodoStatistics:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in TodoStatus})
    by_priority: Dict[str, int] = field(default_factory=lambda: {p.label: 0 for p in Priority})
    overdue: int = 0
    due_today: int = 0
    due_this_week: int = 0
    completed_today: int = 0
    completion_rate: float = 0.0

    @classmethod
    def from_todos(cls, todos: Iterable[Todo], now: datetime) -> "TodoStatistics":
        stats = cls()
        today_start, tomorrow = day_bounds(now)
        week_end = today_start + timedelta(days=7)
        for todo in todos:
            stats.total += 1
            stats.by_status[todo.status.value] += 1
            stats.by_priority[todo.priority.label] += 1
            if todo.is_overdue(now):
                stats.overdue += 1
            if todo.due_date is not None:
                if today_start <= todo.due_date < tomorrow:
                    stats.due_today += 1
                if today_start <= todo.due_date < week_end:
                    stats.due_this_week += 1
            if todo.completed_at is not None and today_start <= todo.completed_at < tomorrow:
                stats.completed_today += 1
        stats.completion_rate = completion_rate(stats.by_status[TodoStatus.COMPLETED.value], stats.total)
        return stats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_priority": dict(self.by_priority),
            "overdue": self.overdue,
            "due_today": self.due_today,
            "due_this_week": self.due_this_week,
            "completed_today": self.completed_today,
            "completion_rate": self.completion_rate,
        }
