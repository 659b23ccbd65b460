# entities.py — Aggregates (Todo, User, Person) and shared identity helpers
# Entities own their value objects and expose only invariant-preserving methods.

import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

from todolist.errors import (
    ForbiddenError, InvalidTransitionError, ValidationError,
)
from todolist.valueobjects import (
    Date, Email, Password, Priority, TaxID, TodoDescription, TodoStatus,
    TodoTitle, UserRole, UserStatus,
)

# 2024-01-01T00:00:00Z in milliseconds
ID_EPOCH_MS = 1_704_067_200_000
ID_RANDOM_BITS = 22


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def new_id() -> int:
    """Time-ordered 63-bit identifier: milliseconds since ID_EPOCH_MS plus random bits."""
    millis = time.time_ns() // 1_000_000 - ID_EPOCH_MS
    return (millis << ID_RANDOM_BITS) | secrets.randbits(ID_RANDOM_BITS)


class Entity:
    """Identity and timestamps shared by every aggregate."""

    def __init__(
        self,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self._id = id if id is not None else new_id()
        self._created_at = as_utc(created_at) or utcnow()
        self._updated_at = as_utc(updated_at) or self._created_at

    @property
    def id(self) -> int:
        return self._id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    def touch(self, now: Optional[datetime] = None) -> None:
        self._updated_at = as_utc(now) or utcnow()

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (as_utc(now) or utcnow()) - self._created_at

    def is_modified_after(self, moment: datetime) -> bool:
        return self._updated_at > as_utc(moment)

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self._id == other._id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._id))


# ============================================================
# TODO
# ============================================================

def _clean_tag(tag: str) -> str:
    value = (tag or "").strip()
    if not value:
        raise ValidationError("TAG_EMPTY", field="tag")
    return value


class Todo(Entity):
    """A user's task with a guarded status lifecycle and a tag set."""

    def __init__(
        self,
        *,
        user_id: int,
        title: TodoTitle,
        description: TodoDescription,
        priority: Priority,
        status: TodoStatus = TodoStatus.PENDING,
        due_date: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        tags: Iterable[str] = (),
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        super().__init__(id, created_at, updated_at)
        self._user_id = user_id
        self._title = title
        self._description = description
        self._priority = priority
        self._status = status
        self._due_date = as_utc(due_date)
        self._completed_at = as_utc(completed_at)
        # dict keeps insertion order while giving set semantics
        self._tags: Dict[str, None] = dict.fromkeys(tags)

    @classmethod
    def create(
        cls,
        user_id: int,
        title: Union[TodoTitle, str],
        description: Union[TodoDescription, str, None] = None,
        priority: Union[Priority, str, int] = Priority.MEDIUM,
        due_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> "Todo":
        now = as_utc(now) or utcnow()
        if not user_id:
            raise ValidationError("USER_ID_REQUIRED", field="user_id")
        if not isinstance(title, TodoTitle):
            title = TodoTitle(title)
        if not isinstance(description, TodoDescription):
            description = TodoDescription(description or "")
        due_date = as_utc(due_date)
        if due_date is not None and due_date <= now:
            raise ValidationError("DUE_DATE_IN_PAST", field="due_date")
        return cls(
            user_id=user_id,
            title=title,
            description=description,
            priority=Priority.parse(priority),
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )

    # --- accessors -------------------------------------------------

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def title(self) -> TodoTitle:
        return self._title

    @property
    def description(self) -> TodoDescription:
        return self._description

    @property
    def priority(self) -> Priority:
        return self._priority

    @property
    def status(self) -> TodoStatus:
        return self._status

    @property
    def due_date(self) -> Optional[datetime]:
        return self._due_date

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at

    @property
    def tags(self) -> List[str]:
        return list(self._tags)

    def is_owned_by(self, user_id: int) -> bool:
        return self._user_id == user_id

    # --- lifecycle -------------------------------------------------

    def change_status(self, new_status: Union[TodoStatus, str], now: Optional[datetime] = None) -> None:
        new_status = TodoStatus.parse(new_status)
        if not self._status.can_transition_to(new_status):
            raise InvalidTransitionError(
                message=f"invalid status transition from {self._status.value} to {new_status.value}",
                details={"from": self._status.value, "to": new_status.value},
            )
        now = as_utc(now) or utcnow()
        previous = self._status
        self._status = new_status
        if new_status == TodoStatus.COMPLETED:
            self._completed_at = now
        elif previous == TodoStatus.COMPLETED:
            self._completed_at = None
        self.touch(now)

    def complete(self, now: Optional[datetime] = None) -> None:
        if self._status == TodoStatus.COMPLETED:
            raise InvalidTransitionError("ALREADY_COMPLETED")
        self.change_status(TodoStatus.COMPLETED, now)

    def start_progress(self, now: Optional[datetime] = None) -> None:
        self.change_status(TodoStatus.IN_PROGRESS, now)

    def cancel(self, now: Optional[datetime] = None) -> None:
        self.change_status(TodoStatus.CANCELLED, now)

    def reopen(self, now: Optional[datetime] = None) -> None:
        self.change_status(TodoStatus.PENDING, now)

    # --- field updates ---------------------------------------------

    def update_title(self, title: Union[TodoTitle, str]) -> None:
        self._title = title if isinstance(title, TodoTitle) else TodoTitle(title)
        self.touch()

    def update_description(self, description: Union[TodoDescription, str]) -> None:
        if not isinstance(description, TodoDescription):
            description = TodoDescription(description)
        self._description = description
        self.touch()

    def update_priority(self, priority: Union[Priority, str, int]) -> None:
        self._priority = Priority.parse(priority)
        self.touch()

    def update_due_date(self, due_date: Optional[datetime], now: Optional[datetime] = None) -> None:
        """Set or clear the due date. Dates before now are rejected."""
        due_date = as_utc(due_date)
        if due_date is not None and due_date < (as_utc(now) or utcnow()):
            raise ValidationError("DUE_DATE_IN_PAST", field="due_date")
        self._due_date = due_date
        self.touch()

    def set_due_date_unchecked(self, due_date: Optional[datetime]) -> None:
        """Administrative/seeding path: no past-date check."""
        self._due_date = as_utc(due_date)
        self.touch()

    # --- tags ------------------------------------------------------

    def add_tag(self, tag: str) -> None:
        tag = _clean_tag(tag)
        if tag in self._tags:
            return
        self._tags[tag] = None
        self.touch()

    def remove_tag(self, tag: str) -> None:
        tag = (tag or "").strip()
        if tag not in self._tags:
            return
        del self._tags[tag]
        self.touch()

    def has_tag(self, tag: str) -> bool:
        return (tag or "").strip() in self._tags

    # --- derived ---------------------------------------------------

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self._due_date is None or not self._status.is_open:
            return False
        return self._due_date < (as_utc(now) or utcnow())

    def days_until_due(self, now: Optional[datetime] = None) -> Optional[int]:
        if self._due_date is None:
            return None
        remaining = self._due_date - (as_utc(now) or utcnow())
        return int(remaining.total_seconds() / 86400)

    def __repr__(self) -> str:
        return f"Todo(id={self.id}, user_id={self._user_id}, status={self._status.value}, title={self._title.value!r})"


# ============================================================
# USER
# ============================================================

class User(Entity):
    """Login identity bound one-to-one to a Person."""

    def __init__(
        self,
        *,
        person_id: int,
        username: str,
        password: Password,
        status: UserStatus = UserStatus.ACTIVE,
        role: UserRole = UserRole.USER,
        failed_login_attempts: int = 0,
        last_login_attempt_at: Optional[datetime] = None,
        last_login_at: Optional[datetime] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        super().__init__(id, created_at, updated_at)
        self._person_id = person_id
        self._username = username
        self._password = password
        self._status = status
        self._role = role
        self._failed_login_attempts = failed_login_attempts
        self._last_login_attempt_at = as_utc(last_login_attempt_at)
        self._last_login_at = as_utc(last_login_at)

    @classmethod
    def create(cls, person_id: int, username: str, password: Password, now: Optional[datetime] = None) -> "User":
        if not person_id:
            raise ValidationError("PERSON_ID_REQUIRED", field="person_id")
        username = (username or "").strip()
        if not username:
            raise ValidationError("USERNAME_EMPTY", field="username")
        now = as_utc(now) or utcnow()
        return cls(person_id=person_id, username=username, password=password, created_at=now, updated_at=now)

    @property
    def person_id(self) -> int:
        return self._person_id

    @property
    def username(self) -> str:
        return self._username

    @property
    def password(self) -> Password:
        return self._password

    @property
    def status(self) -> UserStatus:
        return self._status

    @property
    def role(self) -> UserRole:
        return self._role

    @property
    def failed_login_attempts(self) -> int:
        return self._failed_login_attempts

    @property
    def last_login_attempt_at(self) -> Optional[datetime]:
        return self._last_login_attempt_at

    @property
    def last_login_at(self) -> Optional[datetime]:
        return self._last_login_at

    @property
    def is_active(self) -> bool:
        return self._status == UserStatus.ACTIVE

    def can_perform_action(self) -> None:
        if not self.is_active:
            raise ForbiddenError("USER_NOT_ACTIVE")

    def has_permission(self, permission: str) -> bool:
        return self.is_active and self._role.has_permission(permission)

    def change_password(self, password: Password) -> None:
        self._password = password
        self.touch()

    def change_role(self, role: Union[UserRole, str]) -> None:
        self._role = UserRole.parse(role)
        self.touch()

    def activate(self) -> None:
        self._status = UserStatus.ACTIVE
        self._failed_login_attempts = 0
        self.touch()

    def deactivate(self) -> None:
        self._status = UserStatus.INACTIVE
        self.touch()

    def block(self) -> None:
        self._status = UserStatus.BLOCKED
        self.touch()

    # Login bookkeeping does not bump updated_at, which tracks profile and
    # password changes.
    def record_failed_login(self, now: Optional[datetime] = None) -> None:
        self._failed_login_attempts += 1
        self._last_login_attempt_at = as_utc(now) or utcnow()

    def record_successful_login(self, now: Optional[datetime] = None) -> None:
        now = as_utc(now) or utcnow()
        self._failed_login_attempts = 0
        self._last_login_attempt_at = now
        self._last_login_at = now

    def __repr__(self) -> str:
        return f"User(id={self.id}, username={self._username!r}, status={self._status.value}, role={self._role.value})"


# ============================================================
# PERSON
# ============================================================

def _required(value: str, code: str, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(code, field=field)
    return value


class Person(Entity):
    """Civil identity of a registered user."""

    def __init__(
        self,
        *,
        name: str,
        email: Email,
        phone: str,
        tax_id: TaxID,
        birth_date: Optional[Date] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        super().__init__(id, created_at, updated_at)
        self._name = name
        self._email = email
        self._phone = phone
        self._tax_id = tax_id
        self._birth_date = birth_date

    @classmethod
    def create(
        cls,
        name: str,
        email: Union[Email, str],
        phone: str,
        tax_id: Union[TaxID, str],
        birth_date: Union[Date, str, None] = None,
    ) -> "Person":
        return cls(
            name=_required(name, "NAME_EMPTY", "name"),
            email=email if isinstance(email, Email) else Email(email),
            phone=_required(phone, "PHONE_EMPTY", "phone"),
            tax_id=tax_id if isinstance(tax_id, TaxID) else TaxID(tax_id),
            birth_date=Date.parse(birth_date) if isinstance(birth_date, str) else birth_date,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def email(self) -> Email:
        return self._email

    @property
    def phone(self) -> str:
        return self._phone

    @property
    def tax_id(self) -> TaxID:
        return self._tax_id

    @property
    def birth_date(self) -> Optional[Date]:
        return self._birth_date

    def update_name(self, name: str) -> None:
        self._name = _required(name, "NAME_EMPTY", "name")
        self.touch()

    def update_email(self, email: Union[Email, str]) -> None:
        self._email = email if isinstance(email, Email) else Email(email)
        self.touch()

    def update_phone(self, phone: str) -> None:
        self._phone = _required(phone, "PHONE_EMPTY", "phone")
        self.touch()

    def update_birth_date(self, birth_date: Union[Date, str, None]) -> None:
        self._birth_date = Date.parse(birth_date) if isinstance(birth_date, str) else birth_date
        self.touch()

    def age_in_years(self, today: Optional[Date] = None) -> Optional[int]:
        if self._birth_date is None:
            return None
        today = (today or Date.today()).value
        born = self._birth_date.value
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    def __repr__(self) -> str:
        return f"Person(id={self.id}, name={self._name!r}, email={self._email.value!r})"
