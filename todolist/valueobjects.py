# valueobjects.py — Immutable domain values validated at construction
# Each value object normalises its input and raises ValidationError on failure.
# Values compare by value (frozen dataclasses / enums).

import re
import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum as PyEnum, IntEnum
from typing import FrozenSet, Union

import bcrypt
from email_validator import validate_email, EmailNotValidError

from todolist import config
from todolist.errors import ValidationError

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_BYTES = 72


# ============================================================
# TODO VALUES
# ============================================================

@dataclass(frozen=True)
class TodoTitle:
    value: str

    def __post_init__(self):
        value = (self.value or "").strip()
        if not value:
            raise ValidationError("TITLE_EMPTY", field="title")
        if len(value) < TITLE_MIN_LENGTH:
            raise ValidationError("TITLE_TOO_SHORT", field="title")
        if len(value) > TITLE_MAX_LENGTH:
            raise ValidationError("TITLE_TOO_LONG", field="title")
        object.__setattr__(self, "value", value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TodoDescription:
    value: str = ""

    def __post_init__(self):
        value = (self.value or "").strip()
        if len(value) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError("DESCRIPTION_TOO_LONG", field="description")
        object.__setattr__(self, "value", value)

    @property
    def is_empty(self) -> bool:
        return not self.value

    def __str__(self) -> str:
        return self.value


class TodoStatus(str, PyEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union[str, "TodoStatus"]) -> "TodoStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                "INVALID_STATUS", f"invalid todo status: {value}", field="status"
            ) from None

    def can_transition_to(self, target: "TodoStatus") -> bool:
        return target in STATUS_TRANSITIONS[self]

    @property
    def is_final(self) -> bool:
        return self in (TodoStatus.COMPLETED, TodoStatus.CANCELLED)

    @property
    def is_open(self) -> bool:
        return self in (TodoStatus.PENDING, TodoStatus.IN_PROGRESS)


STATUS_TRANSITIONS = {
    TodoStatus.PENDING: frozenset({TodoStatus.IN_PROGRESS, TodoStatus.COMPLETED, TodoStatus.CANCELLED}),
    TodoStatus.IN_PROGRESS: frozenset({TodoStatus.COMPLETED, TodoStatus.CANCELLED, TodoStatus.PENDING}),
    TodoStatus.COMPLETED: frozenset({TodoStatus.PENDING}),
    TodoStatus.CANCELLED: frozenset({TodoStatus.PENDING}),
}


class Priority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Union[str, int, "Priority"]) -> "Priority":
        """Accept a priority name ("high") or its level (3 / "3")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            if value in cls._value2member_map_:
                return cls(value)
        elif isinstance(value, str):
            text = value.strip().lower()
            if text.isdigit() and int(text) in cls._value2member_map_:
                return cls(int(text))
            if text.upper() in cls.__members__:
                return cls[text.upper()]
        raise ValidationError(
            "INVALID_PRIORITY", f"invalid priority: {value}", field="priority"
        )

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def weight(self) -> int:
        """Scheduling weight; each level doubles the previous one."""
        return 1 << (self.value - 1)

    def __str__(self) -> str:
        return self.label


# ============================================================
# PERSON VALUES
# ============================================================

FREE_EMAIL_PROVIDERS = frozenset({
    "gmail.com", "yahoo.com", "hotmail.com", "outlook.com",
    "live.com", "aol.com", "icloud.com", "protonmail.com",
})


@dataclass(frozen=True)
class Email:
    value: str

    def __post_init__(self):
        raw = (self.value or "").strip().lower()
        if not raw:
            raise ValidationError("EMAIL_EMPTY", field="email")
        try:
            result = validate_email(raw, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError("INVALID_EMAIL", f"invalid email format: {e}", field="email") from None
        object.__setattr__(self, "value", result.normalized.lower())

    @property
    def local_part(self) -> str:
        return self.value.rsplit("@", 1)[0]

    @property
    def domain(self) -> str:
        return self.value.rsplit("@", 1)[1]

    def is_business_email(self) -> bool:
        return self.domain not in FREE_EMAIL_PROVIDERS

    def masked(self) -> str:
        local = self.local_part
        if len(local) <= 2:
            return f"**@{self.domain}"
        visible = 3 if len(local) > 6 else 2
        return local[:visible] + "*" * (len(local) - visible) + "@" + self.domain

    def __str__(self) -> str:
        return self.value


class TaxIDKind(str, PyEnum):
    CPF = "cpf"    # individual, 11 digits
    CNPJ = "cnpj"  # organisation, 14 digits


_CPF_PATTERN = re.compile(r"^\d{3}\.?\d{3}\.?\d{3}-?\d{2}$")
_CNPJ_PATTERN = re.compile(
    r"^\d{2}\.?\d{3}\.?\d{3}/?(?:\d{3}[1-9]|\d{2}[1-9]\d|\d[1-9]\d{2}|[1-9]\d{3})-?\d{2}$"
)


def _check_digit(digits: str, start_weight: int) -> int:
    total = 0
    weight = start_weight
    for ch in digits:
        total += int(ch) * weight
        weight -= 1
        if weight < 2:
            weight = 9
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def _valid_check_digits(number: str, base_length: int, start_weight: int) -> bool:
    base = number[:base_length]
    first = _check_digit(base, start_weight)
    second = _check_digit(base + str(first), start_weight + 1)
    return number[base_length:] == f"{first}{second}"


@dataclass(frozen=True)
class TaxID:
    """Brazilian tax identifier: CPF for individuals, CNPJ for organisations."""

    value: str
    kind: TaxIDKind = field(init=False, compare=False)

    def __post_init__(self):
        text = (self.value or "").strip()
        if not text:
            raise ValidationError("TAX_ID_EMPTY", field="tax_id")
        digits = re.sub(r"\D", "", text)

        if len(digits) == 11 and _CPF_PATTERN.match(text):
            kind, base_length, start_weight = TaxIDKind.CPF, 9, 10
        elif len(digits) == 14 and _CNPJ_PATTERN.match(text):
            kind, base_length, start_weight = TaxIDKind.CNPJ, 12, 5
        else:
            raise ValidationError("INVALID_TAX_ID", "invalid tax ID format", field="tax_id")

        if len(set(digits)) == 1:
            raise ValidationError("INVALID_TAX_ID", "tax ID cannot repeat a single digit", field="tax_id")
        if not _valid_check_digits(digits, base_length, start_weight):
            raise ValidationError("INVALID_TAX_ID", "invalid tax ID check digits", field="tax_id")

        object.__setattr__(self, "value", digits)
        object.__setattr__(self, "kind", kind)

    @property
    def digits(self) -> str:
        return self.value

    def formatted(self) -> str:
        d = self.value
        if self.kind == TaxIDKind.CPF:
            return f"{d[:3]}.{d[3:6]}.{d[6:9]}-{d[9:]}"
        return f"{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:12]}-{d[12:]}"

    def masked(self) -> str:
        d = self.value
        if self.kind == TaxIDKind.CPF:
            return f"{d[:3]}.***.***-{d[9:]}"
        return f"{d[:2]}.{d[2:5]}.***/{d[8:12]}-{d[12:]}"

    def __str__(self) -> str:
        return self.formatted()


# ============================================================
# DATE
# ============================================================

DATE_LAYOUTS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%m-%d-%Y",
)


@dataclass(frozen=True, order=True)
class Date:
    """A calendar day, held as UTC midnight."""

    value: date

    @classmethod
    def parse(cls, raw: Union[str, date, datetime]) -> "Date":
        if isinstance(raw, datetime):
            if raw.tzinfo is None:
                raw = raw.replace(tzinfo=timezone.utc)
            return cls(raw.astimezone(timezone.utc).date())
        if isinstance(raw, date):
            return cls(raw)

        text = (raw or "").strip()
        if not text:
            raise ValidationError("DATE_EMPTY", field="date")
        for layout in DATE_LAYOUTS:
            try:
                return cls(datetime.strptime(text, layout).date())
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("INVALID_DATE", f"invalid date format: {text}", field="date") from None
        return cls.parse(parsed)

    @classmethod
    def today(cls) -> "Date":
        return cls(datetime.now(timezone.utc).date())

    @property
    def midnight(self) -> datetime:
        return datetime(self.value.year, self.value.month, self.value.day, tzinfo=timezone.utc)

    def add_days(self, days: int) -> "Date":
        return Date(self.value + timedelta(days=days))

    def add_months(self, months: int) -> "Date":
        index = self.value.month - 1 + months
        year = self.value.year + index // 12
        month = index % 12 + 1
        day = min(self.value.day, calendar.monthrange(year, month)[1])
        return Date(date(year, month, day))

    def add_years(self, years: int) -> "Date":
        return self.add_months(years * 12)

    def days_between(self, other: "Date") -> int:
        return abs((other.value - self.value).days)

    def is_workday(self) -> bool:
        return self.value.weekday() < 5

    def is_weekend(self) -> bool:
        return not self.is_workday()

    def iso(self) -> str:
        return self.value.isoformat()

    def __str__(self) -> str:
        return self.iso()


# ============================================================
# PASSWORD
# ============================================================

@dataclass(frozen=True)
class Password:
    """A bcrypt password hash. Plaintext never leaves the constructor."""

    hash: str = field(repr=False)

    @classmethod
    def create(cls, plain: str) -> "Password":
        plain = plain or ""
        if len(plain) < PASSWORD_MIN_LENGTH:
            raise ValidationError("PASSWORD_TOO_SHORT", field="password")
        encoded = plain.encode("utf-8")
        if len(encoded) > PASSWORD_MAX_BYTES:
            raise ValidationError("PASSWORD_TOO_LONG", field="password")
        try:
            hashed = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS))
        except ValueError as e:
            raise ValidationError("PASSWORD_HASH_FAILED", f"password could not be hashed: {e}", field="password") from None
        return cls(hashed.decode("utf-8"))

    @classmethod
    def from_hash(cls, hashed: str) -> "Password":
        if not hashed:
            raise ValidationError("PASSWORD_HASH_FAILED", "password hash cannot be empty", field="password")
        return cls(hashed)

    def matches(self, plain: str) -> bool:
        try:
            return bcrypt.checkpw((plain or "").encode("utf-8"), self.hash.encode("utf-8"))
        except ValueError:
            return False

    def __str__(self) -> str:
        return "********"


# ============================================================
# USER VALUES
# ============================================================

class UserStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"
    PENDING = "pending"

    @classmethod
    def parse(cls, value: Union[str, "UserStatus"]) -> "UserStatus":
        try:
            return cls(str(value.value if isinstance(value, cls) else value).strip().lower())
        except ValueError:
            raise ValidationError("INVALID_USER_STATUS", f"invalid user status: {value}", field="status") from None


# Permission scopes
TODO_READ = "todo:read"
TODO_WRITE = "todo:write"
USERS_READ = "users:read"
USERS_MANAGE = "users:manage"

ALL_PERMISSIONS: FrozenSet[str] = frozenset({TODO_READ, TODO_WRITE, USERS_READ, USERS_MANAGE})


class UserRole(str, PyEnum):
    USER = "user"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Union[str, "UserRole"]) -> "UserRole":
        try:
            return cls(str(value.value if isinstance(value, cls) else value).strip().lower())
        except ValueError:
            raise ValidationError("INVALID_USER_ROLE", f"invalid user role: {value}", field="role") from None

    def has_permission(self, permission: str) -> bool:
        if self == UserRole.ADMIN:
            return True
        return permission in ROLE_PERMISSIONS[self]


ROLE_PERMISSIONS = {
    UserRole.USER: frozenset({TODO_READ}),
    UserRole.ADMIN: ALL_PERMISSIONS,
}
