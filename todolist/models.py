# models.py — Database tables for people, users, todos and todo tags
# - 63-bit time-ordered integer primary keys assigned by the domain
# - All timestamps stored and returned as UTC-aware datetimes
# - Calendar dates stored through the Date value object

from sqlalchemy import (
    BigInteger, Column, Date as SQLDate, DateTime, Enum as SQLEnum, ForeignKey,
    Index, Integer, String, Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from todolist.entities import as_utc, utcnow
from todolist.valueobjects import Date, TodoStatus, UserRole, UserStatus

Base = declarative_base()


# ============================================================
# COLUMN TYPES
# ============================================================

class UTCDateTime(TypeDecorator):
    """DateTime that always binds and returns timezone-aware UTC values."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class DateType(TypeDecorator):
    """Stores a Date value object as a SQL DATE."""

    impl = SQLDate
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Date):
            return value.value
        return Date.parse(value).value

    def process_result_value(self, value, dialect):
        return Date(value) if value is not None else None


def _enum(enum_cls, name: str) -> SQLEnum:
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ============================================================
# PEOPLE & USERS
# ============================================================

class PersonModel(Base):
    __tablename__ = "people"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False, unique=True, index=True)
    phone = Column(String(50), nullable=False)
    tax_id = Column(String(14), nullable=False, unique=True)
    birth_date = Column(DateType, nullable=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("UserModel", back_populates="person", uselist=False)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    person_id = Column(
        BigInteger, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    username = Column(String(100), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    status = Column(_enum(UserStatus, "user_status"), nullable=False, default=UserStatus.ACTIVE, index=True)
    role = Column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.USER)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    last_login_attempt_at = Column(UTCDateTime(timezone=True), nullable=True)
    last_login_at = Column(UTCDateTime(timezone=True), nullable=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(timezone=True), default=utcnow, nullable=False)

    person = relationship("PersonModel", back_populates="user")


# ============================================================
# TODOS
# ============================================================

class TodoModel(Base):
    __tablename__ = "todos"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(_enum(TodoStatus, "todo_status"), nullable=False, default=TodoStatus.PENDING)
    priority = Column(Integer, nullable=False, default=2)  # Priority level 1-4
    due_date = Column(UTCDateTime(timezone=True), nullable=True)
    completed_at = Column(UTCDateTime(timezone=True), nullable=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(timezone=True), default=utcnow, nullable=False)

    tags = relationship(
        "TodoTagModel",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TodoTagModel.position",
    )

    __table_args__ = (
        Index("ix_todos_user_status", "user_id", "status"),
        Index("ix_todos_user_due_date", "user_id", "due_date"),
    )


class TodoTagModel(Base):
    __tablename__ = "todo_tags"

    todo_id = Column(BigInteger, ForeignKey("todos.id", ondelete="CASCADE"), primary_key=True)
    tag = Column(String(100), primary_key=True)
    position = Column(Integer, nullable=False, default=0)  # insertion order

    __table_args__ = (Index("ix_todo_tags_tag", "tag"),)
