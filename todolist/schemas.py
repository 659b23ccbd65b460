# schemas.py — Request/response DTOs and response envelopes
# Request fields are plain strings; the value objects do the validation so the
# error tags match the domain's.

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from todolist.entities import Person, Todo, User, utcnow
from todolist.pagination import PageResult
from todolist.queries import TagCount
from todolist.tokens import AuthTokens


# ============================================================
# AUTH
# ============================================================

class RegisterRequest(BaseModel):
    name: str
    email: str
    phone: str
    tax_id: str
    birth_date: Optional[str] = None
    username: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class UserOut(BaseModel):
    id: int
    person_id: int
    username: str
    status: str
    role: str
    name: Optional[str] = None
    email: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TokenOut(BaseModel):
    token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_at: datetime
    refresh_expires_at: datetime
    user: Optional[UserOut] = None


# ============================================================
# TODOS
# ============================================================

class TodoCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Union[int, str] = "medium"
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)


class TodoUpdate(BaseModel):
    """Partial update; an explicit `"due_date": null` clears the due date."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Union[int, str]] = None
    due_date: Optional[datetime] = None


class StatusUpdate(BaseModel):
    status: str


class TagAdd(BaseModel):
    tag: str


class TodoOut(BaseModel):
    id: int
    user_id: int
    title: str
    description: str
    status: str
    priority: str
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    is_overdue: bool = False
    created_at: datetime
    updated_at: datetime


class TagCountOut(BaseModel):
    tag: str
    count: int


# ============================================================
# PEOPLE
# ============================================================

class PersonUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[str] = None


class PersonOut(BaseModel):
    id: int
    name: str
    email: str
    phone: str
    tax_id: str
    birth_date: Optional[str] = None
    age: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# ============================================================
# CONVERTERS
# ============================================================

def user_to_out(user: User, person: Optional[Person] = None) -> UserOut:
    return UserOut(
        id=user.id,
        person_id=user.person_id,
        username=user.username,
        status=user.status.value,
        role=user.role.value,
        name=person.name if person else None,
        email=person.email.value if person else None,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def tokens_to_out(tokens: AuthTokens, user: Optional[UserOut] = None) -> TokenOut:
    return TokenOut(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.access_expires_at,
        refresh_expires_at=tokens.refresh_expires_at,
        user=user,
    )


def todo_to_out(todo: Todo, now: Optional[datetime] = None) -> TodoOut:
    return TodoOut(
        id=todo.id,
        user_id=todo.user_id,
        title=todo.title.value,
        description=todo.description.value,
        status=todo.status.value,
        priority=todo.priority.label,
        due_date=todo.due_date,
        completed_at=todo.completed_at,
        tags=todo.tags,
        is_overdue=todo.is_overdue(now or utcnow()),
        created_at=todo.created_at,
        updated_at=todo.updated_at,
    )


def tag_count_to_out(tag_count: TagCount) -> TagCountOut:
    return TagCountOut(tag=tag_count.tag, count=tag_count.count)


def person_to_out(person: Person) -> PersonOut:
    return PersonOut(
        id=person.id,
        name=person.name,
        email=person.email.value,
        phone=person.phone,
        tax_id=person.tax_id.formatted(),
        birth_date=person.birth_date.iso() if person.birth_date else None,
        age=person.age_in_years(),
        created_at=person.created_at,
        updated_at=person.updated_at,
    )


# ============================================================
# ENVELOPES
# ============================================================

def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return data


def success(data: Any = None, message: str = "") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": _dump(data)}


def paginated(items: List[BaseModel], page: PageResult, message: str = "") -> Dict[str, Any]:
    body = success(items, message)
    body["pagination"] = page.to_dict()
    return body


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"success": False, "error": {"code": code, "message": message, "details": details or {}}}
