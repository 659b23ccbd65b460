# errors.py — Error kinds, machine tags and repository failure kinds
from typing import Any, Dict, Optional

# ============================================================
# ERROR CODE CATALOGUE
# Machine tags surfaced in the error envelope, grouped by domain
# ============================================================

ERROR_CATALOGUE = {
    # Request / value validation
    "VALIDATION_ERROR": "request validation failed",
    "INVALID_REQUEST": "invalid request",
    "INVALID_FILTER": "invalid filter",
    "INVALID_PAGINATION": "invalid pagination parameters",
    "INVALID_SORT": "invalid sort field",
    "TITLE_EMPTY": "title cannot be empty",
    "TITLE_TOO_SHORT": "title must be at least 3 characters long",
    "TITLE_TOO_LONG": "title must not exceed 200 characters",
    "DESCRIPTION_TOO_LONG": "description must not exceed 1000 characters",
    "INVALID_STATUS": "invalid todo status",
    "INVALID_PRIORITY": "invalid priority",
    "TAG_EMPTY": "tag cannot be empty",
    "EMAIL_EMPTY": "email cannot be empty",
    "INVALID_EMAIL": "invalid email format",
    "PASSWORD_TOO_SHORT": "password must be at least 8 characters long",
    "PASSWORD_TOO_LONG": "password exceeds 72 bytes",
    "PASSWORD_HASH_FAILED": "password could not be hashed",
    "DATE_EMPTY": "date cannot be empty",
    "INVALID_DATE": "invalid date format",
    "TAX_ID_EMPTY": "tax ID cannot be empty",
    "INVALID_TAX_ID": "invalid tax ID",
    "NAME_EMPTY": "name cannot be empty",
    "PHONE_EMPTY": "phone cannot be empty",
    "USERNAME_EMPTY": "username cannot be empty",
    "USER_ID_REQUIRED": "user ID is required",
    "PERSON_ID_REQUIRED": "person ID is required",
    "DUE_DATE_IN_PAST": "due date cannot be in the past",
    "INVALID_USER_STATUS": "invalid user status",
    "INVALID_USER_ROLE": "invalid user role",
    # Lookups
    "NOT_FOUND": "resource not found",
    "TODO_NOT_FOUND": "todo not found",
    "USER_NOT_FOUND": "user not found",
    "PERSON_NOT_FOUND": "person not found",
    # Conflicts
    "CONFLICT": "resource already exists",
    "USERNAME_TAKEN": "username already exists",
    "EMAIL_TAKEN": "email already exists",
    "TAX_ID_TAKEN": "tax ID already exists",
    "USER_EXISTS": "person already has a user",
    # Authentication / authorisation
    "UNAUTHENTICATED": "authentication required",
    "INVALID_CREDENTIALS": "invalid username or password",
    "USER_NOT_ACTIVE": "user is not active",
    "INVALID_TOKEN": "invalid token",
    "EXPIRED_TOKEN": "token has expired",
    "REVOKED_TOKEN": "token has been revoked",
    "INVALID_TOKEN_TYPE": "invalid token type",
    "TOKEN_GENERATION_ERROR": "failed to generate token",
    "FORBIDDEN": "operation not permitted",
    "PERMISSION_DENIED": "missing required permission",
    "UNAUTHORIZED_TODO_ACCESS": "unauthorized to access this todo",
    # State machine
    "INVALID_TRANSITION": "invalid status transition",
    "ALREADY_COMPLETED": "todo is already completed",
    # Policy
    "PASSWORD_TOO_WEAK": "password is too weak",
    "INCORRECT_PASSWORD": "incorrect password",
    # Infrastructure
    "INTERNAL_ERROR": "internal server error",
}


# ============================================================
# APPLICATION ERRORS
# ============================================================

class AppError(Exception):
    """Base for every user-visible failure: a machine tag, a message and details."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        code: Optional[str] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message or ERROR_CATALOGUE.get(self.code, self.code.lower())
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, code=None, message=None, field: Optional[str] = None, details=None):
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(code, message, details)


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    default_code = "CONFLICT"


class UnauthorisedError(AppError):
    status_code = 401
    default_code = "UNAUTHENTICATED"


class ForbiddenError(AppError):
    status_code = 403
    default_code = "FORBIDDEN"


class TodoAccessDeniedError(ForbiddenError):
    default_code = "UNAUTHORIZED_TODO_ACCESS"


class InvalidTransitionError(AppError):
    status_code = 400
    default_code = "INVALID_TRANSITION"


class PolicyViolationError(AppError):
    status_code = 400
    default_code = "PASSWORD_TOO_WEAK"


class InternalError(AppError):
    status_code = 500
    default_code = "INTERNAL_ERROR"


class TokenError(UnauthorisedError):
    default_code = "INVALID_TOKEN"


# ============================================================
# REPOSITORY FAILURES
# Kept apart from AppError; use cases translate them at the boundary
# ============================================================

class RepositoryError(Exception):
    """Implementation-specific persistence failure."""


class RecordNotFoundError(RepositoryError):
    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class DuplicateEntryError(RepositoryError):
    def __init__(self, entity: str, field: str, value: Any = None):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"duplicate {entity}.{field}")
