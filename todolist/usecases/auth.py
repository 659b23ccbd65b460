# usecases/auth.py — Registration, login, session and password orchestration
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from todolist import config
from todolist.entities import Person, User
from todolist.errors import (
    ConflictError, DuplicateEntryError, ForbiddenError, NotFoundError, RecordNotFoundError,
    TokenError, UnauthorisedError, ValidationError,
)
from todolist.repositories.base import PersonRepository, UserRepository
from todolist.schemas import ChangePasswordRequest, LoginRequest, RegisterRequest
from todolist.services import UserSecurityService
from todolist.tokens import AuthTokens, TokenService
from todolist.valueobjects import Email, Password, TaxID

logger = logging.getLogger("todolist.usecases.auth")

CONFLICT_CODES = {
    "email": "EMAIL_TAKEN",
    "tax_id": "TAX_ID_TAKEN",
    "username": "USERNAME_TAKEN",
    "person_id": "USER_EXISTS",
}


def conflict_from(error: DuplicateEntryError) -> ConflictError:
    return ConflictError(CONFLICT_CODES.get(error.field, "CONFLICT"), details={"field": error.field})


@dataclass
class LoginResult:
    tokens: AuthTokens
    user: User
    person: Person


async def _hash_password(plain: str) -> Password:
    return await asyncio.to_thread(Password.create, plain)


async def _check_password(password: Password, plain: str) -> bool:
    return await asyncio.to_thread(password.matches, plain)


# ============================================================
# REGISTRATION
# ============================================================

class RegisterUser:
    """Create a Person and the User bound to it."""

    def __init__(self, person_repo: PersonRepository, user_repo: UserRepository, security: UserSecurityService):
        self.person_repo = person_repo
        self.user_repo = user_repo
        self.security = security

    async def execute(self, request: RegisterRequest) -> User:
        email = Email(request.email)
        tax_id = TaxID(request.tax_id)
        username = (request.username or "").strip()
        if not username:
            raise ValidationError("USERNAME_EMPTY", field="username")
        self.security.enforce_password_policy(request.password)

        if await self.person_repo.exists_by_email(email.value):
            raise ConflictError("EMAIL_TAKEN", details={"field": "email"})
        if await self.person_repo.exists_by_tax_id(tax_id.value):
            raise ConflictError("TAX_ID_TAKEN", details={"field": "tax_id"})
        if await self.user_repo.exists_by_username(username):
            raise ConflictError("USERNAME_TAKEN", details={"field": "username"})

        person = Person.create(request.name, email, request.phone, tax_id, request.birth_date)
        password = await _hash_password(request.password)
        try:
            await self.person_repo.save(person)
        except DuplicateEntryError as e:
            raise conflict_from(e) from None

        try:
            user = await self._create_user(person.id, username, password)
        except Exception:
            await self.person_repo.delete(person.id)
            raise

        logger.info(f"Registered user {user.id} ({user.username})")
        return user

    async def _create_user(self, person_id: int, username: str, password: Password) -> User:
        try:
            await self.person_repo.find_by_id(person_id)
        except RecordNotFoundError:
            raise NotFoundError("PERSON_NOT_FOUND") from None
        if await self.user_repo.exists_by_person_id(person_id):
            raise ConflictError("USER_EXISTS")

        user = User.create(person_id, username, password)
        try:
            await self.user_repo.save(user)
        except DuplicateEntryError as e:
            raise conflict_from(e) from None
        return user


# ============================================================
# SESSIONS
# ============================================================

class LoginUser:
    def __init__(self, user_repo: UserRepository, person_repo: PersonRepository, tokens: TokenService):
        self.user_repo = user_repo
        self.person_repo = person_repo
        self.tokens = tokens

    async def execute(self, request: LoginRequest) -> LoginResult:
        try:
            user = await self.user_repo.find_by_username((request.username or "").strip())
        except RecordNotFoundError:
            logger.warning(f"Failed login for unknown username {request.username!r}")
            raise UnauthorisedError("INVALID_CREDENTIALS") from None

        if not user.is_active:
            logger.warning(f"Login refused for {user.status.value} user {user.id}")
            raise UnauthorisedError("USER_NOT_ACTIVE")

        if not await _check_password(user.password, request.password):
            user.record_failed_login()
            await self.user_repo.save(user)
            logger.warning(f"Failed login for user {user.id} ({user.failed_login_attempts} consecutive)")
            raise UnauthorisedError("INVALID_CREDENTIALS")

        try:
            person = await self.person_repo.find_by_id(user.person_id)
        except RecordNotFoundError:
            raise NotFoundError("PERSON_NOT_FOUND") from None

        tokens = self.tokens.generate_tokens(config.APP_NAME, user.id, {"role": user.role.value})
        user.record_successful_login()
        await self.user_repo.save(user)
        logger.info(f"User {user.id} logged in")
        return LoginResult(tokens=tokens, user=user, person=person)


class RefreshSession:
    def __init__(self, user_repo: UserRepository, tokens: TokenService):
        self.user_repo = user_repo
        self.tokens = tokens

    async def execute(self, refresh_token: str) -> AuthTokens:
        result = self.tokens.validate_refresh_token(refresh_token)
        try:
            user = await self.user_repo.find_by_id(result.user_id)
        except RecordNotFoundError:
            raise TokenError("INVALID_TOKEN", "token subject no longer exists") from None
        if not user.is_active:
            raise UnauthorisedError("USER_NOT_ACTIVE")
        return self.tokens.refresh_tokens(refresh_token)


class LogoutUser:
    """Revoke the caller's access token and, when given, one of their refresh tokens."""

    def __init__(self, tokens: TokenService):
        self.tokens = tokens

    async def execute(self, user_id: int, access_token: str, refresh_token: Optional[str] = None) -> None:
        refresh = None
        if refresh_token:
            try:
                refresh = self.tokens.validate_refresh_token(refresh_token)
            except TokenError as e:
                # expired or already revoked: nothing left to revoke
                if e.code not in ("EXPIRED_TOKEN", "REVOKED_TOKEN"):
                    raise
            if refresh is not None and refresh.user_id != user_id:
                logger.warning(f"User {user_id} tried to revoke a refresh token of user {refresh.user_id}")
                raise ForbiddenError("FORBIDDEN", "refresh token belongs to another user")

        self.tokens.revoke_token(access_token)
        if refresh is not None:
            self.tokens.revoke_token(refresh_token)


class GetCurrentUser:
    def __init__(self, user_repo: UserRepository, person_repo: PersonRepository):
        self.user_repo = user_repo
        self.person_repo = person_repo

    async def execute(self, user_id: int) -> User:
        try:
            return await self.user_repo.find_by_id(user_id)
        except RecordNotFoundError:
            raise NotFoundError("USER_NOT_FOUND") from None

    async def with_person(self, user_id: int):
        user = await self.execute(user_id)
        try:
            person = await self.person_repo.find_by_id(user.person_id)
        except RecordNotFoundError:
            person = None
        return user, person


# ============================================================
# PASSWORDS
# ============================================================

class ChangePassword:
    def __init__(self, user_repo: UserRepository, security: UserSecurityService):
        self.user_repo = user_repo
        self.security = security

    async def execute(self, user_id: int, request: ChangePasswordRequest) -> User:
        try:
            user = await self.user_repo.find_by_id(user_id)
        except RecordNotFoundError:
            raise NotFoundError("USER_NOT_FOUND") from None
        user.can_perform_action()

        if not await _check_password(user.password, request.old_password):
            raise ValidationError("INCORRECT_PASSWORD", field="old_password")
        self.security.enforce_password_policy(request.new_password)

        user.change_password(await _hash_password(request.new_password))
        await self.user_repo.save(user)
        logger.info(f"Password changed for user {user.id}")
        return user
