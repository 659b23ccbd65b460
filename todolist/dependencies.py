# dependencies.py — Request-scoped wiring of repositories, services and use cases
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from todolist.auth import get_token_service
from todolist.database import get_db_session
from todolist.repositories.sql import SqlPersonRepository, SqlTodoRepository, SqlUserRepository
from todolist.services import TodoService, UserSecurityService
from todolist.tokens import TokenService
from todolist.usecases import (
    ChangePassword, GetCurrentUser, GetProfile, LoginUser, LogoutUser, RefreshSession,
    RegisterUser, UpdateProfile,
)


# --- Repositories ---

def get_person_repository(db: AsyncSession = Depends(get_db_session)) -> SqlPersonRepository:
    return SqlPersonRepository(db)


def get_user_repository(db: AsyncSession = Depends(get_db_session)) -> SqlUserRepository:
    return SqlUserRepository(db)


def get_todo_repository(db: AsyncSession = Depends(get_db_session)) -> SqlTodoRepository:
    return SqlTodoRepository(db)


# --- Domain services ---

def get_todo_service(repo: SqlTodoRepository = Depends(get_todo_repository)) -> TodoService:
    return TodoService(repo, repo)


def get_user_security_service(repo: SqlUserRepository = Depends(get_user_repository)) -> UserSecurityService:
    return UserSecurityService(repo, repo)


# --- Use cases ---

def todo_usecase(cls):
    """Provider for any TodoUseCase subclass"""
    def _provide(
        repo: SqlTodoRepository = Depends(get_todo_repository),
        service: TodoService = Depends(get_todo_service),
    ):
        return cls(repo, repo, service)
    return _provide


def get_register_user(
    people: SqlPersonRepository = Depends(get_person_repository),
    users: SqlUserRepository = Depends(get_user_repository),
    security: UserSecurityService = Depends(get_user_security_service),
) -> RegisterUser:
    return RegisterUser(people, users, security)


def get_login_user(
    users: SqlUserRepository = Depends(get_user_repository),
    people: SqlPersonRepository = Depends(get_person_repository),
    tokens: TokenService = Depends(get_token_service),
) -> LoginUser:
    return LoginUser(users, people, tokens)


def get_refresh_session(
    users: SqlUserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
) -> RefreshSession:
    return RefreshSession(users, tokens)


def get_logout_user(tokens: TokenService = Depends(get_token_service)) -> LogoutUser:
    return LogoutUser(tokens)


def get_current_user_usecase(
    users: SqlUserRepository = Depends(get_user_repository),
    people: SqlPersonRepository = Depends(get_person_repository),
) -> GetCurrentUser:
    return GetCurrentUser(users, people)


def get_change_password(
    users: SqlUserRepository = Depends(get_user_repository),
    security: UserSecurityService = Depends(get_user_security_service),
) -> ChangePassword:
    return ChangePassword(users, security)


def get_profile(
    users: SqlUserRepository = Depends(get_user_repository),
    people: SqlPersonRepository = Depends(get_person_repository),
) -> GetProfile:
    return GetProfile(users, people)


def get_update_profile(
    users: SqlUserRepository = Depends(get_user_repository),
    people: SqlPersonRepository = Depends(get_person_repository),
) -> UpdateProfile:
    return UpdateProfile(users, people)
