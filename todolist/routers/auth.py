# routers/auth.py — Registration, login, token rotation, logout and password change
from typing import Optional

from fastapi import APIRouter, Depends

from todolist.auth import CurrentUser, get_current_user
from todolist.dependencies import (
    get_change_password, get_current_user_usecase, get_login_user, get_logout_user,
    get_refresh_session, get_register_user,
)
from todolist.schemas import (
    ChangePasswordRequest, LoginRequest, LogoutRequest, RefreshRequest, RegisterRequest,
    success, tokens_to_out, user_to_out,
)
from todolist.usecases import (
    ChangePassword, GetCurrentUser, LoginUser, LogoutUser, RefreshSession, RegisterUser,
)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    usecase: RegisterUser = Depends(get_register_user),
):
    """Register a new user account"""
    user = await usecase.execute(request)
    return success(user_to_out(user), "User registered successfully")


@router.post("/login")
async def login(
    credentials: LoginRequest,
    usecase: LoginUser = Depends(get_login_user),
):
    """Authenticate and receive an access/refresh token pair"""
    result = await usecase.execute(credentials)
    return success(tokens_to_out(result.tokens, user_to_out(result.user, result.person)), "Login successful")


@router.post("/refresh")
async def refresh(
    body: RefreshRequest,
    usecase: RefreshSession = Depends(get_refresh_session),
):
    """Exchange a refresh token for a new token pair"""
    tokens = await usecase.execute(body.refresh_token)
    return success(tokens_to_out(tokens), "Tokens refreshed")


@router.post("/logout")
async def logout(
    body: Optional[LogoutRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    usecase: LogoutUser = Depends(get_logout_user),
):
    """Revoke the presented access token (and optionally a refresh token)"""
    await usecase.execute(user.id, user.token, body.refresh_token if body else None)
    return success(None, "Logged out")


@router.get("/me")
async def me(
    user: CurrentUser = Depends(get_current_user),
    usecase: GetCurrentUser = Depends(get_current_user_usecase),
):
    """Get the signed-in user"""
    current, person = await usecase.with_person(user.id)
    return success(user_to_out(current, person))


@router.put("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    usecase: ChangePassword = Depends(get_change_password),
):
    """Change the signed-in user's password"""
    await usecase.execute(user.id, body)
    return success(None, "Password changed successfully")
