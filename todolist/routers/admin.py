# routers/admin.py — User administration (requires users:manage)
# Features:
# - Paginated user listing by status or role
# - User counts by status and role
# - Security sweeps: deactivate inactive users, block repeated failed logins
# - Manual block / activate

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from todolist.auth import CurrentUser, require_permission
from todolist.dependencies import get_user_repository, get_user_security_service
from todolist.errors import NotFoundError, RecordNotFoundError, ValidationError
from todolist.pagination import PageResult, parse_page_request
from todolist.repositories.sql import SqlUserRepository
from todolist.schemas import paginated, success, user_to_out
from todolist.services import SuspiciousActivityCriteria, UserSecurityService
from todolist.valueobjects import USERS_MANAGE, UserRole, UserStatus

logger = logging.getLogger("todolist.admin")

router = APIRouter(prefix="/api/v1/admin", tags=["Administration"])


async def _load_user(repo: SqlUserRepository, user_id: int):
    try:
        return await repo.find_by_id(user_id)
    except RecordNotFoundError:
        raise NotFoundError("USER_NOT_FOUND") from None


@router.get("/users")
async def list_users(
    request: Request,
    response: Response,
    status: Optional[str] = None,
    role: Optional[str] = None,
    admin: CurrentUser = Depends(require_permission(USERS_MANAGE)),
    repo: SqlUserRepository = Depends(get_user_repository),
):
    """List users, optionally restricted to one status or one role"""
    if status and role:
        raise ValidationError("INVALID_FILTER", "filter by status or by role, not both", field="status")
    page = parse_page_request(request.query_params)
    if page.filters:
        raise ValidationError("INVALID_FILTER", "generic filters are not supported for users", field="filter")
    options = page.to_query_options()

    if status:
        parsed = UserStatus.parse(status)
        users = await repo.find_by_status(parsed, options)
        total = (await repo.count_by_status())[parsed]
    elif role:
        parsed = UserRole.parse(role)
        users = await repo.find_by_role(parsed, options)
        total = (await repo.count_by_role())[parsed]
    else:
        users = await repo.find_all(options)
        total = await repo.count()

    result = PageResult(page=page.page, page_size=page.size, total=total)
    response.headers.update(result.headers())
    return paginated([user_to_out(u) for u in users], result)


@router.get("/users/stats")
async def user_stats(
    admin: CurrentUser = Depends(require_permission(USERS_MANAGE)),
    repo: SqlUserRepository = Depends(get_user_repository),
):
    """User totals by status and role"""
    by_status = await repo.count_by_status()
    by_role = await repo.count_by_role()
    return success({
        "total": await repo.count(),
        "by_status": {s.value: n for s, n in by_status.items()},
        "by_role": {r.value: n for r, n in by_role.items()},
    })


@router.post("/users/deactivate-inactive")
async def deactivate_inactive(
    inactive_days: int = Query(90, ge=1),
    limit: int = Query(1000, ge=1, le=1000),
    admin: CurrentUser = Depends(require_permission(USERS_MANAGE)),
    security: UserSecurityService = Depends(get_user_security_service),
):
    """Deactivate active users who have not logged in for `inactive_days`"""
    count = await security.deactivate_inactive_users(inactive_days, limit)
    logger.info(f"Admin {admin.id} deactivated {count} inactive users")
    return success({"deactivated": count}, f"{count} users deactivated")


@router.post("/users/block-suspicious")
async def block_suspicious(
    failed_attempts: int = Query(5, ge=1),
    window_minutes: int = Query(60, ge=1),
    limit: int = Query(1000, ge=1, le=1000),
    admin: CurrentUser = Depends(require_permission(USERS_MANAGE)),
    security: UserSecurityService = Depends(get_user_security_service),
):
    """Block users with repeated recent failed logins"""
    criteria = SuspiciousActivityCriteria(failed_attempts, timedelta(minutes=window_minutes))
    blocked = await security.block_suspicious_users(criteria, limit)
    return success({"blocked": blocked}, f"{len(blocked)} users blocked")


@router.post("/users/{user_id}/block")
async def block_user(
    user_id: int,
    admin: CurrentUser = Depends(require_permission(USERS_MANAGE)),
    repo: SqlUserRepository = Depends(get_user_repository),
):
    if user_id == admin.id:
        raise ValidationError("INVALID_REQUEST", "administrators cannot block themselves", field="user_id")
    user = await _load_user(repo, user_id)
    user.block()
    await repo.save(user)
    logger.info(f"Admin {admin.id} blocked user {user_id}")
    return success(user_to_out(user), "User blocked")


@router.post("/users/{user_id}/activate")
async def activate_user(
    user_id: int,
    admin: CurrentUser = Depends(require_permission(USERS_MANAGE)),
    repo: SqlUserRepository = Depends(get_user_repository),
):
    user = await _load_user(repo, user_id)
    user.activate()
    await repo.save(user)
    logger.info(f"Admin {admin.id} activated user {user_id}")
    return success(user_to_out(user), "User activated")
