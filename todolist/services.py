# services.py — Domain services spanning several aggregates
# Features:
# - Todo ownership checks, productivity metrics and due-date suggestion
# - Bulk maintenance sweeps (overdue -> in progress, stale pending -> cancelled)
# - User permission checks, inactivity/suspicious-login sweeps, password policy
#
# Bulk sweeps absorb per-item failures and report how many items changed;
# only a failing query aborts them. A cancelled sweep stops between items.

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from todolist.entities import Todo, User, as_utc, utcnow
from todolist.errors import (
    AppError, ForbiddenError, NotFoundError, PolicyViolationError,
    RecordNotFoundError, RepositoryError, TodoAccessDeniedError,
)
from todolist.queries import (
    Filter, QueryOptions, TodoFilterCriteria, completion_rate,
)
from todolist.repositories.base import (
    TodoQueryRepository, TodoRepository, UserQueryRepository, UserRepository,
)
from todolist.valueobjects import PASSWORD_MIN_LENGTH, Priority, TodoStatus, UserStatus

logger = logging.getLogger("todolist.services")

SWEEP_LIMIT = 1000
MAX_TODOS_PER_DAY = 3
SUGGESTION_SCAN_DAYS = 7
PASSWORD_MAX_AGE = timedelta(days=90)
PASSWORD_SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

DUE_DATE_OFFSETS = {
    Priority.CRITICAL: timedelta(days=1),
    Priority.HIGH: timedelta(days=3),
    Priority.MEDIUM: timedelta(days=7),
    Priority.LOW: timedelta(days=14),
}
DEFAULT_DUE_DATE_OFFSET = timedelta(days=7)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


# ============================================================
# TODO SERVICE
# ============================================================

@dataclass
class ProductivityMetrics:
    total_created: int = 0
    total_completed: int = 0
    completion_rate: float = 0.0
    avg_time_to_complete: timedelta = timedelta(0)
    most_productive_day: str = ""
    most_used_tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_created": self.total_created,
            "total_completed": self.total_completed,
            "completion_rate": self.completion_rate,
            "avg_time_to_complete_hours": round(self.avg_time_to_complete.total_seconds() / 3600, 2),
            "most_productive_day": self.most_productive_day,
            "most_used_tags": list(self.most_used_tags),
        }


class TodoService:
    def __init__(self, todo_repo: TodoRepository, query_repo: TodoQueryRepository):
        self.todo_repo = todo_repo
        self.query_repo = query_repo

    async def validate_user_ownership(self, todo_id: int, user_id: int) -> Todo:
        """Load a todo and make sure `user_id` owns it."""
        try:
            todo = await self.todo_repo.find_by_id(todo_id)
        except RecordNotFoundError:
            raise NotFoundError("TODO_NOT_FOUND") from None
        if not todo.is_owned_by(user_id):
            raise TodoAccessDeniedError()
        return todo

    async def get_user_productivity(
        self, user_id: int, period: timedelta, now: Optional[datetime] = None
    ) -> ProductivityMetrics:
        now = as_utc(now) or utcnow()
        criteria = TodoFilterCriteria(user_id=user_id, created_after=now - period)
        todos = await self.query_repo.find_by_filters(criteria, now=now)

        completed = [t for t in todos if t.status == TodoStatus.COMPLETED and t.completed_at]
        metrics = ProductivityMetrics(
            total_created=len(todos),
            total_completed=len(completed),
            completion_rate=completion_rate(len(completed), len(todos)),
        )
        if completed:
            elapsed = sum((t.completed_at - t.created_at for t in completed), timedelta(0))
            metrics.avg_time_to_complete = elapsed / len(completed)
            by_day = Counter(t.completed_at.weekday() for t in completed)
            best_day, _ = max(by_day.items(), key=lambda item: (item[1], -item[0]))
            metrics.most_productive_day = WEEKDAYS[best_day]

        tag_counts = Counter(tag for t in todos for tag in t.tags)
        ranked = sorted(tag_counts.items(), key=lambda item: (-item[1], item[0]))
        metrics.most_used_tags = [tag for tag, _ in ranked[:5]]
        return metrics

    def suggest_due_date(
        self,
        priority: Priority,
        workload_by_day: Optional[Dict[date, int]] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """
        Suggest a due date from priority and the owner's workload.

        The base date is now + (1d critical, 3d high, 7d medium, 14d low).
        Starting at the base date, the first of the next seven days holding
        fewer than MAX_TODOS_PER_DAY todos wins; if all are busy the base
        date is returned.
        """
        now = as_utc(now) or utcnow()
        workload_by_day = workload_by_day or {}
        try:
            offset = DUE_DATE_OFFSETS[Priority.parse(priority)]
        except AppError:
            offset = DEFAULT_DUE_DATE_OFFSET
        base = now + offset
        for i in range(SUGGESTION_SCAN_DAYS):
            candidate = base + timedelta(days=i)
            if workload_by_day.get(candidate.date(), 0) < MAX_TODOS_PER_DAY:
                return candidate
        return base

    async def mark_overdue_as_in_progress(self, user_id: int, now: Optional[datetime] = None) -> int:
        now = as_utc(now) or utcnow()
        criteria = TodoFilterCriteria(user_id=user_id, statuses=[TodoStatus.PENDING], is_overdue=True)
        todos = await self.query_repo.find_by_filters(criteria, QueryOptions(limit=SWEEP_LIMIT), now=now)

        updated = 0
        for todo in todos:
            await asyncio.sleep(0)  # cancellation point between items
            if not todo.is_overdue(now):
                continue
            try:
                todo.start_progress(now)
                await self.todo_repo.save(todo)
            except (AppError, RepositoryError) as e:
                logger.warning(f"Skipping overdue todo {todo.id}: {e}")
                continue
            updated += 1

        logger.info(f"Moved {updated}/{len(todos)} overdue todos to in_progress for user {user_id}")
        return updated

    async def auto_cancel_old_pending_todos(
        self, user_id: int, older_than: timedelta, now: Optional[datetime] = None
    ) -> int:
        now = as_utc(now) or utcnow()
        cutoff = now - older_than
        criteria = TodoFilterCriteria(
            user_id=user_id,
            statuses=[TodoStatus.PENDING],
            filters=[Filter("due_date", "<", cutoff)],
        )
        todos = await self.query_repo.find_by_filters(criteria, QueryOptions(limit=SWEEP_LIMIT), now=now)

        cancelled = 0
        for todo in todos:
            await asyncio.sleep(0)
            try:
                todo.cancel(now)
                await self.todo_repo.save(todo)
            except (AppError, RepositoryError) as e:
                logger.warning(f"Skipping stale todo {todo.id}: {e}")
                continue
            cancelled += 1

        logger.info(f"Cancelled {cancelled}/{len(todos)} stale pending todos for user {user_id}")
        return cancelled


# ============================================================
# USER SECURITY SERVICE
# ============================================================

@dataclass(frozen=True)
class SuspiciousActivityCriteria:
    failed_login_attempts: int = 5
    time_window: timedelta = timedelta(hours=1)


class UserSecurityService:
    def __init__(self, user_repo: UserRepository, user_query_repo: UserQueryRepository):
        self.user_repo = user_repo
        self.user_query_repo = user_query_repo

    async def validate_user_permission(self, user_id: int, permission: str) -> User:
        try:
            user = await self.user_repo.find_by_id(user_id)
        except RecordNotFoundError:
            raise NotFoundError("USER_NOT_FOUND") from None
        user.can_perform_action()
        if not user.role.has_permission(permission):
            raise ForbiddenError("PERMISSION_DENIED", f"missing permission: {permission}")
        return user

    async def deactivate_inactive_users(self, inactive_days: int, limit: int = SWEEP_LIMIT) -> int:
        users = await self.user_query_repo.find_inactive_users(inactive_days, QueryOptions(limit=limit))

        deactivated = 0
        for user in users:
            await asyncio.sleep(0)
            try:
                user.deactivate()
                await self.user_repo.save(user)
            except (AppError, RepositoryError) as e:
                logger.warning(f"Skipping inactive user {user.id}: {e}")
                continue
            deactivated += 1

        logger.info(f"Deactivated {deactivated} users inactive for more than {inactive_days} days")
        return deactivated

    async def block_suspicious_users(
        self,
        criteria: Optional[SuspiciousActivityCriteria] = None,
        limit: int = SWEEP_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[int]:
        criteria = criteria or SuspiciousActivityCriteria()
        now = as_utc(now) or utcnow()
        window_start = now - criteria.time_window
        users = await self.user_query_repo.find_by_status(UserStatus.ACTIVE, QueryOptions(limit=limit))

        blocked = []
        for user in users:
            await asyncio.sleep(0)
            if user.failed_login_attempts < criteria.failed_login_attempts:
                continue
            if user.last_login_attempt_at is None or user.last_login_attempt_at < window_start:
                continue
            try:
                user.block()
                await self.user_repo.save(user)
            except (AppError, RepositoryError) as e:
                logger.warning(f"Could not block user {user.id}: {e}")
                continue
            blocked.append(user.id)

        if blocked:
            logger.warning(f"Blocked {len(blocked)} users after repeated failed logins: {blocked}")
        return blocked

    def enforce_password_policy(self, password: str) -> None:
        password = password or ""
        if len(password) < PASSWORD_MIN_LENGTH:
            raise PolicyViolationError(
                "PASSWORD_TOO_SHORT", f"password must be at least {PASSWORD_MIN_LENGTH} characters long"
            )
        checks = (
            any(c.isupper() for c in password),
            any(c.islower() for c in password),
            any(c.isdigit() for c in password),
            any(c in PASSWORD_SPECIAL_CHARS for c in password),
        )
        if not all(checks):
            raise PolicyViolationError(
                "PASSWORD_TOO_WEAK",
                "password must contain uppercase, lowercase, digit and special characters",
            )

    def should_force_password_change(self, user: User, now: Optional[datetime] = None) -> bool:
        return (as_utc(now) or utcnow()) - user.updated_at > PASSWORD_MAX_AGE
