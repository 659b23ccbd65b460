# usecases/todos.py — Todo orchestration: CRUD, lifecycle, tags, listings, reports
# Every per-todo operation starts with an ownership check.

import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from todolist.entities import Todo, as_utc, utcnow
from todolist.errors import NotFoundError, RecordNotFoundError, ValidationError
from todolist.queries import QueryOptions, TagCount, TodoFilterCriteria, TodoStatistics
from todolist.repositories.base import TodoQueryRepository, TodoRepository
from todolist.schemas import TodoCreate, TodoUpdate
from todolist.services import ProductivityMetrics, TodoService
from todolist.valueobjects import Priority, TodoDescription, TodoTitle

logger = logging.getLogger("todolist.usecases.todos")

WORKLOAD_HORIZON = timedelta(days=21)


class TodoUseCase:
    def __init__(self, todo_repo: TodoRepository, query_repo: TodoQueryRepository, service: TodoService):
        self.todo_repo = todo_repo
        self.query_repo = query_repo
        self.service = service


# ============================================================
# COMMANDS
# ============================================================

class CreateTodo(TodoUseCase):
    async def execute(self, user_id: int, request: TodoCreate, now: Optional[datetime] = None) -> Todo:
        now = as_utc(now) or utcnow()
        title = TodoTitle(request.title)
        description = TodoDescription(request.description or "")
        priority = Priority.parse(request.priority)

        due_date = request.due_date
        if due_date is None and priority != Priority.LOW:
            workload = await self._workload(user_id, now)
            due_date = self.service.suggest_due_date(priority, workload, now)

        todo = Todo.create(user_id, title, description, priority, due_date, now)
        for tag in request.tags:
            todo.add_tag(tag)
        await self.todo_repo.save(todo)
        logger.info(f"Todo {todo.id} created for user {user_id}")
        return todo

    async def _workload(self, user_id: int, now: datetime) -> Dict[date, int]:
        upcoming = await self.query_repo.find_due_between(user_id, now, now + WORKLOAD_HORIZON)
        return Counter(t.due_date.date() for t in upcoming if t.status.is_open)


class UpdateTodo(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int, request: TodoUpdate,
                      now: Optional[datetime] = None) -> Todo:
        todo = await self.service.validate_user_ownership(todo_id, user_id)
        changed = request.model_fields_set
        if "title" in changed and request.title is not None:
            todo.update_title(request.title)
        if "description" in changed:
            todo.update_description(request.description or "")
        if "priority" in changed and request.priority is not None:
            todo.update_priority(request.priority)
        if "due_date" in changed:
            todo.update_due_date(request.due_date, now)
        await self.todo_repo.save(todo)
        return todo


class ChangeTodoStatus(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int, status: str) -> Todo:
        todo = await self.service.validate_user_ownership(todo_id, user_id)
        todo.change_status(status)
        await self.todo_repo.save(todo)
        return todo


class CompleteTodo(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int) -> Todo:
        todo = await self.service.validate_user_ownership(todo_id, user_id)
        todo.complete()
        await self.todo_repo.save(todo)
        logger.info(f"Todo {todo.id} completed by user {user_id}")
        return todo


class DeleteTodo(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int) -> None:
        await self.service.validate_user_ownership(todo_id, user_id)
        try:
            await self.todo_repo.delete(todo_id)
        except RecordNotFoundError:
            raise NotFoundError("TODO_NOT_FOUND") from None


class AddTodoTag(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int, tag: str) -> Todo:
        todo = await self.service.validate_user_ownership(todo_id, user_id)
        todo.add_tag(tag)
        await self.todo_repo.save(todo)
        return todo


class RemoveTodoTag(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int, tag: str) -> Todo:
        todo = await self.service.validate_user_ownership(todo_id, user_id)
        todo.remove_tag(tag)
        await self.todo_repo.save(todo)
        return todo


# ============================================================
# QUERIES
# ============================================================

class GetTodo(TodoUseCase):
    async def execute(self, user_id: int, todo_id: int) -> Todo:
        return await self.service.validate_user_ownership(todo_id, user_id)


class ListTodos(TodoUseCase):
    async def execute(
        self,
        user_id: int,
        criteria: Optional[TodoFilterCriteria] = None,
        options: Optional[QueryOptions] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Todo], int]:
        """Return one page of the caller's todos and the total matching count."""
        criteria = criteria or TodoFilterCriteria()
        criteria.user_id = user_id
        now = as_utc(now) or utcnow()
        todos = await self.query_repo.find_by_filters(criteria, options, now=now)
        total = await self.query_repo.count_by_criteria(criteria, now=now)
        return todos, total


class GetTodoStatistics(TodoUseCase):
    async def execute(self, user_id: int, now: Optional[datetime] = None) -> TodoStatistics:
        return await self.query_repo.get_statistics(user_id, now)


class GetProductivity(TodoUseCase):
    async def execute(self, user_id: int, days: int = 30) -> ProductivityMetrics:
        if days < 1:
            raise ValidationError("INVALID_REQUEST", "days must be positive", field="days")
        return await self.service.get_user_productivity(user_id, timedelta(days=days))


class GetPopularTags(TodoUseCase):
    async def execute(self, user_id: int, limit: int = 10) -> List[TagCount]:
        if limit < 1:
            raise ValidationError("INVALID_REQUEST", "limit must be positive", field="limit")
        return await self.query_repo.get_popular_tags(user_id, limit)


# ============================================================
# MAINTENANCE
# ============================================================

class StartOverdueTodos(TodoUseCase):
    async def execute(self, user_id: int) -> int:
        return await self.service.mark_overdue_as_in_progress(user_id)


class CancelStaleTodos(TodoUseCase):
    async def execute(self, user_id: int, older_than_days: int = 30) -> int:
        if older_than_days < 1:
            raise ValidationError("INVALID_REQUEST", "older_than_days must be positive", field="older_than_days")
        return await self.service.auto_cancel_old_pending_todos(user_id, timedelta(days=older_than_days))
