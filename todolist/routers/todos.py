# routers/todos.py — Todo CRUD, lifecycle, tags, listings and reports for the signed-in user
# A todo owned by someone else is reported as not found.

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from todolist.auth import CurrentUser, get_current_user
from todolist.dependencies import todo_usecase
from todolist.entities import utcnow
from todolist.errors import NotFoundError, TodoAccessDeniedError
from todolist.pagination import PageResult, parse_page_request
from todolist.queries import TodoFilterCriteria
from todolist.schemas import (
    StatusUpdate, TagAdd, TodoCreate, TodoUpdate,
    paginated, success, tag_count_to_out, todo_to_out,
)
from todolist.usecases import (
    AddTodoTag, CancelStaleTodos, ChangeTodoStatus, CompleteTodo, CreateTodo, DeleteTodo,
    GetPopularTags, GetProductivity, GetTodo, GetTodoStatistics, ListTodos, RemoveTodoTag,
    StartOverdueTodos, UpdateTodo,
)

router = APIRouter(prefix="/api/v1/todos", tags=["Todos"])


async def _owned(call):
    try:
        return await call
    except TodoAccessDeniedError:
        raise NotFoundError("TODO_NOT_FOUND") from None


def _split(raw: Optional[str]) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


# ============================================================
# COLLECTION
# ============================================================

@router.get("")
async def list_todos(
    request: Request,
    response: Response,
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    priority: Optional[str] = Query(None, description="Comma-separated priorities"),
    tags: Optional[str] = Query(None, description="Comma-separated tags (any match)"),
    overdue: Optional[bool] = None,
    due_from: Optional[datetime] = None,
    due_to: Optional[datetime] = None,
    user: CurrentUser = Depends(get_current_user),
    usecase: ListTodos = Depends(todo_usecase(ListTodos)),
):
    """List todos with pagination, sorting, search and filters"""
    page = parse_page_request(request.query_params)
    criteria = TodoFilterCriteria(
        statuses=_split(status),
        priorities=_split(priority),
        tags=_split(tags),
        is_overdue=overdue,
        due_date_from=due_from,
        due_date_to=due_to,
        search_term=page.search,
        filters=page.filters,
    )
    now = utcnow()
    todos, total = await usecase.execute(user.id, criteria, page.to_query_options(), now)

    result = PageResult(page=page.page, page_size=page.size, total=total)
    response.headers.update(result.headers())
    return paginated([todo_to_out(t, now) for t in todos], result)


@router.post("", status_code=201)
async def create_todo(
    body: TodoCreate,
    user: CurrentUser = Depends(get_current_user),
    usecase: CreateTodo = Depends(todo_usecase(CreateTodo)),
):
    """Create a todo; a due date is suggested when omitted (except for low priority)"""
    todo = await usecase.execute(user.id, body)
    return success(todo_to_out(todo), "Todo created successfully")


# ============================================================
# REPORTS & MAINTENANCE
# ============================================================

@router.get("/statistics")
async def get_statistics(
    user: CurrentUser = Depends(get_current_user),
    usecase: GetTodoStatistics = Depends(todo_usecase(GetTodoStatistics)),
):
    """Counts by status and priority, due-date buckets and completion rate"""
    stats = await usecase.execute(user.id)
    return success(stats.to_dict())


@router.get("/productivity")
async def get_productivity(
    days: int = Query(30, ge=1, le=365),
    user: CurrentUser = Depends(get_current_user),
    usecase: GetProductivity = Depends(todo_usecase(GetProductivity)),
):
    """Productivity metrics over the last `days` days"""
    metrics = await usecase.execute(user.id, days)
    return success(metrics.to_dict())


@router.get("/tags/popular")
async def get_popular_tags(
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    usecase: GetPopularTags = Depends(todo_usecase(GetPopularTags)),
):
    """Most used tags, by usage count"""
    tags = await usecase.execute(user.id, limit)
    return success([tag_count_to_out(t) for t in tags])


@router.post("/maintenance/start-overdue")
async def start_overdue(
    user: CurrentUser = Depends(get_current_user),
    usecase: StartOverdueTodos = Depends(todo_usecase(StartOverdueTodos)),
):
    """Move overdue pending todos to in_progress"""
    updated = await usecase.execute(user.id)
    return success({"updated": updated}, f"{updated} overdue todos started")


@router.post("/maintenance/cancel-stale")
async def cancel_stale(
    older_than_days: int = Query(30, ge=1),
    user: CurrentUser = Depends(get_current_user),
    usecase: CancelStaleTodos = Depends(todo_usecase(CancelStaleTodos)),
):
    """Cancel pending todos whose due date passed more than `older_than_days` ago"""
    cancelled = await usecase.execute(user.id, older_than_days)
    return success({"cancelled": cancelled}, f"{cancelled} stale todos cancelled")


# ============================================================
# SINGLE TODO
# ============================================================

@router.get("/{todo_id}")
async def get_todo(
    todo_id: int,
    user: CurrentUser = Depends(get_current_user),
    usecase: GetTodo = Depends(todo_usecase(GetTodo)),
):
    todo = await _owned(usecase.execute(user.id, todo_id))
    return success(todo_to_out(todo))


@router.put("/{todo_id}")
async def update_todo(
    todo_id: int,
    body: TodoUpdate,
    user: CurrentUser = Depends(get_current_user),
    usecase: UpdateTodo = Depends(todo_usecase(UpdateTodo)),
):
    todo = await _owned(usecase.execute(user.id, todo_id, body))
    return success(todo_to_out(todo), "Todo updated successfully")


@router.delete("/{todo_id}")
async def delete_todo(
    todo_id: int,
    user: CurrentUser = Depends(get_current_user),
    usecase: DeleteTodo = Depends(todo_usecase(DeleteTodo)),
):
    await _owned(usecase.execute(user.id, todo_id))
    return success(None, "Todo deleted successfully")


@router.patch("/{todo_id}/status")
async def change_status(
    todo_id: int,
    body: StatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    usecase: ChangeTodoStatus = Depends(todo_usecase(ChangeTodoStatus)),
):
    todo = await _owned(usecase.execute(user.id, todo_id, body.status))
    return success(todo_to_out(todo), "Status updated")


@router.post("/{todo_id}/complete")
async def complete_todo(
    todo_id: int,
    user: CurrentUser = Depends(get_current_user),
    usecase: CompleteTodo = Depends(todo_usecase(CompleteTodo)),
):
    todo = await _owned(usecase.execute(user.id, todo_id))
    return success(todo_to_out(todo), "Todo completed")


@router.post("/{todo_id}/tags")
async def add_tag(
    todo_id: int,
    body: TagAdd,
    user: CurrentUser = Depends(get_current_user),
    usecase: AddTodoTag = Depends(todo_usecase(AddTodoTag)),
):
    todo = await _owned(usecase.execute(user.id, todo_id, body.tag))
    return success(todo_to_out(todo), "Tag added")


@router.delete("/{todo_id}/tags/{tag}")
async def remove_tag(
    todo_id: int,
    tag: str,
    user: CurrentUser = Depends(get_current_user),
    usecase: RemoveTodoTag = Depends(todo_usecase(RemoveTodoTag)),
):
    todo = await _owned(usecase.execute(user.id, todo_id, tag))
    return success(todo_to_out(todo), "Tag removed")
