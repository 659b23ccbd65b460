"""Application use cases: one class per operation, each with an async execute()."""

from todolist.usecases.auth import (
    ChangePassword, GetCurrentUser, LoginResult, LoginUser, LogoutUser, RefreshSession, RegisterUser,
)
from todolist.usecases.people import GetProfile, UpdateProfile
from todolist.usecases.todos import (
    AddTodoTag, CancelStaleTodos, ChangeTodoStatus, CompleteTodo, CreateTodo, DeleteTodo,
    GetPopularTags, GetProductivity, GetTodo, GetTodoStatistics, ListTodos, RemoveTodoTag,
    StartOverdueTodos, UpdateTodo,
)
