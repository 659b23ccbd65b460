from todolist.repositories.base import (
    PersonRepository, TodoQueryRepository, TodoRepository, UserQueryRepository, UserRepository,
)
from todolist.repositories.memory import (
    InMemoryPersonRepository, InMemoryStore, InMemoryTodoRepository, InMemoryUserRepository,
)
from todolist.repositories.sql import SqlPersonRepository, SqlTodoRepository, SqlUserRepository
