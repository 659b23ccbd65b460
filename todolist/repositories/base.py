"""
Repository ports

Abstract command and query interfaces the use cases and domain services
depend on. Two implementations ship with the package: an in-memory
reference store (repositories.memory) and SQLAlchemy async repositories
(repositories.sql).

Every implementation raises RecordNotFoundError for missing rows,
DuplicateEntryError for uniqueness violations and RepositoryError for
anything else.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from todolist.entities import Person, Todo, User
from todolist.queries import Filter, QueryOptions, TagCount, TodoFilterCriteria, TodoStatistics
from todolist.valueobjects import Priority, TodoStatus, UserRole, UserStatus


class UserRepository(ABC):
    """Command-side access to users."""

    @abstractmethod
    async def save(self, user: User) -> None:
        """
        Insert or update a user.

        Raises:
            DuplicateEntryError: username or person already bound to another user
        """

    @abstractmethod
    async def delete(self, user_id: int) -> None:
        """Remove a user. Raises RecordNotFoundError when absent."""

    @abstractmethod
    async def find_by_id(self, user_id: int) -> User:
        pass

    @abstractmethod
    async def find_by_username(self, username: str) -> User:
        pass

    @abstractmethod
    async def find_by_person_id(self, person_id: int) -> User:
        pass

    @abstractmethod
    async def exists_by_username(self, username: str) -> bool:
        pass

    @abstractmethod
    async def exists_by_person_id(self, person_id: int) -> bool:
        pass


class UserQueryRepository(ABC):
    """Read-side user queries used by administration and security sweeps."""

    @abstractmethod
    async def find_all(self, options: Optional[QueryOptions] = None) -> List[User]:
        pass

    @abstractmethod
    async def find_by_status(self, status: UserStatus, options: Optional[QueryOptions] = None) -> List[User]:
        pass

    @abstractmethod
    async def find_by_role(self, role: UserRole, options: Optional[QueryOptions] = None) -> List[User]:
        pass

    @abstractmethod
    async def find_inactive_users(self, days: int, options: Optional[QueryOptions] = None) -> List[User]:
        """
        Active users whose last login is missing or older than `days`.

        Args:
            days: Inactivity threshold in days
            options: Limit/offset/order

        Returns:
            Matching users
        """

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def count_by_status(self) -> Dict[UserStatus, int]:
        pass

    @abstractmethod
    async def count_by_role(self) -> Dict[UserRole, int]:
        pass


class PersonRepository(ABC):
    @abstractmethod
    async def save(self, person: Person) -> None:
        """
        Insert or update a person.

        Raises:
            DuplicateEntryError: email or tax ID already registered
        """

    @abstractmethod
    async def delete(self, person_id: int) -> None:
        pass

    @abstractmethod
    async def find_by_id(self, person_id: int) -> Person:
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Person:
        pass

    @abstractmethod
    async def exists_by_email(self, email: str) -> bool:
        pass

    @abstractmethod
    async def exists_by_tax_id(self, tax_id: str) -> bool:
        pass


class TodoRepository(ABC):
    @abstractmethod
    async def save(self, todo: Todo) -> None:
        """Insert or update a todo together with its tag set."""

    @abstractmethod
    async def delete(self, todo_id: int) -> None:
        pass

    @abstractmethod
    async def find_by_id(self, todo_id: int) -> Todo:
        pass

    @abstractmethod
    async def find_by_user_id(self, user_id: int, options: Optional[QueryOptions] = None) -> List[Todo]:
        pass

    @abstractmethod
    async def delete_by_user_id(self, user_id: int) -> int:
        """Remove every todo owned by `user_id`; returns the number removed."""


class TodoQueryRepository(ABC):
    """
    Read-side todo queries and aggregations.

    All list queries honour QueryOptions ordering, defaulting to
    created_at DESC. Time-relative queries take an optional `now` so callers
    and tests can pin the clock.
    """

    @abstractmethod
    async def find_all(self, options: Optional[QueryOptions] = None) -> List[Todo]:
        pass

    @abstractmethod
    async def find_by_filters(self, criteria: TodoFilterCriteria, options: Optional[QueryOptions] = None,
                              now: Optional[datetime] = None) -> List[Todo]:
        pass

    @abstractmethod
    async def find_by_user_and_status(self, user_id: int, status: TodoStatus,
                                      options: Optional[QueryOptions] = None) -> List[Todo]:
        pass

    @abstractmethod
    async def find_by_user_and_priority(self, user_id: int, priority: Priority,
                                        options: Optional[QueryOptions] = None) -> List[Todo]:
        pass

    @abstractmethod
    async def find_overdue(self, user_id: int, options: Optional[QueryOptions] = None,
                           now: Optional[datetime] = None) -> List[Todo]:
        """Todos with due_date < now and status pending or in_progress."""

    @abstractmethod
    async def find_due_today(self, user_id: int, options: Optional[QueryOptions] = None,
                             now: Optional[datetime] = None) -> List[Todo]:
        """Todos due within [today 00:00 UTC, tomorrow 00:00 UTC)."""

    @abstractmethod
    async def find_due_between(self, user_id: int, start: datetime, end: datetime,
                               options: Optional[QueryOptions] = None) -> List[Todo]:
        """Todos due within [start, end], both bounds inclusive."""

    @abstractmethod
    async def find_by_tag(self, user_id: int, tag: str, options: Optional[QueryOptions] = None) -> List[Todo]:
        pass

    @abstractmethod
    async def find_by_tags(self, user_id: int, tags: List[str], options: Optional[QueryOptions] = None) -> List[Todo]:
        """Todos carrying every tag in `tags`."""

    @abstractmethod
    async def search(self, user_id: int, term: str, options: Optional[QueryOptions] = None) -> List[Todo]:
        """Case-insensitive substring match over title and description."""

    @abstractmethod
    async def count(self, filters: Optional[List[Filter]] = None) -> int:
        pass

    @abstractmethod
    async def count_by_criteria(self, criteria: TodoFilterCriteria, now: Optional[datetime] = None) -> int:
        pass

    @abstractmethod
    async def count_by_status(self, user_id: int) -> Dict[TodoStatus, int]:
        pass

    @abstractmethod
    async def count_by_priority(self, user_id: int) -> Dict[Priority, int]:
        pass

    @abstractmethod
    async def get_statistics(self, user_id: int, now: Optional[datetime] = None) -> TodoStatistics:
        pass

    @abstractmethod
    async def get_popular_tags(self, user_id: int, limit: int = 10) -> List[TagCount]:
        """Tags ordered by usage count (descending), then name."""
