"""
Gradian Service Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Business layer on top of BaseRepository: schema validation, pagination and
user-facing result messages. Services never raise domain errors to their
caller; they return a ServiceResult that carries the error instead.
"""

import logging
import math
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from .errors import DomainError, EntityNotFoundError, ValidationError
from .processors import apply_defaults
from .repository import BaseRepository, FilterParams
from .schemas import EntityPolicy
from .storage import Entity
from .validation import validate_entity

logger = logging.getLogger(__name__)

T = TypeVar('T')


# ==================== RESULT TYPES ====================

class ServiceResult(Generic[T]):
    """Result wrapper for service operations."""

    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        message: Optional[str] = None,
        error: Optional[DomainError] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.success = success
        self.data = data
        self.message = message
        self.error = error
        self.metadata = metadata or {}

    @classmethod
    def success_result(cls, data: T, message: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> 'ServiceResult[T]':
        return cls(success=True, data=data, message=message, metadata=metadata)

    @classmethod
    def error_result(cls, error: DomainError, metadata: Optional[Dict[str, Any]] = None) -> 'ServiceResult[T]':
        return cls(success=False, error=error, metadata=metadata)

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def is_success(self) -> bool:
        return self.success

    def is_error(self) -> bool:
        return not self.success

    def get_data(self) -> T:
        """Get the data, re-raising the carried error if this is an error result."""
        if self.is_error():
            raise self.error
        return self.data

    def get_data_or_none(self) -> Optional[T]:
        return self.data if self.is_success() else None

    def __bool__(self) -> bool:
        return self.success


def _parse_positive_int(name: str, value: Any) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a positive integer") from None
    if number < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return number


class PaginationParams:
    """
    Page and page size. ``limit=None`` means no paging: every record is
    returned on a single page.
    """

    def __init__(self, page: int = 1, limit: Optional[int] = None):
        self.page = page
        self.limit = limit

    @classmethod
    def from_query(cls, page: Any = None, limit: Any = None) -> 'PaginationParams':
        """Parse raw query values; non-numeric or non-positive values raise ValidationError."""
        parsed_page = 1 if page in (None, "") else _parse_positive_int("page", page)
        parsed_limit = None if limit in (None, "") else _parse_positive_int("limit", limit)
        return cls(parsed_page, parsed_limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {'page': self.page, 'limit': self.limit}


class PaginatedResult(Generic[T]):
    """A page of items plus the size of the full filtered set."""

    def __init__(self, items: List[T], total_count: int, pagination: PaginationParams):
        self.items = items
        self.total_count = total_count
        self.pagination = pagination

    @classmethod
    def paginate(cls, items: List[T], pagination: PaginationParams) -> 'PaginatedResult[T]':
        if pagination.limit is None:
            return cls(list(items), len(items), pagination)
        start = pagination.offset
        return cls(items[start:start + pagination.limit], len(items), pagination)

    @property
    def page(self) -> int:
        return self.pagination.page if self.pagination.limit else 1

    @property
    def limit(self) -> int:
        return self.pagination.limit if self.pagination.limit else self.total_count

    @property
    def total_pages(self) -> int:
        if self.pagination.limit is None:
            return 1 if self.total_count else 0
        return math.ceil(self.total_count / self.pagination.limit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page': self.page,
            'limit': self.limit,
            'total': self.total_count,
            'totalPages': self.total_pages,
        }


# ==================== BASE SERVICE ====================

class BaseService:
    """Generic CRUD service for one schema-driven collection."""

    def __init__(self, repository: BaseRepository, policy: EntityPolicy):
        self.repository = repository
        self.policy = policy

    async def _execute(self, operation: Callable[[], Awaitable[ServiceResult]], operation_name: str) -> ServiceResult:
        """Run an operation, turning domain errors into error results."""
        try:
            return await operation()
        except DomainError as e:
            if e.status_code >= 500:
                logger.error(f"{operation_name} failed for {self.policy.schema_id}: {e.message}")
            else:
                logger.debug(f"{operation_name} rejected for {self.policy.schema_id}: {e.message}")
            return ServiceResult.error_result(e)

    # Validation hooks

    async def _validate_create_rules(self, data: Dict[str, Any]) -> None:
        schema = self.policy.schema
        if schema is None:
            return
        errors = validate_entity(schema, apply_defaults(self.policy, data))
        if errors:
            raise ValidationError("Validation failed", [e.to_dict() for e in errors])

    async def _validate_update_rules(self, entity_id: str, data: Dict[str, Any]) -> None:
        schema = self.policy.schema
        if schema is None:
            return
        errors = validate_entity(schema, data, partial=True)
        if errors:
            raise ValidationError("Validation failed", [e.to_dict() for e in errors])

    # Operations

    async def get_all(
        self,
        filters: Optional[FilterParams] = None,
        pagination: Optional[PaginationParams] = None
    ) -> ServiceResult[List[Entity]]:
        async def _read_operation():
            entities = await self.repository.find_all(filters)
            page = PaginatedResult.paginate(entities, pagination or PaginationParams())
            return ServiceResult.success_result(
                page.items,
                message=f"Retrieved {len(page.items)} {self.policy.plural_name}",
                metadata={'pagination': page.to_dict()},
            )

        return await self._execute(_read_operation, "get_all")

    async def get_by_id(self, entity_id: str) -> ServiceResult[Entity]:
        async def _get_operation():
            entity = await self.repository.find_by_id(entity_id)
            if entity is None:
                raise EntityNotFoundError(self.policy.entity_name, entity_id)
            return ServiceResult.success_result(entity)

        return await self._execute(_get_operation, "get_by_id")

    async def create(self, data: Dict[str, Any]) -> ServiceResult[Entity]:
        async def _create_operation():
            await self._validate_create_rules(data)
            entity = await self.repository.create(data)
            return ServiceResult.success_result(
                entity, message=f"{self.policy.entity_name} created successfully"
            )

        return await self._execute(_create_operation, "create")

    async def update(self, entity_id: str, data: Dict[str, Any]) -> ServiceResult[Entity]:
        async def _update_operation():
            await self._validate_update_rules(entity_id, data)
            entity = await self.repository.update(entity_id, data)
            if entity is None:
                raise EntityNotFoundError(self.policy.entity_name, entity_id)
            return ServiceResult.success_result(
                entity, message=f"{self.policy.entity_name} updated successfully"
            )

        return await self._execute(_update_operation, "update")

    async def delete(self, entity_id: str) -> ServiceResult[Entity]:
        async def _delete_operation():
            entity = await self.repository.delete(entity_id)
            if entity is None:
                raise EntityNotFoundError(self.policy.entity_name, entity_id)
            return ServiceResult.success_result(
                entity, message=f"{self.policy.entity_name} deleted successfully"
            )

        return await self._execute(_delete_operation, "delete")
