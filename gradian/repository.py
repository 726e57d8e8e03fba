"""
Gradian Repository Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Generic data access for schema-driven entity collections. A repository is
parameterised by a schema id and an EntityPolicy and works on any
CollectionStore (JSON files or the database back end).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

from .errors import DuplicateEntityError
from .processors import PasswordProcessor, apply_defaults
from .schemas import DeleteMode, EntityPolicy
from .storage import CollectionStore, Entity
from .utils import Now, new_id, parse_datetime, to_iso, utc_now

logger = logging.getLogger(__name__)

SEARCHABLE_FIELDS = (
    "name", "title", "email", "phone", "description",
    "productName", "requestId", "batchNumber", "productSku",
    "companyName", "tenderTitle", "projectName", "serverName",
)

RESERVED_FILTER_KEYS = frozenset({
    "search", "status", "category", "page", "limit", "sortBy", "sortOrder",
    "includeIds", "excludeIds", "companyId", "companyIds", "dateFrom", "dateTo",
})

IMMUTABLE_FIELDS = ("id", "createdAt")


# ==================== FILTERING ====================

def split_ids(value: Union[str, Sequence[str], None]) -> List[str]:
    """Accept ``"a,b"`` or ``["a", "b"]`` (or a mix) and return trimmed ids."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    ids = []
    for item in value:
        ids.extend(part.strip() for part in str(item).split(","))
    return [i for i in ids if i]


@dataclass
class FilterParams:
    """Filter, search and sort criteria for ``find_all``."""

    search: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None
    include_ids: Optional[List[str]] = None
    exclude_ids: Optional[List[str]] = None
    company_ids: Optional[List[str]] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: str = "asc"
    fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "FilterParams":
        """Build criteria from query-style parameters (camelCase keys)."""
        company_ids = split_ids(params.get("companyIds"))
        if not company_ids and params.get("companyId"):
            company_ids = split_ids(params.get("companyId"))

        include_ids = params.get("includeIds")
        exclude_ids = params.get("excludeIds")

        return cls(
            search=params.get("search") or None,
            status=params.get("status") or None,
            category=params.get("category") or None,
            include_ids=split_ids(include_ids) if include_ids is not None else None,
            exclude_ids=split_ids(exclude_ids) if exclude_ids is not None else None,
            company_ids=company_ids or None,
            date_from=params.get("dateFrom") or None,
            date_to=params.get("dateTo") or None,
            sort_by=params.get("sortBy") or None,
            sort_order=str(params.get("sortOrder") or "asc").lower(),
            fields={
                key: value for key, value in params.items()
                if key not in RESERVED_FILTER_KEYS and not key.endswith("[]") and value is not None
            },
        )


def _matches_field(entity: Entity, key: str, expected: Any) -> bool:
    actual = entity.get(key)
    if actual is None:
        return False
    if isinstance(actual, bool):
        return str(actual).lower() == str(expected).lower()
    if isinstance(actual, (list, dict)):
        return False
    return str(actual) == str(expected)


def _sort_key(entity: Entity, sort_by: str):
    value = entity.get(sort_by)
    if value is None:
        return (1, 0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, 0, value)
    return (0, 1, str(value).lower())


def apply_filters(entities: List[Entity], filters: Optional[FilterParams]) -> List[Entity]:
    """Linear-scan filtering, then an optional stable sort."""
    if not filters:
        return list(entities)

    filtered = list(entities)

    if filters.include_ids is not None:
        include = set(filters.include_ids)
        filtered = [e for e in filtered if e.get("id") in include]

    if filters.exclude_ids:
        exclude = set(filters.exclude_ids)
        filtered = [e for e in filtered if e.get("id") not in exclude]

    if filters.search:
        needle = filters.search.lower()
        filtered = [
            e for e in filtered
            if any(isinstance(e.get(f), str) and needle in e[f].lower() for f in SEARCHABLE_FIELDS)
        ]

    if filters.status:
        wanted = filters.status.lower()
        filtered = [e for e in filtered if isinstance(e.get("status"), str) and e["status"].lower() == wanted]

    if filters.category:
        def in_category(entity: Entity) -> bool:
            categories = entity.get("categories")
            if isinstance(categories, list):
                return filters.category in categories
            return entity.get("category") == filters.category

        filtered = [e for e in filtered if in_category(e)]

    if filters.company_ids:
        companies = set(filters.company_ids)
        filtered = [
            e for e in filtered
            if e.get("companyId") is not None and str(e["companyId"]) in companies
        ]

    date_from = parse_datetime(filters.date_from)
    date_to = parse_datetime(filters.date_to)
    if date_from or date_to:
        def in_range(entity: Entity) -> bool:
            created = parse_datetime(entity.get("createdAt"))
            if created is None:
                return False
            if date_from and created < date_from:
                return False
            if date_to and created > date_to:
                return False
            return True

        filtered = [e for e in filtered if in_range(e)]

    for key, expected in filters.fields.items():
        filtered = [e for e in filtered if _matches_field(e, key, expected)]

    if filters.sort_by:
        reverse = filters.sort_order == "desc"
        present = [e for e in filtered if e.get(filters.sort_by) is not None]
        missing = [e for e in filtered if e.get(filters.sort_by) is None]
        present.sort(key=lambda e: _sort_key(e, filters.sort_by), reverse=reverse)
        filtered = present + missing

    return filtered


# ==================== REPOSITORY ====================

@runtime_checkable
class IRepository(Protocol):
    """Repository interface for entity collections."""

    async def find_all(self, filters: Optional[FilterParams] = None) -> List[Entity]:
        ...

    async def find_by_id(self, entity_id: str) -> Optional[Entity]:
        ...

    async def create(self, data: Dict[str, Any]) -> Entity:
        ...

    async def update(self, entity_id: str, data: Dict[str, Any]) -> Optional[Entity]:
        ...

    async def delete(self, entity_id: str) -> Optional[Entity]:
        ...

    async def exists(self, entity_id: str) -> bool:
        ...

    async def count(self, filters: Optional[FilterParams] = None) -> int:
        ...


class BaseRepository:
    """CRUD over one schema's collection."""

    def __init__(
        self,
        policy: EntityPolicy,
        store: CollectionStore,
        password_processor: Optional[PasswordProcessor] = None,
        now: Now = utc_now
    ):
        self.policy = policy
        self.schema_id = policy.schema_id
        self.store = store
        self.password_processor = password_processor
        self.now = now

    def _timestamp(self) -> str:
        return to_iso(self.now())

    def _hash_passwords(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.password_processor and self.policy.has_password_fields:
            return self.password_processor.process(self.policy, data)
        return data

    async def find_all(self, filters: Optional[FilterParams] = None) -> List[Entity]:
        entities = await self.store.read(self.schema_id)
        return apply_filters(entities, filters)

    async def find_by_id(self, entity_id: str) -> Optional[Entity]:
        entities = await self.store.read(self.schema_id)
        return next((e for e in entities if e.get("id") == entity_id), None)

    async def create(self, data: Dict[str, Any]) -> Entity:
        processed = apply_defaults(self.policy, data)
        processed = self._hash_passwords(processed)

        async with self.store.lock(self.schema_id):
            entities = await self.store.read(self.schema_id)

            entity_id = processed.get("id")
            if entity_id in (None, ""):
                entity_id = new_id()
            else:
                entity_id = str(entity_id)
                if any(e.get("id") == entity_id for e in entities):
                    raise DuplicateEntityError(self.policy.entity_name, "ID", entity_id)

            timestamp = self._timestamp()
            entity = {
                **processed,
                "id": entity_id,
                "createdAt": timestamp,
                "updatedAt": timestamp,
            }

            entities.append(entity)
            await self.store.write(self.schema_id, entities)

        logger.info(f"Created {self.schema_id} record {entity_id}")
        return entity

    async def update(self, entity_id: str, data: Dict[str, Any]) -> Optional[Entity]:
        patch = {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS}
        patch = self._hash_passwords(patch)

        async with self.store.lock(self.schema_id):
            entities = await self.store.read(self.schema_id)
            index = next((i for i, e in enumerate(entities) if e.get("id") == entity_id), None)
            if index is None:
                return None

            updated = {
                **entities[index],
                **patch,
                "id": entity_id,
                "updatedAt": self._timestamp(),
            }
            if "createdAt" in entities[index]:
                updated["createdAt"] = entities[index]["createdAt"]

            entities[index] = updated
            await self.store.write(self.schema_id, entities)

        logger.info(f"Updated {self.schema_id} record {entity_id}")
        return updated

    async def delete(self, entity_id: str) -> Optional[Entity]:
        """Apply the delete policy; returns the removed or soft-deleted entity."""
        delete_policy = self.policy.delete_policy

        async with self.store.lock(self.schema_id):
            entities = await self.store.read(self.schema_id)
            index = next((i for i, e in enumerate(entities) if e.get("id") == entity_id), None)
            if index is None:
                return None

            if delete_policy.mode == DeleteMode.SOFT:
                result = {
                    **entities[index],
                    delete_policy.field: delete_policy.value,
                    "updatedAt": self._timestamp(),
                }
                entities[index] = result
            else:
                result = entities.pop(index)

            await self.store.write(self.schema_id, entities)

        logger.info(f"Deleted {self.schema_id} record {entity_id} ({delete_policy.mode.value})")
        return result

    async def exists(self, entity_id: str) -> bool:
        return await self.find_by_id(entity_id) is not None

    async def count(self, filters: Optional[FilterParams] = None) -> int:
        return len(await self.find_all(filters))
