"""
Gradian Catalogs Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Small, frequently read collections served through the TTL cache:
relation types and companies. Every write goes to the store and then
invalidates the cached copy.
"""

import logging
from typing import Any, Dict, List, Optional

from .cache import CacheManager, CachedCollection
from .errors import DuplicateEntityError, EntityNotFoundError, ValidationError
from .repository import BaseRepository, FilterParams, apply_filters
from .schemas import EntityPolicy
from .storage import COMPANIES_COLLECTION, RELATION_TYPES_COLLECTION, CollectionStore, Entity
from .utils import Now, new_id, to_iso, utc_now

logger = logging.getLogger(__name__)


class CachedCatalog:
    """Base for cached whole-collection catalogs keyed by ``id``."""

    collection: str = ""
    entity_name: str = "Item"

    def __init__(self, store: CollectionStore, cache: CacheManager, now: Now = utc_now):
        self.store = store
        self.now = now
        self._cached = CachedCollection(self.collection, self._read, cache)

    async def _read(self) -> List[Entity]:
        return await self.store.read(self.collection)

    async def list(self) -> List[Entity]:
        return await self._cached.load()

    async def get(self, item_id: str) -> Entity:
        for item in await self.list():
            if item.get("id") == item_id:
                return item
        raise EntityNotFoundError(self.entity_name, item_id)

    async def invalidate(self) -> None:
        await self._cached.invalidate()

    async def _save(self, items: List[Entity]) -> None:
        await self.store.write(self.collection, items)
        await self.invalidate()

    def _prepare_new(self, data: Dict[str, Any]) -> Entity:
        return dict(data)

    def _merge(self, existing: Entity, data: Dict[str, Any], item_id: str) -> Entity:
        return {**existing, **data, "id": item_id}

    async def create(self, data: Dict[str, Any]) -> Entity:
        item = self._prepare_new(data)
        async with self.store.lock(self.collection):
            items = await self.store.read(self.collection)
            if any(existing.get("id") == item["id"] for existing in items):
                raise DuplicateEntityError(self.entity_name, "ID", item["id"])
            items.append(item)
            await self._save(items)

        logger.info(f"Created {self.entity_name.lower()} {item['id']}")
        return item

    async def update(self, item_id: str, data: Dict[str, Any]) -> Entity:
        async with self.store.lock(self.collection):
            items = await self.store.read(self.collection)
            index = next((i for i, item in enumerate(items) if item.get("id") == item_id), None)
            if index is None:
                raise EntityNotFoundError(self.entity_name, item_id)
            items[index] = self._merge(items[index], data, item_id)
            await self._save(items)

        logger.info(f"Updated {self.entity_name.lower()} {item_id}")
        return items[index]

    async def delete(self, item_id: str) -> Entity:
        async with self.store.lock(self.collection):
            items = await self.store.read(self.collection)
            index = next((i for i, item in enumerate(items) if item.get("id") == item_id), None)
            if index is None:
                raise EntityNotFoundError(self.entity_name, item_id)
            removed = items.pop(index)
            await self._save(items)

        logger.info(f"Deleted {self.entity_name.lower()} {item_id}")
        return removed


class RelationTypeCatalog(CachedCatalog):
    """Relation type metadata; ids are chosen by the caller."""

    collection = RELATION_TYPES_COLLECTION
    entity_name = "Relation type"

    def _prepare_new(self, data: Dict[str, Any]) -> Entity:
        if not data.get("id"):
            raise ValidationError("Relation type ID is required",
                                  [{"field": "id", "message": "id is required", "code": "REQUIRED"}])
        return {**data, "id": str(data["id"])}


class CompanyCatalog(CachedCatalog):
    """Companies; ids default to a ULID and records carry timestamps."""

    collection = COMPANIES_COLLECTION
    entity_name = "Company"

    def _prepare_new(self, data: Dict[str, Any]) -> Entity:
        timestamp = to_iso(self.now())
        item_id = data.get("id")
        return {
            **data,
            "id": str(item_id) if item_id else new_id(),
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }

    def _merge(self, existing: Entity, data: Dict[str, Any], item_id: str) -> Entity:
        merged = {**existing, **data, "id": item_id, "updatedAt": to_iso(self.now())}
        if "createdAt" in existing:
            merged["createdAt"] = existing["createdAt"]
        else:
            merged.pop("createdAt", None)
        return merged

    async def find(self, company_id: str) -> Optional[Entity]:
        try:
            return await self.get(company_id)
        except EntityNotFoundError:
            return None


class CatalogBackedRepository(BaseRepository):
    """
    Repository whose list reads come from a cached catalog. Writes go to the
    store as usual and then invalidate the catalog.
    """

    def __init__(self, policy: EntityPolicy, store: CollectionStore, catalog: CachedCatalog, **kwargs):
        super().__init__(policy, store, **kwargs)
        self.catalog = catalog

    async def find_all(self, filters: Optional[FilterParams] = None) -> List[Entity]:
        return apply_filters(await self.catalog.list(), filters)

    async def create(self, data: Dict[str, Any]) -> Entity:
        entity = await super().create(data)
        await self.catalog.invalidate()
        return entity

    async def update(self, entity_id: str, data: Dict[str, Any]) -> Optional[Entity]:
        entity = await super().update(entity_id, data)
        await self.catalog.invalidate()
        return entity

    async def delete(self, entity_id: str) -> Optional[Entity]:
        entity = await super().delete(entity_id)
        await self.catalog.invalidate()
        return entity
