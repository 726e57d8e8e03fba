"""
Gradian Application Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Wires settings, storage, caches and the per-schema Repository -> Service ->
Controller chain into a single application object shared by the API and
the CLI.
"""

import logging
from typing import Any, Dict, List, Optional

from .cache import CacheManager, Clock
from .catalogs import CatalogBackedRepository, CompanyCatalog, RelationTypeCatalog
from .config import AppSettings, DataSource
from .controller import BaseController
from .database import DatabaseManager, SqlCollectionStore, init_database
from .processors import PasswordProcessor
from .relations import RelationsStorage
from .repository import BaseRepository
from .schemas import SchemaRegistry
from .security import PasswordManager
from .service import BaseService
from .storage import (
    COMPANIES_COLLECTION, RELATION_TYPES_COLLECTION, RELATIONS_COLLECTION, SCHEMAS_COLLECTION,
    CollectionStore, Entity, JsonCollectionStore,
)
from .utils import Now, utc_now

logger = logging.getLogger(__name__)

CORE_COLLECTIONS = (SCHEMAS_COLLECTION, COMPANIES_COLLECTION, RELATIONS_COLLECTION, RELATION_TYPES_COLLECTION)


class GradianApplication:
    """Container for the long-lived application services."""

    def __init__(
        self,
        settings: AppSettings,
        store: Optional[CollectionStore] = None,
        now: Now = utc_now,
        clock: Optional[Clock] = None
    ):
        self.settings = settings
        self.now = now
        self.db_manager: Optional[DatabaseManager] = None

        if store is None:
            store = self._create_store()
        self.store = store

        cache_kwargs = {"clock": clock} if clock is not None else {}
        self.cache = CacheManager(settings.cache, **cache_kwargs)

        self.registry = SchemaRegistry(store, self.cache, settings.storage.soft_delete_policies)
        self.password_manager = PasswordManager(settings.security.pepper, settings.security.password_scheme)
        self.password_processor = PasswordProcessor(self.password_manager)
        self.relations = RelationsStorage(store, settings.storage.enforce_unique_relations, now=now)
        self.relation_types = RelationTypeCatalog(store, self.cache, now=now)
        self.companies = CompanyCatalog(store, self.cache, now=now)

    def _create_store(self) -> CollectionStore:
        storage = self.settings.storage
        if storage.data_source == DataSource.DATABASE:
            self.db_manager = init_database(self.settings.database)
            logger.info("Using database collection store")
            return SqlCollectionStore(self.db_manager)

        logger.info(f"Using JSON collection store in {storage.data_dir}")
        return JsonCollectionStore(storage.data_dir)

    async def startup(self) -> None:
        for collection in CORE_COLLECTIONS:
            await self.store.ensure(collection)
        if not self.settings.storage.demo_mode:
            logger.warning("DEMO_MODE is disabled but remote proxying is not supported; serving local data")
        logger.info(f"{self.settings.app_name} application started")

    def shutdown(self) -> None:
        if self.db_manager:
            self.db_manager.close()

    async def clear_caches(self) -> None:
        await self.registry.clear_cache()
        await self.companies.invalidate()
        await self.relation_types.invalidate()
        logger.info("Cleared schema, company and relation type caches")

    async def controller_for(self, schema_id: str) -> BaseController:
        """Build the Repository -> Service -> Controller chain for one schema."""
        policy = await self.registry.get_policy(schema_id)
        if schema_id == COMPANIES_COLLECTION:
            repository = CatalogBackedRepository(
                policy, self.store, self.companies,
                password_processor=self.password_processor, now=self.now
            )
        else:
            repository = BaseRepository(policy, self.store, self.password_processor, now=self.now)
        service = BaseService(repository, policy)
        return BaseController(service, policy)

    async def load_entity(self, schema_id: str, entity_id: str) -> Optional[Entity]:
        """Fetch one entity of any registered schema, or None."""
        if schema_id == COMPANIES_COLLECTION:
            return await self.companies.find(entity_id)
        if not await self.registry.is_valid_schema_id(schema_id):
            return None
        policy = await self.registry.get_policy(schema_id)
        return await BaseRepository(policy, self.store, now=self.now).find_by_id(entity_id)

    async def load_collections(self, *schema_ids: str) -> Dict[str, List[Entity]]:
        return {schema_id: await self.store.read(schema_id) for schema_id in schema_ids}

    async def seed(self, defaults: Dict[str, List[Dict[str, Any]]]) -> Dict[str, int]:
        """Write default items into empty collections; returns what was seeded."""
        seeded = {}
        for collection, items in defaults.items():
            async with self.store.lock(collection):
                if await self.store.read(collection):
                    continue
                await self.store.write(collection, items)
                seeded[collection] = len(items)
                logger.info(f"Seeded {len(items)} item(s) into {collection}")
        if seeded:
            await self.clear_caches()
        return seeded
