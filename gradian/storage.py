"""
Gradian Storage Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Whole-collection persistence. Each collection is a flat JSON array stored
in ``<data_dir>/all-<collection>.json``; the database back end in
``database.py`` implements the same interface on top of SQLAlchemy.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Union

import aiofiles
import aiofiles.os

from .errors import DataStorageError

logger = logging.getLogger(__name__)

# Well-known collection names
SCHEMAS_COLLECTION = "schemas"
COMPANIES_COLLECTION = "companies"
RELATIONS_COLLECTION = "data-relations"
RELATION_TYPES_COLLECTION = "relation-types"

Entity = Dict[str, Any]


class CollectionStore(ABC):
    """Reads and writes named collections of entity dicts as a whole."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    @abstractmethod
    async def read(self, collection: str) -> List[Entity]:
        """Return every item of the collection, creating it empty if absent."""
        pass

    @abstractmethod
    async def write(self, collection: str, items: List[Entity]) -> None:
        """Replace the collection's contents."""
        pass

    @abstractmethod
    async def ensure(self, collection: str) -> None:
        """Create the collection if it does not exist yet."""
        pass

    @asynccontextmanager
    async def lock(self, collection: str) -> AsyncIterator[None]:
        """Serialise read-modify-write cycles on one collection."""
        lock = self._locks.setdefault(collection, asyncio.Lock())
        async with lock:
            yield


class JsonCollectionStore(CollectionStore):
    """File-backed collections under a data directory."""

    def __init__(self, data_dir: Union[str, Path]):
        super().__init__()
        self.data_dir = Path(data_dir)

    def collection_path(self, collection: str) -> Path:
        if not collection or "/" in collection or "\\" in collection or collection.startswith("."):
            raise DataStorageError("resolve", f"invalid collection name {collection!r}")
        return self.data_dir / f"all-{collection}.json"

    async def ensure(self, collection: str) -> None:
        path = self.collection_path(collection)
        try:
            if not await aiofiles.os.path.exists(path):
                await aiofiles.os.makedirs(self.data_dir, exist_ok=True)
                async with aiofiles.open(path, "w", encoding="utf-8") as f:
                    await f.write("[]")
                logger.info(f"Created collection file {path}")
        except OSError as e:
            raise DataStorageError("ensure", f"{path}: {e}") from e

    async def read(self, collection: str) -> List[Entity]:
        path = self.collection_path(collection)
        await self.ensure(collection)

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise DataStorageError("read", f"{path}: {e}") from e

        if not content.strip():
            return []

        try:
            items = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Malformed JSON in {path}: {e}")
            raise DataStorageError("read", f"malformed JSON in {path.name}: {e}") from e

        if not isinstance(items, list):
            raise DataStorageError("read", f"{path.name} does not contain a JSON array")

        return items

    async def write(self, collection: str, items: List[Entity]) -> None:
        path = self.collection_path(collection)
        try:
            payload = json.dumps(items, indent=2, ensure_ascii=False, default=str)
            await aiofiles.os.makedirs(self.data_dir, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(payload)
        except (OSError, TypeError, ValueError) as e:
            raise DataStorageError("write", f"{path}: {e}") from e

        logger.debug(f"Wrote {len(items)} item(s) to {path.name}")
