"""
Gradian Relations Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Typed links between entities, stored as a flat list in the
``data-relations`` collection. The list is read fresh on every call.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import DuplicateEntityError, EntityNotFoundError, ValidationError
from .storage import RELATIONS_COLLECTION, CollectionStore, Entity
from .utils import Now, new_id, to_iso, utc_now

logger = logging.getLogger(__name__)

RELATION_FIELDS = ("sourceSchema", "sourceId", "targetSchema", "targetId", "relationTypeId")

EntityLoader = Callable[[str, str], Awaitable[Optional[Entity]]]


class RelationDirection(str, Enum):
    SOURCE = "source"
    TARGET = "target"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Optional[str]) -> "RelationDirection":
        if not value:
            return cls.BOTH
        try:
            return cls(value.lower())
        except ValueError:
            raise ValidationError(f"Invalid direction: {value}. Expected source, target or both") from None


class RelationsStorage:
    """Queries and mutations over the relation list."""

    def __init__(self, store: CollectionStore, enforce_unique: bool = False, now: Now = utc_now):
        self.store = store
        self.enforce_unique = enforce_unique
        self.now = now

    async def read_all_relations(self) -> List[Entity]:
        return await self.store.read(RELATIONS_COLLECTION)

    async def get_relation_by_id(self, relation_id: str) -> Optional[Entity]:
        relations = await self.read_all_relations()
        return next((r for r in relations if r.get("id") == relation_id), None)

    async def create_relation(self, data: Dict[str, Any]) -> Entity:
        """Create a relation; all five link fields are required."""
        missing = [name for name in RELATION_FIELDS if not data.get(name)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                [{"field": name, "message": f"{name} is required", "code": "REQUIRED"} for name in missing],
            )

        async with self.store.lock(RELATIONS_COLLECTION):
            relations = await self.read_all_relations()

            if self.enforce_unique:
                key = tuple(str(data[name]) for name in RELATION_FIELDS)
                if any(tuple(str(r.get(name)) for name in RELATION_FIELDS) == key for r in relations):
                    raise DuplicateEntityError(
                        "Relation", "link",
                        f"{data['sourceSchema']}/{data['sourceId']} -> {data['targetSchema']}/{data['targetId']}"
                    )

            timestamp = to_iso(self.now())
            relation = {
                **{k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")},
                "id": new_id(),
                "createdAt": timestamp,
                "updatedAt": timestamp,
            }
            relations.append(relation)
            await self.store.write(RELATIONS_COLLECTION, relations)

        logger.info(
            f"Created relation {relation['id']} ({relation['sourceSchema']}/{relation['sourceId']} "
            f"-[{relation['relationTypeId']}]-> {relation['targetSchema']}/{relation['targetId']})"
        )
        return relation

    async def delete_relation(self, relation_id: str) -> Entity:
        async with self.store.lock(RELATIONS_COLLECTION):
            relations = await self.read_all_relations()
            index = next((i for i, r in enumerate(relations) if r.get("id") == relation_id), None)
            if index is None:
                raise EntityNotFoundError("Relation", relation_id)
            removed = relations.pop(index)
            await self.store.write(RELATIONS_COLLECTION, relations)

        logger.info(f"Deleted relation {relation_id}")
        return removed

    async def _delete_where(self, predicate: Callable[[Entity], bool]) -> int:
        async with self.store.lock(RELATIONS_COLLECTION):
            relations = await self.read_all_relations()
            kept = [r for r in relations if not predicate(r)]
            removed = len(relations) - len(kept)
            if removed:
                await self.store.write(RELATIONS_COLLECTION, kept)
        return removed

    async def delete_relations_by_source(self, schema: str, entity_id: str) -> int:
        removed = await self._delete_where(
            lambda r: r.get("sourceSchema") == schema and r.get("sourceId") == entity_id
        )
        logger.info(f"Deleted {removed} relation(s) with source {schema}/{entity_id}")
        return removed

    async def delete_relations_by_target(self, schema: str, entity_id: str) -> int:
        removed = await self._delete_where(
            lambda r: r.get("targetSchema") == schema and r.get("targetId") == entity_id
        )
        logger.info(f"Deleted {removed} relation(s) with target {schema}/{entity_id}")
        return removed

    # ==================== QUERIES ====================

    async def get_relations_by_source(self, schema: str, entity_id: str) -> List[Entity]:
        return [
            r for r in await self.read_all_relations()
            if r.get("sourceSchema") == schema and r.get("sourceId") == entity_id
        ]

    async def get_relations_by_target(self, schema: str, entity_id: str) -> List[Entity]:
        return [
            r for r in await self.read_all_relations()
            if r.get("targetSchema") == schema and r.get("targetId") == entity_id
        ]

    async def get_relations_by_type(self, relation_type_id: str) -> List[Entity]:
        return [r for r in await self.read_all_relations() if r.get("relationTypeId") == relation_type_id]

    async def get_relations_for_section(
        self,
        source_schema: str,
        source_id: str,
        relation_type_id: str,
        target_schema: Optional[str] = None
    ) -> List[Entity]:
        return [
            r for r in await self.get_relations_by_source(source_schema, source_id)
            if r.get("relationTypeId") == relation_type_id
            and (target_schema is None or r.get("targetSchema") == target_schema)
        ]

    async def get_relations_by_schema_and_id(
        self,
        schema: str,
        entity_id: str,
        direction: RelationDirection = RelationDirection.BOTH,
        other_schema: Optional[str] = None
    ) -> List[Entity]:
        """
        Relations touching one entity, each annotated with ``direction``:
        ``source`` when the entity is the relation's source, ``target`` when
        it is the target. ``other_schema`` restricts the schema on the far side.
        """
        direction = RelationDirection(direction)
        results = []
        for relation in await self.read_all_relations():
            if direction in (RelationDirection.SOURCE, RelationDirection.BOTH):
                if relation.get("sourceSchema") == schema and relation.get("sourceId") == entity_id:
                    if other_schema is None or relation.get("targetSchema") == other_schema:
                        results.append({**relation, "direction": RelationDirection.SOURCE.value})
                        continue
            if direction in (RelationDirection.TARGET, RelationDirection.BOTH):
                if relation.get("targetSchema") == schema and relation.get("targetId") == entity_id:
                    if other_schema is None or relation.get("sourceSchema") == other_schema:
                        results.append({**relation, "direction": RelationDirection.TARGET.value})
        return results


async def group_related_entities(
    relations: List[Entity],
    load_entity: EntityLoader
) -> List[Dict[str, Any]]:
    """
    Resolve the entity on the far side of each annotated relation and group
    them by ``(schema, direction, relationTypeId)`` in first-seen order.
    Relations whose far-side entity no longer exists are skipped.
    """
    groups: Dict[Tuple[str, str, str], Dict[str, Any]] = {}

    for relation in relations:
        direction = relation.get("direction", RelationDirection.SOURCE.value)
        if direction == RelationDirection.SOURCE.value:
            other_schema, other_id = relation.get("targetSchema"), relation.get("targetId")
        else:
            other_schema, other_id = relation.get("sourceSchema"), relation.get("sourceId")

        entity = await load_entity(other_schema, other_id)
        if entity is None:
            logger.debug(f"Skipping relation {relation.get('id')}: {other_schema}/{other_id} not found")
            continue

        key = (other_schema, direction, relation.get("relationTypeId"))
        group = groups.setdefault(key, {
            "schema": other_schema,
            "direction": direction,
            "relation_type": relation.get("relationTypeId"),
            "data": [],
        })
        group["data"].append(entity)

    return list(groups.values())
