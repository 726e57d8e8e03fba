"""
Gradian Schema Registry Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Entity schema definitions loaded from ``all-schemas.json`` and the typed
per-entity policies derived from them. Policies are resolved when the
schemas are loaded, so request handling never introspects raw schema
dicts to find password fields, defaults or delete behaviour.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from .cache import CacheManager, CachedCollection
from .errors import DataStorageError, EntityNotFoundError, InvalidSchemaError
from .storage import COMPANIES_COLLECTION, SCHEMAS_COLLECTION, CollectionStore

logger = logging.getLogger(__name__)

PASSWORD_ROLE = "password"


# ==================== SCHEMA MODELS ====================

class FieldValidation(BaseModel):
    """Validation rules attached to a schema field."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    required: Optional[bool] = None
    min_length: Optional[int] = Field(None, alias="minLength")
    max_length: Optional[int] = Field(None, alias="maxLength")
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None


class SchemaField(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    label: Optional[str] = None
    type: str = "text"
    role: Optional[str] = None
    required: bool = False
    default_value: Any = Field(None, alias="defaultValue")
    options: Optional[List[Any]] = None
    validation: Optional[FieldValidation] = None

    @property
    def display_name(self) -> str:
        return self.label or self.name

    @property
    def is_required(self) -> bool:
        return bool(self.required or (self.validation and self.validation.required))


class EntitySchema(BaseModel):
    """An entity schema definition."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    singular_name: Optional[str] = None
    plural_name: Optional[str] = None
    description: Optional[str] = None
    is_not_company_based: bool = Field(False, alias="isNotCompanyBased")
    fields: List[SchemaField] = Field(default_factory=list)
    sections: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def entity_name(self) -> str:
        return self.singular_name or "Entity"

    @property
    def plural_label(self) -> str:
        return self.plural_name or f"{self.entity_name}(s)"

    @property
    def company_based(self) -> bool:
        return not self.is_not_company_based and self.id != COMPANIES_COLLECTION

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ==================== ENTITY POLICIES ====================

class DeleteMode(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass(frozen=True)
class DeletePolicy:
    mode: DeleteMode = DeleteMode.HARD
    field: Optional[str] = None
    value: Optional[str] = None

    @classmethod
    def soft(cls, field: str, value: str) -> "DeletePolicy":
        return cls(DeleteMode.SOFT, field, value)


HARD_DELETE = DeletePolicy()


@dataclass(frozen=True)
class EntityPolicy:
    """Everything the data layer needs to know about one entity kind."""

    schema_id: str
    entity_name: str = "Entity"
    plural_name: str = "Entities"
    company_based: bool = False
    password_fields: Tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    delete_policy: DeletePolicy = HARD_DELETE
    schema: Optional[EntitySchema] = None

    @property
    def has_password_fields(self) -> bool:
        return bool(self.password_fields)


def resolve_policy(schema: EntitySchema, soft_delete_policies: Optional[Dict[str, Dict[str, str]]] = None) -> EntityPolicy:
    """Build the typed policy for one schema."""
    soft_delete_policies = soft_delete_policies or {}

    delete_policy = HARD_DELETE
    soft = soft_delete_policies.get(schema.id)
    if soft:
        delete_policy = DeletePolicy.soft(soft["field"], soft["value"])

    return EntityPolicy(
        schema_id=schema.id,
        entity_name=schema.entity_name,
        plural_name=schema.plural_label,
        company_based=schema.company_based,
        password_fields=tuple(f.name for f in schema.fields if f.role == PASSWORD_ROLE),
        defaults={f.name: f.default_value for f in schema.fields if f.default_value is not None},
        delete_policy=delete_policy,
        schema=schema,
    )


# ==================== SCHEMA REGISTRY ====================

class SchemaRegistry:
    """Cached access to schema definitions and their resolved policies."""

    def __init__(
        self,
        store: CollectionStore,
        cache: CacheManager,
        soft_delete_policies: Optional[Dict[str, Dict[str, str]]] = None
    ):
        self.store = store
        self.soft_delete_policies = soft_delete_policies or {}
        self._collection = CachedCollection(
            SCHEMAS_COLLECTION, self._read_schemas, cache, fallback_on_error=False
        )
        self._policies: Optional[Dict[str, EntityPolicy]] = None
        self._resolved_from: Optional[List[Dict[str, Any]]] = None

    async def _read_schemas(self) -> List[Dict[str, Any]]:
        return await self.store.read(SCHEMAS_COLLECTION)

    @staticmethod
    def _parse(raw_schemas: List[Dict[str, Any]]) -> List[EntitySchema]:
        schemas = []
        for raw in raw_schemas:
            try:
                schemas.append(EntitySchema.model_validate(raw))
            except PydanticValidationError as e:
                raise DataStorageError("load schemas", f"invalid schema definition {raw.get('id')!r}: {e}") from e
        return schemas

    async def get_all_schemas(self) -> List[EntitySchema]:
        return self._parse(await self._collection.load())

    async def get_raw_schemas(self) -> List[Dict[str, Any]]:
        return await self._collection.load()

    async def get_policies(self) -> Dict[str, EntityPolicy]:
        """Resolve policies for every schema; re-resolved whenever the cached schema list changes."""
        raw_schemas = await self._collection.load()
        if self._policies is None or raw_schemas != self._resolved_from:
            self._policies = {
                schema.id: resolve_policy(schema, self.soft_delete_policies)
                for schema in self._parse(raw_schemas)
            }
            self._resolved_from = raw_schemas
            logger.info(f"Resolved entity policies for {len(self._policies)} schema(s)")
        return self._policies

    async def is_valid_schema_id(self, schema_id: str) -> bool:
        return schema_id in await self.get_policies()

    async def get_schema(self, schema_id: str) -> EntitySchema:
        policy = await self.get_policy(schema_id)
        return policy.schema

    async def get_raw_schema(self, schema_id: str) -> Dict[str, Any]:
        for raw in await self.get_raw_schemas():
            if raw.get("id") == schema_id:
                return raw
        raise EntityNotFoundError("Schema", schema_id)

    async def get_policy(self, schema_id: str) -> EntityPolicy:
        policies = await self.get_policies()
        if schema_id not in policies:
            raise InvalidSchemaError(schema_id)
        return policies[schema_id]

    async def clear_cache(self) -> None:
        await self._collection.invalidate()
        self._policies = None
        self._resolved_from = None
