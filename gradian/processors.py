"""
Gradian Processors Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Payload transformations driven by entity policies: schema defaults,
password hashing and stripping password fields from responses.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .schemas import EntityPolicy
from .security import PasswordManager, detect_hash_type, is_argon2_hash

logger = logging.getLogger(__name__)

HASH_TYPE_FIELD = "hashType"


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def apply_defaults(policy: EntityPolicy, data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing, None or empty values from the schema's defaultValue entries."""
    result = dict(data)
    for name, default in policy.defaults.items():
        if _is_missing(result.get(name)):
            result[name] = default
    return result


class PasswordProcessor:
    """Hashes the password-role fields of a payload."""

    def __init__(self, password_manager: PasswordManager):
        self.password_manager = password_manager

    def process(self, policy: EntityPolicy, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return a copy of ``data`` with every plain password hashed.

        Values that already look like argon2 hashes are kept, so re-saving a
        stored record does not double-hash it. ``hashType`` is set whenever a
        password field is present.
        """
        if not policy.has_password_fields:
            return data

        result = dict(data)
        touched = False
        for name in policy.password_fields:
            value = result.get(name)
            if _is_missing(value):
                continue

            touched = True
            if is_argon2_hash(value):
                continue

            result[name] = self.password_manager.hash_password(str(value))
            logger.debug(f"Hashed password field '{name}' for {policy.schema_id}")

        if touched:
            primary = next((result[n] for n in policy.password_fields if not _is_missing(result.get(n))), None)
            result[HASH_TYPE_FIELD] = detect_hash_type(primary)

        return result


def strip_password_fields(policy: Optional[EntityPolicy], entity: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Remove password-role fields from an entity before it leaves the API."""
    if entity is None or policy is None or not policy.has_password_fields:
        return entity
    return {k: v for k, v in entity.items() if k not in policy.password_fields}


def strip_password_fields_many(policy: Optional[EntityPolicy], entities: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [strip_password_fields(policy, entity) for entity in entities]
