"""
Gradian Validation Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Field-level validation of entity payloads against their schema.
"""

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .schemas import EntitySchema, SchemaField

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^[+]?[\d\s\-().]{7,20}$')

NUMERIC_TYPES = ("number", "currency", "percentage")


@dataclass
class FieldError:
    field: str
    message: str
    code: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "") or value == []


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme in ("http", "https") and parsed.netloc)


def validate_field(schema_field: SchemaField, value: Any) -> Optional[FieldError]:
    """Validate one value, returning the first rule it breaks."""
    label = schema_field.display_name
    name = schema_field.name

    if _is_empty(value):
        if schema_field.is_required:
            return FieldError(name, f"{label} is required", "REQUIRED")
        return None

    field_type = (schema_field.type or "text").lower()

    if field_type == "email" and not (isinstance(value, str) and EMAIL_PATTERN.match(value)):
        return FieldError(name, f"{label} must be a valid email address", "INVALID_EMAIL")

    if field_type == "url" and not (isinstance(value, str) and _is_url(value)):
        return FieldError(name, f"{label} must be a valid URL", "INVALID_URL")

    if field_type in ("phone", "tel") and not (isinstance(value, str) and PHONE_PATTERN.match(value)):
        return FieldError(name, f"{label} must be a valid phone number", "INVALID_PHONE")

    number = None
    if field_type in NUMERIC_TYPES:
        number = _to_number(value)
        if number is None:
            return FieldError(name, f"{label} must be a number", "INVALID_NUMBER")

    rules = schema_field.validation
    if rules is None:
        return None

    if isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            return FieldError(name, f"{label} must be at least {rules.min_length} characters", "MIN_LENGTH")
        if rules.max_length is not None and len(value) > rules.max_length:
            return FieldError(name, f"{label} must be at most {rules.max_length} characters", "MAX_LENGTH")

    if rules.min is not None or rules.max is not None:
        if number is None:
            number = _to_number(value)
        if number is not None:
            if rules.min is not None and number < rules.min:
                return FieldError(name, f"{label} must be at least {rules.min:g}", "MIN_VALUE")
            if rules.max is not None and number > rules.max:
                return FieldError(name, f"{label} must be at most {rules.max:g}", "MAX_VALUE")

    if rules.pattern and isinstance(value, str):
        try:
            matched = re.search(rules.pattern, value) is not None
        except re.error:
            matched = True
        if not matched:
            return FieldError(name, f"{label} has an invalid format", "INVALID_FORMAT")

    return None


def validate_entity(schema: EntitySchema, data: Dict[str, Any], partial: bool = False) -> List[FieldError]:
    """
    Validate a payload against every field of the schema.

    With ``partial`` set (updates), only fields present in ``data`` are
    checked, so a patch never fails for fields it does not touch.
    """
    errors = []
    for schema_field in schema.fields:
        if partial and schema_field.name not in data:
            continue
        error = validate_field(schema_field, data.get(schema_field.name))
        if error:
            errors.append(error)
    return errors
