"""
Gradian Errors Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Domain exception hierarchy. Every error carries the HTTP status it maps
to and a stable error code used in the JSON error envelope.
"""

from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base exception for domain operations."""

    code = "DOMAIN_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code}


class EntityNotFoundError(DomainError):
    """Raised when a requested entity is not found."""

    code = "ENTITY_NOT_FOUND"
    status_code = 404

    def __init__(self, entity_name: str, entity_id: str):
        self.entity_name = entity_name
        self.entity_id = entity_id
        super().__init__(f'{entity_name} with ID "{entity_id}" not found')


class InvalidSchemaError(DomainError):
    """Raised for a schema id that is not registered."""

    code = "INVALID_SCHEMA"
    status_code = 404

    def __init__(self, schema_id: str):
        self.schema_id = schema_id
        super().__init__(f"Invalid schema ID: {schema_id}")


class ValidationError(DomainError):
    """Raised when input data fails validation."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class DuplicateEntityError(DomainError):
    """Raised when trying to create an entity whose key already exists."""

    code = "DUPLICATE_ENTITY"
    status_code = 409

    def __init__(self, entity_name: str, field: str, value: str):
        super().__init__(f'{entity_name} with {field} "{value}" already exists')


class UnauthorizedError(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Unauthorized access"):
        super().__init__(message)


class ForbiddenError(DomainError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Forbidden access"):
        super().__init__(message)


class DataStorageError(DomainError):
    """Raised when a collection cannot be read or written."""

    code = "DATA_STORAGE_ERROR"
    status_code = 500

    def __init__(self, operation: str, details: Optional[str] = None):
        self.operation = operation
        suffix = f": {details}" if details else ""
        super().__init__(f"Data storage error during {operation}{suffix}")

