"""
Gradian Controller Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Translates HTTP-level input (query parameters, JSON bodies) into service
calls and service results into response envelopes. Errors are raised as
DomainError subclasses and rendered by the API's exception handlers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from fastapi import status

from .errors import ValidationError
from .processors import strip_password_fields, strip_password_fields_many
from .repository import FilterParams, split_ids
from .schemas import EntityPolicy
from .service import BaseService, PaginationParams

logger = logging.getLogger(__name__)

INVALID_COMPANY_IDS = ("", "-1")
LIST_PARAMS = ("includeIds", "excludeIds", "companyIds")


@dataclass
class ControllerResponse:
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


def extract_params(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Collapse raw query pairs into a parameter dict. ``key[]`` and repeated
    list-style keys become lists; other repeated keys keep the last value.
    """
    params: Dict[str, Any] = {}
    for raw_key, value in items:
        key = raw_key[:-2] if raw_key.endswith("[]") else raw_key
        if raw_key.endswith("[]") or key in LIST_PARAMS:
            existing = params.get(key)
            if existing is None:
                params[key] = [value]
            elif isinstance(existing, list):
                existing.append(value)
            else:
                params[key] = [existing, value]
        else:
            params[key] = value
    return params


def _parse_body(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


class BaseController:
    """HTTP adapter around a BaseService for one schema."""

    def __init__(self, service: BaseService, policy: EntityPolicy):
        self.service = service
        self.policy = policy

    def _strip(self, entity: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return strip_password_fields(self.policy, entity)

    def _require_company_scope(self, params: Mapping[str, Any]) -> None:
        if not self.policy.company_based:
            return
        if not (split_ids(params.get("companyIds")) or split_ids(params.get("companyId"))):
            raise ValidationError(
                f"companyIds or companyId is required to list {self.policy.plural_name}"
            )

    def _require_company_id(self, data: Mapping[str, Any]) -> None:
        if not self.policy.company_based:
            return
        company_id = data.get("companyId")
        if company_id is None or str(company_id).strip() in INVALID_COMPANY_IDS:
            raise ValidationError(
                "companyId is required",
                [{"field": "companyId", "message": "companyId is required", "code": "REQUIRED"}],
            )

    async def get_all(self, params: Mapping[str, Any]) -> ControllerResponse:
        self._require_company_scope(params)
        pagination = PaginationParams.from_query(params.get("page"), params.get("limit"))
        filters = FilterParams.from_mapping(params)

        result = await self.service.get_all(filters, pagination)
        entities = result.get_data()

        return ControllerResponse(status.HTTP_200_OK, {
            "success": True,
            "data": strip_password_fields_many(self.policy, entities),
            "message": result.message,
            "pagination": result.metadata.get("pagination"),
        })

    async def get_by_id(self, entity_id: str) -> ControllerResponse:
        result = await self.service.get_by_id(entity_id)
        return ControllerResponse(status.HTTP_200_OK, {
            "success": True,
            "data": self._strip(result.get_data()),
        })

    async def create(self, body: Any) -> ControllerResponse:
        data = _parse_body(body)
        self._require_company_id(data)

        result = await self.service.create(data)
        entity = result.get_data()
        return ControllerResponse(status.HTTP_201_CREATED, {
            "success": True,
            "data": self._strip(entity),
            "message": result.message,
        })

    async def _pin_company_id(self, entity_id: str, data: Dict[str, Any]) -> None:
        """Keep an existing record in its company; require one when it has none."""
        if not self.policy.company_based:
            return
        existing = (await self.service.get_by_id(entity_id)).get_data()
        stored = existing.get("companyId")
        if stored is not None and str(stored).strip() not in INVALID_COMPANY_IDS:
            data["companyId"] = stored
        else:
            self._require_company_id(data)

    async def update(self, entity_id: str, body: Any) -> ControllerResponse:
        data = _parse_body(body)
        await self._pin_company_id(entity_id, data)
        result = await self.service.update(entity_id, data)
        return ControllerResponse(status.HTTP_200_OK, {
            "success": True,
            "data": self._strip(result.get_data()),
            "message": result.message,
        })

    async def delete(self, entity_id: str) -> ControllerResponse:
        result = await self.service.delete(entity_id)
        return ControllerResponse(status.HTTP_200_OK, {
            "success": True,
            "message": result.message,
            "data": self._strip(result.get_data()),
        })


def entity_list(entities: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"success": True, "data": entities, "count": len(entities)}
