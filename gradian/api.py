"""
Gradian API Module - FastAPI REST API Implementation
Version: 1.0.0
Author: Gradian Development Team
License: MIT

HTTP surface of the schema-driven CRUD engine: generic data routes, entity
relations, relation types, companies, schemas, dashboard metrics and a
health check. Every error is rendered as ``{success: false, error, code}``
by the exception handlers registered in ``create_app``.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Generic, List, Optional, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .application import GradianApplication
from .config import AppSettings, get_settings, setup_logging
from .controller import ControllerResponse, entity_list, extract_params
from .errors import DomainError, EntityNotFoundError, ValidationError
from .metrics import (
    calculate_dashboard_metrics, calculate_monthly_trends,
    calculate_quarterly_spend, calculate_spend_analysis,
)
from .processors import strip_password_fields_many
from .relations import RelationDirection, group_related_entities
from .utils import to_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

DASHBOARD_COLLECTIONS = ("purchase-orders", "vendors", "tenders", "shipments", "invoices")


# ==================== RESPONSE MODELS ====================

class APIResponse(BaseModel, Generic[T]):
    """Generic API response envelope."""

    success: bool = Field(..., description="Whether the operation was successful")
    data: Optional[T] = Field(None, description="Response data")
    message: Optional[str] = Field(None, description="Response message")
    error: Optional[str] = Field(None, description="Error message if the operation failed")
    code: Optional[str] = Field(None, description="Error code if the operation failed")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Field-level errors")
    count: Optional[int] = Field(None, description="Number of items in data")

    @classmethod
    def error_response(cls, error: str, code: str, errors: Optional[List[Dict[str, Any]]] = None) -> 'APIResponse[T]':
        return cls(success=False, error=error, code=code, errors=errors or None)

    def to_content(self) -> Dict[str, Any]:
        return jsonable_encoder(self.model_dump(exclude_none=True))


def _json(content: Dict[str, Any], status_code: int = status.HTTP_200_OK, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def _render(response: ControllerResponse) -> JSONResponse:
    return _json(response.body, response.status_code, response.headers or None)


# ==================== EXCEPTION HANDLERS ====================

async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render domain errors with the status they carry."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _json(exc.to_dict(), exc.status_code)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Query or path parameters that FastAPI could not parse."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"][1:]) if len(error["loc"]) > 1 else None
        errors.append({"field": field, "message": error["msg"], "code": error["type"]})

    response_data = APIResponse.error_response("Validation failed", "VALIDATION_ERROR", errors)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=response_data.to_content())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response_data = APIResponse.error_response(str(exc.detail), "HTTP_ERROR")
    return JSONResponse(status_code=exc.status_code, content=response_data.to_content(), headers=getattr(exc, "headers", None))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    response_data = APIResponse.error_response("Internal server error", "INTERNAL_ERROR")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=response_data.to_content())


# ==================== DEPENDENCIES ====================

def _ensure_application(app: FastAPI) -> GradianApplication:
    application = getattr(app.state, "gradian", None)
    if application is None:
        settings = getattr(app.state, "settings", None) or get_settings()
        application = GradianApplication(settings)
        app.state.gradian = application
    return application


def get_application(request: Request) -> GradianApplication:
    return _ensure_application(request.app)


async def read_json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        raise ValidationError("Request body is required")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON body: {e.msg}") from e


def query_params(request: Request) -> Dict[str, Any]:
    return extract_params(request.query_params.multi_items())


# ==================== SYSTEM ENDPOINTS ====================

system_router = APIRouter(tags=["System"])


@system_router.get("/health", summary="Health Check")
async def health_check(application: GradianApplication = Depends(get_application)):
    settings = application.settings
    components = {"storage": {"status": "healthy", "dataSource": settings.storage.data_source.value}}

    healthy = True
    if application.db_manager is not None:
        database_ok = application.db_manager.session_manager.health_check()
        components["database"] = {"status": "healthy" if database_ok else "unhealthy"}
        healthy = database_ok

    return _json({
        "status": "healthy" if healthy else "unhealthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment.value,
        "components": components,
        "timestamp": to_iso(application.now()),
    }, status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE)


# ==================== DATA ENDPOINTS ====================

data_router = APIRouter(prefix="/api/data", tags=["Data"])


@data_router.get("/all-relations", summary="Related entities of one entity, grouped")
async def get_all_relations(
    request: Request,
    application: GradianApplication = Depends(get_application)
):
    params = request.query_params
    schema_id = params.get("schema")
    entity_id = params.get("id")
    if not schema_id or not entity_id:
        raise ValidationError("schema and id query parameters are required")

    direction = RelationDirection.parse(params.get("direction"))
    relations = await application.relations.get_relations_by_schema_and_id(
        schema_id, entity_id, direction, params.get("otherSchema") or None
    )

    async def load_entity(other_schema: str, other_id: str):
        entity = await application.load_entity(other_schema, other_id)
        if entity is None:
            return None
        policies = await application.registry.get_policies()
        return strip_password_fields_many(policies.get(other_schema), [entity])[0]

    groups = await group_related_entities(relations, load_entity)
    return _json({"success": True, "data": groups, "count": len(groups)})


@data_router.get("/{schema_id}", summary="List entities")
async def list_entities(
    schema_id: str,
    params: Dict[str, Any] = Depends(query_params),
    application: GradianApplication = Depends(get_application)
):
    controller = await application.controller_for(schema_id)
    return _render(await controller.get_all(params))


@data_router.post("/{schema_id}", summary="Create entity", status_code=status.HTTP_201_CREATED)
async def create_entity(
    schema_id: str,
    request: Request,
    application: GradianApplication = Depends(get_application)
):
    controller = await application.controller_for(schema_id)
    return _render(await controller.create(await read_json_body(request)))


@data_router.get("/{schema_id}/{entity_id}", summary="Get entity")
async def get_entity(
    schema_id: str,
    entity_id: str,
    application: GradianApplication = Depends(get_application)
):
    controller = await application.controller_for(schema_id)
    return _render(await controller.get_by_id(entity_id))


@data_router.put("/{schema_id}/{entity_id}", summary="Update entity")
async def update_entity(
    schema_id: str,
    entity_id: str,
    request: Request,
    application: GradianApplication = Depends(get_application)
):
    controller = await application.controller_for(schema_id)
    return _render(await controller.update(entity_id, await read_json_body(request)))


@data_router.delete("/{schema_id}/{entity_id}", summary="Delete entity")
async def delete_entity(
    schema_id: str,
    entity_id: str,
    application: GradianApplication = Depends(get_application)
):
    controller = await application.controller_for(schema_id)
    return _render(await controller.delete(entity_id))


# ==================== RELATION ENDPOINTS ====================

relations_router = APIRouter(prefix="/api/relations", tags=["Relations"])


@relations_router.get("", summary="Query relations")
async def list_relations(request: Request, application: GradianApplication = Depends(get_application)):
    params = request.query_params
    relations = application.relations

    schema_id, entity_id = params.get("schema"), params.get("id")
    source_schema, source_id = params.get("sourceSchema"), params.get("sourceId")
    target_schema, target_id = params.get("targetSchema"), params.get("targetId")
    relation_type_id = params.get("relationTypeId")

    if schema_id and entity_id:
        data = await relations.get_relations_by_schema_and_id(
            schema_id, entity_id,
            RelationDirection.parse(params.get("direction")),
            params.get("otherSchema") or None,
        )
    elif source_schema and source_id and relation_type_id:
        data = await relations.get_relations_for_section(
            source_schema, source_id, relation_type_id, target_schema or None
        )
    elif source_schema and source_id:
        data = await relations.get_relations_by_source(source_schema, source_id)
    elif target_schema and target_id:
        data = await relations.get_relations_by_target(target_schema, target_id)
    elif relation_type_id:
        data = await relations.get_relations_by_type(relation_type_id)
    else:
        data = await relations.read_all_relations()

    return _json(entity_list(data))


@relations_router.post("", summary="Create relation", status_code=status.HTTP_201_CREATED)
async def create_relation(request: Request, application: GradianApplication = Depends(get_application)):
    body = await read_json_body(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    relation = await application.relations.create_relation(body)
    return _json({"success": True, "data": relation, "message": "Relation created successfully"},
                 status.HTTP_201_CREATED)


@relations_router.get("/{relation_id}", summary="Get relation")
async def get_relation(relation_id: str, application: GradianApplication = Depends(get_application)):
    relation = await application.relations.get_relation_by_id(relation_id)
    if relation is None:
        raise EntityNotFoundError("Relation", relation_id)
    return _json({"success": True, "data": relation})


@relations_router.delete("/{relation_id}", summary="Delete relation")
async def delete_relation(relation_id: str, application: GradianApplication = Depends(get_application)):
    await application.relations.delete_relation(relation_id)
    return _json({"success": True, "message": "Relation deleted successfully"})


# ==================== RELATION TYPE ENDPOINTS ====================

relation_types_router = APIRouter(prefix="/api/relation-types", tags=["Relation Types"])


@relation_types_router.get("", summary="List relation types")
async def list_relation_types(request: Request, application: GradianApplication = Depends(get_application)):
    relation_type_id = request.query_params.get("id")
    if relation_type_id:
        return _json({"success": True, "data": await application.relation_types.get(relation_type_id)})
    return _json({"success": True, "data": await application.relation_types.list()})


@relation_types_router.post("", summary="Create relation type", status_code=status.HTTP_201_CREATED)
async def create_relation_type(request: Request, application: GradianApplication = Depends(get_application)):
    body = await read_json_body(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    item = await application.relation_types.create(body)
    return _json({
        "success": True,
        "data": item,
        "message": f'Relation type "{item["id"]}" created successfully',
    }, status.HTTP_201_CREATED)


@relation_types_router.get("/{relation_type_id}", summary="Get relation type")
async def get_relation_type(relation_type_id: str, application: GradianApplication = Depends(get_application)):
    return _json({"success": True, "data": await application.relation_types.get(relation_type_id)})


@relation_types_router.put("/{relation_type_id}", summary="Update relation type")
async def update_relation_type(
    relation_type_id: str,
    request: Request,
    application: GradianApplication = Depends(get_application)
):
    body = await read_json_body(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    item = await application.relation_types.update(relation_type_id, body)
    return _json({
        "success": True,
        "data": item,
        "message": f'Relation type "{relation_type_id}" updated successfully',
    })


@relation_types_router.delete("/{relation_type_id}", summary="Delete relation type")
async def delete_relation_type(relation_type_id: str, application: GradianApplication = Depends(get_application)):
    item = await application.relation_types.delete(relation_type_id)
    return _json({
        "success": True,
        "data": item,
        "message": f'Relation type "{relation_type_id}" deleted successfully',
    })


# ==================== COMPANY ENDPOINTS ====================

companies_router = APIRouter(prefix="/api/companies", tags=["Companies"])


@companies_router.get("", summary="List companies")
async def list_companies(request: Request, application: GradianApplication = Depends(get_application)):
    company_id = request.query_params.get("id")
    if company_id:
        data = await application.companies.get(company_id)
    else:
        data = await application.companies.list()
    return _json({"success": True, "data": data}, headers=NO_CACHE_HEADERS)


@companies_router.post("", summary="Create company", status_code=status.HTTP_201_CREATED)
async def create_company(request: Request, application: GradianApplication = Depends(get_application)):
    body = await read_json_body(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    company = await application.companies.create(body)
    return _json({
        "success": True,
        "data": company,
        "message": f'Company "{company.get("name")}" created successfully',
    }, status.HTTP_201_CREATED, NO_CACHE_HEADERS)


@companies_router.get("/{company_id}", summary="Get company")
async def get_company(company_id: str, application: GradianApplication = Depends(get_application)):
    return _json({"success": True, "data": await application.companies.get(company_id)}, headers=NO_CACHE_HEADERS)


@companies_router.put("/{company_id}", summary="Update company")
async def update_company(company_id: str, request: Request, application: GradianApplication = Depends(get_application)):
    body = await read_json_body(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    company = await application.companies.update(company_id, body)
    return _json({
        "success": True,
        "data": company,
        "message": f'Company "{company.get("name")}" updated successfully',
    }, headers=NO_CACHE_HEADERS)


@companies_router.delete("/{company_id}", summary="Delete company")
async def delete_company(company_id: str, application: GradianApplication = Depends(get_application)):
    company = await application.companies.delete(company_id)
    return _json({
        "success": True,
        "data": company,
        "message": f'Company "{company.get("name")}" deleted successfully',
    }, headers=NO_CACHE_HEADERS)


# ==================== SCHEMA ENDPOINTS ====================

schemas_router = APIRouter(prefix="/api/schemas", tags=["Schemas"])


@schemas_router.api_route("/clear-cache", methods=["GET", "POST"], summary="Clear schema caches")
async def clear_schema_cache(application: GradianApplication = Depends(get_application)):
    await application.clear_caches()
    return _json({
        "success": True,
        "message": "Schema cache cleared successfully",
        "timestamp": to_iso(application.now()),
    })


@schemas_router.get("", summary="List schemas")
async def list_schemas(request: Request, application: GradianApplication = Depends(get_application)):
    schema_id = request.query_params.get("id")
    if schema_id:
        return _json({"success": True, "data": await application.registry.get_raw_schema(schema_id)})
    return _json({"success": True, "data": await application.registry.get_raw_schemas()})


@schemas_router.get("/{schema_id}", summary="Get schema")
async def get_schema(schema_id: str, application: GradianApplication = Depends(get_application)):
    return _json({"success": True, "data": await application.registry.get_raw_schema(schema_id)})


# ==================== DASHBOARD ENDPOINTS ====================

dashboard_router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@dashboard_router.get("/metrics", summary="Dashboard metrics")
async def dashboard_metrics(application: GradianApplication = Depends(get_application)):
    collections = await application.load_collections(*DASHBOARD_COLLECTIONS)
    purchase_orders = collections["purchase-orders"]
    vendors = collections["vendors"]

    return _json({
        "success": True,
        "metrics": calculate_dashboard_metrics(
            purchase_orders, vendors, collections["tenders"],
            collections["shipments"], collections["invoices"],
        ).to_dict(),
        "spendAnalysis": [item.to_dict() for item in calculate_spend_analysis(purchase_orders, vendors)],
        "monthlyTrends": [item.to_dict() for item in calculate_monthly_trends(purchase_orders)],
        "quarterlySpend": [item.to_dict() for item in calculate_quarterly_spend(purchase_orders)],
    })


# ==================== APPLICATION FACTORY ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    application = _ensure_application(app)
    logger.info(f"Starting {application.settings.app_name} API...")
    await application.startup()
    try:
        yield
    finally:
        logger.info(f"Shutting down {application.settings.app_name} API...")
        application.shutdown()


def create_app(settings: Optional[AppSettings] = None, application: Optional[GradianApplication] = None) -> FastAPI:
    """Build the FastAPI app. Without arguments, settings load lazily on first use."""
    if application is not None:
        settings = application.settings

    app = FastAPI(
        title="Gradian API",
        description="Schema-driven procurement CRUD backend",
        version=settings.app_version if settings else "1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gradian = application

    cors_origins = settings.cors_origins if settings else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    for router in (
        system_router, data_router, relations_router, relation_types_router,
        companies_router, schemas_router, dashboard_router,
    ):
        app.include_router(router)

    return app


def create_default_app() -> FastAPI:
    """Entry point for uvicorn's factory mode: loads settings and logging first."""
    settings = get_settings()
    setup_logging(settings.logging)
    return create_app(settings)


app = create_app()
