import logging

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException

from diamante_crm.core.config import get_settings
from diamante_crm.core.exceptions import (
    BusinessLogicError,
    business_exception_to_response,
    validation_error_response,
)
from diamante_crm.core.logging import setup_logging
from diamante_crm.core.middleware import AuthenticationMiddleware
from diamante_crm.db.session import init_models
from diamante_crm.api.access import router as access_router
from diamante_crm.api.auth import router as auth_router
from diamante_crm.api.corretores import router as corretores_router
from diamante_crm.api.crud import routers as crud_routers
from diamante_crm.api.dashboard import router as dashboard_router
from diamante_crm.api.storage import router as storage_router
from diamante_crm.api.suporte import router as suporte_router
from diamante_crm.api.vendas import router as vendas_router
from diamante_crm.functions.portal import invalid_body_response, router as functions_router
from diamante_crm.functions.portal_chat import router as portal_chat_router

settings = get_settings()
logger = logging.getLogger(__name__)
EDGE_FUNCTIONS_PREFIX = "/functions/v1/"

ROUTERS: tuple[APIRouter, ...] = (
    auth_router,
    access_router,
    *crud_routers,
    vendas_router,
    corretores_router,
    suporte_router,
    dashboard_router,
    functions_router,
    portal_chat_router,
    storage_router,
)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE, service=settings.APP_NAME, env=settings.ENV)

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        ## Diamante CRM - Multi-tenant real-estate CRM API

        ### Features
        - **Agency-scoped CRM**: clients, suppliers, projects and units, sales pipeline,
          technical assistance, RFIs and daily site reports (RDO)
        - **Role-based access control** (CEO, Financeiro, Vendas, RH, Engenharia, Suporte)
        - **Sales**: commission settings, broker registry and sale communications
        - **Client portal edge functions**: CPF login with lockout, contract selection,
          global search, signed file URLs and support chat

        ### Authentication
        CRM routes under `/api` require a bearer token from `/api/auth/login`.
        Edge functions under `/functions/v1` validate their own credentials.
        """,
        version="1.0.0",
        openapi_tags=[
            {"name": "auth", "description": "Staff authentication"},
            {"name": "access", "description": "Roles and agency members"},
            {"name": "functions", "description": "Client portal edge functions"},
            {"name": "storage", "description": "Signed and public object download"},
            {"name": "infra", "description": "Infrastructure and health check endpoints"},
        ],
    )

    # Auth middleware
    app.add_middleware(AuthenticationMiddleware, api_prefixes=["/api"])

    # CORS
    allowed_origins = settings.CORS_ORIGINS or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    for router in ROUTERS:
        app.include_router(router)

    # Healthcheck
    @app.get("/health", tags=["infra"])
    async def health():
        return {"status": "ok", "env": settings.ENV}

    register_exception_handlers(app)

    @app.on_event("startup")
    async def startup_event():
        await init_models()

    return app


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BusinessLogicError)
    async def business_exception_handler(request: Request, exc: BusinessLogicError):
        if exc.status_code >= 500:
            logger.error(
                "Business error at %s %s: %s", request.method, request.url.path, exc.message,
            )
        return business_exception_to_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # edge functions take any body; only unparseable JSON lands here
        if request.url.path.startswith(EDGE_FUNCTIONS_PREFIX):
            return invalid_body_response(request.url.path)
        return validation_error_response(exc.errors())

    # Partial updates validate the merged row inside the service
    @app.exception_handler(PydanticValidationError)
    async def model_validation_handler(request: Request, exc: PydanticValidationError):
        return validation_error_response(exc.errors())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        status_code = exc.status_code or 500
        if status_code >= 500:
            logger.error(
                "HTTP %s at %s %s: %s",
                status_code,
                request.method,
                request.url.path,
                exc.detail,
            )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": str(exc.detail),
                "path": request.url.path,
            },
        )

    # Unhandled errors
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled exception", extra={
                "method": request.method,
                "path": request.url.path,
            }
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Erro interno do servidor.",
                "path": request.url.path,
            },
        )


app = create_app()

if __name__ == "__main__":
    uvicorn.run("diamante_crm.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=True)
