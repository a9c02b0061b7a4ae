# ---------------------------------------------------------
# backend/main.py
# Portfolio Forecaster - Property Portfolio Backend
#
# Run: uvicorn backend.main:app --reload (from repo root)
#
# - FastAPI + SQLAlchemy (SQLite locally, PostgreSQL hosted)
# - /api/portfolios             : list (lazily provisions primary), create
# - /api/portfolios/{id}/summary: totals + display strings
# - /api/properties             : create (with embedded loan), list
# - /api/properties/{id}        : read, patch
# - /api/properties/{id}/loan   : store primary loan
#
# Operator/diagnostic tasks live in backend/admin_cli.py, not here.
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.config import Settings
from backend.db import Store
from backend.errors import AppError, describe_validation_errors
from backend.identity import IdentityProvider
from backend.routes_portfolios import router as portfolios_router
from backend.routes_properties import router as properties_router


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    identity: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Build the application with explicitly injected collaborators.

    A store passed in is owned by the caller (tests); otherwise one is
    created at startup, migrated, and disposed at shutdown.
    """
    settings = settings or Settings.from_env()
    settings.validate()
    identity = identity or IdentityProvider(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_store = None
        if app.state.store is None:
            owned_store = Store.from_settings(settings)
            owned_store.init_schema()
            app.state.store = owned_store
        try:
            yield
        finally:
            if owned_store is not None:
                owned_store.dispose()
                app.state.store = None

    app = FastAPI(title="Portfolio Forecaster Backend", version="0.1", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.identity = identity

    # CORS configuration from config module
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins) if settings.is_prod else ["*"],  # Restrict origins in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app, settings)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    app.include_router(portfolios_router)
    app.include_router(properties_router)

    settings.describe()
    return app


def _register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Every failure becomes {"error": "<message>"} with a conventional status."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            print(f"[ERROR] {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.client_message(settings.is_dev)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": f"Validation failed: {describe_validation_errors(exc.errors())}"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        print(f"[ERROR] Unexpected error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


app = create_app()
