"""eventide-core — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from eventide.api import actions, admin, auth, web
from eventide.domain.narrative import NarrativeLog
from eventide.infra.config import settings
from eventide.infra.db import init_db

logger = logging.getLogger("eventide")

try:
    __version__ = version("eventide-core")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

DESCRIPTION = "Eventide combat action resolution engine"
PUBLIC_PATHS = ("/health", "/api/auth/register", "/api/auth/login/api-key")
SECURITY_SCHEMES = {
    "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
    "apiKey": {"type": "apiKey", "in": "header", "name": "X-API-Key"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
    logging.basicConfig(level=settings.log_level.upper())
    logger.setLevel(settings.log_level.upper())
    await init_db()
    logger.info("eventide-core %s ready", __version__)
    yield


app = FastAPI(title="eventide-core", description=DESCRIPTION, version=__version__, lifespan=lifespan)

# One narrative log per process; the engine receives it by injection.
app.state.narrative_log = NarrativeLog()


def custom_openapi() -> dict:
    """Declare Bearer/X-API-Key security on every non-public route.

    ``get_current_user`` reads the headers itself, so FastAPI cannot infer it.
    """
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title, version=app.version, description=DESCRIPTION, routes=app.routes
    )
    schema.setdefault("components", {})["securitySchemes"] = SECURITY_SCHEMES
    for path, operations in schema.get("paths", {}).items():
        if path in PUBLIC_PATHS:
            continue
        for operation in operations.values():
            operation.setdefault("security", [{"bearerAuth": []}, {"apiKey": []}])

    app.openapi_schema = schema
    return schema


app.openapi = custom_openapi

app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(actions.router)
app.include_router(web.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "engine": "eventide-core", "version": __version__}
