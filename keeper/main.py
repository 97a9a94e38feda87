import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from keeper.core.config import Settings, get_settings
from keeper.core.errors import KeeperError, StorageFailure, ValidationFailed
from keeper.core.logging import configure_logging
from keeper.core.ratelimit import RateLimit
from keeper.models.database import init_db
from keeper.routers import auth, files, folders, health, users
from keeper.schemas.common import envelope
from keeper.storage import get_object_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    try:
        get_object_store().ensure_bucket()
    except StorageFailure:
        # keep serving; /health reports the store as unhealthy
        logger.error("Object store is not reachable at startup")
    yield


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header", "form")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ValidationFailed)
    async def validation_failed(request: Request, exc: ValidationFailed):
        return JSONResponse(status_code=400, content=envelope(exc.message, exc.errors, success=False))

    @app.exception_handler(KeeperError)
    async def keeper_error(request: Request, exc: KeeperError):
        return JSONResponse(status_code=exc.status_code, content=envelope(exc.message, success=False))

    @app.exception_handler(RequestValidationError)
    async def request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=envelope("Validation failed", _field_errors(exc), success=False))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=envelope(message, success=False), headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        error = "".join(traceback.format_exception(exc)) if settings.debug else None
        return JSONResponse(status_code=500, content=envelope("Internal server error", success=False, error=error))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    rate_limit = RateLimit(settings.rate_limit, enabled=settings.rate_limit_enabled)
    app = FastAPI(title=settings.app_name, lifespan=lifespan, dependencies=[Depends(rate_limit)])
    app.state.rate_limit = rate_limit

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origin.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app, settings)

    # include our routers
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(files.router)
    app.include_router(folders.router)
    app.include_router(users.router)

    return app


app = create_app()
