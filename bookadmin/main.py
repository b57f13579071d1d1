"""FastAPI application entrypoint. No business logic; only wiring, middleware and error mapping."""

from dotenv import load_dotenv

load_dotenv()

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookadmin.api.v1 import router as v1_router
from bookadmin.core.config import settings
from bookadmin.core.database import engine
from bookadmin.core.exceptions import AuthServiceError, RoleStoreUnavailable, Unauthenticated
from bookadmin.services.role_store import resolve_role_store_mode

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Pick the Role Store backend once for the lifetime of the process."""
    app.state.role_store_mode = resolve_role_store_mode(engine, settings.ROLE_STORE_MODE)
    yield


app = FastAPI(
    title="BookAdmin Auth API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthServiceError)
async def auth_service_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


@app.exception_handler(RoleStoreUnavailable)
async def role_store_unavailable_handler(
    request: Request, exc: RoleStoreUnavailable
) -> JSONResponse:
    logger.error("Role store unavailable on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=503, content={"detail": "Role store unavailable"})


app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "BookAdmin Auth API"}
