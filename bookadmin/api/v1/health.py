"""Health check endpoint with database and role-store status."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookadmin.api.deps import get_role_store_mode
from bookadmin.core.config import settings
from bookadmin.core.database import check_db_connected, get_db
from bookadmin.schemas.health import HealthResponse
from bookadmin.services.role_store import RoleStoreMode

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    db: Annotated[Session, Depends(get_db)],
    role_store_mode: Annotated[RoleStoreMode, Depends(get_role_store_mode)],
) -> HealthResponse:
    """
    Return service health, database connectivity and which Role Store backend is in use.
    Used by load balancers and monitoring.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database=db_status,
        role_store=role_store_mode,
    )
