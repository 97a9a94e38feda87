import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from keeper.core.errors import StorageFailure
from keeper.routers.deps import get_db, get_store
from keeper.schemas.common import envelope
from keeper.storage import ObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db), store: ObjectStore = Depends(get_store)):
    checks = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"

    try:
        total_size, object_count = store.usage()
        checks["storage"] = "healthy"
        checks["storageUsage"] = {"totalSize": str(total_size), "objectCount": object_count}
    except StorageFailure:
        checks["storage"] = "unhealthy"

    healthy = checks["database"] == "healthy" and checks["storage"] == "healthy"
    checks["status"] = "healthy" if healthy else "unhealthy"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=envelope("Health check", checks, success=healthy),
    )
