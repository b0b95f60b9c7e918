"""Health check endpoint logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from mcprouter import __version__
from mcprouter.exceptions import StorageError

if TYPE_CHECKING:
    from mcprouter.web.dependencies import Services

logger = structlog.get_logger(__name__)


async def check_health(services: Services) -> dict[str, object]:
    """Return application health status with database and key-value probes."""
    result: dict[str, object] = {
        "status": "healthy",
        "version": __version__,
        "database": "connected",
        "kv": "connected",
    }

    try:
        async with services.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("health_check_db_failed", error=str(exc))
        result["database"] = "unavailable"
        result["status"] = "degraded"

    try:
        kv_ok = await services.kv.ping()
    except StorageError:
        kv_ok = False
    if not kv_ok:
        logger.warning("health_check_kv_failed")
        result["kv"] = "unavailable"
        result["status"] = "degraded"

    return result
