from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from app.config import settings
from app.core.logging import logger
from services.ingest_service import IngestService, build_ingest_service

__all__ = ["get_ingest_service", "verify_cron_secret"]


async def get_ingest_service(request: Request) -> IngestService:
    """
    One IngestService per process, built on the pool opened at startup.
    Tests replace this dependency through app.dependency_overrides.
    """
    service = getattr(request.app.state, "ingest_service", None)
    if service is None:
        pool = getattr(request.app.state, "db_pool", None)
        if pool is None:
            raise HTTPException(status_code=503, detail="database not configured")
        service = build_ingest_service(pool)
        request.app.state.ingest_service = service
    return service


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Bearer check against CRON_SECRET; open when no secret is configured."""
    expected = settings.CRON_SECRET
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        logger.info("cron_auth_rejected", has_header=bool(authorization))
        raise HTTPException(status_code=401, detail="Unauthorized")
