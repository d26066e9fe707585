# app/main.py
from __future__ import annotations

import uuid

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from api.routers.admin_ingest import router as admin_ingest_router
from app.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import clear_request_id, set_request_id
from services.db_service import create_pool

configure_logging(service_name="api")

app = FastAPI(
    title="Affiliate Content Ingest",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.on_event("startup")
async def _startup_db_pool() -> None:
    app.state.db_pool = None
    if not settings.DATABASE_URL:
        logger.warning("db_pool_skipped", reason="DATABASE_URL not set")
        return
    app.state.db_pool = await create_pool(settings.DATABASE_URL)


@app.on_event("shutdown")
async def _shutdown_cleanup() -> None:
    pool = getattr(app.state, "db_pool", None)
    if pool is not None:
        await pool.close()


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        set_request_id(req_id)
        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response


app.add_middleware(RequestIdMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health")
async def health():
    return {"ok": True}


app.include_router(admin_ingest_router)
