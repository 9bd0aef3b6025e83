"""FastAPI application for the chat bridge account service"""

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from chatbridge.api.errors import register_exception_handlers
from chatbridge.api.v1 import auth, users
from chatbridge.config import settings
from chatbridge.core.database import SessionLocal, init_db
from chatbridge.core.exceptions import BaseAPIException
from chatbridge.core.logging_config import configure_logging
from chatbridge.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from chatbridge.schemas.response import HealthResponse
from chatbridge.services.auth_service import auth_service

configure_logging(settings)
logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # Responses carry tokens and account data
    "Cache-Control": "no-store",
}

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def observe_requests(request: Request, call_next):
    """Tag the request, add security headers and record metrics"""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers.update(SECURITY_HEADERS)
    response.headers["X-Request-ID"] = request_id

    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(elapsed)

    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning("Slow request %s %s %.2fs request_id=%s", request.method, path, elapsed, request_id)
    return response


def _bootstrap_admin() -> None:
    db = SessionLocal()
    try:
        auth_service.ensure_admin(db, settings.ADMIN_USERNAME, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
    except BaseAPIException as exc:
        logger.error("Failed to create admin user: %s", exc.message)
    finally:
        db.close()


@app.on_event("startup")
async def startup_event():
    # Refuse to serve with development secrets in production
    settings.validate_security_settings()
    logger.info("Starting %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)

    init_db()
    if settings.ADMIN_PASSWORD:
        _bootstrap_admin()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down %s", settings.APP_NAME)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness plus a database round trip"""
    db_ok = True
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        db_ok = False
        logger.error("Health check database probe failed: %s", exc)
    finally:
        db.close()

    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=settings.APP_VERSION,
        readiness={"database": {"ok": db_ok}},
    )


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled",
    }


app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatbridge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
    )
