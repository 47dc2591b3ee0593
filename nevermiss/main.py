import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nevermiss.api.routes import auth, booking_urls, bookings, notifications, public
from nevermiss.core.config import _ENV_FILE, settings
from nevermiss.core.db import async_session_maker
from nevermiss.services.auth_service import purge_refresh_tokens

if settings.env != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_refresh_token_cleanup() -> None:
    """Delete revoked and expired refresh tokens."""
    try:
        async with async_session_maker() as session:
            try:
                n = await purge_refresh_tokens(session)
                await session.commit()
                if n:
                    logger.info("Refresh token cleanup: deleted %d record(s)", n)
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Refresh token cleanup failed: %s", e)


async def _cleanup_loop() -> None:
    while True:
        await asyncio.sleep(settings.refresh_token_cleanup_interval_seconds)
        await _run_refresh_token_cleanup()


def _log_startup() -> None:
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info("Default booking timezone: %s", settings.default_timezone)
    if settings.google_oauth_enabled and settings.google_redirect_uri:
        logger.info("Google OAuth: configured (sign-in and Google Meet links)")
    else:
        logger.warning(
            "Google OAuth: NOT configured. Set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_REDIRECT_URI in %s",
            _ENV_FILE,
        )
    if not settings.zoom_enabled:
        logger.warning("Zoom: NOT configured; zoom pages will book without a meeting link")


@asynccontextmanager
async def lifespan(app: FastAPI):
    _log_startup()
    await _run_refresh_token_cleanup()
    task = asyncio.create_task(_cleanup_loop())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="NeverMiss API",
    description="Backend for NeverMiss: booking pages, guest booking, notifications",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Refresh-Token"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(booking_urls.router, prefix="/api/v1")
app.include_router(public.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """CORS headers for error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Refresh-Token",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = "Internal server error" if settings.env == "production" else f"{type(exc).__name__}: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
