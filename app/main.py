import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.routes import appointments, auth, businesses, otp, public
from app.core.config import _ENV_FILE, settings
from app.core.db import async_session_maker
from app.core.errors import BookingError, RateLimitedError
from app.services.notification_service import BookingEvents
from app.services.rate_limiter import RateLimiter, build_rate_limiter
from app.services.verification_service import prune_expired

if settings.env != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_otp_cleanup(session_maker: async_sessionmaker[AsyncSession]) -> None:
    """Delete verification records older than otp_retention_minutes."""
    try:
        async with session_maker() as session:
            try:
                n = await prune_expired(session, settings.otp_retention_minutes)
                await session.commit()
                if n:
                    logger.info("OTP cleanup: deleted %d record(s) older than %d minutes", n, settings.otp_retention_minutes)
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("OTP cleanup failed: %s", e)


async def _cleanup_loop(session_maker: async_sessionmaker[AsyncSession]) -> None:
    while True:
        await asyncio.sleep(settings.otp_cleanup_interval_seconds)
        await _run_otp_cleanup(session_maker)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    if not settings.sms_enabled:
        logger.warning("Twilio not configured: verification codes will only be logged")
    session_maker = app.state.session_maker
    await _run_otp_cleanup(session_maker)
    task = asyncio.create_task(_cleanup_loop(session_maker))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    await app.state.rate_limiter.close()


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
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


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


def create_app(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    app = FastAPI(
        title="MyTor Booking API",
        description="Appointment booking: public slots and requests, phone verification, owner dashboard",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.session_maker = session_maker or async_session_maker
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings.redis_url)
    app.state.booking_events = BookingEvents()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Refresh-Token"],
    )

    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(otp.router, prefix="/api/v1")
    app.include_router(public.router, prefix="/api/v1")
    app.include_router(businesses.router, prefix="/api/v1")
    app.include_router(appointments.router, prefix="/api/v1")

    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
