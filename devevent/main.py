import asyncio
import logging
import os
from typing import Optional

from dotenv import load_dotenv  # load .env variables
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from devevent.database import ConnectionCache, init_models
from devevent.errors import (
    ConfigurationError,
    ConnectivityError,
    EventNotFound,
    UniquenessViolation,
    ValidationError,
)
from devevent.services.storage import (
    EventImageStorage,
    ImageStorageError,
    LocalEventImageStorage,
    get_image_storage,
)

# ----- Load environment variables -----
load_dotenv()

# ----- Logging -----
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

logger = logging.getLogger("devevent")

# ----- Routers -----
from devevent.routes.bookings import router as booking_router
from devevent.routes.events import router as event_router


def _error_body(message: str, error: str, details: Optional[str] = None) -> dict:
    body = {"message": message, "error": error}
    if details:
        body["details"] = details
    return body


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError):
        logger.error("Database configuration error: %s", exc)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "Database configuration error",
                str(exc),
                "Set DATABASE_URL in the environment or .env file",
            ),
        )

    @app.exception_handler(ConnectivityError)
    async def _connectivity_error(request: Request, exc: ConnectivityError):
        return JSONResponse(
            status_code=503,
            content={**_error_body("Database connection failed", exc.message, exc.hint), "kind": exc.kind},
        )

    @app.exception_handler(UniquenessViolation)
    async def _uniqueness_violation(request: Request, exc: UniquenessViolation):
        return JSONResponse(status_code=409, content=_error_body("Event slug conflict", str(exc)))

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=_error_body("Invalid request", str(exc)))

    @app.exception_handler(EventNotFound)
    async def _event_not_found(request: Request, exc: EventNotFound):
        return JSONResponse(status_code=404, content=_error_body("Event not found", str(exc)))

    @app.exception_handler(ImageStorageError)
    async def _image_storage_error(request: Request, exc: ImageStorageError):
        return JSONResponse(status_code=502, content=_error_body("Image upload failed", str(exc)))


def create_app(
    cache: Optional[ConnectionCache] = None,
    image_storage: Optional[EventImageStorage] = None,
) -> FastAPI:
    app = FastAPI(
        title="DevEvent API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.db_cache = cache or ConnectionCache()
    app.state.image_storage = image_storage or get_image_storage()

    # ----- CORS (enabled only if ALLOWED_ORIGINS is set) -----
    raw_origins = os.getenv("ALLOWED_ORIGINS", "").strip()
    if raw_origins:
        allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
            allow_headers=["Content-Type", "Accept", "Origin", "X-Requested-With"],
            max_age=86400,
        )

    # ----- Include routers -----
    app.include_router(event_router)
    app.include_router(booking_router)
    _register_error_handlers(app)

    storage = app.state.image_storage
    if isinstance(storage, LocalEventImageStorage) and storage.base_url.startswith("/"):
        app.mount(storage.base_url, StaticFiles(directory=storage.base_path), name="event-images")

    @app.on_event("startup")
    async def on_startup():
        """Ensure database connectivity with simple retry logic."""

        db_cache: ConnectionCache = app.state.db_cache
        max_attempts = int(os.getenv("DB_INIT_MAX_ATTEMPTS", "10"))
        base_delay = float(os.getenv("DB_INIT_RETRY_SECONDS", "1.0"))

        attempt = 0
        while True:
            attempt += 1
            try:
                await init_models(db_cache)
            except ConnectivityError as exc:
                if attempt >= max_attempts:
                    logger.error("Database not reachable after %s attempts: %s", attempt, exc.hint)
                    raise

                wait_time = base_delay * min(2 ** (attempt - 1), 8)
                logger.warning(
                    "Database not ready (attempt %s/%s, %s): %s. Retrying in %.1f seconds...",
                    attempt,
                    max_attempts,
                    exc.kind,
                    exc,
                    wait_time,
                )
                await asyncio.sleep(wait_time)
            else:
                logger.info("DevEvent API started and database tables ensured.")
                break

    # ----- Shutdown: release the database handle -----
    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.db_cache.release()

    # ----- Health check endpoint -----
    @app.get("/health", tags=["meta"])
    async def health():
        return {"ok": True, "database": app.state.db_cache.is_connected}

    return app


app = create_app()
