# devevent/database.py
from __future__ import annotations

import asyncio
import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Mapping, Optional

from dotenv import load_dotenv
from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from devevent.errors import ConfigurationError, ConnectivityError, classify_connectivity_error

load_dotenv()

logger = logging.getLogger(__name__)

Base = declarative_base()

SUPPORTED_DRIVERS = frozenset({"sqlite+aiosqlite", "postgresql+asyncpg"})


# Robust DATABASE_URL handling


def _translate_sslmode(value: str) -> Optional[str]:
    """Translate libpq sslmode values to asyncpg-compatible flags."""

    normalized = value.strip().lower()
    if normalized in {"require", "verify-ca", "verify-full"}:
        return "true"
    if normalized == "disable":
        return "false"

    # "prefer" and "allow" have no asyncpg equivalent; leave them to driver defaults.
    return None


def _normalize_database_url(raw_url: Optional[str]) -> Optional[str]:
    """Ensure async-friendly drivers even if the URL omits them."""

    if not raw_url:
        return raw_url

    try:
        url = make_url(raw_url.strip())
    except ArgumentError:
        # Left for ConnectionCache to reject with a ConfigurationError.
        return raw_url

    driver = url.drivername.lower()
    if driver in {"postgresql", "postgres", "postgresql+psycopg2"}:
        url = url.set(drivername="postgresql+asyncpg")
    elif driver.startswith("postgresql+") and driver != "postgresql+asyncpg":
        url = url.set(drivername="postgresql+asyncpg")
    elif driver == "sqlite":
        url = url.set(drivername="sqlite+aiosqlite")

    if url.drivername == "postgresql+asyncpg":
        query = dict(url.query)
        sslmode = query.pop("sslmode", None)
        if sslmode is not None:
            translated = _translate_sslmode(sslmode)
            if translated is not None:
                query["ssl"] = translated
        if query != url.query:
            url = url.set(query=query)

    return url.render_as_string(hide_password=False)


def mask_database_url(raw_url: str) -> str:
    """Hide the password of a connection string so it can be logged."""

    try:
        return make_url(raw_url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable database url>"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, default))
    except (TypeError, ValueError):
        return default


def _build_session_factory(bind_engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=bind_engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


EngineFactory = Callable[..., AsyncEngine]


class ConnectionCache:
    """Process-wide, lazily initialised handle to the database.

    ``acquire()`` returns the cached engine without I/O once connected.
    Concurrent callers arriving while a connection is being set up all await
    the same attempt, so at most one physical setup is in flight. A failed
    attempt leaves no engine behind and the next ``acquire()`` starts over.

    The engine and the pending attempt belong to the event loop that first
    called ``acquire()``; share one cache per loop. Starting an attempt is
    guarded by a lock, so threads calling in cannot start a second one.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
        connect_timeout: Optional[float] = None,
        socket_timeout: Optional[float] = None,
        server_selection_timeout: Optional[float] = None,
        echo: Optional[bool] = None,
        engine_factory: Optional[EngineFactory] = None,
    ) -> None:
        self._env = os.environ if env is None else env
        self._url = url
        self.connect_timeout = connect_timeout or _env_float(self._env, "DB_CONNECT_TIMEOUT", 10.0)
        self.socket_timeout = socket_timeout or _env_float(self._env, "DB_SOCKET_TIMEOUT", 45.0)
        self.server_selection_timeout = server_selection_timeout or _env_float(
            self._env, "DB_SERVER_SELECTION_TIMEOUT", 10.0
        )
        if echo is None:
            echo = str(self._env.get("SQLALCHEMY_ECHO", "0")).lower() in {"1", "true", "yes"}
        self.echo = echo
        self._engine_factory = engine_factory or create_async_engine

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._pending: Optional[asyncio.Task] = None
        self._init_lock = threading.Lock()
        self.database_url: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def acquire(self) -> AsyncEngine:
        if self._engine is not None:
            return self._engine

        with self._init_lock:
            if self._pending is None:
                self._pending = asyncio.ensure_future(self._initialise())
            pending = self._pending

        # A cancelled caller must not cancel the attempt other callers share.
        return await asyncio.shield(pending)

    async def release(self) -> None:
        """Dispose of the engine. Used on shutdown, not per request."""

        pending = self._pending
        if pending is not None:
            await asyncio.gather(pending, return_exceptions=True)

        engine, self._engine = self._engine, None
        self._session_factory = None
        if engine is not None:
            await engine.dispose()
            logger.info("Database connection released.")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self.acquire()
        factory = self._session_factory
        if factory is None:
            # release() ran while this caller was waiting.
            raise ConnectivityError(
                "unknown", "Database connection was released before a session could be opened."
            )
        async with factory() as session:
            yield session

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _resolve_url(self) -> str:
        raw = _normalize_database_url(self._url or self._env.get("DATABASE_URL"))
        if not raw:
            raise ConfigurationError(
                "DATABASE_URL is not set. Define it in the environment or in a .env file."
            )
        try:
            url = make_url(raw)
        except ArgumentError as exc:
            raise ConfigurationError(f"DATABASE_URL could not be parsed: {exc}") from exc
        if url.drivername not in SUPPORTED_DRIVERS:
            raise ConfigurationError(
                f"Unsupported database scheme '{url.drivername}'. "
                f"Expected one of: {', '.join(sorted(SUPPORTED_DRIVERS))}."
            )
        return raw

    def _build_engine(self, database_url: str) -> AsyncEngine:
        driver = make_url(database_url).drivername
        if driver == "postgresql+asyncpg":
            return self._engine_factory(
                database_url,
                echo=self.echo,
                pool_pre_ping=True,
                pool_timeout=self.server_selection_timeout,
                pool_recycle=int(self.socket_timeout),
                connect_args={
                    "timeout": self.connect_timeout,
                    "command_timeout": self.socket_timeout,
                },
            )
        return self._engine_factory(
            database_url,
            echo=self.echo,
            pool_pre_ping=True,
            connect_args={"timeout": self.connect_timeout},
        )

    async def _probe(self, engine: AsyncEngine) -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _initialise(self) -> AsyncEngine:
        try:
            database_url = self._resolve_url()
            masked = mask_database_url(database_url)
            logger.info("Connecting to database %s", masked)

            engine = self._build_engine(database_url)
            try:
                await asyncio.wait_for(self._probe(engine), timeout=self.connect_timeout)
            except Exception as exc:
                await engine.dispose()
                error = classify_connectivity_error(exc)
                logger.warning(
                    "Database connection to %s failed (%s): %s", masked, error.kind, error.message
                )
                raise error from exc

            self._engine = engine
            self._session_factory = _build_session_factory(engine)
            self.database_url = database_url
            logger.info("Database connection established (%s).", masked)
            return engine
        finally:
            self._pending = None


def get_connection_cache(request: Request) -> ConnectionCache:
    return request.app.state.db_cache


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an AsyncSession."""

    cache = get_connection_cache(request)
    async with cache.session() as session:
        yield session


async def init_models(cache: ConnectionCache) -> None:
    """Import all model modules so they register with Base, then create tables."""

    # Ensure SQLAlchemy knows about every mapped class
    import devevent.models  # noqa: F401

    engine = await cache.acquire()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
