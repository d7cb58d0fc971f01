import contextlib
from typing import AsyncContextManager, AsyncIterator, Callable

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from feedstream.main.exceptions import StoreUnavailableError
from feedstream.main.logging import get_logger

logger = get_logger(__name__)

# Factory for short-lived sessions; every store operation opens its own.
SessionScope = Callable[[], AsyncContextManager[AsyncSession]]

# Connectivity failures; integrity and programming errors are not in here.
STORE_CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, OSError)


class DatabaseSessionManager:
    """Engine and session factory for the feed store.

    ``init`` is called once by the api or worker lifespan. Repositories never
    hold a session across network calls; services open a ``transaction()``
    per store operation instead.
    """

    def __init__(self):
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise StoreUnavailableError("Feed store is not initialized")
        return self._engine

    def init(self, url: str):
        if self._engine is not None:
            logger.debug("Feed store already initialized")
            return

        # SQLite (tests, local runs) has no connection pool to size
        pool_options = {}
        if not url.startswith("sqlite"):
            pool_options = {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}

        self._engine = create_async_engine(url, **pool_options)
        self._sessionmaker = async_sessionmaker(
            bind=self._engine,
            autobegin=False,
            expire_on_commit=False,
        )
        logger.debug("Feed store engine created", extra={"dialect": self._engine.dialect.name})

    async def close(self):
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.debug("Feed store engine disposed")

    @contextlib.asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        async with self._require_engine().begin() as connection:
            yield connection

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        self._require_engine()

        session = self._sessionmaker()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with an open transaction, committed on exit.

        Connectivity errors from the store surface as StoreUnavailableError.
        Keep network calls to other services out of the block.
        """
        try:
            async with self.session() as session, session.begin():
                yield session
        except STORE_CONNECTIVITY_ERRORS as exc:
            logger.error(
                "Feed store unavailable",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            raise StoreUnavailableError(str(exc)) from exc


sessionmanager = DatabaseSessionManager()
