from typing import Dict, Any, AsyncGenerator, List, Optional
from contextlib import asynccontextmanager
import urllib.parse
import asyncio
import logging
from pkg.db_util.types import PostgresConfig
from sqlalchemy import Table, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError, IntegrityError


class PostgresConnection:
    """
    Owns one async engine + sessionmaker for the lifetime of the application.

    Constructed at startup and disposed at shutdown; callers receive the instance
    explicitly instead of reaching for a module-level cache.
    """

    def __init__(self, db_config: PostgresConfig, logger: logging.Logger):
        self.logger = logger
        self.db_config = db_config
        self._db_url: Optional[str] = None
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None
        self._engine_lock = asyncio.Lock()

    @staticmethod
    def _generate_db_url_from_config(db_config: PostgresConfig) -> str:
        """Generate database URL from config."""
        if db_config.url:
            return db_config.url

        # URL encode the password if it exists
        encoded_password = urllib.parse.quote_plus(db_config.password) if db_config.password else ''

        if not db_config.host:
            raise ValueError("Database host configuration is missing.")

        return (
            f"postgresql+asyncpg://{db_config.username}:{encoded_password}"
            f"@{db_config.host}:{db_config.port}/{db_config.database}"
        )

    def get_db_url(self) -> str:
        if self._db_url is None:
            self._db_url = self._generate_db_url_from_config(self.db_config)
        return self._db_url

    @property
    def is_sqlite(self) -> bool:
        return self.get_db_url().startswith("sqlite")

    def _engine_options(self) -> Dict[str, Any]:
        if self.is_sqlite:
            # File-backed SQLite is only used by tests and local tooling
            return {"connect_args": {"timeout": 15}}
        return {
            "pool_size": self.db_config.pool_size,
            "max_overflow": self.db_config.max_overflow,
            "pool_timeout": self.db_config.pool_timeout,
            "pool_recycle": self.db_config.pool_recycle,
            "pool_pre_ping": True,
            "connect_args": {
                "timeout": 15,
                "command_timeout": 15,
                "server_settings": {"application_name": "bookmarket-chat"},
            },
        }

    async def get_engine(self, max_retries: int = 3, initial_delay: float = 2.0) -> AsyncEngine:
        """Get or create the engine, retrying the first connection with exponential backoff."""
        if self._engine is not None:
            return self._engine

        async with self._engine_lock:
            if self._engine is not None:
                return self._engine

            db_url = self.get_db_url()
            options = self._engine_options()
            self.logger.info("Database engine not initialized. Creating new engine...")

            last_error = None
            for attempt in range(max_retries):
                engine = None
                try:
                    engine = create_async_engine(db_url, echo=False, **options)

                    self.logger.info(f"Testing database connection (attempt {attempt + 1}/{max_retries})...")
                    async with engine.connect() as conn:
                        await conn.execute(text("SELECT 1"))

                    self._sessionmaker = async_sessionmaker(
                        bind=engine,
                        class_=AsyncSession,
                        expire_on_commit=False,
                        autoflush=False,
                    )
                    self._engine = engine
                    self.logger.info("Async engine and sessionmaker created successfully.")
                    return engine

                except (SQLAlchemyError, OSError, ConnectionError) as e:
                    last_error = e
                    if engine is not None:
                        await engine.dispose()
                    delay = initial_delay * (2 ** attempt)  # Exponential backoff

                    if attempt < max_retries - 1:
                        self.logger.warning(
                            f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        self.logger.error(f"Failed to create database engine after {max_retries} attempts: {e}", exc_info=True)

            raise ConnectionError(f"Could not create database engine after {max_retries} attempts: {last_error}") from last_error

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provides an asynchronous SQLAlchemy session: commit on success, rollback on error."""
        await self.get_engine()
        if self._sessionmaker is None:
            raise ConnectionError("Database engine/sessionmaker not initialized.")

        session: AsyncSession = self._sessionmaker()
        session_id = id(session)

        try:
            yield session
            # Only commit if no exception occurred
            if session.in_transaction():
                await session.commit()
        except IntegrityError:
            # Constraint violations are an expected outcome for compare-and-insert callers
            self.logger.debug(f"Integrity error in session {session_id}. Rolling back.")
            if session.in_transaction():
                await session.rollback()
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"SQLAlchemy error in session {session_id}: {e}. Rolling back.", exc_info=True)
            if session.in_transaction():
                await session.rollback()
            raise
        except BaseException:
            if session.in_transaction():
                await session.rollback()
            raise
        finally:
            # Ensure session is always closed to return connection to pool
            try:
                await session.close()
            except Exception as e:
                self.logger.error(f"Error closing session {session_id}: {e}", exc_info=True)

    async def create_tables(self, tables: Optional[List[Table]] = None) -> None:
        """Create `tables` (default: every table registered on the declarative Base). Existing tables are kept."""
        from pkg.db_util.sql_alchemy.declarative_base import Base

        engine = await self.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=tables))
        names = ", ".join(t.name for t in tables) if tables else "all"
        self.logger.info(f"Database tables ensured: {names}")

    async def close_engine(self) -> None:
        """Dispose the engine and its connection pool."""
        if self._engine is None:
            self.logger.info("Database engine was not initialized, no need to close.")
            return
        self.logger.info("Closing database engine and connection pool...")
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        self.logger.info("Database engine closed.")
