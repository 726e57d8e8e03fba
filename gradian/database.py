"""
Gradian Database Module
=======================

Database back end for entity collections. Every collection is stored as
rows of the ``entity_records`` table keyed by ``(collection, id)`` with the
entity document in a JSON column, so the repository layer works unchanged
on top of SQLAlchemy. Schema changes are managed with Alembic.

Author: Gradian Development Team
Version: 1.0.0
License: MIT
"""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, TypeVar

from sqlalchemy import JSON, Column, DateTime, Engine, Integer, String, create_engine, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from .config import DatabaseSettings
from .errors import DataStorageError
from .storage import CollectionStore, Entity

logger = logging.getLogger(__name__)

T = TypeVar('T')

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


# ==================== MODEL DEFINITIONS ====================

Base = declarative_base()
metadata = Base.metadata


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityRecord(Base):
    """One entity document of one collection."""

    __tablename__ = "entity_records"

    collection = Column(String(100), primary_key=True)
    id = Column(String(100), primary_key=True)
    position = Column(Integer, nullable=False, default=0, index=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<EntityRecord(collection={self.collection!r}, id={self.id!r})>"


# ==================== SESSION MANAGEMENT ====================

class SessionManager:
    """Manages SQLAlchemy sessions with commit-or-rollback scopes."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_session(self) -> Session:
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Example:
            with session_manager.session_scope() as session:
                session.add(EntityRecord(collection="vendors", id="v1", data={}))
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Session rolled back due to error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False


# ==================== DATABASE MANAGER ====================

class DatabaseError(Exception):
    """Raised when the database cannot be initialised or migrated."""
    pass


def _build_engine(settings: DatabaseSettings) -> Engine:
    kwargs: Dict[str, Any] = {"echo": settings.echo, "future": True}

    if settings.is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in settings.url or settings.url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = settings.pool_pre_ping
        kwargs["pool_recycle"] = settings.pool_recycle

    return create_engine(settings.url, **kwargs)


def _mask_url(url: str) -> str:
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


class DatabaseManager:
    """Coordinates engine creation and session management."""

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self.engine: Optional[Engine] = None
        self.session_manager: Optional[SessionManager] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if self._initialized:
            logger.warning("Database manager already initialized")
            return

        try:
            if self.settings.is_sqlite:
                _ensure_sqlite_directory(self.settings.url)

            self.engine = _build_engine(self.settings)
            self.session_manager = SessionManager(self.engine)

            if not self.session_manager.health_check():
                raise DatabaseError("Initial database health check failed")

            self._initialized = True
            logger.info(f"Database manager initialized ({_mask_url(self.settings.url)})")
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to initialize database manager: {e}")
            raise DatabaseError(f"Database initialization failed: {e}") from e

    def close(self) -> None:
        if self.engine:
            self.engine.dispose()
            logger.info("Database engine disposed")
        self._initialized = False

    @contextmanager
    def get_session_context(self) -> Generator[Session, None, None]:
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")
        with self.session_manager.session_scope() as session:
            yield session


def _ensure_sqlite_directory(url: str) -> None:
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return
    path = url[len(prefix):]
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


# ==================== DATABASE INITIALIZATION ====================

def init_database(settings: DatabaseSettings, create_tables: Optional[bool] = None) -> DatabaseManager:
    """Create and initialise a DatabaseManager, optionally creating tables."""
    db_manager = DatabaseManager(settings)
    db_manager.initialize()

    if create_tables if create_tables is not None else settings.auto_create_tables:
        create_database_tables(db_manager.engine)

    return db_manager


def create_database_tables(engine: Engine) -> None:
    try:
        metadata.create_all(engine)
        table_names = inspect(engine).get_table_names()
        logger.info(f"Database tables ready: {', '.join(table_names)}")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseError(f"Table creation failed: {e}") from e


# ==================== COLLECTION STORE ====================

class SqlCollectionStore(CollectionStore):
    """
    CollectionStore on top of ``entity_records``.

    Sessions are synchronous, so each call runs in the default executor.
    A write updates, inserts and deletes rows in place inside one
    transaction, so ``created_at`` survives rewrites of a collection.
    """

    def __init__(self, db_manager: DatabaseManager):
        super().__init__()
        self.db_manager = db_manager

    async def _run(self, operation: str, func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func)
        except SQLAlchemyError as e:
            logger.error(f"Database {operation} failed: {e}")
            raise DataStorageError(operation, str(e)) from e

    def _read_sync(self, collection: str) -> List[Entity]:
        with self.db_manager.get_session_context() as session:
            rows = session.execute(
                select(EntityRecord.data)
                .where(EntityRecord.collection == collection)
                .order_by(EntityRecord.position)
            ).scalars().all()
            return [dict(row) for row in rows]

    def _write_sync(self, collection: str, items: List[Entity]) -> None:
        with self.db_manager.get_session_context() as session:
            existing = {
                record.id: record
                for record in session.execute(
                    select(EntityRecord).where(EntityRecord.collection == collection)
                ).scalars()
            }
            seen = set()
            for position, item in enumerate(items):
                if item.get("id") in (None, ""):
                    raise DataStorageError("write", f"item without id in collection {collection!r}")
                key = str(item["id"])
                if key in seen:
                    raise DataStorageError("write", f"duplicate id {key!r} in collection {collection!r}")
                seen.add(key)

                record = existing.pop(key, None)
                if record is None:
                    session.add(EntityRecord(collection=collection, id=key, position=position, data=item))
                    continue
                if record.position != position:
                    record.position = position
                if record.data != item:
                    record.data = item

            for record in existing.values():
                session.delete(record)

    async def read(self, collection: str) -> List[Entity]:
        return await self._run("read", partial(self._read_sync, collection))

    async def write(self, collection: str, items: List[Entity]) -> None:
        await self._run("write", partial(self._write_sync, collection, items))
        logger.debug(f"Wrote {len(items)} row(s) to collection {collection}")

    async def ensure(self, collection: str) -> None:
        # Collections exist implicitly; an absent one reads as empty.
        return None


# ==================== DATABASE MIGRATIONS ====================

class MigrationManager:
    """Runs the packaged Alembic migrations against the configured database."""

    def __init__(self, settings: DatabaseSettings, alembic_cfg_path: Optional[str] = None):
        self.settings = settings
        if alembic_cfg_path and Path(alembic_cfg_path).exists():
            self.alembic_cfg = AlembicConfig(alembic_cfg_path)
        else:
            self.alembic_cfg = AlembicConfig()
        self.alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        self.alembic_cfg.set_main_option("sqlalchemy.url", settings.url.replace("%", "%%"))

    def run_migrations(self, revision: str = "head") -> None:
        if self.settings.is_sqlite:
            _ensure_sqlite_directory(self.settings.url)
        logger.info(f"Running database migrations to revision: {revision}")
        try:
            alembic_command.upgrade(self.alembic_cfg, revision)
        except SQLAlchemyError as e:
            logger.error(f"Migration failed: {e}")
            raise DatabaseError(f"Migration failed: {e}") from e
        logger.info("Database migrations completed successfully")

    def get_current_revision(self) -> Optional[str]:
        engine = _build_engine(self.settings)
        try:
            with engine.connect() as connection:
                return MigrationContext.configure(connection).get_current_revision()
        finally:
            engine.dispose()

    def get_migration_history(self) -> List[Dict[str, Any]]:
        script_dir = ScriptDirectory.from_config(self.alembic_cfg)
        return [
            {
                'revision': revision.revision,
                'down_revision': revision.down_revision,
                'message': revision.doc,
            }
            for revision in script_dir.walk_revisions()
        ]
