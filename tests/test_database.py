# tests/test_database.py
"""
Database Back End Tests
=======================

Integration tests for the SQLAlchemy collection store, the database
manager and the packaged Alembic migrations, all against temporary SQLite
files.
"""

import pytest
from sqlalchemy import inspect, select

from gradian.application import GradianApplication
from gradian.config import AppSettings, DatabaseSettings, DataSource, SecuritySettings, StorageSettings
from gradian.database import (
    DatabaseError, DatabaseManager, EntityRecord, MigrationManager, SqlCollectionStore,
    _mask_url, init_database,
)
from gradian.errors import DataStorageError
from gradian.seed import load_defaults

from . import TEST_COMPANY_ID, TEST_PEPPER


@pytest.fixture
def database_settings(tmp_path) -> DatabaseSettings:
    return DatabaseSettings(url=f"sqlite:///{tmp_path / 'db' / 'gradian.db'}")


@pytest.fixture
def db_manager(database_settings):
    manager = init_database(database_settings)
    yield manager
    manager.close()


@pytest.fixture
def sql_store(db_manager) -> SqlCollectionStore:
    return SqlCollectionStore(db_manager)


class TestDatabaseManager:
    """Test cases for engine and session management."""

    def test_initialize_creates_tables(self, db_manager):
        assert db_manager.is_initialized
        assert "entity_records" in inspect(db_manager.engine).get_table_names()
        assert db_manager.session_manager.health_check()

    def test_session_scope_rolls_back(self, db_manager):
        with pytest.raises(RuntimeError):
            with db_manager.get_session_context() as session:
                session.add(EntityRecord(collection="vendors", id="v1", position=0, data={"id": "v1"}))
                raise RuntimeError("abort")

        with db_manager.get_session_context() as session:
            assert session.execute(select(EntityRecord)).first() is None

    def test_uninitialized_manager(self, database_settings):
        with pytest.raises(RuntimeError):
            with DatabaseManager(database_settings).get_session_context():
                pass

    def test_mask_url(self):
        assert _mask_url("postgresql://user:secret@db:5432/gradian") == "postgresql://user:***@db:5432/gradian"
        assert _mask_url("sqlite:///gradian.db") == "sqlite:///gradian.db"


class TestSqlCollectionStore:
    """Test cases for SqlCollectionStore."""

    @pytest.mark.asyncio
    async def test_missing_collection_reads_empty(self, sql_store):
        await sql_store.ensure("vendors")
        assert await sql_store.read("vendors") == []

    @pytest.mark.asyncio
    async def test_write_preserves_order(self, sql_store):
        items = [{"id": f"v{i}", "name": f"Vendor {i}", "tags": ["a", i]} for i in (3, 1, 2)]

        await sql_store.write("vendors", items)

        assert await sql_store.read("vendors") == items

    @pytest.mark.asyncio
    async def test_write_replaces_collection(self, sql_store):
        await sql_store.write("vendors", [{"id": "v1"}, {"id": "v2"}])
        await sql_store.write("tenders", [{"id": "t1"}])
        await sql_store.write("vendors", [{"id": "v2", "name": "kept"}])

        assert await sql_store.read("vendors") == [{"id": "v2", "name": "kept"}]
        assert await sql_store.read("tenders") == [{"id": "t1"}]

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self, sql_store):
        await sql_store.write("vendors", [{"id": "v1"}])

        with pytest.raises(DataStorageError):
            await sql_store.write("vendors", [{"id": "dup"}, {"id": "dup"}])

        assert await sql_store.read("vendors") == [{"id": "v1"}]

    @pytest.mark.asyncio
    async def test_rewrite_keeps_created_at(self, sql_store, db_manager):
        await sql_store.write("vendors", [{"id": "v1", "name": "Acme"}, {"id": "v2"}])

        def created_at(entity_id):
            with db_manager.get_session_context() as session:
                return session.get(EntityRecord, ("vendors", entity_id)).created_at

        before = created_at("v1")
        await sql_store.write("vendors", [{"id": "v3"}, {"id": "v1", "name": "Acme Ltd"}])

        assert created_at("v1") == before
        assert await sql_store.read("vendors") == [{"id": "v3"}, {"id": "v1", "name": "Acme Ltd"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("item", [{"name": "No id"}, {"id": "", "name": "Blank id"}])
    async def test_items_without_id_rejected(self, sql_store, item):
        await sql_store.write("vendors", [{"id": "v1"}])

        with pytest.raises(DataStorageError):
            await sql_store.write("vendors", [{"id": "v1"}, item])

        assert await sql_store.read("vendors") == [{"id": "v1"}]


class TestDatabaseApplication:
    """Test cases for the full Repository -> Service -> Controller chain in database mode."""

    @pytest.mark.asyncio
    async def test_crud_through_controller(self, database_settings, frozen_now):
        settings = AppSettings(
            storage=StorageSettings(data_source=DataSource.DATABASE),
            database=database_settings,
            security=SecuritySettings(pepper=TEST_PEPPER),
        )
        application = GradianApplication(settings, now=frozen_now)
        try:
            await application.startup()
            seeded = await application.seed(load_defaults())
            assert seeded["relation-types"] == 4

            controller = await application.controller_for("vendors")
            created = await controller.create({
                "companyId": TEST_COMPANY_ID, "name": "Acme", "email": "sales@acme.example",
            })
            assert created.status_code == 201

            listed = await controller.get_all({"companyIds": [TEST_COMPANY_ID]})
            assert listed.body["pagination"]["total"] == 1

            deleted = await controller.delete(created.body["data"]["id"])
            assert deleted.body["message"] == "Vendor deleted successfully"

            assert (await application.companies.get(TEST_COMPANY_ID))["name"] == "Demo Company"
            assert await application.seed(load_defaults()) == {}
        finally:
            application.shutdown()


class TestMigrations:
    """Test cases for the packaged Alembic migrations."""

    def test_history(self, database_settings):
        history = MigrationManager(database_settings).get_migration_history()

        assert [entry["revision"] for entry in history] == ["0001_entity_records"]
        assert history[0]["down_revision"] is None

    @pytest.mark.asyncio
    async def test_upgrade_creates_entity_records(self, database_settings):
        manager = MigrationManager(database_settings)

        manager.run_migrations("head")

        assert manager.get_current_revision() == "0001_entity_records"

        db_manager = init_database(database_settings, create_tables=False)
        try:
            store = SqlCollectionStore(db_manager)
            await store.write("vendors", [{"id": "v1"}])
            assert await store.read("vendors") == [{"id": "v1"}]
        finally:
            db_manager.close()

    def test_failed_initialisation(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")

        with pytest.raises(DatabaseError):
            init_database(DatabaseSettings(url=f"sqlite:///{blocker / 'gradian.db'}"))
