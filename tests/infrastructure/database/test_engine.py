"""Tests for database engine setup, initialization and migrations."""

from pathlib import Path

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from mategate.infrastructure.database import migrations
from mategate.infrastructure.database.engine import create_db_engine, init_database


class TestCreateDbEngine:
    def test_wal_mode_enabled(self, tmp_path: Path) -> None:
        engine = create_db_engine(tmp_path / "test.db")
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        engine.dispose()

    def test_busy_timeout_set(self, tmp_path: Path) -> None:
        engine = create_db_engine(tmp_path / "test.db")
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA busy_timeout")).scalar() == 5000
        engine.dispose()


class TestInitDatabase:
    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "gate.db"
        init_database(db_path).dispose()
        assert db_path.exists()

    def test_creates_all_tables(self, db_engine: Engine) -> None:
        tables = set(inspect(db_engine).get_table_names())
        assert {"manifests", "records", "alembic_version"} <= tables

    def test_fresh_database_stamped_at_head(self, db_engine: Engine) -> None:
        assert migrations.current_revision(db_engine) == migrations.head_revision()

    def test_idempotent(self, tmp_path: Path) -> None:
        db_path = tmp_path / "gate.db"
        init_database(db_path).dispose()
        engine = init_database(db_path)
        assert migrations.current_revision(engine) == migrations.head_revision()
        engine.dispose()

    def test_unversioned_database_is_stamped(self, tmp_path: Path) -> None:
        db_path = tmp_path / "gate.db"
        engine = create_db_engine(db_path)
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE manifests (id TEXT PRIMARY KEY)"))
        engine.dispose()

        engine = init_database(db_path)
        assert migrations.current_revision(engine) == migrations.head_revision()
        assert "records" in inspect(engine).get_table_names()
        engine.dispose()

    def test_database_behind_head_is_upgraded(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        db_path = tmp_path / "gate.db"
        init_database(db_path).dispose()
        upgraded: list[Engine] = []
        monkeypatch.setattr(migrations, "head_revision", lambda: "999_future")
        monkeypatch.setattr(migrations, "upgrade_head", upgraded.append)

        engine = init_database(db_path)
        assert upgraded == [engine]
        engine.dispose()


class TestMigrations:
    def test_baseline_creates_schema(self, tmp_path: Path) -> None:
        db_path = tmp_path / "gate.db"
        engine = create_db_engine(db_path)
        migrations.upgrade_head(engine)
        insp = inspect(engine)
        assert {"manifests", "records"} <= set(insp.get_table_names())
        index_names = {ix["name"] for ix in insp.get_indexes("manifests")}
        assert "ix_manifests_state_expires" in index_names
        assert migrations.current_revision(engine) == "001_baseline"
        engine.dispose()

    def test_head_is_baseline(self) -> None:
        assert migrations.head_revision() == "001_baseline"
