from __future__ import annotations

import shutil
import sqlite3
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

from schemadb import (
    DatabaseException,
    Settings,
    apply_migrations,
    check_migrations_round_trip,
    create_element,
    create_empty_db_from_migrations,
    discover_migrations,
    load_db,
    read_scalar_parameter,
    read_user_version,
)
from schemadb.services.migrations import table_names

MIGRATIONS = Path(__file__).parent / "migrations"

PARENT_AND_CHILD = """
CREATE TABLE Configuration (id INTEGER PRIMARY KEY AUTOINCREMENT, label TEXT UNIQUE NOT NULL);
CREATE TABLE Parent (id INTEGER PRIMARY KEY AUTOINCREMENT, label TEXT UNIQUE NOT NULL);
CREATE TABLE Child (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT UNIQUE NOT NULL,
    parent_id INTEGER,
    FOREIGN KEY(parent_id) REFERENCES Parent(id) ON DELETE SET NULL ON UPDATE CASCADE
);
"""


class MigrationTests(TestCase):
    def setUp(self) -> None:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.directory = Path(tmp.name)

    def _migrations(self, scripts: dict[int, tuple[str, str]]) -> Path:
        root = self.directory / "migrations"
        for version, (up, down) in scripts.items():
            step = root / str(version)
            step.mkdir(parents=True)
            (step / "up.sql").write_text(up, encoding="utf-8")
            (step / "down.sql").write_text(down, encoding="utf-8")
        return root

    def _first_migration_only(self) -> Path:
        root = self.directory / "first"
        shutil.copytree(MIGRATIONS / "1", root / "1")
        return root

    def _first_step_of(self, root: Path) -> Path:
        first = self.directory / "first_step"
        shutil.copytree(root / "1", first / "1")
        return first

    def test_discover_orders_versions(self) -> None:
        migrations = discover_migrations(MIGRATIONS)

        self.assertEqual([migration.version for migration in migrations], [1, 2, 3])
        self.assertIn("ADD COLUMN size", migrations[2].script("up"))

    def test_versions_must_not_have_gaps(self) -> None:
        root = self._migrations({1: ("SELECT 1;", "SELECT 1;"), 3: ("SELECT 1;", "SELECT 1;")})

        with self.assertRaises(DatabaseException) as raised:
            discover_migrations(root)

        self.assertIn("missing [2]", raised.exception.detail)

    def test_scripts_must_not_be_empty(self) -> None:
        root = self._migrations({1: ("CREATE TABLE A (id INTEGER);", "  \n")})

        with self.assertRaises(DatabaseException):
            discover_migrations(root)

    def test_round_trip(self) -> None:
        self.assertTrue(check_migrations_round_trip(MIGRATIONS))

    def test_round_trip_detects_leftover_tables(self) -> None:
        leftover = "CREATE TABLE Leftover (id INTEGER PRIMARY KEY AUTOINCREMENT, label TEXT UNIQUE NOT NULL);"
        root = self._migrations(
            {1: (PARENT_AND_CHILD + leftover, "DROP TABLE Child; DROP TABLE Parent; DROP TABLE Configuration;")}
        )

        self.assertFalse(check_migrations_round_trip(root))

    def test_create_from_migrations_reaches_latest_version(self) -> None:
        path = self.directory / "db.sqlite"

        db = create_empty_db_from_migrations(path, MIGRATIONS)
        self.addCleanup(db.close)

        self.assertEqual(db.user_version(), 3)
        self.assertIn("size", db.collection("TestOne").attributes)
        self.assertEqual(db.collection("TestTwo").attributes["testone_id"].kind, "scalar_relation")
        self.assertFalse((self.directory / "_backups").exists())

    def test_load_db_applies_pending_migrations_after_a_backup(self) -> None:
        path = self.directory / "db.sqlite"
        db = create_empty_db_from_migrations(path, self._first_migration_only())
        create_element(db, "Configuration", label="Toy Case")
        create_element(db, "TestOne", label="One", capacity=2.0)
        db.close()

        db = load_db(path, migrations_dir=MIGRATIONS)
        self.addCleanup(db.close)

        self.assertEqual(db.user_version(), 3)
        self.assertEqual(read_scalar_parameter(db, "TestOne", "capacity", "One"), 2.0)
        backups = list((self.directory / "_backups").iterdir())
        self.assertEqual(len(backups), 1)
        self.assertTrue(backups[0].name.startswith("db_"))
        self.assertEqual(backups[0].suffix, ".sqlite")
        backup = load_db(backups[0], read_only=True)
        self.addCleanup(backup.close)
        self.assertEqual(backup.user_version(), 1)
        self.assertNotIn("TestTwo", backup.catalog)

    def test_backups_directory_name_comes_from_settings(self) -> None:
        path = self.directory / "db.sqlite"
        settings = Settings(backups_dir_name="snapshots")
        create_empty_db_from_migrations(path, self._first_migration_only(), settings=settings).close()

        db = load_db(path, migrations_dir=MIGRATIONS, settings=settings)
        self.addCleanup(db.close)

        self.assertEqual(len(list((self.directory / "snapshots").iterdir())), 1)

    def test_migrate_down(self) -> None:
        db = create_empty_db_from_migrations(self.directory / "db.sqlite", MIGRATIONS)
        self.addCleanup(db.close)

        apply_migrations(db.connection, MIGRATIONS, 3, 1, "down")
        db.refresh_catalog()

        self.assertEqual(db.user_version(), 1)
        self.assertNotIn("TestTwo", db.catalog)
        self.assertNotIn("size", db.collection("TestOne").attributes)

    def test_from_version_must_match_the_database(self) -> None:
        db = create_empty_db_from_migrations(self.directory / "db.sqlite", MIGRATIONS)
        self.addCleanup(db.close)

        with self.assertRaises(DatabaseException) as raised:
            apply_migrations(db.connection, MIGRATIONS, 1, 3, "up")

        self.assertIn("version 3", raised.exception.detail)

    def test_direction_is_checked(self) -> None:
        db = create_empty_db_from_migrations(self.directory / "db.sqlite", MIGRATIONS)
        self.addCleanup(db.close)

        with self.assertRaises(DatabaseException):
            apply_migrations(db.connection, MIGRATIONS, 3, 1, "up")
        with self.assertRaises(DatabaseException):
            apply_migrations(db.connection, MIGRATIONS, 3, 1, "sideways")

    def test_unknown_target_version(self) -> None:
        db = create_empty_db_from_migrations(self.directory / "db.sqlite", MIGRATIONS)
        self.addCleanup(db.close)

        with self.assertRaises(DatabaseException):
            apply_migrations(db.connection, MIGRATIONS, 3, 5, "up")

    def test_database_newer_than_migrations(self) -> None:
        path = self.directory / "db.sqlite"
        create_empty_db_from_migrations(path, MIGRATIONS).close()

        with self.assertRaises(DatabaseException):
            load_db(path, migrations_dir=self._first_migration_only())

    def test_migrations_need_a_writable_database(self) -> None:
        path = self.directory / "db.sqlite"
        create_empty_db_from_migrations(path, MIGRATIONS).close()

        with self.assertRaises(DatabaseException):
            load_db(path, read_only=True, migrations_dir=MIGRATIONS)

    def test_failing_step_is_rolled_back(self) -> None:
        root = self._migrations(
            {
                1: (PARENT_AND_CHILD, "DROP TABLE Child; DROP TABLE Parent; DROP TABLE Configuration;"),
                2: (
                    "CREATE TABLE Extra (id INTEGER PRIMARY KEY); INSERT INTO Missing VALUES (1);",
                    "DROP TABLE Extra;",
                ),
            }
        )
        path = self.directory / "db.sqlite"

        with self.assertRaises(sqlite3.OperationalError):
            create_empty_db_from_migrations(path, root)

        connection = sqlite3.connect(path)
        try:
            version = connection.execute("PRAGMA user_version").fetchone()[0]
            tables = {row[0] for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        finally:
            connection.close()
        self.assertEqual(version, 1)
        self.assertIn("Parent", tables)
        self.assertNotIn("Extra", tables)

    def test_foreign_key_violation_aborts_the_step(self) -> None:
        root = self._migrations(
            {
                1: (PARENT_AND_CHILD, "DROP TABLE Child; DROP TABLE Parent; DROP TABLE Configuration;"),
                2: ("INSERT INTO Child (id, label, parent_id) VALUES (1, 'Orphan', 99);", "DELETE FROM Child;"),
            }
        )
        path = self.directory / "db.sqlite"

        with self.assertLogs("schemadb.migrations", level="ERROR"):
            with self.assertRaises(DatabaseException) as raised:
                create_empty_db_from_migrations(path, root)

        self.assertIn("foreign key", raised.exception.detail)
        db = load_db(path)
        self.addCleanup(db.close)
        self.assertEqual(read_user_version(db.connection), 1)
        self.assertEqual(table_names(db.connection), ["Child", "Configuration", "Parent"])

    def test_invalid_schema_is_not_committed(self) -> None:
        root = self._migrations(
            {
                1: (PARENT_AND_CHILD, "DROP TABLE Child; DROP TABLE Parent; DROP TABLE Configuration;"),
                2: ("CREATE TABLE bad_table (id INTEGER PRIMARY KEY);", "DROP TABLE bad_table;"),
            }
        )
        path = self.directory / "db.sqlite"
        create_empty_db_from_migrations(path, self._first_step_of(root)).close()

        with self.assertLogs("schemadb.migrations", level="ERROR"):
            with self.assertRaises(DatabaseException) as raised:
                load_db(path, migrations_dir=root)

        self.assertIn("bad_table", raised.exception.detail)
        db = load_db(path)
        self.addCleanup(db.close)
        self.assertEqual(db.user_version(), 1)
        self.assertEqual(table_names(db.connection), ["Child", "Configuration", "Parent"])
