from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Mapping

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, CursorResult, Engine

from schemadb.core.config import Settings, get_settings
from schemadb.core.exceptions import database_error
from schemadb.db.catalog import AttributeKind, Attribute, Catalog, Collection, build_catalog
from schemadb.db.introspection import read_schema
from schemadb.db.validation import validate_database
from schemadb.services.time_series_cache import TimeSeriesCache

IN_MEMORY = ":memory:"

_logger = logging.getLogger("schemadb.session")


def _enable_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
    finally:
        cursor.close()


def sqlite_url(path: str | Path, *, read_only: bool = False) -> str:
    if str(path) == IN_MEMORY:
        return "sqlite://"
    resolved = Path(path).resolve().as_posix()
    if read_only:
        return f"sqlite:///file:{resolved}?mode=ro&uri=true"
    return f"sqlite:///{resolved}"


def create_sqlite_engine(path: str | Path, *, read_only: bool = False) -> Engine:
    engine = create_engine(sqlite_url(path, read_only=read_only), isolation_level="AUTOCOMMIT")
    event.listen(engine, "connect", _enable_foreign_keys)
    return engine


class Database:
    def __init__(
        self,
        *,
        engine: Engine,
        connection: Connection,
        path: str,
        read_only: bool,
        settings: Settings,
    ):
        self.engine = engine
        self.connection = connection
        self.path = path
        self.read_only = read_only
        self.settings = settings
        self._catalog: Catalog | None = None
        self._time_series_cache: TimeSeriesCache | None = None

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        read_only: bool = False,
        settings: Settings | None = None,
    ) -> Database:
        engine = create_sqlite_engine(path, read_only=read_only)
        connection = engine.connect()
        _logger.debug("opened database path=%s read_only=%s", path, read_only)
        return cls(
            engine=engine,
            connection=connection,
            path=str(path),
            read_only=read_only,
            settings=settings or get_settings(),
        )

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *_exc_info: Any) -> None:
        self.close()

    @property
    def in_memory(self) -> bool:
        return self.path == IN_MEMORY

    @property
    def directory(self) -> Path:
        return Path(self.path).resolve().parent

    @property
    def catalog(self) -> Catalog:
        if self._catalog is None:
            database_error("Database catalog has not been built; the database was not validated.")
        return self._catalog

    def refresh_catalog(self) -> Catalog:
        schema = read_schema(self.connection)
        validate_database(
            schema,
            configuration_collection=self.settings.configuration_collection,
            date_dimension=self.settings.time_series_date_dimension,
        )
        self._catalog = build_catalog(schema, date_dimension=self.settings.time_series_date_dimension)
        self._time_series_cache = None
        _logger.info(
            "catalog built path=%s collections=%d",
            self.path,
            len(self._catalog),
        )
        return self._catalog

    @property
    def time_series_cache(self) -> TimeSeriesCache:
        if not self.read_only:
            database_error(
                "Time series queries with forward fill require a read-only database. "
                "Open the database with read_only=True."
            )
        if self._time_series_cache is None:
            self._time_series_cache = TimeSeriesCache(self.connection)
        return self._time_series_cache

    def collection(self, collection_id: str) -> Collection:
        collection = self.catalog.get(collection_id)
        if collection is None:
            database_error(f'Collection "{collection_id}" does not exist in the database.')
        return collection

    def attribute(
        self,
        collection_id: str,
        attribute_id: str,
        *kinds: AttributeKind,
    ) -> Attribute:
        collection = self.collection(collection_id)
        attribute = collection.attributes.get(attribute_id)
        if attribute is None:
            database_error(f'Collection "{collection_id}" does not have an attribute named "{attribute_id}".')
        if kinds and attribute.kind not in kinds:
            expected = " or ".join(kind.replace("_", " ") for kind in kinds)
            database_error(
                f'Attribute "{attribute_id}" of collection "{collection_id}" is a '
                f"{attribute.kind.replace('_', ' ')}, not a {expected}."
            )
        return attribute

    def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> CursorResult:
        return self.connection.execute(text(statement), dict(params or {}))

    def execute_script(self, script: str) -> None:
        self.connection.connection.driver_connection.executescript(script)

    @property
    def in_transaction(self) -> bool:
        return bool(self.connection.connection.driver_connection.in_transaction)

    @contextmanager
    def transaction(self) -> Generator[Database, None, None]:
        if self.in_transaction:
            yield self
            return
        self.connection.exec_driver_sql("BEGIN")
        try:
            yield self
        except BaseException:
            self.connection.exec_driver_sql("ROLLBACK")
            raise
        self.connection.exec_driver_sql("COMMIT")

    def user_version(self) -> int:
        return int(self.connection.exec_driver_sql("PRAGMA user_version").scalar_one())

    def close(self) -> None:
        self._time_series_cache = None
        self._catalog = None
        self.connection.close()
        self.engine.dispose()
        _logger.debug("closed database path=%s", self.path)
