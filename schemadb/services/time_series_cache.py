from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection

from schemadb.core.exceptions import database_error
from schemadb.core.values import as_datetime, from_db_value, null_value, parse_datetime
from schemadb.db.catalog import Attribute, IDENTITY_COLUMN

SeriesKey = tuple[int, tuple[Any, ...]]


@dataclass
class AttributeIndex:
    """Breakpoints of one time series attribute.

    Rows are partitioned by element id and by the values of the extra
    dimensions. Each partition keeps its dates sorted ascending with the
    value stored at each date, so a lookup is a single bisect.
    """

    attribute_id: str
    dates: dict[SeriesKey, list[datetime]] = field(default_factory=dict)
    values: dict[SeriesKey, list[Any]] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.dates

    def lookup(self, key: SeriesKey, date_time: datetime, missing: Any) -> Any:
        dates = self.dates.get(key)
        if not dates:
            return missing
        position = bisect_right(dates, date_time)
        if position == 0:
            return missing
        return self.values[key][position - 1]


class TimeSeriesCache:
    def __init__(self, connection: Connection):
        self._connection = connection
        self._indexes: dict[tuple[str, str], AttributeIndex] = {}
        self._logger = logging.getLogger("schemadb.time_series_cache")

    def __len__(self) -> int:
        return len(self._indexes)

    def is_built(self, attribute: Attribute) -> bool:
        return (attribute.parent_collection, attribute.id) in self._indexes

    def value(
        self,
        attribute: Attribute,
        element_id: int,
        date_time: datetime,
        dimensions: Mapping[str, Any] | None = None,
    ) -> Any:
        return self.row(attribute, [element_id], date_time, dimensions)[0]

    def row(
        self,
        attribute: Attribute,
        element_ids: Sequence[int],
        date_time: datetime,
        dimensions: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        missing = null_value(attribute.type)
        if not element_ids:
            return []
        partition = self._partition(attribute, dimensions or {})
        index = self._index(attribute)
        if index.empty:
            return [missing] * len(element_ids)
        moment = _as_datetime(date_time)
        return [index.lookup((int(element_id), partition), moment, missing) for element_id in element_ids]

    def _partition(self, attribute: Attribute, dimensions: Mapping[str, Any]) -> tuple[Any, ...]:
        expected = attribute.extra_dimension_names
        if set(dimensions) != set(expected):
            database_error(
                f'Time series "{attribute.id}" of collection "{attribute.parent_collection}" is indexed by '
                f"{list(attribute.dimension_names)}; the query must give date_time and exactly "
                f"{list(expected)}, got {sorted(dimensions)}."
            )
        return tuple(dimensions[name] for name in expected)

    def _index(self, attribute: Attribute) -> AttributeIndex:
        cache_key = (attribute.parent_collection, attribute.id)
        index = self._indexes.get(cache_key)
        if index is None:
            index = self._build(attribute)
            self._indexes[cache_key] = index
        return index

    def _build(self, attribute: Attribute) -> AttributeIndex:
        date_dimension = attribute.dimension_names[0]
        extra = attribute.extra_dimension_names
        key_columns = ", ".join(f'"{name}"' for name in extra)
        order_columns = ", ".join([f'"{IDENTITY_COLUMN}"', *(f'"{name}"' for name in extra), f'"{date_dimension}"'])
        selected = ", ".join(
            [f'"{IDENTITY_COLUMN}"', f'"{date_dimension}"', *([key_columns] if extra else []), f'"{attribute.id}"']
        )
        rows = self._connection.execute(
            text(
                f'SELECT {selected} FROM "{attribute.table}" '
                f'WHERE "{attribute.id}" IS NOT NULL '
                f"ORDER BY {order_columns}"
            )
        ).all()

        index = AttributeIndex(attribute_id=attribute.id)
        missing = null_value(attribute.type)
        for row in rows:
            element_id = int(row[0])
            partition = tuple(row[2 : 2 + len(extra)])
            key = (element_id, partition)
            try:
                moment = parse_datetime(str(row[1]))
            except ValueError:
                database_error(
                    f'Table "{attribute.table}" stores "{row[1]}" as "{date_dimension}" for element {element_id}, '
                    "which is not an ISO date."
                )
            index.dates.setdefault(key, []).append(moment)
            index.values.setdefault(key, []).append(from_db_value(row[-1], attribute.type, missing))

        # dates stored as text may not sort chronologically as strings
        for key, dates in index.dates.items():
            if any(later < earlier for earlier, later in zip(dates, dates[1:])):
                ordered = sorted(zip(dates, index.values[key]), key=lambda pair: pair[0])
                index.dates[key] = [pair[0] for pair in ordered]
                index.values[key] = [pair[1] for pair in ordered]

        self._logger.debug(
            "time series index built collection=%s attribute=%s rows=%d partitions=%d",
            attribute.parent_collection,
            attribute.id,
            len(rows),
            len(index.dates),
        )
        return index


def _as_datetime(value: Any) -> datetime:
    try:
        return as_datetime(value)
    except (TypeError, ValueError):
        database_error(f"Time series queries take a date for date_time, got {type(value).__name__}: {value!r}.")
