from __future__ import annotations

from collections import Counter
from typing import Any, Callable

from schemadb.core.values import is_null
from schemadb.db.catalog import Attribute
from schemadb.db.session import Database
from schemadb.repositories import read


def _normalized(value: Any) -> Any:
    return None if is_null(value) else value


def _same(left: Any, right: Any) -> bool:
    return _normalized(left) == _normalized(right)


def _relation_reader_args(db: Database, attribute: Attribute) -> dict[str, Any]:
    target = db.collection(str(attribute.relation_collection))
    return {"as_ids": not target.has_label}


def compare_scalar_parameters(db1: Database, db2: Database, collection_id: str) -> list[str]:
    differences: list[str] = []
    for attribute_id in db1.collection(collection_id).scalar_parameters:
        left = read.read_scalar_parameters(db1, collection_id, attribute_id)
        right = read.read_scalar_parameters(db2, collection_id, attribute_id)
        differences.extend(_compare_lists(collection_id, f'scalar parameter "{attribute_id}"', left, right))
    return differences


def _compare_lists(collection_id: str, what: str, left: list[Any], right: list[Any]) -> list[str]:
    if len(left) != len(right):
        return [
            f'Collection "{collection_id}": {what} has {len(left)} values in the first database '
            f"and {len(right)} in the second."
        ]
    return [
        f'Collection "{collection_id}": {what} differs at element {position + 1}: {a!r} != {b!r}.'
        for position, (a, b) in enumerate(zip(left, right))
        if not _same(a, b)
    ]


def _compare_nested(
    collection_id: str,
    what: str,
    left: list[list[Any]],
    right: list[list[Any]],
    *,
    ordered: bool,
) -> list[str]:
    if len(left) != len(right):
        return [
            f'Collection "{collection_id}": {what} has {len(left)} elements in the first database '
            f"and {len(right)} in the second."
        ]
    differences: list[str] = []
    for position, (a, b) in enumerate(zip(left, right)):
        if ordered:
            equal = len(a) == len(b) and all(_same(x, y) for x, y in zip(a, b))
        else:
            equal = Counter(_normalized(x) for x in a) == Counter(_normalized(y) for y in b)
        if not equal:
            differences.append(
                f'Collection "{collection_id}": {what} differs at element {position + 1}: {a!r} != {b!r}.'
            )
    return differences


def compare_vector_parameters(db1: Database, db2: Database, collection_id: str) -> list[str]:
    differences: list[str] = []
    for attribute_id in db1.collection(collection_id).vector_parameters:
        left = read.read_vector_parameters(db1, collection_id, attribute_id)
        right = read.read_vector_parameters(db2, collection_id, attribute_id)
        differences.extend(
            _compare_nested(collection_id, f'vector parameter "{attribute_id}"', left, right, ordered=True)
        )
    return differences


def compare_set_parameters(db1: Database, db2: Database, collection_id: str) -> list[str]:
    differences: list[str] = []
    for attribute_id in db1.collection(collection_id).set_parameters:
        left = read.read_set_parameters(db1, collection_id, attribute_id)
        right = read.read_set_parameters(db2, collection_id, attribute_id)
        differences.extend(
            _compare_nested(collection_id, f'set parameter "{attribute_id}"', left, right, ordered=False)
        )
    return differences


def compare_scalar_relations(db1: Database, db2: Database, collection_id: str) -> list[str]:
    differences: list[str] = []
    for attribute in db1.collection(collection_id).scalar_relations.values():
        target, relation_type = str(attribute.relation_collection), str(attribute.relation_type)
        options = _relation_reader_args(db1, attribute)
        left = read.read_scalar_relations(db1, collection_id, target, relation_type, **options)
        right = read.read_scalar_relations(db2, collection_id, target, relation_type, **options)
        differences.extend(_compare_lists(collection_id, f'scalar relation "{attribute.id}"', left, right))
    return differences


def _compare_grouped_relations(
    db1: Database,
    db2: Database,
    collection_id: str,
    attributes: dict[str, Attribute],
    reader: Callable[..., list[list[Any]]],
    what: str,
    *,
    ordered: bool,
) -> list[str]:
    differences: list[str] = []
    for attribute in attributes.values():
        target, relation_type = str(attribute.relation_collection), str(attribute.relation_type)
        options = _relation_reader_args(db1, attribute)
        left = reader(db1, collection_id, target, relation_type, **options)
        right = reader(db2, collection_id, target, relation_type, **options)
        differences.extend(_compare_nested(collection_id, f'{what} "{attribute.id}"', left, right, ordered=ordered))
    return differences


def compare_vector_relations(db1: Database, db2: Database, collection_id: str) -> list[str]:
    return _compare_grouped_relations(
        db1,
        db2,
        collection_id,
        db1.collection(collection_id).vector_relations,
        read.read_vector_relations,
        "vector relation",
        ordered=True,
    )


def compare_set_relations(db1: Database, db2: Database, collection_id: str) -> list[str]:
    return _compare_grouped_relations(
        db1,
        db2,
        collection_id,
        db1.collection(collection_id).set_relations,
        read.read_set_relations,
        "set relation",
        ordered=False,
    )


def _time_series_records(
    db: Database,
    collection_id: str,
    attribute: Attribute,
    element_id: int,
) -> list[tuple[Any, ...]]:
    if attribute.is_relation and db.collection(str(attribute.relation_collection)).has_label:
        frame = read.read_time_series_relation_table(db, collection_id, attribute.id, element_id)
    else:
        frame = read.read_time_series_table(db, collection_id, attribute.id, element_id)
    records = []
    for row in frame.itertuples(index=False, name=None):
        if is_null(row[-1]):
            continue
        records.append(tuple(_normalized(value) for value in row))
    return records


def compare_time_series(db1: Database, db2: Database, collection_id: str) -> list[str]:
    differences: list[str] = []
    left_ids = read.element_ids(db1, collection_id)
    right_ids = read.element_ids(db2, collection_id)
    if len(left_ids) != len(right_ids):
        return [f'Collection "{collection_id}": the databases hold {len(left_ids)} and {len(right_ids)} elements.']
    for attribute in db1.collection(collection_id).time_series.values():
        for position, (left_id, right_id) in enumerate(zip(left_ids, right_ids)):
            left = _time_series_records(db1, collection_id, attribute, left_id)
            right = _time_series_records(db2, collection_id, attribute, right_id)
            if left != right:
                differences.append(
                    f'Collection "{collection_id}": time series "{attribute.id}" differs at element {position + 1}.'
                )
    return differences


def compare_time_series_files(db1: Database, db2: Database, collection_id: str) -> list[str]:
    differences: list[str] = []
    for attribute_id in db1.collection(collection_id).time_series_files:
        left = read.read_time_series_file(db1, collection_id, attribute_id)
        right = read.read_time_series_file(db2, collection_id, attribute_id)
        if left != right:
            differences.append(
                f'Collection "{collection_id}": time series file "{attribute_id}" differs: {left!r} != {right!r}.'
            )
    return differences


COMPARISONS: tuple[Callable[[Database, Database, str], list[str]], ...] = (
    compare_scalar_parameters,
    compare_vector_parameters,
    compare_set_parameters,
    compare_scalar_relations,
    compare_vector_relations,
    compare_set_relations,
    compare_time_series,
    compare_time_series_files,
)


def compare_databases(db1: Database, db2: Database) -> list[str]:
    left = set(db1.catalog)
    right = set(db2.catalog)
    if left != right:
        return [
            "The databases hold different collections: "
            f"only in the first {sorted(left - right)}, only in the second {sorted(right - left)}."
        ]
    differences: list[str] = []
    for collection_id in sorted(left):
        left_count = read.number_of_elements(db1, collection_id)
        right_count = read.number_of_elements(db2, collection_id)
        if left_count != right_count:
            differences.append(
                f'Collection "{collection_id}": the databases hold {left_count} and {right_count} elements.'
            )
            continue
        for comparison in COMPARISONS:
            differences.extend(comparison(db1, db2, collection_id))
    return differences
