from __future__ import annotations

import math
import runpy
from datetime import datetime
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

import pandas as pd

from schemadb import (
    add_time_series_row,
    compare_databases,
    compare_scalar_parameters,
    compare_set_relations,
    compare_time_series,
    compare_vector_parameters,
    create_element,
    create_empty_db_from_schema,
    generate_script_from_database,
    load_db,
    set_set_relation,
    set_time_series_file,
    update_scalar_parameter,
    update_vector_parameters,
)

SCHEMAS = Path(__file__).parent / "schemas"


def _populate_basic(db) -> None:
    create_element(db, "Configuration", label="Toy Case", date_initial=datetime(2020, 1, 1))
    create_element(db, "Resource", label="Resource 1", capacity=5.0, tag=["a", "b"])
    create_element(db, "Cost", label="Cost 1")
    create_element(db, "Cost", label="Cost 2", value=20.0)
    create_element(
        db,
        "Plant",
        label="Plant 1",
        capacity=10.0,
        units=2,
        date_commission=datetime(2015, 3, 1, 12),
        resource_id="Resource 1",
        value1=[1.0, math.nan, 3.0],
        cost_id=["Cost 2", "Cost 1"],
    )
    create_element(db, "Plant", label="Plant 2", plant_turbine_to="Plant 1", plant_neighbour=["Plant 1"])
    set_set_relation(db, "Plant", "Plant", "Plant 1", ["Plant 2"], "neighbour")
    set_time_series_file(db, "Plant", generation="generation.csv")


def _populate_time_series(db) -> None:
    create_element(db, "Configuration", value1=3.0)
    create_element(db, "Plant", label="Plant 1")
    create_element(
        db,
        "Resource",
        label="Resource 1",
        group1=pd.DataFrame(
            {"date_time": [datetime(2000, 1, 1), datetime(2001, 1, 1)], "some_vector1": [1.0, 2.0]}
        ),
        generation=pd.DataFrame({"date_time": [datetime(2000, 1, 1)], "power": [4.0], "plant_id": ["Plant 1"]}),
    )
    add_time_series_row(
        db, "Resource", "energy", "Resource 1", 7.0, date_time=datetime(2000, 1, 1), block=2, scenario=1
    )
    set_time_series_file(db, "Resource", wind="wind.csv", solar="solar.csv")


class CompareTests(TestCase):
    def setUp(self) -> None:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.directory = Path(tmp.name)

    def _pair(self, schema: str, populate):
        dbs = []
        for name in ("first", "second"):
            db = create_empty_db_from_schema(self.directory / f"{name}.sqlite", SCHEMAS / f"{schema}.sql")
            self.addCleanup(db.close)
            populate(db)
            dbs.append(db)
        return dbs

    def test_identical_databases(self) -> None:
        first, second = self._pair("basic", _populate_basic)

        self.assertEqual(compare_databases(first, second), [])

    def test_scalar_difference(self) -> None:
        first, second = self._pair("basic", _populate_basic)
        update_scalar_parameter(second, "Plant", "capacity", "Plant 1", 11.0)

        differences = compare_scalar_parameters(first, second, "Plant")

        self.assertEqual(len(differences), 1)
        self.assertIn('"capacity"', differences[0])
        self.assertEqual(compare_databases(first, second), differences)

    def test_nan_equals_nan_in_vectors(self) -> None:
        first, second = self._pair("basic", _populate_basic)

        self.assertEqual(compare_vector_parameters(first, second, "Plant"), [])

        update_vector_parameters(second, "Plant", "value1", "Plant 1", [1.0, 2.0, 3.0])
        self.assertEqual(len(compare_vector_parameters(first, second, "Plant")), 1)

    def test_sets_ignore_order(self) -> None:
        first, second = self._pair("basic", _populate_basic)
        create_element(first, "Plant", label="Plant 3")
        create_element(second, "Plant", label="Plant 3")
        set_set_relation(first, "Plant", "Plant", "Plant 3", ["Plant 1", "Plant 2"], "neighbour")
        set_set_relation(second, "Plant", "Plant", "Plant 3", ["Plant 2", "Plant 1"], "neighbour")

        self.assertEqual(compare_set_relations(first, second, "Plant"), [])

    def test_element_count_difference(self) -> None:
        first, second = self._pair("basic", _populate_basic)
        create_element(second, "Cost", label="Cost 3")

        differences = compare_databases(first, second)

        self.assertEqual(len(differences), 1)
        self.assertIn("2 and 3 elements", differences[0])

    def test_time_series_difference(self) -> None:
        first, second = self._pair("time_series", _populate_time_series)
        self.assertEqual(compare_databases(first, second), [])

        add_time_series_row(second, "Resource", "some_vector1", "Resource 1", 9.0, date_time=datetime(2002, 1, 1))

        self.assertEqual(len(compare_time_series(first, second, "Resource")), 1)


class ScriptGenerationTests(TestCase):
    def setUp(self) -> None:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.directory = Path(tmp.name)

    def _round_trip(self, schema: str, populate) -> list[str]:
        original = create_empty_db_from_schema(self.directory / "original.sqlite", SCHEMAS / f"{schema}.sql")
        self.addCleanup(original.close)
        populate(original)
        reconstructed_path = self.directory / "reconstructed.sqlite"

        script = generate_script_from_database(
            original,
            self.directory / "rebuild.py",
            reconstructed_path,
            schema_path=SCHEMAS / f"{schema}.sql",
        )
        runpy.run_path(str(script))

        reconstructed = load_db(reconstructed_path, read_only=True)
        self.addCleanup(reconstructed.close)
        return compare_databases(original, reconstructed)

    def test_script_rebuilds_parameters_and_relations(self) -> None:
        self.assertEqual(self._round_trip("basic", _populate_basic), [])

    def test_script_rebuilds_time_series(self) -> None:
        self.assertEqual(self._round_trip("time_series", _populate_time_series), [])

    def test_script_is_plain_python(self) -> None:
        original = create_empty_db_from_schema(self.directory / "original.sqlite", SCHEMAS / "basic.sql")
        self.addCleanup(original.close)
        _populate_basic(original)

        script = generate_script_from_database(
            original,
            self.directory / "rebuild.py",
            self.directory / "reconstructed.sqlite",
            schema_path=SCHEMAS / "basic.sql",
        )
        source = script.read_text(encoding="utf-8")

        self.assertIn("create_element(db, 'Plant', id=1, label='Plant 1'", source)
        self.assertIn("datetime.datetime(2015, 3, 1, 12, 0)", source)
        self.assertIn("math.nan", source)
        self.assertIn("set_scalar_relation(db, 'Plant', 'Plant', 2, 1, 'turbine_to')", source)
        self.assertIn("set_time_series_file(db, 'Plant', generation='generation.csv')", source)
