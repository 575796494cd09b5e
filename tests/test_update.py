from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

from schemadb import (
    DatabaseException,
    create_element,
    create_empty_db_from_schema,
    read_scalar_parameter,
    read_scalar_relation,
    read_set_parameter,
    read_set_relation,
    read_time_series_file,
    read_vector_parameter,
    read_vector_relation,
    set_scalar_relation,
    set_set_relation,
    set_time_series_file,
    set_vector_relation,
    update_parameter,
    update_scalar_parameter,
    update_set_parameters,
    update_vector_parameters,
)
from schemadb.repositories.update import validate_time_series_file_path

SCHEMAS = Path(__file__).parent / "schemas"


class UpdateTests(TestCase):
    def setUp(self) -> None:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.db = create_empty_db_from_schema(Path(tmp.name) / "basic.sqlite", SCHEMAS / "basic.sql")
        self.addCleanup(self.db.close)
        create_element(self.db, "Configuration", label="Toy Case")
        create_element(self.db, "Resource", label="Resource 1", tag=["a", "b"])
        create_element(self.db, "Resource", label="Resource 2")
        create_element(self.db, "Cost", label="Cost 1")
        create_element(self.db, "Cost", label="Cost 2")
        create_element(self.db, "Plant", label="Plant 1", value1=[1.0, 2.0, 3.0])
        create_element(self.db, "Plant", label="Plant 2")

    def test_update_scalar_parameter(self) -> None:
        update_scalar_parameter(self.db, "Plant", "capacity", "Plant 1", 55.0)

        self.assertEqual(read_scalar_parameter(self.db, "Plant", "capacity", "Plant 1"), 55.0)

    def test_update_scalar_parameter_checks_type(self) -> None:
        with self.assertRaises(DatabaseException):
            update_scalar_parameter(self.db, "Plant", "capacity", "Plant 1", "large")

    def test_update_vector_keeps_its_length(self) -> None:
        update_vector_parameters(self.db, "Plant", "value1", "Plant 1", [4.0, 5.0, 6.0])

        self.assertEqual(read_vector_parameter(self.db, "Plant", "value1", "Plant 1"), [4.0, 5.0, 6.0])

    def test_update_vector_with_another_length_is_rejected(self) -> None:
        with self.assertRaises(DatabaseException) as raised:
            update_vector_parameters(self.db, "Plant", "value1", "Plant 1", [4.0, 5.0])

        self.assertIn("currently holds 3 values", raised.exception.detail)
        self.assertEqual(read_vector_parameter(self.db, "Plant", "value1", "Plant 1"), [1.0, 2.0, 3.0])

    def test_update_group_member_of_an_element_without_rows(self) -> None:
        update_vector_parameters(self.db, "Plant", "value2", "Plant 2", [7.0, 8.0])

        self.assertEqual(read_vector_parameter(self.db, "Plant", "value2", "Plant 2"), [7.0, 8.0])

    def test_update_sibling_member_of_an_existing_group(self) -> None:
        update_vector_parameters(self.db, "Plant", "value2", "Plant 1", [0.1, 0.2, 0.3])

        self.assertEqual(read_vector_parameter(self.db, "Plant", "value1", "Plant 1"), [1.0, 2.0, 3.0])
        self.assertEqual(read_vector_parameter(self.db, "Plant", "value2", "Plant 1"), [0.1, 0.2, 0.3])

    def test_update_set_parameters(self) -> None:
        update_set_parameters(self.db, "Resource", "tag", "Resource 1", ["c", "d"])

        self.assertEqual(read_set_parameter(self.db, "Resource", "tag", "Resource 1"), ["c", "d"])

    def test_update_parameter_dispatches_on_kind(self) -> None:
        update_parameter(self.db, "Plant", "Plant 1", capacity=3.0, units=2, value1=[9.0, 9.0, 9.0])

        self.assertEqual(read_scalar_parameter(self.db, "Plant", "capacity", "Plant 1"), 3.0)
        self.assertEqual(read_scalar_parameter(self.db, "Plant", "units", "Plant 1"), 2)
        self.assertEqual(read_vector_parameter(self.db, "Plant", "value1", "Plant 1"), [9.0, 9.0, 9.0])

    def test_update_parameter_rejects_relations(self) -> None:
        with self.assertRaises(DatabaseException) as raised:
            update_parameter(self.db, "Plant", "Plant 1", resource_id="Resource 1")

        self.assertIn("set_scalar_relation", raised.exception.detail)

    def test_set_scalar_relation_by_label_and_by_id(self) -> None:
        set_scalar_relation(self.db, "Plant", "Resource", "Plant 1", "Resource 1", "id")
        set_scalar_relation(self.db, "Plant", "Resource", "Plant 1", "Resource 1", "id")
        self.assertEqual(read_scalar_relation(self.db, "Plant", "Resource", "id", "Plant 1"), "Resource 1")

        set_scalar_relation(self.db, "Plant", "Resource", 1, 2, "id")
        self.assertEqual(read_scalar_relation(self.db, "Plant", "Resource", "id", "Plant 1", as_ids=True), 2)

    def test_set_scalar_relation_rejects_lists(self) -> None:
        with self.assertRaises(DatabaseException):
            set_scalar_relation(self.db, "Plant", "Resource", "Plant 1", ["Resource 1"], "id")

    def test_set_relation_to_itself_is_rejected(self) -> None:
        with self.assertRaises(DatabaseException):
            set_scalar_relation(self.db, "Plant", "Plant", "Plant 1", "Plant 1", "turbine_to")
        with self.assertRaises(DatabaseException):
            set_set_relation(self.db, "Plant", "Plant", "Plant 1", ["Plant 2", "Plant 1"], "neighbour")

    def test_set_vector_and_set_relations(self) -> None:
        set_vector_relation(self.db, "Plant", "Cost", "Plant 2", ["Cost 2", "Cost 1"], "id")
        set_set_relation(self.db, "Plant", "Plant", "Plant 1", ["Plant 2"], "neighbour")

        self.assertEqual(read_vector_relation(self.db, "Plant", "Cost", "id", "Plant 2"), ["Cost 2", "Cost 1"])
        self.assertEqual(read_set_relation(self.db, "Plant", "Plant", "neighbour", "Plant 1"), ["Plant 2"])

        set_vector_relation(self.db, "Plant", "Cost", "Plant 2", [1, 1], "id")
        self.assertEqual(read_vector_relation(self.db, "Plant", "Cost", "id", "Plant 2"), ["Cost 1", "Cost 1"])

    def test_set_time_series_file_inserts_then_updates(self) -> None:
        set_time_series_file(self.db, "Plant", generation="generation.csv")
        set_time_series_file(self.db, "Plant", generation="data/generation.csv", prices="prices.csv")

        self.assertEqual(read_time_series_file(self.db, "Plant", "generation"), "data/generation.csv")
        self.assertEqual(read_time_series_file(self.db, "Plant", "prices"), "prices.csv")

    def test_set_time_series_file_rejects_absolute_paths(self) -> None:
        with self.assertRaises(DatabaseException):
            set_time_series_file(self.db, "Plant", generation="/tmp/generation.csv")

        self.assertEqual(read_time_series_file(self.db, "Plant", "generation"), "")

    def test_time_series_file_paths(self) -> None:
        validate_time_series_file_path("inputs/generation")
        for path in ("/data/a.csv", "~/a.csv", "C:\\data\\a.csv", "C:a.csv", "\\\\server\\share\\a.csv"):
            with self.subTest(path=path):
                with self.assertRaises(DatabaseException):
                    validate_time_series_file_path(path)
