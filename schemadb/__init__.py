from schemadb.core.config import Settings, get_settings
from schemadb.core.exceptions import DatabaseException
from schemadb.core.logging import configure_logging
from schemadb.core.values import FLOAT_NULL, INTEGER_NULL, STRING_NULL, TIMESTAMP_NULL, is_null, null_value
from schemadb.db.catalog import Attribute, Collection, build_catalog
from schemadb.db.session import Database
from schemadb.repositories.create import add_time_series_row, create_element
from schemadb.repositories.delete import delete_element, delete_time_series
from schemadb.repositories.read import (
    element_ids,
    get_id,
    get_label,
    number_of_elements,
    read_scalar_parameter,
    read_scalar_parameters,
    read_scalar_relation,
    read_scalar_relations,
    read_set_parameter,
    read_set_parameters,
    read_set_relation,
    read_set_relations,
    read_time_series_file,
    read_time_series_relation_table,
    read_time_series_row,
    read_time_series_table,
    read_time_series_value,
    read_vector_parameter,
    read_vector_parameters,
    read_vector_relation,
    read_vector_relations,
)
from schemadb.repositories.update import (
    set_scalar_relation,
    set_set_relation,
    set_time_series_file,
    set_vector_relation,
    update_parameter,
    update_scalar_parameter,
    update_set_parameters,
    update_time_series_row,
    update_vector_parameters,
)
from schemadb.services.bootstrap import (
    create_empty_db_from_migrations,
    create_empty_db_from_schema,
    execute_statements,
    load_db,
)
from schemadb.services.compare import (
    compare_databases,
    compare_scalar_parameters,
    compare_scalar_relations,
    compare_set_parameters,
    compare_set_relations,
    compare_time_series,
    compare_time_series_files,
    compare_vector_parameters,
    compare_vector_relations,
)
from schemadb.services.migrations import (
    apply_migrations,
    check_migrations_round_trip,
    db_is_empty,
    discover_migrations,
    read_user_version,
)
from schemadb.services.script_generator import generate_script_from_database

__all__ = [
    "Attribute",
    "Collection",
    "Database",
    "DatabaseException",
    "FLOAT_NULL",
    "INTEGER_NULL",
    "STRING_NULL",
    "Settings",
    "TIMESTAMP_NULL",
    "add_time_series_row",
    "apply_migrations",
    "build_catalog",
    "check_migrations_round_trip",
    "compare_databases",
    "compare_scalar_parameters",
    "compare_scalar_relations",
    "compare_set_parameters",
    "compare_set_relations",
    "compare_time_series",
    "compare_time_series_files",
    "compare_vector_parameters",
    "compare_vector_relations",
    "configure_logging",
    "create_element",
    "create_empty_db_from_migrations",
    "create_empty_db_from_schema",
    "db_is_empty",
    "delete_element",
    "delete_time_series",
    "discover_migrations",
    "element_ids",
    "execute_statements",
    "generate_script_from_database",
    "get_id",
    "get_label",
    "get_settings",
    "is_null",
    "load_db",
    "null_value",
    "number_of_elements",
    "read_scalar_parameter",
    "read_scalar_parameters",
    "read_scalar_relation",
    "read_scalar_relations",
    "read_set_parameter",
    "read_set_parameters",
    "read_set_relation",
    "read_set_relations",
    "read_time_series_file",
    "read_time_series_relation_table",
    "read_time_series_row",
    "read_time_series_table",
    "read_time_series_value",
    "read_user_version",
    "read_vector_parameter",
    "read_vector_parameters",
    "read_vector_relation",
    "read_vector_relations",
    "set_scalar_relation",
    "set_set_relation",
    "set_time_series_file",
    "set_vector_relation",
    "update_parameter",
    "update_scalar_parameter",
    "update_set_parameters",
    "update_time_series_row",
    "update_vector_parameters",
]
