from __future__ import annotations

import logging

from schemadb.core.exceptions import database_error
from schemadb.db.catalog import IDENTITY_COLUMN
from schemadb.db.session import Database
from schemadb.repositories.read import ElementRef, resolve_id

_logger = logging.getLogger("schemadb.delete")


def delete_element(db: Database, collection_id: str, element: ElementRef) -> None:
    collection = db.collection(collection_id)
    element_id = resolve_id(db, collection_id, element)
    # side tables and relations pointing here follow the declared foreign key actions
    db.execute(
        f'DELETE FROM "{collection.table}" WHERE "{IDENTITY_COLUMN}" = :id',
        {"id": element_id},
    )
    _logger.debug("element deleted collection=%s id=%s", collection_id, element_id)


def delete_time_series(db: Database, collection_id: str, group_id: str, element: ElementRef) -> None:
    collection = db.collection(collection_id)
    members = collection.groups("time_series").get(group_id)
    if not members:
        database_error(f'Collection "{collection_id}" has no time series group "{group_id}".')
    element_id = resolve_id(db, collection_id, element)
    db.execute(
        f'DELETE FROM "{members[0].table}" WHERE "{IDENTITY_COLUMN}" = :id',
        {"id": element_id},
    )
