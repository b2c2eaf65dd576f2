"""
Additive schema migrations for the relational link storage.

Every step checks whether its target object already exists before creating
it, so running the whole list on every startup is safe and an older schema
only receives the objects it is missing.
"""

import logging
from typing import Callable, List, Tuple

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.schema import CreateTable

from urlstore.models.link import links_table, links_id_uniq, links_expires_idx, links_url_idx

logger = logging.getLogger(__name__)


def _has_table(conn: Connection) -> bool:
    return inspect(conn).has_table(links_table.name)


def _has_index(name: str) -> Callable[[Connection], bool]:
    def check(conn: Connection) -> bool:
        return any(index["name"] == name for index in inspect(conn).get_indexes(links_table.name))
    return check


def _create_table(conn: Connection) -> None:
    # Only the table; each index is its own step below
    conn.execute(CreateTable(links_table))


MIGRATIONS: List[Tuple[str, Callable[[Connection], bool], Callable[[Connection], None]]] = [
    ("create table links", _has_table, _create_table),
    ("create index links_id_uniq", _has_index(links_id_uniq.name), lambda conn: links_id_uniq.create(conn)),
    ("create index links_expires_idx", _has_index(links_expires_idx.name), lambda conn: links_expires_idx.create(conn)),
    ("create index links_url_idx", _has_index(links_url_idx.name), lambda conn: links_url_idx.create(conn)),
]


def migrate(engine: Engine) -> int:
    """
    Apply missing migration steps.

    Returns:
        Number of steps actually applied (0 when the schema is current)
    """
    applied = 0
    with engine.begin() as conn:
        for name, exists, apply in MIGRATIONS:
            if exists(conn):
                continue
            logger.info("Applying migration: %s", name)
            apply(conn)
            applied += 1

    if applied:
        logger.info("Relational schema migrated (%d steps)", applied)
    return applied
