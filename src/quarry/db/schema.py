"""Database initialisation: relational schema plus optional indexes."""

from __future__ import annotations

import sqlite3

from quarry.db.indexes import IndexCapabilities, detect_capabilities, ensure_fts_table, ensure_vec_table
from quarry.db.migrations import run_migrations


def initialize(conn: sqlite3.Connection, dimensions: int = 384) -> IndexCapabilities:
    """Migrate the schema, create the optional indexes where possible.

    Idempotent. Returns the capabilities detected after setup.
    """
    run_migrations(conn)
    ensure_fts_table(conn)
    ensure_vec_table(conn, dimensions)
    return detect_capabilities(conn)
