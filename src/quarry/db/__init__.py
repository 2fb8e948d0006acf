"""Quarry database layer."""

from quarry.db.connection import Database
from quarry.db.indexes import IndexCapabilities, detect_capabilities, ensure_fts_table, ensure_vec_table
from quarry.db.migrations import MIGRATIONS, run_migrations
from quarry.db.repository import Repository, ScopeFilter
from quarry.db.schema import initialize

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "IndexCapabilities",
    "detect_capabilities",
    "ensure_fts_table",
    "ensure_vec_table",
    "Repository",
    "ScopeFilter",
]
