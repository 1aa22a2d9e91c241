"""repodoc database layer."""

from repodoc.db.connection import Database
from repodoc.db.migrations import MIGRATIONS, run_migrations
from repodoc.db.schema import initialize
from repodoc.db.store import VectorStore
from repodoc.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "VectorStore",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
