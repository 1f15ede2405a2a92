"""Additive, idempotent schema upgrades for databases created by older releases.

``Base.metadata.create_all`` builds fresh schemas; these helpers only add the
columns and indexes that were introduced later. Nothing is ever dropped.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Columns added after the first schema, per table.
ADDED_COLUMNS: dict[str, dict[str, str]] = {
    "equipment": {
        "image_url": "TEXT",
        "is_unlimited": "BOOLEAN DEFAULT 0 NOT NULL",
        "is_deleted": "BOOLEAN DEFAULT 0 NOT NULL",
        "specifications": "JSON",
    },
    "reservations": {
        "custom_equipment_name": "TEXT",
        "location": "TEXT",
        "notes": "TEXT",
    },
}

INDEXES: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("reservations", "ix_reservations_equipment_window", ("equipment_id", "start_time", "end_time")),
    ("reservations", "ix_reservations_contact_info", ("contact_info",)),
)


def _column_names(engine: Engine, table: str) -> set[str]:
    inspector = inspect(engine)
    if not inspector.has_table(table):
        return set()
    return {column["name"] for column in inspector.get_columns(table)}


def _add_column(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str]) -> None:
    cols_sql = ", ".join(cols)
    with engine.begin() as conn:
        conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def run_migrations(engine: Engine) -> list[str]:
    """Bring an existing schema up to date. Returns the columns that were added."""

    added: list[str] = []
    for table, wanted in ADDED_COLUMNS.items():
        existing = _column_names(engine, table)
        if not existing:
            # create_all owns brand-new tables
            continue
        for name, dtype in wanted.items():
            if name not in existing:
                _add_column(engine, table, f"{name} {dtype}")
                added.append(f"{table}.{name}")
    for table, name, cols in INDEXES:
        if _column_names(engine, table):
            _create_index_if_not_exists(engine, table, name, cols)
    if added:
        logger.info("schema.migrated", extra={"extra_data": {"added_columns": added}})
    return added
