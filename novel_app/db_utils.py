"""Database helper utilities for ensuring schema consistency."""
from __future__ import annotations

from typing import Dict, Iterable, Set

from sqlalchemy import inspect, text

from .extensions import db


# Columns added to ``stories`` after the first deployments, with the DDL
# fragment used to backfill them on older databases.
_LATE_STORY_COLUMNS: Dict[str, str] = {
    "relationship_desc": "TEXT",
    "next_options": "JSON NOT NULL DEFAULT '[]'",
    "character_context": "TEXT",
    "scenario_context": "TEXT",
    "is_public": "BOOLEAN NOT NULL DEFAULT FALSE",
    "is_finished": "BOOLEAN NOT NULL DEFAULT FALSE",
}


def _get_column_names(table_name: str) -> Set[str]:
    inspector = inspect(db.engine)
    return {column["name"] for column in inspector.get_columns(table_name)}


def ensure_database_schema() -> None:
    """Ensure that essential schema updates are applied.

    Runs on every application start. Missing tables are created and the
    ``stories`` table is brought up to date with the columns used by the
    episode workflow (next-direction options, visibility and finished flags,
    and the stored character/scenario context). Schema errors propagate so
    the application does not start half-configured.
    """

    inspector = inspect(db.engine)
    table_names: Iterable[str] = inspector.get_table_names()

    if "stories" not in table_names:
        db.create_all()
        inspector = inspect(db.engine)
        table_names = inspector.get_table_names()

    # Import locally to avoid circular import issues during application setup.
    from .models import Character, Scenario, StoryContent, User, Wallet

    required_tables = {
        "users": User.__table__,
        "wallets": Wallet.__table__,
        "characters": Character.__table__,
        "scenarios": Scenario.__table__,
        "story_contents": StoryContent.__table__,
    }

    for table_name, table in required_tables.items():
        if table_name not in table_names:
            table.create(bind=db.engine)

    story_columns = _get_column_names("stories")
    for column_name, ddl in _LATE_STORY_COLUMNS.items():
        if column_name in story_columns:
            continue
        with db.engine.begin() as connection:
            connection.execute(text(f"ALTER TABLE stories ADD COLUMN {column_name} {ddl}"))
