from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import ARRAY as PG_ARRAY, JSONB as PG_JSONB
from sqlalchemy.types import TypeDecorator


class JSONB(TypeDecorator):
    """
    Dialect-aware JSONB type that falls back to JSON on non-Postgres databases.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_JSONB())
        return dialect.type_descriptor(JSON())


class PGArray(TypeDecorator):
    """
    Native ARRAY on Postgres, JSON list elsewhere.
    """

    impl = JSON
    cache_ok = True

    def __init__(self, item_type: Any, dimensions: int = 1):
        super().__init__()
        self.item_type = item_type
        self.dimensions = dimensions

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(
                PG_ARRAY(self.item_type, dimensions=self.dimensions)
            )
        return dialect.type_descriptor(JSON())

    def process_result_value(self, value: Any, dialect) -> Any:
        return list(value) if value is not None else None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always round-trips as UTC.

    SQLite drops tzinfo on read; values are re-tagged so arithmetic against
    ``datetime.now(timezone.utc)`` works on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
