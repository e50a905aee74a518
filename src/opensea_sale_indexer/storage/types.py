"""Portable SQLAlchemy column types for on-chain values.

PostgreSQL stores uint256 amounts as `numeric(78, 0)` and timestamps as
`timestamptz`. SQLite has neither, so amounts are kept as decimal strings
and timestamps come back naive and are re-tagged as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# 2**256 - 1 has 78 decimal digits.
UINT256_DIGITS = 78


class Uint256(TypeDecorator):
    """Exact unsigned 256-bit integer, exposed to Python as `int`."""

    impl = Numeric(UINT256_DIGITS, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(UINT256_DIGITS, 0))
        return dialect.type_descriptor(String(UINT256_DIGITS))

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        number = int(value)
        if number < 0:
            raise ValueError(f"uint256 value must be non-negative, got {number}")
        if dialect.name == "postgresql":
            return Decimal(number)
        return str(number)

    def process_result_value(self, value: Any, dialect: Any) -> int | None:  # noqa: ARG002
        if value is None:
            return None
        return int(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always reads back in UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:  # noqa: ARG002
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:  # noqa: ARG002
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
