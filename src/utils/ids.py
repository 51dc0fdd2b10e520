"""Identifier and clock helpers shared by models and services."""

from datetime import datetime, timezone

from ulid import ULID


def generate_id() -> str:
    """Generate a text-based record ID (ULID format)."""
    return str(ULID())


def utc_now() -> datetime:
    """Timezone-aware current time; patched by freezegun in tests."""
    return datetime.now(timezone.utc)


def epoch_ms(moment: datetime | None = None) -> int:
    """Milliseconds since the epoch for ``moment`` (default now)."""
    return int((moment or utc_now()).timestamp() * 1000)
