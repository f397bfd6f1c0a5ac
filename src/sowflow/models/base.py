"""Shared base for Sowflow data models.

All persisted records derive from SowflowModel so they reject unknown keys
and serialize to plain JSON-compatible data through model_dump(mode="json").
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class SowflowModel(BaseModel):
    """Base model for all persisted project records."""

    model_config = ConfigDict(extra="forbid")
