"""Base model for pycitynav records.

Every record model inherits from :class:`CityNavBaseModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase keys used by the
  persisted JSON records map to snake_case fields.
* ``frozen=True``: records are immutable once constructed; a pack is
  "updated" only by replacing it wholesale.
* :meth:`CityNavBaseModel.to_record` for the canonical JSON form written
  to storage.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, leave aware ones alone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class CityNavBaseModel(BaseModel):
    """Base for persisted and returned records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_record(self) -> dict[str, Any]:
        """Return the JSON-compatible camelCase dict stored on disk."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
