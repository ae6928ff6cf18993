from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator


class DomainModel(BaseModel):
    """Immutable value struct returned by repositories and services."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value):
        # Some backends (SQLite) hand back naive timestamps.
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
