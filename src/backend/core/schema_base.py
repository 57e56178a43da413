"""
Base schema model for API payloads.

Provides camelCase aliases for the web client, UTC datetime serialization
with a 'Z' suffix, and construction from ORM rows.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer


def to_camel(string: str) -> str:
    """
    Convert snake_case to camelCase.

    Example:
        >>> to_camel("visitor_name")
        'visitorName'
        >>> to_camel("scheduled_date")
        'scheduledDate'
    """
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


def serialize_datetime(dt: datetime | None) -> str | None:
    """
    Serialize datetime to ISO 8601 with a 'Z' suffix.

    Stored datetimes are naive UTC; aware values are converted to UTC first.
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)

    return dt.isoformat() + "Z"


class HTTPSchemaModel(BaseModel):
    """
    Base model for all HTTP API schemas.

    - camelCase aliases on output, snake_case or camelCase accepted on input
    - from_attributes=True so ORM rows validate directly
    - datetimes serialized as "2026-10-17T14:30:00Z"
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*", mode="wrap")
    @classmethod
    def serialize_any_datetime(cls, value: Any, handler: Any) -> Any:
        """Serialize datetime fields with the UTC indicator, delegate the rest."""
        if isinstance(value, datetime):
            return serialize_datetime(value)
        return handler(value)
