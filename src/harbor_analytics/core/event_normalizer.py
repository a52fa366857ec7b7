"""Event normalizer for turning raw ``track`` arguments into events.

Collectors hand the client whatever they observed. Values are coerced into
numbers instead of being rejected; only a missing event name drops the event.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Mapping, Optional

from loguru import logger

from .events import Event, Number

UNSPECIFIED_VALUE = 1
INVALID_VALUE = 0


def coerce_numeric(value: Any, default: Number = INVALID_VALUE) -> Number:
    """Coerce ``value`` into a finite number.

    Args:
        value: Raw value from a collector
        default: Returned when ``value`` cannot be interpreted as a number

    Returns:
        ``value`` as an int or float, ``default`` if it is not numeric
    """
    if isinstance(value, bool):
        return int(value)

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return value if math.isfinite(value) else default

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
        if not math.isfinite(number):
            return default
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number

    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


class EventNormalizer:
    """Builds immutable events from raw tracking arguments."""

    @staticmethod
    def normalize_cargo_id(cargo_id: Any) -> Optional[str]:
        """Return a usable event name, or None if the event must be dropped."""
        if not isinstance(cargo_id, str):
            return None
        cargo_id = cargo_id.strip()
        return cargo_id or None

    @staticmethod
    def normalize_ship_id(visitor_id: str, suffix: Any = "") -> str:
        """Append a non-empty suffix to the visitor id."""
        if suffix is None or suffix == "":
            return visitor_id
        return f"{visitor_id}_{suffix}"

    @staticmethod
    def normalize_value(value: Any) -> Number:
        """Coerce a tracked value; ``None`` means unspecified and counts as 1."""
        if value is None:
            return UNSPECIFIED_VALUE
        return coerce_numeric(value, INVALID_VALUE)

    @classmethod
    def normalize_event(
        cls,
        visitor_id: str,
        cargo_id: Any,
        value: Any = UNSPECIFIED_VALUE,
        ship_id_suffix: Any = "",
        metadata: Optional[Mapping[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        session_duration: int = 0,
    ) -> Optional[Event]:
        """Normalize raw tracking arguments into an event.

        Args:
            visitor_id: Session identity to stamp on the event
            cargo_id: Event name
            value: Raw numeric value
            ship_id_suffix: Optional suffix appended to the visitor id
            metadata: Extra wire fields
            timestamp: Event time, defaults to now (UTC)
            session_duration: Seconds since the session started

        Returns:
            The event, or None if ``cargo_id`` is empty or not a string
        """
        name = cls.normalize_cargo_id(cargo_id)
        if name is None:
            logger.warning(f"Invalid event name, dropping event: {cargo_id!r}")
            return None

        if metadata is not None and not isinstance(metadata, Mapping):
            logger.warning(f"Ignoring non-mapping metadata for {name}: {type(metadata).__name__}")
            metadata = None

        fields: dict[str, Any] = {
            "ship_id": cls.normalize_ship_id(visitor_id, ship_id_suffix),
            "cargo_id": name,
            "value": cls.normalize_value(value),
            "metadata": metadata,
            "session_duration": max(0, int(session_duration)),
        }
        if timestamp is not None:
            fields["time"] = timestamp
        return Event(**fields)
