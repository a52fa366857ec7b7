"""Event model for the Harbor analytics client.

Events flow through the client as:
track() → EventQueue → BatchingEngine → HTTPSender → ingest API
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

Number = Union[int, float]

# Wire keys that metadata may never override
CORE_KEYS = frozenset({"ship_id", "cargo_id", "value", "time", "session_duration"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """A single tracked event, immutable once created."""

    ship_id: str
    cargo_id: str
    value: Number
    time: datetime = field(default_factory=_utcnow)
    session_duration: int = 0  # Whole seconds since the client started
    metadata: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if self.metadata is not None and not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_wire(self) -> Dict[str, Any]:
        """Convert to the ingest API record format."""
        record: Dict[str, Any] = {}
        if self.metadata:
            record.update({key: value for key, value in self.metadata.items() if key not in CORE_KEYS})
        record["ship_id"] = self.ship_id
        record["cargo_id"] = self.cargo_id
        record["value"] = self.value
        record["time"] = self.time.isoformat().replace("+00:00", "Z")
        record["session_duration"] = self.session_duration
        return record


def to_wire_batch(events: list[Event]) -> list[Dict[str, Any]]:
    """Convert a batch of events to the JSON array body."""
    return [event.to_wire() for event in events]
