"""Core Harbor client components."""

from .client import HarborAnalytics, create_client
from .event_normalizer import EventNormalizer, coerce_numeric
from .events import Event
from .teardown import TeardownHandler

__all__ = [
    # Event model
    "Event",
    "EventNormalizer",
    "coerce_numeric",
    # Client
    "HarborAnalytics",
    "TeardownHandler",
    "create_client",
]
