"""Event queue module for buffering events before batching."""

from .event_queue import EventQueue

__all__ = ["EventQueue"]
