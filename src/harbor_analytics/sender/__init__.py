"""HTTP transport module for sending batches to the ingest API."""

from .http_sender import HTTPSender, SendResult, SenderConfig, Transport, create_default_sender, encode_events

__all__ = ["HTTPSender", "SenderConfig", "SendResult", "Transport", "create_default_sender", "encode_events"]
