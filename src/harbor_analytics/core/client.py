"""Harbor analytics client: the single entry point for collectors.

The client wires together:
- Visitor identity (session id + environment fingerprint)
- Event normalization
- The batching engine and HTTP sender
- The session teardown hook
"""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from ..batcher import BatcherConfig, BatcherState, BatchingEngine, Dispatcher, Scheduler
from ..config import HarborConfig, do_not_track_requested, load_config
from ..identity import EnvironmentTraits, IdentityProvider, SessionStore
from ..sender import Transport, create_default_sender
from .event_normalizer import UNSPECIFIED_VALUE, EventNormalizer
from .teardown import TeardownHandler

PACKAGE = "harbor_analytics"


class HarborAnalytics:
    """Tracks events for one session and forwards them in batches.

    No method raises into the host once the client is constructed; failures
    are logged and degrade locally.
    """

    def __init__(
        self,
        config: HarborConfig,
        *,
        transport: Optional[Transport] = None,
        session_store: Optional[SessionStore] = None,
        traits: Optional[EnvironmentTraits] = None,
        scheduler: Optional[Scheduler] = None,
        dispatcher: Optional[Dispatcher] = None,
        teardown: Optional[TeardownHandler] = None,
        install_signals: bool = False,
    ):
        """Initialize the client.

        Args:
            config: Resolved, immutable configuration
            transport: Delivery operations (HTTP sender by default)
            session_store: Session-scoped storage for the session id
            traits: Environment traits for the fingerprint (collected by default)
            scheduler: Timer capability for the batching engine
            dispatcher: Executor for deliveries
            teardown: Teardown handler to register with (a new one by default)
            install_signals: Also run teardown on SIGINT/SIGTERM/SIGHUP
        """
        self.config = config
        self._session_start = time.monotonic()

        if config.debug:
            logger.enable(PACKAGE)

        self.enabled = not (config.respect_dnt and do_not_track_requested())
        if not self.enabled:
            logger.info("Do Not Track requested, tracking disabled")

        self.identity = IdentityProvider(store=session_store, traits=traits)
        self.engine = BatchingEngine(
            BatcherConfig.from_config(config),
            transport=transport if transport is not None else create_default_sender(config),
            scheduler=scheduler,
            dispatcher=dispatcher,
        )

        self.teardown_handler = teardown if teardown is not None else TeardownHandler()
        if self.enabled:
            self.teardown_handler.register_cleanup(self.shutdown)
            if config.flush_on_exit:
                self.teardown_handler.install(install_signals=install_signals)

            if config.track_session:
                self.track("session_start", 1, metadata=self.identity.traits.as_metadata())

        logger.info(f"Initialized Harbor client for harbor {config.harbor_id} ({config.base_url})")

    def track(
        self,
        cargo_id: str,
        value: Any = UNSPECIFIED_VALUE,
        ship_id_suffix: str = "",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Record an event.

        Args:
            cargo_id: Event name; empty or non-string names are dropped
            value: Numeric value, coerced (``None`` counts as 1, garbage as 0)
            ship_id_suffix: Appended to the visitor id as ``{id}_{suffix}``
            metadata: Extra fields sent alongside the event

        Returns:
            True if the event was queued
        """
        if not self.enabled:
            return False

        try:
            event = EventNormalizer.normalize_event(
                self.identity.get_visitor_id(),
                cargo_id,
                value=value,
                ship_id_suffix=ship_id_suffix,
                metadata=metadata,
                session_duration=self.session_duration_seconds,
            )
            if event is None:
                return False

            queued = self.engine.enqueue(event)
            if queued and self.config.debug:
                logger.debug(f"Queued ({self.engine.queue.size()}): {event.cargo_id} {event.to_wire()}")
            return queued

        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to track {cargo_id!r}: {e}")
            return False

    def flush(self) -> bool:
        """Send one batch now. Returns True if a batch was dispatched."""
        try:
            return self.engine.flush()
        except Exception as e:  # noqa: BLE001
            logger.error(f"Manual flush failed: {e}")
            return False

    def get_visitor_id(self) -> str:
        return self.identity.get_visitor_id()

    @property
    def session_duration_seconds(self) -> int:
        return round(time.monotonic() - self._session_start)

    @property
    def state(self) -> BatcherState:
        return self.engine.state

    def debug(self) -> Dict[str, Any]:
        """Introspection snapshot; the API key is redacted."""
        try:
            return {
                "queue_size": self.engine.queue.size(),
                "session_duration_seconds": self.session_duration_seconds,
                "config": self.config.redacted(),
            }
        except Exception as e:  # noqa: BLE001
            logger.error(f"Debug snapshot failed: {e}")
            return {}

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"enabled": self.enabled, "engine": self.engine.get_stats()}
        sender_stats = getattr(self.engine.transport, "get_stats", None)
        if callable(sender_stats):
            stats["sender"] = sender_stats()
        return stats

    def shutdown(self) -> int:
        """End the session: record ``session_end`` and dispatch the queue once.

        Returns:
            Number of events handed to the teardown dispatch
        """
        if self.engine.closed:
            return 0

        try:
            if self.enabled and self.config.track_session:
                self.track(
                    "session_end",
                    self.session_duration_seconds,
                    metadata={**self.identity.traits.as_metadata(), "total_events": self.engine.queue.size()},
                )
            sent = self.engine.teardown()
        except Exception as e:  # noqa: BLE001
            logger.error(f"Teardown failed: {e}")
            return 0
        finally:
            self.teardown_handler.uninstall()

        logger.info(f"Harbor session ended, {sent} events in final dispatch")
        return sent

    def __enter__(self) -> "HarborAnalytics":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


def create_client(**overrides: Any) -> HarborAnalytics:
    """Create a client from ``HARBOR_*`` environment variables and overrides.

    Raises:
        ConfigurationError: If the harbor id or API key is missing.
    """
    return HarborAnalytics(load_config(**overrides))
