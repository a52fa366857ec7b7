"""HTTP sender for transmitting event batches to the ingest API.

Two delivery operations are provided:

- ``send_batch``: one observed attempt against the batch endpoint. The caller
  decides what to do with a failure; the sender never retries on its own.
- ``send_beacon``: the teardown dispatch. One attempt with a short timeout,
  outcome discarded, every error swallowed.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from loguru import logger

from .. import __version__
from ..config import HarborConfig
from ..core.events import Event, to_wire_batch
from ..exceptions import TransportError

USER_AGENT = f"harbor-analytics-python/{__version__}"
BEACON_CONTENT_TYPE = "text/plain;charset=UTF-8"


@dataclass(frozen=True)
class SendResult:
    """Outcome of a single delivery attempt."""

    success: bool
    error: str = ""
    status: Optional[int] = None


class Transport(Protocol):
    """Delivery operations used by the batching engine."""

    def send_batch(self, events: List[Event]) -> SendResult: ...

    def send_beacon(self, events: List[Event]) -> None: ...


@dataclass
class SenderConfig:
    """Configuration for the HTTP sender."""

    endpoint: str
    harbor_id: str
    api_key: str

    timeout_seconds: float = 10.0  # Batch request timeout
    beacon_timeout_seconds: float = 2.0  # Teardown request timeout

    @classmethod
    def from_config(cls, config: HarborConfig) -> "SenderConfig":
        return cls(
            endpoint=config.base_url,
            harbor_id=config.harbor_id,
            api_key=config.api_key,
            timeout_seconds=config.timeout_seconds,
            beacon_timeout_seconds=config.beacon_timeout_seconds,
        )

    @property
    def batch_url(self) -> str:
        return f"{self.endpoint.rstrip('/')}/ingest/{quote(self.harbor_id, safe='')}/batch"

    @property
    def beacon_url(self) -> str:
        return f"{self.endpoint.rstrip('/')}/ingest/{quote(self.harbor_id, safe='')}?k={quote(self.api_key, safe='')}"


def encode_events(events: List[Event]) -> bytes:
    """Serialize events to the JSON array body."""
    return json.dumps(to_wire_batch(events), default=str).encode("utf-8")


class HTTPSender:
    """HTTP sender for transmitting event batches."""

    def __init__(self, config: SenderConfig):
        """Initialize the HTTP sender.

        Args:
            config: Sender configuration
        """
        self.config = config

        # Statistics
        self._total_batches_sent = 0
        self._total_batches_failed = 0
        self._total_events_sent = 0
        self._total_beacons = 0
        self._total_send_time = 0.0
        self._last_successful_send: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def send_batch(self, events: List[Event]) -> SendResult:
        """Send a batch of events to the ingest API.

        Args:
            events: Events to send, in queue order

        Returns:
            The attempt's outcome; never raises
        """
        start_time = time.time()

        try:
            status = self._post(
                self.config.batch_url,
                encode_events(events),
                headers={
                    "Content-Type": "application/json",
                    "X-API-Key": self.config.api_key,
                    "User-Agent": USER_AGENT,
                },
                timeout=self.config.timeout_seconds,
            )
        except TransportError as e:
            self._record_failure(str(e))
            logger.warning(f"Failed to send batch of {len(events)} events: {e}")
            return SendResult(success=False, error=str(e), status=e.status)
        except Exception as e:
            error_msg = f"Unexpected error sending batch: {e}"
            self._record_failure(error_msg)
            logger.error(error_msg)
            return SendResult(success=False, error=error_msg)

        send_time = time.time() - start_time
        self._total_send_time += send_time
        self._total_batches_sent += 1
        self._total_events_sent += len(events)
        self._last_successful_send = datetime.now()
        self._last_error = None

        logger.info(f"Sent batch of {len(events)} events in {send_time:.2f}s")
        return SendResult(success=True, status=status)

    def send_beacon(self, events: List[Event]) -> None:
        """Dispatch the final queue contents at teardown.

        A single attempt whose result is not observed; errors are logged at
        debug level and discarded.
        """
        self._total_beacons += 1
        try:
            self._post(
                self.config.beacon_url,
                encode_events(events),
                headers={"Content-Type": BEACON_CONTENT_TYPE, "User-Agent": USER_AGENT},
                timeout=self.config.beacon_timeout_seconds,
            )
            logger.debug(f"Teardown dispatch of {len(events)} events issued")
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Teardown dispatch failed: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get sender statistics."""
        attempts = self._total_batches_sent + self._total_batches_failed
        return {
            "total_batches_sent": self._total_batches_sent,
            "total_batches_failed": self._total_batches_failed,
            "total_events_sent": self._total_events_sent,
            "total_beacons": self._total_beacons,
            "success_rate": self._total_batches_sent / max(1, attempts),
            "average_send_time_seconds": self._total_send_time / max(1, self._total_batches_sent),
            "last_successful_send": self._last_successful_send.isoformat() if self._last_successful_send else None,
            "last_error": self._last_error,
        }

    def _record_failure(self, error_msg: str) -> None:
        self._total_batches_failed += 1
        self._last_error = error_msg

    def _post(self, url: str, body: bytes, headers: Dict[str, str], timeout: float) -> int:
        """Issue a single POST request.

        Returns:
            The 2xx status code

        Raises:
            TransportError: On network errors or a non-success status
        """
        req = Request(url, data=body, headers=headers, method="POST")

        try:
            with urlopen(req, timeout=timeout) as response:
                status = response.status
                if not 200 <= status < 300:
                    raise TransportError(f"HTTP {status}: {response.reason}", status=status)
                logger.debug(f"Successful response: {status}")
                return status

        except HTTPError as e:
            message = f"HTTP error: {e.code} {e.reason}"
            if e.code in (401, 403):
                message += " (check the API key)"
            raise TransportError(message, status=e.code) from e

        except URLError as e:
            raise TransportError(f"Network error: {e.reason}") from e

        except (OSError, ValueError) as e:
            raise TransportError(f"Request error: {e}") from e


def create_default_sender(config: HarborConfig) -> HTTPSender:
    """Create an HTTP sender from the client configuration."""
    return HTTPSender(SenderConfig.from_config(config))
