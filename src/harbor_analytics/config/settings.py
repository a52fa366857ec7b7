"""Configuration management for the Harbor analytics client.

The configuration is resolved exactly once, from defaults, ``HARBOR_*``
environment variables and explicit overrides, and is immutable afterwards.
The batching engine never re-reads it.
"""

from __future__ import annotations

import os
from typing import Any, Dict

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ConfigurationError

DEFAULT_ENDPOINT = "https://harborscale.com/api/v2"
REDACTED = "<redacted>"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class FeatureFlags(BaseModel):
    """Toggles for the collector modules that feed the client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    track_forms: bool = Field(default=True, description="Form focus/change/submit collectors")
    track_errors: bool = Field(default=True, description="Error collectors")
    track_scroll: bool = Field(default=True, description="Scroll depth collectors")
    track_clicks: bool = Field(default=True, description="Click, rage click and dead click collectors")
    track_perf: bool = Field(default=True, description="Performance timing collectors")
    track_mouse: bool = Field(default=True, description="Pointer activity collectors")
    track_media: bool = Field(default=True, description="Media playback collectors")
    track_visibility: bool = Field(default=True, description="Visibility and engagement collectors")


class HarborConfig(BaseModel):
    """Immutable client configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    harbor_id: str = Field(..., min_length=1, description="Harbor (project) identifier")
    api_key: str = Field(..., min_length=1, description="Ingestion API key")
    endpoint: str = Field(default=DEFAULT_ENDPOINT, min_length=1, description="Base URL of the ingestion API")

    batch_size: int = Field(default=100, gt=0, description="Events per batch; reaching it flushes immediately")
    batch_interval_ms: int = Field(default=5000, gt=0, description="Maximum wait before a partial batch is flushed")

    timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP timeout for batch deliveries")
    beacon_timeout_seconds: float = Field(default=2.0, gt=0, description="HTTP timeout for the teardown dispatch")

    debug: bool = False
    respect_dnt: bool = True
    track_session: bool = True
    flush_on_exit: bool = True

    features: FeatureFlags = Field(default_factory=FeatureFlags)

    @property
    def batch_interval_seconds(self) -> float:
        return self.batch_interval_ms / 1000.0

    @property
    def base_url(self) -> str:
        return self.endpoint.rstrip("/")

    def redacted(self) -> Dict[str, Any]:
        """Return the configuration as a dict with secret credentials masked."""
        data = self.model_dump()
        data["api_key"] = REDACTED
        return data


def _parse_bool(name: str, raw: str) -> bool | None:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    logger.warning(f"Invalid boolean for {name}: {raw}")
    return None


def _env_overrides() -> Dict[str, Any]:
    """Collect configuration values from ``HARBOR_*`` environment variables."""
    values: Dict[str, Any] = {}

    if harbor_id := os.getenv("HARBOR_ID"):
        values["harbor_id"] = harbor_id

    if api_key := os.getenv("HARBOR_API_KEY"):
        values["api_key"] = api_key

    if endpoint := os.getenv("HARBOR_ENDPOINT"):
        values["endpoint"] = endpoint

    if batch_size := os.getenv("HARBOR_BATCH_SIZE"):
        try:
            values["batch_size"] = int(batch_size)
        except ValueError:
            logger.warning(f"Invalid batch size: {batch_size}")

    if batch_interval := os.getenv("HARBOR_BATCH_INTERVAL_MS"):
        try:
            values["batch_interval_ms"] = int(batch_interval)
        except ValueError:
            logger.warning(f"Invalid batch interval: {batch_interval}")

    if debug := os.getenv("HARBOR_DEBUG"):
        parsed = _parse_bool("HARBOR_DEBUG", debug)
        if parsed is not None:
            values["debug"] = parsed

    if respect_dnt := os.getenv("HARBOR_RESPECT_DNT"):
        parsed = _parse_bool("HARBOR_RESPECT_DNT", respect_dnt)
        if parsed is not None:
            values["respect_dnt"] = parsed

    return values


def build_config(**values: Any) -> HarborConfig:
    """Validate ``values`` into a :class:`HarborConfig`.

    Raises:
        ConfigurationError: If required fields are missing or values are out of range.
    """
    try:
        return HarborConfig(**values)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        logger.error(f"Invalid Harbor configuration: {problems}")
        raise ConfigurationError(f"Invalid Harbor configuration: {problems}") from e


def load_config(**overrides: Any) -> HarborConfig:
    """Resolve the configuration from defaults, environment and ``overrides``.

    Explicit overrides win over environment variables. ``None`` overrides are
    ignored so callers can forward optional arguments unchanged.
    """
    values = _env_overrides()
    values.update({key: value for key, value in overrides.items() if value is not None})
    return build_config(**values)


def do_not_track_requested() -> bool:
    """Check the ``DO_NOT_TRACK`` opt-out convention."""
    raw = os.getenv("DO_NOT_TRACK", "")
    return raw.strip().lower() in _TRUTHY
