"""Configuration module for the Harbor analytics client."""

from .logger_config import setup_logging
from .settings import DEFAULT_ENDPOINT, FeatureFlags, HarborConfig, build_config, do_not_track_requested, load_config

__all__ = ["HarborConfig", "FeatureFlags", "DEFAULT_ENDPOINT", "build_config", "load_config", "do_not_track_requested", "setup_logging"]
