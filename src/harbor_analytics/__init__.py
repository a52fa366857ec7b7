"""Harbor Analytics - privacy-first batched event tracking for Harbor Scale."""

__version__ = "2.0.0"

from loguru import logger

from .config import HarborConfig, load_config, setup_logging
from .core import Event, HarborAnalytics, create_client
from .exceptions import ConfigurationError, HarborError

# Silent unless the host opts in (setup_logging() or config.debug)
logger.disable(__name__)

__all__ = ["HarborAnalytics", "HarborConfig", "Event", "ConfigurationError", "HarborError", "create_client", "load_config", "setup_logging"]
