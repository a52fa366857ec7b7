"""Identifier hashing and environment fingerprinting.

The fingerprint raises the uniqueness of visitor ids without keeping any
identifiable value: traits are joined and hashed, never stored raw.
"""

from __future__ import annotations

import locale
import os
import platform
import time
from dataclasses import dataclass
from typing import Optional

FNV_OFFSET_BASIS = 2166136261
_MASK32 = 0xFFFFFFFF
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def hash_string(value: str) -> str:
    """Hash ``value`` to a short base-36 string.

    32-bit FNV-1a style mix over UTF-16 code units. Deterministic and cheap;
    used for cardinality reduction, not for security.
    """
    h = FNV_OFFSET_BASIS
    data = value.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h + (h << 1) + (h << 4) + (h << 7) + (h << 8) + (h << 24)) & _MASK32
    return _to_base36(h)


def _format_trait(trait: object) -> str:
    if isinstance(trait, bool):
        return "true" if trait else "false"
    return str(trait)


@dataclass(frozen=True)
class EnvironmentTraits:
    """Coarse, non-identifying properties of the host environment."""

    language: str = ""
    timezone_offset_minutes: int = 0
    screen_width: int = 0
    screen_height: int = 0
    color_depth: int = 0
    concurrency: int = 1
    memory_gb: int = 1
    platform: str = ""
    indexed_storage: bool = False
    session_storage: bool = True
    max_touch_points: int = 0

    def fingerprint_source(self) -> str:
        """Join the traits in a stable order."""
        traits = [
            self.language,
            self.timezone_offset_minutes,
            f"{self.screen_width}x{self.screen_height}",
            self.color_depth,
            self.concurrency,
            self.memory_gb,
            self.platform,
            self.indexed_storage,
            self.session_storage,
            self.max_touch_points,
        ]
        return "|".join(_format_trait(t) for t in traits)

    def fingerprint(self) -> str:
        return hash_string(self.fingerprint_source())

    def as_metadata(self) -> dict:
        """Device context attached to the session start event."""
        return {
            "screen_w": self.screen_width,
            "screen_h": self.screen_height,
            "cores": self.concurrency,
            "memory": self.memory_gb,
            "touch_support": self.max_touch_points > 0,
        }


def _timezone_offset_minutes() -> int:
    # Minutes behind UTC, positive west of Greenwich
    offset = time.altzone if time.localtime().tm_isdst > 0 else time.timezone
    return offset // 60


def _language() -> str:
    lang: Optional[str] = None
    try:
        lang = locale.getlocale()[0]
    except ValueError:
        pass
    lang = lang or os.getenv("LANG", "").split(".")[0]
    return lang.replace("_", "-")


def _memory_gb() -> int:
    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return 1
    return max(1, round(pages * page_size / (1024**3)))


def collect_traits() -> EnvironmentTraits:
    """Collect traits from the running interpreter's environment.

    Display properties are unknown to a headless process and stay at 0.
    """
    return EnvironmentTraits(
        language=_language(),
        timezone_offset_minutes=_timezone_offset_minutes(),
        concurrency=os.cpu_count() or 1,
        memory_gb=_memory_gb(),
        platform=platform.system(),
        indexed_storage=True,
        session_storage=True,
    )
