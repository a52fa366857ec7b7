"""Session teardown hook.

Runs registered cleanup functions exactly once when the host session ends:
on interpreter exit (``atexit``) and, optionally, on exit signals.
"""

from __future__ import annotations

import atexit
import os
import signal
import threading
from types import FrameType
from typing import Callable, Optional

from loguru import logger

# Type alias for cleanup callbacks
CleanupFn = Callable[[], None]


class TeardownHandler:
    """Coordinate a single best-effort cleanup at session end."""

    #: Exit signals hooked when ``install_signals`` is requested
    _BASE_SIGNALS = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        _BASE_SIGNALS.append(signal.SIGHUP)

    def __init__(self) -> None:
        self._cleanup_fns: list[CleanupFn] = []
        self._lock = threading.Lock()
        self._fired = False
        self._installed = False
        self._previous_handlers: dict[int, object] = {}

    @property
    def fired(self) -> bool:
        return self._fired

    def register_cleanup(self, fn: CleanupFn) -> None:
        self._cleanup_fns.append(fn)

    def install(self, install_signals: bool = False) -> None:
        """Hook interpreter exit, and exit signals if requested."""
        if self._installed:
            return
        self._installed = True
        atexit.register(self.run)

        if install_signals:
            for sig in self._BASE_SIGNALS:
                try:
                    self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
                except (ValueError, OSError):  # not allowed outside the main thread
                    logger.warning(f"Could not hook signal {sig}")

    def uninstall(self) -> None:
        """Remove the exit hooks, restoring previous signal handlers."""
        if not self._installed:
            return
        self._installed = False
        atexit.unregister(self.run)

        for sig, previous in self._previous_handlers.items():
            try:
                signal.signal(sig, previous)  # type: ignore[arg-type]
            except (ValueError, OSError, TypeError):
                logger.warning(f"Could not restore handler for signal {sig}")
        self._previous_handlers.clear()

    def run(self) -> None:
        """Run every cleanup function once; later calls do nothing."""
        with self._lock:
            if self._fired:
                return
            self._fired = True

        for fn in self._cleanup_fns:
            try:
                fn()
            except Exception:  # noqa: BLE001
                logger.exception(f"Teardown function {fn} raised")

    def _handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, running session teardown")

        # Cleanup may uninstall the handler and clear the saved dispositions
        previous = self._previous_handlers.get(signum)
        self.run()

        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            # Re-deliver with the default disposition so the process still exits
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)
