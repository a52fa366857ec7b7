"""Visitor identity derivation."""

from __future__ import annotations

import random
import time
from typing import Callable, Optional

from loguru import logger

from ..exceptions import IdentityStorageUnavailable
from .fingerprint import EnvironmentTraits, collect_traits, hash_string
from .session_store import MemorySessionStore, SessionStore

SESSION_KEY = "_ht_sid"
UNKNOWN_VISITOR = "unknown_visitor"


class IdentityProvider:
    """Derives a visitor id that is stable for the lifetime of a session.

    The id is ``{session_id}_{fingerprint}``: a random session id persisted in
    session storage plus a hash of coarse environment traits. Storage failures
    degrade to :data:`UNKNOWN_VISITOR` instead of raising.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        traits: Optional[EnvironmentTraits] = None,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ):
        self.store: SessionStore = store if store is not None else MemorySessionStore()
        self.traits = traits if traits is not None else collect_traits()
        self._clock = clock
        self._rng = rng
        self._fingerprint = self.traits.fingerprint()

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    def get_session_id(self) -> str:
        """Return the persisted session id, creating it on first use.

        Raises:
            IdentityStorageUnavailable: If session storage cannot be used.
        """
        try:
            sid = self.store.get_item(SESSION_KEY)
            if not sid:
                sid = hash_string(f"{int(self._clock() * 1000)}{self._rng()}")
                self.store.set_item(SESSION_KEY, sid)
                logger.debug(f"Started new visitor session {sid}")
            return sid
        except IdentityStorageUnavailable:
            raise
        except Exception as e:
            raise IdentityStorageUnavailable(str(e)) from e

    def get_visitor_id(self) -> str:
        try:
            return f"{self.get_session_id()}_{self._fingerprint}"
        except IdentityStorageUnavailable as e:
            logger.warning(f"Session storage unavailable, using sentinel visitor id: {e}")
            return UNKNOWN_VISITOR
