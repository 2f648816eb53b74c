"""Map loading indicator state."""

import logging
import random
from typing import Callable, List

logger = logging.getLogger(__name__)

LOADING_HINTS = [
    "Calculating orbital trajectories ...",
    "Optimizing Delta-V requirements ...",
    "Making sure nosecone is pointing upwards ...",
    "Combobulating discombobulators ...",
    "Treating Kessler syndrome ...",
]

LoadingCallback = Callable[[bool, str], None]


class LoadingState:
    """
    Tracks whether the map is loading and which hint to show meanwhile.

    Listeners registered with :meth:`subscribe` are called with
    ``(is_loading, hint)`` on every start and stop.
    """

    def __init__(self):
        self.is_loading = False
        self.hint = ""
        self._listeners: List[LoadingCallback] = []

    def subscribe(self, callback: LoadingCallback) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def start(self):
        self.is_loading = True
        self.hint = random.choice(LOADING_HINTS)
        self._notify()

    def stop(self):
        self.is_loading = False
        self.hint = ""
        self._notify()

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback(self.is_loading, self.hint)
            except Exception:
                logger.exception("Loading listener failed")

    def __repr__(self):
        return f"LoadingState(is_loading={self.is_loading})"
