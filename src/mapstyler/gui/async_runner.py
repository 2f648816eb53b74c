"""
Bridge between the Qt event loop and an asyncio loop running in a worker thread.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Coroutine, Optional

from PySide6.QtCore import QObject, Signal, Slot

logger = logging.getLogger(__name__)


class AsyncRunner(QObject):
    """
    Runs coroutines on a background asyncio loop.

    Results are delivered back on the Qt thread through a queued signal, so
    callbacks may touch widgets.
    """

    _completed = Signal(object, object, object)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="mapstyler-asyncio", daemon=True
        )
        self._completed.connect(self._deliver)
        self._thread.start()

    def _run_loop(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Future:
        """Schedule a coroutine; callbacks run on the Qt thread."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        future.add_done_callback(lambda f: self._completed.emit(f, on_result, on_error))
        return future

    @Slot(object, object, object)
    def _deliver(self, future: Future, on_result, on_error):
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Background operation failed", exc_info=error)
            if on_error:
                on_error(error)
        elif on_result:
            on_result(future.result())

    def shutdown(self, timeout: float = 2.0):
        """Stop the loop and wait for the worker thread."""
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self._loop.close()
