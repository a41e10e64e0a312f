"""Background timer that asks for buffers to be saved periodically."""

from __future__ import annotations

import threading
from typing import Callable, Optional


class AutoSaver:
    """Call ``callback`` every ``interval`` seconds until stopped.

    The loop ends on its own once the interval drops below one second.
    """

    def __init__(self, interval: int, callback: Callable[[], None]) -> None:
        self._lock = threading.Lock()
        self._interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval(self) -> int:
        with self._lock:
            return self._interval

    @interval.setter
    def interval(self, value: int) -> None:
        with self._lock:
            self._interval = value

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the timer thread if it is not already running."""
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="autosave", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the timer and wait for its thread to finish."""
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self) -> None:
        while not self._stopped.is_set():
            interval = self.interval
            if interval < 1:
                break
            if self._stopped.wait(interval):
                break
            self._callback()