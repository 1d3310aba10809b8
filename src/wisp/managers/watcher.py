"""
Configuration file watcher.

Polls the configuration file's modification time from a background thread
and requests a reload when it changes, at most once per debounce interval.
Editors often write a file in several steps; the debounce lets those settle
into a single reload.
"""

import logging
import os
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ConfigWatcher:
    """
    Watches one file for changes.

    Args:
        path: File to watch
        on_change: Called from the watcher thread once the file settled
        debounce: Seconds the file must stay unchanged before on_change runs
    """

    # How often to stat the file
    CHECK_INTERVAL = 0.2

    def __init__(self, path: str, on_change: Callable[[], None], debounce: float = 0.5):
        self.path = os.path.expanduser(path)
        self.on_change = on_change
        self.debounce = debounce

        self.running = False
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._last_mtime = self._read_mtime()
        self._pending_since: Optional[float] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            logger.warning("Config watcher already running")
            return

        self.running = True
        self._stop.clear()
        self._thread = threading.Thread(target=self._watch_loop, daemon=True, name="ConfigWatcher")
        self._thread.start()
        logger.debug(f"Watching {self.path} for changes")

    def stop(self) -> None:
        self.running = False
        self._stop.set()

        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=3)
        self._thread = None
        logger.debug("Config watcher stopped")

    def check(self, now: Optional[float] = None) -> bool:
        """
        Check the file once.

        Returns:
            True if on_change was called
        """
        now = time.monotonic() if now is None else now
        mtime = self._read_mtime()

        if mtime != self._last_mtime:
            self._last_mtime = mtime
            self._pending_since = now
            logger.debug(f"{self.path} changed")
            return False

        if self._pending_since is None or now - self._pending_since < self.debounce:
            return False

        self._pending_since = None
        if mtime is None:
            logger.warning(f"{self.path} disappeared, keeping current configuration")
            return False

        self.on_change()
        return True

    def _watch_loop(self) -> None:
        """Main watch loop (runs in background thread)."""
        while self.running:
            try:
                self.check()
            except Exception as e:
                logger.error(f"Error in config watcher: {e}", exc_info=True)
            self._stop.wait(self.CHECK_INTERVAL)

    def _read_mtime(self) -> Optional[float]:
        try:
            return os.stat(self.path).st_mtime
        except OSError:
            return None
