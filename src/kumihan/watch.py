from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

__all__ = ["DebouncedRepaginator", "watch_file"]

DEFAULT_DELAY = 0.3


class DebouncedRepaginator(FileSystemEventHandler):
    """
    Collapse bursts of change events on one file into a single callback.

    Every relevant event restarts a ``delay`` second timer; the callback runs
    once the file has been quiet for that long.
    """

    def __init__(self, path: Path, callback: Callable[[Path], None], delay: float = DEFAULT_DELAY) -> None:
        self.path = Path(path).resolve()
        self.callback = callback
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def _matches(self, raw_path: str | bytes) -> bool:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode("utf-8", errors="replace")
        try:
            return Path(raw_path).resolve() == self.path
        except OSError:
            return False

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self.callback(self.path)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def on_created(self, event) -> None:  # type: ignore[override]
        if not event.is_directory and self._matches(event.src_path):
            self.trigger()

    def on_modified(self, event) -> None:  # type: ignore[override]
        if not event.is_directory and self._matches(event.src_path):
            self.trigger()

    def on_moved(self, event) -> None:  # type: ignore[override]
        if not event.is_directory and self._matches(event.dest_path):
            self.trigger()


def watch_file(
    path: Path,
    callback: Callable[[Path], None],
    *,
    delay: float = DEFAULT_DELAY,
    timeout: float = 1.0,
) -> tuple[PollingObserver, DebouncedRepaginator]:
    """Start polling ``path``'s directory; the caller stops the returned observer."""
    handler = DebouncedRepaginator(path, callback, delay=delay)
    observer = PollingObserver(timeout=timeout)
    observer.schedule(handler, str(handler.path.parent), recursive=False)
    observer.start()
    return observer, handler
