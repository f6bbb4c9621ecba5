"""Background file watcher for hot reload.

The watcher never touches the document. It only signals that the workflow
file may have changed; the command loop reconciles between commands.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from watchfiles import Change, watch

logger = logging.getLogger(__name__)


class FileWatcher:
    """Watches a single file and calls ``on_change`` when it may have changed."""

    def __init__(
        self,
        path: str | Path,
        on_change: Callable[[], None],
        force_polling: bool | None = None,
        debounce_ms: int = 300,
    ) -> None:
        """Initialize the watcher.

        Args:
            path: File to watch.
            on_change: Callback invoked from the watcher thread.
            force_polling: Use polling instead of native notifications.
            debounce_ms: Window for grouping bursts of filesystem events.
        """
        self.path = Path(path).resolve()
        self.on_change = on_change
        self.force_polling = force_polling
        self.debounce_ms = debounce_ms
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def _is_target(self, change: Change, path: str) -> bool:
        return Path(path).resolve() == self.path

    def _run(self) -> None:
        # Editors often replace the file instead of writing in place, so watch the directory
        try:
            for _changes in watch(
                self.path.parent,
                watch_filter=self._is_target,
                debounce=self.debounce_ms,
                stop_event=self._stop_event,
                recursive=False,
                force_polling=self.force_polling,
                raise_interrupt=False,
            ):
                logger.debug("Change detected in %s", self.path)
                self.on_change()
        except OSError as e:
            logger.warning("File watching stopped for %s: %s", self.path, e)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="apiline-watcher", daemon=True)
        self._thread.start()
        logger.debug("Watching %s", self.path)

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> FileWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
