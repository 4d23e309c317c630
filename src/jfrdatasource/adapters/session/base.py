"""Base class for recording session adapters."""

import logging
import threading
from pathlib import PurePath

from jfrdatasource.core.ports import RecordingChangedCallback

logger = logging.getLogger(__name__)


def _base_name(name: str) -> str:
    """Reduce a client-supplied file name to its final path component."""
    base = PurePath(name.replace("\\", "/")).name
    if not base or base in (".", ".."):
        raise ValueError(f"Invalid recording name: {name!r}")
    return base


class RecordingSessionBase:
    """Tracks the current selection and notifies change subscribers.

    Subclasses store recordings and call `_select` / `_clear_if_current`
    when the selection changes or the selected recording is replaced.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._current: str | None = None
        self._callbacks: list[RecordingChangedCallback] = []

    def on_recording_changed(self, callback: RecordingChangedCallback) -> None:
        """Register a callback invoked whenever the current recording changes."""
        with self._lock:
            self._callbacks.append(callback)

    def current(self) -> str | None:
        """Return the name of the selected recording, if any."""
        with self._lock:
            return self._current

    def _notify(self) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def _select(self, name: str) -> None:
        with self._lock:
            self._current = name
        logger.info("Current recording set to %s", name)
        self._notify()

    def _touch(self, name: str) -> None:
        """Notify subscribers if the selected recording was rewritten."""
        if self.current() == name:
            self._notify()

    def _clear_if_current(self, names: list[str]) -> None:
        with self._lock:
            cleared = self._current in names
            if cleared:
                self._current = None
        if cleared:
            logger.info("Current recording cleared")
            self._notify()
