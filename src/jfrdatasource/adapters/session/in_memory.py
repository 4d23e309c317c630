"""In-memory recording session."""

import io
from typing import BinaryIO

from jfrdatasource.adapters.session.base import RecordingSessionBase, _base_name
from jfrdatasource.core.exceptions import NoCurrentRecording, RecordingNotFound


class InMemoryRecordingSession(RecordingSessionBase):
    """In-memory implementation of RecordingSessionPort.

    Keeps recording bytes in a dict. Suitable for testing and for embedding
    the query engine where recordings never touch disk.
    """

    def __init__(self) -> None:
        super().__init__()
        self._recordings: dict[str, bytes] = {}

    def add(self, name: str, data: bytes, select: bool = False) -> str:
        """Store a recording, replacing any recording with the same name."""
        name = _base_name(name)
        with self._lock:
            self._recordings[name] = data
        if select:
            self._select(name)
        else:
            self._touch(name)
        return name

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._recordings)

    def set_current(self, name: str) -> None:
        """Select a stored recording.

        Raises:
            RecordingNotFound: If no recording has this name.
        """
        with self._lock:
            if name not in self._recordings:
                raise RecordingNotFound(name)
        self._select(name)

    def delete(self, name: str) -> bool:
        with self._lock:
            removed = self._recordings.pop(name, None) is not None
        self._clear_if_current([name])
        return removed

    def delete_all(self) -> list[str]:
        with self._lock:
            names = sorted(self._recordings)
            self._recordings.clear()
        self._clear_if_current(names)
        return names

    def current_recording_stream(self) -> BinaryIO:
        with self._lock:
            if self._current is None:
                raise NoCurrentRecording("No recording selected")
            return io.BytesIO(self._recordings[self._current])
