"""Directory-backed recording session.

Recordings are stored as plain files in one directory. The current
selection lives in memory and is lost on restart.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO

from jfrdatasource.adapters.session.base import RecordingSessionBase, _base_name
from jfrdatasource.core.exceptions import NoCurrentRecording, RecordingNotFound

logger = logging.getLogger(__name__)


class DirectoryRecordingSession(RecordingSessionBase):
    """File system implementation of RecordingSessionPort.

    Args:
        directory: Directory holding uploaded recordings. Created on demand.
    """

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, name: str) -> Path:
        return self._directory / _base_name(name)

    def _free_name(self, name: str) -> str:
        candidate, suffix = name, 0
        while (self._directory / candidate).exists():
            suffix += 1
            candidate = f"{name}.{suffix}"
        return candidate

    def save(self, name: str, stream: BinaryIO, overwrite: bool = False) -> str:
        """Store an uploaded recording.

        Args:
            name: Client-supplied file name. Only its base name is kept.
            stream: Readable binary stream with the recording bytes.
            overwrite: Replace an existing file of the same name instead of
                storing under a numbered name (name.1, name.2, ...).

        Returns:
            The name the recording was stored under.
        """
        name = _base_name(name)
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._directory, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(stream, out)
            with self._lock:
                stored = name if overwrite else self._free_name(name)
                os.replace(tmp, self._directory / stored)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Stored recording %s", stored)
        self._touch(stored)
        return stored

    def names(self) -> list[str]:
        """Return stored recording names, sorted."""
        if not self._directory.is_dir():
            return []
        return sorted(
            p.name
            for p in self._directory.iterdir()
            if p.is_file() and not p.name.startswith(".upload-")
        )

    def set_current(self, name: str) -> None:
        """Select a stored recording.

        Raises:
            RecordingNotFound: If no recording has this name.
        """
        path = self._path(name)
        if not path.is_file():
            raise RecordingNotFound(name)
        self._select(path.name)

    def current(self) -> str | None:
        name = super().current()
        if name is not None and not (self._directory / name).is_file():
            return None
        return name

    def delete(self, name: str) -> bool:
        """Delete a stored recording.

        Returns:
            True if a file was removed, False if it did not exist.
        """
        path = self._path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted recording %s", path.name)
        self._clear_if_current([path.name])
        return True

    def delete_all(self) -> list[str]:
        """Delete every stored recording, returning the removed names.

        A failed removal stops the sweep and propagates. Recordings removed
        before the failure still clear the selection.
        """
        deleted = []
        try:
            for name in self.names():
                (self._directory / name).unlink(missing_ok=True)
                deleted.append(name)
        finally:
            if deleted:
                logger.info("Deleted %d recording(s)", len(deleted))
            self._clear_if_current(deleted)
        return deleted

    def current_recording_stream(self) -> BinaryIO:
        name = self.current()
        if name is None:
            raise NoCurrentRecording("No recording selected")
        try:
            return (self._directory / name).open("rb")
        except FileNotFoundError as e:
            raise NoCurrentRecording(f"Recording {name} no longer exists") from e
