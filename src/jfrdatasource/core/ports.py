"""Port interfaces for recording sessions.

The query core depends only on this protocol, not on how recordings are
stored or selected.
"""

from collections.abc import Callable
from typing import BinaryIO, Protocol, runtime_checkable

RecordingChangedCallback = Callable[[], None]


@runtime_checkable
class RecordingSessionPort(Protocol):
    """Port for the session owning the current recording selection.

    Examples: InMemoryRecordingSession, DirectoryRecordingSession.
    """

    def current_recording_stream(self) -> BinaryIO:
        """Open the currently selected recording for reading.

        Returns:
            A readable binary stream. The caller closes it.

        Raises:
            NoCurrentRecording: If no recording is selected.
        """
        ...

    def on_recording_changed(self, callback: RecordingChangedCallback) -> None:
        """Register a callback invoked whenever the current recording changes."""
        ...
