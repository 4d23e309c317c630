"""Exceptions raised by the recording query core."""


class RecordingError(Exception):
    """Base class for recording errors."""


class MalformedRecording(RecordingError):
    """The byte stream is not a valid recording container.

    Attributes:
        offset: Byte offset at which decoding failed, when known.
    """

    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


class NoCurrentRecording(RecordingError):
    """No recording is currently selected."""


class RecordingNotFound(RecordingError):
    """A named recording does not exist in the session."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Recording not found: {name}")
        self.name = name
