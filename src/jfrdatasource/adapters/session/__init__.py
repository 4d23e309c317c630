"""Recording session adapters implementing RecordingSessionPort."""

from jfrdatasource.adapters.session.directory import DirectoryRecordingSession
from jfrdatasource.adapters.session.in_memory import InMemoryRecordingSession

__all__ = [
    "DirectoryRecordingSession",
    "InMemoryRecordingSession",
]
