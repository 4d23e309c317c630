"""Query backend serving performance recordings to dashboard tools."""

from jfrdatasource.adapters.session.directory import DirectoryRecordingSession
from jfrdatasource.adapters.session.in_memory import InMemoryRecordingSession
from jfrdatasource.core.engine import RecordingQueryEngine
from jfrdatasource.core.exceptions import (
    MalformedRecording,
    NoCurrentRecording,
    RecordingError,
    RecordingNotFound,
)
from jfrdatasource.core.index import RecordingIndex
from jfrdatasource.core.models import (
    Duration,
    Event,
    RecordingMetadata,
    Table,
    TimeRange,
    TimeSeries,
)
from jfrdatasource.core.parser import parse_recording, read_metadata
from jfrdatasource.core.query import QueryShape
from jfrdatasource.core.search import SearchKind

__all__ = [
    "DirectoryRecordingSession",
    "Duration",
    "Event",
    "InMemoryRecordingSession",
    "MalformedRecording",
    "NoCurrentRecording",
    "QueryShape",
    "RecordingError",
    "RecordingIndex",
    "RecordingMetadata",
    "RecordingNotFound",
    "RecordingQueryEngine",
    "SearchKind",
    "Table",
    "TimeRange",
    "TimeSeries",
    "parse_recording",
    "read_metadata",
]
