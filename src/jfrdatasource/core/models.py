"""Core domain models for recording data."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

NANOS_PER_MILLI = 1_000_000

RECORDING_DURATION = "recording_duration"
RECORDING_START_TIME = "recording_start_time"
RESERVED_TARGETS = (RECORDING_DURATION, RECORDING_START_TIME)


@dataclass(frozen=True, order=True)
class Duration:
    """A span of time recorded as a field value.

    Attributes:
        nanos: Length of the span in nanoseconds.
    """

    nanos: int

    @property
    def millis(self) -> float:
        return self.nanos / NANOS_PER_MILLI


FieldValue = int | float | str | bool | Duration | None


class FieldKind(Enum):
    """Kind of value observed for an event field."""

    NUMBER = "number"
    TEXT = "string"
    BOOLEAN = "boolean"
    DURATION = "duration"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.NUMBER, FieldKind.DURATION)


def kind_of(value: FieldValue) -> FieldKind | None:
    """Classify a field value, returning None for null values."""
    if value is None:
        return None
    # bool is a subclass of int
    if isinstance(value, bool):
        return FieldKind.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldKind.NUMBER
    if isinstance(value, Duration):
        return FieldKind.DURATION
    return FieldKind.TEXT


@dataclass(frozen=True)
class Event:
    """A single recorded occurrence.

    Attributes:
        event_type: Identifier of the event type (e.g., jdk.CPULoad).
        timestamp: Epoch timestamp in nanoseconds.
        fields: Field values keyed by name, in declared order.
    """

    event_type: str
    timestamp: int
    fields: Mapping[str, FieldValue] = field(default_factory=dict)


@dataclass(frozen=True)
class EventTypeSchema:
    """Field names and kinds observed for one event type.

    Attributes:
        name: The event type identifier.
        fields: Field kinds keyed by name, in first-seen order. A field whose
            values were always null has kind None.
    """

    name: str
    fields: Mapping[str, FieldKind | None] = field(default_factory=dict)

    @property
    def numeric_fields(self) -> list[str]:
        return [
            name for name, kind in self.fields.items() if kind and kind.is_numeric
        ]


@dataclass(frozen=True)
class RecordingMetadata:
    """Recording-wide facts.

    Attributes:
        start_time: Epoch timestamp of the recording start, in nanoseconds.
        duration: Elapsed time covered by the recording, in nanoseconds.
    """

    start_time: int
    duration: int

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValueError(f"duration must be >= 0, got {self.duration}")

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration

    def covering(self, timestamps: Iterable[int]) -> "RecordingMetadata":
        """Return metadata widened so every timestamp falls inside it."""
        start, end = self.start_time, self.end_time
        for ts in timestamps:
            if ts < start:
                start = ts
            elif ts > end:
                end = ts
        if (start, end) == (self.start_time, self.end_time):
            return self
        return RecordingMetadata(start_time=start, duration=end - start)


@dataclass(frozen=True)
class TimeRange:
    """Inclusive time window in epoch nanoseconds.

    A range whose start lies after its end is empty rather than invalid.
    """

    start: int
    end: int

    @classmethod
    def from_millis(cls, start_ms: int, end_ms: int) -> "TimeRange":
        """Range covering every nanosecond of both boundary milliseconds."""
        return cls(
            start=start_ms * NANOS_PER_MILLI,
            end=end_ms * NANOS_PER_MILLI + NANOS_PER_MILLI - 1,
        )

    @classmethod
    def unbounded(cls) -> "TimeRange":
        return cls(start=-(2**63), end=2**63 - 1)

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def __contains__(self, timestamp: int) -> bool:
        return self.start <= timestamp <= self.end


def to_millis(nanos: int) -> int:
    """Convert epoch nanoseconds to epoch milliseconds, truncating."""
    return nanos // NANOS_PER_MILLI


Datapoint = tuple[int | float, int]


@dataclass(frozen=True)
class TimeSeries:
    """Datapoints for one target, ascending by timestamp.

    Attributes:
        target: The requested target name.
        datapoints: (value, epoch millis) pairs.
    """

    target: str
    datapoints: tuple[Datapoint, ...] = ()


@dataclass(frozen=True)
class Column:
    """A table column with its dashboard type name."""

    text: str
    type: str


@dataclass(frozen=True)
class Table:
    """Row/column projection of events of one type."""

    columns: tuple[Column, ...] = ()
    rows: tuple[tuple[FieldValue, ...], ...] = ()
    type: str = "table"


QueryResult = TimeSeries | Table
