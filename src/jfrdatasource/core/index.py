"""In-memory index over the events of one recording."""

from bisect import bisect_left, bisect_right
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from jfrdatasource.core.models import (
    Duration,
    Event,
    EventTypeSchema,
    FieldKind,
    RecordingMetadata,
    TimeRange,
    kind_of,
)

SeriesValue = int | float | Duration


def target_name(event_type: str, field_name: str) -> str:
    """Build the target string addressing one event field."""
    return f"{event_type}.{field_name}"


@dataclass(frozen=True)
class TargetSeries:
    """Numeric values of one target, ascending by timestamp.

    Attributes:
        timestamps: Epoch nanoseconds, non-decreasing.
        values: Values aligned with timestamps.
    """

    timestamps: tuple[int, ...] = ()
    values: tuple[SeriesValue, ...] = ()

    def between(self, time_range: TimeRange) -> list[tuple[int, SeriesValue]]:
        """Return (timestamp, value) pairs inside the inclusive range."""
        if time_range.is_empty:
            return []
        lo = bisect_left(self.timestamps, time_range.start)
        hi = bisect_right(self.timestamps, time_range.end)
        return list(zip(self.timestamps[lo:hi], self.values[lo:hi], strict=True))


@dataclass(frozen=True)
class RecordingIndex:
    """Lookup structures built from one parsed recording.

    Build with RecordingIndex.build; instances are never mutated afterwards,
    so a reference can be shared between concurrent readers.
    """

    metadata: RecordingMetadata
    schemas: Mapping[str, EventTypeSchema] = field(default_factory=dict)
    series: Mapping[str, TargetSeries] = field(default_factory=dict)
    events_by_type: Mapping[str, tuple[Event, ...]] = field(default_factory=dict)

    @classmethod
    def build(
        cls, events: Iterable[Event], metadata: RecordingMetadata
    ) -> "RecordingIndex":
        """Consume events once and index them.

        Args:
            events: Events in parse order.
            metadata: Recording metadata from the container headers. It is
                widened when events fall outside it.
        """
        field_kinds: dict[str, dict[str, FieldKind | None]] = {}
        by_type: dict[str, list[Event]] = {}
        points: dict[str, list[tuple[int, SeriesValue]]] = {}

        for event in events:
            by_type.setdefault(event.event_type, []).append(event)
            kinds = field_kinds.setdefault(event.event_type, {})
            for name, value in event.fields.items():
                kind = kind_of(value)
                if kinds.get(name) is None:
                    kinds[name] = kind
                if kind is not None and kind.is_numeric:
                    target = target_name(event.event_type, name)
                    points.setdefault(target, []).append((event.timestamp, value))

        # sorted() is stable, so parse order breaks timestamp ties
        events_by_type = {
            name: tuple(sorted(typed, key=lambda e: e.timestamp))
            for name, typed in by_type.items()
        }
        series = {}
        for target, pairs in points.items():
            pairs.sort(key=lambda p: p[0])
            series[target] = TargetSeries(
                timestamps=tuple(ts for ts, _ in pairs),
                values=tuple(v for _, v in pairs),
            )
        schemas = {
            name: EventTypeSchema(name=name, fields=dict(kinds))
            for name, kinds in field_kinds.items()
        }
        covered = metadata.covering(
            e.timestamp for typed in events_by_type.values() for e in typed
        )
        return cls(
            metadata=covered,
            schemas=schemas,
            series=series,
            events_by_type=events_by_type,
        )

    @property
    def event_types(self) -> list[str]:
        return sorted(self.schemas)

    def targets(self) -> list[str]:
        """Return every queryable field target, sorted."""
        return sorted(self.series)
