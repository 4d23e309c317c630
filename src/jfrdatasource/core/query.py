"""Query executor producing timeseries and table results."""

from collections.abc import Callable, Iterable
from enum import Enum

from jfrdatasource.core.index import RecordingIndex
from jfrdatasource.core.models import (
    RECORDING_DURATION,
    RECORDING_START_TIME,
    Column,
    Datapoint,
    Duration,
    FieldKind,
    QueryResult,
    RecordingMetadata,
    Table,
    TimeRange,
    TimeSeries,
    to_millis,
)


class QueryShape(Enum):
    """Output shape requested for a target."""

    TIMESERIES = "timeseries"
    TABLE = "table"


# Reserved names resolve against recording metadata before field lookup.
# Each maps metadata to a single (value, epoch millis) point.
COMPUTED_TARGETS: dict[str, Callable[[RecordingMetadata], Datapoint]] = {
    RECORDING_DURATION: lambda m: (to_millis(m.duration), to_millis(m.start_time)),
    RECORDING_START_TIME: lambda m: (
        to_millis(m.start_time),
        to_millis(m.start_time),
    ),
}

_COLUMN_TYPES = {
    FieldKind.NUMBER: "number",
    FieldKind.DURATION: "number",
    FieldKind.TEXT: "string",
    FieldKind.BOOLEAN: "boolean",
}


def _plain(value: object) -> object:
    """Durations leave the index as milliseconds."""
    if isinstance(value, Duration):
        return value.millis
    return value


def query_timeseries(
    index: RecordingIndex | None, target: str, time_range: TimeRange
) -> TimeSeries:
    """Resolve one target to a timeseries.

    Unknown targets and empty ranges give a series with no datapoints.
    """
    if index is None:
        return TimeSeries(target=target)
    computed = COMPUTED_TARGETS.get(target)
    if computed is not None:
        return TimeSeries(target=target, datapoints=(computed(index.metadata),))
    series = index.series.get(target)
    if series is None:
        return TimeSeries(target=target)
    return TimeSeries(
        target=target,
        datapoints=tuple(
            (_plain(value), to_millis(ts))
            for ts, value in series.between(time_range)
        ),
    )


def resolve_event_type(index: RecordingIndex, target: str) -> str | None:
    """Map a table target to an event type.

    A target naming an event type is used as is; otherwise the trailing
    ".field" segment is dropped.
    """
    if target in index.schemas:
        return target
    event_type, sep, _ = target.rpartition(".")
    if sep and event_type in index.schemas:
        return event_type
    return None


def query_table(
    index: RecordingIndex | None, target: str, time_range: TimeRange
) -> Table:
    """Project the events of the target's type inside the range into a table."""
    if index is None:
        return Table()
    event_type = resolve_event_type(index, target)
    if event_type is None:
        return Table()
    schema = index.schemas[event_type]
    columns = tuple(
        Column(text=name, type=_COLUMN_TYPES[kind] if kind else "string")
        for name, kind in schema.fields.items()
    )
    if time_range.is_empty:
        return Table(columns=columns)
    rows = tuple(
        tuple(_plain(event.fields.get(name)) for name in schema.fields)
        for event in index.events_by_type[event_type]
        if event.timestamp in time_range
    )
    return Table(columns=columns, rows=rows)


def query(
    index: RecordingIndex | None,
    targets: Iterable[str | tuple[str, QueryShape]],
    time_range: TimeRange,
    shape: QueryShape = QueryShape.TIMESERIES,
) -> list[QueryResult]:
    """Resolve each target independently, in request order.

    Args:
        index: Index of the current recording, or None if none is selected.
        targets: Target names, or (name, shape) pairs overriding `shape`.
        time_range: Inclusive range applied to field targets. Reserved
            computed targets ignore it.
        shape: Default output shape.

    Returns:
        One result per target. Computed targets are always timeseries.
    """
    results: list[QueryResult] = []
    for item in targets:
        target, target_shape = item if isinstance(item, tuple) else (item, shape)
        if target_shape is QueryShape.TABLE and target not in COMPUTED_TARGETS:
            results.append(query_table(index, target, time_range))
        else:
            results.append(query_timeseries(index, target, time_range))
    return results
