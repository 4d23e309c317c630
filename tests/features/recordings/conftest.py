"""BDD step definitions for recording query features."""

import json
from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from jfrdatasource.adapters.session.in_memory import InMemoryRecordingSession
from jfrdatasource.core.encoding.json import encode_query
from jfrdatasource.core.engine import RecordingQueryEngine
from jfrdatasource.core.exceptions import MalformedRecording
from jfrdatasource.core.index import RecordingIndex
from jfrdatasource.core.models import QueryResult, TimeRange
from jfrdatasource.core.query import QueryShape
from jfrdatasource.core.search import SearchKind
from tests.builders import ChunkBuilder, build_recording, millis, sample_chunk


@dataclass
class RecordingScenarioContext:
    """State shared between the steps of one scenario."""

    session: InMemoryRecordingSession = field(default_factory=InMemoryRecordingSession)
    engine: RecordingQueryEngine | None = None
    search_result: list[str] = field(default_factory=list)
    results: list[QueryResult] = field(default_factory=list)
    previous_index: RecordingIndex | None = None
    error: Exception | None = None

    def select(self, data: bytes, name: str = "recording.jfr") -> None:
        self.session.add(name, data, select=True)
        if self.engine is None:
            self.engine = RecordingQueryEngine(self.session)


@pytest.fixture
def ctx() -> RecordingScenarioContext:
    """Fresh scenario context for each test."""
    return RecordingScenarioContext()


# Given


@given(
    parsers.parse(
        "a recording starting at {start:d} ms lasting {duration:d} ms with no events"
    )
)
def given_empty_recording(
    ctx: RecordingScenarioContext, start: int, duration: int
) -> None:
    chunk = ChunkBuilder(start_nanos=millis(start), duration_nanos=millis(duration))
    ctx.select(build_recording(chunk))


@given(
    parsers.parse(
        "a recording with {event_type} {field_name} values {values} at {times} ms"
    )
)
def given_numeric_recording(
    ctx: RecordingScenarioContext,
    event_type: str,
    field_name: str,
    values: str,
    times: str,
) -> None:
    chunk = ChunkBuilder(duration_nanos=millis(1000))
    chunk.event_type(event_type, [(field_name, "d")])
    for value, ms in zip(values.split(", "), times.split(", "), strict=True):
        chunk.event(event_type, millis(int(ms)), **{field_name: float(value)})
    ctx.select(build_recording(chunk))


@given("the sample recording")
def given_sample_recording(ctx: RecordingScenarioContext) -> None:
    ctx.select(build_recording(sample_chunk()))


@given("a selected recording truncated inside its header")
def given_truncated_recording(ctx: RecordingScenarioContext) -> None:
    ctx.select(build_recording(sample_chunk())[:20])


@given("the index has been built")
def given_index_built(ctx: RecordingScenarioContext) -> None:
    assert ctx.engine is not None
    ctx.previous_index = ctx.engine.snapshot()


# When


@when("I search for events")
def when_search_events(ctx: RecordingScenarioContext) -> None:
    assert ctx.engine is not None
    ctx.search_result = ctx.engine.search(SearchKind.EVENTS)


@when(parsers.parse('I query "{target}" from {start:d} to {end:d} ms'))
def when_query_range(
    ctx: RecordingScenarioContext, target: str, start: int, end: int
) -> None:
    assert ctx.engine is not None
    ctx.results = ctx.engine.query([target], TimeRange.from_millis(start, end))


@when(parsers.parse('I query "{target}" as a table'))
def when_query_table(ctx: RecordingScenarioContext, target: str) -> None:
    assert ctx.engine is not None
    ctx.results = ctx.engine.query([target], shape=QueryShape.TABLE)


@when("a truncated recording is selected")
def when_truncated_selected(ctx: RecordingScenarioContext) -> None:
    ctx.select(build_recording(sample_chunk())[:20], name="truncated.jfr")


@when("the index is rebuilt")
def when_index_rebuilt(ctx: RecordingScenarioContext) -> None:
    assert ctx.engine is not None
    try:
        ctx.engine.snapshot()
    except MalformedRecording as e:
        ctx.error = e


# Then


@then("the search result is empty")
def then_search_empty(ctx: RecordingScenarioContext) -> None:
    assert ctx.search_result == []


@then(parsers.parse('the "{target}" series has datapoints {expected}'))
def then_series_datapoints(
    ctx: RecordingScenarioContext, target: str, expected: str
) -> None:
    (result,) = ctx.results
    assert result.target == target
    assert [list(point) for point in result.datapoints] == json.loads(expected)


@then(parsers.parse('the table columns are "{columns}"'))
def then_table_columns(ctx: RecordingScenarioContext, columns: str) -> None:
    (table,) = ctx.results
    assert [column.text for column in table.columns] == columns.split(", ")


@then(parsers.parse("the table has {count:d} rows in timestamp order"))
def then_table_rows(ctx: RecordingScenarioContext, count: int) -> None:
    (table,) = ctx.results
    assert [row[0] for row in table.rows] == ["Main.main:10", "Worker.run:42"]
    assert len(table.rows) == count


@then("the rebuild fails with a malformed recording error")
def then_rebuild_fails(ctx: RecordingScenarioContext) -> None:
    assert isinstance(ctx.error, MalformedRecording)


@then("no index is published")
def then_no_index(ctx: RecordingScenarioContext) -> None:
    assert ctx.engine is not None
    assert ctx.engine._published.index is None


@then("the previous index is still published")
def then_previous_index(ctx: RecordingScenarioContext) -> None:
    assert ctx.engine is not None
    assert ctx.previous_index is not None
    assert ctx.engine._published.index is ctx.previous_index


@then("every field of every event type is a searchable target")
def then_fields_are_targets(ctx: RecordingScenarioContext) -> None:
    engine = ctx.engine
    assert engine is not None
    targets = set(engine.search(SearchKind.TARGET))
    for event_type in engine.search(SearchKind.EVENTS):
        for name in engine.search(SearchKind.FIELDS, event_type=event_type):
            assert f"{event_type}.{name}" in targets


@then(parsers.parse('querying "{target}" twice gives byte-identical JSON'))
def then_idempotent(ctx: RecordingScenarioContext, target: str) -> None:
    engine = ctx.engine
    assert engine is not None
    time_range = TimeRange.from_millis(0, 400)
    first = encode_query(engine.query([target], time_range))
    second = encode_query(engine.query([target], time_range))
    assert first == second
    assert json.loads(first)[0]["datapoints"]
