"""Request models shared by the framework adapters.

Search and query bodies follow the simple JSON datasource protocol used by
dashboard tools. Both adapters validate bodies with these models so the
accepted shapes stay identical.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jfrdatasource.core.models import TimeRange
from jfrdatasource.core.query import QueryShape
from jfrdatasource.core.search import SearchKind

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLI = timedelta(milliseconds=1)

_SHAPES = {
    "timeserie": QueryShape.TIMESERIES,
    "timeseries": QueryShape.TIMESERIES,
    "table": QueryShape.TABLE,
}


def _parse_shape(value: str | None) -> QueryShape | None:
    if value is None:
        return None
    try:
        return _SHAPES[value.lower()]
    except KeyError:
        raise ValueError(f"Unknown query type: {value!r}") from None


def _parse_epoch_millis(value: Any) -> int:
    """Parse an epoch-millisecond number or an ISO-8601 timestamp.

    Naive ISO timestamps are taken as UTC.
    """
    if isinstance(value, bool):
        raise ValueError("Timestamp must be a number or an ISO-8601 string")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}") from None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return (parsed - _EPOCH) // _ONE_MILLI
    raise ValueError("Timestamp must be a number or an ISO-8601 string")


class SearchRequest(BaseModel):
    """Body of a search request.

    {"target": "cpu"} completes targets, {"type": "events"} lists event
    types and {"type": "fields", "eventType": "jdk.CPULoad"} lists fields.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: SearchKind = SearchKind.TARGET
    target: str | None = None
    event_type: str | None = Field(default=None, alias="eventType")


class QueryTarget(BaseModel):
    """One requested target with an optional per-target shape."""

    target: str
    type: str | None = None

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str | None) -> str | None:
        _parse_shape(value)
        return value


class RangeModel(BaseModel):
    """Time range with epoch-millisecond or ISO-8601 endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    start: int = Field(alias="from")
    end: int = Field(alias="to")

    @field_validator("start", "end", mode="before")
    @classmethod
    def _to_millis(cls, value: Any) -> int:
        return _parse_epoch_millis(value)


class QueryRequest(BaseModel):
    """Body of a query request."""

    targets: list[str | QueryTarget] = Field(default_factory=list)
    range: RangeModel | None = None
    type: str | None = None

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str | None) -> str | None:
        _parse_shape(value)
        return value

    def time_range(self) -> TimeRange:
        if self.range is None:
            return TimeRange.unbounded()
        return TimeRange.from_millis(self.range.start, self.range.end)

    def shaped_targets(self) -> list[tuple[str, QueryShape]]:
        """Return (target, shape) pairs, per-target types overriding the hint."""
        default = _parse_shape(self.type) or QueryShape.TIMESERIES
        shaped = []
        for item in self.targets:
            if isinstance(item, str):
                shaped.append((item, default))
            else:
                shaped.append((item.target, _parse_shape(item.type) or default))
        return shaped


def parse_search_body(body: bytes) -> SearchRequest:
    """Validate a raw search body. An empty body requests all targets.

    Raises:
        pydantic.ValidationError: If the body is not a valid search request.
    """
    return SearchRequest.model_validate_json(body or b"{}")


def parse_query_body(body: bytes) -> QueryRequest:
    """Validate a raw query body.

    Raises:
        pydantic.ValidationError: If the body is not a valid query request.
    """
    return QueryRequest.model_validate_json(body or b"{}")
