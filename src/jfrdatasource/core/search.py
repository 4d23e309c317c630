"""Search executor answering "what can be queried" requests."""

from enum import Enum

from jfrdatasource.core.index import RecordingIndex
from jfrdatasource.core.models import RESERVED_TARGETS

MATCH_ALL = "*"


class SearchKind(Enum):
    """Kind of completion requested by a dashboard."""

    EVENTS = "events"
    FIELDS = "fields"
    TARGET = "target"


def search(
    index: RecordingIndex | None,
    kind: SearchKind,
    text: str | None = None,
    event_type: str | None = None,
) -> list[str]:
    """Return matching names in lexicographic order.

    Args:
        index: Index of the current recording, or None when no recording
            is selected.
        kind: What to complete.
        text: Case-sensitive substring filter. Empty or "*" matches all.
        event_type: Event type whose fields are listed (FIELDS only).

    Returns:
        Sorted, deduplicated names. Empty when nothing matches.
    """
    if index is None:
        return []
    if kind is SearchKind.EVENTS:
        names = index.event_types
    elif kind is SearchKind.FIELDS:
        schema = index.schemas.get(event_type or "")
        names = sorted(schema.numeric_fields) if schema else []
    else:
        names = sorted({*index.targets(), *RESERVED_TARGETS})
    if text and text != MATCH_ALL:
        names = [name for name in names if text in name]
    return names
