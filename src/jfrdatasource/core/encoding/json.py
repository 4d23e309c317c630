"""JSON encoder for search and query results."""

import json
import math
from collections.abc import Iterable
from dataclasses import asdict
from typing import Any

from jfrdatasource.core.models import QueryResult, Table


def _finite(value: Any) -> Any:
    """Map NaN and infinities to None, which JSON can represent."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _result_to_dict(result: QueryResult) -> dict[str, Any]:
    if isinstance(result, Table):
        return {
            "columns": [asdict(column) for column in result.columns],
            "rows": [[_finite(cell) for cell in row] for row in result.rows],
            "type": result.type,
        }
    return {
        "target": result.target,
        "datapoints": [[_finite(value), ts] for value, ts in result.datapoints],
    }


def encode_query(results: Iterable[QueryResult]) -> str:
    """Encode query results as a JSON array.

    Timeseries encode as {"target", "datapoints": [[value, epochMillis]]},
    tables as {"columns": [{"text", "type"}], "rows": [...], "type": "table"}.
    Non-finite values encode as null.
    """
    return json.dumps(
        [_result_to_dict(result) for result in results], allow_nan=False
    )


def encode_search(names: Iterable[str], as_pairs: bool = False) -> str:
    """Encode search results as a JSON array.

    Args:
        names: Matching names, already ordered.
        as_pairs: Emit {"text", "value"} objects instead of plain strings.
    """
    if as_pairs:
        return json.dumps([{"text": name, "value": name} for name in names])
    return json.dumps(list(names))
