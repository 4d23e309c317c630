"""ASGI generic adapter for the datasource protocol.

This adapter provides a framework-agnostic ASGI application that can be used
with any ASGI server (uvicorn, hypercorn, daphne) without requiring FastAPI
as a dependency.
"""

import json
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from pydantic import ValidationError

from jfrdatasource.adapters.frameworks.requests import (
    parse_query_body,
    parse_search_body,
)
from jfrdatasource.core.encoding.json import encode_query, encode_search
from jfrdatasource.core.engine import RecordingQueryEngine
from jfrdatasource.core.exceptions import MalformedRecording
from jfrdatasource.core.query import query
from jfrdatasource.core.search import SearchKind, search

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

JSON_CONTENT_TYPE = "application/json"

# path -> allowed method
_ROUTES = {
    "/": "GET",
    "/search": "POST",
    "/query": "POST",
    "/annotations": "POST",
}


async def _read_body(receive: Receive) -> bytes:
    """Read the full request body from the ASGI receive channel."""
    chunks = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body as string (will be encoded to bytes).
    """
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _send_error(send: Send, status: int, message: str) -> None:
    body = json.dumps({"error": message})
    await _send_response(send, status, JSON_CONTENT_TYPE, body)


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], Coroutine[Any, Any, str]],
    log_message: str,
) -> None:
    """Execute an endpoint function with error handling and send response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Async function that returns the JSON response body.
        log_message: Message to log on unexpected errors.
    """
    try:
        body = await endpoint_func()
    except ValidationError as e:
        await _send_error(send, 400, f"Invalid request body: {e.error_count()} errors")
    except MalformedRecording as e:
        await _send_error(send, 422, str(e))
    except Exception:
        logger.exception(log_message)
        await _send_error(send, 500, "Internal Server Error")
    else:
        await _send_response(send, 200, JSON_CONTENT_TYPE, body)


def create_asgi_app(engine: RecordingQueryEngine) -> ASGIApp:
    """Create an ASGI app serving /, /search, /query and /annotations.

    Args:
        engine: Query engine bound to the recording session.

    Returns:
        ASGI application callable.
    """

    async def search_endpoint(body: bytes) -> str:
        request = parse_search_body(body)
        index = await engine.asnapshot()
        names = search(
            index, request.type, text=request.target, event_type=request.event_type
        )
        return encode_search(names, as_pairs=request.type is SearchKind.TARGET)

    async def query_endpoint(body: bytes) -> str:
        request = parse_query_body(body)
        index = await engine.asnapshot()
        return encode_query(
            query(index, request.shaped_targets(), request.time_range())
        )

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        method = _ROUTES.get(path)
        if method is None:
            await _send_response(send, 404, "text/plain", "Not Found")
            return
        if scope["method"] != method:
            await _send_response(send, 405, "text/plain", "Method Not Allowed")
            return

        if path == "/":
            await _send_response(send, 200, "text/plain", "")
        elif path == "/search":
            body = await _read_body(receive)
            await _handle_endpoint(
                send, lambda: search_endpoint(body), "Error handling search request"
            )
        elif path == "/query":
            body = await _read_body(receive)
            await _handle_endpoint(
                send, lambda: query_endpoint(body), "Error handling query request"
            )
        else:
            await _send_response(send, 200, JSON_CONTENT_TYPE, "[]")

    return app
