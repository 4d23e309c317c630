"""FastAPI adapter for the datasource protocol and recording management."""

import asyncio
import json
import logging

from fastapi import APIRouter, FastAPI, File, Query, Request, Response, UploadFile
from pydantic import ValidationError

from jfrdatasource.adapters.frameworks.requests import (
    parse_query_body,
    parse_search_body,
)
from jfrdatasource.adapters.session.directory import DirectoryRecordingSession
from jfrdatasource.config import DatasourceConfig, configure_logging
from jfrdatasource.core.encoding.json import encode_query, encode_search
from jfrdatasource.core.engine import RecordingQueryEngine
from jfrdatasource.core.exceptions import MalformedRecording, RecordingNotFound
from jfrdatasource.core.query import query
from jfrdatasource.core.search import SearchKind, search

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
TEXT_MEDIA_TYPE = "text/plain"


def _lines(lines: list[str]) -> Response:
    body = "".join(f"{line}\n" for line in lines)
    return Response(content=body, media_type=TEXT_MEDIA_TYPE)


async def _body_text(request: Request) -> str:
    return (await request.body()).decode("utf-8", errors="replace").strip()


def _error(status_code: int, message: str) -> Response:
    return Response(
        content=json.dumps({"error": message}),
        status_code=status_code,
        media_type=JSON_MEDIA_TYPE,
    )


def create_datasource_router(
    engine: RecordingQueryEngine,
    session: DirectoryRecordingSession,
) -> APIRouter:
    """Create a FastAPI router with datasource and file management endpoints.

    Args:
        engine: Query engine bound to `session`.
        session: Directory session holding uploaded recordings.

    Returns:
        APIRouter with /, /search, /query, /annotations, /upload, /load, /set,
        /list, /current, /delete and /delete_all endpoints configured.
    """
    router = APIRouter()

    @router.get("/")
    async def health() -> Response:
        """Datasource connection test."""
        return Response(status_code=200)

    @router.post("/search")
    async def post_search(request: Request) -> Response:
        """Return matching event types, fields or targets as a JSON array."""
        try:
            body = parse_search_body(await request.body())
            index = await engine.asnapshot()
        except ValidationError as e:
            return _error(400, f"Invalid request body: {e.error_count()} errors")
        except MalformedRecording as e:
            logger.warning("Current recording is malformed: %s", e)
            return _error(422, str(e))
        except Exception:
            logger.exception("Error handling %s request", request.url.path)
            return _error(500, "Internal Server Error")
        names = search(index, body.type, text=body.target, event_type=body.event_type)
        content = encode_search(names, as_pairs=body.type is SearchKind.TARGET)
        return Response(content=content, media_type=JSON_MEDIA_TYPE)

    @router.post("/query")
    async def post_query(request: Request) -> Response:
        """Return timeseries and table results as a JSON array."""
        try:
            body = parse_query_body(await request.body())
            index = await engine.asnapshot()
        except ValidationError as e:
            return _error(400, f"Invalid request body: {e.error_count()} errors")
        except MalformedRecording as e:
            logger.warning("Current recording is malformed: %s", e)
            return _error(422, str(e))
        except Exception:
            logger.exception("Error handling %s request", request.url.path)
            return _error(500, "Internal Server Error")
        results = query(index, body.shaped_targets(), body.time_range())
        return Response(content=encode_query(results), media_type=JSON_MEDIA_TYPE)

    @router.post("/annotations")
    async def post_annotations() -> Response:
        """Annotations are not supported; always empty."""
        return Response(content="[]", media_type=JSON_MEDIA_TYPE)

    async def _store(file: UploadFile, overwrite: bool) -> str:
        name = file.filename or "recording.jfr"
        return await asyncio.to_thread(session.save, name, file.file, overwrite)

    @router.post("/upload")
    async def upload(
        file: UploadFile = File(...),
        overwrite: bool = Query(default=False),
    ) -> Response:
        """Store an uploaded recording."""
        name = await _store(file, overwrite)
        return _lines([f"Uploaded: {name}"])

    @router.post("/load")
    async def load(
        file: UploadFile = File(...),
        overwrite: bool = Query(default=False),
    ) -> Response:
        """Store an uploaded recording and select it."""
        name = await _store(file, overwrite)
        session.set_current(name)
        return _lines([f"Uploaded: {name}", f"Set: {name}"])

    @router.post("/set")
    async def set_current(request: Request) -> Response:
        """Select a stored recording; the body is its name."""
        name = await _body_text(request)
        try:
            session.set_current(name)
        except (RecordingNotFound, ValueError):
            return Response(status_code=404)
        return _lines([f"Set: {name}"])

    @router.get("/list")
    async def list_recordings() -> Response:
        """List stored recordings, the current one wrapped in **."""
        current = session.current()
        return _lines(
            [f"**{name}**" if name == current else name for name in session.names()]
        )

    @router.get("/current")
    async def current() -> Response:
        """Return the selected recording name, or an empty line."""
        return _lines([session.current() or ""])

    @router.delete("/delete")
    async def delete(request: Request) -> Response:
        """Delete a stored recording; the body is its name."""
        name = await _body_text(request)
        try:
            deleted = session.delete(name)
        except ValueError:
            deleted = False
        except OSError:
            logger.exception("Failed to delete recording %s", name)
            return Response(status_code=500)
        return Response(status_code=204 if deleted else 404)

    @router.delete("/delete_all")
    async def delete_all() -> Response:
        """Delete every stored recording."""
        try:
            deleted = session.delete_all()
        except OSError:
            logger.exception("Failed to delete recordings")
            return Response(status_code=500)
        return _lines([f"Deleted: {name}" for name in deleted])

    return router


def create_app(config: DatasourceConfig | None = None) -> FastAPI:
    """Create the datasource FastAPI application.

    Args:
        config: Service configuration. Defaults to DatasourceConfig.from_env().
    """
    config = config or DatasourceConfig.from_env()
    configure_logging(config.log_level)
    session = DirectoryRecordingSession(config.upload_dir)
    engine = RecordingQueryEngine(session)
    app = FastAPI(title="JFR Datasource")
    app.include_router(create_datasource_router(engine, session))
    logger.info("Serving recordings from %s", config.upload_dir)
    return app
