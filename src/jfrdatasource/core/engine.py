"""Holder of the current recording index.

The engine keeps one immutable RecordingIndex per recording generation.
Readers take a snapshot reference without locking. A rebuild parses the
recording with no lock held and only the final swap is synchronized, so a
reader sees either the complete old index or the complete new one. At most
one rebuild runs per generation; concurrent callers wait for its result.
"""

import asyncio
import concurrent.futures
import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass

from jfrdatasource.core.exceptions import MalformedRecording, NoCurrentRecording
from jfrdatasource.core.index import RecordingIndex
from jfrdatasource.core.models import QueryResult, TimeRange
from jfrdatasource.core.parser import parse_recording
from jfrdatasource.core.ports import RecordingSessionPort
from jfrdatasource.core.query import QueryShape, query
from jfrdatasource.core.search import SearchKind, search

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Published:
    generation: int
    index: RecordingIndex | None


class RecordingQueryEngine:
    """Search and query entry point bound to a recording session.

    Example:
        ```python
        session = InMemoryRecordingSession()
        engine = RecordingQueryEngine(session)
        session.add("recording.jfr", data, select=True)
        engine.search(SearchKind.EVENTS)
        ```
    """

    def __init__(self, session: RecordingSessionPort) -> None:
        self._session = session
        self._generation = 1
        self._published = _Published(generation=0, index=None)
        self._swap_lock = threading.Lock()
        self._rebuild: tuple[int, concurrent.futures.Future] | None = None
        session.on_recording_changed(self.invalidate)

    @property
    def generation(self) -> int:
        return self._generation

    def invalidate(self) -> None:
        """Mark the published index stale. The next snapshot rebuilds it."""
        with self._swap_lock:
            self._generation += 1
        logger.debug("Recording changed, index generation %d", self._generation)

    def snapshot(self) -> RecordingIndex | None:
        """Return the index of the current recording.

        Returns:
            The index, or None when no recording is selected.

        Raises:
            MalformedRecording: If the current recording cannot be parsed. The
                previously published index stays in place.
        """
        published = self._published
        if published.generation == self._generation:
            return published.index
        return self.refresh()

    async def asnapshot(self) -> RecordingIndex | None:
        """Async variant of snapshot; rebuilds run on a worker thread."""
        published = self._published
        if published.generation == self._generation:
            return published.index
        return await asyncio.to_thread(self.refresh)

    def refresh(self) -> RecordingIndex | None:
        """Rebuild the index from the session and publish it.

        The first caller for a generation runs the rebuild. Callers arriving
        while it runs wait for the same result or exception.
        """
        with self._swap_lock:
            generation = self._generation
            if self._published.generation == generation:
                return self._published.index
            if self._rebuild is not None and self._rebuild[0] == generation:
                pending = self._rebuild[1]
                owner = False
            else:
                pending = concurrent.futures.Future()
                self._rebuild = (generation, pending)
                owner = True
        if not owner:
            logger.debug("Waiting for rebuild of generation %d", generation)
            return pending.result()
        try:
            index = self._build()
        except BaseException as e:
            self._finish_rebuild(pending)
            pending.set_exception(e)
            raise
        with self._swap_lock:
            if generation > self._published.generation:
                self._published = _Published(generation=generation, index=index)
        self._finish_rebuild(pending)
        pending.set_result(index)
        return index

    def _finish_rebuild(self, pending: concurrent.futures.Future) -> None:
        with self._swap_lock:
            if self._rebuild is not None and self._rebuild[1] is pending:
                self._rebuild = None

    def _build(self) -> RecordingIndex | None:
        try:
            stream = self._session.current_recording_stream()
        except NoCurrentRecording:
            logger.debug("No current recording, publishing empty index")
            return None
        started = time.perf_counter()
        try:
            with stream:
                recording = parse_recording(stream)
            index = RecordingIndex.build(recording.events(), recording.metadata)
        except MalformedRecording as e:
            logger.warning("Rebuild failed, keeping previous index: %s", e)
            raise
        logger.info(
            "Indexed recording: %d event types, %d targets in %.3fs",
            len(index.schemas),
            len(index.series),
            time.perf_counter() - started,
        )
        return index

    def search(
        self,
        kind: SearchKind,
        text: str | None = None,
        event_type: str | None = None,
    ) -> list[str]:
        return search(self.snapshot(), kind, text=text, event_type=event_type)

    def query(
        self,
        targets: Iterable[str | tuple[str, QueryShape]],
        time_range: TimeRange | None = None,
        shape: QueryShape = QueryShape.TIMESERIES,
    ) -> list[QueryResult]:
        return query(
            self.snapshot(), targets, time_range or TimeRange.unbounded(), shape
        )
