"""Shared test fixtures for all test modules."""

from pathlib import Path

import pytest

from jfrdatasource.adapters.session.in_memory import InMemoryRecordingSession
from jfrdatasource.core.engine import RecordingQueryEngine
from jfrdatasource.core.index import RecordingIndex
from jfrdatasource.core.parser import parse_recording
from tests.builders import ChunkBuilder, build_recording, millis, sample_chunk

try:
    import httpx
except ImportError:
    httpx = None


@pytest.fixture
def sample_bytes() -> bytes:
    """Single-chunk recording with three event types."""
    return build_recording(sample_chunk())


@pytest.fixture
def empty_bytes() -> bytes:
    """Recording with no events starting at 1000 ms and lasting 5 s."""
    return build_recording(
        ChunkBuilder(start_nanos=millis(1000), duration_nanos=millis(5000))
    )


@pytest.fixture
def sample_index(sample_bytes: bytes) -> RecordingIndex:
    recording = parse_recording(sample_bytes)
    return RecordingIndex.build(recording.events(), recording.metadata)


@pytest.fixture
def session(sample_bytes: bytes) -> InMemoryRecordingSession:
    """In-memory session with the sample recording selected."""
    session = InMemoryRecordingSession()
    session.add("recording.jfr", sample_bytes, select=True)
    return session


@pytest.fixture
def engine(session: InMemoryRecordingSession) -> RecordingQueryEngine:
    return RecordingQueryEngine(session)


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for uploaded recordings."""
    return tmp_path / "jfr-file-uploads"


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(engine)
            async with asgi_test_client(app) as client:
                response = await client.post("/search", json={})
    """
    if httpx is None:
        pytest.skip("httpx not installed")

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
