"""Example ASGI application without FastAPI.

Serves the datasource protocol for a single recording given on the
command line. Management endpoints are not available here.

Run with:
    python -m examples.asgi_example path/to/recording.jfr
"""

import sys

import uvicorn

from jfrdatasource import InMemoryRecordingSession, RecordingQueryEngine
from jfrdatasource.adapters.frameworks.asgi import create_asgi_app
from jfrdatasource.config import configure_logging


def main(path: str) -> None:
    configure_logging("INFO")
    session = InMemoryRecordingSession()
    with open(path, "rb") as f:
        session.add(path, f.read(), select=True)
    app = create_asgi_app(RecordingQueryEngine(session))
    uvicorn.run(app, host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main(sys.argv[1])
