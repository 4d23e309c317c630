"""Example FastAPI application serving recordings to a dashboard.

Run with:
    uvicorn examples.fastapi_example:app --reload

Configure with environment variables:
    JFR_DATASOURCE_UPLOAD_DIR   - where uploads are stored
    JFR_DATASOURCE_LOG_LEVEL    - DEBUG, INFO, WARNING, ...

Try it:
    curl -F file=@app.jfr localhost:8000/load
    curl -X POST localhost:8000/search -d '{"type": "events"}'
    curl -X POST localhost:8000/query \
        -d '{"targets": ["jdk.CPULoad.user"], "range": {"from": 0, "to": 9e12}}'
"""

from jfrdatasource.adapters.frameworks.fastapi import create_app

app = create_app()
