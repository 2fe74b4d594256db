"""Pytest configuration for API tests."""

from typing import Dict, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def remote_routes() -> Dict[str, Tuple[int, str, bytes]]:
    """Responses served to URL ingestion, keyed by URL."""
    return {}


@pytest.fixture
def app(settings):  # type: ignore[no-untyped-def]
    from tagstash.api.app import create_app

    return create_app(settings)


@pytest.fixture
def pipeline(app, remote_routes):  # type: ignore[no-untyped-def]
    """Ingestion pipeline whose remote fetches never leave the process."""
    from tagstash.core.ingestion import IngestionPipeline

    def handler(request: httpx.Request) -> httpx.Response:
        status, content_type, body = remote_routes.get(
            str(request.url), (404, "text/plain", b"not found")
        )
        return httpx.Response(status, headers={"content-type": content_type}, content=body)

    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    yield IngestionPipeline(
        app.state.catalog,
        app.state.blobs,
        max_bytes=app.state.settings.max_image_bytes,
        http_client=http_client,
    )
    http_client.close()


@pytest.fixture
def client(app, pipeline):  # type: ignore[no-untyped-def]
    """Create a test client wired to the in-process pipeline."""
    from tagstash.api.dependencies import get_pipeline

    app.dependency_overrides[get_pipeline] = lambda: pipeline

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
