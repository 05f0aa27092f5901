"""
Income Records Backend: Test Configuration (conftest.py)
===========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session:  AsyncMock session for service unit tests (no DB)
    ├── test_settings:    Settings pointing at a fresh SQLite file in tmp_path
    ├── test_app:         create_app(test_settings) with the schema created
    ├── test_client:      HTTPX AsyncClient routed straight into test_app
    └── create_record:    helper that POSTs a record and returns its JSON
"""

import os
import tempfile
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings for testing BEFORE any app imports: `app.main` builds a
# module-level app from the environment on import
os.environ["DATABASE_URL"] = (
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="income_records_test_"), "app.db")
)
os.environ["LOG_LEVEL"] = "WARNING"

from app.config import Settings  # noqa: E402
from app.database import create_schema, dispose_engine  # noqa: E402
from app.main import create_app  # noqa: E402


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute = AsyncMock(side_effect=[page_result, count_result])
        result = await service.list_records(mock_db_session)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings backed by a throwaway SQLite database file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'records.db'}",
        log_level="WARNING",
        cors_origins="http://localhost:3000",
        rate_limit_requests=1000,
        rate_limit_window=900,
    )


@pytest_asyncio.fixture
async def test_app(test_settings):
    """A fully configured app with the income_records table created."""
    app = create_app(test_settings)
    await create_schema(app.state.engine)
    yield app
    await dispose_engine(app.state.engine)


@pytest_asyncio.fixture
async def test_client(test_app):
    """
    HTTPX AsyncClient talking to test_app through ASGITransport.

    ASGITransport does not run the lifespan; test_app already holds a
    working engine, so requests go straight to the routes.
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def create_record(test_client):
    """POST a record and return the created record's JSON."""

    async def _create(**fields: Any) -> Dict[str, Any]:
        body = {"description": "Salary payment", "amount": 100}
        body.update(fields)
        response = await test_client.post("/api/records", json=body)
        assert response.status_code == 201, response.text
        return response.json()["data"]["record"]

    return _create


@pytest.fixture
def sample_record_payload():
    return {
        "description": "Freelance gig",
        "amount": 250,
        "category": "Freelance",
    }
