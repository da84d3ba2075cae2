"""
Test Configuration and Fixtures for NOVA

Provides FastAPI test client, database fixtures, and mock services.
"""

import os
import shutil
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Environment must be in place before nova.core.config is imported
_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="nova-test-"))
os.environ["NOVA_ENV"] = "test"
os.environ["NOVA_DATA_DIR"] = str(_TEST_DATA_DIR)
os.environ["NOVA_LOG_DIR"] = str(_TEST_DATA_DIR / "logs")
os.environ["NOVA_RATE_LIMIT"] = "false"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("GEMINI_MODEL", None)

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fastapi.testclient import TestClient

from nova.main import app
from nova.services.database import DatabaseService, get_database_service
from nova.services.responder import QueryResponder, get_query_responder

# Friday
FIXED_NOW = datetime(2024, 3, 15, 9, 5, 0)


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_data_dir():
    """Remove the temporary data directory after the session"""
    yield
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)


@pytest.fixture
def fixed_clock():
    """Clock frozen at FIXED_NOW"""
    return lambda: FIXED_NOW


@pytest.fixture
def mock_llm():
    """Mock LLM provider"""
    mock = AsyncMock()
    mock.generate.return_value = "Paris is the capital of France."
    return mock


@pytest.fixture
def mock_sleep():
    """Stand-in for asyncio.sleep so retry tests don't wait"""
    return AsyncMock()


@pytest.fixture
def responder(mock_llm, fixed_clock, mock_sleep):
    """QueryResponder wired to the mock LLM"""
    return QueryResponder(
        llm_factory=lambda: mock_llm,
        max_retries=2,
        retry_delay=0.8,
        clock=fixed_clock,
        sleep=mock_sleep,
    )


@pytest.fixture
async def database(tmp_path):
    """Connected database on a temporary file"""
    service = DatabaseService(tmp_path / "test.db")
    await service.connect()
    yield service
    await service.close()


@pytest.fixture
def client(tmp_path, responder):
    """
    Synchronous FastAPI test client

    The database is created inside the app's event loop, so it is
    connected lazily by the overridden dependency.
    """
    test_db = DatabaseService(tmp_path / "api.db")

    async def override_database():
        if test_db._conn is None:
            await test_db.connect()
        return test_db

    app.dependency_overrides[get_database_service] = override_database
    app.dependency_overrides[get_query_responder] = lambda: responder

    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(test_db.close)

    app.dependency_overrides.clear()


@pytest.fixture
def sign_up(client):
    """Register a user through the API; the client keeps the cookie"""
    def _sign_up(name: str = "Ada", email: str = "ada@example.com", password: str = "secret123"):
        return client.post("/api/auth/signup", json={
            "name": name,
            "email": email,
            "password": password,
        })
    return _sign_up


@pytest.fixture
def signed_in_client(client, sign_up):
    """Test client with a registered, signed-in user"""
    response = sign_up()
    assert response.status_code == 201
    return client
