import asyncio
import os
from pathlib import Path

# Settings are cached on first import, so the test environment must be in
# place before anything from `app` is imported.
TEST_DB_PATH = Path(__file__).resolve().parent / "test_live_sessions.db"

os.environ["APP_ENV"] = "test"
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["CALENDAR_TIMEZONE"] = "UTC"
os.environ["ADMIN_API_KEY"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db.session import reset_db  # noqa: E402
from app.main import create_app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def clean_database():
    """
    Start every test run from freshly created tables.

    The test engine uses NullPool, so running this on its own event loop
    leaves no connections behind for the tests' loops.
    """
    asyncio.run(reset_db())
    yield


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient fixture for all API tests.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
