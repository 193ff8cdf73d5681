import os
import asyncio
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from fastapi.testclient import TestClient

# Ensure .env is loaded, then FORCE SQLite for tests regardless of .env
load_dotenv()
_TEST_DB_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "test.db"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
# Tests drive passes explicitly; the background scheduler stays off
os.environ["REMINDER_SCHEDULER_ENABLED"] = "false"
os.environ["SEED_SAMPLE_DATA"] = "false"
os.environ["REMINDER_BEFORE_DUE_ANCHOR"] = "due"


@pytest.fixture(scope="session", autouse=True)
def _fresh_db_file():
    if os.path.exists(_TEST_DB_PATH):
        os.remove(_TEST_DB_PATH)
    yield


# Empty schema for tests that touch the database from their own event loop
@pytest_asyncio.fixture()
async def clean_db():
    from taskminder import database
    await database.reset_db_async()
    yield


# Shared TestClient on an empty schema
@pytest.fixture()
def client():
    from taskminder import database
    asyncio.run(database.reset_db_async())

    from taskminder.main import app
    with TestClient(app) as c:
        yield c
