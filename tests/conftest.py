"""
Pytest configuration and fixtures
"""

import io
import zipfile
from typing import Callable, Dict

import httpx
import pytest
import pytest_asyncio
from core.config import Settings
from core.database import create_engine, create_session_maker
from ingestion.ledger import SnapshotLedger
from ingestion.sources import DatasetSourceName
from models.base import Base


@pytest.fixture
def test_database_url(tmp_path):
    """File-backed SQLite so every session gets its own connection"""
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def test_settings(tmp_path, test_database_url):
    """Settings pointing storage at tmp_path with a near-zero retry backoff"""
    return Settings(
        _env_file=None,
        DATABASE_URL=test_database_url,
        DATASET_STORAGE_DIR=str(tmp_path / "datasets"),
        DATASET_TEMP_DIR=str(tmp_path / "tmp"),
        DATASET_MAX_RETRIES=3,
        DATASET_RETRY_BACKOFF_MS=1,
        DATASET_CRON_EXPRESSION="0 3 * * *",
        DATASET_SCHEDULED_SOURCES="",
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine(test_database_url):
    """Create test database engine"""
    engine = create_engine(test_database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return create_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def ledger(session_maker) -> SnapshotLedger:
    """Ledger with the whole catalog registered"""
    snapshot_ledger = SnapshotLedger(session_maker)
    await snapshot_ledger.register_sources(source.value for source in DatasetSourceName)
    return snapshot_ledger


@pytest.fixture
def make_zip() -> Callable[[Dict[str, str]], bytes]:
    """Build an in-memory ZIP from {member name: text}"""

    def _make_zip(members: Dict[str, str]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for name, text in members.items():
                archive.writestr(name, text)
        return buffer.getvalue()

    return _make_zip


@pytest.fixture
def mock_client_factory():
    """Turn a request handler into an http_client_factory for the runner"""

    def _factory(handler: Callable[[httpx.Request], httpx.Response]):
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _factory
