"""
API endpoint tests
"""

import pytest
from fastapi.testclient import TestClient
from api.main import create_app
from core.database import create_engine
from core.exceptions import UpstreamFetchError
from ingestion.base import ConnectorOutput, DatasetConnector, IngestionContext
from ingestion.connectors import StaticConnector
from ingestion.sources import DatasetSourceName


class ExplodingConnector(DatasetConnector):
    async def prepare(self, context: IngestionContext) -> ConnectorOutput:
        raise UpstreamFetchError("upstream exploded")


@pytest.fixture
def registry():
    return {
        DatasetSourceName.DAILYMED: StaticConnector(DatasetSourceName.DAILYMED, [{"id": 1}, {"id": 2}]),
        DatasetSourceName.CDC_GUIDELINES: StaticConnector(
            DatasetSourceName.CDC_GUIDELINES, {"message": "manual upload"}
        ),
        DatasetSourceName.NPPES: ExplodingConnector(DatasetSourceName.NPPES),
    }


@pytest.fixture
def client(test_settings, registry):
    """Test client over a fresh SQLite ledger; startup creates tables and registers the catalog"""
    app = create_app(
        config=test_settings,
        engine=create_engine(test_settings.DATABASE_URL),
        registry=registry,
        enable_scheduler=False,
    )

    with TestClient(app) as test_client:
        yield test_client


def test_health_before_any_ingestion(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert data["databaseConnected"] is True
    assert data["totalSources"] == len(DatasetSourceName)
    assert data["neverIngestedSources"] == len(DatasetSourceName)


def test_request_context_headers(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert int(response.headers["X-API-Latency-ms"]) >= 0

    generated = client.get("/health")
    assert generated.headers["X-Request-ID"]


def test_list_sources_without_snapshots(client):
    response = client.get("/api/datasets")

    assert response.status_code == 200
    sources = response.json()
    assert len(sources) == len(DatasetSourceName)
    assert all(source["latestSnapshot"] is None for source in sources)


def test_latest_snapshot_missing(client):
    response = client.get("/api/datasets/dailymed/latest")

    assert response.status_code == 404
    assert response.json() == {"status": "error", "message": "No snapshots recorded for DailyMed"}


def test_latest_snapshot_unknown_source(client):
    response = client.get("/api/datasets/not-a-dataset/latest")

    assert response.status_code == 404
    assert response.json() == {"status": "error", "message": "Unknown dataset source: not-a-dataset"}


def test_ingest_then_read_latest(client):
    response = client.post("/api/datasets/DailyMed/ingest")

    assert response.status_code == 202
    snapshot = response.json()
    assert snapshot["source"] == "DailyMed"
    assert snapshot["status"] == "completed"
    assert len(snapshot["checksum"]) == 64
    assert snapshot["storageLocation"].endswith(".json")
    assert snapshot["metadata"]["itemCount"] == 2
    assert snapshot["metadata"]["contentType"] == "application/json"
    assert snapshot["completedAt"] is not None

    latest = client.get("/api/datasets/DAILYMED/latest")
    assert latest.status_code == 200
    assert latest.json()["id"] == snapshot["id"]

    listed = {source["source"]: source for source in client.get("/api/datasets").json()}
    assert listed["DailyMed"]["latestSnapshot"]["id"] == snapshot["id"]


def test_source_names_with_slash(client):
    response = client.post("/api/datasets/CDC/NIH Guidelines/ingest")

    assert response.status_code == 202
    assert response.json()["source"] == "CDC/NIH Guidelines"
    assert "/cdc-nih-guidelines/" in response.json()["storageLocation"].replace("\\", "/")


def test_ingest_failure_returns_500_with_message(client):
    response = client.post("/api/datasets/NPPES/ingest")

    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "upstream exploded"}

    latest = client.get("/api/datasets/NPPES/latest").json()
    assert latest["status"] == "failed"
    assert latest["error"] == "upstream exploded"


def test_ingest_unknown_source(client):
    response = client.post("/api/datasets/not-a-dataset/ingest")

    assert response.status_code == 404
    assert response.json()["status"] == "error"


def test_ingest_source_without_connector(client):
    response = client.post("/api/datasets/LUNA16/ingest")

    assert response.status_code == 404
    assert response.json() == {"status": "error", "message": "No connector registered for LUNA16"}


def test_health_degrades_on_partial_failure(client):
    client.post("/api/datasets/DailyMed/ingest")
    client.post("/api/datasets/NPPES/ingest")

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["completedSources"] == 1
    assert data["failedSources"] == 1
    assert data["neverIngestedSources"] == len(DatasetSourceName) - 2
