"""Pytest configuration and fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from iracing_setup_sync.catalog import CatalogCache
from iracing_setup_sync.client import RemoteClient
from iracing_setup_sync.credentials import CredentialStore
from iracing_setup_sync.engine import SyncEngine
from iracing_setup_sync.models import Catalog, Credential, RemoteArtifact


@pytest.fixture
def catalog_response():
    """Sample metadata catalog response."""
    return {
        "cars": {
            "5": {"id": 5, "displayName": "Car Five"},
            "12": {
                "id": 12,
                "displayName": "Porsche 718 Cayman GT4 Clubsport MR",
                "iracingPath": "porsche718gt4mr",
            },
        },
        "tracks": {
            "3": {"id": 3, "displayName": "Spa: Grand Prix"},
        },
    }


@pytest.fixture
def sample_catalog(catalog_response) -> Catalog:
    """Catalog built from the sample response."""
    return Catalog.model_validate(catalog_response)


@pytest.fixture
def artifact_list_response():
    """Sample datapack file listing response."""
    return [
        {
            "fileName": "a.sto",
            "displayName": "Setup A.sto",
            "trackId": 3,
            "carId": 12,
            "datapackId": "pack-1",
            "sessionId": "session-1",
        },
        {
            "fileName": "b.json",
            "displayName": "Telemetry B.json",
            "trackId": 3,
            "carId": 12,
            "datapackId": "pack-1",
            "sessionId": "session-1",
        },
        {
            "fileName": "c.STO",
            "displayName": "Setup C.STO",
            "trackId": 3,
            "carId": 12,
            "datapackId": "pack-1",
            "sessionId": "session-1",
        },
    ]


@pytest.fixture
def sample_artifacts(artifact_list_response) -> list[RemoteArtifact]:
    """Artifacts built from the sample listing."""
    return [RemoteArtifact.model_validate(item) for item in artifact_list_response]


@pytest.fixture
def authenticated_credential() -> Credential:
    """Credential that already holds an access token."""
    return Credential(access_token="jwt-current", refresh_token="refresh-current")


@pytest.fixture
def mock_client() -> MagicMock:
    """RemoteClient double with async methods."""
    client = MagicMock(spec=RemoteClient)
    client.refresh_credential = AsyncMock()
    client.fetch_catalog = AsyncMock()
    client.list_artifacts = AsyncMock(return_value=[])
    client.download_artifact = AsyncMock(return_value=b"setup-bytes")
    client.close = AsyncMock()
    return client


@pytest.fixture
def engine(
    mock_client, authenticated_credential, sample_catalog, tmp_path: Path
) -> SyncEngine:
    """Engine with an access token, a loaded catalog and a temp mirror root."""
    return SyncEngine(
        client=mock_client,
        credentials=CredentialStore(authenticated_credential),
        catalog=CatalogCache(sample_catalog),
        setups_path=tmp_path / "setups",
    )
