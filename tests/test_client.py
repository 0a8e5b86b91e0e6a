"""Tests for the remote client."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from iracing_setup_sync.client import RemoteClient
from iracing_setup_sync.exceptions import AuthError, ProtocolError, RemoteError


@pytest.fixture
def client():
    """RemoteClient instance."""
    return RemoteClient(timeout=5)


def make_response(status: int = 200, body: str = "", content: bytes = b"") -> MagicMock:
    """Build a mock aiohttp response."""
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)
    response.read = AsyncMock(return_value=content)
    return response


def make_session(response: MagicMock) -> MagicMock:
    """Build a mock session whose get/post yield the given response."""
    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response
    session.post.return_value.__aenter__.return_value = response
    return session


class TestSession:
    """Tests for HTTP session management."""

    def test_init(self, client):
        """Test client initialization."""
        assert client._session is None

    async def test_get_session_reuses_existing_session(self, client):
        """Test _get_session reuses the open session."""
        session1 = await client._get_session()
        session2 = await client._get_session()

        assert session1 is session2
        assert isinstance(session1, aiohttp.ClientSession)

        await client.close()
        assert client._session is None

    async def test_context_manager_closes_session(self):
        """Test leaving the context closes the session."""
        async with RemoteClient() as client:
            session = await client._get_session()
        assert session.closed


class TestRefreshCredential:
    """Tests for refresh_credential."""

    async def test_success(self, client):
        """Test a successful refresh returns the rotated pair."""
        body = json.dumps(
            {"idToken": "new-jwt", "refreshToken": "rotated", "expiresIn": "3600"}
        )
        session = make_session(make_response(200, body))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            credential = await client.refresh_credential("old-refresh")

        assert credential.access_token == "new-jwt"
        assert credential.refresh_token == "rotated"
        assert credential.expires_in == "3600"
        call = session.post.call_args
        assert call.args[0] == RemoteClient.REFRESH_ENDPOINT
        assert call.kwargs["json"] == {"refreshToken": "old-refresh"}

    async def test_non_success_status(self, client):
        """Test a rejected refresh token raises AuthError."""
        session = make_session(make_response(401, "invalid token"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(AuthError, match="status 401"):
                await client.refresh_credential("old-refresh")

    async def test_empty_body(self, client):
        """Test an empty body is a protocol error."""
        session = make_session(make_response(200, ""))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(ProtocolError, match="empty response"):
                await client.refresh_credential("old-refresh")

    async def test_malformed_body(self, client):
        """Test a body of the wrong shape is a protocol error."""
        session = make_session(make_response(200, '{"unexpected": true}'))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(ProtocolError, match="Failed to parse"):
                await client.refresh_credential("old-refresh")

    async def test_empty_rotated_refresh_token(self, client):
        """Test a success body with an empty refresh token is a protocol error."""
        body = json.dumps({"idToken": "j", "refreshToken": "", "expiresIn": "3600"})
        session = make_session(make_response(200, body))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(ProtocolError, match="Failed to parse"):
                await client.refresh_credential("old-refresh")

    async def test_redirect_status_is_not_success(self, client):
        """Test an unfollowed redirect is treated as a rejected refresh."""
        session = make_session(make_response(302, ""))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(AuthError, match="status 302"):
                await client.refresh_credential("old-refresh")

    async def test_network_error(self, client):
        """Test a transport failure is a remote error."""
        session = MagicMock()
        session.post.side_effect = aiohttp.ClientConnectionError("refused")

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="Network error"):
                await client.refresh_credential("old-refresh")


class TestFetchCatalog:
    """Tests for fetch_catalog."""

    async def test_success(self, client, catalog_response):
        """Test the catalog is parsed."""
        session = make_session(make_response(200, json.dumps(catalog_response)))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            catalog = await client.fetch_catalog()

        assert catalog.car(5).display_name == "Car Five"
        assert catalog.track(3).display_name == "Spa: Grand Prix"
        # No auth header is sent to the metadata service
        assert session.get.call_args.kwargs["headers"] == {}

    async def test_non_success_status(self, client):
        """Test a failing status raises RemoteError."""
        session = make_session(make_response(500, "boom"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="status 500"):
                await client.fetch_catalog()

    async def test_redirect_status(self, client):
        """Test an unfollowed redirect raises RemoteError."""
        session = make_session(make_response(304, ""))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="status 304"):
                await client.fetch_catalog()

    async def test_invalid_json(self, client):
        """Test a non-JSON body raises RemoteError."""
        session = make_session(make_response(200, "<html>"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="Invalid JSON"):
                await client.fetch_catalog()

    async def test_wrong_shape(self, client):
        """Test a catalog with malformed entries raises RemoteError."""
        body = json.dumps({"cars": {"1": {"id": "not-a-number"}}, "tracks": {}})
        session = make_session(make_response(200, body))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="Invalid catalog"):
                await client.fetch_catalog()


class TestListArtifacts:
    """Tests for list_artifacts."""

    async def test_success(self, client, artifact_list_response):
        """Test the listing is parsed and the raw token is sent."""
        session = make_session(make_response(200, json.dumps(artifact_list_response)))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            artifacts = await client.list_artifacts("jwt-123")

        assert [a.file_name for a in artifacts] == ["a.sto", "b.json", "c.STO"]
        call = session.get.call_args
        assert call.args[0] == RemoteClient.ARTIFACTS_ENDPOINT
        assert call.kwargs["headers"] == {"authorization": "jwt-123"}

    async def test_expired_token(self, client):
        """Test a rejected token raises AuthError."""
        session = make_session(make_response(401, "jwt expired"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(AuthError):
                await client.list_artifacts("jwt-123")

    async def test_not_a_list(self, client):
        """Test an object instead of a list raises RemoteError."""
        session = make_session(make_response(200, json.dumps({"files": []})))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="Unexpected"):
                await client.list_artifacts("jwt-123")


class TestDownloadArtifact:
    """Tests for download_artifact."""

    async def test_success(self, client):
        """Test the raw bytes are returned from the right URL."""
        session = make_session(make_response(200, content=b"\x00setup"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            content = await client.download_artifact(
                "jwt-123", "pack-1", "session-1", "a.sto"
            )

        assert content == b"\x00setup"
        call = session.get.call_args
        assert call.args[0] == (
            f"{RemoteClient.DOWNLOAD_ENDPOINT}/pack-1/session-1/a.sto"
        )
        assert call.kwargs["headers"] == {"authorization": "jwt-123"}

    async def test_path_segments_are_quoted(self, client):
        """Test file names with spaces are URL-encoded."""
        session = make_session(make_response(200, content=b"x"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            await client.download_artifact("jwt", "p", "s", "my setup.sto")

        assert session.get.call_args.args[0].endswith("/p/s/my%20setup.sto")

    async def test_non_success_status(self, client):
        """Test a failed download raises RemoteError."""
        session = make_session(make_response(404, "not found"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="status 404"):
                await client.download_artifact("jwt", "p", "s", "a.sto")

    async def test_informational_status_is_not_success(self, client):
        """Test a 1xx answer is not mistaken for file contents."""
        session = make_session(make_response(101, "", content=b"partial"))

        with patch.object(client, "_get_session", new_callable=AsyncMock) as get:
            get.return_value = session
            with pytest.raises(RemoteError, match="status 101"):
                await client.download_artifact("jwt", "p", "s", "a.sto")
