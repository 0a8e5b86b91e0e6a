"""HTTP client for the remote auth, metadata and datapack services."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from iracing_setup_sync.exceptions import AuthError, ProtocolError, RemoteError
from iracing_setup_sync.models import (
    Catalog,
    Credential,
    RefreshTokenResponse,
    RemoteArtifact,
)

logger = logging.getLogger(__name__)


class RemoteClient:
    """Thin client over the four remote calls the agent needs.

    Each call is a single HTTP round-trip with no retry. The client keeps no
    state beyond its HTTP session, so it is safe to share between the
    scheduler and concurrent request handlers.

    Attributes:
        REFRESH_ENDPOINT: Exchanges a refresh token for a new token pair
        CATALOG_ENDPOINT: Returns all car and track metadata
        ARTIFACTS_ENDPOINT: Lists the datapack files available to the member
        DOWNLOAD_ENDPOINT: Base URL for downloading a single datapack file
        DEFAULT_TIMEOUT: Total timeout in seconds for a request
    """

    REFRESH_ENDPOINT = "https://auth.apexracinguk.com/auth/refresh-token"
    CATALOG_ENDPOINT = "https://simdata.apexracinguk.com/get-all-metadata"
    ARTIFACTS_ENDPOINT = "https://member.apexracinguk.com/member/get-datapack-files"
    DOWNLOAD_ENDPOINT = "https://member.apexracinguk.com/member/download-datapack-file"
    DEFAULT_TIMEOUT = 300.0

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the client.

        Args:
            timeout: Total timeout in seconds for each request
        """
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session.

        Returns:
            Active aiohttp ClientSession instance
        """
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            logger.debug("Created new HTTP session")
        return self._session

    async def refresh_credential(self, refresh_token: str) -> Credential:
        """Exchange a refresh token for a new access/refresh token pair.

        Args:
            refresh_token: Current refresh token

        Returns:
            Credential carrying the new access token and rotated refresh token

        Raises:
            AuthError: If the auth service answers with a non-success status
            ProtocolError: If the body is empty or not a token response
            RemoteError: If the request cannot be completed
        """
        logger.info("Refreshing access token")

        try:
            session = await self._get_session()
            async with session.post(
                self.REFRESH_ENDPOINT,
                json={"refreshToken": refresh_token},
            ) as response:
                logger.debug(f"Refresh response status: {response.status}")
                body = await response.text()

                if not 200 <= response.status < 300:
                    msg = f"Token refresh failed with status {response.status}: {body}"
                    logger.error(msg)
                    raise AuthError(msg)

        except aiohttp.ClientError as e:
            msg = f"Network error while refreshing token: {e}"
            logger.error(msg)
            raise RemoteError(msg) from e
        except TimeoutError as e:
            msg = "Timed out while refreshing token"
            logger.error(msg)
            raise RemoteError(msg) from e

        if not body.strip():
            msg = (
                "Received empty response from token refresh endpoint. The refresh "
                "token is probably invalid or expired; obtain a new one."
            )
            logger.error(msg)
            raise ProtocolError(msg)

        try:
            token = RefreshTokenResponse.model_validate_json(body)
            return Credential(
                access_token=token.id_token,
                refresh_token=token.refresh_token,
                expires_in=token.expires_in,
            )
        except ValidationError as e:
            msg = f"Failed to parse token refresh response: {e}"
            logger.error(msg)
            raise ProtocolError(msg) from e

    async def fetch_catalog(self) -> Catalog:
        """Fetch all car and track metadata.

        Returns:
            The complete catalog

        Raises:
            RemoteError: If the request fails or the body is malformed
        """
        logger.info("Fetching catalog")
        data = await self._get_json(self.CATALOG_ENDPOINT, "Catalog fetch")

        try:
            catalog = Catalog.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid catalog response: {e}"
            logger.error(msg)
            raise RemoteError(msg) from e

        logger.info(
            f"Fetched catalog with {len(catalog.cars)} cars "
            f"and {len(catalog.tracks)} tracks"
        )
        return catalog

    async def list_artifacts(self, access_token: str) -> list[RemoteArtifact]:
        """List the datapack files available to the authenticated member.

        Args:
            access_token: Current access token

        Returns:
            List of remote artifacts, in the order the service returned them

        Raises:
            AuthError: If the service rejects the access token
            RemoteError: If the request fails or the body is malformed
        """
        logger.info("Fetching datapack file list")
        data = await self._get_json(
            self.ARTIFACTS_ENDPOINT,
            "Datapack file listing",
            access_token=access_token,
        )

        if not isinstance(data, list):
            msg = f"Unexpected datapack listing format: {type(data).__name__}"
            logger.error(msg)
            raise RemoteError(msg)

        try:
            artifacts = [RemoteArtifact.model_validate(item) for item in data]
        except ValidationError as e:
            msg = f"Invalid datapack file entry: {e}"
            logger.error(msg)
            raise RemoteError(msg) from e

        logger.info(f"Found {len(artifacts)} files")
        return artifacts

    async def download_artifact(
        self,
        access_token: str,
        pack_id: str,
        session_id: str,
        file_name: str,
    ) -> bytes:
        """Download the full contents of one datapack file.

        Args:
            access_token: Current access token
            pack_id: Datapack identifier
            session_id: Session identifier within the datapack
            file_name: Storage file name

        Returns:
            Raw file contents

        Raises:
            RemoteError: If the download fails for any reason
        """
        url = "/".join(
            [
                self.DOWNLOAD_ENDPOINT,
                quote(pack_id, safe=""),
                quote(session_id, safe=""),
                quote(file_name, safe=""),
            ]
        )

        try:
            session = await self._get_session()
            async with session.get(
                url, headers=self._auth_headers(access_token)
            ) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    msg = (
                        f"Failed to download {file_name} with status "
                        f"{response.status}: {error_text}"
                    )
                    logger.error(msg)
                    raise RemoteError(msg)
                return await response.read()

        except aiohttp.ClientError as e:
            msg = f"Network error while downloading {file_name}: {e}"
            logger.error(msg)
            raise RemoteError(msg) from e
        except TimeoutError as e:
            msg = f"Timed out while downloading {file_name}"
            logger.error(msg)
            raise RemoteError(msg) from e

    async def _get_json(
        self,
        url: str,
        action: str,
        access_token: str | None = None,
    ) -> Any:
        """GET a JSON document.

        A non-success status raises AuthError when the request carried an
        access token (the usual cause is an expired token) and RemoteError
        otherwise.
        """
        headers = self._auth_headers(access_token) if access_token else {}

        try:
            session = await self._get_session()
            async with session.get(url, headers=headers) as response:
                logger.debug(f"{action} response status: {response.status}")
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    msg = f"{action} failed with status {response.status}: {error_text}"
                    logger.error(msg)
                    if access_token:
                        raise AuthError(msg)
                    raise RemoteError(msg)
                body = await response.text()

        except aiohttp.ClientError as e:
            msg = f"Network error during {action.lower()}: {e}"
            logger.error(msg)
            raise RemoteError(msg) from e
        except TimeoutError as e:
            msg = f"Timed out during {action.lower()}"
            logger.error(msg)
            raise RemoteError(msg) from e

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON response during {action.lower()}: {e}"
            logger.error(msg)
            raise RemoteError(msg) from e

    @staticmethod
    def _auth_headers(access_token: str) -> dict[str, str]:
        """Build the authorization header (the token is sent without a scheme)."""
        return {"authorization": access_token}

    async def close(self) -> None:
        """Close the HTTP session if it is open."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("HTTP session closed")
            self._session = None

    async def __aenter__(self) -> RemoteClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Exit async context manager, closing the session."""
        await self.close()
