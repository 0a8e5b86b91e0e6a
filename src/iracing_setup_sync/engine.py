"""Sync engine: credential refresh, catalog refresh and file reconciliation."""

import logging
import os
import uuid
from pathlib import Path

from iracing_setup_sync.catalog import CatalogCache
from iracing_setup_sync.client import RemoteClient
from iracing_setup_sync.credentials import CredentialStore
from iracing_setup_sync.exceptions import (
    FilesystemError,
    NotAuthenticatedError,
    NotReadyError,
)
from iracing_setup_sync.models import Catalog, Credential, RemoteArtifact
from iracing_setup_sync.utils import sanitize_filename

logger = logging.getLogger(__name__)

SETUP_SUFFIX = ".sto"

# Display names that would resolve to the track directory or one of its parents
UNUSABLE_FILE_NAMES = frozenset({"", ".", ".."})


def resolve_car_name(catalog: Catalog, car_id: int) -> str:
    """Return the folder name for a car.

    Prefers the catalog's iRacing folder override, then the display name,
    then a synthetic ``car_<id>`` when the id is not in the catalog.
    """
    entry = catalog.car(car_id)
    if entry is None:
        return f"car_{car_id}"
    name, _ = sanitize_filename(entry.iracing_path or entry.display_name)
    return name


def resolve_track_name(catalog: Catalog, track_id: int) -> str:
    """Return the folder name for a track, or ``track_<id>`` if unknown."""
    entry = catalog.track(track_id)
    if entry is None:
        return f"track_{track_id}"
    name, _ = sanitize_filename(entry.display_name)
    return name


def local_artifact_path(
    setups_path: Path, catalog: Catalog, artifact: RemoteArtifact
) -> Path:
    """Compute where an artifact lives in the local mirror.

    Layout: <setups_path>/<car name>/<track name>/<display name>

    Args:
        setups_path: Root of the local mirror
        catalog: Catalog used to resolve car and track names
        artifact: The remote artifact

    Returns:
        Path of the local file
    """
    file_name, changed = sanitize_filename(artifact.display_name)
    if changed:
        logger.debug(f"Sanitized file name '{artifact.display_name}' -> '{file_name}'")
    return (
        setups_path
        / resolve_car_name(catalog, artifact.car_id)
        / resolve_track_name(catalog, artifact.track_id)
        / file_name
    )


class SyncEngine:
    """Orchestrates credential refresh, catalog refresh and file mirroring.

    The engine owns no locks of its own: credential and catalog reads go
    through their stores, and concurrent reconciliation runs are allowed.
    Two runs racing on the same missing file may both download it; the
    second rename simply replaces the first with identical content.

    Example:
        >>> engine = SyncEngine(client, CredentialStore(credential), CatalogCache())
        >>> await engine.refresh_credential()
        >>> await engine.refresh_catalog()
        >>> downloaded = await engine.reconcile_files()
    """

    def __init__(
        self,
        client: RemoteClient,
        credentials: CredentialStore,
        catalog: CatalogCache,
        setups_path: Path = Path("setups"),
        continue_on_error: bool = False,
    ) -> None:
        """Initialize the sync engine.

        Args:
            client: Client for the remote services
            credentials: Store holding the live credential
            catalog: Cache holding the latest catalog
            setups_path: Root directory of the local mirror
            continue_on_error: If True, a failed file is logged and skipped
                instead of aborting the run
        """
        self._client = client
        self._credentials = credentials
        self._catalog = catalog
        self._setups_path = setups_path
        self._continue_on_error = continue_on_error

    @property
    def credentials(self) -> CredentialStore:
        """The credential store used by this engine."""
        return self._credentials

    @property
    def catalog(self) -> CatalogCache:
        """The catalog cache used by this engine."""
        return self._catalog

    @property
    def setups_path(self) -> Path:
        """Root directory of the local mirror."""
        return self._setups_path

    def current_access_token(self) -> str:
        """Return the current access token, or an empty string if none."""
        return self._credentials.snapshot().access_token or ""

    async def refresh_credential(self) -> Credential:
        """Exchange the stored refresh token for a new token pair.

        Returns:
            The credential now in effect

        Raises:
            AuthError: If the auth service rejects the refresh token
            ProtocolError: If the auth service returns an unusable body
            RemoteError: If the auth service cannot be reached
            FilesystemError: If the rotated credential cannot be persisted
        """
        refresh_token = self._credentials.snapshot().refresh_token
        issued = await self._client.refresh_credential(refresh_token)
        credential = await self._credentials.replace(
            issued.access_token or "",
            issued.refresh_token,
            issued.expires_in,
        )
        logger.info("Access token refreshed successfully")
        return credential

    async def update_refresh_token(self, refresh_token: str) -> Credential:
        """Install an operator-supplied refresh token and refresh immediately.

        Args:
            refresh_token: New refresh token

        Returns:
            The credential now in effect

        Raises:
            ValueError: If the refresh token is empty
            AuthError: If the new refresh token is rejected
        """
        await self._credentials.set_refresh_token(refresh_token)
        logger.info("Refresh token updated by operator")
        return await self.refresh_credential()

    async def refresh_catalog(self) -> Catalog:
        """Fetch the catalog and install it.

        On failure the previous catalog stays in place.

        Returns:
            The newly installed catalog

        Raises:
            RemoteError: If the catalog cannot be fetched
        """
        catalog = await self._client.fetch_catalog()
        await self._catalog.replace(catalog)
        logger.info("Catalog refreshed successfully")
        return catalog

    async def bootstrap(self) -> None:
        """Run the startup sequence.

        The initial credential refresh must succeed. A catalog failure is only
        logged; the next scheduled sync retries it.

        Raises:
            AuthError: If the bootstrap refresh token is rejected
            ProtocolError: If the auth service returns an unusable body
            RemoteError: If the auth service cannot be reached
        """
        await self.refresh_credential()
        try:
            await self.refresh_catalog()
        except Exception as e:
            logger.error(f"Initial catalog fetch failed: {e}")

    async def reconcile_files(self) -> int:
        """Download every listed setup file that is missing locally.

        Files already present at their computed path are skipped, so running
        this twice without remote changes downloads nothing the second time.
        The first download or write failure aborts the run unless the engine
        was created with ``continue_on_error``.

        Returns:
            Number of files written by this run

        Raises:
            NotAuthenticatedError: If no access token has been obtained
            NotReadyError: If no catalog has been loaded
            AuthError: If the listing is rejected
            RemoteError: If a listing or download fails
            FilesystemError: If a directory or file cannot be written
        """
        access_token = self._credentials.snapshot().access_token
        if not access_token:
            msg = "Access token not available"
            raise NotAuthenticatedError(msg)

        catalog = self._catalog.get()
        if catalog is None:
            msg = "Catalog not loaded"
            raise NotReadyError(msg)

        artifacts = await self._client.list_artifacts(access_token)
        setups = [a for a in artifacts if a.file_name.endswith(SETUP_SUFFIX)]
        logger.info(
            f"{len(setups)} of {len(artifacts)} listed files are {SETUP_SUFFIX} setups"
        )

        downloaded = 0
        failed = 0
        for artifact in setups:
            file_name, _ = sanitize_filename(artifact.display_name)
            if file_name in UNUSABLE_FILE_NAMES:
                logger.warning(f"Skipping {artifact}: unusable display name")
                continue

            file_path = local_artifact_path(self._setups_path, catalog, artifact)

            if file_path.exists():
                logger.debug(f"Skipping existing file: {file_path}")
                continue

            try:
                await self._download_one(access_token, artifact, file_path)
            except Exception as e:
                if not self._continue_on_error:
                    raise
                failed += 1
                logger.error(f"Failed to sync {artifact}: {e}")
                continue

            logger.info(f"Downloaded: {artifact.display_name} -> {file_path}")
            downloaded += 1

        if failed:
            logger.warning(f"Reconciliation finished with {failed} failed files")
        logger.info(f"Reconciliation complete: {downloaded} new files")
        return downloaded

    async def _download_one(
        self, access_token: str, artifact: RemoteArtifact, file_path: Path
    ) -> None:
        """Fetch one artifact and place it at ``file_path``.

        The bytes are written to a temporary sibling and renamed into place,
        so an interrupted write never leaves a file the skip check would
        mistake for a complete download.
        """
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Failed to create directory {file_path.parent}: {e}"
            logger.error(msg)
            raise FilesystemError(msg) from e

        content = await self._client.download_artifact(
            access_token,
            artifact.pack_id,
            artifact.session_id,
            artifact.file_name,
        )

        suffix = uuid.uuid4().hex[:8]
        temp_path = file_path.with_name(f".{file_path.name}.{suffix}.tmp")
        try:
            temp_path.write_bytes(content)
            os.replace(temp_path, file_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            msg = f"Failed to write {file_path}: {e}"
            logger.error(msg)
            raise FilesystemError(msg) from e
