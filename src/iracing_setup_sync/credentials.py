"""Credential storage for the sync agent.

The agent holds exactly one live credential. ``CredentialStore`` owns it and
swaps it as a whole; ``CredentialFile`` optionally persists it to a JSON
document so rotated refresh tokens survive a restart.
"""

import asyncio
import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from iracing_setup_sync.exceptions import ConfigurationError, FilesystemError
from iracing_setup_sync.models import AdminCredential, Credential

logger = logging.getLogger(__name__)

PLACEHOLDER_REFRESH_TOKEN = "PASTE_YOUR_REFRESH_TOKEN_HERE"


class CredentialDocument(BaseModel):
    """On-disk shape of the persisted config file."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., alias="refreshToken")
    jwt_token: str | None = Field(default=None, alias="jwtToken")
    admin_username: str = Field(default="admin", alias="adminUsername")
    admin_password: str = Field(default="changeme", alias="adminPassword")


class CredentialFile:
    """Reads and writes the persisted credential document.

    Format: {"refreshToken": str, "jwtToken": str?, "adminUsername": str,
    "adminPassword": str}. The file is rewritten in full on every save.

    Example:
        >>> credential_file = CredentialFile(Path("config.json"))
        >>> credential, admin = credential_file.load_or_create()
        >>> credential_file.save(credential)
    """

    def __init__(self, path: Path) -> None:
        """Initialize the credential file.

        Args:
            path: Location of the JSON document
        """
        self._path = path
        self._admin: AdminCredential | None = None

    @property
    def path(self) -> Path:
        """Get the path to the config file.

        Returns:
            Path to the config file
        """
        return self._path

    def write_default(self) -> None:
        """Write a fresh document with the placeholder refresh token.

        Raises:
            OSError: If the file cannot be written
        """
        document = CredentialDocument(refresh_token=PLACEHOLDER_REFRESH_TOKEN)
        self._write(document)
        logger.info(f"Created default config file at {self._path}")

    def load_or_create(self) -> tuple[Credential, AdminCredential]:
        """Load the credential and admin login from disk.

        Creates a default document when the file does not exist.

        Returns:
            Tuple of (credential, admin login)

        Raises:
            ConfigurationError: If the file was just created, still holds the
                placeholder token, or cannot be parsed
        """
        if not self._path.exists():
            try:
                self.write_default()
            except OSError as e:
                msg = f"Could not create config file {self._path}: {e}"
                raise ConfigurationError(msg) from e
            msg = (
                f"Created default {self._path}. Please edit it with your "
                "refresh token and restart."
            )
            raise ConfigurationError(msg)

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            document = CredentialDocument.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            msg = f"Invalid config file {self._path}: {e}"
            raise ConfigurationError(msg) from e

        if document.refresh_token == PLACEHOLDER_REFRESH_TOKEN:
            msg = (
                f"Please edit {self._path} and replace "
                f"'{PLACEHOLDER_REFRESH_TOKEN}' with your actual refresh token"
            )
            raise ConfigurationError(msg)

        logger.info(f"Loaded configuration from {self._path}")
        self._admin = AdminCredential(
            username=document.admin_username,
            password=document.admin_password,
        )
        credential = Credential(
            access_token=document.jwt_token,
            refresh_token=document.refresh_token,
        )
        return credential, self._admin

    def save(self, credential: Credential) -> None:
        """Rewrite the document with the given credential.

        Args:
            credential: Credential to persist

        Raises:
            OSError: If the file cannot be written
        """
        admin = self._admin or AdminCredential(username="admin", password="changeme")
        document = CredentialDocument(
            refresh_token=credential.refresh_token,
            jwt_token=credential.access_token,
            admin_username=admin.username,
            admin_password=admin.password,
        )
        self._write(document)
        logger.debug(f"Saved credentials to {self._path}")

    def _write(self, document: CredentialDocument) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = document.model_dump(by_alias=True, exclude_none=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


class CredentialStore:
    """Owns the single live Credential.

    Reads return the current immutable record without waiting. Writers are
    serialized by an asyncio lock that covers the whole read-modify-write
    span, including the optional save to disk, so a reader observes either
    the complete old record or the complete new one.

    Example:
        >>> store = CredentialStore(Credential(refresh_token="abc"))
        >>> await store.replace("new-jwt", "rotated")
        >>> store.snapshot().access_token
        'new-jwt'
    """

    def __init__(
        self,
        credential: Credential,
        credential_file: CredentialFile | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            credential: Initial credential (usually only a refresh token)
            credential_file: Where to persist every mutation, if anywhere
        """
        self._credential = credential
        self._credential_file = credential_file
        self._lock = asyncio.Lock()

    def snapshot(self) -> Credential:
        """Return the current credential record."""
        return self._credential

    async def replace(
        self,
        access_token: str,
        refresh_token: str,
        expires_in: str | None = None,
    ) -> Credential:
        """Install a freshly issued access/refresh token pair.

        Args:
            access_token: New access token
            refresh_token: New (rotated) refresh token
            expires_in: Validity hint from the auth service

        Returns:
            The credential now in effect

        Raises:
            FilesystemError: If persisting the credential fails
        """
        new_credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )
        async with self._lock:
            self._install(new_credential)
        return new_credential

    async def set_refresh_token(self, refresh_token: str) -> Credential:
        """Replace the refresh token, keeping the current access token.

        Used when an operator supplies a new refresh token by hand.

        Args:
            refresh_token: Operator-supplied refresh token

        Returns:
            The credential now in effect

        Raises:
            ValueError: If the token is empty
            FilesystemError: If persisting the credential fails
        """
        if not refresh_token.strip():
            msg = "refresh_token cannot be empty"
            raise ValueError(msg)
        async with self._lock:
            new_credential = self._credential.model_copy(
                update={"refresh_token": refresh_token}
            )
            self._install(new_credential)
        return new_credential

    def _install(self, credential: Credential) -> None:
        # Memory first: the remote has already rotated the old token.
        self._credential = credential
        if self._credential_file is not None:
            try:
                self._credential_file.save(credential)
            except OSError as e:
                msg = f"Failed to save credentials to {self._credential_file.path}: {e}"
                logger.error(msg)
                raise FilesystemError(msg) from e

    def __repr__(self) -> str:
        """Return a representation that never includes token values."""
        has_access = self._credential.access_token is not None
        return f"CredentialStore(has_access_token={has_access})"
