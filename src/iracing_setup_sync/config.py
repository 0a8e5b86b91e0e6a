"""Configuration management for iRacing Setup Sync."""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from iracing_setup_sync.credentials import CredentialFile
from iracing_setup_sync.exceptions import ConfigurationError
from iracing_setup_sync.models import AdminCredential, Credential

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "changeme"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Configuration priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        refresh_token: Bootstrap refresh token (required unless config_file is set)
        admin_username: Username for the admin routes
        admin_password: Password for the admin routes
        config_file: JSON file holding persisted credentials
        setups_path: Root directory of the local setups mirror
        host: Interface the control surface binds to
        port: Port the control surface listens on
        credential_refresh_interval: Seconds between scheduled token refreshes
        sync_interval: Seconds between scheduled catalog refresh + download runs
        timeout: Total timeout in seconds for remote HTTP calls
        continue_on_error: Keep reconciling after a per-file failure
    """

    refresh_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("refresh_token"),
        description="Bootstrap refresh token",
    )
    admin_username: str = Field(
        default=DEFAULT_ADMIN_USERNAME,
        description="Username for the admin routes",
    )
    admin_password: str = Field(
        default=DEFAULT_ADMIN_PASSWORD,
        description="Password for the admin routes",
    )
    config_file: Path | None = Field(
        default=None,
        description="JSON file holding persisted credentials",
    )
    setups_path: Path = Field(
        default=Path("setups"),
        validation_alias=AliasChoices("setups_path", "output_path"),
        description="Root directory of the local setups mirror",
    )
    host: str = Field(default="0.0.0.0", description="Control surface bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="Control surface port")
    credential_refresh_interval: int = Field(
        default=50 * 60,
        ge=1,
        description="Seconds between scheduled token refreshes",
    )
    sync_interval: int = Field(
        default=2 * 60 * 60,
        ge=1,
        description="Seconds between scheduled download runs",
    )
    timeout: int = Field(
        default=300,
        ge=1,
        description="Total timeout in seconds for remote HTTP calls",
    )
    continue_on_error: bool = Field(
        default=False,
        description="Keep reconciling after a per-file failure",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("setups_path", "config_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in configured paths.

        Args:
            v: Path value to expand

        Returns:
            Expanded path, or None when unset
        """
        if v is None or v == "":
            return None
        return Path(v).expanduser()


def load_bootstrap(
    settings: Settings,
) -> tuple[Credential, AdminCredential, CredentialFile | None]:
    """Build the initial credential and admin login from settings.

    When ``config_file`` is set the file-backed variant is used: credentials
    and the admin login come from that file, and the returned CredentialFile
    must be handed to the CredentialStore so rotated tokens are saved.
    Otherwise the refresh token comes from the environment and nothing is
    ever written to disk.

    Args:
        settings: Loaded application settings

    Returns:
        Tuple of (initial credential, admin login, credential file or None)

    Raises:
        ConfigurationError: If no usable refresh token is configured
    """
    if settings.config_file is not None:
        credential_file = CredentialFile(settings.config_file)
        credential, admin = credential_file.load_or_create()
        return credential, admin, credential_file

    if not settings.refresh_token or not settings.refresh_token.strip():
        msg = "REFRESH_TOKEN environment variable must be set"
        raise ConfigurationError(msg)

    logger.info("Using refresh token from environment (not persisted)")
    credential = Credential(refresh_token=settings.refresh_token)
    admin = AdminCredential(
        username=settings.admin_username,
        password=settings.admin_password,
    )
    return credential, admin, None


@lru_cache
def get_settings() -> Settings:
    """Get cached singleton instance of application settings.

    Returns:
        Settings instance with configuration loaded from environment
        variables and .env file
    """
    return Settings()
