"""Data models for iRacing Setup Sync."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Credential(BaseModel):
    """The single live credential record held by the agent.

    Instances are immutable; every mutation produces a new record that
    replaces the old one as a whole.

    Attributes:
        access_token: Short-lived bearer token (absent before the first refresh)
        refresh_token: Long-lived token exchanged for a new access token
        expires_in: Validity hint returned with the last refresh, if any
    """

    model_config = ConfigDict(frozen=True)

    access_token: str | None = Field(
        default=None, description="Short-lived bearer token"
    )
    refresh_token: str = Field(..., description="Token used to obtain access tokens")
    expires_in: str | None = Field(
        default=None, description="Validity hint from the auth service"
    )

    @field_validator("refresh_token")
    @classmethod
    def validate_refresh_token(cls, v: str) -> str:
        """Reject empty refresh tokens.

        Args:
            v: The refresh token to validate

        Returns:
            The validated refresh token

        Raises:
            ValueError: If the token is empty or whitespace
        """
        if not v.strip():
            msg = "refresh_token cannot be empty"
            raise ValueError(msg)
        return v


class AdminCredential(BaseModel):
    """Static username/password pair guarding the admin routes."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., description="Admin username")
    password: str = Field(..., description="Admin password")


class RefreshTokenResponse(BaseModel):
    """Response body of the refresh-token endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(..., alias="idToken", description="New access token")
    refresh_token: str = Field(
        ..., alias="refreshToken", description="Rotated refresh token"
    )
    expires_in: str | None = Field(
        default=None, alias="expiresIn", description="Token lifetime in seconds"
    )

    @field_validator("expires_in", mode="before")
    @classmethod
    def coerce_expires_in(cls, v: object) -> object:
        """Accept numeric lifetimes as well as strings."""
        if isinstance(v, int | float):
            return str(v)
        return v


class CatalogEntry(BaseModel):
    """A car or track from the metadata catalog.

    Attributes:
        id: Numeric catalog identifier
        display_name: Human-readable name
        iracing_path: Canonical iRacing folder name, when the catalog knows it
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int = Field(..., description="Numeric catalog identifier")
    display_name: str = Field(..., alias="displayName", description="Display name")
    iracing_path: str | None = Field(
        default=None, alias="iracingPath", description="iRacing folder override"
    )


class Catalog(BaseModel):
    """Car and track lookup tables, keyed by the string form of the numeric id."""

    model_config = ConfigDict(frozen=True)

    cars: dict[str, CatalogEntry] = Field(default_factory=dict)
    tracks: dict[str, CatalogEntry] = Field(default_factory=dict)

    def car(self, car_id: int) -> CatalogEntry | None:
        """Look up a car by numeric id."""
        return self.cars.get(str(car_id))

    def track(self, track_id: int) -> CatalogEntry | None:
        """Look up a track by numeric id."""
        return self.tracks.get(str(track_id))


class RemoteArtifact(BaseModel):
    """A downloadable setup file listed by the datapack service.

    Attributes:
        file_name: Storage file name, used to build the download URL
        display_name: Name the file is saved under locally
        track_id: Catalog track id
        car_id: Catalog car id
        pack_id: Datapack identifier
        session_id: Session identifier within the datapack
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    file_name: str = Field(..., alias="fileName")
    display_name: str = Field(..., alias="displayName")
    track_id: int = Field(..., alias="trackId")
    car_id: int = Field(..., alias="carId")
    pack_id: str = Field(..., alias="datapackId")
    session_id: str = Field(..., alias="sessionId")

    @field_validator("pack_id", "session_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: object) -> object:
        """Accept numeric identifiers and keep them as strings."""
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def identity(self) -> tuple[str, str, str]:
        """Identity of the artifact for download purposes."""
        return (self.pack_id, self.session_id, self.file_name)

    def __str__(self) -> str:
        """Return string representation."""
        return f"{self.pack_id}/{self.session_id}/{self.file_name}"
