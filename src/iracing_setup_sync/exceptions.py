"""Exception hierarchy for iRacing Setup Sync."""


class SetupSyncError(Exception):
    """Base exception for all setup sync errors."""


class ConfigurationError(SetupSyncError):
    """Raised when the bootstrap configuration is missing or unusable."""


class AuthError(SetupSyncError):
    """Raised when the remote service rejects a credential."""


class ProtocolError(SetupSyncError):
    """Raised when a response body is empty or does not have the expected shape."""


class RemoteError(SetupSyncError):
    """Raised when a remote call fails for any other reason."""


class NotReadyError(SetupSyncError):
    """Raised when reconciliation is attempted before a catalog is loaded."""


class NotAuthenticatedError(SetupSyncError):
    """Raised when no access token has been obtained yet."""


class FilesystemError(SetupSyncError):
    """Raised when a directory or setup file cannot be written."""
