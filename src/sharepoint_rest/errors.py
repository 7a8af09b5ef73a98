"""Exception hierarchy raised by the SharePoint REST client."""

from __future__ import annotations

from collections.abc import Iterable


class SharePointError(Exception):
    """Base class for every error raised by this library."""


# ---------------------------------------------------------------------------
# Configuration errors: raised at client construction, before any I/O
# ---------------------------------------------------------------------------


class ConfigurationError(SharePointError):
    """Raised when the client configuration is invalid."""

    label = "configuration"

    def __init__(self, fields: Iterable[str], message: str | None = None) -> None:
        self.fields = list(fields)
        if message is None:
            message = f"Invalid {self.label} configuration; fields:{', '.join(self.fields)}"
        super().__init__(message)


class UriConfigurationError(ConfigurationError):
    """Raised when ``uri`` is missing or is not an http/https URL."""

    label = "uri"


class InvalidAuthenticationError(ConfigurationError):
    """Raised when ``authentication`` is not one of the supported modes."""

    label = "authentication"


class InvalidTokenConfigError(ConfigurationError):
    """Raised when a token-mode credential field is missing or blank."""

    label = "token"


class InvalidNTLMConfigError(ConfigurationError):
    """Raised when an NTLM-mode credential field is missing or blank."""

    label = "NTLM"


class TransportOptionsConfigurationError(ConfigurationError):
    """Raised when ``transport_options`` or ``max_workers`` has the wrong shape."""

    label = "transport options"


# ---------------------------------------------------------------------------
# Request and authentication errors
# ---------------------------------------------------------------------------


class RequestFailedError(SharePointError):
    """Raised when the SharePoint API returns a non-2xx response."""

    def __init__(self, status_code: int, url: str, body: str | None = None) -> None:
        super().__init__(f"Request failed, received {status_code}; url:{url}; body:{body}")
        self.status_code = status_code
        self.url = url
        self.body = body


class InvalidTokenError(SharePointError):
    """Raised when an access token cannot be obtained."""


# ---------------------------------------------------------------------------
# Invalid input: raised before the request is sent
# ---------------------------------------------------------------------------


class InvalidInputError(SharePointError, ValueError):
    """Raised when caller-supplied input cannot be sent to SharePoint."""


class InvalidFilenameError(InvalidInputError):
    """Raised when a file or folder name contains a forbidden character."""

    def __init__(self, filename: str) -> None:
        super().__init__(f"The file name contains an invalid character; filename:{filename}")
        self.filename = filename


class InvalidMetadataError(InvalidInputError):
    """Raised when a metadata field cannot be serialized into an update body."""


class InvalidSearchParametersError(InvalidInputError):
    """Raised when required search or list conditions are missing."""


# ---------------------------------------------------------------------------
# Collaboration errors: wrap the underlying failure with the operation name
# ---------------------------------------------------------------------------


class CollaborationError(SharePointError):
    """Base class for failures of the higher-level collaboration operations."""


class UploadError(CollaborationError):
    """Raised when a collaboration upload fails."""


class SharePointPermissionError(CollaborationError):
    """Raised when granting or revoking document permissions fails."""


class DownloadError(CollaborationError):
    """Raised when a collaboration download fails."""


class DeleteError(CollaborationError):
    """Raised when deleting a collaboration document or folder fails."""
