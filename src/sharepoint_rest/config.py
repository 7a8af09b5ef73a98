"""Client configuration and its validation."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from sharepoint_rest.errors import (
    ConfigurationError,
    InvalidAuthenticationError,
    InvalidNTLMConfigError,
    InvalidTokenConfigError,
    TransportOptionsConfigurationError,
    UriConfigurationError,
)

AUTHENTICATION_NTLM = "ntlm"
AUTHENTICATION_TOKEN = "token"
AUTHENTICATION_MODES = (AUTHENTICATION_NTLM, AUTHENTICATION_TOKEN)

NTLM_FIELDS = ("username", "password")
TOKEN_FIELDS = ("client_id", "client_secret", "tenant_id", "cert_name", "auth_scope")

# Fields a caller may override when following a link into another site collection
CREDENTIAL_FIELDS = ("authentication", *NTLM_FIELDS, *TOKEN_FIELDS, "token_url")

DEFAULT_MAX_WORKERS = 8


def _string_not_blank(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _valid_http_url(value: Any) -> bool:
    if not _string_not_blank(value):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass(frozen=True)
class ClientConfig:
    """Immutable SharePoint client configuration.

    Every field is optional at the type level; ``validate()`` decides which
    ones are required for the selected authentication mode. Values are kept
    exactly as supplied so that validation can report wrongly-typed input.
    """

    uri: str | None = None
    authentication: str | None = None

    # NTLM credentials
    username: str | None = None
    password: str | None = None

    # Token credentials
    client_id: str | None = None
    client_secret: str | None = None
    tenant_id: str | None = None
    cert_name: str | None = None
    auth_scope: str | None = None
    token_url: str | None = None

    # Collaboration defaults
    site_path: str | None = None
    base_folder: str | None = None
    base_uri: str | None = None

    # Keyword arguments forwarded to every requests call (verify, timeout, proxies, cert)
    transport_options: Mapping[str, Any] | None = None
    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> ClientConfig:
        """Build a configuration from a plain mapping of option names.

        Raises:
            ConfigurationError: If the mapping contains unrecognized options.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(str(key) for key in options if key not in known)
        if unknown:
            raise ConfigurationError(
                unknown, f"Unrecognized configuration options; fields:{', '.join(unknown)}"
            )
        return cls(**dict(options))

    def replace(self, **changes: Any) -> ClientConfig:
        """Return a copy of this configuration with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    def invalid_authentication_fields(self) -> list[str]:
        if self.authentication not in AUTHENTICATION_MODES:
            return ["authentication"]
        return []

    def invalid_credential_fields(self) -> list[str]:
        if self.authentication == AUTHENTICATION_NTLM:
            return [name for name in NTLM_FIELDS if not _string_not_blank(getattr(self, name))]
        if self.authentication == AUTHENTICATION_TOKEN:
            invalid = [name for name in TOKEN_FIELDS if not _string_not_blank(getattr(self, name))]
            if self.token_url is not None and not _valid_http_url(self.token_url):
                invalid.append("token_url")
            return invalid
        return []

    def invalid_uri_fields(self) -> list[str]:
        invalid = [] if _valid_http_url(self.uri) else ["uri"]
        if self.base_uri is not None and not _valid_http_url(self.base_uri):
            invalid.append("base_uri")
        return invalid

    def invalid_transport_fields(self) -> list[str]:
        invalid = []
        if self.transport_options is not None and not isinstance(self.transport_options, Mapping):
            invalid.append("transport_options")
        if (
            isinstance(self.max_workers, bool)
            or not isinstance(self.max_workers, int)
            or self.max_workers < 1
        ):
            invalid.append("max_workers")
        return invalid

    def validate(self) -> list[str]:
        """Return the names of every invalid field (empty when valid)."""
        return (
            self.invalid_authentication_fields()
            + self.invalid_credential_fields()
            + self.invalid_uri_fields()
            + self.invalid_transport_fields()
        )

    def raise_for_invalid(self) -> None:
        """Raise the configuration error matching the first failing check.

        Raises:
            InvalidAuthenticationError: Unsupported or missing authentication mode.
            InvalidTokenConfigError: Blank token-mode credentials.
            InvalidNTLMConfigError: Blank NTLM-mode credentials.
            UriConfigurationError: Missing or non-http(s) ``uri``/``base_uri``.
            TransportOptionsConfigurationError: Malformed transport options or worker cap.
        """
        invalid = self.invalid_authentication_fields()
        if invalid:
            raise InvalidAuthenticationError(invalid)

        invalid = self.invalid_credential_fields()
        if invalid:
            if self.authentication == AUTHENTICATION_TOKEN:
                raise InvalidTokenConfigError(invalid)
            raise InvalidNTLMConfigError(invalid)

        invalid = self.invalid_uri_fields()
        if invalid:
            raise UriConfigurationError(invalid)

        invalid = self.invalid_transport_fields()
        if invalid:
            raise TransportOptionsConfigurationError(invalid)


def config_from_env() -> ClientConfig:
    """Construct a ClientConfig from ``SP_*`` environment variables.

    Recognized environment variables:
        SP_URL: SharePoint root URL, e.g. https://contoso.sharepoint.com.
        SP_AUTHENTICATION: Either "ntlm" or "token".
        SP_USERNAME / SP_PASSWORD: NTLM credentials.
        SP_CLIENT_ID / SP_CLIENT_SECRET / SP_TENANT_ID / SP_CERT_NAME / SP_AUTH_SCOPE:
            Token credentials.
        SP_TOKEN_URL: Token broker endpoint (optional; Entra ID is used when absent).
        SP_SITE_PATH / SP_BASE_FOLDER / SP_BASE_URI: Collaboration defaults.
        SP_MAX_WORKERS: Concurrency cap for folder listings (default: 8).

    Missing variables are left unset; validation happens when the client is built.

    Returns:
        Configured ClientConfig instance.
    """
    return ClientConfig(
        uri=os.environ.get("SP_URL"),
        authentication=os.environ.get("SP_AUTHENTICATION"),
        username=os.environ.get("SP_USERNAME"),
        password=os.environ.get("SP_PASSWORD"),
        client_id=os.environ.get("SP_CLIENT_ID"),
        client_secret=os.environ.get("SP_CLIENT_SECRET"),
        tenant_id=os.environ.get("SP_TENANT_ID"),
        cert_name=os.environ.get("SP_CERT_NAME"),
        auth_scope=os.environ.get("SP_AUTH_SCOPE"),
        token_url=os.environ.get("SP_TOKEN_URL"),
        site_path=os.environ.get("SP_SITE_PATH"),
        base_folder=os.environ.get("SP_BASE_FOLDER"),
        base_uri=os.environ.get("SP_BASE_URI"),
        max_workers=int(os.environ.get("SP_MAX_WORKERS", str(DEFAULT_MAX_WORKERS))),
    )
