"""Per-request credentials for NTLM and bearer-token authentication."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from requests.auth import AuthBase
from requests_ntlm import HttpNtlmAuth

from sharepoint_rest.config import AUTHENTICATION_NTLM

if TYPE_CHECKING:
    from sharepoint_rest.auth.token import Token
    from sharepoint_rest.config import ClientConfig


class AuthProvider(Protocol):
    """Supplies the credentials attached to every SharePoint request."""

    def auth(self) -> AuthBase | None: ...

    def headers(self) -> dict[str, str]: ...


class NtlmAuthProvider:
    """Forwards username and password through an NTLM handshake on each request."""

    def __init__(self, username: str, password: str) -> None:
        self._auth = HttpNtlmAuth(username, password)

    def auth(self) -> AuthBase | None:
        return self._auth

    def headers(self) -> dict[str, str]:
        return {}


class TokenAuthProvider:
    """Sends a bearer token taken from the client's cached Token."""

    def __init__(self, token: Token) -> None:
        self._token = token

    def auth(self) -> AuthBase | None:
        return None

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token.get_or_fetch()}"}


def auth_provider_from_config(config: ClientConfig, token: Token) -> AuthProvider:
    """Select the provider matching ``config.authentication``.

    Args:
        config: Validated client configuration.
        token: The client's token, used in token mode.

    Returns:
        Configured AuthProvider instance.
    """
    if config.authentication == AUTHENTICATION_NTLM:
        return NtlmAuthProvider(str(config.username), str(config.password))
    return TokenAuthProvider(token)
