"""In-memory OAuth2 access token with transparent refresh."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Any

import msal
import requests

from sharepoint_rest.errors import InvalidTokenError

if TYPE_CHECKING:
    from sharepoint_rest.config import ClientConfig

logger = logging.getLogger(__name__)

AUTHORITY_BASE_URL = "https://login.microsoftonline.com"


class Token:
    """Access token owned by a single client.

    The token starts empty, is fetched on first use and is fetched again
    once ``fetched_at + expires_in`` lies in the past. It is never persisted.
    """

    def __init__(self, config: ClientConfig, session: requests.Session | None = None) -> None:
        """Initialise an empty token.

        Args:
            config: Client configuration holding the token credentials.
            session: requests session used to call the token broker.
        """
        self.config = config
        self.access_token: str | None = None
        self.expires_in: int | None = None
        self.fetched_at: int | None = None
        self._session = session or requests.Session()
        self._lock = threading.Lock()

    def __str__(self) -> str:
        return self.access_token or ""

    @property
    def expired(self) -> bool:
        if self.fetched_at is None or self.expires_in is None:
            return True
        return (self.fetched_at + self.expires_in) < int(time.time())

    def get_or_fetch(self) -> str:
        """Return the cached access token, fetching a new one if missing or expired."""
        with self._lock:
            if self.access_token is not None and not self.expired:
                return self.access_token
            return self.fetch()

    def fetch(self) -> str:
        """Fetch a new access token and cache it.

        Returns:
            The new access token.

        Raises:
            InvalidTokenError: If no token could be obtained.
        """
        details = self._request_new_token()
        try:
            access_token = str(details["access_token"])
            expires_in = int(details["expires_in"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError(f"Token response is missing fields: {exc}") from exc

        self.fetched_at = int(time.time())
        self.expires_in = expires_in
        self.access_token = access_token
        logger.info("[token_fetch] fetched access token; expires_in:%d", expires_in)
        return access_token

    def _request_new_token(self) -> dict[str, Any]:
        if self.config.token_url:
            return self._request_broker_token()
        return self._request_entra_token()

    def _request_broker_token(self) -> dict[str, Any]:
        """POST the client credentials to the configured token broker."""
        payload = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "tenant_id": self.config.tenant_id,
            "cert_name": self.config.cert_name,
            "auth_scope": self.config.auth_scope,
        }
        response = self._session.post(
            str(self.config.token_url),
            json=payload,
            headers={"Content-Type": "application/json"},
            allow_redirects=True,
            **dict(self.config.transport_options or {}),
        )
        if response.status_code != 200:
            logger.error(
                "[token_fetch] token broker rejected request; status:%d", response.status_code
            )
            raise InvalidTokenError(response.text)
        try:
            return dict(response.json()["Token"])
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidTokenError(f"Unexpected token response: {response.text}") from exc

    def _request_entra_token(self) -> dict[str, Any]:
        """Acquire a token from Entra ID with the MSAL client-credentials flow."""
        app = msal.ConfidentialClientApplication(
            client_id=self.config.client_id,
            client_credential=self.config.client_secret,
            authority=f"{AUTHORITY_BASE_URL}/{self.config.tenant_id}",
        )
        result: dict[str, Any] = (
            app.acquire_token_for_client(scopes=[str(self.config.auth_scope)]) or {}
        )
        if "access_token" not in result:
            error = result.get("error", "unknown_error")
            description = result.get("error_description", "No description provided")
            logger.error("[token_fetch] MSAL token acquisition failed; error:%s", error)
            raise InvalidTokenError(f"Token acquisition failed: {error}: {description}")
        return result
