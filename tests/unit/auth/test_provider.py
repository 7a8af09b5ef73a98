"""Unit tests for auth/provider.py."""

from unittest.mock import MagicMock

from requests_ntlm import HttpNtlmAuth

from sharepoint_rest.auth.provider import (
    NtlmAuthProvider,
    TokenAuthProvider,
    auth_provider_from_config,
)
from sharepoint_rest.config import ClientConfig


class TestNtlmAuthProvider:
    def test_returns_ntlm_auth_and_no_headers(self) -> None:
        provider = NtlmAuthProvider("contoso\\svc", "pw")
        assert isinstance(provider.auth(), HttpNtlmAuth)
        assert provider.headers() == {}


class TestTokenAuthProvider:
    def test_sends_bearer_header(self) -> None:
        token = MagicMock()
        token.get_or_fetch.return_value = "abc"
        provider = TokenAuthProvider(token)
        assert provider.auth() is None
        assert provider.headers() == {"Authorization": "Bearer abc"}

    def test_fetches_token_for_every_request(self) -> None:
        token = MagicMock()
        token.get_or_fetch.side_effect = ["first", "second"]
        provider = TokenAuthProvider(token)
        assert provider.headers()["Authorization"] == "Bearer first"
        assert provider.headers()["Authorization"] == "Bearer second"


class TestAuthProviderFromConfig:
    def test_ntlm_mode(self, ntlm_options: dict[str, object]) -> None:
        provider = auth_provider_from_config(ClientConfig.from_mapping(ntlm_options), MagicMock())
        assert isinstance(provider, NtlmAuthProvider)

    def test_token_mode(self, token_options: dict[str, object]) -> None:
        provider = auth_provider_from_config(
            ClientConfig.from_mapping(token_options), MagicMock()
        )
        assert isinstance(provider, TokenAuthProvider)
