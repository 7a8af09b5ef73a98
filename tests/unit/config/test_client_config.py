"""Unit tests for config.py: ClientConfig validation and config_from_env()."""

import os
from unittest.mock import patch

import pytest

from sharepoint_rest.config import DEFAULT_MAX_WORKERS, ClientConfig, config_from_env
from sharepoint_rest.errors import (
    ConfigurationError,
    InvalidAuthenticationError,
    InvalidNTLMConfigError,
    InvalidTokenConfigError,
    TransportOptionsConfigurationError,
    UriConfigurationError,
)

# ---------------------------------------------------------------------------
# from_mapping / replace
# ---------------------------------------------------------------------------


class TestFromMapping:
    def test_builds_config_from_known_options(self, ntlm_options: dict[str, object]) -> None:
        config = ClientConfig.from_mapping(ntlm_options)
        assert config.uri == "https://contoso.sharepoint.com"
        assert config.username == "contoso\\svc-docs"
        assert config.max_workers == DEFAULT_MAX_WORKERS

    def test_rejects_unknown_options(self, ntlm_options: dict[str, object]) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_mapping({**ntlm_options, "ethon_easy_options": {}, "foo": 1})
        assert exc_info.value.fields == ["ethon_easy_options", "foo"]

    def test_replace_returns_new_instance(self, ntlm_options: dict[str, object]) -> None:
        config = ClientConfig.from_mapping(ntlm_options)
        other = config.replace(uri="https://partner.sharepoint.com")
        assert other.uri == "https://partner.sharepoint.com"
        assert config.uri == "https://contoso.sharepoint.com"
        assert other.password == config.password


# ---------------------------------------------------------------------------
# raise_for_invalid
# ---------------------------------------------------------------------------


class TestRaiseForInvalid:
    def test_valid_ntlm_config_passes(self, ntlm_options: dict[str, object]) -> None:
        ClientConfig.from_mapping(ntlm_options).raise_for_invalid()

    def test_valid_token_config_passes(self, token_options: dict[str, object]) -> None:
        ClientConfig.from_mapping(token_options).raise_for_invalid()

    def test_token_url_is_optional(self, token_options: dict[str, object]) -> None:
        token_options.pop("token_url")
        ClientConfig.from_mapping(token_options).raise_for_invalid()

    @pytest.mark.parametrize("authentication", [None, "", "kerberos", "NTLM"])
    def test_unsupported_authentication(
        self, ntlm_options: dict[str, object], authentication: object
    ) -> None:
        config = ClientConfig.from_mapping({**ntlm_options, "authentication": authentication})
        with pytest.raises(InvalidAuthenticationError) as exc_info:
            config.raise_for_invalid()
        assert exc_info.value.fields == ["authentication"]

    @pytest.mark.parametrize("field", ["username", "password"])
    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_blank_ntlm_credential(
        self, ntlm_options: dict[str, object], field: str, value: object
    ) -> None:
        config = ClientConfig.from_mapping({**ntlm_options, field: value})
        with pytest.raises(InvalidNTLMConfigError) as exc_info:
            config.raise_for_invalid()
        assert exc_info.value.fields == [field]
        assert field in str(exc_info.value)

    @pytest.mark.parametrize(
        "field", ["client_id", "client_secret", "tenant_id", "cert_name", "auth_scope"]
    )
    def test_blank_token_credential(self, token_options: dict[str, object], field: str) -> None:
        config = ClientConfig.from_mapping({**token_options, field: ""})
        with pytest.raises(InvalidTokenConfigError) as exc_info:
            config.raise_for_invalid()
        assert exc_info.value.fields == [field]

    def test_token_url_must_be_http(self, token_options: dict[str, object]) -> None:
        config = ClientConfig.from_mapping({**token_options, "token_url": "ftp://auth"})
        with pytest.raises(InvalidTokenConfigError) as exc_info:
            config.raise_for_invalid()
        assert exc_info.value.fields == ["token_url"]

    def test_ntlm_mode_ignores_token_fields(self, ntlm_options: dict[str, object]) -> None:
        ClientConfig.from_mapping({**ntlm_options, "client_secret": ""}).raise_for_invalid()

    @pytest.mark.parametrize("uri", [None, "", "contoso.sharepoint.com", "ftp://contoso", 12])
    def test_invalid_uri(self, ntlm_options: dict[str, object], uri: object) -> None:
        config = ClientConfig.from_mapping({**ntlm_options, "uri": uri})
        with pytest.raises(UriConfigurationError):
            config.raise_for_invalid()

    def test_invalid_base_uri(self, ntlm_options: dict[str, object]) -> None:
        config = ClientConfig.from_mapping({**ntlm_options, "base_uri": "not a url"})
        with pytest.raises(UriConfigurationError) as exc_info:
            config.raise_for_invalid()
        assert exc_info.value.fields == ["base_uri"]

    def test_transport_options_must_be_mapping(self, ntlm_options: dict[str, object]) -> None:
        config = ClientConfig.from_mapping({**ntlm_options, "transport_options": "verify=False"})
        with pytest.raises(TransportOptionsConfigurationError) as exc_info:
            config.raise_for_invalid()
        assert exc_info.value.fields == ["transport_options"]

    def test_transport_options_mapping_accepted(self, ntlm_options: dict[str, object]) -> None:
        config = ClientConfig.from_mapping(
            {**ntlm_options, "transport_options": {"verify": False, "timeout": 30}}
        )
        config.raise_for_invalid()

    @pytest.mark.parametrize("max_workers", [0, -1, True, "4", 2.5])
    def test_invalid_max_workers(
        self, ntlm_options: dict[str, object], max_workers: object
    ) -> None:
        config = ClientConfig.from_mapping({**ntlm_options, "max_workers": max_workers})
        with pytest.raises(TransportOptionsConfigurationError):
            config.raise_for_invalid()

    def test_authentication_checked_before_uri(self) -> None:
        config = ClientConfig(uri="bad", authentication="basic")
        with pytest.raises(InvalidAuthenticationError):
            config.raise_for_invalid()

    def test_validate_collects_every_invalid_field(self) -> None:
        config = ClientConfig(uri="bad", authentication="ntlm", max_workers=0)
        assert config.validate() == ["username", "password", "uri", "max_workers"]


# ---------------------------------------------------------------------------
# config_from_env
# ---------------------------------------------------------------------------


class TestConfigFromEnv:
    def test_reads_sp_variables(self) -> None:
        env = {
            "SP_URL": "https://contoso.sharepoint.com",
            "SP_AUTHENTICATION": "token",
            "SP_CLIENT_ID": "cid",
            "SP_CLIENT_SECRET": "secret",
            "SP_TENANT_ID": "tid",
            "SP_CERT_NAME": "cert",
            "SP_AUTH_SCOPE": "https://contoso.sharepoint.com/.default",
            "SP_SITE_PATH": "/sites/team",
            "SP_MAX_WORKERS": "3",
        }
        with patch.dict(os.environ, env, clear=True):
            config = config_from_env()

        assert config.authentication == "token"
        assert config.client_secret == "secret"
        assert config.site_path == "/sites/team"
        assert config.token_url is None
        assert config.max_workers == 3
        config.raise_for_invalid()

    def test_missing_variables_are_left_unset(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = config_from_env()
        assert config.uri is None
        assert config.max_workers == DEFAULT_MAX_WORKERS
