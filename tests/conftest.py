"""Pytest configuration: adds src/ to sys.path and provides shared fixtures."""

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Add src/ to Python path so tests can import from sharepoint_rest
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "responses"

SHAREPOINT_URL = "https://contoso.sharepoint.com"


def _read_fixture(name: str) -> bytes:
    return (FIXTURES_DIR / name).read_bytes()


@pytest.fixture
def load_fixture() -> Callable[[str], bytes]:
    """Return a loader for the raw bytes of a recorded SharePoint response."""
    return _read_fixture


@pytest.fixture
def ntlm_options() -> dict[str, object]:
    return {
        "uri": SHAREPOINT_URL,
        "authentication": "ntlm",
        "username": "contoso\\svc-docs",
        "password": "s3cret",
    }


@pytest.fixture
def token_options() -> dict[str, object]:
    return {
        "uri": SHAREPOINT_URL,
        "authentication": "token",
        "client_id": "client-id",
        "client_secret": "client-secret",
        "tenant_id": "tenant-id",
        "cert_name": "sharepoint-cert",
        "auth_scope": "https://contoso.sharepoint.com/.default",
        "token_url": "https://auth.contoso.com/token",
    }
