"""Client library for the SharePoint 2013 REST/OData API."""

from sharepoint_rest.api.client import SharePointClient
from sharepoint_rest.api.models import DownloadResult
from sharepoint_rest.config import ClientConfig, config_from_env

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    "DownloadResult",
    "SharePointClient",
    "config_from_env",
]
