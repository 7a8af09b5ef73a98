"""Records produced from SharePoint REST responses."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# OData verbose envelope keys
ODATA_DATA = "d"
ODATA_RESULTS = "results"
ODATA_NEXT = "__next"
ODATA_METADATA = "__metadata"

# File and list item field names
FIELD_TITLE = "Title"
FIELD_NAME = "Name"
FIELD_SERVER_RELATIVE_URL = "ServerRelativeUrl"
FIELD_TIME_CREATED = "TimeCreated"
FIELD_TIME_LAST_MODIFIED = "TimeLastModified"
FIELD_RECORD_TYPE = "Record_Type"
FIELD_DATE_OF_ISSUE = "Date_of_issue"
FIELD_FILE_SYSTEM_OBJECT_TYPE = "FileSystemObjectType"
FIELD_FILE = "File"
FIELD_URL = "URL"
FIELD_URL_URL = "Url"
FIELD_UNIQUE_ID = "UniqueId"
FIELD_EXISTS = "Exists"
FIELD_INDEXED = "Indexed"
FIELD_ID = "Id"

# FileSystemObjectType discriminant for files (folders are 1)
FILE_SYSTEM_OBJECT_FILE = 0

DOCUMENT_DEFAULT_PROPERTIES = ("GUID", "Title", "Created", "Modified")
LIST_ITEM_DEFAULT_PROPERTIES = ("GUID", "Created", "Modified", "Title")
LIST_ITEM_FILE_PROPERTIES = ("Name", "ServerRelativeUrl", "Length")

# Search, list item and metadata records have a dynamic, snake_cased field set
Record = dict[str, Any]


@dataclass
class Document:
    """A file from a folder listing, augmented with its list item metadata."""

    title: str | None
    path: str
    name: str
    url: str
    created_at: datetime | None
    updated_at: datetime | None
    record_type: str | None = None
    date_of_issue: str | None = None
    custom_properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class DownloadResult:
    """File contents plus the URL finally resolved when the file was a link."""

    file_contents: bytes
    link_url: str | None = None
