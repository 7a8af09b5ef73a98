"""Map SharePoint JSON (OData verbose) payloads to records."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sharepoint_rest.api.models import (
    DOCUMENT_DEFAULT_PROPERTIES,
    FIELD_DATE_OF_ISSUE,
    FIELD_FILE,
    FIELD_FILE_SYSTEM_OBJECT_TYPE,
    FIELD_NAME,
    FIELD_RECORD_TYPE,
    FIELD_SERVER_RELATIVE_URL,
    FIELD_TIME_CREATED,
    FIELD_TIME_LAST_MODIFIED,
    FIELD_TITLE,
    FIELD_URL,
    FIELD_URL_URL,
    FILE_SYSTEM_OBJECT_FILE,
    LIST_ITEM_DEFAULT_PROPERTIES,
    LIST_ITEM_FILE_PROPERTIES,
    ODATA_DATA,
    ODATA_METADATA,
    ODATA_NEXT,
    ODATA_RESULTS,
    Document,
    Record,
)

_ACRONYM_BOUNDARY_RE = re.compile(r"([A-Z\d]+)([A-Z][a-z])")
_WORD_BOUNDARY_RE = re.compile(r"([a-z\d])([A-Z])")

_SEARCH_ROWS_PATH = (
    ODATA_DATA,
    "query",
    "PrimaryQueryResult",
    "RelevantResults",
    "Table",
    "Rows",
    ODATA_RESULTS,
)


def underscore(name: str) -> str:
    """PascalCase to snake_case (``ServerRelativeUrl`` -> ``server_relative_url``)."""
    name = _ACRONYM_BOUNDARY_RE.sub(r"\1_\2", name)
    name = _WORD_BOUNDARY_RE.sub(r"\1_\2", name)
    return name.replace("-", "_").lower()


def _load(body: bytes | str) -> dict[str, Any]:
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise ValueError("Expected a JSON object in SharePoint response")
    return payload


def _data(body: bytes | str) -> dict[str, Any]:
    data = _load(body).get(ODATA_DATA)
    if not isinstance(data, dict):
        raise ValueError("SharePoint response has no 'd' object")
    return data


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _link_url(item: dict[str, Any]) -> str | None:
    link = item.get(FIELD_URL)
    if isinstance(link, dict):
        return link.get(FIELD_URL_URL)
    return None


def parse_folder_listing(body: bytes | str, base_url: str) -> list[Document]:
    """Build one Document per file entry of a ``.../Files`` listing.

    ``record_type`` and ``date_of_issue`` are left empty; they come from
    the per-file list item fetch (see apply_document_metadata).
    """
    documents = []
    for entry in _data(body).get(ODATA_RESULTS, []):
        server_relative_url = entry[FIELD_SERVER_RELATIVE_URL]
        documents.append(
            Document(
                title=entry.get(FIELD_TITLE),
                path=server_relative_url,
                name=entry[FIELD_NAME],
                url=f"{base_url}{server_relative_url}",
                created_at=_parse_time(entry.get(FIELD_TIME_CREATED)),
                updated_at=_parse_time(entry.get(FIELD_TIME_LAST_MODIFIED)),
            )
        )
    return documents


def apply_document_metadata(
    document: Document, body: bytes | str, custom_properties: Iterable[str] = ()
) -> Document:
    """Copy list item fields from a ``ListItemAllFields`` payload onto ``document``."""
    fields = _data(body)
    document.record_type = fields.get(FIELD_RECORD_TYPE)
    document.date_of_issue = fields.get(FIELD_DATE_OF_ISSUE)
    for key in custom_properties:
        document.custom_properties[underscore(key)] = fields.get(key)
    return document


def parse_search_response(body: bytes | str) -> list[Record]:
    """Pivot each row of the search results table into a record.

    Every row is a list of ``{Key, Value}`` cells; the record maps the
    snake_cased key to its (string) value.
    """
    rows: Any = _load(body)
    for key in _SEARCH_ROWS_PATH:
        rows = rows.get(key) if isinstance(rows, dict) else None
    records = []
    for row in rows or []:
        cells = row.get("Cells", {}).get(ODATA_RESULTS, [])
        records.append({underscore(cell["Key"]): cell["Value"] for cell in cells})
    return records


def parse_list_response(
    body: bytes | str, custom_properties: Iterable[str] = ()
) -> tuple[list[Record], str | None]:
    """Parse one page of ``Lists/GetByTitle(...)/Items``.

    Folders are skipped. The nested ``File`` object is flattened into
    ``name``, ``server_relative_url`` and ``length``; a hyperlink ``URL``
    field becomes ``url``.

    Returns:
        A tuple of (records, next_link) where next_link is the OData
        ``__next`` URL, or None on the last page.
    """
    data = _data(body)
    properties = [*LIST_ITEM_DEFAULT_PROPERTIES, *custom_properties]
    records = []
    for item in data.get(ODATA_RESULTS, []):
        if item.get(FIELD_FILE_SYSTEM_OBJECT_TYPE) != FILE_SYSTEM_OBJECT_FILE:
            continue
        record = {underscore(key): item.get(key) for key in properties}
        file = item.get(FIELD_FILE) or {}
        for key in LIST_ITEM_FILE_PROPERTIES:
            record[underscore(key)] = file.get(key)
        link = _link_url(item)
        if link is not None:
            record["url"] = link
        records.append(record)
    return records, data.get(ODATA_NEXT)


def parse_get_document_response(
    body: bytes | str, custom_properties: Iterable[str] = ()
) -> Record:
    """Extract default and custom properties from a ``ListItemAllFields`` payload."""
    fields = _data(body)
    record = {
        underscore(key): fields.get(key)
        for key in [*DOCUMENT_DEFAULT_PROPERTIES, *custom_properties]
    }
    link = _link_url(fields)
    if link is not None:
        record["url"] = link
    return record


def parse_object_metadata(body: bytes | str) -> dict[str, Any]:
    """Return the ``__metadata`` block (``uri``, ``type``, ...) of an entity."""
    metadata = _data(body).get(ODATA_METADATA)
    if not isinstance(metadata, dict):
        raise ValueError("SharePoint entity has no __metadata block")
    return metadata


def parse_request_digest(body: bytes | str) -> str:
    """Return the form digest value from a ``contextinfo`` response."""
    return str(_data(body)["GetContextWebInformation"]["FormDigestValue"])


def parse_field(body: bytes | str, name: str) -> Any:
    """Return a single field of the ``d`` object, or None when absent."""
    return _data(body).get(name)
