"""Pure builders for SharePoint REST URLs, OData queries and search queries."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import unquote, urlparse

from sharepoint_rest.errors import InvalidMetadataError, InvalidSearchParametersError
from sharepoint_rest.odata.escaping import (
    json_escape_single_quote,
    odata_escape_single_quote,
    query_value_escape,
    remove_double_slashes,
    uri_escape,
)

KQL_IS_DOCUMENT = "IsDocument=1"
KQL_NOT_CONTAINER = "IsContainer<>true"

MODIFIED_DOCUMENTS_PROPERTIES = (
    "Write",
    "IsDocument",
    "ListId",
    "WebId",
    "Created",
    "Title",
    "Author",
    "Size",
    "Path",
)
DOCUMENT_SEARCH_PROPERTIES = (
    "Write",
    "IsDocument",
    "IsContainer",
    "ListId",
    "WebId",
    "UniqueId",
    "Created",
    "LastModifiedTime",
    "Title",
    "Author",
    "Size",
    "Path",
    "FileExtension",
)
DEFAULT_ROW_LIMIT = 500


def format_search_time(value: datetime | str) -> str:
    """Format a time as ISO-8601 UTC; naive datetimes are taken to be UTC."""
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_search_kql_terms(
    options: Mapping[str, Any], document_predicate: str = KQL_IS_DOCUMENT
) -> list[str]:
    """List the KQL terms of a search.

    The document predicate is always present; ``query``, ``web_id`` and
    ``list_id`` are added when supplied.
    """
    conditions = []
    if options.get("query"):
        conditions.append(str(options["query"]))
    conditions.append(document_predicate)
    if options.get("web_id") is not None:
        conditions.append(f"WebId={options['web_id']}")
    if options.get("list_id") is not None:
        conditions.append(f"ListId:{options['list_id']}")
    return conditions


def build_search_kql_conditions(
    options: Mapping[str, Any], document_predicate: str = KQL_IS_DOCUMENT
) -> str:
    """Build the quoted KQL ``querytext`` value, terms joined with ``+``."""
    return f"'{'+'.join(build_search_kql_terms(options, document_predicate))}'"


def build_search_fql_conditions(options: Mapping[str, Any]) -> str:
    """Build the quoted FQL ``refinementfilters`` value for a write-time range.

    Raises:
        InvalidSearchParametersError: If ``start_at`` is missing.
    """
    start_at = options.get("start_at")
    if start_at is None:
        raise InvalidSearchParametersError("start_at is required to search modified documents")
    end_at = options.get("end_at")
    start = format_search_time(start_at)
    if end_at is None:
        return f"'write:range({start},max,from=\"ge\")'"
    end = format_search_time(end_at)
    return f"'write:range({start},{end},from=\"ge\",to=\"le\")'"


def build_search_properties(
    options: Mapping[str, Any], default_properties: Sequence[str] = MODIFIED_DOCUMENTS_PROPERTIES
) -> str:
    """Build the ``selectproperties`` fragment: custom properties first, then defaults."""
    properties = list(options.get("properties") or [])
    properties += [name for name in default_properties if name not in properties]
    return f"selectproperties='{','.join(properties)}'"


def build_search_paging(
    options: Mapping[str, Any], default_row_limit: int = DEFAULT_ROW_LIMIT
) -> str:
    """Build the ``startrow``/``rowlimit`` fragment."""
    start_row = int(options.get("start_row") or 0)
    row_limit = int(options.get("row_limit") or default_row_limit)
    return f"startrow={start_row}&rowlimit={row_limit}"


def build_odata_query(
    filter: str | None = None,
    select: Iterable[str] = (),
    expand: Iterable[str] = (),
) -> str:
    """Build an OData query string from ``$expand``, ``$filter`` and ``$select``.

    Each value is escaped for the query string; the result is ready to append
    after ``?``.
    """
    params = []
    expand = list(expand)
    select = list(select)
    if expand:
        params.append(f"$expand={query_value_escape(','.join(expand))}")
    if filter:
        params.append(f"$filter={query_value_escape(filter)}")
    if select:
        params.append(f"$select={query_value_escape(','.join(select))}")
    return "&".join(params)


@dataclass(frozen=True)
class SearchQueryBuilder:
    """One configuration of the ``search/query`` endpoint.

    Attributes:
        document_predicate: KQL term restricting results to documents.
        default_properties: Properties always selected after custom ones.
        default_row_limit: Row limit used when the caller gives none.
        requires_query: Whether a free-text ``query`` option is mandatory.
        requires_range: Whether a ``start_at`` write-time range is mandatory.
    """

    document_predicate: str
    default_properties: tuple[str, ...]
    default_row_limit: int = DEFAULT_ROW_LIMIT
    requires_query: bool = False
    requires_range: bool = False

    def build(self, api_url: str, options: Mapping[str, Any]) -> str:
        """Return the full search URL below ``api_url`` (which ends with ``/_api/``)."""
        if self.requires_query and not options.get("query"):
            raise InvalidSearchParametersError("query is required to search documents")

        terms = build_search_kql_terms(options, self.document_predicate)
        query = "+".join(query_value_escape(term) for term in terms)
        params = [f"querytext='{query}'"]
        if self.requires_range or options.get("start_at") is not None:
            refinement = query_value_escape(build_search_fql_conditions(options))
            params.append(f"refinementfilters={refinement}")
        params.append(build_search_properties(options, self.default_properties))
        params.append("clienttype='Custom'")
        params.append(build_search_paging(options, self.default_row_limit))
        return f"{api_url}search/query?{'&'.join(params)}"


MODIFIED_DOCUMENTS_SEARCH = SearchQueryBuilder(
    document_predicate=KQL_IS_DOCUMENT,
    default_properties=MODIFIED_DOCUMENTS_PROPERTIES,
    requires_range=True,
)
DOCUMENT_SEARCH = SearchQueryBuilder(
    document_predicate=KQL_NOT_CONTAINER,
    default_properties=DOCUMENT_SEARCH_PROPERTIES,
    default_row_limit=50,
    requires_query=True,
)


def server_relative_url(*parts: str | None) -> str:
    """Join path fragments into a single server-relative URL starting with ``/``."""
    joined = "/".join(part for part in parts if part)
    return remove_double_slashes(f"/{joined}")


class UrlBuilder:
    """Builds REST endpoint URLs below a SharePoint root URL."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def api_url(self, site_path: str | None = None) -> str:
        if not site_path:
            return remove_double_slashes(f"{self.base_url}/_api/")
        return remove_double_slashes(f"{self.base_url}/{site_path}/_api/")

    def web_api_url(self, site_path: str | None = None) -> str:
        return f"{self.api_url(site_path)}web/"

    def file_url(
        self, server_relative: str, resource: str = "", site_path: str | None = None
    ) -> str:
        """URL of ``GetFileByServerRelativeUrl('...')`` followed by ``resource``."""
        literal = uri_escape(odata_escape_single_quote(server_relative))
        return f"{self.web_api_url(site_path)}GetFileByServerRelativeUrl('{literal}'){resource}"

    def folder_url(
        self, server_relative: str, resource: str = "", site_path: str | None = None
    ) -> str:
        """URL of ``GetFolderByServerRelativeUrl('...')`` followed by ``resource``."""
        literal = uri_escape(odata_escape_single_quote(server_relative))
        return f"{self.web_api_url(site_path)}GetFolderByServerRelativeUrl('{literal}'){resource}"

    def list_url(self, list_name: str, resource: str = "", site_path: str | None = None) -> str:
        """URL of ``Lists/GetByTitle('...')`` followed by ``resource``."""
        literal = uri_escape(odata_escape_single_quote(list_name))
        return f"{self.web_api_url(site_path)}Lists/GetByTitle('{literal}'){resource}"


_SITE_SEGMENT_RE = re.compile(r"^(/(?:sites|teams)/[^/]+)(/.*)$")


def split_link_url(url: str) -> tuple[str, str | None, str]:
    """Split a link target into (root origin, site path, file path).

    ``https://other.sharepoint.com/sites/team/Shared Documents/a.pdf`` gives
    ``("https://other.sharepoint.com", "/sites/team", "/Shared Documents/a.pdf")``.
    The site path is None when the file lives in the root site. Query
    strings and fragments are dropped.
    """
    parsed = urlparse(url)
    root = f"{parsed.scheme}://{parsed.netloc}"
    path = unquote(parsed.path) or "/"
    match = _SITE_SEGMENT_RE.match(path)
    if match is None:
        return root, None, path
    return root, match.group(1), match.group(2)


def _metadata_value(key: str, value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, str | datetime):
        text = format_search_time(value) if isinstance(value, datetime) else value
        return f"'{json_escape_single_quote(text)}'"
    raise InvalidMetadataError(
        f"Unsupported metadata value type; field:{key};type:{type(value).__name__}"
    )


def build_metadata_body(metadata: Mapping[str, Any], entity_type: str) -> str:
    """Build the single-quoted JSON-like body of a list item update.

    Raises:
        InvalidMetadataError: If a field name contains a single quote or a
            value is not a string, number, boolean, datetime or None.
    """
    parts = [f"'__metadata': {{ 'type': '{json_escape_single_quote(entity_type)}' }}"]
    for key, value in metadata.items():
        key = str(key)
        if "'" in key:
            raise InvalidMetadataError(f"Field names cannot contain single quotes; field:{key}")
        parts.append(f"'{key}': {_metadata_value(key, value)}")
    return "{ " + ", ".join(parts) + " }"
