"""SharePoint REST client: documents, lists, search and folder management."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import UTC, datetime
from http import HTTPStatus
from typing import Any

import requests

from sharepoint_rest.api.collaboration import Collaboration
from sharepoint_rest.api.models import (
    FIELD_EXISTS,
    FIELD_INDEXED,
    Document,
    DownloadResult,
    Record,
)
from sharepoint_rest.api.parsers import (
    apply_document_metadata,
    parse_field,
    parse_folder_listing,
    parse_get_document_response,
    parse_list_response,
    parse_object_metadata,
    parse_request_digest,
    parse_search_response,
)
from sharepoint_rest.auth.provider import auth_provider_from_config
from sharepoint_rest.auth.token import Token
from sharepoint_rest.config import CREDENTIAL_FIELDS, ClientConfig
from sharepoint_rest.errors import (
    ConfigurationError,
    InvalidFilenameError,
    InvalidSearchParametersError,
    SharePointError,
)
from sharepoint_rest.odata.escaping import odata_escape_single_quote, uri_escape, valid_filename
from sharepoint_rest.odata.query import (
    DOCUMENT_SEARCH,
    MODIFIED_DOCUMENTS_SEARCH,
    UrlBuilder,
    build_metadata_body,
    build_odata_query,
    server_relative_url,
    split_link_url,
)
from sharepoint_rest.transport.executor import (
    JSON_HEADERS,
    JSON_VERBOSE,
    MAX_REDIRECTS,
    HttpResponse,
    RequestExecutor,
    check_and_raise_failure,
    last_location_header,
)

logger = logging.getLogger(__name__)

LIST_EXPAND = ("Folder", "File")


class SharePointClient:
    """Client for one SharePoint root URL.

    Instances are independent: each owns its configuration, its access
    token and its HTTP session.
    """

    def __init__(
        self,
        config: ClientConfig | Mapping[str, Any],
        *,
        session: requests.Session | None = None,
    ) -> None:
        """Validate the configuration and set up authentication.

        Args:
            config: A ClientConfig, or a mapping of configuration options.
            session: requests session to share; a new one is created when omitted.

        Raises:
            ConfigurationError: If the configuration is invalid (see
                ClientConfig.raise_for_invalid for the specific subclasses).
        """
        if not isinstance(config, ClientConfig):
            config = ClientConfig.from_mapping(config)
        config.raise_for_invalid()

        self.config = config
        self.base_url = str(config.uri)
        self.urls = UrlBuilder(self.base_url)
        self.base_api_url = self.urls.api_url()
        self.base_api_web_url = self.urls.web_api_url()

        self._session = session or requests.Session()
        self.token = Token(config, session=self._session)
        self.executor = RequestExecutor(
            auth_provider_from_config(config, self.token),
            config.transport_options,
            session=self._session,
        )
        self.collaboration = Collaboration(self)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def documents_for(
        self, path: str, custom_properties: Sequence[str] = (), site_path: str | None = None
    ) -> list[Document]:
        """List the files of a folder together with their list item metadata.

        The folder listing is fetched first, then one ``ListItemAllFields``
        request per file runs on a pool of at most ``config.max_workers``
        threads. The first failing request is raised once all workers have
        stopped; pending requests are cancelled.

        Args:
            path: Server-relative folder path, e.g. "/Documents".
            custom_properties: Extra list item fields stored in
                ``Document.custom_properties``.
            site_path: Site path, when the folder lives in a sub-site.

        Returns:
            Documents in folder listing order.
        """
        folder = server_relative_url(site_path, path)
        response = self.executor.get_json(self.urls.folder_url(folder, "/Files", site_path))
        check_and_raise_failure(response)
        documents = parse_folder_listing(response.body, self.base_url)
        if not documents:
            return documents

        workers = min(self.config.max_workers, len(documents))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(
                    self._fetch_document_metadata,
                    document,
                    server_relative_url(folder, document.name),
                    custom_properties,
                    site_path,
                )
                for document in documents
            ]
            wait(futures, return_when=FIRST_EXCEPTION)
            pool.shutdown(wait=True, cancel_futures=True)

        for future in futures:
            if not future.cancelled():
                future.result()

        logger.info(
            "[documents_for] listed folder; path:%s;file_count:%d;workers:%d",
            path,
            len(documents),
            workers,
        )
        return documents

    def _fetch_document_metadata(
        self,
        document: Document,
        server_relative: str,
        custom_properties: Sequence[str],
        site_path: str | None,
    ) -> None:
        url = self.urls.file_url(server_relative, "/ListItemAllFields", site_path)
        response = self.executor.get_json(url)
        check_and_raise_failure(response)
        apply_document_metadata(document, response.body, custom_properties)

    def get_document(
        self,
        file_path: str,
        site_path: str | None = None,
        custom_properties: Sequence[str] = (),
    ) -> Record:
        """Get a document's default and custom metadata.

        Args:
            file_path: File path, without the site path.
            site_path: Site path, e.g. "/sites/my-site", when the file lives in a sub-site.
            custom_properties: Names of extra list item fields to return.

        Returns:
            Record with ``guid``, ``title``, ``created``, ``modified``, the
            custom properties and ``url`` when the item is a link.
        """
        srv_url = server_relative_url(site_path, file_path)
        response = self.executor.get_json(
            self.urls.file_url(srv_url, "/ListItemAllFields", site_path)
        )
        check_and_raise_failure(response)
        return parse_get_document_response(response.body, custom_properties)

    def document_exists(self, file_path: str, site_path: str | None = None) -> bool:
        """Return True if the file exists; any failure counts as "does not exist"."""
        url = self.urls.file_url(server_relative_url(site_path, file_path), site_path=site_path)
        try:
            response = self.executor.get_json(url)
        except (SharePointError, requests.RequestException) as exc:
            logger.warning("[document_exists] request failed; url:%s;error:%s", url, exc)
            return False
        return response.ok

    def download(
        self,
        file_path: str,
        site_path: str | None = None,
        link_credentials: Mapping[str, Any] | None = None,
    ) -> DownloadResult:
        """Download a file, following link documents into other site collections.

        Args:
            file_path: File path, without the site path.
            site_path: Site path, when the file lives in a sub-site.
            link_credentials: Credential options (see CREDENTIAL_FIELDS) used
                instead of this client's own when the file links elsewhere.

        Returns:
            DownloadResult with the file bytes and, for links, the resolved URL.
        """
        result, _ = self._download(file_path, site_path, link_credentials, hops=0)
        return result

    def _download(
        self,
        file_path: str,
        site_path: str | None,
        link_credentials: Mapping[str, Any] | None,
        hops: int,
    ) -> tuple[DownloadResult, HttpResponse]:
        document = self.get_document(file_path, site_path)
        link_target = document.get("url")

        if not link_target:
            srv_url = server_relative_url(site_path, file_path)
            url = self.urls.file_url(srv_url, "/$value", site_path)
            response = self.executor.get(url, follow_redirects=True)
            check_and_raise_failure(response)
            return DownloadResult(file_contents=response.body), response

        if hops >= MAX_REDIRECTS:
            raise SharePointError(f"Too many link documents followed; url:{link_target}")

        root, link_site_path, link_file_path = split_link_url(link_target)
        logger.info(
            "[download] following link document; root:%s;site_path:%s;file_path:%s",
            root,
            link_site_path,
            link_file_path,
        )
        link_client = self._link_client(root, link_credentials)
        result, response = link_client._download(link_file_path, link_site_path, None, hops + 1)
        link_url = result.link_url or last_location_header(response) or link_target
        return DownloadResult(file_contents=result.file_contents, link_url=link_url), response

    def _link_client(
        self, root: str, link_credentials: Mapping[str, Any] | None
    ) -> SharePointClient:
        overrides = dict(link_credentials or {})
        unknown = sorted(key for key in overrides if key not in CREDENTIAL_FIELDS)
        if unknown:
            raise ConfigurationError(
                unknown, f"Unsupported link credential options; fields:{', '.join(unknown)}"
            )
        return type(self)(self.config.replace(uri=root, **overrides), session=self._session)

    # ------------------------------------------------------------------
    # Search and lists
    # ------------------------------------------------------------------

    def search_modified_documents(self, options: Mapping[str, Any]) -> dict[str, Any]:
        """Search documents modified in a time range, boundaries included.

        Args:
            options: ``start_at`` (mandatory datetime), ``end_at``,
                ``web_id``, ``list_id``, ``properties`` (extra properties to
                select), ``start_row``, ``row_limit``.

        Returns:
            Dict with ``requested_url``, ``server_responded_at`` and ``results``.
        """
        url = MODIFIED_DOCUMENTS_SEARCH.build(self.base_api_url, options)
        return self._search(url)

    def search(self, options: Mapping[str, Any]) -> dict[str, Any]:
        """Free-text document search.

        Args:
            options: ``query`` (mandatory KQL text), ``web_id``, ``list_id``,
                ``start_at``/``end_at``, ``properties``, ``start_row``, ``row_limit``.

        Returns:
            Dict with ``requested_url``, ``server_responded_at`` and ``results``.
        """
        url = DOCUMENT_SEARCH.build(self.base_api_url, options)
        return self._search(url)

    def _search(self, url: str) -> dict[str, Any]:
        response = self.executor.get_json(url)
        check_and_raise_failure(response)
        server_responded_at = datetime.now(UTC)
        results = parse_search_response(response.body)
        logger.info("[search] search completed; result_count:%d", len(results))
        return {
            "requested_url": url,
            "server_responded_at": server_responded_at,
            "results": results,
        }

    def list_documents(
        self,
        list_name: str,
        conditions: str,
        site_path: str | None = None,
        properties: Sequence[str] = (),
    ) -> dict[str, Any]:
        """Query a List (or Document Library) for files matching OData conditions.

        Every ``__next`` page is followed and concatenated; folders are skipped.

        Args:
            list_name: Title of the list.
            conditions: OData ``$filter`` expression.
            site_path: Site path, when the list lives in a sub-site.
            properties: Extra item fields to return.

        Returns:
            Dict with ``requested_url``, ``server_responded_at`` and ``results``.

        Raises:
            InvalidSearchParametersError: If ``conditions`` is empty.
        """
        if not conditions:
            raise InvalidSearchParametersError("One condition should be passed at least")
        query = build_odata_query(filter=conditions, expand=LIST_EXPAND)
        url = f"{self.urls.list_url(list_name, '/Items', site_path)}?{query}"

        results: list[Record] = []
        pages = 0
        next_url: str | None = url
        while next_url is not None:
            response = self.executor.get_json(next_url)
            check_and_raise_failure(response)
            records, next_url = parse_list_response(response.body, properties)
            results.extend(records)
            pages += 1
        server_responded_at = datetime.now(UTC)

        logger.info(
            "[list_documents] listed items; list_name:%s;pages:%d;result_count:%d",
            list_name,
            pages,
            len(results),
        )
        return {
            "requested_url": url,
            "server_responded_at": server_responded_at,
            "results": results,
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def request_digest(self, site_path: str | None = None) -> str:
        """Fetch the request-verification digest required by POST requests."""
        url = f"{self.urls.api_url(site_path)}contextinfo"
        response = self.executor.post(url, headers=JSON_HEADERS)
        check_and_raise_failure(response)
        return parse_request_digest(response.body)

    def post_with_digest(
        self,
        url: str,
        *,
        site_path: str | None = None,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
    ) -> HttpResponse:
        """POST with a fresh request digest; the response is returned unchecked."""
        merged = {
            **JSON_HEADERS,
            "X-RequestDigest": self.request_digest(site_path),
            **(headers or {}),
        }
        return self.executor.post(url, headers=merged, body=body)

    def upload_file(
        self, filename: str, content: str | bytes, path: str, site_path: str | None = None
    ) -> HttpResponse:
        """Upload ``content`` as ``filename`` into folder ``path``, overwriting.

        Raises:
            InvalidFilenameError: If the name contains a forbidden character.
            RequestFailedError: If SharePoint rejects the upload.
        """
        if not valid_filename(filename):
            raise InvalidFilenameError(filename)
        folder = path[1:] if path.startswith("/") else path
        name = uri_escape(odata_escape_single_quote(filename))
        url = self.urls.folder_url(folder, f"/Files/Add(url='{name}',overwrite=true)", site_path)
        response = self.post_with_digest(url, site_path=site_path, body=content)
        check_and_raise_failure(response)
        logger.info("[upload] uploaded file; path:%s;filename:%s", path, filename)
        return response

    def upload(
        self, filename: str, content: str | bytes, path: str, site_path: str | None = None
    ) -> int:
        """Upload a file and return the HTTP status code."""
        return self.upload_file(filename, content, path, site_path).status_code

    def update_metadata(
        self,
        filename: str,
        metadata: Mapping[str, Any],
        path: str,
        site_path: str | None = None,
    ) -> int:
        """Update list item fields of a file.

        Args:
            filename: Name of the file.
            metadata: Field internal names mapped to their new values.
            path: Folder the file is stored in.
            site_path: Site path, when the file lives in a sub-site.

        Returns:
            HTTP status code of the update.
        """
        srv_url = server_relative_url(site_path, path, filename)
        response = self.executor.get_json(
            self.urls.file_url(srv_url, "/ListItemAllFields", site_path)
        )
        check_and_raise_failure(response)
        object_metadata = parse_object_metadata(response.body)
        return self.update_object_metadata(object_metadata, metadata, site_path)

    def update_object_metadata(
        self,
        object_metadata: Mapping[str, Any],
        metadata: Mapping[str, Any],
        site_path: str | None = None,
    ) -> int:
        """MERGE ``metadata`` into the entity described by its ``__metadata`` block."""
        body = build_metadata_body(metadata, str(object_metadata["type"]))
        response = self.post_with_digest(
            str(object_metadata["uri"]),
            site_path=site_path,
            headers={
                "Content-Type": JSON_VERBOSE,
                "X-HTTP-Method": "MERGE",
                "If-Match": "*",
            },
            body=body,
        )
        check_and_raise_failure(response)
        return response.status_code

    def create_folder(self, name: str, path: str, site_path: str | None = None) -> int:
        """Create folder ``name`` inside ``path`` and return the HTTP status code."""
        if not valid_filename(name):
            raise InvalidFilenameError(name)
        folder = path[1:] if path.startswith("/") else path
        literal = uri_escape(odata_escape_single_quote(name))
        url = self.urls.folder_url(folder, f"/Folders/add(url='{literal}')", site_path)
        response = self.post_with_digest(url, site_path=site_path)
        check_and_raise_failure(response)
        logger.info("[create_folder] created folder; path:%s;name:%s", path, name)
        return response.status_code

    def folder_exists(self, path: str, site_path: str | None = None) -> bool:
        """Return True if the folder exists; any failure counts as "does not exist"."""
        url = self.urls.folder_url(server_relative_url(site_path, path), site_path=site_path)
        try:
            response = self.executor.get_json(url)
            if not response.ok:
                return False
            return parse_field(response.body, FIELD_EXISTS) is not False
        except (SharePointError, requests.RequestException, ValueError) as exc:
            logger.warning("[folder_exists] request failed; url:%s;error:%s", url, exc)
            return False

    def index_field(self, list_name: str, field_name: str, site_path: str | None = None) -> int:
        """Mark a list field as indexed.

        Returns:
            HTTP status code of the update, or 304 when the field is already indexed.
        """
        literal = uri_escape(odata_escape_single_quote(field_name))
        url = self.urls.list_url(list_name, f"/Fields/getbytitle('{literal}')", site_path)
        response = self.executor.get_json(url)
        check_and_raise_failure(response)
        if parse_field(response.body, FIELD_INDEXED):
            return HTTPStatus.NOT_MODIFIED.value
        return self.update_object_metadata(
            parse_object_metadata(response.body), {FIELD_INDEXED: True}, site_path
        )

