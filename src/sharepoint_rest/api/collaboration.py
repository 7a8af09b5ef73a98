"""Collaboration operations on documents below a configured base folder.

Paths are resolved against the ``site_path``, ``base_folder`` and
``base_uri`` configuration options. Failures are re-raised as the
operation-specific CollaborationError subclasses.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests

from sharepoint_rest.api.models import FIELD_ID, FIELD_UNIQUE_ID
from sharepoint_rest.api.parsers import parse_field
from sharepoint_rest.errors import (
    DeleteError,
    DownloadError,
    SharePointError,
    SharePointPermissionError,
    UploadError,
)
from sharepoint_rest.odata.escaping import (
    json_escape_single_quote,
    odata_escape_single_quote,
    uri_escape,
)
from sharepoint_rest.odata.query import build_odata_query, server_relative_url
from sharepoint_rest.transport.executor import JSON_VERBOSE, HttpResponse, check_and_raise_failure

if TYPE_CHECKING:
    from sharepoint_rest.api.client import SharePointClient

logger = logging.getLogger(__name__)

_REQUEST_ERRORS = (SharePointError, requests.RequestException, ValueError, KeyError)

_OFFICE_TYPES: dict[str, str] = {
    **dict.fromkeys((".doc", ".docx", ".docm", ".dot", ".dotx", ".rtf", ".odt"), "w"),
    **dict.fromkeys((".xls", ".xlsx", ".xlsm", ".xlsb", ".csv", ".ods"), "x"),
    **dict.fromkeys((".ppt", ".pptx", ".pptm", ".pps", ".ppsx", ".odp"), "p"),
}
DEFAULT_OFFICE_TYPE = "d"


def detect_office_type(filename: str) -> str:
    """Return the Office web app letter for ``filename``: w, x, p, or d for anything else."""
    dot = filename.rfind(".")
    extension = filename[dot:].lower() if dot != -1 else ""
    return _OFFICE_TYPES.get(extension, DEFAULT_OFFICE_TYPE)


class Collaboration:
    """Document sharing workflows built on a SharePointClient."""

    def __init__(self, client: SharePointClient) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # Configuration defaults and paths
    # ------------------------------------------------------------------

    @property
    def site_path(self) -> str:
        return self._client.config.site_path or ""

    @property
    def base_folder(self) -> str:
        return self._client.config.base_folder or ""

    @property
    def base_uri(self) -> str:
        return str(self._client.config.base_uri or self._client.config.uri).rstrip("/")

    def build_full_path(self, folder_path: str) -> str:
        """Join the base folder and ``folder_path`` (either may be empty)."""
        return "/".join(part for part in (self.base_folder, folder_path) if part)

    def build_server_relative_url(self, filename: str, folder_path: str) -> str:
        return server_relative_url(self.site_path, self.build_full_path(folder_path), filename)

    def _item_url(self, filename: str, folder_path: str, resource: str = "") -> str:
        return self._client.urls.file_url(
            self.build_server_relative_url(filename, folder_path),
            f"/ListItemAllFields{resource}",
            self.site_path or None,
        )

    def _post(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
    ) -> HttpResponse:
        return self._client.post_with_digest(
            url, site_path=self.site_path or None, headers=headers, body=body
        )

    # ------------------------------------------------------------------
    # Upload and download
    # ------------------------------------------------------------------

    def upload_document(
        self,
        filename: str,
        content: str | bytes,
        folder_path: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Upload a document, creating its folder first when missing.

        Args:
            filename: Name of the document.
            content: File contents.
            folder_path: Folder below the base folder.
            metadata: Optional list item fields set after the upload.

        Returns:
            ``{"success": True, "unique_id": <document GUID>}``.

        Raises:
            UploadError: If any step fails; steps already done are not undone.
        """
        full_path = self.build_full_path(folder_path)
        site_path = self.site_path or None
        try:
            if not self._client.folder_exists(full_path, site_path):
                self._client.create_folder(folder_path, self.base_folder, site_path)
            unique_id = self.upload_and_get_unique_id(filename, content, full_path)
            if metadata:
                self._client.update_metadata(filename, metadata, full_path, site_path)
        except _REQUEST_ERRORS as exc:
            raise UploadError(f"Failed to upload document: {exc}") from exc

        logger.info(
            "[collaboration_upload] uploaded document; folder:%s;filename:%s;unique_id:%s",
            full_path,
            filename,
            unique_id,
        )
        return {"success": True, "unique_id": unique_id}

    def upload_and_get_unique_id(
        self, filename: str, content: str | bytes, full_path: str
    ) -> str | None:
        """Upload into ``full_path`` and return the new file's UniqueId."""
        response = self._client.upload_file(filename, content, full_path, self.site_path or None)
        unique_id = parse_field(response.body, FIELD_UNIQUE_ID)
        return str(unique_id) if unique_id else None

    def download_document(self, filename: str, folder_path: str) -> bytes:
        """Return the contents of a document.

        Raises:
            DownloadError: If the download fails.
        """
        file_path = server_relative_url(self.build_full_path(folder_path), filename)
        try:
            result = self._client.download(file_path, self.site_path or None)
        except _REQUEST_ERRORS as exc:
            raise DownloadError(f"Failed to download document: {exc}") from exc
        return result.file_contents

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def grant_permissions(
        self, filename: str, folder_path: str, user_emails: Any, role_id: int | None
    ) -> bool:
        """Give each user the role ``role_id`` on a document.

        Role inheritance is broken first (existing assignments are copied).

        Args:
            filename: Name of the document.
            folder_path: Folder below the base folder.
            user_emails: List of user e-mail addresses.
            role_id: Role definition id, e.g. 1073741827 for Contribute.

        Returns:
            True once every assignment was added.

        Raises:
            SharePointPermissionError: On invalid arguments or failed requests.
        """
        if user_emails is None:
            raise SharePointPermissionError("user_emails cannot be None")
        if not isinstance(user_emails, list | tuple):
            raise SharePointPermissionError("user_emails must be a list")
        if not user_emails:
            raise SharePointPermissionError("user_emails cannot be empty")
        if role_id is None:
            raise SharePointPermissionError("role_id is required")

        try:
            self.break_role_inheritance(filename, folder_path)
            for email in user_emails:
                user_id = self.ensure_user(email)
                self.add_role_assignment(filename, folder_path, user_id, role_id)
        except _REQUEST_ERRORS as exc:
            raise SharePointPermissionError(f"Failed to grant permissions: {exc}") from exc

        logger.info(
            "[collaboration_grant_permissions] granted role; filename:%s;role_id:%s;user_count:%d",
            filename,
            role_id,
            len(user_emails),
        )
        return True

    def revoke_user_permission(self, filename: str, folder_path: str, user_email: str) -> bool:
        """Remove every role assignment of one user on a document.

        Raises:
            SharePointPermissionError: If the user lookup or the removal fails.
        """
        try:
            user_id = self.get_user_id(user_email)
            self.remove_role_assignment(filename, folder_path, user_id)
        except _REQUEST_ERRORS as exc:
            raise SharePointPermissionError(
                f"Failed to revoke permission for {user_email}: {exc}"
            ) from exc
        return True

    def revoke_all_permissions(self, filename: str, folder_path: str) -> bool:
        """Drop unique permissions so the document inherits from its folder again.

        Raises:
            SharePointPermissionError: If resetting the inheritance fails.
        """
        try:
            self.reset_role_inheritance(filename, folder_path)
        except _REQUEST_ERRORS as exc:
            raise SharePointPermissionError(f"Failed to revoke all permissions: {exc}") from exc
        return True

    def ensure_user(self, email: str) -> int:
        """Resolve (adding to the site if needed) a user and return its principal id."""
        url = f"{self._client.urls.web_api_url(self.site_path or None)}ensureuser"
        body = f"{{ 'logonName': '{json_escape_single_quote(email)}' }}"
        response = self._post(url, headers={"Content-Type": JSON_VERBOSE}, body=body)
        check_and_raise_failure(response)
        return int(parse_field(response.body, FIELD_ID))

    def get_user_id(self, email: str) -> int:
        """Return the principal id of an existing site user."""
        literal = uri_escape(odata_escape_single_quote(email))
        web_url = self._client.urls.web_api_url(self.site_path or None)
        url = f"{web_url}siteusers/getbyemail('{literal}')"
        response = self._client.executor.get_json(url)
        check_and_raise_failure(response)
        return int(parse_field(response.body, FIELD_ID))

    def break_role_inheritance(self, filename: str, folder_path: str) -> None:
        url = self._item_url(
            filename,
            folder_path,
            "/breakroleinheritance(copyRoleAssignments=true,clearSubscopes=true)",
        )
        check_and_raise_failure(self._post(url))

    def reset_role_inheritance(self, filename: str, folder_path: str) -> None:
        url = self._item_url(filename, folder_path, "/resetroleinheritance")
        check_and_raise_failure(self._post(url))

    def add_role_assignment(
        self, filename: str, folder_path: str, principal_id: int, role_id: int
    ) -> None:
        url = self._item_url(
            filename,
            folder_path,
            f"/roleassignments/addroleassignment(principalid={principal_id},roledefid={role_id})",
        )
        check_and_raise_failure(self._post(url))

    def remove_role_assignment(self, filename: str, folder_path: str, principal_id: int) -> None:
        url = self._item_url(
            filename, folder_path, f"/roleassignments/getbyprincipalid({principal_id})"
        )
        check_and_raise_failure(self._post(url, headers={"X-HTTP-Method": "DELETE"}))

    # ------------------------------------------------------------------
    # Web edit URLs
    # ------------------------------------------------------------------

    def get_file_unique_id(self, server_relative: str) -> str | None:
        """Return the UniqueId of a file, or None when it cannot be looked up."""
        url = self._client.urls.file_url(
            server_relative,
            f"?{build_odata_query(select=[FIELD_UNIQUE_ID])}",
            self.site_path or None,
        )
        try:
            response = self._client.executor.get_json(url)
            if not response.ok:
                logger.info(
                    "[collaboration_unique_id] file not found; url:%s;status:%d",
                    url,
                    response.status_code,
                )
                return None
            unique_id = parse_field(response.body, FIELD_UNIQUE_ID)
        except _REQUEST_ERRORS as exc:
            logger.warning("[collaboration_unique_id] lookup failed; url:%s;error:%s", url, exc)
            return None
        return str(unique_id) if unique_id else None

    def get_web_edit_url(
        self, filename: str, folder_path: str, unique_id: str | None = None
    ) -> str:
        """Return the Office web URL for editing a document.

        Falls back to the folder URL when the document's UniqueId is unknown.
        """
        if not unique_id:
            srv_url = self.build_server_relative_url(filename, folder_path)
            unique_id = self.get_file_unique_id(srv_url)
        if not unique_id:
            folder = server_relative_url(self.site_path, self.build_full_path(folder_path))
            return f"{self.base_uri}{uri_escape(folder)}"

        office_type = detect_office_type(filename)
        doc_path = server_relative_url(self.site_path, "_layouts/15/Doc.aspx")
        return (
            f"{self.base_uri}/:{office_type}:/r{doc_path}"
            f"?sourcedoc=%7B{unique_id.upper()}%7D&file={quote(filename)}"
            "&action=default&mobileredirect=true"
        )

    # ------------------------------------------------------------------
    # Existence and deletion
    # ------------------------------------------------------------------

    def document_exists(self, filename: str, folder_path: str) -> bool:
        file_path = server_relative_url(self.build_full_path(folder_path), filename)
        return self._client.document_exists(file_path, self.site_path or None)

    def delete_document(self, filename: str, folder_path: str) -> bool:
        """Delete a document.

        Raises:
            DeleteError: If the request fails or SharePoint rejects it.
        """
        url = self._client.urls.file_url(
            self.build_server_relative_url(filename, folder_path), site_path=self.site_path or None
        )
        try:
            response = self._post(url, headers={"X-HTTP-Method": "DELETE", "If-Match": "*"})
        except _REQUEST_ERRORS as exc:
            raise DeleteError(f"Failed to delete document: {exc}") from exc
        if not response.ok:
            raise DeleteError(f"Failed to delete document: HTTP {response.status_code}")
        logger.info("[collaboration_delete] deleted document; filename:%s", filename)
        return True

    def delete_folder(self, folder_path: str) -> bool:
        """Delete a folder below the base folder, with its contents.

        Raises:
            DeleteError: If the request fails or SharePoint rejects it.
        """
        folder = server_relative_url(self.site_path, self.build_full_path(folder_path))
        url = self._client.urls.folder_url(folder, site_path=self.site_path or None)
        try:
            response = self._post(url, headers={"X-HTTP-Method": "DELETE", "If-Match": "*"})
        except _REQUEST_ERRORS as exc:
            raise DeleteError(f"Failed to delete folder: {exc}") from exc
        if not response.ok:
            raise DeleteError(
                f"Failed to delete folder: HTTP {response.status_code}: {response.text}"
            )
        logger.info("[collaboration_delete] deleted folder; folder:%s", folder)
        return True
