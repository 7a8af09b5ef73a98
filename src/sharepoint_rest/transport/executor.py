"""HTTP request execution with authentication and redirect bookkeeping."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import requests

from sharepoint_rest.errors import RequestFailedError
from sharepoint_rest.odata.escaping import decode_escape_sequences

if TYPE_CHECKING:
    from sharepoint_rest.auth.provider import AuthProvider

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5

JSON_VERBOSE = "application/json;odata=verbose"
JSON_HEADERS = {"Accept": JSON_VERBOSE}

_STATUS_LINE_RE = re.compile(r"^HTTP/\S+\s+(\d{3})")
_LOCATION_RE = re.compile(r"^location:\s*(.*?)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class HttpResponse:
    """Status, body and headers of a completed request.

    ``raw_headers`` holds the header blocks of every hop (redirects first,
    final response last), each starting with its status line.
    """

    status_code: int
    url: str
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    raw_headers: str = ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code <= 299

    def json(self) -> Any:
        return json.loads(self.body)


def check_and_raise_failure(response: HttpResponse) -> None:
    """Raise RequestFailedError unless the response status is within 200-299."""
    if not response.ok:
        raise RequestFailedError(response.status_code, response.url, response.text)


def last_location_header(response: HttpResponse) -> str | None:
    """Return the decoded ``Location`` of the last 302 hop, if any.

    Args:
        response: Response whose ``raw_headers`` may contain redirect hops.

    Returns:
        URL-decoded Location value, or None if no 302 carried one.
    """
    location: str | None = None
    in_redirect_block = False
    for line in response.raw_headers.splitlines():
        status = _STATUS_LINE_RE.match(line)
        if status is not None:
            in_redirect_block = status.group(1) == "302"
            continue
        if in_redirect_block:
            match = _LOCATION_RE.match(line)
            if match is not None:
                location = match.group(1)
    if location is None:
        return None
    return decode_escape_sequences(location)


def _format_raw_headers(responses: list[requests.Response]) -> str:
    blocks = []
    for hop in responses:
        lines = [f"HTTP/1.1 {hop.status_code} {hop.reason or ''}".rstrip()]
        lines += [f"{name}: {value}" for name, value in hop.headers.items()]
        blocks.append("\r\n".join(lines) + "\r\n")
    return "\r\n".join(blocks)


class RequestExecutor:
    """Issues authenticated requests through a shared requests session."""

    def __init__(
        self,
        auth_provider: AuthProvider,
        transport_options: Mapping[str, Any] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialise the executor.

        Args:
            auth_provider: Source of per-request credentials.
            transport_options: Keyword arguments forwarded to every request
                (e.g. ``verify``, ``timeout``, ``proxies``).
            session: Session to use; a new one is created when omitted.
        """
        self._auth_provider = auth_provider
        self._transport_options = dict(transport_options or {})
        self._session = session or requests.Session()
        self._session.max_redirects = MAX_REDIRECTS

    @property
    def session(self) -> requests.Session:
        return self._session

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
        follow_redirects: bool = False,
    ) -> HttpResponse:
        """Perform a request and return its status, body and headers.

        Non-2xx responses are returned, not raised; use check_and_raise_failure.
        """
        merged_headers = {**self._auth_provider.headers(), **(headers or {})}
        data = body.encode("utf-8") if isinstance(body, str) else body
        response = self._session.request(
            method,
            url,
            headers=merged_headers,
            data=data,
            auth=self._auth_provider.auth(),
            allow_redirects=follow_redirects,
            **self._transport_options,
        )
        logger.debug(
            "[request] completed; method:%s;url:%s;status:%d;redirects:%d",
            method,
            url,
            response.status_code,
            len(response.history),
        )
        return HttpResponse(
            status_code=response.status_code,
            url=url,
            body=response.content,
            headers=dict(response.headers),
            raw_headers=_format_raw_headers([*response.history, response]),
        )

    def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        follow_redirects: bool = False,
    ) -> HttpResponse:
        return self.request("GET", url, headers=headers, follow_redirects=follow_redirects)

    def get_json(self, url: str) -> HttpResponse:
        return self.get(url, headers=JSON_HEADERS)

    def post(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
    ) -> HttpResponse:
        return self.request("POST", url, headers=headers, body=body if body is not None else "")
