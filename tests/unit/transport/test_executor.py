"""Unit tests for transport/executor.py: request execution and redirect headers."""

from unittest.mock import MagicMock

import pytest
import responses

from sharepoint_rest.errors import RequestFailedError
from sharepoint_rest.transport.executor import (
    MAX_REDIRECTS,
    HttpResponse,
    RequestExecutor,
    check_and_raise_failure,
    last_location_header,
)

BASE = "https://contoso.sharepoint.com"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _provider(headers: dict[str, str] | None = None) -> MagicMock:
    provider = MagicMock()
    provider.auth.return_value = None
    provider.headers.return_value = headers or {}
    return provider


def _response(status_code: int = 200, raw_headers: str = "") -> HttpResponse:
    return HttpResponse(
        status_code=status_code, url=f"{BASE}/x", body=b"body text", raw_headers=raw_headers
    )


# ---------------------------------------------------------------------------
# HttpResponse / check_and_raise_failure
# ---------------------------------------------------------------------------


class TestCheckAndRaiseFailure:
    @pytest.mark.parametrize("status_code", [200, 201, 204, 299])
    def test_success_does_not_raise(self, status_code: int) -> None:
        check_and_raise_failure(_response(status_code))

    @pytest.mark.parametrize("status_code", [199, 300, 302, 401, 404, 500])
    def test_failure_raises_with_status_and_body(self, status_code: int) -> None:
        with pytest.raises(RequestFailedError) as exc_info:
            check_and_raise_failure(_response(status_code))
        assert exc_info.value.status_code == status_code
        assert exc_info.value.body == "body text"
        assert f"Request failed, received {status_code}" in str(exc_info.value)

    def test_json_decodes_body(self) -> None:
        response = HttpResponse(status_code=200, url=BASE, body=b'{"d": {"a": 1}}')
        assert response.json() == {"d": {"a": 1}}


# ---------------------------------------------------------------------------
# last_location_header
# ---------------------------------------------------------------------------


class TestLastLocationHeader:
    def test_no_redirects(self) -> None:
        raw = "HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\n"
        assert last_location_header(_response(raw_headers=raw)) is None

    def test_returns_last_302_location_decoded(self) -> None:
        raw = (
            "HTTP/1.1 302 Found\r\nLocation: https://a.example/first\r\n\r\n"
            "HTTP/1.1 302 Found\r\nlocation: https://b.example/My%20File.pdf\r\n\r\n"
            "HTTP/1.1 200 OK\r\nContent-Length: 3\r\n"
        )
        assert last_location_header(_response(raw_headers=raw)) == (
            "https://b.example/My File.pdf"
        )

    def test_ignores_location_of_non_302_hops(self) -> None:
        raw = (
            "HTTP/1.1 302 Found\r\nLocation: https://a.example/first\r\n\r\n"
            "HTTP/1.1 301 Moved Permanently\r\nLocation: https://b.example/second\r\n\r\n"
            "HTTP/1.1 200 OK\r\n"
        )
        assert last_location_header(_response(raw_headers=raw)) == "https://a.example/first"


# ---------------------------------------------------------------------------
# RequestExecutor
# ---------------------------------------------------------------------------


class TestRequestExecutor:
    def test_session_redirect_cap(self) -> None:
        executor = RequestExecutor(_provider())
        assert executor.session.max_redirects == MAX_REDIRECTS

    @responses.activate
    def test_merges_auth_headers_and_returns_body(self) -> None:
        responses.add(responses.GET, f"{BASE}/_api/web", body=b"ok", status=200)

        executor = RequestExecutor(_provider({"Authorization": "Bearer t"}))
        response = executor.get_json(f"{BASE}/_api/web")

        assert response.status_code == 200
        assert response.body == b"ok"
        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Bearer t"
        assert request.headers["Accept"] == "application/json;odata=verbose"

    @responses.activate
    def test_non_2xx_is_returned_not_raised(self) -> None:
        responses.add(responses.GET, f"{BASE}/missing", body=b"nope", status=404)

        response = RequestExecutor(_provider()).get(f"{BASE}/missing")

        assert response.status_code == 404
        assert response.ok is False

    @responses.activate
    def test_post_sends_empty_body_by_default(self) -> None:
        responses.add(responses.POST, f"{BASE}/_api/contextinfo", body=b"{}", status=200)

        RequestExecutor(_provider()).post(f"{BASE}/_api/contextinfo")

        assert responses.calls[0].request.body in (b"", "", None)

    @responses.activate
    def test_redirects_not_followed_by_default(self) -> None:
        responses.add(
            responses.GET, f"{BASE}/a", status=302, headers={"Location": f"{BASE}/b"}
        )

        response = RequestExecutor(_provider()).get(f"{BASE}/a")

        assert response.status_code == 302
        assert len(responses.calls) == 1

    @responses.activate
    def test_follows_redirects_and_records_hops(self) -> None:
        responses.add(
            responses.GET, f"{BASE}/a", status=302, headers={"Location": f"{BASE}/b%20c"}
        )
        responses.add(responses.GET, f"{BASE}/b%20c", body=b"file", status=200)

        response = RequestExecutor(_provider()).get(f"{BASE}/a", follow_redirects=True)

        assert response.status_code == 200
        assert response.body == b"file"
        assert response.raw_headers.startswith("HTTP/1.1 302")
        assert last_location_header(response) == f"{BASE}/b c"

    def test_forwards_transport_options(self) -> None:
        session = MagicMock()
        session.request.return_value = MagicMock(
            status_code=200, content=b"", headers={}, history=[], reason="OK"
        )

        executor = RequestExecutor(
            _provider(), {"verify": False, "timeout": 5}, session=session
        )
        executor.get(f"{BASE}/x")

        kwargs = session.request.call_args.kwargs
        assert kwargs["verify"] is False
        assert kwargs["timeout"] == 5
        assert kwargs["allow_redirects"] is False
