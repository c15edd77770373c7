"""Tests for ro.platform.http module."""

from ro.core.result import Err, Ok
from ro.platform.http import HttpClient, HttpError, MockHttpClient, RealHttpClient


class TestHttpError:
    def test_str_with_status(self) -> None:
        error = HttpError(url="https://x", status=503, message="Service Unavailable")
        assert str(error) == "HTTP 503: Service Unavailable (https://x)"

    def test_str_network_error(self) -> None:
        error = HttpError(url="https://x", status=0, message="Request timed out")
        assert str(error) == "Request timed out (https://x)"

    def test_not_found(self) -> None:
        assert HttpError(url="u", status=404, message="Not Found").not_found
        assert not HttpError(url="u", status=500, message="boom").not_found


class TestMockHttpClient:
    def test_canned_body(self) -> None:
        http = MockHttpClient()
        http.add("https://x/a", "body")
        assert http.get_text("https://x/a") == Ok("body")
        assert http.requested == ["https://x/a"]

    def test_unknown_url_is_404(self) -> None:
        result = MockHttpClient().get_text("https://x/missing")
        assert isinstance(result, Err)
        assert result.error.not_found

    def test_satisfies_protocol(self) -> None:
        assert isinstance(MockHttpClient(), HttpClient)
        assert isinstance(RealHttpClient(), HttpClient)


def test_real_client_reports_bad_url_as_error() -> None:
    result = RealHttpClient(timeout=1).get_text("not-a-url")
    assert isinstance(result, Err)
    assert result.error.status == 0
