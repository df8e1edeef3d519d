from __future__ import annotations

import threading
from unittest import mock

import pytest
import requests

from docharvest.errors import FetchError, FetchTimeout
from docharvest.http_client import HttpClient


def _response(status: int, body: bytes = b"", headers: dict | None = None, url="u"):
    resp = mock.Mock()
    resp.status_code = status
    resp.headers = dict(headers or {})
    resp.url = url
    resp.content = body
    return resp


@pytest.fixture
def session():
    s = requests.Session()
    with mock.patch.object(s, "get") as get:
        yield s, get


def test_success_returns_body_and_headers(session):
    s, get = session
    get.return_value = _response(
        200,
        b"<html></html>",
        {"Content-Type": "text/html"},
        url="https://example.com/final",
    )

    res = HttpClient(s, timeout_s=5).get("https://example.com/start")

    assert res.status_code == 200
    assert res.body == b"<html></html>"
    assert res.final_url == "https://example.com/final"
    assert res.headers["Content-Type"] == "text/html"
    assert get.call_args.kwargs["timeout"] == 5


def test_client_errors_are_returned_not_raised(session):
    s, get = session
    get.return_value = _response(404)

    res = HttpClient(s).get("https://example.com/missing")

    assert res.status_code == 404
    assert get.call_count == 1


def test_timeout_maps_to_fetch_timeout(session):
    s, get = session
    get.side_effect = requests.exceptions.ReadTimeout("slow")

    with pytest.raises(FetchTimeout) as excinfo:
        HttpClient(s).get("https://example.com/slow")
    assert excinfo.value.url == "https://example.com/slow"


def test_connection_error_maps_to_fetch_error(session):
    s, get = session
    get.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(FetchError) as excinfo:
        HttpClient(s).get("https://example.com/down")
    assert not isinstance(excinfo.value, FetchTimeout)


def test_transient_status_is_retried_with_backoff(session):
    s, get = session
    get.side_effect = [_response(503), _response(200, b"ok")]

    with mock.patch("docharvest.http_client.time.sleep") as sleep:
        res = HttpClient(s, backoff_base_s=0.5).get("https://example.com/flaky")

    assert res.status_code == 200
    assert get.call_count == 2
    sleep.assert_called_once_with(0.5)


def test_retry_after_is_honoured_and_capped(session):
    s, get = session
    get.side_effect = [
        _response(429, headers={"Retry-After": "7"}),
        _response(429, headers={"Retry-After": "600"}),
        _response(200),
    ]

    with mock.patch("docharvest.http_client.time.sleep") as sleep:
        HttpClient(s, max_backoff_s=30).get("https://example.com/limited")

    assert [c.args[0] for c in sleep.call_args_list] == [7.0, 30]


def test_transient_status_is_returned_once_retries_are_spent(session):
    s, get = session
    get.return_value = _response(502)

    with mock.patch("docharvest.http_client.time.sleep"):
        res = HttpClient(s, max_transient_retries=1).get("https://example.com/bad")

    assert res.status_code == 502
    assert get.call_count == 2


def test_stop_request_cuts_the_retry_wait_short(session):
    s, get = session
    get.return_value = _response(503, headers={"Retry-After": "30"})
    stop = threading.Event()
    stop.set()

    with mock.patch("docharvest.http_client.time.sleep") as sleep:
        with pytest.raises(FetchError):
            HttpClient(s, stop_event=stop).get("https://example.com/busy")

    assert get.call_count == 1
    sleep.assert_not_called()


def test_retry_wait_goes_through_the_stop_event(session):
    s, get = session
    get.side_effect = [_response(503), _response(200)]
    stop = mock.Mock(spec=threading.Event)
    stop.wait.return_value = False

    res = HttpClient(s, backoff_base_s=0.5, stop_event=stop).get("https://x.test/")

    assert res.status_code == 200
    stop.wait.assert_called_once_with(0.5)
