import pytest
import requests

from market_finder.http import HttpClient


class FakeResponse:
    def __init__(self, status_code, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, params=None, data=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "data": data})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        return None


def make_client(responses, retry_max=3):
    client = HttpClient(timeout=1, retry_max=retry_max, backoff_base=0.0, backoff_max=0.0)
    client.session = FakeSession(responses)
    return client


def test_post_form_sends_data_and_returns_json():
    client = make_client([FakeResponse(200, {"elements": []})])
    assert client.post_form("https://overpass.test", {"data": "q"}) == {"elements": []}
    call = client.session.calls[0]
    assert call["method"] == "POST"
    assert call["data"] == {"data": "q"}


def test_retries_server_errors_then_succeeds():
    client = make_client([FakeResponse(503), FakeResponse(429, headers={"Retry-After": "0"}), FakeResponse(200, [1])])
    assert client.get_json("https://api.test/markets") == [1]
    assert len(client.session.calls) == 3


def test_retries_connection_errors():
    client = make_client([requests.ConnectionError("reset"), FakeResponse(200, {"ok": True})])
    assert client.get_json("https://api.test") == {"ok": True}


def test_gives_up_after_retry_max():
    client = make_client([FakeResponse(502), FakeResponse(502)], retry_max=2)
    with pytest.raises(requests.HTTPError):
        client.get_json("https://api.test")


def test_client_error_is_not_retried():
    client = make_client([FakeResponse(404), FakeResponse(200, {})])
    with pytest.raises(requests.HTTPError):
        client.get_json("https://api.test")
    assert len(client.session.calls) == 1


def test_non_json_body_raises_value_error():
    client = make_client([FakeResponse(200)])
    with pytest.raises(ValueError):
        client.get_json("https://api.test")
