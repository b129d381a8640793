from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from runes_diff.errors import SourceUnavailable
from runes_diff.ord_client import OrdClient


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(body)
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.headers: dict[str, str] = {}
        self.requested: list[tuple[str, float]] = []
        self.closed = False

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.requested.append((url, timeout))
        result = self.routes[url]
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


def _client(routes: dict[str, Any]) -> tuple[OrdClient, FakeSession]:
    session = FakeSession(routes)
    return OrdClient("http://127.0.0.1:8080/", timeout=7, session=session), session


def test_requests_json_from_base_url() -> None:
    client, session = _client({"http://127.0.0.1:8080/blockheight": FakeResponse(body=840000)})

    assert client.get_block_height() == 840000
    assert session.headers["Accept"] == "application/json"
    assert session.requested == [("http://127.0.0.1:8080/blockheight", 7)]


def test_empty_index_reports_no_height() -> None:
    client, _ = _client({"http://127.0.0.1:8080/blockheight": FakeResponse(body=None)})
    assert client.get_block_height() is None


def test_connection_error_becomes_source_unavailable() -> None:
    error = requests.exceptions.ConnectionError("refused")
    client, _ = _client({"http://127.0.0.1:8080/blockheight": error})

    with pytest.raises(SourceUnavailable) as info:
        client.get_block_height()

    assert info.value.endpoint == "/blockheight"
    assert info.value.cause is error
    assert client.health_check() is False


def test_http_error_becomes_source_unavailable() -> None:
    client, _ = _client({"http://127.0.0.1:8080/runes/balances": FakeResponse(status_code=500, text="boom")})

    with pytest.raises(SourceUnavailable):
        client.get_rune_balances()


def test_html_body_becomes_source_unavailable() -> None:
    client, _ = _client({"http://127.0.0.1:8080/runes/0": FakeResponse(text="<html></html>")})

    with pytest.raises(SourceUnavailable):
        client.get_runes_page(0)


def test_runes_page_shape_is_checked() -> None:
    page = {"entries": [["840000:1", {"spaced_rune": "A"}]], "more": True}
    client, _ = _client(
        {
            "http://127.0.0.1:8080/runes/0": FakeResponse(body=page),
            "http://127.0.0.1:8080/runes/1": FakeResponse(body={"more": False}),
        }
    )

    assert client.get_runes_page(0) == page
    with pytest.raises(SourceUnavailable):
        client.get_runes_page(1)


def test_rune_name_is_url_quoted() -> None:
    url = "http://127.0.0.1:8080/rune/UNCOMMON%E2%80%A2GOODS"
    client, session = _client({url: FakeResponse(body={"id": "1:0", "entry": {}})})

    assert client.get_rune("UNCOMMON•GOODS") == {"id": "1:0", "entry": {}}
    assert session.requested[0][0] == url


def test_context_manager_closes_session() -> None:
    client, session = _client({})
    with client:
        pass
    assert session.closed is True


def test_default_session_mounts_retry_adapter() -> None:
    client = OrdClient("http://127.0.0.1:8080", max_retries=0)
    adapter = client.session.get_adapter("http://127.0.0.1:8080/blockheight")
    assert adapter.max_retries.total == 0
    client.close()


@pytest.mark.parametrize(
    "entry",
    [["840000:1"], ["840000:1", None], {"id": "840000:1"}, ["840000:1", {}, "extra"]],
)
def test_malformed_listing_entry_is_source_unavailable(entry) -> None:
    page = {"entries": [["840000:0", {"spaced_rune": "A"}], entry], "more": False}
    client, _ = _client({"http://127.0.0.1:8080/runes/0": FakeResponse(body=page)})

    with pytest.raises(SourceUnavailable) as info:
        client.get_runes_page(0)

    assert info.value.endpoint == "/runes/0"
    assert "Entry 1" in str(info.value)


def test_connection_pool_follows_pool_maxsize() -> None:
    client = OrdClient("http://127.0.0.1:8080", pool_maxsize=16)
    adapter = client.session.get_adapter("http://127.0.0.1:8080/runes/balances")
    assert adapter._pool_maxsize == 16
    client.close()
