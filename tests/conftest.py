"""Shared fixtures: a fake EDGAR served through httpx.MockTransport."""

import json
from pathlib import Path
from typing import Callable, Optional, Union

import httpx
import pytest

from sec_packager.client import SECClient, TickerCache
from sec_packager.config import Settings

FIXTURES_DIR = Path(__file__).parent / "fixtures"

EXHIBIT_PAYLOADS = {
    "ex10-1.htm": b"c" * 51200,
    "ex99-1.htm": b"p" * 2048000,
    "ex21-1.htm": b"s" * 3000,
}


def load_text(name: str) -> str:
    return (FIXTURES_DIR / name).read_text()


def load_json(name: str):
    return json.loads(load_text(name))


class FakeEdgar:
    """
    Routes requests to fixture payloads and records every request.

    ``overrides`` maps a URL to a status code, a list of status codes
    (consumed one per request), or a callable returning a response.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, Union[int, list, Callable[[httpx.Request], httpx.Response]]] = {}

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        override = self.overrides.get(url)
        if callable(override):
            return override(request)
        if isinstance(override, list) and override:
            status = override.pop(0)
            if status != 200:
                return httpx.Response(status)
        elif isinstance(override, int):
            return httpx.Response(override)

        if url == "https://www.sec.gov/files/company_tickers.json":
            return httpx.Response(200, json=load_json("company_tickers.json"))
        if url == "https://data.sec.gov/submissions/CIK0000320193.json":
            return httpx.Response(200, json=load_json("submissions_recent.json"))
        if url == "https://data.sec.gov/submissions/CIK0000320193-submissions-001.json":
            return httpx.Response(200, json=load_json("submissions_page_001.json"))
        if url == "https://data.sec.gov/submissions/CIK0001234567.json":
            return httpx.Response(200, json={"filings": {"recent": {}}})
        if url.endswith("-index.html"):
            return httpx.Response(200, text=load_text("filing_index.html"))

        filename = url.rsplit("/", 1)[-1]
        if filename in EXHIBIT_PAYLOADS:
            return httpx.Response(200, content=EXHIBIT_PAYLOADS[filename])
        if url.startswith("https://www.sec.gov/Archives/"):
            return httpx.Response(200, content=f"<html>{filename}</html>".encode())
        return httpx.Response(404)


@pytest.fixture
def settings():
    """Settings with a User-Agent and no retry delay."""
    return Settings(user_agent="TestSuite test@example.com", backoff_base=0, max_attempts=3)


@pytest.fixture
def edgar():
    return FakeEdgar()


@pytest.fixture
def make_client(settings, edgar):
    """Factory for SECClient instances backed by the fake EDGAR."""
    clients = []

    def factory(client_settings: Optional[Settings] = None, sleep=None) -> SECClient:
        client = SECClient(
            client_settings or settings,
            http_client=httpx.Client(transport=httpx.MockTransport(edgar)),
            ticker_cache=TickerCache(),
            sleep=sleep or (lambda seconds: None),
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def client(make_client):
    return make_client()
