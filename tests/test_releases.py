from __future__ import annotations

import orjson
import pytest
import requests

import cdn_pipeline.tools.releases as rel
from cdn_pipeline.tools.releases import ReleaseClient, parse_release, select_asset


class FakeResp:
    def __init__(self, content: bytes, status: int = 200):
        self.content = content
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status code {self.status_code}")


RELEASE_JSON = {
    "tag_name": "DepotDownloader_3.0.0",
    "assets": [
        {"name": "DepotDownloader-linux-arm64.zip", "browser_download_url": "https://x/arm64.zip"},
        {"name": "DepotDownloader-linux-x64.zip", "browser_download_url": "https://x/x64.zip"},
    ],
}


def test_select_asset_by_suffix():
    release = parse_release(RELEASE_JSON)
    assert release.tag == "DepotDownloader_3.0.0"
    assert select_asset(release, "linux-x64.zip").download_url == "https://x/x64.zip"


def test_select_asset_missing_raises():
    with pytest.raises(RuntimeError, match="not found"):
        select_asset(parse_release(RELEASE_JSON), "windows-x64.zip")


def test_latest_release_queries_github(monkeypatch):
    calls: list[tuple[str, dict]] = []

    def fake_get(url, timeout, headers, allow_redirects):
        calls.append((url, headers))
        return FakeResp(orjson.dumps(RELEASE_JSON))

    monkeypatch.setattr(rel.requests, "get", fake_get)

    client = ReleaseClient("ua-test", timeout_sec=5, max_retries=1)
    release = client.latest_release("SteamRE/DepotDownloader")

    assert calls[0][0] == "https://api.github.com/repos/SteamRE/DepotDownloader/releases/latest"
    assert calls[0][1]["User-Agent"] == "ua-test"
    assert [a.name for a in release.assets] == [
        "DepotDownloader-linux-arm64.zip",
        "DepotDownloader-linux-x64.zip",
    ]


def test_http_error_is_raised_after_retries(monkeypatch):
    attempts = {"n": 0}

    def fake_get(url, timeout, headers, allow_redirects):
        attempts["n"] += 1
        return FakeResp(b"", status=503)

    monkeypatch.setattr(rel.requests, "get", fake_get)

    client = ReleaseClient("ua", timeout_sec=5, max_retries=1)
    with pytest.raises(requests.HTTPError):
        client.get("https://x/y")
    assert attempts["n"] == 1


def test_download_returns_body(monkeypatch):
    monkeypatch.setattr(rel.requests, "get", lambda url, **kw: FakeResp(b"PK\x03\x04"))
    client = ReleaseClient("ua", timeout_sec=5, max_retries=1)
    asset = select_asset(parse_release(RELEASE_JSON), "x64.zip")
    assert client.download(asset) == b"PK\x03\x04"
