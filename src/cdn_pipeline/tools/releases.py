from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import orjson
import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

GITHUB_API = "https://api.github.com"


@dataclass
class Asset:
    name: str
    download_url: str


@dataclass
class Release:
    tag: str
    assets: list[Asset]


def parse_release(obj: dict[str, Any]) -> Release:
    assets = [
        Asset(name=str(a["name"]), download_url=str(a["browser_download_url"]))
        for a in obj.get("assets", []) or []
    ]
    return Release(tag=str(obj.get("tag_name", "")), assets=assets)


def select_asset(release: Release, suffix: str) -> Asset:
    for asset in release.assets:
        if asset.name.endswith(suffix):
            return asset
    raise RuntimeError(f"asset with suffix {suffix} not found in latest release")


class ReleaseClient:
    def __init__(self, user_agent: str, timeout_sec: int, max_retries: int = 3):
        self.ua = user_agent
        self.timeout = timeout_sec
        self.max_retries = max(max_retries, 1)

    def get(self, url: str) -> requests.Response:
        # tenacity decorator built per call so max_retries comes from config
        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(requests.RequestException),
            reraise=True,
        )
        def _get() -> requests.Response:
            r = requests.get(url, timeout=self.timeout, headers={"User-Agent": self.ua}, allow_redirects=True)
            r.raise_for_status()
            return r

        return _get()

    def latest_release(self, repo: str) -> Release:
        r = self.get(f"{GITHUB_API}/repos/{repo}/releases/latest")
        try:
            obj = orjson.loads(r.content)
        except orjson.JSONDecodeError as e:
            raise RuntimeError(f"failed to decode release JSON for {repo}: {e}") from e
        return parse_release(obj)

    def download(self, asset: Asset) -> bytes:
        return self.get(asset.download_url).content
