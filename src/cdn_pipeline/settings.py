# src/cdn_pipeline/settings.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class ToolSpec:
    name: str
    repo: str             # "<owner>/<name>" on GitHub
    asset_suffix: str     # template with {os} and {arch}
    executable: str


DEFAULT_TOOLS: list[ToolSpec] = [
    ToolSpec(
        name="DepotDownloader",
        repo="SteamRE/DepotDownloader",
        asset_suffix="DepotDownloader-{os}-{arch}.zip",
        executable="DepotDownloader",
    ),
    ToolSpec(
        name="ValveResourceFormat",
        repo="ValveResourceFormat/ValveResourceFormat",
        asset_suffix="cli-{os}-{arch}.zip",
        executable="Source2Viewer-CLI",
    ),
]


@dataclass
class Cfg:
    # project/storage
    local_root: Path

    # tools
    tools_dir: Path
    tools: list[ToolSpec]
    depot_downloader: str      # executable name of the depot fetcher
    source2viewer: str         # executable name of the VPK extractor

    # depot
    app_id: str
    depot_id: str
    data_dir: Path             # absolute path
    manifest_timeout_sec: int

    # vpk
    vpk_dir_file: str          # depot-relative path, e.g. "game/csgo/pak01_dir.vpk"
    image_prefix: str          # logical path inside the VPK
    segment_base_dir: str      # depot-relative directory of the segments
    segment_template: str

    # extract / publish
    output_dir: Path           # absolute path
    image_suffix: str
    rename_remove: str
    cdn_base_url: str
    cdn_manifest: Path         # absolute path

    # http
    user_agent: str
    http_timeout_sec: int
    http_max_retries: int

    # state
    identity_path: Path        # absolute path

    @property
    def vpk_dir_path(self) -> Path:
        """Local path of the VPK directory file once the depot fetcher wrote it."""
        return self.data_dir / self.vpk_dir_file


def _as_rooted_path(root: Path, p: str | Path) -> Path:
    """Resolve a possibly-relative path under root."""
    pp = Path(p)
    return pp if pp.is_absolute() else (root / pp)


def _section(obj: dict[str, Any], name: str) -> dict[str, Any]:
    sec = obj.get(name, {}) or {}
    if not isinstance(sec, dict):
        raise ValueError(f"config section '{name}' must be a mapping")
    return sec


def _load_tools(raw: Any) -> list[ToolSpec]:
    if raw is None:
        return list(DEFAULT_TOOLS)
    if not isinstance(raw, list) or not raw:
        raise ValueError("tools.managed must be a non-empty list")
    out: list[ToolSpec] = []
    for i, t in enumerate(raw):
        try:
            out.append(
                ToolSpec(
                    name=str(t["name"]),
                    repo=str(t["repo"]),
                    asset_suffix=str(t["asset_suffix"]),
                    executable=str(t["executable"]),
                )
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"tools.managed[{i}] is missing a field: {e}") from e
    return out


def load_cfg(path: str | Path) -> Cfg:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"[CONFIG NOT FOUND] {path}")

    obj = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(obj, dict):
        raise ValueError("pipeline config root must be a mapping (YAML dict)")

    storage = _section(obj, "storage")
    tools = _section(obj, "tools")
    depot = _section(obj, "depot")
    vpk = _section(obj, "vpk")
    extract = _section(obj, "extract")
    cdn = _section(obj, "cdn")
    http = _section(obj, "http")
    state = _section(obj, "state")

    # Tools run with absolute paths, so anchor the root once here
    local_root = Path(storage.get("local_root", ".")).resolve()

    return Cfg(
        # project/storage
        local_root=local_root,

        # tools
        tools_dir=_as_rooted_path(local_root, tools.get("dir", "tools")),
        tools=_load_tools(tools.get("managed")),
        depot_downloader=str(tools.get("depot_downloader", "DepotDownloader")),
        source2viewer=str(tools.get("source2viewer", "Source2Viewer-CLI")),

        # depot
        app_id=str(depot.get("app", "730")),
        depot_id=str(depot.get("depot", "2347770")),
        data_dir=_as_rooted_path(local_root, depot.get("data_dir", "data")),
        manifest_timeout_sec=int(depot.get("manifest_timeout_sec", 60)),

        # vpk
        vpk_dir_file=str(vpk.get("dir_file", "game/csgo/pak01_dir.vpk")),
        image_prefix=str(vpk.get("image_prefix", "panorama/images/econ")),
        segment_base_dir=str(vpk.get("segment_base_dir", "game/csgo")),
        segment_template=str(vpk.get("segment_template", "pak01_{:03d}.vpk")),

        # extract / publish
        output_dir=_as_rooted_path(local_root, extract.get("output_dir", "static")),
        image_suffix=str(extract.get("image_suffix", ".png")),
        rename_remove=str(extract.get("rename_remove", "_png")),
        cdn_base_url=str(cdn.get("base_url", "https://cdn.jsdelivr.net/gh/SkinDelta/go-cs2-cdn@main/")),
        cdn_manifest=_as_rooted_path(local_root, cdn.get("manifest_path", "cdn.json")),

        # http
        user_agent=str(http.get("user_agent", "depot-cdn/0.1")),
        http_timeout_sec=int(http.get("timeout_sec", 30)),
        http_max_retries=int(http.get("max_retries", 3)),

        # state
        identity_path=_as_rooted_path(local_root, state.get("identity_path", "manifest_id.txt")),
    )
