# src/cdn_pipeline/tools/provision.py
from __future__ import annotations

import io
import platform
import shutil
import sys
import zipfile
from pathlib import Path
from typing import Iterable, Optional

from cdn_pipeline.common.log import LogSink, console
from cdn_pipeline.settings import ToolSpec
from cdn_pipeline.tools.releases import ReleaseClient, select_asset


def detect_os() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def detect_arch() -> str:
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        return "x64"
    if machine in ("aarch64", "arm64"):
        return "arm64"
    if machine.startswith("arm"):
        return "arm"
    return "x64"


def asset_suffix(tool: ToolSpec, os_name: Optional[str] = None, arch: Optional[str] = None) -> str:
    return tool.asset_suffix.format(os=os_name or detect_os(), arch=arch or detect_arch())


def local_executable(executable: str, os_name: Optional[str] = None) -> str:
    if (os_name or detect_os()) == "windows" and not executable.endswith(".exe"):
        return executable + ".exe"
    return executable


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def extract_zip(data: bytes, target_dir: Path, log: LogSink = console) -> list[Path]:
    """
    Unpack a ZIP archive (as bytes) into target_dir, keeping its internal layout.

    Raises ValueError for any member that would land outside target_dir.
    Nothing is written when the archive contains such a member.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        members = [info for info in zf.infolist() if not info.is_dir()]

        for info in members:
            out_path = target_dir / info.filename
            if not _is_within(out_path, target_dir):
                raise ValueError(f"illegal file path: {info.filename}")

        for info in members:
            out_path = target_dir / info.filename
            out_path.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, out_path.open("wb") as dst:
                shutil.copyfileobj(src, dst)
            written.append(out_path)
            log(f"[TOOLS] extracted {info.filename} -> {out_path}")

    return written


def install_tool(
    tool: ToolSpec,
    tools_dir: Path,
    client: ReleaseClient,
    log: LogSink = console,
) -> None:
    suffix = asset_suffix(tool)
    try:
        release = client.latest_release(tool.repo)
        asset = select_asset(release, suffix)
        log(f"[TOOLS] downloading {tool.name} from {asset.download_url}")
        data = client.download(asset)
    except Exception as e:
        raise RuntimeError(f"failed to download {tool.name}: {e}") from e

    log(f"[TOOLS] extracting {tool.name}...")
    extract_zip(data, tools_dir, log=log)


def ensure_tools(
    tools: Iterable[ToolSpec],
    tools_dir: Path,
    client: ReleaseClient,
    log: LogSink = console,
) -> list[Path]:
    """Make sure every managed tool is present and executable. Returns the executable paths."""
    tools = list(tools)
    tools_dir.mkdir(parents=True, exist_ok=True)

    for tool in tools:
        exec_path = tools_dir / local_executable(tool.executable)
        if exec_path.is_file():
            log(f"[TOOLS] {tool.name} already exists. Skipping download.")
            continue
        log(f"[TOOLS] {tool.name} not found. Downloading...")
        install_tool(tool, tools_dir, client, log=log)
        log(f"[TOOLS] {tool.name} downloaded and installed.")

    paths: list[Path] = []
    for tool in tools:
        exec_path = tools_dir / local_executable(tool.executable)
        try:
            exec_path.chmod(0o755)
        except OSError as e:
            raise RuntimeError(f"failed to set executable permissions for {tool.name}: {e}") from e
        paths.append(exec_path)
    return paths
