from __future__ import annotations

from pathlib import Path

import orjson

from cdn_pipeline.common.log import LogSink, console


def load_cdn_manifest(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    raw = path.read_bytes()
    if not raw.strip():
        return {}
    obj = orjson.loads(raw)
    if not isinstance(obj, dict):
        raise ValueError(f"CDN manifest must be a JSON object: {path}")
    return {str(k): str(v) for k, v in obj.items()}


def dump_cdn_manifest(path: Path, entries: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(entries, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))


def scan_published_files(scan_dir: Path, project_root: Path, suffix: str = ".png") -> list[str]:
    """Posix paths relative to project_root of every file under scan_dir ending with suffix."""
    if not scan_dir.exists():
        return []
    suffix = suffix.lower()
    out: list[str] = []
    for p in sorted(scan_dir.rglob("*")):
        if p.is_file() and p.name.lower().endswith(suffix):
            out.append(p.relative_to(project_root).as_posix())
    return out


def update_cdn_manifest(
    manifest_path: Path,
    scan_dir: Path,
    project_root: Path,
    base_url: str,
    suffix: str = ".png",
    log: LogSink = console,
) -> int:
    """Read-merge-write the CDN manifest. Returns the total number of entries."""
    entries = load_cdn_manifest(manifest_path)
    before = len(entries)

    for rel in scan_published_files(scan_dir, project_root, suffix):
        entries[rel] = base_url + rel

    dump_cdn_manifest(manifest_path, entries)
    log(f"[CDN] entries={len(entries)} added={len(entries) - before} manifest={manifest_path}")
    return len(entries)
