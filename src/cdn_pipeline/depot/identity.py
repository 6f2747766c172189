from __future__ import annotations

from pathlib import Path


def find_manifest_file(data_dir: Path, depot_id: str) -> Path:
    # e.g. data/manifest_2347770_5002689339188222421.txt
    matches = [p for p in data_dir.glob(f"manifest_{depot_id}_*") if p.is_file()]
    if not matches:
        raise FileNotFoundError(f"No manifest file found in {data_dir}")
    # older manifests stay in the data dir; the newest one is this run's
    return max(matches, key=lambda p: (p.stat().st_mtime, p.name))


def parse_manifest_id(manifest_file: Path) -> str:
    parts = manifest_file.name.split("_")
    if len(parts) < 3:
        raise ValueError(f"Unexpected manifest file format: {manifest_file}")
    ident = parts[2].removesuffix(".txt")
    if not ident:
        raise ValueError(f"Unexpected manifest file format: {manifest_file}")
    return ident


def read_identity(path: Path) -> str:
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8").strip()


def write_identity(path: Path, identity: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(identity, encoding="utf-8")


def is_unchanged(tracked: str, new: str) -> bool:
    return tracked != "" and tracked == new
