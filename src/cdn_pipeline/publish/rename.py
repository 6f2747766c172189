from __future__ import annotations

from pathlib import Path

from cdn_pipeline.common.log import LogSink, console


def rename_outputs(root: Path, suffix: str = ".png", remove: str = "_png", log: LogSink = console) -> int:
    """
    Strip every `remove` substring from the names of files ending with suffix.

    Source2Viewer exports "foo_png.png"; the CDN serves "foo.png".
    Returns the number of renamed files.
    """
    if not root.exists():
        return 0

    # Collect first: renaming while rglob walks the tree is not stable
    candidates = sorted(p for p in root.rglob("*") if p.is_file() and p.name.endswith(suffix))

    renamed = 0
    for p in candidates:
        new_name = p.name.replace(remove, "")
        if new_name == p.name:
            continue
        p.rename(p.with_name(new_name))
        renamed += 1

    log(f"[RENAME] renamed={renamed} scanned={len(candidates)} root={root}")
    return renamed
