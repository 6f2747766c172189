# src/cdn_pipeline/vpk/listing.py
"""
Resolve which physical VPK segments hold the files under a logical prefix.

`Source2Viewer-CLI --vpk_dir` dumps one archive entry per line:

    panorama/images/econ/x.vtex_c crc=0x1a2b metadatasz=0 fnumber=44 ofs=0x0 sz=1234
    --- summary / header lines ---

Field 0 is the entry path, `fnumber=<int>` names the pak01_NNN.vpk segment
that stores the entry. Malformed lines are skipped, never reported as errors.
"""
from __future__ import annotations

import os
import posixpath
import re
import tempfile
from pathlib import Path
from typing import Iterable, Optional

from cdn_pipeline.common.cmdrunner import Runner
from cdn_pipeline.common.log import LogSink, console

MIN_FIELDS = 5
SEPARATOR = "---"
FNUMBER_KEY = "fnumber="
DEFAULT_SEGMENT_TEMPLATE = "pak01_{:03d}.vpk"

_INT_RE = re.compile(r"[+-]?[0-9]+")


def normalize_path(p: str) -> str:
    """Forward slashes, no redundant segments, no trailing slash."""
    clean = posixpath.normpath(p.replace("\\", "/"))
    # normpath keeps a leading "//"; collapse it to one
    if clean.startswith("//"):
        clean = "/" + clean.lstrip("/")
    return clean


def extract_fnumber(fields: Iterable[str], line: str = "", log: LogSink = console) -> int:
    """
    First `fnumber=` field wins. Returns 0 when absent or not an integer.
    """
    for f in fields:
        if not f.startswith(FNUMBER_KEY):
            continue
        raw = f[len(FNUMBER_KEY):]
        if not _INT_RE.fullmatch(raw):
            log(f"[WARN] Invalid fnumber '{raw}' in line: {line}")
            return 0
        return int(raw)
    return 0


def parse_vpk_dir(vpk_dir_path: str | Path, required_prefix: str, log: LogSink = console) -> list[int]:
    """Return the sorted unique non-zero fnumbers of entries under required_prefix."""
    prefix = normalize_path(required_prefix)
    fnumbers: set[int] = set()
    matched = 0

    with open(vpk_dir_path, "r", encoding="utf-8", errors="replace") as f:
        for raw_line in f:
            line = raw_line.rstrip("\r\n")

            # Skip header and summary lines
            if line.startswith(SEPARATOR) or not line.strip():
                continue

            fields = line.split()
            if len(fields) < MIN_FIELDS:
                continue

            if not normalize_path(fields[0]).startswith(prefix):
                continue
            matched += 1

            fnum = extract_fnumber(fields[1:], line=line, log=log)
            if fnum != 0:
                fnumbers.add(fnum)
            else:
                log(f"[RESOLVE] No valid fnumber found in line: {line}")

    log(f"[RESOLVE] Total matched lines: {matched}")
    return sorted(fnumbers)


def map_fnumbers_to_segments(
    fnumbers: Iterable[int],
    base_dir: str,
    template: str = DEFAULT_SEGMENT_TEMPLATE,
) -> list[str]:
    """e.g. 44 -> game/csgo/pak01_044.vpk (deduplicated, sorted)."""
    segments = {posixpath.normpath(posixpath.join(base_dir, template.format(n))) for n in fnumbers}
    return sorted(segments)


def write_segment_list(segments: Iterable[str], out_file: str | Path) -> None:
    with open(out_file, "w", encoding="utf-8") as f:
        for s in segments:
            f.write(s + "\n")


def dump_vpk_dir(runner: Runner, tool: str, vpk_dir_file: str | Path, out_path: str | Path) -> None:
    runner.run_to_file(tool, ["-i", str(vpk_dir_file), "--vpk_dir"], out_path)


def generate_segment_list(
    runner: Runner,
    tool: str,
    vpk_dir_file: str | Path,
    required_prefix: str,
    base_dir: str,
    out_file: str | Path,
    template: str = DEFAULT_SEGMENT_TEMPLATE,
    log: Optional[LogSink] = None,
) -> list[str]:
    """
    Dump the VPK directory, resolve the segments holding required_prefix and
    write them to out_file. Returns the segment paths (empty: nothing written).
    """
    log = log or runner.log

    fd, listing_path = tempfile.mkstemp(prefix="vpkdir_", suffix=".txt")
    os.close(fd)
    try:
        log(f"[RESOLVE] dumping vpk dir to {listing_path}")
        dump_vpk_dir(runner, tool, vpk_dir_file, listing_path)

        fnumbers = parse_vpk_dir(listing_path, required_prefix, log=log)
        if not fnumbers:
            log("[RESOLVE] No matching files found in the vpk dir.")
            return []

        segments = map_fnumbers_to_segments(fnumbers, base_dir, template)
        write_segment_list(segments, out_file)
        log(f"[RESOLVE] {len(segments)} segment(s) -> {out_file}")
        return segments
    finally:
        Path(listing_path).unlink(missing_ok=True)
