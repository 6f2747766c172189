# src/cdn_pipeline/pipeline/run.py
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from cdn_pipeline.settings import Cfg, load_cfg
from cdn_pipeline.common.cmdrunner import Runner
from cdn_pipeline.common.log import LogSink, console
from cdn_pipeline.depot.identity import (
    find_manifest_file,
    is_unchanged,
    parse_manifest_id,
    read_identity,
    write_identity,
)
from cdn_pipeline.publish.cdn import update_cdn_manifest
from cdn_pipeline.publish.rename import rename_outputs
from cdn_pipeline.tools.provision import ensure_tools, local_executable
from cdn_pipeline.tools.releases import ReleaseClient
from cdn_pipeline.vpk.listing import generate_segment_list


def _tool(cfg: Cfg, executable: str) -> str:
    return str(cfg.tools_dir / local_executable(executable))


def _depot_args(cfg: Cfg) -> list[str]:
    return ["-app", cfg.app_id, "-depot", cfg.depot_id, "-dir", str(cfg.data_dir)]


def _temp_filelist(lines: list[str], prefix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=".txt")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")
    return Path(name)


def provision_tools(cfg: Cfg, log: LogSink = console) -> None:
    client = ReleaseClient(cfg.user_agent, cfg.http_timeout_sec, cfg.http_max_retries)
    try:
        ensure_tools(cfg.tools, cfg.tools_dir, client, log=log)
    except Exception as e:
        raise RuntimeError(f"Failed to ensure tools: {e}") from e
    log("[TOOLS] All dependencies are satisfied.")


def fetch_manifest_id(cfg: Cfg, runner: Runner) -> str:
    runner.log("[DEPOT] Collecting manifest...")
    runner.run(
        _tool(cfg, cfg.depot_downloader),
        [*_depot_args(cfg), "-manifest-only"],
        timeout=cfg.manifest_timeout_sec,
    )
    runner.log("[DEPOT] Finished collecting manifest.")
    return parse_manifest_id(find_manifest_file(cfg.data_dir, cfg.depot_id))


def fetch_vpk_dir(cfg: Cfg, runner: Runner) -> None:
    runner.log("[DEPOT] Collecting vpk_dir file...")
    filelist = _temp_filelist([cfg.vpk_dir_file], prefix="dir-file_")
    try:
        runner.run(_tool(cfg, cfg.depot_downloader), [*_depot_args(cfg), "-filelist", str(filelist)])
    finally:
        filelist.unlink(missing_ok=True)


def resolve_segments(cfg: Cfg, runner: Runner, out_file: Path) -> list[str]:
    return generate_segment_list(
        runner,
        _tool(cfg, cfg.source2viewer),
        cfg.vpk_dir_path,
        cfg.image_prefix,
        cfg.segment_base_dir,
        out_file,
        template=cfg.segment_template,
    )


def fetch_segments(cfg: Cfg, runner: Runner, filelist: Path) -> None:
    runner.log("[DEPOT] Downloading files...")
    runner.pipe(_tool(cfg, cfg.depot_downloader), [*_depot_args(cfg), "-filelist", str(filelist)])
    runner.log("[DEPOT] Finished downloading files.")


def extract_images(cfg: Cfg, runner: Runner) -> None:
    runner.log("[EXTRACT] Extracting files...")
    runner.pipe(
        _tool(cfg, cfg.source2viewer),
        [
            "-i", str(cfg.vpk_dir_path),
            "-o", str(cfg.output_dir),
            "-d",
            "--vpk_filepath", cfg.image_prefix,
        ],
    )


def publish(cfg: Cfg, log: LogSink = console) -> int:
    log("[PUBLISH] Renaming files...")
    rename_outputs(cfg.output_dir, suffix=cfg.image_suffix, remove=cfg.rename_remove, log=log)
    log("[PUBLISH] Adding images to CDN list...")
    return update_cdn_manifest(
        cfg.cdn_manifest,
        cfg.output_dir,
        cfg.local_root,
        cfg.cdn_base_url,
        suffix=cfg.image_suffix,
        log=log,
    )


def run_pipeline(
    config_path: str | Path,
    runner: Optional[Runner] = None,
    log: LogSink = console,
) -> dict[str, Any]:
    cfg = load_cfg(config_path)
    runner = runner or Runner(log=log, cwd=cfg.local_root)

    log(f"[DEBUG] config={config_path}")
    log(f"[DEBUG] local_root={cfg.local_root}")
    log(f"[DEBUG] data_dir={cfg.data_dir}")
    log(f"[DEBUG] identity={cfg.identity_path}")

    # =========================
    # 0) TOOLS
    # =========================
    provision_tools(cfg, log=log)

    # =========================
    # 1) IDENTITY GATE
    # =========================
    new_id = fetch_manifest_id(cfg, runner)
    tracked_id = read_identity(cfg.identity_path)

    if is_unchanged(tracked_id, new_id):
        log("[DEPOT] Manifest ID matches the current ID. Exiting.")
        return {"status": "unchanged", "manifest_id": new_id, "segments": 0, "cdn_entries": None}

    log(f"[DEPOT] Manifest is new or changed. New ID: {new_id}")
    write_identity(cfg.identity_path, new_id)
    log(f"[DEPOT] New manifest ID {new_id} has been saved.")

    # =========================
    # 2) RESOLVE SEGMENTS
    # =========================
    fetch_vpk_dir(cfg, runner)

    fd, name = tempfile.mkstemp(prefix="filelist_", suffix=".txt")
    os.close(fd)
    segment_list = Path(name)
    try:
        segments = resolve_segments(cfg, runner, segment_list)
        if not segments:
            log("[RESOLVE] Nothing to download. Exiting.")
            return {"status": "no_segments", "manifest_id": new_id, "segments": 0, "cdn_entries": None}

        # =========================
        # 3) DOWNLOAD + EXTRACT
        # =========================
        fetch_segments(cfg, runner, segment_list)
    finally:
        segment_list.unlink(missing_ok=True)

    extract_images(cfg, runner)

    # =========================
    # 4) PUBLISH
    # =========================
    cdn_entries = publish(cfg, log=log)

    log(f"[RUN DONE] manifest_id={new_id} segments={len(segments)} cdn_entries={cdn_entries}")
    return {"status": "updated", "manifest_id": new_id, "segments": len(segments), "cdn_entries": cdn_entries}
