from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from cdn_pipeline.settings import load_cfg
from cdn_pipeline.pipeline.run import provision_tools, publish, run_pipeline
from cdn_pipeline.vpk.listing import map_fnumbers_to_segments, parse_vpk_dir, write_segment_list


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="depot-cdn", description="Mirror depot econ images and publish cdn.json")
    p.add_argument("--config", default="configs/pipeline.yaml", help="Path to config YAML")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="tools -> manifest gate -> download -> extract -> publish")
    sub.add_parser("tools", help="Download missing tools into the tools dir")
    sub.add_parser("publish", help="Rename extracted images and rewrite cdn.json")

    p_res = sub.add_parser("resolve", help="Resolve segment files from an existing vpk dir listing")
    p_res.add_argument("listing", help="Text output of Source2Viewer-CLI --vpk_dir")
    p_res.add_argument("--out", required=True, help="Where to write the segment list")
    return p


def _dispatch(args: argparse.Namespace) -> dict:
    if args.cmd == "run":
        return run_pipeline(args.config)

    cfg = load_cfg(args.config)

    if args.cmd == "tools":
        provision_tools(cfg)
        return {"status": "ok", "tools_dir": str(cfg.tools_dir)}

    if args.cmd == "publish":
        return {"status": "ok", "cdn_entries": publish(cfg)}

    # resolve
    fnumbers = parse_vpk_dir(args.listing, cfg.image_prefix)
    segments = map_fnumbers_to_segments(fnumbers, cfg.segment_base_dir, cfg.segment_template)
    write_segment_list(segments, Path(args.out))
    return {"status": "ok", "fnumbers": fnumbers, "segments": segments}


def main() -> None:
    args = build_parser().parse_args()
    try:
        res = _dispatch(args)
    except Exception as e:
        print(f"[ERROR] {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(2)

    print(json.dumps(res, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
