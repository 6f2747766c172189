from __future__ import annotations

from pathlib import Path

import orjson
import pytest

import cdn_pipeline.pipeline.run as runmod
from cdn_pipeline.common.cmdrunner import CommandTimeoutError
from cdn_pipeline.pipeline.run import run_pipeline

LISTING = """\
--- Listing files in package pak01_dir.vpk
panorama/images/econ/weapons/ak47_png.vtex_c crc=0x1 metadatasz=0 fnumber=44 ofs=0x0 sz=100
panorama/images/econ/weapons/awp_png.vtex_c crc=0x2 metadatasz=0 fnumber=44 ofs=0x64 sz=100
panorama/images/econ/tools/key_png.vtex_c crc=0x3 metadatasz=0 fnumber=187 ofs=0x0 sz=100
materials/models/x.vmat_c crc=0x4 metadatasz=0 fnumber=7 ofs=0x0 sz=100
--- 4 files
"""


class FakeDepotRunner:
    """
    Offline stand-in for DepotDownloader + Source2Viewer-CLI:
    - records every invocation
    - produces the files the real tools would leave behind
    """

    def __init__(self, manifest_id: str = "5002689339188222421", listing: str = LISTING):
        self.manifest_id = manifest_id
        self.listing = listing
        self.calls: list[tuple[str, str, list[str]]] = []
        self.requested_segments: list[str] = []
        self.lines: list[str] = []
        self.log = self.lines.append

    @staticmethod
    def _arg(args, flag):
        return args[args.index(flag) + 1]

    def run(self, name, args=(), timeout=None):
        args = list(args)
        self.calls.append(("run", Path(name).name, args))
        data_dir = Path(self._arg(args, "-dir"))
        if "-manifest-only" in args:
            data_dir.mkdir(parents=True, exist_ok=True)
            (data_dir / f"manifest_2347770_{self.manifest_id}.txt").write_text("manifest", encoding="utf-8")
        elif "-filelist" in args:
            wanted = Path(self._arg(args, "-filelist")).read_text(encoding="utf-8").split()
            for rel in wanted:
                p = data_dir / rel
                p.parent.mkdir(parents=True, exist_ok=True)
                p.write_bytes(b"VPK")

    def run_to_file(self, name, args, out_path):
        self.calls.append(("run_to_file", Path(name).name, list(args)))
        Path(out_path).write_text(self.listing, encoding="utf-8")

    def pipe(self, name, args=()):
        args = list(args)
        self.calls.append(("pipe", Path(name).name, args))
        if "-filelist" in args:
            self.requested_segments = Path(self._arg(args, "-filelist")).read_text(encoding="utf-8").split()
        if "--vpk_filepath" in args:
            out = Path(self._arg(args, "-o"))
            for rel in ("weapons/ak47_png.png", "weapons/awp_png.png", "tools/key_png.png"):
                p = out / "panorama/images/econ" / rel
                p.parent.mkdir(parents=True, exist_ok=True)
                p.write_bytes(b"\x89PNG")


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setattr(runmod, "provision_tools", lambda cfg, log=None: None)

    root = tmp_path / "proj"
    root.mkdir()
    cfg_path = root / "pipeline.yaml"
    cfg_path.write_text(
        f"""
storage:
  local_root: "{root.as_posix()}"
cdn:
  base_url: "https://cdn.example/gh/org/repo@main/"
""",
        encoding="utf-8",
    )
    return cfg_path


def _download_calls(runner: FakeDepotRunner) -> list:
    return [c for c in runner.calls if c[0] == "pipe"]


def test_full_run_publishes_images(project: Path):
    root = project.parent
    runner = FakeDepotRunner()

    res = run_pipeline(project, runner=runner, log=runner.log)

    assert res["status"] == "updated"
    assert res["manifest_id"] == "5002689339188222421"
    assert res["segments"] == 2
    assert res["cdn_entries"] == 3

    assert runner.requested_segments == ["game/csgo/pak01_044.vpk", "game/csgo/pak01_187.vpk"]
    assert (root / "manifest_id.txt").read_text(encoding="utf-8") == "5002689339188222421"

    # first depot call is the bounded manifest-only fetch
    kind, tool, args = runner.calls[0]
    assert (kind, tool) == ("run", "DepotDownloader")
    assert args[-1] == "-manifest-only"

    assert (root / "static/panorama/images/econ/weapons/ak47.png").exists()
    cdn = orjson.loads((root / "cdn.json").read_bytes())
    assert cdn["static/panorama/images/econ/weapons/ak47.png"] == (
        "https://cdn.example/gh/org/repo@main/static/panorama/images/econ/weapons/ak47.png"
    )


def test_second_run_with_same_manifest_is_a_noop(project: Path):
    root = project.parent
    run_pipeline(project, runner=FakeDepotRunner(), log=lambda _: None)
    identity_before = (root / "manifest_id.txt").read_bytes()
    cdn_before = (root / "cdn.json").read_bytes()

    runner = FakeDepotRunner()
    res = run_pipeline(project, runner=runner, log=runner.log)

    assert res["status"] == "unchanged"
    assert _download_calls(runner) == []
    assert [c[0] for c in runner.calls] == ["run"]
    assert (root / "manifest_id.txt").read_bytes() == identity_before
    assert (root / "cdn.json").read_bytes() == cdn_before


def test_new_manifest_id_triggers_update(project: Path):
    root = project.parent
    (root / "manifest_id.txt").write_text("111", encoding="utf-8")

    runner = FakeDepotRunner(manifest_id="222")
    res = run_pipeline(project, runner=runner, log=runner.log)

    assert res["status"] == "updated"
    assert (root / "manifest_id.txt").read_text(encoding="utf-8") == "222"
    assert len(_download_calls(runner)) == 2


def test_no_matching_segments_stops_before_download(project: Path):
    runner = FakeDepotRunner(listing="materials/x.vmat_c crc=0 m=0 fnumber=7 ofs=0 sz=1\n")
    res = run_pipeline(project, runner=runner, log=runner.log)

    assert res["status"] == "no_segments"
    assert _download_calls(runner) == []
    assert not (project.parent / "cdn.json").exists()


def test_manifest_timeout_aborts_run(project: Path):
    class TimeoutRunner(FakeDepotRunner):
        def run(self, name, args=(), timeout=None):
            assert timeout == 60
            raise CommandTimeoutError("command timed out after 60s: DepotDownloader")

    runner = TimeoutRunner()
    with pytest.raises(CommandTimeoutError):
        run_pipeline(project, runner=runner, log=runner.log)

    assert not (project.parent / "manifest_id.txt").exists()
