# src/cdn_pipeline/common/cmdrunner.py
from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Optional, Sequence

from cdn_pipeline.common.log import LogSink, console

DEFAULT_TIMEOUT_SEC = 60


@dataclass
class CommandResult:
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """A command could not start or exited nonzero. Keeps the captured output."""

    def __init__(self, message: str, stdout: str = "", stderr: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


class CommandTimeoutError(CommandError):
    """The command did not finish before its deadline."""


def _text(data: str | bytes | None) -> str:
    # TimeoutExpired carries bytes even in text mode
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _cmdline(name: str, args: Sequence[str]) -> str:
    return " ".join([name, *args])


class Runner:
    """
    Runs external tools.

    - run():         capture stdout/stderr, optional deadline
    - run_to_file(): stdout goes straight into a file
    - pipe():        stream both outputs line by line into the log sink
    """

    def __init__(self, log: LogSink = console, cwd: str | Path | None = None):
        self.log = log
        self.cwd = str(cwd) if cwd is not None else None

    def run(self, name: str, args: Sequence[str] = (), timeout: Optional[float] = None) -> CommandResult:
        self.log(f"[EXEC] {_cmdline(name, args)}")
        try:
            proc = subprocess.run(
                [name, *args],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            stdout, stderr = _text(e.stdout), _text(e.stderr)
            self._log_output(stdout, stderr)
            raise CommandTimeoutError(
                f"command timed out after {timeout}s: {name}", stdout=stdout, stderr=stderr
            ) from e
        except OSError as e:
            raise CommandError(f"command execution failed: {name}: {e}") from e

        self._log_output(proc.stdout, proc.stderr)
        if proc.returncode != 0:
            raise CommandError(
                f"command execution failed: {name} exited with status {proc.returncode}",
                stdout=proc.stdout,
                stderr=proc.stderr,
                returncode=proc.returncode,
            )
        return CommandResult(stdout=proc.stdout, stderr=proc.stderr)

    def run_to_file(self, name: str, args: Sequence[str], out_path: str | Path) -> None:
        self.log(f"[EXEC] {_cmdline(name, args)} > {out_path}")
        try:
            with open(out_path, "w", encoding="utf-8") as f:
                proc = subprocess.run(
                    [name, *args],
                    cwd=self.cwd,
                    stdout=f,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
        except OSError as e:
            raise CommandError(f"command execution failed: {name}: {e}") from e

        self._log_output("", proc.stderr)
        if proc.returncode != 0:
            raise CommandError(
                f"command execution failed: {name} exited with status {proc.returncode}",
                stderr=proc.stderr,
                returncode=proc.returncode,
            )

    def pipe(self, name: str, args: Sequence[str] = ()) -> None:
        self.log(f"[EXEC] {_cmdline(name, args)}")
        try:
            proc = subprocess.Popen(
                [name, *args],
                cwd=self.cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise CommandError(f"failed to start command: {name}: {e}") from e

        readers = [
            threading.Thread(target=self._forward, args=(proc.stdout, "stdout"), daemon=True),
            threading.Thread(target=self._forward, args=(proc.stderr, "stderr"), daemon=True),
        ]
        for t in readers:
            t.start()

        returncode = proc.wait()
        # Drain both streams so trailing output is not lost
        for t in readers:
            t.join()

        if returncode != 0:
            raise CommandError(
                f"command execution failed: {name} exited with status {returncode}",
                returncode=returncode,
            )

    def _forward(self, stream: IO[str] | None, tag: str) -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                self.log(f"[{tag}] {line.rstrip()}")

    def _log_output(self, stdout: str, stderr: str) -> None:
        if stdout:
            self.log(f"[EXEC] stdout: {stdout.rstrip()}")
        if stderr:
            self.log(f"[EXEC] stderr: {stderr.rstrip()}")


def run_command(name: str, *args: str, timeout: Optional[float] = DEFAULT_TIMEOUT_SEC, log: LogSink = console) -> CommandResult:
    """Run a command with the default 60 second deadline."""
    return Runner(log=log).run(name, args, timeout=timeout)
