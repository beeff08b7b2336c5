from __future__ import annotations

import json
import re
import subprocess
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import Any

logger = getLogger(__name__)

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


@dataclass(frozen=True)
class ModuleStarted:
    name: str


@dataclass(frozen=True)
class LessonStarted:
    name: str


@dataclass(frozen=True)
class Exited:
    code: int

    @property
    def ok(self) -> bool:
        return self.code == 0


@dataclass(frozen=True)
class SpawnFailed:
    error: OSError


SupervisorEvent = ModuleStarted | LessonStarted | Exited | SpawnFailed


@dataclass(frozen=True)
class MarkerProtocol:
    """
    What the fetch executable prints at module and lesson boundaries.

    The free-text wording is owned by the executable, so it is kept here as one
    replaceable object. Lines that are a JSON object with an "event" key are
    read as structured markers instead:
      {"event": "module_started", "name": "..."}
      {"event": "lesson_started", "name": "..."}
    """

    version: str = "1"
    module_re: re.Pattern[str] = re.compile(r"Module '(?P<name>.+?)'")
    lesson_re: re.Pattern[str] = re.compile(r"Starting download of '(?P<name>.+?)'")

    def parse(self, line: str) -> ModuleStarted | LessonStarted | None:
        line = _ANSI_RE.sub("", line).strip()
        if not line:
            return None

        if line.startswith("{"):
            event = self._parse_structured(line)
            if event is not None:
                return event

        # lesson first: its wording can mention the module it belongs to
        m = self.lesson_re.search(line)
        if m:
            return LessonStarted(m.group("name"))
        m = self.module_re.search(line)
        if m:
            return ModuleStarted(m.group("name"))
        return None

    @staticmethod
    def _parse_structured(line: str) -> ModuleStarted | LessonStarted | None:
        try:
            data = json.loads(line)
        except ValueError:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            return None
        kind = data.get("event")
        if kind == "module_started":
            return ModuleStarted(data["name"])
        if kind == "lesson_started":
            return LessonStarted(data["name"])
        return None


DEFAULT_PROTOCOL = MarkerProtocol()


class ProcessSupervisor:
    """
    Run the external fetch executable for one job and turn its output into events.

    Only stdout is interpreted. stderr carries ffmpeg/downloader diagnostics and is
    drained on a side thread purely for logging, so a chatty child never blocks on
    a full pipe.
    """

    def __init__(
        self,
        executable: str,
        *,
        protocol: MarkerProtocol = DEFAULT_PROTOCOL,
        popen: Callable[..., Any] = subprocess.Popen,
        log_prefix: str = "",
    ) -> None:
        self.executable = executable
        self.protocol = protocol
        self._popen = popen
        self._log_prefix = log_prefix

    def command(self, manifest_path: Path, output_dir: Path) -> list[str]:
        # The executable only accepts named arguments
        return [self.executable, f"--jsonPath={manifest_path}", f"--output={output_dir}"]

    def run(self, manifest_path: Path, output_dir: Path) -> Iterator[SupervisorEvent]:
        """
        Yields ModuleStarted / LessonStarted in the order the lines were printed,
        then exactly one Exited, or a single SpawnFailed if the process never started.
        """
        args = self.command(manifest_path, output_dir)
        logger.info("%sSpawning %s", self._log_prefix, " ".join(args))
        try:
            proc = self._popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                bufsize=1,
                errors="replace",
            )
        except OSError as e:
            logger.error("%sFailed to start %s: %s", self._log_prefix, self.executable, e)
            yield SpawnFailed(e)
            return

        stderr_thread = threading.Thread(
            target=self._drain_stderr, args=(proc.stderr,), name="supervisor-stderr", daemon=True
        )
        stderr_thread.start()

        drained = False
        try:
            for raw in proc.stdout:
                line = raw.rstrip("\n")
                event = self.protocol.parse(line)
                if event is None:
                    if line.strip():
                        logger.info("%s%s", self._log_prefix, line.strip())
                    continue
                logger.info("%s%s", self._log_prefix, event)
                yield event
            drained = True
        finally:
            if not drained:
                # consumer stopped early; a child blocked on a full pipe gets EPIPE instead
                logger.warning("%sStopped reading output of %s", self._log_prefix, self.executable)
                proc.stdout.close()
            code = proc.wait()
            stderr_thread.join(timeout=5)

        yield Exited(code)

    def _drain_stderr(self, stream: Iterable[str] | None) -> None:
        if stream is None:
            return
        for raw in stream:
            line = raw.strip()
            if line:
                logger.info("%s[stderr] %s", self._log_prefix, line)
