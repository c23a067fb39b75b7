from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

FENCE = "```"
MASK = "***"


@dataclass(slots=True)
class TranscriptEntry:
    command: str
    output: str


@dataclass(slots=True)
class Transcript:
    entries: list[TranscriptEntry] = field(default_factory=list)
    trailer: list[str] = field(default_factory=list)
    secrets: list[str] = field(default_factory=list, repr=False)

    def redact(self, secret: str | None) -> None:
        if secret and secret not in self.secrets:
            self.secrets.append(secret)

    def mask(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return text

    def record(self, command: str, output: str) -> TranscriptEntry:
        entry = TranscriptEntry(command=self.mask(command), output=self.mask(output))
        self.entries.append(entry)
        return entry

    def add_trailer(self, line: str) -> None:
        self.trailer.append(self.mask(line))

    def __len__(self) -> int:
        return len(self.entries)

    def lines(self) -> list[str]:
        lines = [FENCE]
        for entry in self.entries:
            lines.append(entry.command)
            lines.append(entry.output.rstrip("\n"))
        lines.append(FENCE)
        lines.extend(self.trailer)
        return lines

    def render(self) -> str:
        return "\n".join(self.lines())


@dataclass(slots=True)
class CommandError(RuntimeError):
    cmd: str
    exit_code: int | None
    output: str
    timed_out: bool = False

    def __str__(self) -> str:
        if self.timed_out:
            return f"Command timed out: {self.cmd}"
        return f"Command failed ({self.exit_code}): {self.cmd}"


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class CommandRunner:
    def __init__(self, timeout_seconds: int | None = None):
        self.timeout_seconds = timeout_seconds
        self.log = logging.getLogger(__name__)

    def run(
        self,
        transcript: Transcript,
        args: list[str],
        cwd: Path,
        display: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> str:
        shown = transcript.mask(" ".join(display if display is not None else args))
        self.log.info("> %s in dir %s", shown, cwd)
        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.timeout_seconds,
                env={**os.environ, **env} if env else None,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            output = _decode(exc.output)
            output += f"\ntimed out after {self.timeout_seconds}s"
            entry = transcript.record(shown, output)
            self.log.error("< timed out cmd=%s timeout_seconds=%s", shown, self.timeout_seconds)
            raise CommandError(cmd=shown, exit_code=None, output=entry.output, timed_out=True) from exc
        except OSError as exc:
            entry = transcript.record(shown, str(exc))
            self.log.error("< failed to start cmd=%s error=%s", shown, exc)
            raise CommandError(cmd=shown, exit_code=None, output=entry.output) from exc

        entry = transcript.record(shown, proc.stdout or "")
        self.log.info("< %s", entry.output.rstrip("\n"))
        if proc.returncode != 0:
            raise CommandError(cmd=shown, exit_code=proc.returncode, output=entry.output)
        return entry.output
