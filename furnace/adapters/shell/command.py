"""
Shell command runner — run external tools and capture their output.

Backends and the runtime manager never call ``subprocess`` directly;
they go through a ``CommandRunner`` so tests can swap in
``FakeRunner`` and assert on the exact commands issued.

There is deliberately no timeout: an invocation blocks until the tool
exits, bounded only by the operating system.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Markers that a web server or FPM pool could not bind its listener
_PORT_CONFLICT_MARKERS = (
    "Address already in use",
    "bind() to",
    "could not bind to address",
)


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    return_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.return_code == 0

    @property
    def diagnostics(self) -> str:
        """The tool's own message: stderr, or stdout if stderr is empty."""
        return self.stderr.strip() or self.stdout.strip()

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)


def is_port_conflict(output: str) -> bool:
    """Whether a tool's output reports an occupied port or socket."""
    return any(marker in output for marker in _PORT_CONFLICT_MARKERS)


class CommandRunner:
    """Runs commands synchronously and captures stdout/stderr."""

    def which(self, program: str) -> str | None:
        return shutil.which(program)

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        """Run ``args`` and wait for it to exit.

        A missing executable is reported as return code 127 with the
        OS error as stderr, the same as a shell would.
        """
        logger.debug("Executing: %s (cwd=%s)", shlex.join(args), cwd)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            return CommandResult(args=list(args), return_code=127, stderr=str(e))
        except PermissionError as e:
            return CommandResult(args=list(args), return_code=126, stderr=str(e))

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = CommandResult(
            args=list(args),
            return_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=elapsed_ms,
        )
        if not result.ok:
            logger.debug(
                "%s exited %d: %s", result.command_line, result.return_code, result.diagnostics
            )
        return result


@dataclass
class FakeRunner(CommandRunner):
    """Test double: records commands and replays canned results.

    Responses are matched on the longest registered argument prefix,
    so ``respond(["nginx", "-t"], ...)`` does not match ``nginx -s``
    but ``respond(["nginx"], ...)`` matches every nginx call.
    """

    available: set[str] = field(default_factory=set)
    calls: list[list[str]] = field(default_factory=list)
    _responses: list[
        tuple[tuple[str, ...], CommandResult, Callable[[list[str]], None] | None]
    ] = field(default_factory=list)

    def which(self, program: str) -> str | None:
        return f"/usr/bin/{program}" if program in self.available else None

    def respond(
        self,
        prefix: list[str],
        return_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        side_effect: Callable[[list[str]], None] | None = None,
    ) -> None:
        """Register a canned result; ``side_effect`` runs on each match."""
        self._responses.append(
            (
                tuple(prefix),
                CommandResult(
                    args=list(prefix),
                    return_code=return_code,
                    stdout=stdout,
                    stderr=stderr,
                ),
                side_effect,
            )
        )

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        self.calls.append(list(args))
        best: CommandResult | None = None
        effect: Callable[[list[str]], None] | None = None
        best_len = -1
        for prefix, result, side_effect in self._responses:
            if tuple(args[: len(prefix)]) == prefix and len(prefix) > best_len:
                best, effect, best_len = result, side_effect, len(prefix)
        if best is None:
            return CommandResult(args=list(args), return_code=0)
        if effect is not None:
            effect(list(args))
        return CommandResult(
            args=list(args),
            return_code=best.return_code,
            stdout=best.stdout,
            stderr=best.stderr,
        )

    def called(self, *needle: str) -> list[list[str]]:
        """Recorded calls that contain every given argument."""
        return [c for c in self.calls if all(n in c for n in needle)]
