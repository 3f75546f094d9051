"""
Process helpers — PID files, liveness and graceful termination.
"""

from __future__ import annotations

import logging
import os
import signal
import time
from pathlib import Path

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


def read_pid(pid_file: Path) -> int | None:
    """PID recorded in ``pid_file``, or None if absent or garbled."""
    try:
        text = pid_file.read_text(encoding="utf-8").strip()
    except (FileNotFoundError, NotADirectoryError):
        return None
    except OSError as e:
        logger.debug("Cannot read pid file %s: %s", pid_file, e)
        return None
    try:
        pid = int(text.split()[0]) if text else 0
    except ValueError:
        logger.debug("Garbled pid file %s: %r", pid_file, text)
        return None
    return pid if pid > 0 else None


def pid_alive(pid: int | None) -> bool:
    """Whether a process with this PID exists."""
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    except OSError:
        return False
    return True


def wait_for_exit(pid: int, grace: float) -> bool:
    """Poll until ``pid`` is gone or ``grace`` seconds elapse."""
    deadline = time.monotonic() + grace
    while pid_alive(pid):
        if time.monotonic() >= deadline:
            return False
        time.sleep(_POLL_INTERVAL)
    return True


def terminate(pid_file: Path, sig: int = signal.SIGQUIT, grace: float = 2.0) -> bool:
    """Signal the process named in ``pid_file`` and wait for it to exit.

    Returns True if a live process was signalled. A stale pid file is
    removed.
    """
    pid = read_pid(pid_file)
    if pid is None or not pid_alive(pid):
        pid_file.unlink(missing_ok=True)
        return False

    logger.debug("Sending %s to pid %d", signal.Signals(sig).name, pid)
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        return False

    if not wait_for_exit(pid, grace):
        logger.warning("Process %d still alive %.1fs after %s", pid, grace, signal.Signals(sig).name)
    return True
