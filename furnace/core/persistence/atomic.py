"""
Atomic file writes — write to a temp file, then rename over the target.

Every file Furnace owns (recipe records, rendered configs, pool
configs) goes through here, so a reader never observes a half-written
document and a crash mid-write leaves the previous content in place.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` atomically.

    The parent directory must be creatable; it is created if missing.

    Raises:
        OSError: If the directory cannot be created or the write fails.
            The previous file, if any, is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp, path)
        logger.debug("Wrote %s (%d bytes)", path, len(content))
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def read_text_or_none(path: Path) -> str | None:
    """Current content of ``path``, or None when it does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def restore_text(path: Path, previous: str | None) -> None:
    """Put back content captured with ``read_text_or_none``."""
    if previous is None:
        path.unlink(missing_ok=True)
    else:
        atomic_write_text(path, previous)
