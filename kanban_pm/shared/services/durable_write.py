"""Crash-safe file writes for config files and message logs."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def safe_file_stem(name: str) -> str:
    """Map *name* onto [alnum-_] so it stays a single path component."""
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in name)


def _fsync_dir(dir_path: Path) -> None:
    """Best-effort directory fsync so renames survive a crash."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(dir_path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError as exc:
        # Not every filesystem supports fsync on a directory.
        logger.debug("Directory fsync skipped for %s: %s", dir_path, exc)


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write *content* to a sibling temp file, then rename it over *path*.

    Readers see either the old file or the complete new one, never a
    partial write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError as exc:
                logger.warning("Could not remove temp file %s: %s", tmp_path, exc)


def append_line(path: Path, line: str, *, encoding: str = "utf-8") -> None:
    """Append one newline-terminated record and fsync it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding=encoding) as f:
        f.write(line.rstrip("\n") + "\n")
        f.flush()
        os.fsync(f.fileno())


def remove_file(path: Path) -> bool:
    """Delete *path* if present. Returns False when it was already gone.

    Errors other than "not found" propagate to the caller.
    """
    try:
        os.unlink(path)
    except FileNotFoundError:
        return False
    return True
