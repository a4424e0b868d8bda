"""Atomic file helpers (temp + fsync + replace).

Config files, snapshots and the backup index must never be left
half-written: a reader either sees the old bytes or the new bytes.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(path: str | Path, payload: bytes, *, fsync: bool = True) -> None:
    """Write *payload* to *path* atomically, creating parent directories.

    An existing file keeps its permission bits.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = path.stat().st_mode & 0o7777 if path.exists() else None
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def atomic_write_text(path: str | Path, text: str, *, fsync: bool = True) -> None:
    atomic_write_bytes(path, text.encode("utf-8"), fsync=fsync)


def copy_exact(source: str | Path, destination: str | Path) -> None:
    """Byte-exact copy of *source* over *destination* (atomic on the destination side)."""
    atomic_write_bytes(destination, Path(source).read_bytes())
