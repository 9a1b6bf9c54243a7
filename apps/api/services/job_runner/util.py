from __future__ import annotations

import datetime as _dt
import shutil
import time
from pathlib import Path

_COPY_IGNORE = shutil.ignore_patterns(".git")


def utc_iso(ts: float | None = None) -> str:
    if ts is None:
        ts = time.time()
    dt = _dt.datetime.fromtimestamp(ts, tz=_dt.timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def safe_mkdir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def remove_tree(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def copy_tree(src: Path, dst: Path) -> None:
    """
    Copy a checkout into a fresh staging directory. Git metadata stays
    behind; the container only needs the working tree.
    """
    remove_tree(dst)
    safe_mkdir(dst.parent)
    shutil.copytree(src, dst, symlinks=True, ignore=_COPY_IGNORE)
