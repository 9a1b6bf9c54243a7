from __future__ import annotations

import hashlib
import re
from pathlib import Path

from services.job_runner.config import DeployerSettings

_SLUG_UNSAFE = re.compile(r"[^a-z0-9._-]+")


def workspace_slug(repository: str, branch: str) -> str:
    """
    Filesystem-safe name for a (repository, branch) key.

    Readable prefix for humans browsing STATE_DIR, hash suffix so that
    branches like "a/b" and "a-b" never share a directory.
    """
    name = repository.strip().rstrip("/")
    if name.endswith(".git"):
        name = name[: -len(".git")]
    name = name.rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    base = _SLUG_UNSAFE.sub("-", f"{name}-{branch}".lower()).strip("-.")[:60]
    digest = hashlib.sha1(f"{repository}\0{branch}".encode("utf-8")).hexdigest()[:10]
    return f"{base or 'workspace'}-{digest}"


def checkout_dir(settings: DeployerSettings, slug: str) -> Path:
    return settings.workspace_dir / slug


def staging_dir(settings: DeployerSettings, slug: str, job_id: str) -> Path:
    return settings.copy_source_dir / f"{slug}-{job_id}"


def log_path(settings: DeployerSettings, slug: str) -> Path:
    return settings.log_dir / f"{slug}.log"
