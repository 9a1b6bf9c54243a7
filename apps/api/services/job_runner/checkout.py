from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from .config import DeployerSettings
from .runner import CommandRunner
from .types import HostKind
from .util import remove_tree, safe_mkdir


def host_token(host: HostKind, settings: DeployerSettings) -> Optional[str]:
    if host is HostKind.ALTERNATE:
        return settings.alternate_host_token
    return settings.github_token


def resolve_clone_url(repository: str, host: HostKind, settings: DeployerSettings) -> str:
    """
    Put the host's token into an https clone url.

    ssh urls, local paths and urls that already carry credentials are
    returned unchanged.
    """
    token = host_token(host, settings)
    if not token:
        return repository
    parts = urlsplit(repository)
    if parts.scheme not in {"http", "https"} or not parts.netloc or "@" in parts.netloc:
        return repository
    netloc = f"x-access-token:{quote(token, safe='')}@{parts.netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def fetch_branch(
    runner: CommandRunner,
    *,
    settings: DeployerSettings,
    repository: str,
    branch: str,
    host: HostKind,
    dest: Path,
    clean: bool,
    remaining: Callable[[], float],
) -> None:
    """
    Leave ``dest`` holding a working tree of ``branch``.

    An existing checkout is updated in place unless ``clean`` asks for a
    fresh clone.
    """
    url = resolve_clone_url(repository, host, settings)

    if clean and dest.exists():
        runner.log(f"clean requested, removing {dest.name}")
        remove_tree(dest)

    if (dest / ".git").is_dir():
        runner.run(["git", "-C", dest, "remote", "set-url", "origin", url], timeout=remaining())
        runner.run(
            ["git", "-C", dest, "fetch", "--depth", "1", "origin", branch],
            timeout=remaining(),
        )
        runner.run(["git", "-C", dest, "reset", "--hard", "FETCH_HEAD"], timeout=remaining())
        runner.run(["git", "-C", dest, "clean", "-ffdx"], timeout=remaining())
        return

    # Half-written directory from an interrupted clone.
    remove_tree(dest)
    safe_mkdir(dest.parent)
    runner.run(
        [
            "git",
            "clone",
            "--depth",
            "1",
            "--single-branch",
            "--branch",
            branch,
            url,
            dest,
        ],
        timeout=remaining(),
    )
