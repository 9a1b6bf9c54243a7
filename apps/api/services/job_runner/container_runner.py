from __future__ import annotations

import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from .config import DeployerSettings
from .errors import ExecutionError

LOGGER = logging.getLogger(__name__)

CONTAINER_WORKDIR = "/workspace"
DATA_CONTAINER_IMAGE = "tianon/true"

_NAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]+")


def resolve_docker_bin(settings: DeployerSettings) -> str:
    preferred = settings.docker_bin or ""
    candidates = [preferred, "docker", "docker.io"] if preferred else ["docker", "docker.io"]
    for cand in candidates:
        if cand and shutil.which(cand):
            return cand
    raise ExecutionError(
        "Docker CLI not found in PATH. Install docker-cli "
        "or set JOB_RUNNER_DOCKER_BIN to the correct binary name."
    )


def container_name(slug: str, job_id: str) -> str:
    safe = _NAME_UNSAFE.sub("-", slug).strip("-.") or "job"
    return f"chatops-{safe[:80]}-{job_id}"


def resolve_host_path(path: Path, settings: DeployerSettings) -> Path:
    """
    Translate a path under STATE_DIR into the path the docker daemon sees.

    Only matters when the deployer itself runs in a container and talks to
    the host daemon through a mounted socket (STATE_HOST_PATH set).
    """
    if settings.state_host_path is None:
        return path
    try:
        rel = path.relative_to(settings.state_dir)
    except ValueError as exc:
        raise ExecutionError(f"{path} is not inside STATE_DIR: {exc}") from exc
    return settings.state_host_path / rel


def build_run_command(
    *,
    settings: DeployerSettings,
    docker_bin: str,
    name: str,
    image: str,
    staging_dir: Path,
    commands: Sequence[str],
    env: Optional[Mapping[str, str]] = None,
) -> List[str]:
    script = "\n".join(["set -e", *commands])

    cmd: List[str] = [
        docker_bin,
        "run",
        "--rm",
        "--name",
        name,
        "--volumes-from",
        settings.data_container_name,
    ]

    if settings.docker_network:
        cmd.extend(["--network", settings.docker_network])

    if settings.docker_extra_args:
        cmd.extend(settings.docker_extra_args)

    cmd.extend(["-v", f"{resolve_host_path(staging_dir, settings)}:{CONTAINER_WORKDIR}"])

    merged_env: Dict[str, str] = {"CI": "true"}
    merged_env.update(env or {})
    for key, value in merged_env.items():
        cmd.extend(["-e", f"{key}={value}"])

    cmd.extend(["-w", CONTAINER_WORKDIR, image, "/bin/sh", "-c", script])
    return cmd


def remove_container(docker_bin: str, name: Optional[str]) -> None:
    """Stop and remove a job container. Best effort: it may already be gone."""
    cname = (name or "").strip()
    if not cname:
        return
    try:
        proc = subprocess.run(
            [docker_bin, "rm", "-f", cname],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as exc:
        LOGGER.warning("could not remove container %s: %s", cname, exc)
        return
    if proc.returncode != 0 and "No such container" not in (proc.stderr or ""):
        LOGGER.warning(
            "docker rm -f %s exited with %s: %s",
            cname,
            proc.returncode,
            (proc.stderr or "").strip(),
        )


def ensure_data_container(settings: DeployerSettings) -> bool:
    """
    Create the shared data-volume container once per process.

    Failure is expected on every restart (the container already exists) and
    is only logged.
    """
    try:
        docker_bin = resolve_docker_bin(settings)
        proc = subprocess.run(
            [
                docker_bin,
                "run",
                "--name",
                settings.data_container_name,
                "-v",
                settings.data_container_volume,
                DATA_CONTAINER_IMAGE,
            ],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except (ExecutionError, OSError) as exc:
        LOGGER.warning(
            "Cannot create docker data container: %s (%s)",
            settings.data_container_name,
            exc,
        )
        return False

    if proc.returncode != 0:
        LOGGER.warning(
            "Cannot create docker data container: %s. Does it already exist? %s",
            settings.data_container_name,
            (proc.stderr or "").strip(),
        )
        return False

    LOGGER.info("created docker data container %s", settings.data_container_name)
    return True
