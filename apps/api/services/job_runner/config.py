from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_path(name: str, default: Path) -> Path:
    raw = _env_str(name)
    return Path(raw) if raw else default


@dataclass(frozen=True)
class DeployerSettings:
    """
    Process-wide configuration, loaded once at startup.

    Everything that used to be a global constant (log url, paths, webhook
    secret, data container) lives here and is handed to the dispatcher,
    the workspace manager and the signature check explicitly.
    """

    state_dir: Path
    state_host_path: Optional[Path]
    workspace_dir: Path
    copy_source_dir: Path
    log_dir: Path
    log_url: str
    webhook_secret: str
    github_token: Optional[str]
    alternate_host_token: Optional[str]
    data_container_name: str
    data_container_volume: str
    runner_image: str
    docker_bin: Optional[str]
    docker_network: Optional[str]
    docker_extra_args: List[str]
    job_workers: int
    job_timeout_seconds: int
    lock_timeout_seconds: int
    deploy_config_filename: str
    log_level: str


def load_settings() -> DeployerSettings:
    state_dir = _env_path("STATE_DIR", Path("/state"))
    extra_raw = _env_str("JOB_RUNNER_DOCKER_ARGS")
    host_state = _env_str("STATE_HOST_PATH")
    if host_state and not Path(host_state).is_absolute():
        raise ValueError("STATE_HOST_PATH must be an absolute path")

    return DeployerSettings(
        state_dir=state_dir,
        state_host_path=Path(host_state) if host_state else None,
        workspace_dir=_env_path("WORKSPACE_DIR", state_dir / "workspaces"),
        copy_source_dir=_env_path("COPY_SOURCE_DIR", state_dir / "copy_source"),
        log_dir=_env_path("DEPLOY_LOG_DIR", state_dir / "logs"),
        log_url=_env_str("LOG_URL"),
        webhook_secret=_env_str("GITHUB_WEBHOOK_SECRET"),
        github_token=_env_str("GITHUB_TOKEN") or None,
        alternate_host_token=_env_str("ALTERNATE_HOST_TOKEN") or None,
        data_container_name=_env_str("DATA_CONTAINER_NAME", "chatops-deployer-data"),
        data_container_volume=_env_str("DATA_CONTAINER_VOLUME", "/cache"),
        runner_image=_env_str("JOB_RUNNER_IMAGE", "alpine:3"),
        docker_bin=_env_str("JOB_RUNNER_DOCKER_BIN") or None,
        docker_network=_env_str("DOCKER_NETWORK_NAME") or None,
        docker_extra_args=shlex.split(extra_raw) if extra_raw else [],
        job_workers=env_int("JOB_WORKERS", 4),
        job_timeout_seconds=env_int("JOB_TIMEOUT_SECONDS", 1800),
        lock_timeout_seconds=env_int("WORKSPACE_LOCK_TIMEOUT_SECONDS", 600),
        deploy_config_filename=_env_str("DEPLOY_CONFIG_FILENAME", "deployer.yml"),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )
