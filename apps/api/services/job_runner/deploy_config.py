from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ExecutionError


@dataclass(frozen=True)
class DeployConfig:
    """
    Per-repository deploy instructions, read from ``deployer.yml``:

      image: node:20
      env:
        NODE_ENV: preview
      deploy:
        - npm ci
        - npm run deploy
      destroy:
        - npm run teardown
    """

    image: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    deploy: List[str] = field(default_factory=list)
    destroy: List[str] = field(default_factory=list)


def _commands(data: Dict[str, Any], name: str) -> List[str]:
    raw = data.get(name)
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise ExecutionError(f"'{name}' must be a list of shell commands")
    out: List[str] = []
    for item in raw:
        if not isinstance(item, (str, int, float)):
            raise ExecutionError(f"'{name}' entries must be strings")
        s = str(item).strip()
        if s:
            out.append(s)
    return out


def parse_deploy_config(text: str) -> DeployConfig:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ExecutionError(f"deploy config is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ExecutionError("deploy config must be a mapping")

    image = data.get("image")
    if image is not None and (not isinstance(image, str) or not image.strip()):
        raise ExecutionError("'image' must be a non-empty string")

    env_raw = data.get("env") or {}
    if not isinstance(env_raw, dict):
        raise ExecutionError("'env' must be a mapping")
    env = {str(k): "" if v is None else str(v) for k, v in env_raw.items()}

    return DeployConfig(
        image=image.strip() if isinstance(image, str) else None,
        env=env,
        deploy=_commands(data, "deploy"),
        destroy=_commands(data, "destroy"),
    )


def load_deploy_config(path: Path, *, required: bool = True) -> DeployConfig:
    if not path.is_file():
        if required:
            raise ExecutionError(f"{path.name} not found in repository root")
        return DeployConfig()
    return parse_deploy_config(path.read_text(encoding="utf-8", errors="replace"))
