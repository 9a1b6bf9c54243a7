from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional

from services.job_runner.config import DeployerSettings
from services.job_runner.errors import DeliveryError
from services.job_runner.runner import CommandResult
from services.job_runner.secrets import mask_secrets
from services.job_runner.types import CallbackResult

DEPLOYER_YML = """\
image: node:20
env:
  NODE_ENV: preview
deploy:
  - npm ci
  - npm run deploy
destroy:
  - npm run teardown
"""


def make_settings(root: Path, **overrides) -> DeployerSettings:
    settings = DeployerSettings(
        state_dir=root,
        state_host_path=None,
        workspace_dir=root / "workspaces",
        copy_source_dir=root / "copy_source",
        log_dir=root / "logs",
        log_url="https://logs.example.com/",
        webhook_secret="s3cret",
        github_token=None,
        alternate_host_token=None,
        data_container_name="deployer-data",
        data_container_volume="/cache",
        runner_image="alpine:3",
        docker_bin=None,
        docker_network=None,
        docker_extra_args=[],
        job_workers=2,
        job_timeout_seconds=30,
        lock_timeout_seconds=5,
        deploy_config_filename="deployer.yml",
        log_level="INFO",
    )
    return replace(settings, **overrides)


class FakeRunner:
    """Stands in for CommandRunner; records commands instead of running them."""

    def __init__(
        self,
        *,
        log_path: Path,
        secrets=(),
        on_run: Optional[Callable[[List[str]], None]] = None,
    ) -> None:
        self.log_path = log_path
        self.calls: List[List[str]] = []
        self.logs: List[str] = []
        self._secrets = list(secrets)
        self._on_run = on_run

    def mask(self, text: str) -> str:
        return mask_secrets(text, self._secrets)

    def log(self, line: str) -> None:
        self.logs.append(self.mask(line))

    def run(self, args, *, cwd=None, timeout=None, env=None, check=True) -> CommandResult:
        cmd = [str(a) for a in args]
        self.calls.append(cmd)
        if self._on_run is not None:
            self._on_run(cmd)
        return CommandResult(args=cmd, exit_code=0, tail=[])


class RunnerRecorder:
    """runner_factory that hands out FakeRunners and remembers them."""

    def __init__(self, on_run: Optional[Callable[[List[str]], None]] = None) -> None:
        self.on_run = on_run
        self.runners: List[FakeRunner] = []

    def __call__(self, *, log_path: Path, secrets=()) -> FakeRunner:
        runner = FakeRunner(log_path=log_path, secrets=secrets, on_run=self.on_run)
        self.runners.append(runner)
        return runner

    @property
    def calls(self) -> List[List[str]]:
        return [cmd for r in self.runners for cmd in r.calls]


def fake_git(config_text: Optional[str] = DEPLOYER_YML) -> Callable[[List[str]], None]:
    """on_run hook that makes `git clone ... <dest>` produce a checkout."""

    def _on_run(cmd: List[str]) -> None:
        if cmd[:2] == ["git", "clone"]:
            dest = Path(cmd[-1])
            (dest / ".git").mkdir(parents=True, exist_ok=True)
            if config_text is not None:
                (dest / "deployer.yml").write_text(config_text, encoding="utf-8")

    return _on_run


class RecordingSink:
    def __init__(self, name: str, calls: list, fail: bool = False) -> None:
        self.name = name
        self._calls = calls
        self._fail = fail

    def notify(self, result: CallbackResult) -> None:
        self._calls.append((self.name, result))
        if self._fail:
            raise DeliveryError(f"{self.name} is down")


class BlockingSink:
    """Holds its job in the callback phase until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.results: List[CallbackResult] = []

    def notify(self, result: CallbackResult) -> None:
        self.results.append(result)
        self.entered.set()
        self.release.wait(5)
