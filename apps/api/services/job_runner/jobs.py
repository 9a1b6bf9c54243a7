from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
import time
import uuid
from typing import Callable, ClassVar, Dict, Optional, Sequence, Type

from services.workspaces.manager import WorkspaceManager

from .checkout import fetch_branch
from .config import DeployerSettings
from .container_runner import build_run_command, container_name, resolve_docker_bin
from .deploy_config import DeployConfig, load_deploy_config
from .errors import DeployerError, ExecutionError
from .runner import CommandRunner
from .secrets import collect_secrets, mask_secrets
from .types import (
    CallbackResult,
    JobKind,
    JobRequest,
    JobStatus,
    Outcome,
    WorkspaceHandle,
)
from .util import copy_tree, remove_tree, utc_iso

LOGGER = logging.getLogger(__name__)

RunnerFactory = Callable[..., CommandRunner]


class Job(ABC):
    """
    One deploy or destroy run for a (repository, branch).

    pending -> running -> succeeded | failed

    ``run`` never raises: every failure ends up in the CallbackResult that
    is handed to the request's callbacks, in order.
    """

    kind: ClassVar[JobKind]

    def __init__(
        self,
        request: JobRequest,
        *,
        settings: DeployerSettings,
        workspaces: WorkspaceManager,
        runner_factory: RunnerFactory = CommandRunner,
    ) -> None:
        self.job_id = uuid.uuid4().hex[:12]
        self.request = request
        self.status = JobStatus.PENDING
        self.workspace: Optional[WorkspaceHandle] = None
        self.result: Optional[CallbackResult] = None
        self.created_at = utc_iso()
        self.started_at: Optional[str] = None
        self.finished_at: Optional[str] = None

        self._settings = settings
        self._workspaces = workspaces
        self._runner_factory = runner_factory
        self._secrets = collect_secrets(settings)
        self._deadline = 0.0
        self._done = threading.Event()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.job_id}, "
            f"{self.request.repository}@{self.request.branch}, {self.status.value})"
        )

    @property
    def key(self):
        return self.request.key

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def remaining(self) -> float:
        left = self._deadline - time.monotonic()
        if left <= 0:
            raise ExecutionError(
                f"job exceeded {self._settings.job_timeout_seconds}s time limit"
            )
        return left

    def run(self) -> CallbackResult:
        self.status = JobStatus.RUNNING
        self.started_at = utc_iso()
        self._deadline = time.monotonic() + self._settings.job_timeout_seconds
        req = self.request
        LOGGER.info(
            "%s job %s started for %s@%s", self.kind.value, self.job_id, req.repository, req.branch
        )

        try:
            with self._workspaces.workspace(
                req.repository,
                req.branch,
                job_id=self.job_id,
                timeout=min(self._settings.lock_timeout_seconds, self.remaining()),
            ) as handle:
                self.workspace = handle
                runner = self._runner_factory(log_path=handle.log_path, secrets=self._secrets)
                runner.log(f"== {self.kind.value} job {self.job_id} ({req.branch})")
                try:
                    message = self.perform(handle, runner)
                except DeployerError as exc:
                    runner.log(f"== {self.kind.value} job {self.job_id} failed: {exc}")
                    raise
                runner.log(f"== {self.kind.value} job {self.job_id} succeeded")
            outcome = Outcome.SUCCESS
        except DeployerError as exc:
            outcome = Outcome.FAILURE
            message = str(exc)
        except Exception as exc:
            LOGGER.exception("%s job %s crashed", self.kind.value, self.job_id)
            outcome = Outcome.FAILURE
            message = f"internal error: {exc}"
        finally:
            self.workspace = None

        result = CallbackResult(
            outcome=outcome,
            message=mask_secrets(message, self._secrets),
            job_kind=self.kind,
            repository=mask_secrets(req.repository, self._secrets),
            branch=req.branch,
        )
        self.result = result
        self._notify(result)

        self.status = (
            JobStatus.SUCCEEDED if outcome is Outcome.SUCCESS else JobStatus.FAILED
        )
        self.finished_at = utc_iso()
        log = LOGGER.info if outcome is Outcome.SUCCESS else LOGGER.warning
        log("%s job %s %s: %s", self.kind.value, self.job_id, self.status.value, result.message)
        self._done.set()
        return result

    def _notify(self, result: CallbackResult) -> None:
        for sink in self.request.callbacks:
            try:
                sink.notify(result)
            except Exception as exc:
                LOGGER.warning(
                    "callback %r failed for %s job %s: %s",
                    sink,
                    self.kind.value,
                    self.job_id,
                    mask_secrets(str(exc), self._secrets),
                )

    @abstractmethod
    def perform(self, handle: WorkspaceHandle, runner: CommandRunner) -> str:
        """Do the work inside an acquired workspace; return the success message."""

    def _config_path(self, handle: WorkspaceHandle):
        return handle.checkout_path / self._settings.deploy_config_filename

    def _run_in_container(
        self,
        handle: WorkspaceHandle,
        runner: CommandRunner,
        config: DeployConfig,
        commands: Sequence[str],
    ) -> None:
        docker_bin = resolve_docker_bin(self._settings)
        copy_tree(handle.checkout_path, handle.root_path)
        name = container_name(handle.checkout_path.name, self.job_id)
        handle.container_ref = name
        cmd = build_run_command(
            settings=self._settings,
            docker_bin=docker_bin,
            name=name,
            image=config.image or self._settings.runner_image,
            staging_dir=handle.root_path,
            commands=commands,
            env=config.env,
        )
        runner.run(cmd, timeout=self.remaining())


class DeployJob(Job):
    kind = JobKind.DEPLOY

    def perform(self, handle: WorkspaceHandle, runner: CommandRunner) -> str:
        req = self.request
        fetch_branch(
            runner,
            settings=self._settings,
            repository=req.repository,
            branch=req.branch,
            host=req.host,
            dest=handle.checkout_path,
            clean=req.clean,
            remaining=self.remaining,
        )
        config = load_deploy_config(self._config_path(handle))
        if not config.deploy:
            raise ExecutionError(
                f"{self._settings.deploy_config_filename} defines no deploy commands"
            )
        self._run_in_container(handle, runner, config, config.deploy)
        return f"Deployed {req.branch} of {req.repository}"


class DestroyJob(Job):
    kind = JobKind.DESTROY

    def perform(self, handle: WorkspaceHandle, runner: CommandRunner) -> str:
        req = self.request
        if not handle.checkout_path.exists():
            runner.log("no workspace, nothing to destroy")
            return f"Nothing to destroy for {req.branch} of {req.repository}"

        config = load_deploy_config(self._config_path(handle), required=False)
        if config.destroy:
            self._run_in_container(handle, runner, config, config.destroy)
        remove_tree(handle.checkout_path)
        return f"Destroyed {req.branch} of {req.repository}"


JOB_TYPES: Dict[JobKind, Type[Job]] = {
    JobKind.DEPLOY: DeployJob,
    JobKind.DESTROY: DestroyJob,
}
