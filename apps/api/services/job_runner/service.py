from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Set, Tuple, Union

from services.workspaces.manager import WorkspaceManager

from .config import DeployerSettings
from .errors import ValidationError
from .jobs import JOB_TYPES, Job, RunnerFactory
from .runner import CommandRunner
from .types import JobKind, JobRequest

LOGGER = logging.getLogger(__name__)

_Key = Tuple[str, str]


class JobDispatcher:
    """
    Fire-and-forget job execution on a fixed pool of worker threads.

    ``submit`` only validates and enqueues. Jobs for the same
    (repository, branch) run one after another in submission order; a job
    whose key is busy is parked here instead of occupying a worker while it
    waits for the workspace lock. Distinct keys run in parallel, up to
    ``job_workers`` at a time.
    """

    def __init__(
        self,
        settings: DeployerSettings,
        workspaces: WorkspaceManager,
        *,
        runner_factory: RunnerFactory = CommandRunner,
    ) -> None:
        self._settings = settings
        self._workspaces = workspaces
        self._runner_factory = runner_factory
        self._queue: "queue.Queue[Optional[Job]]" = queue.Queue()
        self._lock = threading.Lock()
        self._active: Set[_Key] = set()
        self._parked: Dict[_Key, Deque[Job]] = {}
        self._threads: List[threading.Thread] = []
        self._stopped = False

    @property
    def workspaces(self) -> WorkspaceManager:
        return self._workspaces

    def start(self) -> None:
        with self._lock:
            if self._threads or self._stopped:
                return
            for idx in range(self._settings.job_workers):
                t = threading.Thread(
                    target=self._worker,
                    name=f"job-worker-{idx}",
                    daemon=True,
                )
                t.start()
                self._threads.append(t)
        LOGGER.info("started %d job workers", self._settings.job_workers)

    def submit(self, request: JobRequest, kind: Union[JobKind, str]) -> Job:
        try:
            job_kind = JobKind(kind)
        except ValueError as exc:
            raise ValidationError(f"unknown job kind: {kind!r}") from exc
        if not request.repository.strip():
            raise ValidationError("repository must not be empty")
        if not request.branch.strip():
            raise ValidationError("branch must not be empty")

        job = JOB_TYPES[job_kind](
            request,
            settings=self._settings,
            workspaces=self._workspaces,
            runner_factory=self._runner_factory,
        )

        self.start()
        with self._lock:
            if self._stopped:
                raise ValidationError("dispatcher is shut down")
            if job.key in self._active:
                self._parked.setdefault(job.key, deque()).append(job)
                LOGGER.info("queued %r behind running job for the same branch", job)
                return job
            self._active.add(job.key)
        self._queue.put(job)
        LOGGER.info("scheduled %r", job)
        return job

    def _finish(self, job: Job) -> None:
        with self._lock:
            parked = self._parked.get(job.key)
            nxt = parked.popleft() if parked else None
            if parked is not None and not parked:
                self._parked.pop(job.key, None)
            if nxt is None:
                self._active.discard(job.key)
        if nxt is not None:
            self._queue.put(nxt)

    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                try:
                    job.run()
                except Exception:
                    LOGGER.exception("worker failed running %r", job)
                finally:
                    self._finish(job)
            finally:
                self._queue.task_done()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        with self._lock:
            self._stopped = True
            threads = list(self._threads)
            self._threads = []
        for _ in threads:
            self._queue.put(None)
        if wait:
            for t in threads:
                t.join(timeout)
