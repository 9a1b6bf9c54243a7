from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from services.job_runner.config import DeployerSettings
from services.job_runner.container_runner import remove_container, resolve_docker_bin
from services.job_runner.errors import ConflictError, ExecutionError
from services.job_runner.types import WorkspaceHandle
from services.job_runner.util import remove_tree, safe_mkdir

from .paths import checkout_dir, log_path, staging_dir, workspace_slug

LOGGER = logging.getLogger(__name__)

WorkspaceKey = Tuple[str, str]


class WorkspaceManager:
    """
    Hands out at most one live workspace per (repository, branch).

    Layout:
      ${WORKSPACE_DIR}/<slug>/          persistent checkout, survives jobs
      ${COPY_SOURCE_DIR}/<slug>-<job>/  per-job copy mounted into the container
      ${DEPLOY_LOG_DIR}/<slug>.log      command output of every job for the key

    A job waits for the key's lock up to ``lock_timeout_seconds`` and then
    gives up with ConflictError. Distinct keys never wait on each other.
    """

    def __init__(self, settings: DeployerSettings) -> None:
        self._settings = settings
        self._table_lock = threading.Lock()
        self._locks: Dict[WorkspaceKey, threading.Lock] = {}
        # holders + waiters per key; the lock entry goes away at zero
        self._users: Dict[WorkspaceKey, int] = {}
        self._live: Dict[WorkspaceKey, WorkspaceHandle] = {}

    def ensure_dirs(self) -> None:
        for path in (
            self._settings.workspace_dir,
            self._settings.copy_source_dir,
            self._settings.log_dir,
        ):
            safe_mkdir(path)

    def _lock_for(self, key: WorkspaceKey) -> threading.Lock:
        with self._table_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _drop_user(self, key: WorkspaceKey) -> None:
        # Caller holds _table_lock.
        left = self._users.get(key, 0) - 1
        if left > 0:
            self._users[key] = left
        else:
            self._users.pop(key, None)
            self._locks.pop(key, None)

    def tracked_keys(self) -> int:
        with self._table_lock:
            return len(self._locks)

    def live_handle(self, repository: str, branch: str) -> Optional[WorkspaceHandle]:
        with self._table_lock:
            return self._live.get((repository, branch))

    def acquire(
        self,
        repository: str,
        branch: str,
        *,
        job_id: str,
        timeout: Optional[float] = None,
    ) -> WorkspaceHandle:
        key = (repository, branch)
        wait = self._settings.lock_timeout_seconds if timeout is None else timeout
        lock = self._lock_for(key)
        if not lock.acquire(timeout=wait):
            with self._table_lock:
                self._drop_user(key)
            raise ConflictError(
                f"workspace for {repository}@{branch} is busy "
                f"(waited {wait:.0f}s for the running job)"
            )

        try:
            slug = workspace_slug(repository, branch)
            handle = WorkspaceHandle(
                key=key,
                root_path=staging_dir(self._settings, slug, job_id),
                checkout_path=checkout_dir(self._settings, slug),
                log_path=log_path(self._settings, slug),
            )
            with self._table_lock:
                self._live[key] = handle
        except BaseException:
            with self._table_lock:
                lock.release()
                self._drop_user(key)
            raise

        LOGGER.debug("acquired workspace %s for job %s", slug, job_id)
        return handle

    def release(self, handle: WorkspaceHandle) -> None:
        try:
            if handle.container_ref:
                try:
                    remove_container(
                        resolve_docker_bin(self._settings), handle.container_ref
                    )
                except ExecutionError as exc:
                    LOGGER.warning(
                        "cannot stop container %s: %s", handle.container_ref, exc
                    )
                handle.container_ref = None
            try:
                remove_tree(handle.root_path)
            except OSError as exc:
                LOGGER.warning("cannot remove staging dir %s: %s", handle.root_path, exc)
        finally:
            # A second release of the same handle must not free a lock that
            # a later job now holds.
            with self._table_lock:
                if self._live.get(handle.key) is handle:
                    self._live.pop(handle.key, None)
                    lock = self._locks.get(handle.key)
                    if lock is not None:
                        lock.release()
                    self._drop_user(handle.key)

    @contextmanager
    def workspace(
        self,
        repository: str,
        branch: str,
        *,
        job_id: str,
        timeout: Optional[float] = None,
    ) -> Iterator[WorkspaceHandle]:
        handle = self.acquire(repository, branch, job_id=job_id, timeout=timeout)
        try:
            yield handle
        finally:
            self.release(handle)
