from __future__ import annotations

import threading
import time
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from services.job_runner import JobDispatcher
from services.job_runner.errors import ValidationError
from services.job_runner.jobs import DeployJob, DestroyJob
from services.job_runner.types import JobKind, JobRequest, JobStatus
from services.workspaces import WorkspaceManager

from support import BlockingSink, RunnerRecorder, fake_git, make_settings

REPO = "https://example.com/r.git"


@patch("services.workspaces.manager.remove_container")
@patch("services.workspaces.manager.resolve_docker_bin", return_value="docker")
@patch("services.job_runner.jobs.resolve_docker_bin", return_value="docker")
class TestJobDispatcher(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.settings = make_settings(Path(self._tmp.name), job_workers=4)
        self.workspaces = WorkspaceManager(self.settings)
        self.workspaces.ensure_dirs()
        self.recorder = RunnerRecorder(on_run=fake_git())
        self.dispatcher = JobDispatcher(
            self.settings, self.workspaces, runner_factory=self.recorder
        )
        self.addCleanup(self.dispatcher.shutdown, True, 5)

    def _request(self, branch="main", callbacks=()):
        return JobRequest(repository=REPO, branch=branch, callbacks=tuple(callbacks))

    def test_submit_returns_pending_job_without_waiting(self, *_mocks) -> None:
        sink = BlockingSink()
        started = time.monotonic()
        job = self.dispatcher.submit(self._request(callbacks=[sink]), JobKind.DEPLOY)
        elapsed = time.monotonic() - started

        self.assertIsInstance(job, DeployJob)
        self.assertLess(elapsed, 0.5)
        self.assertIn(job.status, {JobStatus.PENDING, JobStatus.RUNNING})

        self.assertTrue(sink.entered.wait(5))
        self.assertFalse(job.wait(0))
        sink.release.set()
        self.assertTrue(job.wait(5))
        self.assertEqual(job.status, JobStatus.SUCCEEDED)

    def test_kind_selects_job_variant(self, *_mocks) -> None:
        job = self.dispatcher.submit(self._request(), "destroy")
        self.assertIsInstance(job, DestroyJob)
        self.assertTrue(job.wait(5))
        self.assertEqual(job.status, JobStatus.SUCCEEDED)

    def test_synchronous_validation_errors(self, *_mocks) -> None:
        with self.assertRaises(ValidationError):
            self.dispatcher.submit(self._request(), "rebuild")
        with self.assertRaises(ValidationError):
            self.dispatcher.submit(self._request(branch="  "), JobKind.DEPLOY)

    def test_same_key_jobs_run_one_after_another_in_order(self, *_mocks) -> None:
        first_sink = BlockingSink()
        first = self.dispatcher.submit(self._request(callbacks=[first_sink]), JobKind.DEPLOY)
        self.assertTrue(first_sink.entered.wait(5))

        second = self.dispatcher.submit(self._request(), JobKind.DESTROY)
        time.sleep(0.1)
        self.assertEqual(second.status, JobStatus.PENDING)
        self.assertIsNone(second.started_at)

        first_sink.release.set()
        self.assertTrue(first.wait(5))
        self.assertTrue(second.wait(5))
        self.assertEqual(second.status, JobStatus.SUCCEEDED)

    def test_distinct_keys_run_in_parallel(self, *_mocks) -> None:
        main_sink = BlockingSink()
        feature_sink = BlockingSink()
        main = self.dispatcher.submit(self._request("main", [main_sink]), JobKind.DEPLOY)
        feature = self.dispatcher.submit(
            self._request("feature", [feature_sink]), JobKind.DEPLOY
        )

        # Both reach the callback phase while the other is still held there.
        self.assertTrue(main_sink.entered.wait(5))
        self.assertTrue(feature_sink.entered.wait(5))

        main_sink.release.set()
        feature_sink.release.set()
        self.assertTrue(main.wait(5))
        self.assertTrue(feature.wait(5))

    def test_never_two_running_jobs_for_one_key(self, *_mocks) -> None:
        running = []
        peak = []
        lock = threading.Lock()
        original_perform = DeployJob.perform

        def _perform(job, handle, runner):
            with lock:
                running.append(job.job_id)
                peak.append(len(running))
            time.sleep(0.02)
            try:
                return original_perform(job, handle, runner)
            finally:
                with lock:
                    running.remove(job.job_id)

        with patch.object(DeployJob, "perform", _perform):
            jobs = [
                self.dispatcher.submit(self._request(), JobKind.DEPLOY) for _ in range(5)
            ]
            for job in jobs:
                self.assertTrue(job.wait(10))

        self.assertEqual(max(peak), 1)
        self.assertTrue(all(job.status is JobStatus.SUCCEEDED for job in jobs))

    def test_submit_after_shutdown_is_rejected(self, *_mocks) -> None:
        self.dispatcher.shutdown(wait=True, timeout=5)
        with self.assertRaises(ValidationError):
            self.dispatcher.submit(self._request(), JobKind.DEPLOY)


if __name__ == "__main__":
    unittest.main()
