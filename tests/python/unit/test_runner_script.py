import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from services.job_runner.errors import ExecutionError
from services.job_runner.runner import CommandRunner, _split_stream_buffer


class TestCommandRunner(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.log_path = Path(self._tmp.name) / "logs" / "job.log"
        self.runner = CommandRunner(log_path=self.log_path, secrets=["hunter2"])

    def _log(self) -> str:
        return self.log_path.read_text(encoding="utf-8")

    def test_split_stream_buffer_handles_cr_and_lf(self) -> None:
        lines, rest = _split_stream_buffer("one\rtwo\nthree")

        self.assertEqual(lines, ["one", "two"])
        self.assertEqual(rest, "three")

    def test_output_is_logged_masked(self) -> None:
        result = self.runner.run(
            ["/bin/sh", "-c", "printf 'out1\\n'; printf 'pw hunter2\\n' 1>&2"]
        )

        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.tail, ["out1", "pw ********"])
        log = self._log()
        self.assertIn("+ /bin/sh -c", log)
        self.assertIn("out1", log)
        self.assertNotIn("hunter2", log)

    def test_nonzero_exit_raises_with_tail(self) -> None:
        with self.assertRaises(ExecutionError) as ctx:
            self.runner.run(["/bin/sh", "-c", "echo broken build; exit 7"])

        message = str(ctx.exception)
        self.assertIn("exit code 7", message)
        self.assertIn("broken build", message)

    def test_unchecked_run_returns_exit_code(self) -> None:
        result = self.runner.run(["/bin/sh", "-c", "exit 3"], check=False)
        self.assertEqual(result.exit_code, 3)

    def test_timeout_kills_command(self) -> None:
        with self.assertRaises(ExecutionError) as ctx:
            self.runner.run(["/bin/sh", "-c", "sleep 30"], timeout=0.3)
        self.assertIn("timed out", str(ctx.exception))

    def test_missing_binary_raises(self) -> None:
        with self.assertRaises(ExecutionError):
            self.runner.run(["definitely-not-a-real-binary-xyz"])

    def test_log_line_is_masked(self) -> None:
        self.runner.log("token=hunter2")
        self.assertIn("token=********", self._log())


if __name__ == "__main__":
    unittest.main()
