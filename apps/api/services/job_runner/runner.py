from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Sequence

from .errors import ExecutionError
from .secrets import mask_secrets
from .util import safe_mkdir, utc_iso

LOGGER = logging.getLogger(__name__)

_TAIL_LINES = 20


@dataclass(frozen=True)
class CommandResult:
    args: List[str]
    exit_code: int
    tail: List[str]


def runner_env(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = dict(os.environ)
    # Never let git block a worker waiting for credentials on a tty.
    env["GIT_TERMINAL_PROMPT"] = "0"
    if extra:
        env.update(extra)
    return env


def _split_stream_buffer(buffer: str) -> tuple[list[str], str]:
    lines: list[str] = []
    while True:
        idx_n = buffer.find("\n")
        idx_r = buffer.find("\r")

        if idx_n == -1 and idx_r == -1:
            break

        if idx_n == -1:
            idx = idx_r
        elif idx_r == -1:
            idx = idx_n
        else:
            idx = idx_n if idx_n < idx_r else idx_r

        lines.append(buffer[:idx])
        buffer = buffer[idx + 1 :]

    return lines, buffer


def terminate_process_group(pid: Optional[int]) -> None:
    if not isinstance(pid, int) or pid <= 0:
        return
    try:
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    except PermissionError as exc:
        LOGGER.warning("cannot kill process group %s: %s", pid, exc)


class CommandRunner:
    """
    Run one external command at a time on behalf of a job.

    Output (stdout + stderr) is masked and appended to the job's log file;
    the last lines are kept so a failure can be reported with context.
    """

    def __init__(self, *, log_path: Path, secrets: Iterable[str] = ()) -> None:
        self._log_path = log_path
        self._secrets = list(secrets)
        safe_mkdir(log_path.parent)

    def mask(self, text: str) -> str:
        return mask_secrets(text, self._secrets)

    def log(self, line: str) -> None:
        with open(self._log_path, "a", encoding="utf-8") as log_fh:
            log_fh.write(f"[{utc_iso()}] {self.mask(line)}\n")

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        check: bool = True,
    ) -> CommandResult:
        cmd = [str(a) for a in args]
        printable = self.mask(" ".join(cmd))
        self.log(f"+ {printable}")
        LOGGER.debug("running %s", printable)

        tail: Deque[str] = deque(maxlen=_TAIL_LINES)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                bufsize=0,
                env=runner_env(env),
                start_new_session=True,  # new process group, killable as a unit
            )
        except OSError as exc:
            self.log(f"! failed to start: {exc}")
            raise ExecutionError(f"failed to start {cmd[0]}: {exc}") from exc

        with open(self._log_path, "a", encoding="utf-8", buffering=1) as log_fh:

            def _emit(raw_line: str) -> None:
                masked = self.mask(raw_line)
                tail.append(masked)
                log_fh.write(masked + "\n")

            def _reader() -> None:
                if proc.stdout is None:
                    return
                buf = ""
                try:
                    while True:
                        chunk = os.read(proc.stdout.fileno(), 4096)
                        if not chunk:
                            break
                        buf += chunk.decode("utf-8", errors="replace")
                        lines, buf = _split_stream_buffer(buf)
                        for line in lines:
                            _emit(line)
                    if buf:
                        _emit(buf)
                finally:
                    proc.stdout.close()

            reader = threading.Thread(target=_reader, daemon=True)
            reader.start()

            try:
                rc = proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                terminate_process_group(proc.pid)
                proc.wait()
                reader.join(timeout=2)
                raise ExecutionError(
                    f"timed out after {timeout:.0f}s: {printable}"
                ) from None
            reader.join(timeout=2)

        result = CommandResult(args=cmd, exit_code=int(rc), tail=list(tail))
        if check and result.exit_code != 0:
            detail = "\n".join(result.tail)
            message = f"command failed with exit code {result.exit_code}: {printable}"
            if detail:
                message = f"{message}\n{detail}"
            raise ExecutionError(message)
        return result
