from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from services.callbacks import CallbackSink


class JobKind(str, Enum):
    DEPLOY = "deploy"
    DESTROY = "destroy"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class HostKind(str, Enum):
    """
    Which source-control host a repository lives on. Only selects the
    credentials used for the clone url, never the deploy procedure.
    """

    DEFAULT = "default"
    ALTERNATE = "alternate"


@dataclass(frozen=True)
class JobRequest:
    repository: str
    branch: str
    host: HostKind = HostKind.DEFAULT
    clean: bool = True
    callbacks: Tuple["CallbackSink", ...] = field(default_factory=tuple)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.repository, self.branch)


@dataclass(frozen=True)
class CallbackResult:
    outcome: Outcome
    message: str
    job_kind: JobKind
    repository: str = ""
    branch: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def to_payload(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "job_kind": self.job_kind.value,
        }


@dataclass
class WorkspaceHandle:
    key: Tuple[str, str]
    root_path: Path  # per-job staging copy, removed on release
    checkout_path: Path
    log_path: Path
    container_ref: Optional[str] = None
