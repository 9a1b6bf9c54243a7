from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from services.job_runner.types import HostKind

DEFAULT_HOST = "github.com"


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = v.strip()
    return s or None


class DestroyRequestIn(BaseModel):
    repository: str = Field(..., min_length=1, description="Clone URL of the repository")
    branch: str = Field(..., min_length=1)
    host: Optional[str] = Field(
        default=None,
        description="Source-control host; anything but github.com selects the alternate host",
    )
    callback_url: Optional[str] = Field(
        default=None, description="Receives the job result as JSON"
    )

    @field_validator("repository", "branch")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        s = (v or "").strip()
        if not s:
            raise ValueError("must not be empty")
        return s

    @field_validator("host", "callback_url")
    @classmethod
    def _strip_optional_fields(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("callback_url")
    @classmethod
    def _require_http_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("must be an http(s) url")
        return v

    @property
    def host_kind(self) -> HostKind:
        # Only an explicit "github.com" means the default host; a missing
        # host is the alternate one.
        if self.host is not None and self.host.lower() == DEFAULT_HOST:
            return HostKind.DEFAULT
        return HostKind.ALTERNATE


class DeployRequestIn(DestroyRequestIn):
    # Only the exact string "false" skips the clean checkout.
    clean: Union[bool, str, None] = True

    @property
    def clean_checkout(self) -> bool:
        return self.clean != "false"


class DeployCreateOut(BaseModel):
    log_url: str
