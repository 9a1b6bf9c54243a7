from __future__ import annotations

from typing import Dict, Optional

import httpx

from services.job_runner.types import CallbackResult, JobKind

from .base import DEFAULT_TIMEOUT_SECONDS, HttpCallbackSink


def render_comment(result: CallbackResult, log_url: str = "") -> str:
    target = f"`{result.branch}`" if result.branch else "this branch"
    if result.job_kind is JobKind.DEPLOY:
        headline = (
            f":rocket: Deployed {target}."
            if result.succeeded
            else f":x: Deploying {target} failed."
        )
    else:
        headline = (
            f":wastebasket: Destroyed the deployment of {target}."
            if result.succeeded
            else f":x: Destroying the deployment of {target} failed."
        )

    lines = [headline]
    if result.message:
        lines.extend(["", "```", result.message, "```"])
    if log_url:
        lines.extend(["", f"Logs: {log_url}"])
    return "\n".join(lines)


class CommentCallback(HttpCallbackSink):
    """Comment on the pull request that triggered the job."""

    def __init__(
        self,
        comments_url: str,
        *,
        token: Optional[str] = None,
        log_url: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(comments_url, timeout=timeout, transport=transport)
        self._token = token
        self._log_url = log_url

    def notify(self, result: CallbackResult) -> None:
        headers: Dict[str, str] = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        self._post_json({"body": render_comment(result, self._log_url)}, headers=headers)
