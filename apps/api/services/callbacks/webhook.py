from __future__ import annotations

from services.job_runner.types import CallbackResult

from .base import HttpCallbackSink


class WebhookCallback(HttpCallbackSink):
    """POST the result as JSON to the callback_url given with a direct request."""

    def notify(self, result: CallbackResult) -> None:
        self._post_json(result.to_payload())
