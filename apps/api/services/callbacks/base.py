from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from services.job_runner.errors import DeliveryError
from services.job_runner.types import CallbackResult

DEFAULT_TIMEOUT_SECONDS = 10.0


class CallbackSink(ABC):
    """Receives the result of a finished job, once."""

    @abstractmethod
    def notify(self, result: CallbackResult) -> None:
        """Deliver ``result``; raise DeliveryError when the target is unreachable."""


class HttpCallbackSink(CallbackSink):
    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._transport = transport

    def _post_json(
        self, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        try:
            # Redirects are not followed; a 3xx counts as a failed delivery.
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"{self.url} answered {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"{self.url} unreachable: {exc}") from exc

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"
