from __future__ import annotations

from .base import CallbackSink
from .comment import CommentCallback
from .webhook import WebhookCallback

__all__ = ["CallbackSink", "CommentCallback", "WebhookCallback"]
