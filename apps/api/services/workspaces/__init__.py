from __future__ import annotations

from .manager import WorkspaceManager

__all__ = ["WorkspaceManager"]
