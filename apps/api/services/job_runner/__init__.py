from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import JobDispatcher

__all__ = ["JobDispatcher"]


def __getattr__(name: str):
    if name == "JobDispatcher":
        from .service import JobDispatcher

        return JobDispatcher
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
