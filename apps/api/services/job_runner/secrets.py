from __future__ import annotations

import re
from typing import Iterable, List

from .config import DeployerSettings

MASK = "********"

_INLINE_VALUE_PATTERNS = [
    re.compile(
        r"(?i)((?:password|passwd|secret|token|apikey|api_key|access_key)\s*[:=]\s*)([^\s]+)"
    ),
    re.compile(r"(?i)((?:authorization:\s*(?:token|bearer)\s+))([^\s]+)"),
]

# https://<user>:<password>@host/... or https://<token>@host/...
_URL_USERINFO = re.compile(r"(?i)(\b[a-z][a-z0-9+.-]*://)([^/\s@]+)@")

_GITHUB_TOKEN = re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b")


def collect_secrets(settings: DeployerSettings) -> List[str]:
    secrets: List[str] = []
    for value in (
        settings.github_token,
        settings.alternate_host_token,
        settings.webhook_secret,
    ):
        if value:
            secrets.append(value)
    return _dedupe(secrets)


def _dedupe(items: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def mask_secrets(text: str, secrets: Iterable[str]) -> str:
    if not text:
        return text

    redacted = text

    secret_set = {s for s in secrets if s}
    if secret_set:
        for secret in sorted(secret_set, key=len, reverse=True):
            if secret in redacted:
                redacted = redacted.replace(secret, MASK)

    redacted = _URL_USERINFO.sub(lambda m: f"{m.group(1)}{MASK}@", redacted)

    for pattern in _INLINE_VALUE_PATTERNS:
        redacted = pattern.sub(lambda m: f"{m.group(1)}{MASK}", redacted)

    redacted = _GITHUB_TOKEN.sub(MASK, redacted)

    return redacted
