from __future__ import annotations

from functools import lru_cache

from services.job_runner import JobDispatcher
from services.job_runner.config import DeployerSettings, load_settings
from services.signature import SignatureVerifier
from services.workspaces import WorkspaceManager


# Lazy singletons: nothing touches the environment, the filesystem or
# docker at import time. Tests swap them via app.dependency_overrides.


@lru_cache(maxsize=1)
def get_settings() -> DeployerSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_workspace_manager() -> WorkspaceManager:
    return WorkspaceManager(get_settings())


@lru_cache(maxsize=1)
def get_dispatcher() -> JobDispatcher:
    return JobDispatcher(get_settings(), get_workspace_manager())


@lru_cache(maxsize=1)
def get_verifier() -> SignatureVerifier:
    return SignatureVerifier(get_settings().webhook_secret)
