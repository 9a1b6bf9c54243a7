from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

DEPLOY_ACTIONS = {"opened", "synchronize", "reopened"}
DESTROY_ACTIONS = {"closed"}


class _GithubModel(BaseModel):
    # GitHub sends far more than we read.
    model_config = ConfigDict(extra="ignore")


class RepositoryPayload(_GithubModel):
    clone_url: str


class HeadPayload(_GithubModel):
    ref: str


class PullRequestPayload(_GithubModel):
    comments_url: str
    head: HeadPayload


class PullRequestEvent(_GithubModel):
    action: Optional[str] = None
    repository: RepositoryPayload
    pull_request: PullRequestPayload
