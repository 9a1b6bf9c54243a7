from __future__ import annotations

import json
import logging

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.dependencies import get_dispatcher, get_settings, get_verifier
from api.schemas.github import DEPLOY_ACTIONS, DESTROY_ACTIONS, PullRequestEvent
from services.callbacks import CommentCallback
from services.job_runner import JobDispatcher
from services.job_runner.config import DeployerSettings
from services.job_runner.errors import AuthenticationError, ValidationError
from services.job_runner.types import JobKind, JobRequest
from services.signature import SignatureVerifier

LOGGER = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"

router = APIRouter(tags=["webhooks"])


@router.post("/gh-webhook", response_class=Response)
async def github_webhook(
    request: Request,
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    verifier: SignatureVerifier = Depends(get_verifier),
    settings: DeployerSettings = Depends(get_settings),
) -> Response:
    """
    Pull-request events from GitHub.

    opened / synchronize / reopened -> deploy the head branch
    closed                          -> destroy it
    anything else                   -> ignored

    The signature is checked on the raw body before it is parsed.
    """
    payload_body = await request.body()
    try:
        verifier.require(payload_body, request.headers.get(SIGNATURE_HEADER))
    except AuthenticationError as exc:
        LOGGER.warning("rejected webhook delivery: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    try:
        payload = json.loads(payload_body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"invalid JSON: {exc}") from exc

    if not isinstance(payload, dict) or not payload.get("pull_request"):
        return Response(status_code=200)

    try:
        event = PullRequestEvent.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise HTTPException(
            status_code=400, detail=f"unsupported pull_request payload: {exc}"
        ) from exc

    if event.action in DEPLOY_ACTIONS:
        kind = JobKind.DEPLOY
    elif event.action in DESTROY_ACTIONS:
        kind = JobKind.DESTROY
    else:
        LOGGER.debug("ignoring pull_request action %r", event.action)
        return Response(status_code=200)

    callbacks = (
        CommentCallback(
            event.pull_request.comments_url,
            token=settings.github_token,
            log_url=settings.log_url,
        ),
    )
    job_request = JobRequest(
        repository=event.repository.clone_url,
        branch=event.pull_request.head.ref,
        callbacks=callbacks,
    )
    try:
        dispatcher.submit(job_request, kind)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return Response(status_code=200)
