from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from api.dependencies import get_dispatcher, get_settings
from api.schemas.deployment import DeployCreateOut, DeployRequestIn, DestroyRequestIn
from services.callbacks import CallbackSink, WebhookCallback
from services.job_runner import JobDispatcher
from services.job_runner.config import DeployerSettings
from services.job_runner.errors import ValidationError
from services.job_runner.types import JobKind, JobRequest

router = APIRouter(tags=["deployments"])


def _webhook_callbacks(callback_url: str | None) -> List[CallbackSink]:
    if not callback_url:
        return []
    return [WebhookCallback(callback_url)]


@router.post("/deploy", response_model=DeployCreateOut)
def create_deployment(
    req: DeployRequestIn,
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    settings: DeployerSettings = Depends(get_settings),
) -> DeployCreateOut:
    """
    Schedule a deploy of ``branch`` and return immediately.

    The outcome is only ever reported to ``callback_url``.
    """
    request = JobRequest(
        repository=req.repository,
        branch=req.branch,
        host=req.host_kind,
        clean=req.clean_checkout,
        callbacks=tuple(_webhook_callbacks(req.callback_url)),
    )
    try:
        dispatcher.submit(request, JobKind.DEPLOY)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DeployCreateOut(log_url=settings.log_url)


@router.post("/destroy", status_code=200, response_class=Response)
def destroy_deployment(
    req: DestroyRequestIn,
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> Response:
    request = JobRequest(
        repository=req.repository,
        branch=req.branch,
        host=req.host_kind,
        callbacks=tuple(_webhook_callbacks(req.callback_url)),
    )
    try:
        dispatcher.submit(request, JobKind.DESTROY)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return Response(status_code=200)
