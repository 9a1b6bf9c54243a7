from fastapi import APIRouter

from .deployments import router as deployments_router
from .webhooks import router as webhooks_router

router = APIRouter()
router.include_router(deployments_router)
router.include_router(webhooks_router)
