from fastapi import APIRouter
from app.api.client import requests, request_types, notifications

router = APIRouter()
router.include_router(requests.router, prefix="/requests", tags=["ClientRequests"])
router.include_router(request_types.router, prefix="/request-types", tags=["ClientRequests"])
router.include_router(notifications.router, prefix="/notifications", tags=["ClientNotifications"])
