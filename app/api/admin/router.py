from fastapi import APIRouter
from app.api.admin import requests, payments, notifications

router = APIRouter()
router.include_router(requests.router, prefix="/requests", tags=["AdminRequests"])
router.include_router(payments.router, prefix="/payments", tags=["AdminPayments"])
router.include_router(notifications.router, prefix="/notifications", tags=["AdminNotifications"])
