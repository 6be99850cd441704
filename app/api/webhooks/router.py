from fastapi import APIRouter
from app.api.webhooks import pix

router = APIRouter()
router.include_router(pix.router, prefix="/pix", tags=["Webhooks"])
