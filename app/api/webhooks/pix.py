from __future__ import annotations

import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.deps import get_payment_orchestrator
from app.services.payment_orchestrator import PaymentOrchestrator
from app.services.pix_webhook import process_pix_webhook

router = APIRouter()
logger = logging.getLogger("app.webhooks")

WEBHOOK_TOKEN_HEADER = "X-Webhook-Token"


def _check_webhook_token(request: Request) -> None:
    expected = str(settings.PIX_WEBHOOK_TOKEN or "").strip()
    if not expected:
        return
    provided = str(request.headers.get(WEBHOOK_TOKEN_HEADER) or request.query_params.get("token") or "").strip()
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("PIX webhook rejected: bad token from %s", request.client.host if request.client else "-")
        raise HTTPException(status_code=401, detail="Token do webhook inválido")


async def _handle(request: Request, orchestrator: PaymentOrchestrator) -> dict:
    _check_webhook_token(request)
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8") or "null")
    except (UnicodeDecodeError, ValueError):
        logger.warning("PIX webhook with unparseable body acknowledged (%s bytes)", len(raw))
        return {"status": "ok", "received": 0, "ignored": "invalid JSON"}
    summary = await run_in_threadpool(process_pix_webhook, orchestrator, payload)
    return {"status": "ok", **summary}


# BACEN-style providers append "/pix" to the registered webhook URL.
@router.post("")
async def pix_webhook(request: Request, orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)):
    return await _handle(request, orchestrator)


@router.post("/pix")
async def pix_webhook_suffixed(request: Request, orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)):
    return await _handle(request, orchestrator)
