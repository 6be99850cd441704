from __future__ import annotations

import logging
from typing import Any

from app.services.errors import PortalError, UnknownTransaction
from app.services.payment_orchestrator import SOURCE_WEBHOOK, PaymentOrchestrator

logger = logging.getLogger("app.webhooks")

PAID_WEBHOOK_STATUSES = {"CONCLUIDA", "PAID"}


class WebhookPayloadError(ValueError):
    pass


def extract_paid_txids(payload: Any) -> list[str]:
    """Return txids reported as paid.

    Accepts the BACEN callback shape ``{"pix": [{"txid": ...}, ...]}``, where
    every entry is a received payment, and the flat ``{"txid", "status"}`` shape.
    """
    if not isinstance(payload, dict):
        raise WebhookPayloadError("payload is not a JSON object")

    if "pix" in payload:
        items = payload.get("pix")
        if not isinstance(items, list):
            raise WebhookPayloadError('"pix" is not a list')
        txids: list[str] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            txid = str(item.get("txid") or "").strip()
            if txid and txid not in txids:
                txids.append(txid)
        return txids

    if "txid" in payload:
        txid = str(payload.get("txid") or "").strip()
        status = str(payload.get("status") or "").strip().upper()
        if txid and status in PAID_WEBHOOK_STATUSES:
            return [txid]
        return []

    raise WebhookPayloadError("payload has neither pix nor txid")


def process_pix_webhook(orchestrator: PaymentOrchestrator, payload: Any) -> dict[str, Any]:
    summary: dict[str, Any] = {"received": 0, "confirmed": [], "already_applied": [], "unknown": [], "rejected": []}
    try:
        txids = extract_paid_txids(payload)
    except WebhookPayloadError as exc:
        logger.warning("PIX webhook ignored: %s", exc)
        summary["ignored"] = str(exc)
        return summary

    summary["received"] = len(txids)
    for txid in txids:
        try:
            result = orchestrator.confirm_payment(txid, source=SOURCE_WEBHOOK)
        except UnknownTransaction:
            logger.warning("PIX webhook for unknown txid=%s acknowledged", txid)
            summary["unknown"].append(txid)
            continue
        except PortalError as exc:
            logger.warning("PIX webhook txid=%s not applied: %s", txid, exc.detail)
            summary["rejected"].append({"txid": txid, "code": exc.code, "detail": exc.detail})
            continue
        bucket = "confirmed" if result.confirmed else "already_applied"
        summary[bucket].append(txid)
    return summary
