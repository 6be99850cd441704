from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.deps import get_admin_actor, get_payment_orchestrator
from app.services.payment_orchestrator import PaymentOrchestrator
from app.services.request_status import Actor

router = APIRouter()


@router.get("/gateway")
def gateway_overview(
    actor: Actor = Depends(get_admin_actor),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    return orchestrator.gateway_overview()


@router.post("/gateway/test")
def gateway_test(
    actor: Actor = Depends(get_admin_actor),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    return orchestrator.check_gateway_connection()
