from __future__ import annotations

import logging

from app.db.session import SessionLocal
from app.services.errors import PortalError
from app.services.payment_orchestrator import PaymentOrchestrator
from app.workers.celery_app import celery_app

logger = logging.getLogger("app.payments")


def run_reconciliation(db, *, orchestrator: PaymentOrchestrator | None = None) -> dict[str, int]:
    orchestrator = orchestrator or PaymentOrchestrator(db)
    try:
        return orchestrator.reconcile_pending_charges()
    except PortalError as exc:
        # Token failures abort this round; the next beat tick tries again.
        logger.warning("PIX reconciliation aborted: %s", exc.detail)
        return {"checked": 0, "confirmed": 0, "failed": 1}


@celery_app.task(name="app.workers.tasks.payments.reconcile_pending_charges")
def reconcile_pending_charges():
    db = SessionLocal()
    try:
        return run_reconciliation(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
