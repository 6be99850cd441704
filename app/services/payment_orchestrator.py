from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.common import as_utc, utcnow
from app.models.company import Company
from app.models.service_request import ServiceRequest
from app.services.errors import (
    GatewayError,
    InvalidState,
    InvalidTransition,
    PortalError,
    PreconditionFailed,
    UnknownTransaction,
)
from app.services.notifications import EVENT_PAYMENT_CONFIRMED, Notifier, SqlNotifier, notify_admins
from app.services.pix_gateway import ChargeDescriptor, PixGatewayClient, PixGatewayConfig
from app.services.request_status import (
    AWAITING_PAYMENT_STATUSES,
    PAYMENT_APPROVED,
    STATUS_PENDING_PAYMENT,
    STATUS_REQUESTED,
    Actor,
    payment_status_label,
    status_label,
)
from app.services.request_store import RequestStore
from app.services.request_workflow import RequestWorkflow, ensure_actor_can_access

logger = logging.getLogger("app.payments")

SOURCE_WEBHOOK = "webhook"
SOURCE_RECONCILIATION = "reconciliation"
SOURCE_ADMIN = "admin"

_SOURCE_LABELS = {
    SOURCE_WEBHOOK: "webhook PIX",
    SOURCE_RECONCILIATION: "conciliação automática",
    SOURCE_ADMIN: "confirmação manual",
}


@dataclass(frozen=True)
class PaymentConfirmation:
    request: ServiceRequest
    confirmed: bool


def charge_is_live(req: ServiceRequest, *, now=None) -> bool:
    if not req.txid or req.pix_expiration is None:
        return False
    return as_utc(req.pix_expiration) > (now or utcnow())


def _check_chargeable(req: ServiceRequest) -> None:
    if req.deleted:
        raise InvalidState("Solicitação está na lixeira; restaure-a antes de gerar cobrança")
    if req.status != STATUS_PENDING_PAYMENT:
        raise InvalidTransition(f'Cobrança indisponível no status "{status_label(req.status)}"')
    if Decimal(req.price or 0) <= 0:
        raise PreconditionFailed("Solicitação sem valor a cobrar")


class PaymentOrchestrator:
    """Mints PIX charges and turns provider confirmations into workflow transitions.

    The webhook, the reconciliation poller and the admin manual confirmation all
    end in ``_confirm``, so a payment is applied once regardless of which path
    sees it first.
    """

    def __init__(
        self,
        db: Session,
        *,
        gateway: PixGatewayClient | None = None,
        config: PixGatewayConfig | None = None,
        store: RequestStore | None = None,
        workflow: RequestWorkflow | None = None,
        notifier: Notifier | None = None,
    ):
        self.db = db
        self.config = config or PixGatewayConfig.from_settings()
        self.gateway = gateway or PixGatewayClient.from_config(self.config)
        self.store = store or RequestStore(db)
        self.notifier = notifier or SqlNotifier(db)
        self.workflow = workflow or RequestWorkflow(db, store=self.store, notifier=self.notifier)

    def request_charge(self, request_id: Any, actor: Actor) -> ServiceRequest:
        req = self.store.find(request_id)
        ensure_actor_can_access(req, actor)
        _check_chargeable(req)
        if charge_is_live(req):
            return req
        self.config.ensure_configured()

        company = self.db.get(Company, req.company_id)
        descriptor = ChargeDescriptor(
            amount=Decimal(req.price),
            pix_key=self.config.pix_key,
            payer_message=f"Servico {req.protocol}",
            expiry_seconds=self.config.expiry_seconds,
            payer_name=company.name if company is not None else actor.name,
            payer_document=(company.cnpj or "") if company is not None else "",
        )
        # Network first: a failed round trip must leave the request untouched.
        token = self.gateway.authenticate(self.config.credentials(), self.config.certificate)
        result = self.gateway.create_charge(token, descriptor, self.config.certificate)

        with self.store.locked(req.id) as locked_req:
            _check_chargeable(locked_req)
            if charge_is_live(locked_req):
                logger.warning(
                    "Discarding PIX charge txid=%s for %s: txid=%s stored first",
                    result.txid,
                    locked_req.protocol,
                    locked_req.txid,
                )
                return locked_req
            previous_txid = locked_req.txid
            now = utcnow()
            locked_req.txid = result.txid
            locked_req.pix_copia_e_cola = result.copy_paste_payload
            locked_req.pix_created_at = now
            locked_req.pix_expiration = now + timedelta(seconds=self.config.expiry_seconds)
            self.store.touch(locked_req, actor)
            details: dict[str, Any] = {
                "txid": result.txid,
                "expires_at": locked_req.pix_expiration.isoformat(),
            }
            if previous_txid:
                details["previous_txid"] = previous_txid
            self.store.append_audit(locked_req, "Cobrança PIX gerada, aguardando confirmação", actor, details)
        logger.info("PIX charge stored for %s txid=%s", locked_req.protocol, result.txid)
        return locked_req

    def confirm_payment(self, txid: str, *, source: str = SOURCE_WEBHOOK) -> PaymentConfirmation:
        req = self.store.find_by_txid(txid)
        if req is None:
            raise UnknownTransaction(f"Cobrança PIX {txid} não encontrada")
        return self._confirm(req.id, Actor.payment_provider(), source=source)

    def confirm_payment_for_request(self, request_id: Any, actor: Actor) -> PaymentConfirmation:
        return self._confirm(request_id, actor, source=SOURCE_ADMIN)

    def _confirm(self, request_id: Any, actor: Actor, *, source: str) -> PaymentConfirmation:
        with self.store.locked(request_id) as req:
            if req.status not in AWAITING_PAYMENT_STATUSES or req.payment_status == PAYMENT_APPROVED:
                return PaymentConfirmation(request=req, confirmed=False)
            if req.deleted:
                raise InvalidState("Solicitação está na lixeira; pagamento não aplicado")
            req.payment_status = PAYMENT_APPROVED
            req.paid_at = utcnow()
            self.workflow.apply_transition(
                req,
                STATUS_REQUESTED,
                actor,
                details={"source": source, "txid": req.txid},
            )
            notify_admins(
                self.db,
                self.notifier,
                title="Pagamento Confirmado",
                message=f"Pagamento da solicitação {req.protocol} confirmado via {_SOURCE_LABELS.get(source, source)}.",
                request=req,
                event_type=EVENT_PAYMENT_CONFIRMED,
                exclude_user_id=actor.user_id,
            )
            if not actor.is_admin:
                self.notifier.notify(
                    req.client_id,
                    "Pagamento Confirmado",
                    f"Recebemos o pagamento da solicitação {req.protocol}.",
                    request=req,
                    event_type=EVENT_PAYMENT_CONFIRMED,
                )
        logger.info("Payment confirmed for %s source=%s txid=%s", req.protocol, source, req.txid)
        return PaymentConfirmation(request=req, confirmed=True)

    def payment_snapshot(self, req: ServiceRequest) -> dict[str, Any]:
        awaiting = req.status in AWAITING_PAYMENT_STATUSES and not req.deleted
        return {
            "request_id": str(req.id),
            "protocol": req.protocol,
            "status": req.status,
            "status_label": status_label(req.status),
            "payment_status": req.payment_status,
            "payment_status_label": payment_status_label(req.payment_status),
            "price": f"{Decimal(req.price or 0):.2f}",
            "txid": req.txid,
            "pix_copia_e_cola": req.pix_copia_e_cola,
            "pix_expiration": as_utc(req.pix_expiration).isoformat() if req.pix_expiration else None,
            "charge_live": charge_is_live(req),
            "paid_at": as_utc(req.paid_at).isoformat() if req.paid_at else None,
            "poll_after_seconds": int(settings.PAYMENT_POLL_INTERVAL_SECONDS) if awaiting else None,
        }

    def reconcile_pending_charges(self, *, limit: int = 100) -> dict[str, int]:
        summary = {"checked": 0, "confirmed": 0, "failed": 0}
        if self.config.missing():
            logger.info("PIX reconciliation skipped: gateway not configured")
            return summary
        rows = (
            self.db.query(ServiceRequest.txid)
            .filter(
                ServiceRequest.status.in_(sorted(AWAITING_PAYMENT_STATUSES)),
                ServiceRequest.txid.isnot(None),
                ServiceRequest.deleted.is_(False),
            )
            .order_by(ServiceRequest.updated_at.asc())
            .limit(int(limit))
            .all()
        )
        txids = [txid for (txid,) in rows if txid]
        if not txids:
            return summary

        token = self.gateway.authenticate(self.config.credentials(self.config.read_scope), self.config.certificate)
        for txid in txids:
            summary["checked"] += 1
            try:
                charge = self.gateway.fetch_charge(token, txid, self.config.certificate)
            except GatewayError as exc:
                summary["failed"] += 1
                logger.warning("PIX reconciliation could not fetch txid=%s: %s", txid, exc.detail)
                continue
            if not charge.paid:
                continue
            try:
                if self.confirm_payment(txid, source=SOURCE_RECONCILIATION).confirmed:
                    summary["confirmed"] += 1
            except PortalError as exc:
                summary["failed"] += 1
                logger.warning("PIX reconciliation could not confirm txid=%s: %s", txid, exc.detail)
        return summary

    def gateway_overview(self) -> dict[str, Any]:
        missing = self.config.missing()
        return {
            "provider": settings.PIX_PROVIDER_NAME,
            "enabled": self.config.enabled,
            "configured": not missing,
            "missing": missing,
            "base_url": self.config.base_url,
            "client_id_set": bool(self.config.client_id),
            "client_secret_set": bool(self.config.client_secret),
            "pix_key_set": bool(self.config.pix_key),
            "certificate_present": self.config.certificate.exists(),
            "charge_expiry_seconds": self.config.expiry_seconds,
            "webhook_token_required": bool(str(settings.PIX_WEBHOOK_TOKEN or "").strip()),
        }

    def check_gateway_connection(self) -> dict[str, Any]:
        self.config.ensure_configured()
        return self.gateway.check_connection(
            self.config.credentials(self.config.read_scope),
            self.config.certificate,
        )
