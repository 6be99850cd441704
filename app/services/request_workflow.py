from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.request_type import RequestType
from app.models.service_request import ServiceRequest
from app.models.service_request_message import ServiceRequestMessage
from app.services.document_vault import DocumentVault, SqlDocumentVault
from app.services.errors import (
    InvalidState,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
    ValidationError,
)
from app.services.notifications import (
    EVENT_MESSAGE,
    EVENT_REQUEST_CREATED,
    EVENT_STATUS,
    Notifier,
    SqlNotifier,
    notify_admins,
)
from app.services.request_status import (
    ALL_STATUSES,
    PAYMENT_APPROVED,
    PAYMENT_NOT_APPLICABLE,
    PAYMENT_PENDING,
    PAYMENT_UNDER_REVIEW,
    ROLE_ADMIN,
    ROLE_CLIENT,
    ROLE_SYSTEM,
    STATUS_IN_RESOLUTION,
    STATUS_IN_VALIDATION,
    STATUS_PAYMENT_UNDER_REVIEW,
    STATUS_PENDING_PAYMENT,
    STATUS_REQUESTED,
    STATUS_RESOLVED,
    STATUS_VIEWED,
    Actor,
    status_label,
)
from app.services.request_locks import RequestLockTimeout
from app.services.request_store import RequestStore

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
PROTOCOL_LOCK_KEY = "service_request_protocols"

_ROLE_LABELS = {ROLE_ADMIN: "administrador", ROLE_CLIENT: "cliente", ROLE_SYSTEM: "sistema"}


@dataclass(frozen=True)
class Transition:
    from_status: str
    actor_role: str
    to_status: str
    action: str
    requires_payment: bool = False
    requires_proof: bool = False


TRANSITIONS: tuple[Transition, ...] = (
    Transition(STATUS_PENDING_PAYMENT, ROLE_SYSTEM, STATUS_REQUESTED, "Pagamento confirmado", requires_payment=True),
    Transition(STATUS_PENDING_PAYMENT, ROLE_CLIENT, STATUS_PAYMENT_UNDER_REVIEW, "Comprovante Enviado", requires_proof=True),
    Transition(STATUS_PAYMENT_UNDER_REVIEW, ROLE_SYSTEM, STATUS_REQUESTED, "Pagamento confirmado", requires_payment=True),
    Transition(
        STATUS_PAYMENT_UNDER_REVIEW,
        ROLE_ADMIN,
        STATUS_REQUESTED,
        "Pagamento Confirmado pelo Admin",
        requires_payment=True,
    ),
    Transition(STATUS_REQUESTED, ROLE_ADMIN, STATUS_VIEWED, "Visualizada pelo Admin"),
    Transition(STATUS_REQUESTED, ROLE_ADMIN, STATUS_IN_RESOLUTION, "Resolução iniciada", requires_payment=True),
    Transition(STATUS_VIEWED, ROLE_ADMIN, STATUS_IN_RESOLUTION, "Resolução iniciada", requires_payment=True),
    Transition(STATUS_IN_RESOLUTION, ROLE_ADMIN, STATUS_IN_VALIDATION, "Enviada para validação do cliente"),
    Transition(STATUS_IN_VALIDATION, ROLE_CLIENT, STATUS_RESOLVED, "Aprovada e finalizada pelo cliente"),
    Transition(STATUS_RESOLVED, ROLE_CLIENT, STATUS_REQUESTED, "Pedido reaberto pelo cliente"),
)

_TRANSITION_INDEX = {(t.from_status, t.actor_role, t.to_status): t for t in TRANSITIONS}


def find_transition(from_status: str, actor_role: str, to_status: str) -> Transition | None:
    return _TRANSITION_INDEX.get((from_status, actor_role, to_status))


def allowed_targets(req: ServiceRequest, actor_role: str) -> list[str]:
    """Targets an actor may offer in the UI; the server re-checks on every call."""
    if req.deleted:
        return []
    return [t.to_status for t in TRANSITIONS if t.from_status == req.status and t.actor_role == actor_role]


def _payment_settled(req: ServiceRequest) -> bool:
    if Decimal(req.price or 0) <= 0:
        return True
    return req.payment_status == PAYMENT_APPROVED


def _normalize_price(raw: Any) -> Decimal:
    try:
        value = Decimal(str(raw if raw is not None else "0")).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Preço do tipo de solicitação inválido") from exc
    if value < 0:
        raise ValidationError("Preço do tipo de solicitação não pode ser negativo")
    return value


def ensure_actor_can_access(req: ServiceRequest, actor: Actor) -> None:
    if actor.role in {ROLE_ADMIN, ROLE_SYSTEM}:
        return
    if actor.is_client and actor.company_id is not None and req.company_id == actor.company_id:
        return
    raise NotFound("Solicitação não encontrada")


class RequestWorkflow:
    """Single entry point for every status change of a service request.

    All callers (admin UI, client UI, PIX webhook, reconciliation poller) go
    through ``apply_transition``, which checks the transition table, enforces
    payment gating and appends the audit entry.
    """

    def __init__(
        self,
        db: Session,
        *,
        store: RequestStore | None = None,
        notifier: Notifier | None = None,
        vault: DocumentVault | None = None,
    ):
        self.db = db
        self.store = store or RequestStore(db)
        self.notifier = notifier or SqlNotifier(db)
        self.vault = vault or SqlDocumentVault(db)

    def create_request(
        self,
        actor: Actor,
        *,
        request_type_id: Any,
        title: str,
        description: str,
    ) -> ServiceRequest:
        if not actor.is_client or actor.user_id is None:
            raise InvalidTransition("Apenas clientes podem abrir solicitações")
        if actor.company_id is None:
            raise ValidationError("Usuário cliente sem empresa vinculada")
        clean_title = str(title or "").strip()
        if not clean_title:
            raise ValidationError('Campo "title" é obrigatório')
        clean_description = str(description or "").strip()
        if not clean_description:
            raise ValidationError('Campo "description" é obrigatório')

        request_type = self._request_type_or_400(request_type_id)
        # Price is copied at creation time; later type price edits never reach existing requests.
        price = _normalize_price(request_type.price)

        try:
            with self.store.locks.hold(PROTOCOL_LOCK_KEY, timeout_seconds=settings.REQUEST_LOCK_TIMEOUT_SECONDS):
                req = self._insert_request(actor, request_type, clean_title, clean_description, price)
        except RequestLockTimeout as exc:
            raise InvalidState("Outra solicitação está sendo criada, tente novamente") from exc
        logger.info("Service request %s created status=%s price=%s", req.protocol, req.status, price)
        return req

    def transition(self, request_id: Any, target_status: str, actor: Actor) -> ServiceRequest:
        with self.store.locked(request_id) as req:
            self.apply_transition(req, target_status, actor)
        return req

    def apply_transition(
        self,
        req: ServiceRequest,
        target_status: str,
        actor: Actor,
        *,
        details: dict[str, Any] | None = None,
    ) -> Transition:
        """Move ``req`` to ``target_status``. The caller must hold ``RequestStore.locked``."""
        target = str(target_status or "").strip().upper()
        if target not in ALL_STATUSES:
            raise ValidationError(f'Status desconhecido: "{target_status}"')
        ensure_actor_can_access(req, actor)
        if req.deleted:
            raise InvalidState("Solicitação está na lixeira; restaure-a antes de alterar o status")

        current = str(req.status or "")
        transition = find_transition(current, actor.role, target)
        if transition is None:
            raise InvalidTransition(
                f'Transição de "{status_label(current)}" para "{status_label(target)}" '
                f"não permitida para {_ROLE_LABELS.get(actor.role, actor.role.lower())}"
            )
        if transition.requires_payment and not _payment_settled(req):
            raise PreconditionFailed("Pagamento ainda não confirmado para esta solicitação")
        if transition.requires_proof and not str(req.proof_reference or "").strip():
            raise PreconditionFailed("Comprovante de pagamento não informado")

        req.status = target
        self.store.touch(req, actor)
        audit_details = {"from": current, "to": target}
        audit_details.update(details or {})
        self.store.append_audit(req, transition.action, actor, audit_details)

        if target == STATUS_RESOLVED:
            self._generate_resolution_document(req)
        self._notify_counterpart(req, actor, current)
        logger.info(
            "Service request %s transition %s -> %s by %s",
            req.protocol,
            current,
            target,
            actor.role,
        )
        return transition

    def mark_viewed(self, request_id: Any, actor: Actor) -> ServiceRequest:
        req = self.store.find(request_id)
        ensure_actor_can_access(req, actor)
        if not actor.is_admin or req.deleted or req.status != STATUS_REQUESTED:
            return req
        with self.store.locked(req.id) as locked_req:
            if locked_req.status == STATUS_REQUESTED and not locked_req.deleted:
                self.apply_transition(locked_req, STATUS_VIEWED, actor)
        return locked_req

    def submit_payment_proof(self, request_id: Any, actor: Actor, proof_reference: str) -> ServiceRequest:
        reference = str(proof_reference or "").strip()
        if not reference:
            raise ValidationError("Informe o comprovante de pagamento")
        with self.store.locked(request_id) as req:
            ensure_actor_can_access(req, actor)
            if req.deleted:
                raise InvalidState("Solicitação está na lixeira; restaure-a antes de alterar o status")
            req.proof_reference = reference[:500]
            req.payment_status = PAYMENT_UNDER_REVIEW
            self.apply_transition(req, STATUS_PAYMENT_UNDER_REVIEW, actor, details={"proof_reference": reference[:500]})
        return req

    def add_message(self, request_id: Any, actor: Actor, text: str) -> ServiceRequestMessage:
        body = str(text or "").strip()
        if not body:
            raise ValidationError("Mensagem vazia")
        if len(body) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Mensagem excede {MAX_MESSAGE_LENGTH} caracteres")
        with self.store.locked(request_id) as req:
            ensure_actor_can_access(req, actor)
            if req.deleted:
                raise InvalidState("Solicitação está na lixeira; o chat está bloqueado")
            message = self.store.append_message(req, actor, body)
            self.store.touch(req, actor)
            if actor.is_client:
                notify_admins(
                    self.db,
                    self.notifier,
                    title="Nova mensagem",
                    message=f"{actor.name} escreveu na solicitação {req.protocol}.",
                    request=req,
                    event_type=EVENT_MESSAGE,
                )
            else:
                self.notifier.notify(
                    req.client_id,
                    "Nova mensagem",
                    f"Nova mensagem na solicitação {req.protocol}.",
                    request=req,
                    event_type=EVENT_MESSAGE,
                )
        return message

    def _insert_request(
        self,
        actor: Actor,
        request_type: RequestType,
        title: str,
        description: str,
        price: Decimal,
    ) -> ServiceRequest:
        billable = price > 0
        try:
            req = ServiceRequest(
                protocol=self.store.next_protocol(),
                title=title,
                type_name=request_type.name,
                price=price,
                description=description,
                status=STATUS_PENDING_PAYMENT if billable else STATUS_REQUESTED,
                payment_status=PAYMENT_PENDING if billable else PAYMENT_NOT_APPLICABLE,
                deleted=False,
                client_id=actor.user_id,
                company_id=actor.company_id,
                resolution_count=0,
                responsible=actor.name,
            )
            self.store.create(req)
            self.store.append_audit(
                req,
                "Solicitação Criada",
                actor,
                {"status": req.status, "price": f"{price:.2f}", "type": request_type.name},
            )
            notify_admins(
                self.db,
                self.notifier,
                title="Nova Solicitação",
                message=f"Nova solicitação {req.protocol} criada por {actor.name}.",
                request=req,
                event_type=EVENT_REQUEST_CREATED,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return req

    def _request_type_or_400(self, request_type_id: Any) -> RequestType:
        try:
            type_uuid = uuid.UUID(str(request_type_id))
        except (TypeError, ValueError) as exc:
            raise ValidationError("Tipo de solicitação inválido") from exc
        row = self.db.get(RequestType, type_uuid)
        if row is None or not bool(row.enabled):
            raise ValidationError("Tipo de solicitação inválido")
        return row

    def _generate_resolution_document(self, req: ServiceRequest) -> None:
        # One document per entry into RESOLVED: the counter is the dedupe key.
        req.resolution_count = int(req.resolution_count or 0) + 1
        document = self.vault.create_derived_document(
            req.id,
            f"{req.protocol} - {req.title}",
            settings.DERIVED_DOCUMENT_CATEGORY,
            req.company_id,
            dedupe_key=f"{req.id}:{req.resolution_count}",
        )
        self.store.append_audit(
            req,
            f'Documento "{document.title}" gerado automaticamente',
            Actor.system(),
            {"document_id": str(document.id), "resolution": req.resolution_count},
        )

    def _notify_counterpart(self, req: ServiceRequest, actor: Actor, from_status: str) -> None:
        message = f"{req.protocol}: {status_label(from_status)} → {status_label(req.status)}"
        if actor.is_admin:
            self.notifier.notify(req.client_id, "Solicitação atualizada", message, request=req, event_type=EVENT_STATUS)
        elif actor.is_client:
            notify_admins(
                self.db,
                self.notifier,
                title="Solicitação atualizada",
                message=message,
                request=req,
                event_type=EVENT_STATUS,
            )
