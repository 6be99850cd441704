from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.common import utcnow
from app.models.service_request import ServiceRequest
from app.models.service_request_audit import ServiceRequestAuditEntry
from app.models.service_request_message import ServiceRequestMessage
from app.services.errors import InvalidState, NotFound, ValidationError
from app.services.request_locks import RequestLocks, RequestLockTimeout, get_request_locks
from app.services.request_status import Actor

PROTOCOL_PREFIX = "REQ"


def request_uuid_or_404(request_id: Any) -> uuid.UUID:
    if isinstance(request_id, uuid.UUID):
        return request_id
    try:
        return uuid.UUID(str(request_id))
    except (TypeError, ValueError) as exc:
        raise NotFound("Solicitação não encontrada") from exc


class RequestStore:
    """Owns the service request collection, active and soft-deleted.

    Every mutation of an existing request should happen inside ``locked()``:
    admin sessions, client sessions, the webhook and the reconciliation poller
    all write independently, and the lock keeps them single-writer per request.
    Audit entries and chat messages live in their own append-only tables.
    """

    def __init__(self, db: Session, locks: RequestLocks | None = None):
        self.db = db
        self._locks = locks

    @property
    def locks(self) -> RequestLocks:
        return self._locks or get_request_locks()

    def protocol_in_use(self, protocol: str, *, include_deleted: bool = False) -> bool:
        query = self.db.query(ServiceRequest.id).filter(ServiceRequest.protocol == protocol)
        if not include_deleted:
            query = query.filter(ServiceRequest.deleted.is_(False))
        return query.first() is not None

    def next_protocol(self, year: int | None = None) -> str:
        year = int(year or utcnow().year)
        prefix = f"{PROTOCOL_PREFIX}-{year}-"
        used = int(
            self.db.query(func.count(ServiceRequest.id)).filter(ServiceRequest.protocol.like(f"{prefix}%")).scalar() or 0
        )
        sequence = used + 1
        candidate = f"{prefix}{sequence:03d}"
        while self.protocol_in_use(candidate, include_deleted=True):
            sequence += 1
            candidate = f"{prefix}{sequence:03d}"
        return candidate

    def create(self, req: ServiceRequest) -> ServiceRequest:
        protocol = str(req.protocol or "").strip()
        if not protocol:
            raise ValidationError('Campo "protocol" é obrigatório')
        if self.protocol_in_use(protocol):
            raise ValidationError(f"Protocolo {protocol} já está em uso por outra solicitação")
        now = utcnow()
        req.protocol = protocol
        req.created_at = req.created_at or now
        req.updated_at = req.updated_at or now
        self.db.add(req)
        self.db.flush()
        return req

    def find(self, request_id: Any) -> ServiceRequest:
        req = self.db.get(ServiceRequest, request_uuid_or_404(request_id))
        if req is None:
            raise NotFound("Solicitação não encontrada")
        return req

    def find_by_txid(self, txid: str) -> ServiceRequest | None:
        value = str(txid or "").strip()
        if not value:
            return None
        return self.db.query(ServiceRequest).filter(ServiceRequest.txid == value).first()

    def list(
        self,
        *,
        company_id: uuid.UUID | None = None,
        include_deleted: bool = False,
        only_deleted: bool = False,
        search: str | None = None,
    ) -> list[ServiceRequest]:
        query = self.db.query(ServiceRequest)
        if company_id is not None:
            query = query.filter(ServiceRequest.company_id == company_id)
        if only_deleted:
            query = query.filter(ServiceRequest.deleted.is_(True))
        elif not include_deleted:
            query = query.filter(ServiceRequest.deleted.is_(False))
        needle = str(search or "").strip()
        if needle:
            pattern = f"%{needle}%"
            query = query.filter(or_(ServiceRequest.title.ilike(pattern), ServiceRequest.protocol.ilike(pattern)))
        return query.order_by(ServiceRequest.updated_at.desc(), ServiceRequest.created_at.desc()).all()

    def update(self, req: ServiceRequest) -> ServiceRequest:
        """Replace the stored row with the same id; ``req`` may be detached."""
        if req.id is None or self.db.get(ServiceRequest, req.id) is None:
            raise NotFound("Solicitação não encontrada")
        stored = self.db.merge(req)
        self.db.flush()
        return stored

    @contextmanager
    def locked(self, request_id: Any) -> Iterator[ServiceRequest]:
        """Read-modify-write one request; commits on success, rolls back on error."""
        request_uuid = request_uuid_or_404(request_id)
        try:
            with self.locks.hold(f"service_request:{request_uuid}", timeout_seconds=settings.REQUEST_LOCK_TIMEOUT_SECONDS):
                req = (
                    self.db.query(ServiceRequest)
                    .filter(ServiceRequest.id == request_uuid)
                    .with_for_update()
                    .populate_existing()
                    .first()
                )
                if req is None:
                    raise NotFound("Solicitação não encontrada")
                try:
                    yield req
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
        except RequestLockTimeout as exc:
            raise InvalidState("Solicitação está sendo atualizada por outra sessão, tente novamente") from exc

    def touch(self, req: ServiceRequest, actor: Actor) -> None:
        req.updated_at = utcnow()
        req.responsible = actor.name

    def append_audit(
        self,
        req: ServiceRequest,
        action: str,
        actor: Actor,
        details: dict[str, Any] | None = None,
    ) -> ServiceRequestAuditEntry:
        self.db.flush()
        position = self._next_position(ServiceRequestAuditEntry, req.id)
        entry = ServiceRequestAuditEntry(
            request_id=req.id,
            position=position,
            action=str(action).strip(),
            user=actor.name,
            actor_role=actor.role,
            details=dict(details or {}),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def append_message(self, req: ServiceRequest, actor: Actor, text: str) -> ServiceRequestMessage:
        self.db.flush()
        position = self._next_position(ServiceRequestMessage, req.id)
        message = ServiceRequestMessage(
            request_id=req.id,
            position=position,
            sender=actor.name,
            role=actor.role,
            text=text,
        )
        self.db.add(message)
        self.db.flush()
        return message

    def audit_entries(self, request_id: Any) -> list[ServiceRequestAuditEntry]:
        return (
            self.db.query(ServiceRequestAuditEntry)
            .filter(ServiceRequestAuditEntry.request_id == request_uuid_or_404(request_id))
            .order_by(ServiceRequestAuditEntry.position.asc())
            .all()
        )

    def messages(self, request_id: Any) -> list[ServiceRequestMessage]:
        return (
            self.db.query(ServiceRequestMessage)
            .filter(ServiceRequestMessage.request_id == request_uuid_or_404(request_id))
            .order_by(ServiceRequestMessage.position.asc())
            .all()
        )

    def soft_delete(self, request_id: Any, acting_user: Actor) -> bool:
        with self.locked(request_id) as req:
            if req.deleted:
                return False
            req.deleted = True
            self.touch(req, acting_user)
            self.append_audit(req, "Enviado para Lixeira", acting_user)
            return True

    def restore(self, request_id: Any, acting_user: Actor) -> bool:
        with self.locked(request_id) as req:
            if not req.deleted:
                return False
            req.deleted = False
            self.touch(req, acting_user)
            self.append_audit(req, "Restaurado da Lixeira", acting_user)
            return True

    def _next_position(self, model, request_id: uuid.UUID) -> int:
        current = self.db.query(func.max(model.position)).filter(model.request_id == request_id).scalar()
        return int(current or 0) + 1
