from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from app.core.config import settings

STATUS_PENDING_PAYMENT = "PENDING_PAYMENT"
STATUS_PAYMENT_UNDER_REVIEW = "PAYMENT_UNDER_REVIEW"
STATUS_REQUESTED = "REQUESTED"
STATUS_VIEWED = "VIEWED"
STATUS_IN_RESOLUTION = "IN_RESOLUTION"
STATUS_IN_VALIDATION = "IN_VALIDATION"
STATUS_RESOLVED = "RESOLVED"

STATUS_LABELS = {
    STATUS_PENDING_PAYMENT: "Pendente Pagamento",
    STATUS_PAYMENT_UNDER_REVIEW: "Pagamento em Análise",
    STATUS_REQUESTED: "Solicitada",
    STATUS_VIEWED: "Visualizada",
    STATUS_IN_RESOLUTION: "Em Resolução",
    STATUS_IN_VALIDATION: "Em Validação",
    STATUS_RESOLVED: "Resolvido",
}
ALL_STATUSES = set(STATUS_LABELS)
AWAITING_PAYMENT_STATUSES = {STATUS_PENDING_PAYMENT, STATUS_PAYMENT_UNDER_REVIEW}

PAYMENT_NOT_APPLICABLE = "N/A"
PAYMENT_PENDING = "PENDING"
PAYMENT_UNDER_REVIEW = "UNDER_REVIEW"
PAYMENT_APPROVED = "APPROVED"

PAYMENT_STATUS_LABELS = {
    PAYMENT_NOT_APPLICABLE: "N/A",
    PAYMENT_PENDING: "Pendente",
    PAYMENT_UNDER_REVIEW: "Em Análise",
    PAYMENT_APPROVED: "Aprovado",
}

ROLE_ADMIN = "ADMIN"
ROLE_CLIENT = "CLIENT"
ROLE_SYSTEM = "SYSTEM"

SYSTEM_ACTOR_NAME = "Sistema"


def status_label(code: str | None) -> str:
    return STATUS_LABELS.get(str(code or ""), str(code or ""))


def payment_status_label(code: str | None) -> str:
    return PAYMENT_STATUS_LABELS.get(str(code or ""), str(code or ""))


def _uuid_or_none(raw: Any) -> uuid.UUID | None:
    if raw is None or isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Actor:
    role: str
    name: str
    user_id: uuid.UUID | None = None
    company_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_client(self) -> bool:
        return self.role == ROLE_CLIENT

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Actor":
        role = str(claims.get("role") or "").strip().upper()
        fallback = "Administrador" if role == ROLE_ADMIN else "Cliente"
        return cls(
            role=role,
            name=str(claims.get("name") or claims.get("email") or "").strip() or fallback,
            user_id=_uuid_or_none(claims.get("sub")),
            company_id=_uuid_or_none(claims.get("company_id")),
        )

    @classmethod
    def system(cls, name: str = SYSTEM_ACTOR_NAME) -> "Actor":
        return cls(role=ROLE_SYSTEM, name=name)

    @classmethod
    def payment_provider(cls) -> "Actor":
        return cls(role=ROLE_SYSTEM, name=str(settings.PIX_PROVIDER_NAME or "").strip() or SYSTEM_ACTOR_NAME)
