from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.common import utcnow
from app.models.company import Company
from app.models.portal_user import PortalUser
from app.models.request_type import RequestType
from app.services.request_status import ROLE_ADMIN, ROLE_CLIENT

BOOTSTRAP_RESPONSIBLE = "Bootstrap"

DEFAULT_REQUEST_TYPES = [
    {"name": "2ª Via de Boleto", "price": Decimal("0.00")},
    {"name": "Alteração Contratual", "price": Decimal("150.00")},
    {"name": "Dúvida Técnica", "price": Decimal("0.00")},
    {"name": "Solicitação de Documento", "price": Decimal("0.00")},
    {"name": "Certidão Negativa Extra", "price": Decimal("50.00")},
]


def normalize_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def _user_by_email(db: Session, email: str) -> PortalUser | None:
    return db.query(PortalUser).filter(func.lower(PortalUser.email) == normalize_email(email)).first()


def ensure_company(db: Session, *, name: str, cnpj: str | None) -> Company:
    row = db.query(Company).filter(Company.cnpj == cnpj).first() if cnpj else None
    if row is None:
        row = db.query(Company).filter(Company.name == name).first()
    if row is None:
        row = Company(name=name, cnpj=cnpj, responsible=BOOTSTRAP_RESPONSIBLE)
        db.add(row)
        db.flush()
    return row


def ensure_user(db: Session, *, email: str, name: str, role: str, company_id=None) -> PortalUser:
    user = _user_by_email(db, email)
    if user is None:
        user = PortalUser(
            role=role,
            name=name,
            email=normalize_email(email),
            company_id=company_id,
            is_active=True,
            responsible=BOOTSTRAP_RESPONSIBLE,
        )
        db.add(user)
    else:
        user.role = role
        user.is_active = True
        if company_id is not None:
            user.company_id = company_id
        if not str(user.name or "").strip():
            user.name = name
        db.add(user)
    db.flush()
    return user


def upsert_request_types(db: Session, types: list[dict]) -> tuple[int, int]:
    created = 0
    updated = 0
    for index, item in enumerate(types, start=1):
        name = str(item["name"]).strip()
        price = Decimal(item.get("price") or 0).quantize(Decimal("0.01"))
        row = db.query(RequestType).filter(RequestType.name == name).first()
        if row is None:
            db.add(RequestType(name=name, price=price, enabled=True, sort_order=index, responsible=BOOTSTRAP_RESPONSIBLE))
            created += 1
            continue
        # Existing rows keep operator-edited prices; only ordering is normalized.
        if row.sort_order != index:
            row.sort_order = index
            row.updated_at = utcnow()
            db.add(row)
            updated += 1
    db.flush()
    return created, updated


def run_bootstrap(db: Session) -> dict[str, object]:
    if not settings.BOOTSTRAP_ENABLED:
        return {"enabled": False}
    admin = ensure_user(
        db,
        email=settings.BOOTSTRAP_ADMIN_EMAIL,
        name=settings.BOOTSTRAP_ADMIN_NAME,
        role=ROLE_ADMIN,
    )
    company = ensure_company(db, name=settings.BOOTSTRAP_COMPANY_NAME, cnpj=settings.BOOTSTRAP_COMPANY_CNPJ or None)
    client = ensure_user(
        db,
        email=settings.BOOTSTRAP_CLIENT_EMAIL,
        name=settings.BOOTSTRAP_CLIENT_NAME,
        role=ROLE_CLIENT,
        company_id=company.id,
    )
    created, updated = upsert_request_types(db, DEFAULT_REQUEST_TYPES)
    db.commit()
    return {
        "enabled": True,
        "admin_id": str(admin.id),
        "company_id": str(company.id),
        "client_id": str(client.id),
        "request_types_created": created,
        "request_types_updated": updated,
    }
