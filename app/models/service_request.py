import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.models.common import ResponsibleMixin, TimestampMixin, UUIDMixin


class ServiceRequest(Base, UUIDMixin, TimestampMixin, ResponsibleMixin):
    __tablename__ = "service_requests"

    protocol: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type_name: Mapped[str] = mapped_column(String(120), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    status: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="N/A")
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    txid: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    pix_copia_e_cola: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    pix_expiration: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    proof_reference: Mapped[str | None] = mapped_column(String(500), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    resolution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
