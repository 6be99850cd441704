import uuid

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.models.common import ResponsibleMixin, TimestampMixin, UUIDMixin


class Document(Base, UUIDMixin, TimestampMixin, ResponsibleMixin):
    __tablename__ = "documents"

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    category: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    request_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Enviado")
    dedupe_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
