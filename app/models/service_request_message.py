import uuid
from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin

class ServiceRequestMessage(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "service_request_messages"
    __table_args__ = (UniqueConstraint("request_id", "position", name="uq_service_request_message_position"),)
    request_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sender: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # ADMIN|CLIENT
    text: Mapped[str] = mapped_column(Text, nullable=False)
