from uuid import UUID

from pydantic import BaseModel


class ServiceRequestCreate(BaseModel):
    request_type_id: UUID
    title: str
    description: str = ""


class StatusChange(BaseModel):
    status: str


class ChatMessageCreate(BaseModel):
    text: str


class PaymentProofCreate(BaseModel):
    proof_reference: str
