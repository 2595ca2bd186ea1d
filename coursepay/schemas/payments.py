from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from coursepay.utils.enums import PaymentGateway


class PaymentConfig(BaseModel):
    """Validated payment request handed to PaymentService.create_payment."""
    gateway: PaymentGateway
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(min_length=3, max_length=3)
    description: str = Field(min_length=1)
    student_id: UUID
    course_id: Optional[UUID] = None
    subscription_id: Optional[UUID] = None
    enrollment_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("currency must be a 3-letter code")
        return value.upper()


class CreatePaymentRequest(BaseModel):
    """Payment creation payload; the student comes from the bearer token."""
    gateway: PaymentGateway
    amount: Decimal = Field(gt=0)
    currency: str = "INR"
    description: str = Field(min_length=1)
    course_id: Optional[UUID] = None
    subscription_id: Optional[UUID] = None
    enrollment_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = None


class RefundRequest(BaseModel):
    payment_id: UUID
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    reason: str = Field(min_length=1)
