from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from coursepay.utils.enums import BillingCycle, PaymentGateway


class SubscriptionConfig(BaseModel):
    student_id: UUID
    course_id: UUID
    billing_cycle: BillingCycle
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(min_length=3, max_length=3)
    auto_renew: bool = True
    start_date: Optional[datetime] = None
    gateway: Optional[PaymentGateway] = None

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("currency must be a 3-letter code")
        return value.upper()


class CreateSubscriptionRequest(BaseModel):
    course_id: UUID
    billing_cycle: BillingCycle
    amount: Decimal = Field(gt=0)
    currency: str = "INR"
    auto_renew: bool = True
    gateway: Optional[PaymentGateway] = None


class SubscriptionActionRequest(BaseModel):
    reason: Optional[str] = None
