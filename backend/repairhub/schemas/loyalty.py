"""Pydantic schemas for loyalty cards, corner invitations and usages."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from repairhub.schemas.common import CheckoutOut


class LoyaltyCheckoutCreate(BaseModel):
    customer_id: str
    centro_id: str
    customer_email: str | None = None


class CornerLoyaltyCheckoutCreate(BaseModel):
    invitation_token: str
    centro_id: str


class LoyaltyCheckoutOut(CheckoutOut):
    loyalty_card_id: str


class LoyaltyCardOut(BaseModel):
    id: str
    customer_id: str
    centro_id: str
    card_number: str | None = None
    status: str
    amount_paid: float
    platform_commission: float
    centro_revenue: float
    corner_commission: float | None = None
    referred_by_corner_id: str | None = None
    max_devices: int
    devices_used: int
    activated_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BenefitsOut(BaseModel):
    has_active_card: bool
    diagnostic_fee: float
    repair_discount_percent: int
    can_use_repair_discount: bool
    devices_used: int
    max_devices: int
    card: LoyaltyCardOut | None = None


class UsageCreate(BaseModel):
    discount_type: Literal["diagnostic_fee", "repair_discount"]
    original_amount: float = Field(..., allow_inf_nan=False)
    discounted_amount: float = Field(..., allow_inf_nan=False)
    repair_id: str | None = None
    device_id: str | None = None

    @field_validator("original_amount", "discounted_amount")
    @classmethod
    def amount_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Amount cannot be negative")
        return v


class UsageOut(BaseModel):
    id: str
    loyalty_card_id: str
    repair_id: str | None = None
    device_id: str | None = None
    discount_type: str
    original_amount: float
    discounted_amount: float
    savings: float
    created_at: datetime

    model_config = {"from_attributes": True}
