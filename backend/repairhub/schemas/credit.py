"""Pydantic schemas for credit accounts, topups and ledger entries."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from repairhub.schemas.common import CheckoutOut

EntityType = Literal["centro", "corner"]


class TopupCheckoutCreate(BaseModel):
    entity_type: EntityType
    entity_id: str
    amount: float = Field(..., allow_inf_nan=False)
    user_email: str | None = None


class TopupCheckoutOut(CheckoutOut):
    topup_request_id: str


class BankTransferCreate(BaseModel):
    entity_type: EntityType
    entity_id: str
    amount: float = Field(..., allow_inf_nan=False)
    notes: str | None = None


class ManualTopupCreate(BaseModel):
    entity_type: EntityType
    entity_id: str
    amount: float = Field(..., allow_inf_nan=False)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v


class AdjustmentCreate(BaseModel):
    entity_type: EntityType
    entity_id: str
    amount: float = Field(..., allow_inf_nan=False)  # signed
    description: str

    @field_validator("amount")
    @classmethod
    def amount_nonzero(cls, v: float) -> float:
        if v == 0:
            raise ValueError("Amount must not be zero")
        return v

    @field_validator("description")
    @classmethod
    def description_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Description is required")
        return v.strip()


class TopupRequestOut(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    amount: float
    payment_method: str
    payment_reference: str | None = None
    status: str
    notes: str | None = None
    processed_at: datetime | None = None
    processed_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountOut(BaseModel):
    id: str
    business_name: str
    credit_balance: float
    payment_status: str
    credit_warning_threshold: float
    last_credit_update: datetime | None = None

    model_config = {"from_attributes": True}


class TransactionOut(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    transaction_type: str
    amount: float
    balance_after: float
    description: str | None = None
    external_ref: str | None = None
    created_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
