"""Pydantic schemas for display ad campaigns."""

from datetime import date

from pydantic import BaseModel, field_validator, model_validator

from repairhub.schemas.common import CheckoutOut


class AdCheckoutCreate(BaseModel):
    advertiser_name: str
    advertiser_email: str
    advertiser_phone: str | None = None
    advertiser_company: str | None = None
    ad_title: str
    ad_description: str | None = None
    ad_image_url: str | None = None
    ad_type: str = "gradient"
    start_date: date
    end_date: date
    corner_ids: list[str]

    @field_validator("corner_ids")
    @classmethod
    def at_least_one_corner(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("Select at least one corner")
        return v

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class AdCheckoutOut(CheckoutOut):
    campaign_id: str
    total_price: float
    weeks: int
