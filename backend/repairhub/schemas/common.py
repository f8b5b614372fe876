"""Shapes shared by several routers."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a listing plus the unpaged total."""
    items: list[T]
    total: int
    limit: int
    offset: int


class CheckoutOut(BaseModel):
    """Hosted checkout page to redirect the payer to."""
    url: str | None
    session_id: str


class SessionConfirm(BaseModel):
    session_id: str = Field(..., min_length=1)
