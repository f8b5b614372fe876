"""Pydantic schemas for the forfeiture sweep."""

from pydantic import BaseModel


class SweepResultOut(BaseModel):
    warnings_sent: int
    forfeited: int
    devices_added_to_inventory: int
    errors: list[str]
