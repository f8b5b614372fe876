"""Aggregate model imports for Alembic auto-detection."""

# Tenants
from repairhub.models.centro import Centro, Corner  # noqa: F401
from repairhub.models.customer import Customer  # noqa: F401

# Repairs / inventory
from repairhub.models.repair import Device, Repair  # noqa: F401
from repairhub.models.spare_part import SparePart  # noqa: F401

# Credit ledger
from repairhub.models.credit import CreditTransaction, TopupRequest  # noqa: F401

# Loyalty
from repairhub.models.loyalty_card import (  # noqa: F401
    CornerLoyaltyInvitation,
    LoyaltyCard,
    LoyaltyCardUsage,
)

# Advertising
from repairhub.models.ad_campaign import DisplayAdCampaign, DisplayAdCampaignCorner  # noqa: F401
