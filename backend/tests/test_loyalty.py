"""Loyalty card checkout, activation, benefits and usage."""

import re
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.models.credit import CreditTransaction
from repairhub.models.customer import Customer
from repairhub.models.loyalty_card import CornerLoyaltyInvitation, LoyaltyCard
from repairhub.services.loyalty import compute_commission_split


@pytest_asyncio.fixture
async def invitation(db_session: AsyncSession, corner, centro) -> CornerLoyaltyInvitation:
    invitation = CornerLoyaltyInvitation(
        corner_id=corner.id,
        centro_id=centro.id,
        invitation_token="tok-abc123",
        customer_name="Giulia Bianchi",
        customer_email="giulia@example.com",
        customer_phone="+39 340 0000000",
        status="sent",
        expires_at=datetime.utcnow() + timedelta(days=7),
    )
    db_session.add(invitation)
    await db_session.flush()
    return invitation


async def _buy_card(client, gateway, headers, customer, centro) -> tuple[str, str]:
    response = await client.post(
        "/api/loyalty/checkout",
        json={"customer_id": customer.id, "centro_id": centro.id},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    gateway.mark_paid(data["session_id"])
    return data["loyalty_card_id"], data["session_id"]


@pytest.mark.unit
class TestCommissionSplit:

    def test_direct_sale(self):
        assert compute_commission_split(30, 0.05) == (Decimal("1.50"), Decimal("28.50"))

    def test_corner_referred_sale(self):
        """The corner keeps 10; commission applies to the remaining 20."""
        assert compute_commission_split(20, 0.05) == (Decimal("1.00"), Decimal("19.00"))

    def test_rounds_half_up_to_cents(self):
        assert compute_commission_split(Decimal("30.10"), 0.05) == (Decimal("1.51"), Decimal("28.59"))


@pytest.mark.api
@pytest.mark.asyncio
class TestLoyaltyCheckout:

    async def test_checkout_creates_pending_card(
        self, client: AsyncClient, db_session, gateway, centro, customer, centro_headers
    ):
        response = await client.post(
            "/api/loyalty/checkout",
            json={"customer_id": customer.id, "centro_id": centro.id},
            headers=centro_headers,
        )

        assert response.status_code == 200
        card = await db_session.get(LoyaltyCard, response.json()["loyalty_card_id"])
        assert card.status == "pending_payment"
        assert card.amount_paid == Decimal("30.00")
        assert card.platform_commission == Decimal("1.50")
        assert card.centro_revenue == Decimal("28.50")
        assert card.max_devices == 3

        created = gateway.created[0]
        assert created["metadata"]["type"] == "loyalty_card"
        assert created["customer_email"] == customer.email

    async def test_stale_pending_cards_are_replaced(
        self, client: AsyncClient, db_session, centro, customer, centro_headers
    ):
        for _ in range(2):
            await client.post(
                "/api/loyalty/checkout",
                json={"customer_id": customer.id, "centro_id": centro.id},
                headers=centro_headers,
            )
        cards = (await db_session.execute(select(LoyaltyCard))).scalars().all()
        assert len(cards) == 1

    async def test_other_centro_forbidden(self, client: AsyncClient, centro, customer, corner_headers):
        response = await client.post(
            "/api/loyalty/checkout",
            json={"customer_id": customer.id, "centro_id": centro.id},
            headers=corner_headers,
        )
        assert response.status_code == 403

    async def test_customer_buys_only_for_themselves(
        self, client: AsyncClient, db_session, centro, customer, customer_headers
    ):
        other = Customer(centro_id=centro.id, name="Luca Verdi", email="luca@example.com")
        db_session.add(other)
        await db_session.flush()
        pending = LoyaltyCard(
            customer_id=other.id,
            centro_id=centro.id,
            status="pending_payment",
            amount_paid=Decimal("30.00"),
            platform_commission=Decimal("1.50"),
            centro_revenue=Decimal("28.50"),
        )
        db_session.add(pending)
        await db_session.flush()

        response = await client.post(
            "/api/loyalty/checkout",
            json={"customer_id": other.id, "centro_id": centro.id},
            headers=customer_headers,
        )

        assert response.status_code == 403
        kept = await db_session.execute(select(LoyaltyCard).where(LoyaltyCard.customer_id == other.id))
        assert kept.scalar_one().status == "pending_payment"

        own = await client.post(
            "/api/loyalty/checkout",
            json={"customer_id": customer.id, "centro_id": centro.id},
            headers=customer_headers,
        )
        assert own.status_code == 200


@pytest.mark.api
@pytest.mark.asyncio
class TestLoyaltyActivation:

    async def test_confirm_activates_and_deducts_commission(
        self, client: AsyncClient, db_session, gateway, mailer, centro, customer, centro_headers
    ):
        card_id, session_id = await _buy_card(client, gateway, centro_headers, customer, centro)

        response = await client.post("/api/loyalty/confirm", json={"session_id": session_id})

        data = response.json()
        assert data["success"] is True
        assert re.fullmatch(r"LC-\d{8}-0001", data["card_number"])
        assert data["centro_balance"] == 98.5

        card = await db_session.get(LoyaltyCard, card_id)
        assert card.status == "active"
        assert card.stripe_payment_intent_id == "pi_test_1"
        assert card.expires_at - card.activated_at == timedelta(days=365)

        await db_session.refresh(centro)
        assert centro.credit_balance == Decimal("98.50")
        assert centro.payment_status == "good_standing"

        txn = (await db_session.execute(select(CreditTransaction))).scalar_one()
        assert txn.transaction_type == "loyalty_commission"
        assert txn.amount == Decimal("-1.50")
        assert txn.external_ref == session_id

        assert len(mailer.sent) == 1
        assert mailer.sent[0]["to"] == customer.email
        assert data["card_number"] in mailer.sent[0]["html"]

    async def test_second_confirmation_is_noop(
        self, client: AsyncClient, db_session, gateway, mailer, centro, customer, centro_headers
    ):
        _, session_id = await _buy_card(client, gateway, centro_headers, customer, centro)

        await client.post("/api/loyalty/confirm", json={"session_id": session_id})
        response = await client.post("/api/loyalty/confirm", json={"session_id": session_id})

        assert response.json()["message"] == "Already active"
        await db_session.refresh(centro)
        assert centro.credit_balance == Decimal("98.50")
        txns = (await db_session.execute(select(CreditTransaction))).scalars().all()
        assert len(txns) == 1
        assert len(mailer.sent) == 1

    async def test_unpaid_session(self, client: AsyncClient, gateway, centro, customer, centro_headers):
        response = await client.post(
            "/api/loyalty/checkout",
            json={"customer_id": customer.id, "centro_id": centro.id},
            headers=centro_headers,
        )
        session_id = response.json()["session_id"]

        response = await client.post("/api/loyalty/confirm", json={"session_id": session_id})
        assert response.json() == {"success": False, "message": "Payment not completed"}

    async def test_checkout_refused_while_card_active(
        self, client: AsyncClient, gateway, centro, customer, centro_headers
    ):
        _, session_id = await _buy_card(client, gateway, centro_headers, customer, centro)
        await client.post("/api/loyalty/confirm", json={"session_id": session_id})

        response = await client.post(
            "/api/loyalty/checkout",
            json={"customer_id": customer.id, "centro_id": centro.id},
            headers=centro_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ACTIVE_CARD_EXISTS"

    async def test_low_balance_centro_goes_to_warning(
        self, client: AsyncClient, db_session, gateway, centro, customer, centro_headers
    ):
        centro.credit_balance = Decimal("51.00")
        await db_session.flush()
        _, session_id = await _buy_card(client, gateway, centro_headers, customer, centro)

        response = await client.post("/api/loyalty/confirm", json={"session_id": session_id})

        assert response.json()["centro_balance"] == 49.5
        await db_session.refresh(centro)
        assert centro.payment_status == "warning"


@pytest.mark.integration
@pytest.mark.asyncio
class TestOneActiveCard:

    async def test_store_rejects_second_active_card(self, db_session: AsyncSession, centro, customer):
        for _ in range(2):
            db_session.add(LoyaltyCard(
                customer_id=customer.id,
                centro_id=centro.id,
                status="active",
                amount_paid=Decimal("30"),
                platform_commission=Decimal("1.50"),
                centro_revenue=Decimal("28.50"),
            ))
        with pytest.raises(IntegrityError):
            await db_session.flush()


@pytest.mark.api
@pytest.mark.asyncio
class TestCornerLoyalty:

    async def test_corner_referral_flow(
        self, client: AsyncClient, db_session, gateway, centro, corner, invitation,
        checkout_completed,
    ):
        response = await client.post(
            "/api/loyalty/corner-checkout",
            json={"invitation_token": invitation.invitation_token, "centro_id": centro.id},
        )
        assert response.status_code == 200, response.text
        data = response.json()

        card = await db_session.get(LoyaltyCard, data["loyalty_card_id"])
        assert card.corner_commission == Decimal("10.00")
        assert card.platform_commission == Decimal("1.00")
        assert card.centro_revenue == Decimal("19.00")
        assert card.referred_by_corner_id == corner.id

        await db_session.refresh(invitation)
        assert invitation.status == "clicked"

        customer = (
            await db_session.execute(select(Customer).where(Customer.email == "giulia@example.com"))
        ).scalar_one()
        assert customer.centro_id == centro.id

        session = gateway.mark_paid(data["session_id"])
        webhook = await client.post("/api/webhooks/stripe", json=checkout_completed(session))
        assert webhook.status_code == 200

        await db_session.refresh(centro)
        await db_session.refresh(corner)
        await db_session.refresh(invitation)
        assert centro.credit_balance == Decimal("99.00")
        assert corner.credit_balance == Decimal("10.00")
        assert invitation.status == "paid"

        types = sorted(
            t.transaction_type
            for t in (await db_session.execute(select(CreditTransaction))).scalars().all()
        )
        assert types == ["corner_loyalty_commission", "loyalty_commission"]

    async def test_expired_invitation(self, client: AsyncClient, db_session, centro, invitation):
        invitation.expires_at = datetime.utcnow() - timedelta(days=1)
        await db_session.flush()

        response = await client.post(
            "/api/loyalty/corner-checkout",
            json={"invitation_token": invitation.invitation_token, "centro_id": centro.id},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVITATION_EXPIRED"

    async def test_unknown_invitation(self, client: AsyncClient, centro):
        response = await client.post(
            "/api/loyalty/corner-checkout",
            json={"invitation_token": "nope", "centro_id": centro.id},
        )
        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestBenefitsAndUsage:

    async def _active_card(self, client, gateway, centro_headers, customer, centro) -> str:
        card_id, session_id = await _buy_card(client, gateway, centro_headers, customer, centro)
        await client.post("/api/loyalty/confirm", json={"session_id": session_id})
        return card_id

    async def test_benefits_without_card(self, client: AsyncClient, centro, customer, centro_headers):
        response = await client.get(
            "/api/loyalty/benefits",
            params={"customer_id": customer.id, "centro_id": centro.id},
            headers=centro_headers,
        )

        data = response.json()
        assert data["has_active_card"] is False
        assert data["diagnostic_fee"] == 15.0
        assert data["card"] is None

    async def test_benefits_with_card(self, client: AsyncClient, gateway, centro, customer, centro_headers):
        await self._active_card(client, gateway, centro_headers, customer, centro)

        response = await client.get(
            "/api/loyalty/benefits",
            params={"customer_id": customer.id, "centro_id": centro.id},
            headers=centro_headers,
        )

        data = response.json()
        assert data["has_active_card"] is True
        assert data["diagnostic_fee"] == 10.0
        assert data["repair_discount_percent"] == 10
        assert data["can_use_repair_discount"] is True
        assert data["card"]["status"] == "active"

    async def test_expired_card_yields_no_benefits(
        self, client: AsyncClient, db_session, gateway, centro, customer, centro_headers
    ):
        card_id = await self._active_card(client, gateway, centro_headers, customer, centro)
        card = await db_session.get(LoyaltyCard, card_id)
        card.expires_at = datetime.utcnow() - timedelta(seconds=1)
        await db_session.flush()

        response = await client.get(
            "/api/loyalty/benefits",
            params={"customer_id": customer.id, "centro_id": centro.id},
            headers=centro_headers,
        )

        assert response.json()["has_active_card"] is False
        await db_session.refresh(card)
        assert card.status == "expired"

    async def test_repair_discount_limited_to_max_devices(
        self, client: AsyncClient, gateway, centro, customer, centro_headers
    ):
        card_id = await self._active_card(client, gateway, centro_headers, customer, centro)
        usage = {"discount_type": "repair_discount", "original_amount": 100, "discounted_amount": 90}

        for _ in range(3):
            response = await client.post(
                f"/api/loyalty/cards/{card_id}/usages", json=usage, headers=centro_headers
            )
            assert response.status_code == 201
            assert response.json()["savings"] == 10.0

        response = await client.post(
            f"/api/loyalty/cards/{card_id}/usages", json=usage, headers=centro_headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DEVICE_LIMIT_REACHED"

        # Diagnostic discounts do not consume a device slot
        response = await client.post(
            f"/api/loyalty/cards/{card_id}/usages",
            json={"discount_type": "diagnostic_fee", "original_amount": 15, "discounted_amount": 10},
            headers=centro_headers,
        )
        assert response.status_code == 201

    async def test_cancel_card(self, client: AsyncClient, gateway, centro, customer, centro_headers):
        card_id = await self._active_card(client, gateway, centro_headers, customer, centro)

        response = await client.post(f"/api/loyalty/cards/{card_id}/cancel", headers=centro_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = await client.post(f"/api/loyalty/cards/{card_id}/cancel", headers=centro_headers)
        assert again.status_code == 409
