"""Credit topup endpoint tests."""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.auth.jwt import create_access_token
from repairhub.models.centro import Centro
from repairhub.models.credit import CreditTransaction, TopupRequest


@pytest_asyncio.fixture
async def indebted_centro(db_session: AsyncSession) -> Centro:
    centro = Centro(
        business_name="Centro In Rosso",
        credit_balance=Decimal("-20.00"),
        payment_status="suspended",
    )
    db_session.add(centro)
    await db_session.flush()
    return centro


@pytest.fixture
def indebted_headers(indebted_centro: Centro) -> dict:
    token = create_access_token(user_id="user-2", role="centro", entity_id=indebted_centro.id)
    return {"Authorization": f"Bearer {token}"}


async def _count(db: AsyncSession, model) -> int:
    return await db.scalar(select(func.count(model.id)))


@pytest.mark.api
@pytest.mark.asyncio
class TestTopupCheckout:

    async def test_checkout_opens_session(
        self, client: AsyncClient, db_session, gateway, centro, centro_headers
    ):
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 150},
            headers={**centro_headers, "Origin": "https://app.example.com"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["url"].startswith("https://checkout.test/")

        request = await db_session.get(TopupRequest, data["topup_request_id"])
        assert request.status == "pending"
        assert request.payment_method == "stripe"
        assert request.payment_reference == data["session_id"]

        created = gateway.created[0]
        assert created["amount"] == Decimal("150.00")
        assert created["success_url"] == "https://app.example.com/centro?topup=success"
        assert created["metadata"]["type"] == "topup"
        assert created["metadata"]["entity_id"] == centro.id

    async def test_amount_below_minimum_rejected(
        self, client: AsyncClient, db_session, gateway, centro, centro_headers
    ):
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 49.99},
            headers=centro_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "AMOUNT_TOO_LOW"
        assert await _count(db_session, TopupRequest) == 0
        assert gateway.created == []

    async def test_missing_fields(self, client: AsyncClient, centro_headers):
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro"},
            headers=centro_headers,
        )
        assert response.status_code == 422

    @pytest.mark.parametrize("amount", ["Infinity", "NaN", "-Infinity"])
    async def test_non_finite_amount_rejected(
        self, client: AsyncClient, db_session, gateway, centro, centro_headers, amount
    ):
        body = f'{{"entity_type": "centro", "entity_id": "{centro.id}", "amount": {amount}}}'
        response = await client.post(
            "/api/credit/topups/checkout",
            content=body,
            headers={**centro_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert await _count(db_session, TopupRequest) == 0
        assert gateway.created == []

    async def test_unknown_entity(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "corner", "entity_id": "nope", "amount": 60},
            headers=admin_headers,
        )
        assert response.status_code == 404

    async def test_provider_failure_maps_to_502(
        self, client: AsyncClient, gateway, centro, centro_headers
    ):
        gateway.fail_with = "Your card was declined"
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 60},
            headers=centro_headers,
        )
        assert response.status_code == 502
        assert "declined" in response.json()["error"]["message"]

    async def test_requires_token(self, client: AsyncClient, centro):
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 60},
        )
        assert response.status_code == 401

    async def test_cannot_topup_someone_else(
        self, client: AsyncClient, centro, corner_headers
    ):
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 60},
            headers=corner_headers,
        )
        assert response.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestTopupConfirm:

    async def _checkout(self, client, headers, centro_id, amount=100) -> str:
        response = await client.post(
            "/api/credit/topups/checkout",
            json={"entity_type": "centro", "entity_id": centro_id, "amount": amount},
            headers=headers,
        )
        assert response.status_code == 200
        return response.json()["session_id"]

    async def test_unpaid_session_changes_nothing(
        self, client: AsyncClient, db_session, centro, centro_headers
    ):
        session_id = await self._checkout(client, centro_headers, centro.id)

        response = await client.post(
            "/api/credit/topups/confirm", json={"session_id": session_id}, headers=centro_headers
        )

        assert response.json() == {"success": False, "message": "Payment not completed"}
        await db_session.refresh(centro)
        assert centro.credit_balance == Decimal("100.00")
        assert await _count(db_session, CreditTransaction) == 0

    async def test_topup_on_negative_balance(
        self, client: AsyncClient, db_session, gateway, indebted_centro, indebted_headers
    ):
        """-20 + 100 → 80, warning under the topup rules."""
        session_id = await self._checkout(client, indebted_headers, indebted_centro.id)
        gateway.mark_paid(session_id)

        response = await client.post(
            "/api/credit/topups/confirm", json={"session_id": session_id}, headers=indebted_headers
        )

        data = response.json()
        assert data["success"] is True
        assert data["new_balance"] == 80.0
        assert data["payment_status"] == "warning"

        await db_session.refresh(indebted_centro)
        assert indebted_centro.credit_balance == Decimal("80.00")
        assert indebted_centro.payment_status == "warning"

        request = (await db_session.execute(select(TopupRequest))).scalar_one()
        assert request.status == "approved"
        assert request.processed_at is not None

    async def test_confirming_twice_applies_once(
        self, client: AsyncClient, db_session, gateway, centro, centro_headers
    ):
        session_id = await self._checkout(client, centro_headers, centro.id)
        gateway.mark_paid(session_id)

        first = await client.post(
            "/api/credit/topups/confirm", json={"session_id": session_id}, headers=centro_headers
        )
        second = await client.post(
            "/api/credit/topups/confirm", json={"session_id": session_id}, headers=centro_headers
        )

        assert first.json()["new_balance"] == 200.0
        assert second.json() == {"success": True, "message": "Already processed"}

        await db_session.refresh(centro)
        assert centro.credit_balance == Decimal("200.00")
        txns = (await db_session.execute(select(CreditTransaction))).scalars().all()
        assert len(txns) == 1
        assert txns[0].external_ref == session_id
        assert txns[0].transaction_type == "topup"

    async def test_existing_ledger_entry_for_session_blocks_credit(
        self, client: AsyncClient, db_session, gateway, centro, centro_headers
    ):
        session_id = await self._checkout(client, centro_headers, centro.id)
        gateway.mark_paid(session_id)
        db_session.add(CreditTransaction(
            entity_type="centro",
            entity_id=centro.id,
            transaction_type="topup",
            amount=Decimal("100.00"),
            balance_after=Decimal("200.00"),
            external_ref=session_id,
        ))
        await db_session.flush()

        response = await client.post(
            "/api/credit/topups/confirm", json={"session_id": session_id}, headers=centro_headers
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Already processed"}
        await db_session.refresh(centro)
        assert centro.credit_balance == Decimal("100.00")
        assert await _count(db_session, CreditTransaction) == 1
        request = (await db_session.execute(select(TopupRequest))).scalar_one()
        await db_session.refresh(request)
        assert request.status == "pending"

    async def test_paid_session_without_metadata(
        self, client: AsyncClient, gateway, centro_headers
    ):
        await gateway.create_checkout_session(
            amount=Decimal("50"),
            product_name="x",
            description="x",
            success_url="x",
            cancel_url="x",
            metadata={"type": "topup"},
        )
        gateway.mark_paid("cs_test_1")

        response = await client.post(
            "/api/credit/topups/confirm", json={"session_id": "cs_test_1"}, headers=centro_headers
        )
        assert response.status_code == 400


@pytest.mark.api
@pytest.mark.asyncio
class TestAdminTopups:

    async def test_manual_topup(self, client: AsyncClient, db_session, corner, admin_headers):
        response = await client.post(
            "/api/credit/topups/manual",
            json={"entity_type": "corner", "entity_id": corner.id, "amount": 120},
            headers=admin_headers,
        )

        data = response.json()
        assert response.status_code == 200
        assert data["new_balance"] == 120.0
        assert data["payment_status"] == "good_standing"

        request = await db_session.get(TopupRequest, data["topup_request_id"])
        assert request.payment_method == "manual"
        assert request.status == "approved"
        assert request.processed_by == "admin-1"

    async def test_manual_topup_requires_admin(self, client: AsyncClient, centro, centro_headers):
        response = await client.post(
            "/api/credit/topups/manual",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 120},
            headers=centro_headers,
        )
        assert response.status_code == 403

    async def test_bank_transfer_approve_then_reject_conflicts(
        self, client: AsyncClient, db_session, centro, centro_headers, admin_headers
    ):
        created = await client.post(
            "/api/credit/topups/bank-transfer",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 75, "notes": "CRO 123"},
            headers=centro_headers,
        )
        assert created.status_code == 201
        topup_id = created.json()["id"]

        approved = await client.post(f"/api/credit/topups/{topup_id}/approve", headers=admin_headers)
        assert approved.json()["new_balance"] == 175.0

        again = await client.post(f"/api/credit/topups/{topup_id}/approve", headers=admin_headers)
        assert again.json() == {"success": True, "message": "Already processed"}

        rejected = await client.post(f"/api/credit/topups/{topup_id}/reject", headers=admin_headers)
        assert rejected.status_code == 409
        assert await _count(db_session, CreditTransaction) == 1

    async def test_reject_pending(self, client: AsyncClient, centro, centro_headers, admin_headers):
        created = await client.post(
            "/api/credit/topups/bank-transfer",
            json={"entity_type": "centro", "entity_id": centro.id, "amount": 75},
            headers=centro_headers,
        )
        topup_id = created.json()["id"]

        response = await client.post(f"/api/credit/topups/{topup_id}/reject", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

        listed = await client.get("/api/credit/topups?status=rejected", headers=admin_headers)
        assert listed.json()["total"] == 1

    async def test_manual_adjustment_uses_commission_rules(
        self, client: AsyncClient, centro, admin_headers, centro_headers
    ):
        response = await client.post(
            "/api/credit/adjustments",
            json={
                "entity_type": "centro",
                "entity_id": centro.id,
                "amount": -70,
                "description": "Chargeback",
            },
            headers=admin_headers,
        )
        assert response.json()["new_balance"] == 30.0
        assert response.json()["payment_status"] == "warning"

        account = await client.get(f"/api/credit/accounts/centro/{centro.id}", headers=centro_headers)
        assert account.json()["credit_balance"] == 30.0
        assert account.json()["payment_status"] == "warning"

        txns = await client.get(
            f"/api/credit/accounts/centro/{centro.id}/transactions", headers=centro_headers
        )
        body = txns.json()
        assert body["total"] == 1
        assert body["items"][0]["transaction_type"] == "manual_adjustment"
