"""Credit accounts, topups and ledger.

Endpoints:
    POST /api/credit/topups/checkout                  Open a card-payment topup
    POST /api/credit/topups/confirm                   Confirm a paid checkout session
    POST /api/credit/topups/bank-transfer             Request a bank-transfer topup
    GET  /api/credit/topups                           List topup requests (admin)
    POST /api/credit/topups/manual                    Credit an account directly (admin)
    POST /api/credit/topups/{id}/approve              Approve a pending request (admin)
    POST /api/credit/topups/{id}/reject               Reject a pending request (admin)
    POST /api/credit/adjustments                      Signed manual adjustment (admin)
    GET  /api/credit/accounts/{type}/{id}             Balance and payment status
    GET  /api/credit/accounts/{type}/{id}/transactions  Ledger entries
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.auth.deps import (
    Principal,
    Role,
    ensure_entity_access,
    get_current_principal,
    require_platform_admin,
    require_role,
)
from repairhub.database import get_db
from repairhub.models.credit import TopupRequest
from repairhub.schemas.common import PaginatedResponse, SessionConfirm
from repairhub.schemas.credit import (
    AccountOut,
    AdjustmentCreate,
    BankTransferCreate,
    EntityType,
    ManualTopupCreate,
    TopupCheckoutCreate,
    TopupCheckoutOut,
    TopupRequestOut,
    TransactionOut,
)
from repairhub.services import topups
from repairhub.services.ledger import (
    StatusPolicy,
    apply_credit_movement,
    get_account,
    list_transactions,
)
from repairhub.services.payments import StripeGateway, get_payment_gateway
from repairhub.utils.http import request_origin

router = APIRouter()

account_holder = require_role(Role.CENTRO, Role.CORNER)


# ── Topups ───────────────────────────────────────────────────

@router.post("/topups/checkout", response_model=TopupCheckoutOut)
async def create_topup_checkout(
    body: TopupCheckoutCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    principal: Principal = Depends(account_holder),
):
    ensure_entity_access(principal, body.entity_type, body.entity_id)
    return await topups.create_topup_checkout(
        db,
        gateway,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        amount=body.amount,
        origin=request_origin(request),
        user_email=body.user_email,
    )


@router.post("/topups/confirm")
async def confirm_topup(
    body: SessionConfirm,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    _principal: Principal = Depends(get_current_principal),
):
    """Client-side confirmation after the checkout redirect.

    The webhook normally gets there first; either order is safe.
    """
    return await topups.confirm_topup_session(db, gateway, body.session_id)


@router.post(
    "/topups/bank-transfer",
    response_model=TopupRequestOut,
    status_code=status.HTTP_201_CREATED,
)
async def request_bank_transfer(
    body: BankTransferCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(account_holder),
):
    ensure_entity_access(principal, body.entity_type, body.entity_id)
    return await topups.create_bank_transfer_request(
        db,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        amount=body.amount,
        notes=body.notes,
    )


@router.get("/topups", response_model=PaginatedResponse[TopupRequestOut])
async def list_topup_requests(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _admin: Principal = Depends(require_platform_admin),
):
    base_stmt = select(TopupRequest)
    if status_filter:
        base_stmt = base_stmt.where(TopupRequest.status == status_filter)

    total = await db.scalar(select(func.count()).select_from(base_stmt.subquery())) or 0
    result = await db.execute(
        base_stmt.order_by(TopupRequest.created_at.desc()).limit(limit).offset(offset)
    )
    return PaginatedResponse(
        items=[TopupRequestOut.model_validate(r) for r in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/topups/manual")
async def create_manual_topup(
    body: ManualTopupCreate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_platform_admin),
):
    return await topups.create_manual_topup(
        db,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        amount=body.amount,
        created_by=admin.user_id,
    )


@router.post("/topups/{topup_id}/approve")
async def approve_topup(
    topup_id: str,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_platform_admin),
):
    return await topups.approve_topup_request(db, topup_id, admin.user_id)


@router.post("/topups/{topup_id}/reject", response_model=TopupRequestOut)
async def reject_topup(
    topup_id: str,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_platform_admin),
):
    return await topups.reject_topup_request(db, topup_id, admin.user_id)


# ── Adjustments ──────────────────────────────────────────────

@router.post("/adjustments")
async def create_adjustment(
    body: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_platform_admin),
):
    movement = await apply_credit_movement(
        db,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        amount=body.amount,
        policy=StatusPolicy.COMMISSION,
        transaction_type="manual_adjustment",
        description=body.description,
        created_by=admin.user_id,
    )
    return {
        "success": True,
        "transaction_id": movement.transaction.id,
        "new_balance": movement.balance_after,
        "payment_status": movement.payment_status,
    }


# ── Accounts ─────────────────────────────────────────────────

@router.get("/accounts/{entity_type}/{entity_id}", response_model=AccountOut)
async def get_credit_account(
    entity_type: EntityType,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(account_holder),
):
    ensure_entity_access(principal, entity_type, entity_id)
    return await get_account(db, entity_type, entity_id)


@router.get(
    "/accounts/{entity_type}/{entity_id}/transactions",
    response_model=PaginatedResponse[TransactionOut],
)
async def get_credit_transactions(
    entity_type: EntityType,
    entity_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(account_holder),
):
    ensure_entity_access(principal, entity_type, entity_id)
    await get_account(db, entity_type, entity_id)
    items, total = await list_transactions(db, entity_type, entity_id, limit, offset)
    return PaginatedResponse(
        items=[TransactionOut.model_validate(t) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )
