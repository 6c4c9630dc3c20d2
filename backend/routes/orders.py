from fastapi import APIRouter, Depends

from database import get_db
from models.order import OrderCancel, OrderCreate, OrderSellerUpdate
from utils.guards import can_buy, enforce, is_order_participant, is_order_seller
from utils.order_service import (
    cancel_order,
    create_order,
    get_order_or_404,
    latest_message,
    list_order_messages,
    list_orders_for_user,
    load_participants,
    update_order_as_seller,
)
from utils.security import get_current_user
from utils.serializers import serialize_order


router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


# ======================================================
# CREATE ORDER (BUYER)
# ======================================================

@router.post("")
async def place_order(
    data: OrderCreate,
    buyer=Depends(get_current_user),
    db=Depends(get_db),
):
    enforce(can_buy(buyer), "Buying is disabled for this account")

    order = await create_order(db, buyer=buyer, data=data)
    buyer_doc, seller_doc = await load_participants(db, order)
    return serialize_order(order, buyer=buyer_doc, seller=seller_doc)


# ======================================================
# MY ORDERS (AS BUYER OR SELLER)
# ======================================================

@router.get("")
async def my_orders(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    orders = await list_orders_for_user(db, user["_id"])

    result = []
    for order in orders:
        buyer, seller = await load_participants(db, order)
        result.append(serialize_order(
            order,
            buyer=buyer,
            seller=seller,
            last_message=await latest_message(db, order["_id"]),
        ))
    return result


# ======================================================
# ORDER DETAIL (PARTICIPANTS)
# ======================================================

@router.get("/{order_id}")
async def order_detail(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order_or_404(db, order_id)
    enforce(is_order_participant(user, order), "You are not part of this order")

    buyer, seller = await load_participants(db, order)
    messages = await list_order_messages(db, order["_id"])
    return serialize_order(order, buyer=buyer, seller=seller, messages=messages)


# ======================================================
# SELLER UPDATE (STATUS / DELIVERY)
# ======================================================

@router.patch("/{order_id}")
async def seller_update_order(
    order_id: str,
    data: OrderSellerUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order_or_404(db, order_id)
    enforce(is_order_seller(user, order), "Only the seller can update this order")

    updated = await update_order_as_seller(db, order=order, seller=user, data=data)
    buyer, seller = await load_participants(db, updated)
    return serialize_order(updated, buyer=buyer, seller=seller)


# ======================================================
# CANCEL (EITHER PARTY)
# ======================================================

@router.post("/{order_id}/cancel")
async def cancel(
    order_id: str,
    data: OrderCancel | None = None,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order_or_404(db, order_id)
    enforce(is_order_participant(user, order), "You are not part of this order")

    updated = await cancel_order(
        db,
        order=order,
        actor=user,
        reason=data.reason if data else None,
    )
    buyer, seller = await load_participants(db, updated)
    return serialize_order(updated, buyer=buyer, seller=seller)
