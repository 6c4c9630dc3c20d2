from fastapi import APIRouter, Depends, Query
from datetime import datetime

from database import get_db
from models.order import MessageCreate
from utils.guards import enforce, is_order_participant
from utils.order_service import get_order_or_404, list_order_messages
from utils.security import get_current_user
from utils.serializers import serialize_doc, serialize_docs, serialize_user_summary

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("")
async def send_message(
    data: MessageCreate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order_or_404(db, data.order_id)
    enforce(is_order_participant(user, order), "You are not part of this order")

    message = {
        "order_id": order["_id"],
        "sender_id": user["_id"],
        "content": data.content,
        "created_at": datetime.utcnow(),
    }
    await db.messages.insert_one(message)

    result = serialize_doc(message)
    result["sender"] = serialize_user_summary(user)
    return result


@router.get("")
async def list_messages(
    order_id: str = Query(...),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order_or_404(db, order_id)
    enforce(is_order_participant(user, order), "You are not part of this order")

    return serialize_docs(await list_order_messages(db, order["_id"]))
