from bson import ObjectId
from datetime import datetime


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    return value


def serialize_doc(doc: dict | None, *, exclude: tuple = ()) -> dict | None:
    if not doc:
        return doc

    out = {"id": str(doc["_id"])} if "_id" in doc else {}
    for k, v in doc.items():
        if k == "_id" or k in exclude:
            continue
        out[k] = serialize_value(v)
    return out


def serialize_docs(docs, **kwargs):
    return [serialize_doc(d, **kwargs) for d in docs]


def serialize_user_summary(user: dict | None) -> dict | None:
    if not user:
        return None
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
    }


def serialize_user(user: dict) -> dict:
    return serialize_doc(user, exclude=("password_hash",))


def serialize_order(order: dict, *, buyer=None, seller=None, messages=None, last_message=None) -> dict:
    data = serialize_doc(order)
    data["buyer"] = serialize_user_summary(buyer)
    data["seller"] = serialize_user_summary(seller)
    if messages is not None:
        data["messages"] = serialize_docs(messages)
    if last_message is not None or messages is None:
        data["last_message"] = serialize_doc(last_message)
    return data


def serialize_payout(payout: dict) -> dict:
    return serialize_doc(payout)
