from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from utils.idempotency import IDEMPOTENCY_TTL_SECONDS


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Users
    await _create_index_safe(
        db.users,
        [("email", ASCENDING)],
        name="users_email_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.users,
        [("stripe_account_id", ASCENDING)],
        name="users_stripe_account_unique_idx",
        unique=True,
        sparse=True,
    )

    # Profiles / services
    await _create_index_safe(
        db.profiles,
        [("user_id", ASCENDING)],
        name="profiles_user_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.profiles,
        [("is_available", ASCENDING), ("created_at", DESCENDING)],
        name="profiles_available_created_idx",
    )
    await _create_index_safe(
        db.services,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="services_seller_created_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("buyer_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_buyer_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("seller_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)],
        name="orders_seller_status_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("stripe_payment_intent_id", ASCENDING)],
        name="orders_payment_intent_idx",
        sparse=True,
    )

    # Messages
    await _create_index_safe(
        db.messages,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="messages_order_created_idx",
    )

    # Payouts
    await _create_index_safe(
        db.payouts,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="payouts_seller_created_at_idx",
    )
    await _create_index_safe(
        db.payouts,
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="payouts_status_created_at_idx",
    )
    # one claim per order across all payouts
    await _create_index_safe(
        db.payout_claims,
        [("order_id", ASCENDING)],
        name="payout_claims_order_unique",
        unique=True,
    )

    # Timeline
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_created_idx",
    )

    # Idempotency
    await _create_index_safe(
        db.idempotency_keys,
        [("key", ASCENDING), ("scope", ASCENDING)],
        name="idempotency_key_scope_unique",
        unique=True,
    )
    await _create_index_safe(
        db.idempotency_keys,
        [("created_at", ASCENDING)],
        name="idempotency_ttl_idx",
        expireAfterSeconds=IDEMPOTENCY_TTL_SECONDS,
    )

    # Rate limits
    await _create_index_safe(
        db.rate_limits,
        [("key", ASCENDING)],
        name="rate_limits_key_unique",
        unique=True,
    )
