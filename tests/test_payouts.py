"""Tests for payout requests, stats and the admin payout queue.

Run with: pytest tests/test_payouts.py -v
"""

import pytest
from fastapi import HTTPException

from models.order import OrderStatus
from utils.payouts import compute_stats, list_eligible_orders, request_payout
from conftest import auth_headers, make_order, make_user, signed_event


class TestRequestPayout:
    async def test_payout_claims_completed_orders(self, client, db, buyer, seller):
        done = await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=30.0)
        await make_order(db, buyer, seller, status=OrderStatus.IN_PROGRESS, total_price=50.0)

        resp = await client.post("/api/payouts", headers=auth_headers(seller))
        assert resp.status_code == 200
        body = resp.json()
        assert body["amount"] == 27.0
        assert body["gross_amount"] == 30.0
        assert body["platform_fee"] == 3.0
        assert body["status"] == "PENDING"
        assert body["order_ids"] == [str(done["_id"])]

    async def test_second_request_has_nothing_left(self, client, db, buyer, seller):
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED)
        assert (await client.post("/api/payouts", headers=auth_headers(seller))).status_code == 200

        resp = await client.post("/api/payouts", headers=auth_headers(seller))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No completed orders available for payout"

    async def test_non_seller_is_403(self, client, buyer):
        resp = await client.post("/api/payouts", headers=auth_headers(buyer))
        assert resp.status_code == 403

    async def test_anonymous_is_401(self, client):
        resp = await client.post("/api/payouts")
        assert resp.status_code == 401

    async def test_claim_race_is_409(self, db, buyer, seller, monkeypatch):
        import utils.payouts as payouts

        order = await make_order(db, buyer, seller, status=OrderStatus.COMPLETED)

        async def stale_read(db, seller_id):
            # eligibility read before the competing claim landed
            return [order]

        await db.payout_claims.insert_one({"order_id": order["_id"], "payout_id": None, "seller_id": seller["_id"]})
        monkeypatch.setattr(payouts, "list_eligible_orders", stale_read)

        with pytest.raises(HTTPException) as exc:
            await request_payout(db, seller=seller)
        assert exc.value.status_code == 409
        assert await db.payouts.count_documents({}) == 0

    async def test_orphan_claim_is_not_advertised(self, client, db, buyer, seller):
        order = await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=30.0)
        # claim written by a request that died before inserting its payout
        await db.payout_claims.insert_one({"order_id": order["_id"], "payout_id": None})

        stats = (await client.get("/api/payouts/stats", headers=auth_headers(seller))).json()
        assert stats["available_for_payout"] == 0.0
        assert stats["unpaid_orders_count"] == 0
        assert stats["completed_orders_count"] == 1

        resp = await client.post("/api/payouts", headers=auth_headers(seller))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No completed orders available for payout"

    async def test_orphan_claim_leaves_other_orders_payable(self, client, db, buyer, seller):
        held = await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=30.0)
        free = await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=10.0)
        await db.payout_claims.insert_one({"order_id": held["_id"], "payout_id": None})

        stats = (await client.get("/api/payouts/stats", headers=auth_headers(seller))).json()
        resp = await client.post("/api/payouts", headers=auth_headers(seller))
        assert resp.status_code == 200
        assert resp.json()["order_ids"] == [str(free["_id"])]
        assert stats["available_for_payout"] == resp.json()["amount"] == 9.0

    async def test_failed_payout_still_claims_its_orders(self, db, buyer, seller):
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED)
        payout = await request_payout(db, seller=seller)
        await db.payouts.update_one({"_id": payout["_id"]}, {"$set": {"status": "FAILED"}})

        assert await list_eligible_orders(db, seller["_id"]) == []


class TestStats:
    async def test_stats_for_mixed_history(self, client, db, buyer, seller):
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=30.0)
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=20.0)
        assert (await client.post("/api/payouts", headers=auth_headers(seller))).status_code == 200
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=10.0)

        resp = await client.get("/api/payouts/stats", headers=auth_headers(seller))
        assert resp.status_code == 200
        assert resp.json() == {
            "total_earnings": 60.0,
            "platform_fees": 6.0,
            "net_earnings": 54.0,
            "total_paid_out": 0.0,
            "pending_payouts": 45.0,
            "available_for_payout": 9.0,
            "completed_orders_count": 3,
            "unpaid_orders_count": 1,
        }

    async def test_available_matches_next_payout(self, db, buyer, seller):
        for price in (12.34, 0.99, 7.77):
            await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=price)

        stats = await compute_stats(db, seller["_id"])
        payout = await request_payout(db, seller=seller)
        assert stats["available_for_payout"] == payout["amount"]

    async def test_stats_require_seller(self, client, buyer):
        resp = await client.get("/api/payouts/stats", headers=auth_headers(buyer))
        assert resp.status_code == 403

    async def test_history_newest_first(self, client, db, buyer, seller):
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED)
        await client.post("/api/payouts", headers=auth_headers(seller))

        resp = await client.get("/api/payouts", headers=auth_headers(seller))
        assert resp.status_code == 200
        assert len(resp.json()) == 1


class TestEndToEnd:
    async def test_paid_order_flows_into_payout(self, client, db, stripe, buyer, seller):
        resp = await client.post(
            "/api/orders",
            json={"seller_id": str(seller["_id"]), "title": "Cello suite", "length_minutes": 3},
            headers=auth_headers(buyer),
        )
        order_id = resp.json()["id"]

        resp = await client.post("/api/payments/intent", json={"order_id": order_id}, headers=auth_headers(buyer))
        assert resp.json()["platform_fee"] == 1.5
        assert resp.json()["seller_amount"] == 28.5

        body, headers = signed_event({
            "id": "evt_e2e",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_test", "metadata": {"order_id": order_id}}},
        })
        assert (await client.post("/api/webhooks/stripe", content=body, headers=headers)).status_code == 200

        for status in ("IN_PROGRESS", "COMPLETED"):
            resp = await client.patch(
                f"/api/orders/{order_id}",
                json={"status": status},
                headers=auth_headers(seller),
            )
            assert resp.status_code == 200

        resp = await client.post("/api/payouts", headers=auth_headers(seller))
        assert resp.status_code == 200
        assert resp.json()["amount"] == 27.0

    async def test_failed_payment_never_becomes_available(self, client, db, buyer, seller):
        order = await make_order(db, buyer, seller)
        body, headers = signed_event({
            "id": "evt_e2e_fail",
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_x", "metadata": {"order_id": str(order["_id"])}}},
        })
        await client.post("/api/webhooks/stripe", content=body, headers=headers)

        resp = await client.get("/api/payouts/stats", headers=auth_headers(seller))
        assert resp.json()["available_for_payout"] == 0.0
        assert resp.json()["completed_orders_count"] == 0


class TestAdminPayouts:
    @pytest.fixture
    async def admin(self, db):
        return await make_user(db, email="admin@example.com", role="admin")

    async def test_admin_marks_payout_paid(self, client, db, admin, buyer, seller):
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED, total_price=30.0)
        payout = (await client.post("/api/payouts", headers=auth_headers(seller))).json()

        resp = await client.get("/api/admin/payouts?status=PENDING", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["count"] == 1

        resp = await client.patch(
            f"/api/admin/payouts/{payout['id']}",
            json={"status": "PAID"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "PAID"

        stats = (await client.get("/api/payouts/stats", headers=auth_headers(seller))).json()
        assert stats["total_paid_out"] == 27.0
        assert stats["pending_payouts"] == 0.0

    async def test_paid_payout_is_final(self, client, db, admin, buyer, seller):
        await make_order(db, buyer, seller, status=OrderStatus.COMPLETED)
        payout = (await client.post("/api/payouts", headers=auth_headers(seller))).json()
        await client.patch(f"/api/admin/payouts/{payout['id']}", json={"status": "PAID"}, headers=auth_headers(admin))

        resp = await client.patch(
            f"/api/admin/payouts/{payout['id']}",
            json={"status": "FAILED"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 400

    async def test_non_admin_is_403(self, client, seller):
        resp = await client.get("/api/admin/payouts", headers=auth_headers(seller))
        assert resp.status_code == 403
