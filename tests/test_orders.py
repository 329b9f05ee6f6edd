"""
Tests for queued order placement, tracking, status changes and reporting.
"""

import re

import pytest
from sqlalchemy import update

from canteen import database
from canteen.core.errors import BadRequestError
from canteen.main import app
from canteen.models import Canteen, MenuItem
from canteen.services.excel_manager import ExcelManager
from canteen.services.orders import take_stock


class TestPlacement:

    @pytest.mark.asyncio
    async def test_individual_order_is_approved_and_takes_stock(
        self, seeded, place_order, fetch
    ):
        body = await place_order(items=[("Samosa", 2), ("Tea", 3)])

        assert body["message"] == "Order created successfully"
        order = body["data"]["order"]
        assert order["status"] == "approved"
        assert order["total"] == 2 * 25 + 3 * 15
        assert order["organization_bill"] is False
        assert order["order_code"].startswith("ORD-")
        assert re.fullmatch(r"\d{2}:\d{2} [AP]M", order["order_time"])
        assert {i["menu_item"]["name"]: i["quantity"] for i in order["items"]} == {
            "Samosa": 2,
            "Tea": 3,
        }

        assert (await fetch(MenuItem, seeded.items["Samosa"].id)).quantity == 98
        assert (await fetch(MenuItem, seeded.items["Tea"].id)).quantity == 197

    @pytest.mark.asyncio
    async def test_organization_order_waits_for_approval(self, place_order):
        order = (await place_order(payment_type="organization"))["data"]["order"]

        assert order["status"] == "pending"
        assert order["organization_bill"] is True

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, place_order):
        body = await place_order(items=[("Chicken Curry", 31)], expect=400)

        assert body == {
            "success": False,
            "message": "Insufficient quantity for Chicken Curry. Available: 30, Requested: 31",
        }

    @pytest.mark.asyncio
    async def test_last_portions_mark_item_unavailable(self, seeded, place_order, fetch):
        await place_order(items=[("Chicken Curry", 30)])

        curry = await fetch(MenuItem, seeded.items["Chicken Curry"].id)
        assert curry.quantity == 0
        assert curry.is_available is False

        body = await place_order(items=[("Chicken Curry", 1)], expect=400)
        assert body["message"] == (
            f"Menu item {seeded.items['Chicken Curry'].id} not found or unavailable"
        )

    @pytest.mark.asyncio
    async def test_out_of_stock_item_rejected(self, seeded, place_order):
        body = await place_order(canteen="canteen-b", items=[("Cold Coffee", 1)], expect=400)
        assert "not found or unavailable" in body["message"]

    @pytest.mark.asyncio
    async def test_item_from_another_canteen_rejected(self, place_order):
        # Burger belongs to the guest house
        body = await place_order(canteen="canteen-a", items=[("Burger", 1)], expect=400)
        assert "not found or unavailable" in body["message"]

    @pytest.mark.asyncio
    async def test_inactive_canteen_rejected(self, seeded, place_order):
        async with database.async_session_maker() as session:
            await session.execute(
                update(Canteen)
                .where(Canteen.id == seeded.canteens["canteen-a"].id)
                .values(is_active=False)
            )
            await session.commit()

        body = await place_order(expect=404)
        assert body["message"] == "Canteen not found or inactive"

    @pytest.mark.asyncio
    async def test_empty_order_rejected(self, client, seeded, auth_headers):
        response = await client.post(
            "/api/orders",
            json={"canteen_id": seeded.canteens["canteen-a"].id, "items": [],
                  "order_type": "dine-in", "payment_type": "individual"},
            headers=auth_headers("demo_user1"),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_placement_invalidates_menu_cache(self, client, place_order, auth_headers):
        headers = auth_headers("demo_user1")
        await client.get("/api/menu/canteen/canteen-a", headers=headers)
        assert any(k.startswith("menu:") for k in app.state.cache.keys())

        await place_order()

        assert not any(k.startswith("menu:") for k in app.state.cache.keys())
        menu = await client.get("/api/menu/canteen/canteen-a", headers=headers)
        samosa = next(i for i in menu.json()["data"]["menu_items"] if i["name"] == "Samosa")
        assert samosa["quantity"] == 98

    @pytest.mark.asyncio
    async def test_stock_guard_uses_current_quantity(self, seeded, client):
        async with database.async_session_maker() as session:
            pakora = await session.get(MenuItem, seeded.items["Pakora"].id)
            # another placement took stock after this session loaded the item
            await session.execute(
                update(MenuItem).where(MenuItem.id == pakora.id).values(quantity=1)
            )

            with pytest.raises(BadRequestError, match="Available: 1, Requested: 5"):
                await take_stock(session, pakora, 5)

    @pytest.mark.asyncio
    async def test_queue_status(self, client, auth_headers):
        response = await client.get("/api/orders/queue/status", headers=auth_headers("super_admin"))

        assert response.json()["data"]["queue"] == {
            "queue_length": 0,
            "active_jobs": 0,
            "max_concurrency": 5,
        }


class TestTracking:

    @pytest.mark.asyncio
    async def test_my_orders_cached_until_next_order(self, client, place_order, auth_headers):
        headers = auth_headers("demo_user1")
        await place_order()

        first = await client.get("/api/orders/my-orders", headers=headers)
        assert first.json()["data"]["pagination"]["total"] == 1
        assert "cached" not in first.json()

        second = await client.get("/api/orders/my-orders", headers=headers)
        assert second.json()["cached"] is True

        await place_order()
        third = await client.get("/api/orders/my-orders", headers=headers)
        assert "cached" not in third.json()
        assert len(third.json()["data"]["orders"]) == 2

    @pytest.mark.asyncio
    async def test_my_orders_only_lists_own(self, client, place_order, auth_headers):
        await place_order(username="demo_user1")
        await place_order(username="demo_user2")

        response = await client.get(
            "/api/orders/my-orders", params={"status": "approved"},
            headers=auth_headers("demo_user2"),
        )
        orders = response.json()["data"]["orders"]
        assert len(orders) == 1
        assert orders[0]["user"]["username"] == "demo_user2"

    @pytest.mark.asyncio
    async def test_get_order_access(self, client, place_order, auth_headers):
        order = (await place_order(username="demo_user1"))["data"]["order"]

        own = await client.get(f"/api/orders/{order['id']}", headers=auth_headers("demo_user1"))
        assert own.status_code == 200

        other = await client.get(f"/api/orders/{order['id']}", headers=auth_headers("demo_user2"))
        assert other.status_code == 403
        assert other.json()["message"] == "Access denied"

        wrong_admin = await client.get(
            f"/api/orders/{order['id']}", headers=auth_headers("canteen_b_admin")
        )
        assert wrong_admin.status_code == 403

        missing = await client.get("/api/orders/nope", headers=auth_headers("super_admin"))
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_admin_listing_scoped_to_assigned_canteens(
        self, client, place_order, auth_headers
    ):
        await place_order(canteen="canteen-a", items=[("Samosa", 1)])
        await place_order(canteen="canteen-b", items=[("Burger", 1)])

        scoped = await client.get("/api/orders", headers=auth_headers("canteen_a_admin"))
        assert [o["canteen"]["name"] for o in scoped.json()["data"]["orders"]] == [
            "Campus Canteen A"
        ]

        everything = await client.get("/api/orders", headers=auth_headers("super_admin"))
        assert everything.json()["data"]["pagination"]["total"] == 2


class TestStatusChanges:

    @pytest.mark.asyncio
    async def test_approve_records_approver(self, client, place_order, auth_headers):
        order = (await place_order(payment_type="organization"))["data"]["order"]

        response = await client.patch(
            f"/api/orders/{order['id']}/status",
            json={"status": "approved", "notes": "ok for lunch meeting"},
            headers=auth_headers("canteen_a_admin"),
        )

        updated = response.json()["data"]["order"]
        assert updated["status"] == "approved"
        assert updated["approver"]["username"] == "canteen_a_admin"
        assert updated["notes"] == "ok for lunch meeting"

    @pytest.mark.asyncio
    async def test_admin_of_other_canteen_cannot_change_status(
        self, client, place_order, auth_headers
    ):
        order = (await place_order())["data"]["order"]
        response = await client.patch(
            f"/api/orders/{order['id']}/status",
            json={"status": "completed"},
            headers=auth_headers("canteen_b_admin"),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cancel_pending_restores_stock(
        self, client, seeded, place_order, auth_headers, fetch
    ):
        order = (await place_order(payment_type="organization", items=[("Pakora", 4)]))
        order = order["data"]["order"]
        assert (await fetch(MenuItem, seeded.items["Pakora"].id)).quantity == 76

        response = await client.patch(
            f"/api/orders/{order['id']}/cancel", headers=auth_headers("demo_user1")
        )

        assert response.status_code == 200
        assert response.json()["data"]["order"]["status"] == "cancelled"
        assert (await fetch(MenuItem, seeded.items["Pakora"].id)).quantity == 80

    @pytest.mark.asyncio
    async def test_only_pending_orders_can_be_cancelled(self, client, place_order, auth_headers):
        order = (await place_order())["data"]["order"]

        response = await client.patch(
            f"/api/orders/{order['id']}/cancel", headers=auth_headers("demo_user1")
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Can only cancel pending orders"


class TestReporting:

    @pytest.mark.asyncio
    async def test_analytics_summary(self, client, place_order, auth_headers):
        await place_order(items=[("Samosa", 2)])
        await place_order(items=[("Veg Thali", 1)])
        await place_order(items=[("Tea", 2)], payment_type="organization")
        await place_order(canteen="canteen-b", items=[("Lassi", 1)])

        response = await client.get(
            "/api/orders/analytics/summary", headers=auth_headers("canteen_a_admin")
        )

        analytics = response.json()["data"]["analytics"]
        assert analytics["total_orders"] == 3
        assert analytics["total_revenue"] == 50 + 120 + 30
        assert analytics["approved_orders"] == 2
        assert analytics["pending_orders"] == 1
        assert analytics["organization_orders"] == 1
        assert analytics["avg_order_value"] == round(200 / 3, 2)

    @pytest.mark.asyncio
    async def test_analytics_rejects_bad_dates(self, client, auth_headers):
        response = await client.get(
            "/api/orders/analytics/summary",
            params={"start_date": "yesterday"},
            headers=auth_headers("super_admin"),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid start date format"

    @pytest.mark.asyncio
    async def test_export_writes_excel_report(self, client, place_order, auth_headers):
        await place_order(items=[("Samosa", 2)])
        await place_order(canteen="canteen-b", username="demo_user2", items=[("Burger", 1)])

        response = await client.post(
            "/api/orders/export", json={}, headers=auth_headers("super_admin")
        )

        assert response.status_code == 202
        data = response.json()["data"]
        assert data["orders"] == 2
        assert data["task_id"]

        rows = ExcelManager.read_orders_report()
        assert sorted(r["canteen"] for r in rows) == ["Campus Canteen A", "Guest House Canteen"]
        samosa_row = next(r for r in rows if r["canteen"] == "Campus Canteen A")
        assert samosa_row["items"] == "2x Samosa"
        assert samosa_row["total"] == 50
