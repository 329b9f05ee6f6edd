"""
Tests for the canteen directory, menus and their cache invalidation.
"""

import pytest

from canteen.main import app
from canteen.models import MenuItem


class TestCanteens:

    @pytest.mark.asyncio
    async def test_listing_includes_menu_counts_and_is_cached(self, client, seeded):
        first = await client.get("/api/canteens")

        assert first.status_code == 200
        canteens = first.json()["data"]["canteens"]
        assert [c["name"] for c in canteens] == ["Campus Canteen A", "Guest House Canteen"]
        guest_house = canteens[1]
        assert guest_house["total_menu_items"] == 8
        # Cold Coffee is out of stock
        assert guest_house["available_menu_items"] == 7
        assert "cached" not in first.json()

        second = await client.get("/api/canteens")
        assert second.json()["cached"] is True
        assert second.json()["data"]["canteens"] == canteens

    @pytest.mark.asyncio
    async def test_get_by_id_or_code(self, client, seeded):
        canteen = seeded.canteens["canteen-b"]

        by_id = await client.get(f"/api/canteens/{canteen.id}")
        by_code = await client.get("/api/canteens/canteen-b")

        assert by_id.json()["data"]["canteen"]["name"] == "Guest House Canteen"
        assert by_code.json()["data"]["canteen"]["id"] == canteen.id

        missing = await client.get("/api/canteens/nope")
        assert missing.status_code == 404
        assert missing.json()["message"] == "Canteen not found"

    @pytest.mark.asyncio
    async def test_create_update_deactivate_invalidate_listing(self, client, auth_headers):
        headers = auth_headers("super_admin")
        await client.get("/api/canteens")

        created = await client.post(
            "/api/canteens",
            json={"name": "Annex Cafe", "location": "Block C", "timing": "9 AM - 4 PM",
                  "code": "annex"},
            headers=headers,
        )
        assert created.status_code == 201
        canteen_id = created.json()["data"]["canteen"]["id"]

        listing = await client.get("/api/canteens")
        assert "cached" not in listing.json()
        assert "Annex Cafe" in [c["name"] for c in listing.json()["data"]["canteens"]]

        updated = await client.put(
            f"/api/canteens/{canteen_id}", json={"rating": 4.1}, headers=headers
        )
        assert updated.json()["data"]["canteen"]["rating"] == 4.1

        deleted = await client.delete(f"/api/canteens/{canteen_id}", headers=headers)
        assert deleted.status_code == 200
        names = [c["name"] for c in (await client.get("/api/canteens")).json()["data"]["canteens"]]
        assert "Annex Cafe" not in names

    @pytest.mark.asyncio
    async def test_rating_out_of_range_rejected(self, client, auth_headers):
        response = await client.post(
            "/api/canteens",
            json={"name": "X", "location": "Y", "timing": "Z", "rating": 7},
            headers=auth_headers("super_admin"),
        )
        assert response.status_code == 400


class TestMenu:

    @pytest.mark.asyncio
    async def test_menu_filters_and_ordering(self, client, seeded, auth_headers):
        response = await client.get(
            "/api/menu/canteen/canteen-a",
            params={"category": "snacks"},
            headers=auth_headers("demo_user1"),
        )

        items = response.json()["data"]["menu_items"]
        assert [i["name"] for i in items] == ["Pakora", "Samosa"]

        unavailable = await client.get(
            f"/api/menu/canteen/{seeded.canteens['canteen-b'].id}",
            params={"available": "false"},
            headers=auth_headers("demo_user1"),
        )
        assert [i["name"] for i in unavailable.json()["data"]["menu_items"]] == ["Cold Coffee"]

    @pytest.mark.asyncio
    async def test_invalid_filter_rejected(self, client, auth_headers):
        response = await client.get(
            "/api/menu/canteen/canteen-a",
            params={"category": "pizza"},
            headers=auth_headers("demo_user1"),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_canteen_gives_empty_menu(self, client, auth_headers):
        response = await client.get("/api/menu/canteen/unknown", headers=auth_headers("demo_user1"))
        assert response.status_code == 200
        assert response.json()["data"]["menu_items"] == []

    @pytest.mark.asyncio
    async def test_admin_limited_to_assigned_canteen(self, client, auth_headers):
        response = await client.get(
            "/api/menu/canteen/canteen-b", headers=auth_headers("canteen_a_admin")
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Access denied: not assigned to this canteen."

        own = await client.get("/api/menu/canteen/canteen-a", headers=auth_headers("canteen_a_admin"))
        assert own.status_code == 200

    @pytest.mark.asyncio
    async def test_update_invalidates_cached_menu(self, client, seeded, auth_headers):
        user = auth_headers("demo_user1")
        admin = auth_headers("canteen_a_admin")
        tea = seeded.items["Tea"]

        await client.get("/api/menu/canteen/canteen-a", headers=user)
        cached = await client.get("/api/menu/canteen/canteen-a", headers=user)
        assert cached.json()["cached"] is True

        response = await client.put(
            f"/api/menu/{tea.id}", json={"price": 18, "quantity": 0}, headers=admin
        )
        assert response.status_code == 200
        item = response.json()["data"]["menu_item"]
        assert item["price"] == 18
        assert item["is_available"] is False

        fresh = await client.get("/api/menu/canteen/canteen-a", headers=user)
        assert "cached" not in fresh.json()
        tea_row = next(i for i in fresh.json()["data"]["menu_items"] if i["name"] == "Tea")
        assert tea_row["price"] == 18

    @pytest.mark.asyncio
    async def test_create_item_in_other_canteen_denied(self, client, seeded, auth_headers):
        response = await client.post(
            "/api/menu",
            json={"name": "Momos", "price": 60, "quantity": 10, "category": "snacks",
                  "canteen_id": seeded.canteens["canteen-b"].id},
            headers=auth_headers("canteen_a_admin"),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_create_item_with_zero_stock_is_unavailable(self, client, seeded, auth_headers):
        response = await client.post(
            "/api/menu",
            json={"name": "Kheer", "price": 40, "quantity": 0, "category": "desserts",
                  "canteen_id": "canteen-a"},
            headers=auth_headers("canteen_a_admin"),
        )
        assert response.status_code == 201
        item = response.json()["data"]["menu_item"]
        assert item["is_available"] is False
        assert item["canteen_id"] == seeded.canteens["canteen-a"].id

    @pytest.mark.asyncio
    async def test_bulk_update(self, client, seeded, auth_headers, fetch):
        samosa = seeded.items["Samosa"]
        pakora = seeded.items["Pakora"]

        response = await client.patch(
            "/api/menu/bulk-update",
            json={"updates": [
                {"id": samosa.id, "quantity": 0},
                {"id": pakora.id, "quantity": 80},
            ]},
            headers=auth_headers("canteen_a_admin"),
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"matched_count": 2, "modified_count": 1}
        stored = await fetch(MenuItem, samosa.id)
        assert stored.quantity == 0
        assert stored.is_available is False

    @pytest.mark.asyncio
    async def test_bulk_update_across_canteens_denied(self, client, seeded, auth_headers):
        response = await client.patch(
            "/api/menu/bulk-update",
            json={"updates": [{"id": seeded.items["Burger"].id, "quantity": 5}]},
            headers=auth_headers("canteen_a_admin"),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_item(self, client, seeded, auth_headers):
        coffee = seeded.items["Coffee"]
        headers = auth_headers("canteen_a_admin")

        response = await client.delete(f"/api/menu/{coffee.id}", headers=headers)
        assert response.status_code == 200

        missing = await client.get(f"/api/menu/{coffee.id}")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_menu_cache_keyed_per_filter(self, client, auth_headers):
        headers = auth_headers("demo_user1")
        await client.get("/api/menu/canteen/canteen-a", headers=headers)
        await client.get("/api/menu/canteen/canteen-a", params={"category": "main"}, headers=headers)

        menu_keys = [k for k in app.state.cache.keys() if k.startswith("menu:")]
        assert len(menu_keys) == 2
