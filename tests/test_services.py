"""
Tests for seeding, the report writer, storage and gateway selection.
"""

import pandas as pd
import pytest

from canteen import database
from canteen.seed import seed_database
from canteen.services.excel_manager import ExcelManager, order_row, report_path
from canteen.services.payment import BasePaymentGateway, MockPaymentGateway, get_payment_gateway
from canteen.services.payment.stripe import StripePaymentGateway
from canteen.services.storage import StorageError
from canteen.services.storage.local import LocalImageStorage


def make_order(code, canteen, total, status="approved"):
    return {
        "order_code": code,
        "order_date": "2024-05-01T12:00:00",
        "order_time": "12:00 PM",
        "user": {"username": "demo_user1", "full_name": "Demo User 1", "employee_id": "DEMO001"},
        "canteen": {"name": canteen},
        "items": [{"menu_item_id": "m1", "quantity": 2, "menu_item": {"name": "Samosa"}}],
        "total": total,
        "order_type": "takeaway",
        "payment_type": "individual",
        "status": status,
        "notes": None,
    }


class TestSeed:

    @pytest.mark.asyncio
    async def test_seed_runs_once(self, seeded):
        async with database.async_session_maker() as session:
            assert await seed_database(session) is False

        assert len(seeded.users) == 5
        assert len(seeded.items) == 16
        assert seeded.users["canteen_a_admin"].assigned_canteens == [
            seeded.canteens["canteen-a"].id
        ]
        assert seeded.users["super_admin"].is_super_admin
        assert seeded.items["Cold Coffee"].is_available is False


class TestExcelManager:

    def test_order_row_flattens_items(self):
        row = order_row(make_order("ORD-1", "Campus Canteen A", 50))

        assert row["customer"] == "Demo User 1"
        assert row["items"] == "2x Samosa"
        assert row["canteen"] == "Campus Canteen A"

    def test_write_report_with_summary(self):
        orders = [
            make_order("ORD-1", "Campus Canteen A", 50),
            make_order("ORD-2", "Campus Canteen A", 30),
            make_order("ORD-3", "Guest House Canteen", 100),
        ]

        result = ExcelManager.write_orders_report(orders)

        assert result["success"] is True
        assert result["rows"] == 3
        summary = pd.read_excel(report_path(), sheet_name="Summary", engine="openpyxl")
        assert summary.to_dict("records") == [
            {"canteen": "Guest House Canteen", "orders": 1, "revenue": 100},
            {"canteen": "Campus Canteen A", "orders": 2, "revenue": 80},
        ]

    def test_clear_report(self):
        ExcelManager.write_orders_report([make_order("ORD-1", "Campus Canteen A", 50)])

        assert ExcelManager.clear_report() is True
        assert ExcelManager.read_orders_report() == []


class TestLocalImageStorage:

    @pytest.mark.asyncio
    async def test_upload_and_delete(self, tmp_path):
        storage = LocalImageStorage(str(tmp_path), "qr")

        stored = await storage.upload(b"img", "code.PNG")

        assert stored.public_id.startswith("qr/")
        assert stored.public_id.endswith(".png")
        assert (tmp_path / stored.public_id).read_bytes() == b"img"
        assert await storage.delete(stored.public_id) is True
        assert await storage.delete(stored.public_id) is False

    @pytest.mark.asyncio
    async def test_rejects_unknown_format(self, tmp_path):
        storage = LocalImageStorage(str(tmp_path), "qr")
        with pytest.raises(StorageError):
            await storage.upload(b"x", "script.svg")

    @pytest.mark.asyncio
    async def test_rejects_paths_outside_root(self, tmp_path):
        storage = LocalImageStorage(str(tmp_path / "root"), "qr")
        with pytest.raises(StorageError):
            await storage.delete("../../etc/passwd")


class TestGatewaySelection:

    def test_development_uses_mock_per_canteen(self):
        gateway = get_payment_gateway("canteen-a")

        assert isinstance(gateway, MockPaymentGateway)
        assert gateway is get_payment_gateway("canteen-a")
        assert gateway is not get_payment_gateway("canteen-b")

    @pytest.mark.parametrize("secret,public,valid", [
        ("sk_test_abc", "pk_test_abc", True),
        ("sk_test_placeholder", "pk_test_abc", False),
        ("", "pk_test_abc", False),
        (None, None, False),
    ])
    def test_stripe_config_validity(self, secret, public, valid):
        assert StripePaymentGateway("canteen-a", secret, public).has_valid_config() is valid

    def test_gateway_interface_covers_checkout_only(self):
        assert BasePaymentGateway.__abstractmethods__ == {
            "provider_name",
            "has_valid_config",
            "create_payment_intent",
            "confirm_payment",
            "health_check",
        }

    @pytest.mark.asyncio
    async def test_mock_confirm_unknown_intent(self):
        gateway = MockPaymentGateway("canteen-a", max_latency=0)

        result = await gateway.confirm_payment("pi_mock_missing")

        assert result.success is False
        assert result.error_code == "resource_missing"
