"""
Tests for payment QR uploads (local image storage).
"""

from pathlib import Path

import pytest

from canteen.main import app
from canteen.services.storage import BaseImageStorage, StorageError, get_image_storage, local_upload_root

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class BrokenStorage(BaseImageStorage):

    @property
    def provider_name(self) -> str:
        return "broken"

    async def upload(self, content, filename):
        raise StorageError("bucket unavailable")

    async def delete(self, public_id):
        raise StorageError("bucket unavailable")

    async def health_check(self) -> bool:
        return False


@pytest.fixture
def upload_qr(client, auth_headers):
    async def _upload(canteen="canteen-a", username="canteen_a_admin",
                      content=PNG, content_type="image/png", expect=201):
        response = await client.post(
            "/api/payment/upload",
            data={"canteen_id": canteen},
            files={"qr_image": ("qr.png", content, content_type)},
            headers=auth_headers(username),
        )
        assert response.status_code == expect, response.text
        return response.json()
    return _upload


class TestPaymentQR:

    @pytest.mark.asyncio
    async def test_upload_stores_image_and_serves_it(self, client, upload_qr, auth_headers):
        qr = (await upload_qr())["data"]["payment_qr"]

        assert qr["is_active"] is True
        assert qr["qr_code_url"].startswith("/uploads/canteen-qr-codes/")
        assert (Path(local_upload_root()) / qr["public_id"]).read_bytes() == PNG

        served = await client.get(qr["qr_code_url"])
        assert served.status_code == 200
        assert served.content == PNG

        active = await client.get(
            "/api/payment/canteen/canteen-a", headers=auth_headers("demo_user1")
        )
        assert active.json()["data"]["payment_qr"]["id"] == qr["id"]

    @pytest.mark.asyncio
    async def test_new_upload_replaces_active_qr(self, client, upload_qr, auth_headers):
        first = (await upload_qr())["data"]["payment_qr"]
        second = (await upload_qr())["data"]["payment_qr"]

        listing = await client.get("/api/payment", headers=auth_headers("canteen_a_admin"))
        states = {q["id"]: q["is_active"] for q in listing.json()["data"]["payment_qrs"]}
        assert states == {first["id"]: False, second["id"]: True}

    @pytest.mark.asyncio
    async def test_rejects_non_images(self, upload_qr):
        body = await upload_qr(content=b"%PDF-1.4", content_type="application/pdf", expect=400)
        assert body["message"] == "Only image files are allowed!"

    @pytest.mark.asyncio
    async def test_rejects_oversized_images(self, upload_qr):
        body = await upload_qr(content=PNG + b"\x00" * (5 * 1024 * 1024), expect=400)
        assert "too large" in body["message"]

    @pytest.mark.asyncio
    async def test_admin_limited_to_own_canteen(self, upload_qr):
        await upload_qr(canteen="canteen-b", username="canteen_a_admin", expect=403)

    @pytest.mark.asyncio
    async def test_missing_qr(self, client, auth_headers):
        response = await client.get(
            "/api/payment/canteen/canteen-b", headers=auth_headers("demo_user1")
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Payment QR not found for this canteen"

    @pytest.mark.asyncio
    async def test_toggle_reactivates_and_deactivates_others(self, client, upload_qr, auth_headers):
        headers = auth_headers("canteen_a_admin")
        first = (await upload_qr())["data"]["payment_qr"]
        second = (await upload_qr())["data"]["payment_qr"]

        response = await client.patch(f"/api/payment/{first['id']}/toggle", headers=headers)
        assert response.json()["message"] == "Payment QR activated successfully"

        active = await client.get("/api/payment/canteen/canteen-a", headers=headers)
        assert active.json()["data"]["payment_qr"]["id"] == first["id"]

        listing = await client.get("/api/payment", headers=headers)
        states = {q["id"]: q["is_active"] for q in listing.json()["data"]["payment_qrs"]}
        assert states[second["id"]] is False

    @pytest.mark.asyncio
    async def test_update_replaces_image(self, client, upload_qr, auth_headers):
        qr = (await upload_qr())["data"]["payment_qr"]
        old_path = Path(local_upload_root()) / qr["public_id"]

        response = await client.put(
            f"/api/payment/{qr['id']}",
            files={"qr_image": ("new.jpg", b"\xff\xd8\xff" + b"\x00" * 16, "image/jpeg")},
            headers=auth_headers("canteen_a_admin"),
        )

        updated = response.json()["data"]["payment_qr"]
        assert updated["public_id"].endswith(".jpg")
        assert not old_path.exists()

    @pytest.mark.asyncio
    async def test_delete_removes_image(self, client, upload_qr, auth_headers):
        qr = (await upload_qr())["data"]["payment_qr"]
        path = Path(local_upload_root()) / qr["public_id"]

        response = await client.delete(
            f"/api/payment/{qr['id']}", headers=auth_headers("canteen_a_admin")
        )

        assert response.status_code == 200
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_storage_failure_maps_to_bad_gateway(self, client, upload_qr):
        app.dependency_overrides[get_image_storage] = lambda: BrokenStorage("qr")

        body = await upload_qr(expect=502)
        assert body["message"] == "Failed to upload QR image: bucket unavailable"
