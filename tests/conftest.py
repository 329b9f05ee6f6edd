"""
Pytest configuration and shared fixtures.

The application runs against an in-memory SQLite database with the mock
payment gateway and local image storage. Every test that uses ``client``
gets a fresh database through the application lifespan.
"""

import os
import tempfile
from types import SimpleNamespace

# Set environment variables BEFORE any application imports
DATA_DIR = tempfile.mkdtemp(prefix="canteen-tests-")
os.environ.update({
    "ENV_MODE": "development",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "DATABASE_FALLBACK_URL": "",
    "BCRYPT_ROUNDS": "4",
    "SEED_ON_STARTUP": "false",
    "CELERY_TASK_ALWAYS_EAGER": "true",
    "MOCK_PAYMENT_LATENCY": "0",
    "MOCK_PAYMENT_FAILURE_RATE": "0",
    "DATA_DIRECTORY": DATA_DIR,
    "JWT_SECRET": "test-secret",
})

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from canteen import database
from canteen.core.security import generate_token
from canteen.main import app, lifespan
from canteen.models import Canteen, MenuItem, User
from canteen.seed import seed_database
from canteen.services.payment import reset_payment_gateways


@pytest_asyncio.fixture
async def client():
    """HTTP client bound to the app with startup and shutdown applied."""
    reset_payment_gateways()
    async with lifespan(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded(client):
    """Demo canteens, users and menus, keyed by code / username / item name."""
    async with database.async_session_maker() as session:
        await seed_database(session)
        users = (await session.execute(select(User))).scalars().all()
        canteens = (await session.execute(select(Canteen))).scalars().all()
        items = (await session.execute(select(MenuItem))).scalars().all()

    return SimpleNamespace(
        users={u.username: u for u in users},
        canteens={c.code: c for c in canteens},
        items={i.name: i for i in items},
    )


@pytest.fixture
def auth_headers(seeded):
    """Build bearer headers for a seeded user."""
    def _headers(username: str) -> dict[str, str]:
        user = seeded.users[username]
        return {"Authorization": f"Bearer {generate_token(user.id, user.role.value)}"}
    return _headers


@pytest.fixture
def place_order(client, seeded, auth_headers):
    """Place an order through the API and return the order body."""
    async def _place(username="demo_user1", canteen="canteen-a", items=None,
                     payment_type="individual", order_type="takeaway", expect=201):
        items = items or [("Samosa", 2)]
        response = await client.post(
            "/api/orders",
            json={
                "canteen_id": seeded.canteens[canteen].id,
                "items": [
                    {"menu_item_id": seeded.items[name].id, "quantity": qty}
                    for name, qty in items
                ],
                "order_type": order_type,
                "payment_type": payment_type,
            },
            headers=auth_headers(username),
        )
        assert response.status_code == expect, response.text
        return response.json()
    return _place


@pytest.fixture
def fetch(client):
    """Read a row in a fresh session."""
    async def _fetch(model, ident):
        async with database.async_session_maker() as session:
            return await session.get(model, ident)
    return _fetch
