"""
Tests for database startup and the fallback connection.
"""

import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError

from canteen import database

# sqlite cannot create a file inside a directory that does not exist
UNREACHABLE = "sqlite+aiosqlite:////nonexistent-canteen-dir/primary.db"
UNREACHABLE_FALLBACK = "sqlite+aiosqlite:////nonexistent-canteen-dir/fallback.db"


@pytest_asyncio.fixture
async def primary(monkeypatch):
    """Point the module at an unreachable primary, restoring the real engine afterwards."""
    original = database.engine
    database.use_engine(database.build_engine(UNREACHABLE))

    def configure(fallback_url):
        monkeypatch.setattr(
            database,
            "settings",
            database.settings.model_copy(update={"database_fallback_url": fallback_url}),
        )

    yield configure

    if database.engine is not original:
        await database.engine.dispose()
    database.use_engine(original, fallback=False)


class TestDatabaseFallback:

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_unreachable(self, primary, caplog):
        primary("sqlite+aiosqlite:///:memory:")

        await database.init_db()

        assert "Falling back to sqlite+aiosqlite:///:memory:" in caplog.text
        assert database.is_using_fallback() is True
        assert database.engine.url.database == ":memory:"
        async with database.async_session_maker() as session:
            assert await database.ping_db(session) is None

    @pytest.mark.asyncio
    async def test_both_connections_failing_raises(self, primary):
        primary(UNREACHABLE_FALLBACK)

        with pytest.raises(RuntimeError, match="Both primary and fallback"):
            await database.init_db()

        assert database.is_using_fallback() is False

    @pytest.mark.asyncio
    async def test_no_fallback_configured_reraises(self, primary):
        primary("")

        with pytest.raises(SQLAlchemyError):
            await database.init_db()

        assert database.is_using_fallback() is False


class TestDescribeUrl:

    def test_masks_credentials(self):
        masked = database.describe_url("postgresql+psycopg://canteen:secret@db:5432/canteen")
        assert masked == "postgresql+psycopg://***:***@db:5432/canteen"

    def test_leaves_plain_urls(self):
        assert database.describe_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"
