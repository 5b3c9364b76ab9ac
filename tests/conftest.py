import os
import tempfile

# Configure before the app modules read their settings
_tmpdir = tempfile.mkdtemp(prefix="epicerie-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["EVENTS_ENABLED"] = "0"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin123"

import pytest
import sqlalchemy as sa

from epicerie.app import create_app
from epicerie.common.database import AsyncSessionLocal, engine, init_db
from epicerie.common.db import Base
from epicerie.orders.model import Order, OrderItem

ADMIN_CREDENTIALS = {"username": "admin", "password": "admin123"}


@pytest.fixture(autouse=True)
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
async def admin_session(client):
    resp = await client.post("/api/auth/login", json=ADMIN_CREDENTIALS)
    assert resp.status_code == 200
    return await resp.get_json()


@pytest.fixture
def auth_headers(admin_session):
    return {"Authorization": f"Bearer {admin_session['session_token']}"}


async def count_rows(model) -> int:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(sa.func.count()).select_from(model))
        return int(res.scalar() or 0)


async def order_counts():
    return await count_rows(Order), await count_rows(OrderItem)
