import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base, utcnow, isoformat
from ..auth.model import AdminUser, AdminSession
from ..auth.passwords import hash_password
from ..catalog.model import Product
from ..orders.model import Order, OrderItem

_logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"future": True, "echo": False}
    # In-memory SQLite runs on a static pool which takes no sizing arguments
    if ":memory:" not in url:
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    return kwargs


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, **_engine_kwargs(settings.DB_URL))
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


if engine.dialect.name == "sqlite":

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def init_db() -> None:
    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Provision the bootstrap admin if nobody can log in yet
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(sa.func.count(AdminUser.id)))
        count = int(res.scalar() or 0)
        if count == 0:
            session.add(
                AdminUser(
                    username=settings.ADMIN_USERNAME,
                    email=settings.ADMIN_EMAIL,
                    password_hash=hash_password(settings.ADMIN_PASSWORD),
                )
            )
            await session.commit()
            _logger.info("Bootstrap admin created | username=%s", settings.ADMIN_USERNAME)


# ---------- Serializers ----------

def admin_to_dict(admin: AdminUser) -> Dict[str, Any]:
    return {"id": admin.id, "username": admin.username, "email": admin.email}


def product_to_dict(prod: Product) -> Dict[str, Any]:
    return {
        "id": prod.id,
        "name": prod.name,
        "description": prod.description,
        "price": prod.price,
        "unit": prod.unit,
        "image_url": prod.image_url,
        "in_stock": prod.in_stock,
        "stock_quantity": prod.stock_quantity,
        "tags": list(prod.tags or []),
        "created_by": prod.created_by,
        "created_at": isoformat(prod.created_at),
        "updated_at": isoformat(prod.updated_at),
    }


def order_to_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "delivery_address": order.delivery_address,
        "total_amount": order.total_amount,
        "status": order.status,
        "notes": order.notes,
        "created_at": isoformat(order.created_at),
    }


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_price": item.product_price,
        "quantity": item.quantity,
        "subtotal": item.subtotal,
    }


# ---------- Admins and sessions ----------

async def fetch_admin_by_username(username: str) -> Optional[AdminUser]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(AdminUser).where(AdminUser.username == username))
        return res.scalar_one_or_none()


async def insert_admin(username: str, email: str, password_hash: str) -> int:
    async with AsyncSessionLocal() as session:
        admin = AdminUser(username=username, email=email, password_hash=password_hash)
        session.add(admin)
        await session.flush()
        admin_id = int(admin.id)
        await session.commit()
        return admin_id


async def insert_session(token: str, admin_id: int, expires_at: datetime) -> None:
    async with AsyncSessionLocal() as session:
        session.add(AdminSession(token=token, admin_id=admin_id, expires_at=expires_at))
        await session.commit()


async def fetch_session_admin_id(token: str, now: datetime) -> Optional[int]:
    """Admin id owning an unexpired session, or None for absent and expired alike."""
    async with AsyncSessionLocal() as session:
        stmt = sa.select(AdminSession.admin_id).where(
            AdminSession.token == token, AdminSession.expires_at > now
        )
        res = await session.execute(stmt)
        row = res.first()
        return int(row[0]) if row else None


async def delete_session(token: str) -> None:
    async with AsyncSessionLocal() as session:
        await session.execute(sa.delete(AdminSession).where(AdminSession.token == token))
        await session.commit()


# ---------- Products ----------

async def fetch_product(product_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        if not prod:
            return None
        return product_to_dict(prod)


async def fetch_products(in_stock_only: bool = False) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).order_by(Product.name, Product.id)
        if in_stock_only:
            stmt = stmt.where(Product.in_stock.is_(True))
        res = await session.execute(stmt)
        return [product_to_dict(prod) for prod in res.scalars().all()]


async def insert_product(values: Dict[str, Any], created_by: Optional[int]) -> int:
    async with AsyncSessionLocal() as session:
        prod = Product(created_by=created_by, **values)
        session.add(prod)
        await session.flush()  # assign PK
        product_id = int(prod.id)
        await session.commit()
        return product_id


async def replace_product(product_id: int, values: Dict[str, Any]) -> bool:
    async with AsyncSessionLocal() as session:
        stmt = sa.update(Product).where(Product.id == product_id).values(updated_at=utcnow(), **values)
        res = await session.execute(stmt)
        await session.commit()
        return (res.rowcount or 0) > 0


async def delete_product(product_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.delete(Product).where(Product.id == product_id))
        await session.commit()
        return (res.rowcount or 0) > 0


# ---------- Orders ----------

def _number(value, cast):
    return None if value is None else cast(value)


def _whole(value):
    # 2.0 is a quantity, 2.7 is not; int() alone would truncate it
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"not a whole number: {value!r}")
    return int(value)


def _order_item(order_id: int, item: Dict[str, Any]) -> OrderItem:
    # Absent fields stay None so the NOT NULL constraints reject them
    return OrderItem(
        order_id=order_id,
        product_id=_number(item.get("product_id"), int),
        product_name=item.get("product_name"),
        product_price=_number(item.get("product_price"), float),
        quantity=_number(item.get("quantity"), _whole),
        subtotal=_number(item.get("subtotal"), float),
    )


async def create_order(header: Dict[str, Any], items: Iterable[Dict[str, Any]], decrement_stock: bool = False) -> int:
    """Insert an order and all of its items in one transaction.

    Anything raised while inserting (constraint violation, malformed item,
    pool timeout) rolls the whole order back before propagating.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = Order(status="pending", **header)
            session.add(order)
            await session.flush()  # assign PK
            order_id = int(order.id)
            for item in items:
                line = _order_item(order_id, item)
                session.add(line)
                await session.flush()
                if decrement_stock:
                    stmt = (
                        sa.update(Product)
                        .where(Product.id == line.product_id)
                        .values(stock_quantity=Product.stock_quantity - line.quantity, updated_at=utcnow())
                    )
                    await session.execute(stmt)
        return order_id


async def fetch_orders() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        res = await session.execute(stmt)
        return [order_to_dict(order) for order in res.scalars().all()]


async def fetch_order_items(order_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        res = await session.execute(stmt)
        return [order_item_to_dict(item) for item in res.scalars().all()]


async def update_order_status(order_id: int, status: str) -> bool:
    async with AsyncSessionLocal() as session:
        stmt = sa.update(Order).where(Order.id == order_id).values(status=status)
        res = await session.execute(stmt)
        await session.commit()
        return (res.rowcount or 0) > 0
