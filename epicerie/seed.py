import asyncio
import logging

import sqlalchemy as sa

from .auth.model import AdminUser
from .catalog.model import Product
from .common.config import settings
from .common.database import init_db, AsyncSessionLocal

_logger = logging.getLogger(__name__)


DEMO_PRODUCTS = [
    {"name": "Coca-Cola", "description": "Boisson gazeuse rafraîchissante", "price": 2.50, "unit": "bouteille 1.5L", "stock_quantity": 50, "tags": ["Boissons"]},
    {"name": "Pain de mie", "description": "Pain de mie moelleux tranché", "price": 1.80, "unit": "paquet", "stock_quantity": 30, "tags": ["Autres"]},
    {"name": "Lait demi-écrémé", "description": "Lait frais demi-écrémé", "price": 1.20, "unit": "litre", "stock_quantity": 40, "tags": ["Boissons"]},
    {"name": "Chips nature", "description": "Chips croustillantes salées", "price": 2.00, "unit": "paquet 150g", "stock_quantity": 60, "tags": ["Salé"]},
    {"name": "Chocolat au lait", "description": "Tablette de chocolat au lait", "price": 2.30, "unit": "tablette 200g", "stock_quantity": 45, "tags": ["Sucré"]},
    {"name": "Bière blonde", "description": "Bière blonde artisanale", "price": 3.50, "unit": "bouteille 75cl", "stock_quantity": 35, "tags": ["Alcool", "Boissons"]},
    {"name": "Pizza surgelée", "description": "Pizza 4 fromages surgelée", "price": 4.50, "unit": "pièce", "stock_quantity": 25, "tags": ["Surgelé"]},
    {"name": "Eau minérale", "description": "Eau minérale naturelle", "price": 0.80, "unit": "bouteille 1.5L", "stock_quantity": 100, "tags": ["Boissons"]},
    {"name": "Bonbons", "description": "Assortiment de bonbons", "price": 3.00, "unit": "sachet 200g", "stock_quantity": 40, "tags": ["Sucré"]},
    {"name": "Glace vanille", "description": "Crème glacée vanille de Madagascar", "price": 5.50, "unit": "pot 500ml", "stock_quantity": 20, "tags": ["Surgelé", "Sucré"]},
    {"name": "Vin rouge", "description": "Vin rouge de table", "price": 6.00, "unit": "bouteille 75cl", "stock_quantity": 30, "tags": ["Alcool"]},
    {"name": "Café moulu", "description": "Café arabica moulu", "price": 4.20, "unit": "paquet 250g", "stock_quantity": 35, "tags": ["Boissons"]},
    {"name": "Cacahuètes", "description": "Cacahuètes grillées salées", "price": 2.80, "unit": "sachet 200g", "stock_quantity": 50, "tags": ["Salé"]},
    {"name": "Shampooing", "description": "Shampooing cheveux normaux", "price": 3.90, "unit": "flacon 250ml", "stock_quantity": 25, "tags": ["Parfum"]},
    {"name": "Gel douche", "description": "Gel douche parfum frais", "price": 3.50, "unit": "flacon 250ml", "stock_quantity": 30, "tags": ["Parfum"]},
]


async def seed_products() -> int:
    await init_db()
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(AdminUser.id).where(AdminUser.username == settings.ADMIN_USERNAME))
        admin_id = res.scalar_one_or_none()
        added = 0
        for p in DEMO_PRODUCTS:
            # avoid duplicates by name
            res = await session.execute(sa.select(Product.id).where(Product.name == p["name"]))
            if res.first():
                continue
            session.add(Product(in_stock=True, created_by=admin_id, **p))
            added += 1
        if added:
            await session.commit()
    _logger.info("Seed complete. Added %s products.", added)
    return added


async def amain():
    logging.basicConfig(level=settings.LOG_LEVEL)
    await seed_products()


if __name__ == "__main__":
    asyncio.run(amain())
