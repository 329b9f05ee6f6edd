"""
Demo Data

Two canteens with their menus, a super admin, one admin per canteen and two
demo employees. Only runs against an empty database.

Run standalone with ``python -m canteen.seed``.
"""

import asyncio
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen import database
from canteen.core.config import setup_logging
from canteen.core.security import hash_password
from canteen.models import (
    Canteen,
    MenuCategory,
    MenuItem,
    User,
    UserRole,
    default_permissions,
)

logger = logging.getLogger(__name__)


CANTEENS = [
    {
        "code": "canteen-a",
        "name": "Campus Canteen A",
        "location": "Main Campus Building",
        "timing": "8:00 AM - 5:00 PM",
        "specialties": ["North Indian", "South Indian", "Snacks"],
        "rating": 4.5,
        "distance": "200m",
        "wait_time": "5-10 mins",
    },
    {
        "code": "canteen-b",
        "name": "Guest House Canteen",
        "location": "Guest House Complex",
        "timing": "8:00 AM - 5:00 PM",
        "specialties": ["Chinese", "Continental", "Beverages"],
        "rating": 4.3,
        "distance": "350m",
        "wait_time": "8-15 mins",
    },
]

# (username, password, employee id, full name, department, designation, canteen code)
ADMINS = [
    ("super_admin", "super@123", "SUPER001", "System Administrator",
     "IT Administration", "Super Administrator", None),
    ("canteen_a_admin", "canteenadmin@123", "CAN001", "Raj Kumar Singh",
     "Food Services - Campus A", "Campus Canteen A Manager", "canteen-a"),
    ("canteen_b_admin", "canteenbadmin@123", "CAN002", "Priya Sharma",
     "Food Services - Guest House", "Guest House Canteen Manager", "canteen-b"),
]

DEMO_USERS = [
    ("demo_user1", "demo123", "DEMO001", "Demo User 1", "demo1@example.com"),
    ("demo_user2", "demo123", "DEMO002", "Demo User 2", "demo2@example.com"),
]

# canteen code -> (name, price, quantity, category, description)
MENUS = {
    "canteen-a": [
        ("Veg Thali", 120, 50, MenuCategory.MAIN,
         "Complete vegetarian meal with rice, dal, vegetables, roti"),
        ("Chicken Curry", 180, 30, MenuCategory.MAIN, "Spicy chicken curry with rice or roti"),
        ("Masala Dosa", 80, 40, MenuCategory.SOUTH, "Crispy dosa with potato filling and chutneys"),
        ("Idli Sambhar", 60, 45, MenuCategory.SOUTH, "Steamed idli with sambhar and coconut chutney"),
        ("Samosa", 25, 100, MenuCategory.SNACKS, "Deep fried pastry with spiced potato filling"),
        ("Pakora", 30, 80, MenuCategory.SNACKS, "Mixed vegetable fritters"),
        ("Tea", 15, 200, MenuCategory.BEVERAGES, "Fresh Indian tea with milk and spices"),
        ("Coffee", 20, 150, MenuCategory.BEVERAGES, "Strong black coffee"),
    ],
    "canteen-b": [
        ("Fried Rice", 90, 35, MenuCategory.MAIN, "Chinese style fried rice with vegetables"),
        ("Chow Mein", 100, 30, MenuCategory.MAIN, "Stir-fried noodles with vegetables"),
        ("Paneer Butter Masala", 150, 25, MenuCategory.MAIN, "Cottage cheese in rich tomato gravy"),
        ("Sandwich", 50, 60, MenuCategory.SNACKS, "Grilled vegetable sandwich"),
        ("Burger", 80, 40, MenuCategory.SNACKS, "Vegetable burger with fries"),
        ("Cold Coffee", 45, 0, MenuCategory.BEVERAGES, "Chilled coffee with ice cream"),
        ("Fresh Juice", 40, 70, MenuCategory.BEVERAGES, "Seasonal fresh fruit juice"),
        ("Lassi", 35, 50, MenuCategory.BEVERAGES, "Sweet yogurt drink"),
    ],
}


async def is_empty(session: AsyncSession) -> bool:
    users = (await session.execute(select(func.count(User.id)))).scalar_one()
    canteens = (await session.execute(select(func.count(Canteen.id)))).scalar_one()
    return users == 0 or canteens == 0


async def seed_database(session: AsyncSession) -> bool:
    """
    Insert the demo data unless users and canteens already exist.

    Returns:
        True when data was inserted
    """
    if not await is_empty(session):
        logger.info("📊 Database already has data, skipping seed")
        return False

    logger.info("🌱 Seeding demo data...")

    canteens = {}
    for fields in CANTEENS:
        canteen = Canteen(is_active=True, **fields)
        session.add(canteen)
        canteens[fields["code"]] = canteen
    await session.flush()

    for username, password, employee_id, full_name, department, designation, code in ADMINS:
        session.add(User(
            username=username,
            employee_id=employee_id,
            password_hash=await hash_password(password),
            role=UserRole.ADMIN,
            full_name=full_name,
            department=department,
            designation=designation,
            assigned_canteens=[canteens[code].id] if code else [],
            permissions=default_permissions(UserRole.ADMIN),
        ))

    for username, password, employee_id, full_name, email in DEMO_USERS:
        session.add(User(
            username=username,
            employee_id=employee_id,
            password_hash=await hash_password(password),
            role=UserRole.USER,
            full_name=full_name,
            department="General",
            designation="Employee",
            email=email,
            permissions=default_permissions(UserRole.USER),
        ))

    items = 0
    for code, menu in MENUS.items():
        for name, price, quantity, category, description in menu:
            session.add(MenuItem(
                name=name,
                price=price,
                quantity=quantity,
                category=category,
                description=description,
                canteen_id=canteens[code].id,
                is_available=quantity > 0,
            ))
            items += 1

    await session.commit()
    logger.info(
        f"✅ Seeded {len(canteens)} canteens, {len(ADMINS) + len(DEMO_USERS)} users, "
        f"{items} menu items"
    )
    return True


async def main() -> None:
    setup_logging()
    await database.init_db()
    async with database.async_session_maker() as session:
        await seed_database(session)
    await database.dispose_db()


if __name__ == "__main__":
    asyncio.run(main())
