"""
Demo Catalog and Table Tokens

Ten-item South Indian menu and QR tokens for tables T1-T10. Seeding is
idempotent: existing rows are left untouched.

Version: 1.0.0
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tableorder.models import MenuItem, TableToken, utcnow

logger = logging.getLogger(__name__)

_IMG = "https://images.pexels.com/photos/{0}/pexels-photo-{0}.jpeg?auto=compress&cs=tinysrgb&w=400"

MENU_ITEMS = [
    ("MENU001", "Masala Dosa", 6000, "Crispy rice crepe with spiced potato filling", "Breakfast", "5410400"),
    ("MENU002", "Idly", 3000, "Steamed rice cakes served with sambar and chutney", "Breakfast", "14511142"),
    ("MENU003", "Uttapam", 5000, "Thick rice pancake with vegetables", "Breakfast", "4087609"),
    ("MENU004", "Puri Bhaji", 4500, "Deep-fried bread with potato curry", "Breakfast", "1251198"),
    ("MENU005", "Biryani", 25000, "Fragrant rice cooked with spices and meat", "Main Course", "11922568"),
    ("MENU006", "Butter Chicken", 28000, "Tender chicken in creamy tomato sauce", "Main Course", "2474661"),
    ("MENU007", "Paneer Tikka", 22000, "Grilled cottage cheese with spices", "Appetizer", "2474658"),
    ("MENU008", "Gulab Jamun", 8000, "Soft milk dumplings in sugar syrup", "Dessert", "16001932"),
    ("MENU009", "Mango Lassi", 6000, "Refreshing yogurt drink with mango", "Beverage", "1518680"),
    ("MENU010", "Filter Coffee", 3500, "Traditional South Indian filter coffee", "Beverage", "312418"),
]

TABLE_TOKENS = {
    "T1": "ABC123XYZ789",
    "T2": "DEF456UVW012",
    "T3": "GHI789RST345",
    "T4": "JKL012OPQ678",
    "T5": "MNO345LMN901",
    "T6": "PQR678JKL234",
    "T7": "STU901HIJ567",
    "T8": "VWX234GHI890",
    "T9": "YZA567DEF123",
    "T10": "BCD890ABC456",
}

TOKEN_VALIDITY = timedelta(days=365)


async def seed_demo_data(session: AsyncSession, token_validity: Optional[timedelta] = None) -> int:
    """Insert missing menu items and table tokens. Returns rows added."""
    expires_at = utcnow() + (token_validity or TOKEN_VALIDITY)
    added = 0

    for menu_item_id, name, price_cents, description, category, photo in MENU_ITEMS:
        if await session.get(MenuItem, menu_item_id) is None:
            session.add(MenuItem(
                menu_item_id=menu_item_id,
                name=name,
                price_cents=price_cents,
                description=description,
                category=category,
                available=True,
                image_url=_IMG.format(photo),
            ))
            added += 1

    for table_id, token in TABLE_TOKENS.items():
        if await session.get(TableToken, table_id) is None:
            session.add(TableToken(table_id=table_id, token=token, expires_at=expires_at))
            added += 1

    await session.commit()
    logger.info(f"Seeded {added} rows")
    return added
