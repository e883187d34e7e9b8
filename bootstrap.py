"""
Creates the schema and loads demo data into an empty database.

Run directly (``python bootstrap.py``) or from the app's startup hook.
"""

from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

import config
from database import Base, SessionLocal, engine
from logger import get_logger
from models import AppConfig, Brand, Category, Product, Role, User
from security import hash_password

_logger = get_logger(__name__)

DEMO_CATEGORIES: List[dict] = [
    {"name": "Electronics", "description": "Electronic devices and gadgets", "sort_order": 1},
    {"name": "Clothing", "description": "Fashion and apparel", "sort_order": 2},
    {"name": "Home & Garden", "description": "Home improvement and garden supplies", "sort_order": 3},
    {"name": "Sports & Outdoors", "description": "Sports equipment and outdoor gear", "sort_order": 4},
    {"name": "Books", "description": "Books and educational materials", "sort_order": 5},
]

DEMO_BRANDS: List[dict] = [
    {"name": "TechSound", "description": "Premium audio equipment", "sort_order": 1},
    {"name": "SmartTech", "description": "Smart devices and wearables", "sort_order": 2},
    {"name": "StreamCam", "description": "Professional streaming equipment", "sort_order": 3},
    {"name": "FashionForward", "description": "Modern fashion and apparel", "sort_order": 4},
    {"name": "HomeComfort", "description": "Home and garden essentials", "sort_order": 5},
    {"name": "SportsPro", "description": "Professional sports equipment", "sort_order": 6},
    {"name": "BookWise", "description": "Educational and entertainment books", "sort_order": 7},
    {"name": "CookMaster", "description": "Kitchen and cooking essentials", "sort_order": 8},
]

DEMO_CONFIG: List[dict] = [
    {"key": "currency", "value": "USD", "description": "Default currency"},
    {"key": "tax_rate", "value": "0.08", "description": "Tax rate (8%)"},
    {"key": "max_cart_items", "value": "50", "description": "Maximum items in cart"},
    {"key": "site_name", "value": "BuyNow", "description": "Site name"},
    {"key": "support_email", "value": "support@buynow.com", "description": "Support email"},
]

_IMG = "https://images.pexels.com/photos/{0}/pexels-photo-{0}.jpeg?auto=compress&cs=tinysrgb&w=400"
_BOOKS_IMG = (
    "https://images.pexels.com/photos/159711/books-bookstore-book-reading-159711.jpeg"
    "?auto=compress&cs=tinysrgb&w=400"
)

# "category" is the category name; resolved to an id when seeding
DEMO_PRODUCTS: List[dict] = [
    # Electronics
    {
        "name": "Wireless Bluetooth Headphones",
        "description": "High-quality wireless headphones with noise cancellation",
        "price": "199.99", "category": "Electronics", "brand": "TechSound", "stock": 50,
        "image_url": _IMG.format(3394650), "is_featured": True,
    },
    {
        "name": "Smart Watch Pro",
        "description": "Feature-rich smartwatch with health monitoring",
        "price": "299.99", "category": "Electronics", "brand": "SmartTech", "stock": 25,
        "image_url": _IMG.format(437037), "is_featured": True,
    },
    {
        "name": "4K Webcam",
        "description": "Ultra HD webcam for streaming and video calls",
        "price": "89.99", "category": "Electronics", "brand": "StreamCam", "stock": 30,
        "image_url": _IMG.format(4219654),
    },
    {
        "name": "Wireless Charging Pad",
        "description": "Fast wireless charging for compatible devices",
        "price": "39.99", "category": "Electronics", "brand": "ChargeFast", "stock": 75,
        "image_url": _IMG.format(4219654),
    },
    {
        "name": "Bluetooth Speaker",
        "description": "Portable waterproof Bluetooth speaker",
        "price": "79.99", "category": "Electronics", "brand": "SoundWave", "stock": 40,
        "image_url": _IMG.format(1649771),
    },
    # Clothing
    {
        "name": "Classic Denim Jacket",
        "description": "Timeless denim jacket for casual wear",
        "price": "89.99", "category": "Clothing", "brand": "DenimCo", "stock": 60,
        "image_url": _IMG.format(1040945), "is_featured": True,
    },
    {
        "name": "Cotton T-Shirt Pack",
        "description": "Pack of 3 premium cotton t-shirts",
        "price": "49.99", "category": "Clothing", "brand": "ComfortWear", "stock": 100,
        "image_url": _IMG.format(1040945),
    },
    {
        "name": "Winter Wool Sweater",
        "description": "Warm and cozy wool sweater for winter",
        "price": "129.99", "category": "Clothing", "brand": "WoolCraft", "stock": 35,
        "image_url": _IMG.format(1040945),
    },
    {
        "name": "Casual Sneakers",
        "description": "Comfortable sneakers for everyday wear",
        "price": "119.99", "category": "Clothing", "brand": "StepComfort", "stock": 80,
        "image_url": _IMG.format(2529148),
    },
    # Home & Garden
    {
        "name": "Coffee Maker Deluxe",
        "description": "Automatic coffee maker with programmable settings",
        "price": "149.99", "category": "Home & Garden", "brand": "BrewMaster", "stock": 30,
        "image_url": _IMG.format(324028), "is_featured": True,
    },
    {
        "name": "LED Desk Lamp",
        "description": "Adjustable LED desk lamp with USB charging",
        "price": "45.99", "category": "Home & Garden", "brand": "BrightLight", "stock": 55,
        "image_url": _IMG.format(1112598),
    },
    {
        "name": "Indoor Plant Set",
        "description": "Set of 3 low-maintenance indoor plants",
        "price": "69.99", "category": "Home & Garden", "brand": "GreenThumb", "stock": 25,
        "image_url": _IMG.format(1112598),
    },
    {
        "name": "Kitchen Knife Set",
        "description": "Professional 8-piece kitchen knife set",
        "price": "199.99", "category": "Home & Garden", "brand": "ChefPro", "stock": 20,
        "image_url": _IMG.format(1112598),
    },
    # Sports & Outdoors
    {
        "name": "Yoga Mat Premium",
        "description": "Non-slip premium yoga mat with carrying strap",
        "price": "59.99", "category": "Sports & Outdoors", "brand": "YogaFlow", "stock": 45,
        "image_url": _IMG.format(2529148),
    },
    {
        "name": "Running Shoes Pro",
        "description": "Professional running shoes with advanced cushioning",
        "price": "159.99", "category": "Sports & Outdoors", "brand": "RunFast", "stock": 65,
        "image_url": _IMG.format(2529148), "is_featured": True,
    },
    {
        "name": "Camping Tent 4-Person",
        "description": "Waterproof 4-person camping tent",
        "price": "249.99", "category": "Sports & Outdoors", "brand": "OutdoorGear", "stock": 15,
        "image_url": _IMG.format(2529148),
    },
    {
        "name": "Fitness Resistance Bands",
        "description": "Set of 5 resistance bands for home workouts",
        "price": "29.99", "category": "Sports & Outdoors", "brand": "FitStrong", "stock": 90,
        "image_url": _IMG.format(2529148),
    },
    # Books
    {
        "name": "Programming Fundamentals",
        "description": "Complete guide to programming fundamentals",
        "price": "49.99", "category": "Books", "brand": "TechBooks", "stock": 40,
        "image_url": _BOOKS_IMG,
    },
    {
        "name": "Digital Marketing Guide",
        "description": "Comprehensive digital marketing strategies",
        "price": "39.99", "category": "Books", "brand": "MarketPro", "stock": 35,
        "image_url": _BOOKS_IMG,
    },
    {
        "name": "Cookbook Collection",
        "description": "Collection of international recipes",
        "price": "34.99", "category": "Books", "brand": "CookMaster", "stock": 50,
        "image_url": _BOOKS_IMG,
    },
]


def init_db(bind: Engine = engine) -> None:
    Base.metadata.create_all(bind=bind)


def seed(db: Session) -> bool:
    """Load demo data if there are no users yet. Returns True when it seeded."""
    if db.scalar(select(User.id).limit(1)) is not None:
        _logger.debug("Users present, skipping seed")
        return False

    admin = User(
        email=config.ADMIN_EMAIL.lower(),
        name="Admin User",
        password_hash=hash_password(config.ADMIN_PASSWORD),
        role=Role.ADMIN.value,
        is_active=True,
    )
    db.add(admin)
    db.flush()

    categories = {}
    for data in DEMO_CATEGORIES:
        category = Category(**data)
        db.add(category)
        categories[category.name] = category

    db.add_all(Brand(**data) for data in DEMO_BRANDS)
    db.add_all(AppConfig(**data) for data in DEMO_CONFIG)
    db.flush()

    brand_ids = dict(db.execute(select(Brand.name, Brand.id)).all())
    for data in DEMO_PRODUCTS:
        fields = dict(data)
        category = categories[fields.pop("category")]
        fields["price"] = Decimal(fields["price"])
        db.add(
            Product(
                **fields,
                category_id=category.id,
                brand_id=brand_ids.get(fields["brand"]),
                created_by_id=admin.id,
            )
        )

    db.commit()
    _logger.info(
        f"Seeded admin {admin.email}, {len(DEMO_CATEGORIES)} categories, "
        f"{len(DEMO_BRANDS)} brands, {len(DEMO_CONFIG)} config keys, {len(DEMO_PRODUCTS)} products"
    )
    return True


if __name__ == "__main__":
    init_db()
    with SessionLocal() as session:
        seed(session)
