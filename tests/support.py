import unittest
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bootstrap import init_db
from database import get_db, make_engine
from main import app
from models import Brand, CartItem, Category, Product, Role, User
from security import create_access_token, hash_password

PASSWORD = "secret123"

SHIPPING = {
    "shippingName": "Alice Buyer",
    "shippingAddress": "1 Main St",
    "shippingCity": "Springfield",
    "shippingState": "IL",
    "shippingZip": "62701",
    "shippingCountry": "USA",
    "paymentId": "pay_123",
}


class StoreTestCase(unittest.TestCase):
    """Fresh in-memory database per test, wired into the app's get_db."""

    def setUp(self):
        self.engine = make_engine("sqlite://", poolclass=StaticPool)
        init_db(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.db = self.Session()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.db.close()
        self.engine.dispose()

    # ---------- Fixtures ----------

    def make_user(self, email="alice@example.com", name="Alice", role=Role.USER, is_active=True):
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(PASSWORD),
            role=role.value,
            is_active=is_active,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def make_admin(self, email="admin@example.com"):
        return self.make_user(email=email, name="Admin", role=Role.ADMIN)

    def make_category(self, name="Electronics", is_active=True):
        category = Category(name=name, is_active=is_active)
        self.db.add(category)
        self.db.commit()
        return category

    def make_brand(self, name="TechSound"):
        brand = Brand(name=name)
        self.db.add(brand)
        self.db.commit()
        return brand

    def make_product(self, category, creator, name="Widget", price="10.00", stock=5,
                     discount_price=None, brand=None, brand_id=None, is_active=True):
        product = Product(
            name=name,
            price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price else None,
            category_id=category.id,
            brand=brand,
            brand_id=brand_id,
            stock=stock,
            is_active=is_active,
            created_by_id=creator.id,
        )
        self.db.add(product)
        self.db.commit()
        return product

    def put_in_cart(self, user, product, quantity):
        # own session: checkout bulk-deletes cart rows behind self.db's back
        item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
        with self.Session() as s:
            s.add(item)
            s.commit()
        return item

    def auth(self, user):
        token, _ = create_access_token(user)
        return {"Authorization": f"Bearer {token}"}

    def fresh(self, model, ident):
        """Read a row through a new session, bypassing any cached state."""
        with self.Session() as s:
            return s.get(model, ident)
