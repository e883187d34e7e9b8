import os
import tempfile
import unittest
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from bootstrap import init_db
from checkout import generate_order_number, place_order
from database import make_engine
from errors import EmptyCart, InsufficientStock, StoreError
from models import AppConfig, CartItem, Category, Order, Product, Role, User
from schemas import CreateOrderRequest
from support import SHIPPING, StoreTestCase


class CheckoutTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.db.add(AppConfig(key="tax_rate", value="0.08"))
        self.db.commit()
        self.admin = self.make_admin()
        self.user = self.make_user()
        self.category = self.make_category()
        self.p = self.make_product(self.category, self.admin, name="Widget", price="10.00", stock=5)
        self.q = self.make_product(self.category, self.admin, name="Gadget", price="25.00", stock=10)

    def checkout(self, user=None):
        return self.client.post("/api/orders", json=SHIPPING, headers=self.auth(user or self.user))

    def order_count(self):
        with self.Session() as s:
            return s.query(Order).count()

    # ---------- Happy path ----------

    def test_order_totals_stock_and_cart(self):
        self.put_in_cart(self.user, self.p, 2)
        self.put_in_cart(self.user, self.q, 1)

        res = self.checkout()
        self.assertEqual(res.status_code, 201)
        order = res.json()
        self.assertEqual(order["totalAmount"], 48.6)
        self.assertEqual(order["status"], "Pending")
        self.assertEqual(order["paymentStatus"], "Completed")
        self.assertEqual(order["paymentId"], "pay_123")
        self.assertEqual(order["userEmail"], "alice@example.com")
        self.assertRegex(order["orderNumber"], r"^ORD-\d{8}-[0-9A-F]{8}$")

        lines = {i["productName"]: i for i in order["orderItems"]}
        self.assertEqual(lines["Widget"]["quantity"], 2)
        self.assertEqual(lines["Widget"]["unitPrice"], 10.0)
        self.assertEqual(lines["Widget"]["totalPrice"], 20.0)
        self.assertEqual(lines["Gadget"]["totalPrice"], 25.0)

        self.assertEqual(self.fresh(Product, self.p.id).stock, 3)
        self.assertEqual(self.fresh(Product, self.q.id).stock, 9)
        cart = self.client.get("/api/cart", headers=self.auth(self.user)).json()
        self.assertEqual(cart["items"], [])

    def test_discount_price_is_snapshotted(self):
        sale = self.make_product(
            self.category, self.admin, name="Sale", price="40.00", discount_price="30.00", stock=2
        )
        self.put_in_cart(self.user, sale, 1)
        order = self.checkout().json()
        self.assertEqual(order["orderItems"][0]["unitPrice"], 30.0)
        self.assertEqual(order["totalAmount"], 32.4)

    def test_order_snapshot_survives_product_change(self):
        self.put_in_cart(self.user, self.p, 2)
        order = self.checkout().json()

        res = self.client.put(
            f"/api/products/{self.p.id}",
            json={"name": "Widget v2", "price": 99.0, "categoryId": self.category.id, "stock": 3},
            headers=self.auth(self.admin),
        )
        self.assertEqual(res.status_code, 200)

        again = self.client.get(f"/api/orders/{order['id']}", headers=self.auth(self.user)).json()
        self.assertEqual(again["totalAmount"], order["totalAmount"])
        self.assertEqual(again["orderItems"][0]["productName"], "Widget")
        self.assertEqual(again["orderItems"][0]["unitPrice"], 10.0)

    # ---------- Rejections ----------

    def test_empty_cart(self):
        res = self.checkout()
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["message"], "Cart is empty")
        self.assertEqual(self.order_count(), 0)
        with self.assertRaises(EmptyCart):
            place_order(self.db, self.user, CreateOrderRequest.model_validate(SHIPPING))

    def test_insufficient_stock_writes_nothing(self):
        self.put_in_cart(self.user, self.p, 4)
        self.put_in_cart(self.user, self.q, 1)
        self.p.stock = 3
        self.db.commit()

        res = self.checkout()
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["message"], "Insufficient stock for Widget")
        self.assertEqual(self.order_count(), 0)
        self.assertEqual(self.fresh(Product, self.p.id).stock, 3)
        self.assertEqual(self.fresh(Product, self.q.id).stock, 10)
        with self.Session() as s:
            self.assertEqual(s.query(CartItem).filter_by(user_id=self.user.id).count(), 2)

    def test_missing_shipping_fields(self):
        self.put_in_cart(self.user, self.p, 1)
        body = dict(SHIPPING)
        del body["shippingCity"]
        res = self.client.post("/api/orders", json=body, headers=self.auth(self.user))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(self.order_count(), 0)

    # ---------- Order numbers ----------

    def test_order_number_format(self):
        self.assertRegex(generate_order_number(), r"^ORD-\d{8}-[0-9A-F]{8}$")

    def test_colliding_order_number_is_regenerated(self):
        req = CreateOrderRequest.model_validate(SHIPPING)
        self.put_in_cart(self.user, self.p, 1)
        first = place_order(self.db, self.user, req, order_number_factory=lambda: "ORD-20250101-AAAAAAAA")

        self.put_in_cart(self.user, self.q, 1)
        candidates = iter(["ORD-20250101-AAAAAAAA", "ORD-20250101-BBBBBBBB"])
        second = place_order(self.db, self.user, req, order_number_factory=lambda: next(candidates))
        self.assertEqual(first.order_number, "ORD-20250101-AAAAAAAA")
        self.assertEqual(second.order_number, "ORD-20250101-BBBBBBBB")

    def test_order_number_exhaustion_rolls_back(self):
        req = CreateOrderRequest.model_validate(SHIPPING)
        self.put_in_cart(self.user, self.p, 1)
        place_order(self.db, self.user, req, order_number_factory=lambda: "ORD-20250101-AAAAAAAA")

        self.put_in_cart(self.user, self.q, 1)
        with self.assertRaises(StoreError):
            place_order(self.db, self.user, req, order_number_factory=lambda: "ORD-20250101-AAAAAAAA")
        self.assertEqual(self.order_count(), 1)
        self.assertEqual(self.fresh(Product, self.q.id).stock, 10)


class StockRaceTestCase(unittest.TestCase):
    """Two connections to one SQLite file, so a rival checkout can commit mid-flight."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        path = os.path.join(self.temp_dir.name, "race.sqlite")
        self.engine = make_engine(f"sqlite:///{path}")
        init_db(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        with self.Session() as db:
            user = User(email="alice@example.com", name="Alice", password_hash="x", role=Role.USER.value)
            category = Category(name="Electronics")
            db.add_all([user, category])
            db.flush()
            product = Product(
                name="Widget", price=Decimal("10.00"), category_id=category.id, stock=5,
                created_by_id=user.id,
            )
            db.add(product)
            db.flush()
            db.add(CartItem(user_id=user.id, product_id=product.id, quantity=2))
            db.commit()
            self.user_id, self.product_id = user.id, product.id

    def tearDown(self):
        self.engine.dispose()
        self.temp_dir.cleanup()

    def test_losing_the_stock_race_aborts_the_order(self):
        def rival_takes_stock():
            # another checkout commits between our stock check and our decrement
            with self.Session() as other:
                other.execute(update(Product).where(Product.id == self.product_id).values(stock=1))
                other.commit()
            return generate_order_number()

        with self.Session() as db:
            user = db.get(User, self.user_id)
            with self.assertRaises(InsufficientStock):
                place_order(
                    db, user, CreateOrderRequest.model_validate(SHIPPING),
                    order_number_factory=rival_takes_stock,
                )

        with self.Session() as db:
            self.assertEqual(db.get(Product, self.product_id).stock, 1)
            self.assertEqual(db.scalars(select(Order)).all(), [])
            items = db.scalars(select(CartItem).where(CartItem.user_id == self.user_id)).all()
            self.assertEqual([i.quantity for i in items], [2])


if __name__ == "__main__":
    unittest.main()
