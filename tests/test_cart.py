import unittest
from decimal import Decimal

import cart
from errors import BusinessRuleViolation, InsufficientStock, NotFound
from models import AppConfig, CartItem
from support import StoreTestCase


class CartTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_admin()
        self.user = self.make_user()
        self.category = self.make_category()
        self.product = self.make_product(self.category, self.admin, price="10.00", stock=5)

    def add(self, product_id, quantity, user=None):
        return self.client.post(
            "/api/cart/items",
            json={"productId": product_id, "quantity": quantity},
            headers=self.auth(user or self.user),
        )

    # ---------- Adding ----------

    def test_add_respects_live_stock(self):
        first = self.add(self.product.id, 3)
        self.assertEqual(first.status_code, 201)

        over = self.add(self.product.id, 3)
        self.assertEqual(over.status_code, 400)
        self.assertEqual(over.json()["message"], "Insufficient stock")

        fill = self.add(self.product.id, 2)
        self.assertEqual(fill.status_code, 200)
        self.assertEqual(fill.json()["quantity"], 5)
        self.assertEqual(fill.json()["totalPrice"], 50.0)

    def test_add_more_than_stock_on_new_line(self):
        res = self.add(self.product.id, 6)
        self.assertEqual(res.status_code, 400)
        with self.Session() as s:
            self.assertEqual(s.query(CartItem).count(), 0)

    def test_add_inactive_or_missing_product(self):
        hidden = self.make_product(self.category, self.admin, name="Hidden", is_active=False)
        for pid in (hidden.id, 9999):
            res = self.add(pid, 1)
            self.assertEqual(res.status_code, 400)
            self.assertEqual(res.json()["message"], "Product not found or inactive")

    def test_quantity_must_be_positive(self):
        self.assertEqual(self.add(self.product.id, 0).status_code, 400)

    def test_cart_requires_login(self):
        self.assertEqual(self.client.get("/api/cart").status_code, 401)

    def test_max_cart_items_limits_distinct_lines(self):
        self.db.add(AppConfig(key="max_cart_items", value="1"))
        self.db.commit()
        other = self.make_product(self.category, self.admin, name="Other")

        self.assertEqual(self.add(self.product.id, 1).status_code, 201)
        # same product again only bumps the quantity
        self.assertEqual(self.add(self.product.id, 1).status_code, 200)
        res = self.add(other.id, 1)
        self.assertEqual(res.status_code, 400)
        self.assertIn("more than 1", res.json()["message"])

    # ---------- Summary ----------

    def test_summary_uses_discount_price_and_tax(self):
        discounted = self.make_product(
            self.category, self.admin, name="Sale", price="30.00", discount_price="25.00", stock=3
        )
        self.put_in_cart(self.user, self.product, 2)
        self.put_in_cart(self.user, discounted, 1)

        body = self.client.get("/api/cart", headers=self.auth(self.user)).json()
        self.assertEqual(body["totalItems"], 3)
        self.assertEqual(body["subTotal"], 45.0)
        self.assertEqual(body["tax"], 3.6)
        self.assertEqual(body["total"], 48.6)
        sale_line = [i for i in body["items"] if i["productName"] == "Sale"][0]
        self.assertEqual(sale_line["productPrice"], 30.0)
        self.assertEqual(sale_line["productDiscountPrice"], 25.0)
        self.assertEqual(sale_line["availableStock"], 3)

    def test_tax_follows_config_key(self):
        self.db.add(AppConfig(key="tax_rate", value="0.10"))
        self.db.commit()
        self.put_in_cart(self.user, self.product, 2)
        summary = cart.get_cart(self.db, self.user)
        self.assertEqual(summary.sub_total, 20.0)
        self.assertEqual(summary.tax, 2.0)
        self.assertEqual(summary.total, 22.0)

    def test_unparseable_tax_rate_falls_back_to_default(self):
        self.db.add(AppConfig(key="tax_rate", value="eight percent"))
        self.db.commit()
        self.put_in_cart(self.user, self.product, 1)
        self.assertEqual(cart.get_cart(self.db, self.user).tax, 0.8)

    def test_compute_totals_rounds_half_up(self):
        subtotal, tax, total = cart.compute_totals([Decimal("0.0625")], Decimal("0.08"))
        self.assertEqual(subtotal, Decimal("0.06"))
        self.assertEqual(tax, Decimal("0.00"))
        self.assertEqual(total, Decimal("0.06"))
        _, tax, _ = cart.compute_totals([Decimal("10.00"), Decimal("8.75")], Decimal("0.08"))
        self.assertEqual(tax, Decimal("1.50"))

    # ---------- Update / remove ----------

    def test_update_item_checks_stock(self):
        item = self.put_in_cart(self.user, self.product, 1)
        headers = self.auth(self.user)
        res = self.client.put(f"/api/cart/items/{item.id}", json={"quantity": 6}, headers=headers)
        self.assertEqual(res.status_code, 400)
        res = self.client.put(f"/api/cart/items/{item.id}", json={"quantity": 5}, headers=headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["quantity"], 5)

    def test_other_users_cart_item_is_not_found(self):
        item = self.put_in_cart(self.user, self.product, 1)
        intruder = self.make_user(email="mallory@example.com", name="Mallory")
        res = self.client.delete(f"/api/cart/items/{item.id}", headers=self.auth(intruder))
        self.assertEqual(res.status_code, 404)
        with self.assertRaises(NotFound):
            cart.update_item(self.db, intruder, item.id, 1)
        self.assertIsNotNone(self.fresh(CartItem, item.id))

    def test_remove_and_clear(self):
        item = self.put_in_cart(self.user, self.product, 1)
        headers = self.auth(self.user)
        self.assertEqual(self.client.delete(f"/api/cart/items/{item.id}", headers=headers).status_code, 204)
        self.assertEqual(self.add(self.product.id, 2).status_code, 201)
        self.assertEqual(self.client.delete("/api/cart", headers=headers).status_code, 204)
        self.assertEqual(self.client.get("/api/cart", headers=headers).json()["items"], [])

    def test_domain_errors_are_business_rule_violations(self):
        with self.assertRaises(InsufficientStock) as ctx:
            cart.add_item(self.db, self.user, self.product.id, 99)
        self.assertIsInstance(ctx.exception, BusinessRuleViolation)


if __name__ == "__main__":
    unittest.main()
