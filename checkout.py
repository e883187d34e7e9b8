"""
Turns a user's cart into an order.

One pass, one transaction: validate the cart against live stock, write the
order header and its item snapshots, take the stock, empty the cart, commit.
If anything fails the session is rolled back and nothing is written.

Two guards go beyond a plain read-then-write:
- order numbers are regenerated if one is already taken;
- stock is taken with a conditional UPDATE (``stock >= qty``), so a
  concurrent checkout that got there first aborts this one instead of
  driving stock negative.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from cart import cart_items, compute_totals, effective_price, money
from errors import EmptyCart, InsufficientStock, StoreError
from logger import get_logger
from models import CartItem, Order, OrderItem, Product, User
from schemas import CreateOrderRequest
from settings_store import get_tax_rate

_logger = get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 5
INITIAL_STATUS = "Pending"
# payment is captured by the client before the order is placed
INITIAL_PAYMENT_STATUS = "Completed"


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def _unique_order_number(db: Session, generate: Callable[[], str]) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate()
        taken = db.scalar(select(Order.id).where(Order.order_number == candidate))
        if taken is None:
            return candidate
        _logger.warning(f"Order number {candidate} already taken, generating another")
    raise StoreError("Could not allocate a unique order number")


def _take_stock(db: Session, product: Product, quantity: int) -> None:
    result = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStock(product.name)


def place_order(
    db: Session,
    user: User,
    req: CreateOrderRequest,
    order_number_factory: Callable[[], str] = generate_order_number,
) -> Order:
    """Create an order from the user's cart and return it with its items."""
    try:
        items = cart_items(db, user)
        if not items:
            raise EmptyCart()

        for item in items:
            if item.product.stock < item.quantity:
                _logger.warning(
                    f"Checkout for user {user.id} rejected: "
                    f"{item.product.name} has {item.product.stock}, wants {item.quantity}"
                )
                raise InsufficientStock(item.product.name)

        _, _, total = compute_totals(
            (i.quantity * effective_price(i.product) for i in items), get_tax_rate(db)
        )

        order = Order(
            order_number=_unique_order_number(db, order_number_factory),
            user_id=user.id,
            total_amount=total,
            status=INITIAL_STATUS,
            payment_id=req.payment_id,
            payment_status=INITIAL_PAYMENT_STATUS,
            shipping_name=req.shipping_name,
            shipping_address=req.shipping_address,
            shipping_address2=req.shipping_address2,
            shipping_city=req.shipping_city,
            shipping_state=req.shipping_state,
            shipping_zip=req.shipping_zip,
            shipping_country=req.shipping_country,
            notes=req.notes,
        )
        db.add(order)
        db.flush()

        for item in items:
            product = item.product
            unit_price = money(effective_price(product))
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    product_name=product.name,
                    product_image_url=product.image_url,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    total_price=money(unit_price * item.quantity),
                )
            )
            _take_stock(db, product, item.quantity)

        db.execute(
            delete(CartItem)
            .where(CartItem.user_id == user.id)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    _logger.info(f"Order {order.order_number} placed by user {user.id}: total {total}")
    # fresh load so stock, items and the user come from the database
    db.expire_all()
    return db.scalars(select(Order).where(Order.id == order.id)).unique().one()
