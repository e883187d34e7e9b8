"""
Per-user shopping cart.

Quantities are always checked against the product's live stock; prices are
never stored on the cart row, they are read from the product each time.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from errors import BusinessRuleViolation, InsufficientStock, NotFound
from logger import get_logger
from models import CartItem, Product, User, as_utc
from schemas import CartItemOut, CartSummary
from settings_store import get_max_cart_items, get_tax_rate

_logger = get_logger(__name__)

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def effective_price(product: Product) -> Decimal:
    """Discount price when the product has one, otherwise the list price."""
    if product.discount_price is not None:
        return Decimal(product.discount_price)
    return Decimal(product.price)


def compute_totals(line_totals, tax_rate: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """(subtotal, tax, total) rounded to cents."""
    subtotal = money(sum(line_totals, Decimal("0")))
    tax = money(subtotal * tax_rate)
    return subtotal, tax, subtotal + tax


def cart_item_out(item: CartItem) -> CartItemOut:
    product = item.product
    return CartItemOut(
        id=item.id,
        product_id=item.product_id,
        product_name=product.name,
        product_image_url=product.image_url,
        product_price=product.price,
        product_discount_price=product.discount_price,
        quantity=item.quantity,
        total_price=money(item.quantity * effective_price(product)),
        available_stock=product.stock,
        created_at=as_utc(item.created_at),
        updated_at=as_utc(item.updated_at),
    )


def cart_items(db: Session, user: User) -> List[CartItem]:
    stmt = select(CartItem).where(CartItem.user_id == user.id).order_by(CartItem.id)
    return list(db.scalars(stmt).unique().all())


def get_cart(db: Session, user: User) -> CartSummary:
    items = cart_items(db, user)
    lines = [cart_item_out(i) for i in items]
    subtotal, tax, total = compute_totals(
        (i.quantity * effective_price(i.product) for i in items), get_tax_rate(db)
    )
    return CartSummary(
        items=lines,
        total_items=sum(i.quantity for i in items),
        sub_total=subtotal,
        tax=tax,
        total=total,
    )


def add_item(db: Session, user: User, product_id: int, quantity: int) -> Tuple[CartItemOut, bool]:
    """Add ``quantity`` of a product; returns (line, created)."""
    product = db.get(Product, product_id)
    if product is None or not product.is_active:
        raise BusinessRuleViolation("Product not found or inactive")
    if product.stock < quantity:
        raise InsufficientStock()

    item = db.scalar(
        select(CartItem).where(CartItem.user_id == user.id, CartItem.product_id == product_id)
    )
    if item is not None:
        new_quantity = item.quantity + quantity
        if product.stock < new_quantity:
            raise InsufficientStock()
        item.quantity = new_quantity
        db.commit()
        _logger.debug(f"Cart of user {user.id}: product {product_id} -> {new_quantity}")
        return cart_item_out(item), False

    limit = get_max_cart_items(db)
    if limit is not None:
        lines = db.scalar(select(func.count(CartItem.id)).where(CartItem.user_id == user.id)) or 0
        if lines >= limit:
            raise BusinessRuleViolation(f"Cart cannot hold more than {limit} different products")

    item = CartItem(user_id=user.id, product_id=product_id, quantity=quantity)
    db.add(item)
    db.commit()
    db.refresh(item)
    _logger.debug(f"Cart of user {user.id}: product {product_id} added x{quantity}")
    return cart_item_out(item), True


def _own_item(db: Session, user: User, item_id: int) -> CartItem:
    item = db.scalar(select(CartItem).where(CartItem.id == item_id, CartItem.user_id == user.id))
    if item is None:
        raise NotFound("Cart item not found")
    return item


def update_item(db: Session, user: User, item_id: int, quantity: int) -> CartItemOut:
    item = _own_item(db, user, item_id)
    if item.product.stock < quantity:
        raise InsufficientStock()
    item.quantity = quantity
    db.commit()
    return cart_item_out(item)


def remove_item(db: Session, user: User, item_id: int) -> None:
    item = _own_item(db, user, item_id)
    db.delete(item)
    db.commit()


def clear_cart(db: Session, user: User) -> None:
    db.execute(delete(CartItem).where(CartItem.user_id == user.id))
    db.commit()
