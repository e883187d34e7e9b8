"""
Reading orders back and the admin status change.

Regular users only ever see their own orders; admins see everything and may
narrow by user id.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from errors import AuthorizationFailure, NotFound
from listing import matches, order_ordering, paginate
from logger import get_logger
from models import Order, User, as_utc
from schemas import OrderItemOut, OrderListResponse, OrderOut, UpdateOrderStatusRequest

_logger = get_logger(__name__)


def order_out(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        user_name=order.user.name,
        user_email=order.user.email,
        total_amount=order.total_amount,
        status=order.status,
        payment_id=order.payment_id,
        payment_status=order.payment_status,
        shipping_name=order.shipping_name,
        shipping_address=order.shipping_address,
        shipping_address2=order.shipping_address2,
        shipping_city=order.shipping_city,
        shipping_state=order.shipping_state,
        shipping_zip=order.shipping_zip,
        shipping_country=order.shipping_country,
        notes=order.notes,
        created_at=as_utc(order.created_at),
        updated_at=as_utc(order.updated_at),
        order_items=[
            OrderItemOut(
                id=i.id,
                product_id=i.product_id,
                product_name=i.product_name,
                product_image_url=i.product_image_url,
                quantity=i.quantity,
                unit_price=i.unit_price,
                total_price=i.total_price,
            )
            for i in order.items
        ],
    )


def list_orders(
    db: Session,
    caller: User,
    *,
    user_id: Optional[int] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> OrderListResponse:
    owner = User.__table__.alias("owner")
    stmt = (
        select(Order)
        .join(owner, owner.c.id == Order.user_id)
        .order_by(*order_ordering(sort_by, sort_order))
    )

    if not caller.is_admin:
        stmt = stmt.where(Order.user_id == caller.id)
    elif user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)

    if status:
        stmt = stmt.where(Order.status == status)
    if payment_status:
        stmt = stmt.where(Order.payment_status == payment_status)
    if from_date is not None:
        stmt = stmt.where(Order.created_at >= from_date)
    if to_date is not None:
        stmt = stmt.where(Order.created_at <= to_date)
    if search:
        stmt = stmt.where(
            or_(
                matches(Order.order_number, search),
                matches(owner.c.name, search),
                matches(owner.c.email, search),
            )
        )

    rows, total, total_pages = paginate(db, stmt, page, page_size)
    return OrderListResponse(
        orders=[order_out(o) for o in rows],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


def get_order(db: Session, caller: User, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")
    if not caller.is_admin and order.user_id != caller.id:
        _logger.warning(f"User {caller.id} tried to read order {order_id} of user {order.user_id}")
        raise AuthorizationFailure("You do not have access to this order")
    return order


def update_status(db: Session, order_id: int, req: UpdateOrderStatusRequest) -> Order:
    """Overwrite the status with any string; notes change only when given."""
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")
    previous = order.status
    order.status = req.status
    if req.notes:
        order.notes = req.notes
    db.commit()
    _logger.info(f"Order {order.order_number}: status {previous} -> {order.status}")
    return order
