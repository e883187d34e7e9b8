"""
Admin management of user accounts.
"""

from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from errors import BusinessRuleViolation, NotFound
from listing import matches
from logger import get_logger
from models import Order, Product, Role, User, as_utc
from schemas import UserOut, UserUpdateRequest
from security import revoke_refresh_tokens

_logger = get_logger(__name__)


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role_enum,
        phone=user.phone,
        department=user.department,
        is_active=user.is_active,
        last_login_at=as_utc(user.last_login_at),
        created_at=as_utc(user.created_at),
        updated_at=as_utc(user.updated_at),
    )


def list_users(
    db: Session,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
) -> List[User]:
    stmt = select(User).order_by(User.name, User.id)
    if role:
        try:
            stmt = stmt.where(User.role == Role.parse(role).value)
        except ValueError:
            raise BusinessRuleViolation(f"Unknown role '{role}'")
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    if search:
        stmt = stmt.where(or_(matches(User.name, search), matches(User.email, search)))
    return list(db.scalars(stmt).all())


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def update_user(db: Session, acting: User, user_id: int, req: UserUpdateRequest) -> User:
    user = get_user(db, user_id)
    changes = req.model_dump(exclude_unset=True, exclude_none=True)

    if user.id == acting.id:
        if changes.get("is_active") is False:
            raise BusinessRuleViolation("You cannot deactivate your own account")
        if "role" in changes and changes["role"] is not Role.ADMIN:
            raise BusinessRuleViolation("You cannot remove your own admin role")

    if "role" in changes:
        changes["role"] = changes["role"].value
    deactivated = user.is_active and changes.get("is_active") is False

    for field, value in changes.items():
        setattr(user, field, value)
    if deactivated:
        revoked = revoke_refresh_tokens(db, user)
        _logger.info(f"User {user.id} deactivated, {revoked} refresh token(s) revoked")
    db.commit()
    return user


def delete_user(db: Session, acting: User, user_id: int) -> None:
    user = get_user(db, user_id)
    if user.id == acting.id:
        raise BusinessRuleViolation("You cannot delete your own account")
    if db.scalar(select(Order.id).where(Order.user_id == user_id).limit(1)) is not None:
        raise BusinessRuleViolation("Cannot delete user that has orders")
    if db.scalar(select(Product.id).where(Product.created_by_id == user_id).limit(1)) is not None:
        raise BusinessRuleViolation("Cannot delete user that has created products")
    db.delete(user)
    db.commit()
    _logger.info(f"User {user_id} ({user.email}) deleted")
