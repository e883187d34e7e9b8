from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

import cart
import catalog
import checkout
import config
import orders
import settings_store
import users
from bootstrap import init_db, seed
from database import SessionLocal, engine, get_db
from errors import BusinessRuleViolation, NotFound, register_error_handlers
from logger import get_logger
from models import Role, User, utcnow
from schemas import (
    AddToCartRequest,
    AuthResponse,
    BrandOut,
    BrandRequest,
    CartItemOut,
    CartSummary,
    CategoryOut,
    CategoryRequest,
    ChangePasswordRequest,
    ConfigMap,
    ConfigValueRequest,
    CreateOrderRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    OrderListResponse,
    OrderOut,
    ProductListResponse,
    ProductOut,
    ProductRequest,
    RefreshTokenRequest,
    RegisterRequest,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
    UserOut,
    UserUpdateRequest,
)
from security import (
    authenticate,
    find_user_by_email,
    get_current_user,
    get_optional_user,
    hash_password,
    issue_tokens,
    require_admin,
    revoke_refresh_tokens,
    rotate_refresh_token,
    verify_password,
)

logger = get_logger("buynow")

# App init
app = FastAPI(title="BuyNow API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


def _is_admin(user: Optional[User]) -> bool:
    return user is not None and user.is_admin


# Routes
@app.get("/")
def root():
    return {"message": "BuyNow API running"}


# Auth
@app.post("/api/auth/register", response_model=AuthResponse)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    if find_user_by_email(db, req.email):
        raise BusinessRuleViolation("User with this email already exists")
    user = User(
        email=req.email.lower(),
        name=req.name,
        phone=req.phone,
        password_hash=hash_password(req.password),
        role=Role.USER.value,
        is_active=True,
        last_login_at=utcnow(),
    )
    db.add(user)
    db.flush()
    tokens = issue_tokens(db, user)
    db.commit()
    logger.info(f"Registered user {user.id} ({user.email})")
    return AuthResponse(user=users.user_out(user), tokens=tokens)


@app.post("/api/auth/login", response_model=AuthResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, req.email, req.password)
    user.last_login_at = utcnow()
    tokens = issue_tokens(db, user)
    db.commit()
    return AuthResponse(user=users.user_out(user), tokens=tokens)


@app.post("/api/auth/refresh", response_model=AuthResponse)
def refresh(req: RefreshTokenRequest, db: Session = Depends(get_db)):
    user, tokens = rotate_refresh_token(db, req.refresh_token)
    return AuthResponse(user=users.user_out(user), tokens=tokens)


@app.post("/api/auth/logout", response_model=MessageResponse)
def logout(
    req: Optional[LogoutRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    revoke_refresh_tokens(db, user, req.refresh_token if req else None)
    db.commit()
    return MessageResponse(message="Logged out successfully")


@app.get("/api/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return users.user_out(user)


@app.post("/api/auth/change-password", response_model=MessageResponse)
def change_password(
    req: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(req.current_password, user.password_hash):
        raise BusinessRuleViolation("Current password is incorrect")
    user.password_hash = hash_password(req.new_password)
    revoke_refresh_tokens(db, user)
    db.commit()
    logger.info(f"User {user.id} changed password")
    return MessageResponse(message="Password changed successfully")


# Products
@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    category_id: Optional[int] = Query(None, alias="categoryId"),
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    is_featured: Optional[bool] = Query(None, alias="isFeatured"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return catalog.list_products(
        db,
        category_id=category_id,
        brand=brand,
        min_price=min_price,
        max_price=max_price,
        is_active=is_active,
        is_featured=is_featured,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
        include_inactive=_is_admin(user),
    )


@app.get("/api/products/{product_id}", response_model=ProductOut)
def get_product(
    product_id: int,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    product = catalog.get_product(db, product_id, include_inactive=_is_admin(user))
    return catalog.product_out(product)


@app.post("/api/products", response_model=ProductOut, status_code=201)
def create_product(req: ProductRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.product_out(catalog.create_product(db, req, admin))


@app.put("/api/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int, req: ProductRequest, admin=Depends(require_admin), db: Session = Depends(get_db)
):
    return catalog.product_out(catalog.update_product(db, product_id, req))


@app.delete("/api/products/{product_id}", status_code=204)
def delete_product(product_id: int, admin=Depends(require_admin), db: Session = Depends(get_db)):
    catalog.delete_product(db, product_id)
    return Response(status_code=204)


# Categories
@app.get("/api/categories", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return catalog.list_categories(db)


@app.get("/api/categories/all", response_model=List[CategoryOut])
def list_all_categories(admin=Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.list_categories(db, include_inactive=True)


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return catalog.get_category(db, category_id)


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(req: CategoryRequest, admin=Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.create_category(db, req)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int, req: CategoryRequest, admin=Depends(require_admin), db: Session = Depends(get_db)
):
    return catalog.update_category(db, category_id, req)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, admin=Depends(require_admin), db: Session = Depends(get_db)):
    catalog.delete_category(db, category_id)
    return Response(status_code=204)


# Brands
@app.get("/api/brands", response_model=List[BrandOut])
def list_brands(db: Session = Depends(get_db)):
    return catalog.list_brands(db)


@app.get("/api/brands/all", response_model=List[BrandOut])
def list_all_brands(admin=Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.list_brands(db, include_inactive=True)


@app.get("/api/brands/{brand_id}", response_model=BrandOut)
def get_brand(brand_id: int, db: Session = Depends(get_db)):
    return catalog.get_brand(db, brand_id)


@app.post("/api/brands", response_model=BrandOut, status_code=201)
def create_brand(req: BrandRequest, admin=Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.create_brand(db, req)


@app.put("/api/brands/{brand_id}", response_model=BrandOut)
def update_brand(brand_id: int, req: BrandRequest, admin=Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.update_brand(db, brand_id, req)


@app.delete("/api/brands/{brand_id}", status_code=204)
def delete_brand(brand_id: int, admin=Depends(require_admin), db: Session = Depends(get_db)):
    catalog.delete_brand(db, brand_id)
    return Response(status_code=204)


# Cart
@app.get("/api/cart", response_model=CartSummary)
def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart.get_cart(db, user)


@app.post("/api/cart/items", response_model=CartItemOut)
def add_to_cart(
    req: AddToCartRequest,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item, created = cart.add_item(db, user, req.product_id, req.quantity)
    response.status_code = 201 if created else 200
    return item


@app.put("/api/cart/items/{item_id}", response_model=CartItemOut)
def update_cart_item(
    item_id: int,
    req: UpdateCartItemRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return cart.update_item(db, user, item_id, req.quantity)


@app.delete("/api/cart/items/{item_id}", status_code=204)
def remove_cart_item(item_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart.remove_item(db, user, item_id)
    return Response(status_code=204)


@app.delete("/api/cart", status_code=204)
def clear_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart.clear_cart(db, user)
    return Response(status_code=204)


# Orders
@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    user_id: Optional[int] = Query(None, alias="userId"),
    status: Optional[str] = None,
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return orders.list_orders(
        db,
        user,
        user_id=user_id,
        status=status,
        payment_status=payment_status,
        from_date=from_date,
        to_date=to_date,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )


@app.post("/api/orders", response_model=OrderOut, status_code=201)
def create_order(req: CreateOrderRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return orders.order_out(checkout.place_order(db, user, req))


@app.get("/api/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return orders.order_out(orders.get_order(db, user, order_id))


@app.put("/api/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int, req: UpdateOrderStatusRequest, admin=Depends(require_admin), db: Session = Depends(get_db)
):
    return orders.order_out(orders.update_status(db, order_id, req))


# Config
@app.get("/api/config", response_model=ConfigMap)
def get_config(db: Session = Depends(get_db)):
    return settings_store.all_values(db)


@app.get("/api/config/{key}")
def get_config_value(key: str, db: Session = Depends(get_db)) -> str:
    value = settings_store.get_value(db, key)
    if value is None:
        raise NotFound(f"Config key '{key}' not found")
    return value


@app.post("/api/config", response_model=MessageResponse)
def set_config(values: ConfigMap, admin=Depends(require_admin), db: Session = Depends(get_db)):
    for key, value in values.items():
        settings_store.set_value(db, key, value)
    db.commit()
    return MessageResponse(message="Configuration saved")


@app.put("/api/config/{key}", response_model=MessageResponse)
def put_config_value(
    key: str, req: ConfigValueRequest, admin=Depends(require_admin), db: Session = Depends(get_db)
):
    settings_store.set_value(db, key, req.value, req.description)
    db.commit()
    return MessageResponse(message="Configuration saved")


@app.delete("/api/config/{key}", status_code=204)
def delete_config_value(key: str, admin=Depends(require_admin), db: Session = Depends(get_db)):
    settings_store.delete_value(db, key)
    return Response(status_code=204)


# Users (admin)
@app.get("/api/users", response_model=List[UserOut])
def list_users(
    role: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    search: Optional[str] = None,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [users.user_out(u) for u in users.list_users(db, role=role, is_active=is_active, search=search)]


@app.get("/api/users/{user_id}", response_model=UserOut)
def get_user(user_id: int, admin=Depends(require_admin), db: Session = Depends(get_db)):
    return users.user_out(users.get_user(db, user_id))


@app.put("/api/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: int, req: UserUpdateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    return users.user_out(users.update_user(db, admin, user_id, req))


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    users.delete_user(db, admin, user_id)
    return Response(status_code=204)


# Create tables on startup; demo data only when enabled
@app.on_event("startup")
def seed_if_empty():
    init_db(engine)
    if not config.SEED_ON_STARTUP:
        return
    with SessionLocal() as db:
        seed(db)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
