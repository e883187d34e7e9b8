"""
Categories, brands and products.

Product counts are computed on read. Deletes check references in code first so
the caller gets a readable business-rule message instead of a constraint error.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from errors import BusinessRuleViolation, NotFound
from listing import matches, paginate, product_ordering
from logger import get_logger
from models import Brand, CartItem, Category, OrderItem, Product, User, as_utc
from schemas import (
    BrandOut,
    BrandRequest,
    CategoryOut,
    CategoryRequest,
    ProductListResponse,
    ProductOut,
    ProductRequest,
)

_logger = get_logger(__name__)


def to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


# Categories

def _category_out(category: Category, product_count: int) -> CategoryOut:
    return CategoryOut(
        id=category.id,
        name=category.name,
        description=category.description,
        image_url=category.image_url,
        is_active=category.is_active,
        sort_order=category.sort_order,
        product_count=product_count,
        created_at=as_utc(category.created_at),
        updated_at=as_utc(category.updated_at),
    )


def _category_product_count(db: Session, category_id: int, active_only: bool = True) -> int:
    stmt = select(func.count(Product.id)).where(Product.category_id == category_id)
    if active_only:
        stmt = stmt.where(Product.is_active.is_(True))
    return db.scalar(stmt) or 0


def list_categories(db: Session, include_inactive: bool = False) -> List[CategoryOut]:
    stmt = select(Category).order_by(Category.sort_order, Category.name)
    if not include_inactive:
        stmt = stmt.where(Category.is_active.is_(True))
    # the admin listing counts every product, the public one only active ones
    return [
        _category_out(c, _category_product_count(db, c.id, active_only=not include_inactive))
        for c in db.scalars(stmt).all()
    ]


def get_category(db: Session, category_id: int) -> CategoryOut:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    return _category_out(category, _category_product_count(db, category.id))


def create_category(db: Session, req: CategoryRequest) -> CategoryOut:
    category = Category(**req.model_dump())
    db.add(category)
    db.commit()
    _logger.info(f"Category '{category.name}' created (id={category.id})")
    return _category_out(category, 0)


def update_category(db: Session, category_id: int, req: CategoryRequest) -> CategoryOut:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    for field, value in req.model_dump().items():
        setattr(category, field, value)
    db.commit()
    return _category_out(category, _category_product_count(db, category.id))


def delete_category(db: Session, category_id: int) -> None:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    if _category_product_count(db, category_id, active_only=False):
        raise BusinessRuleViolation("Cannot delete category that has products")
    db.delete(category)
    db.commit()
    _logger.info(f"Category {category_id} deleted")


# Brands

def _brand_out(brand: Brand, product_count: int) -> BrandOut:
    return BrandOut(
        id=brand.id,
        name=brand.name,
        description=brand.description,
        logo_url=brand.logo_url,
        is_active=brand.is_active,
        sort_order=brand.sort_order,
        product_count=product_count,
        created_at=as_utc(brand.created_at),
        updated_at=as_utc(brand.updated_at),
    )


def _brand_refs(brand: Brand):
    # products point at a brand by id, or only by its free-text name
    return or_(Product.brand_id == brand.id, Product.brand == brand.name)


def _brand_product_count(db: Session, brand: Brand, active_only: bool = True) -> int:
    stmt = select(func.count(Product.id)).where(_brand_refs(brand))
    if active_only:
        stmt = stmt.where(Product.is_active.is_(True))
    return db.scalar(stmt) or 0


def _ensure_brand_name_free(db: Session, name: str, brand_id: Optional[int] = None) -> None:
    stmt = select(Brand.id).where(func.lower(Brand.name) == name.strip().lower())
    if brand_id is not None:
        stmt = stmt.where(Brand.id != brand_id)
    if db.scalar(stmt) is not None:
        raise BusinessRuleViolation(f"Brand '{name}' already exists")


def list_brands(db: Session, include_inactive: bool = False) -> List[BrandOut]:
    stmt = select(Brand).order_by(Brand.sort_order, Brand.name)
    if not include_inactive:
        stmt = stmt.where(Brand.is_active.is_(True))
    return [_brand_out(b, _brand_product_count(db, b)) for b in db.scalars(stmt).all()]


def get_brand(db: Session, brand_id: int) -> BrandOut:
    brand = db.get(Brand, brand_id)
    if brand is None:
        raise NotFound("Brand not found")
    return _brand_out(brand, _brand_product_count(db, brand))


def create_brand(db: Session, req: BrandRequest) -> BrandOut:
    _ensure_brand_name_free(db, req.name)
    brand = Brand(**req.model_dump())
    db.add(brand)
    db.commit()
    _logger.info(f"Brand '{brand.name}' created (id={brand.id})")
    return _brand_out(brand, 0)


def update_brand(db: Session, brand_id: int, req: BrandRequest) -> BrandOut:
    brand = db.get(Brand, brand_id)
    if brand is None:
        raise NotFound("Brand not found")
    _ensure_brand_name_free(db, req.name, brand_id=brand_id)
    for field, value in req.model_dump().items():
        setattr(brand, field, value)
    db.commit()
    return _brand_out(brand, _brand_product_count(db, brand))


def delete_brand(db: Session, brand_id: int) -> None:
    brand = db.get(Brand, brand_id)
    if brand is None:
        raise NotFound("Brand not found")
    if _brand_product_count(db, brand, active_only=False):
        raise BusinessRuleViolation("Cannot delete brand that is used by products")
    db.delete(brand)
    db.commit()
    _logger.info(f"Brand {brand_id} deleted")


# Products

def product_out(product: Product) -> ProductOut:
    return ProductOut(
        id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        discount_price=product.discount_price,
        category_id=product.category_id,
        category_name=product.category.name if product.category else "",
        brand=product.brand,
        brand_id=product.brand_id,
        sku=product.sku,
        stock=product.stock,
        image_url=product.image_url,
        is_active=product.is_active,
        is_featured=product.is_featured,
        created_at=as_utc(product.created_at),
        updated_at=as_utc(product.updated_at),
        created_by_id=product.created_by_id,
        created_by_name=product.created_by.name if product.created_by else "",
    )


def list_products(
    db: Session,
    *,
    category_id: Optional[int] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    is_active: Optional[bool] = None,
    is_featured: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    include_inactive: bool = False,
) -> ProductListResponse:
    """Filtered, sorted, paged product listing.

    Without ``include_inactive`` (anonymous and regular callers) inactive
    products never show up, whatever ``is_active`` asks for.
    """
    stmt = select(Product).order_by(*product_ordering(sort_by, sort_order))

    if not include_inactive:
        stmt = stmt.where(Product.is_active.is_(True))
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if brand:
        stmt = stmt.where(Product.brand.is_not(None), matches(Product.brand, brand))
    if min_price is not None:
        stmt = stmt.where(Product.price >= to_decimal(min_price))
    if max_price is not None:
        stmt = stmt.where(Product.price <= to_decimal(max_price))
    if is_active is not None:
        stmt = stmt.where(Product.is_active.is_(is_active))
    if is_featured is not None:
        stmt = stmt.where(Product.is_featured.is_(is_featured))
    if search:
        stmt = stmt.where(
            or_(
                matches(Product.name, search),
                matches(func.coalesce(Product.description, ""), search),
                matches(func.coalesce(Product.brand, ""), search),
            )
        )

    rows, total, total_pages = paginate(db, stmt, page, page_size)
    return ProductListResponse(
        products=[product_out(p) for p in rows],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


def get_product(db: Session, product_id: int, include_inactive: bool = False) -> Product:
    product = db.get(Product, product_id)
    if product is None or (not product.is_active and not include_inactive):
        raise NotFound("Product not found")
    return product


def _apply_product_fields(db: Session, product: Product, req: ProductRequest) -> None:
    if db.get(Category, req.category_id) is None:
        raise BusinessRuleViolation("Category not found")
    brand_name = req.brand
    if req.brand_id is not None:
        brand = db.get(Brand, req.brand_id)
        if brand is None:
            raise BusinessRuleViolation("Brand not found")
        brand_name = brand_name or brand.name

    product.name = req.name
    product.description = req.description
    product.price = to_decimal(req.price)
    product.discount_price = to_decimal(req.discount_price)
    product.category_id = req.category_id
    product.brand = brand_name
    product.brand_id = req.brand_id
    product.sku = req.sku
    product.stock = req.stock
    product.image_url = req.image_url
    product.is_active = req.is_active
    product.is_featured = req.is_featured


def create_product(db: Session, req: ProductRequest, creator: User) -> Product:
    product = Product(created_by_id=creator.id)
    _apply_product_fields(db, product, req)
    db.add(product)
    db.commit()
    _logger.info(f"Product '{product.name}' created (id={product.id}) by user {creator.id}")
    db.refresh(product)
    return product


def update_product(db: Session, product_id: int, req: ProductRequest) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    _apply_product_fields(db, product, req)
    db.commit()
    # category may have changed
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: int) -> None:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    ordered = db.scalar(select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1))
    if ordered is not None:
        raise BusinessRuleViolation("Cannot delete product that has been ordered")
    db.execute(delete(CartItem).where(CartItem.product_id == product_id))
    db.delete(product)
    db.commit()
    _logger.info(f"Product {product_id} deleted")
