# Overview: Stock ledger. Materialized current_stock with an append-only StockEntry trail,
# plus the product and catalogue operations that feed it.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.orm.util import identity_key

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, BillItem, Brand, Category, Product, StockEntry
from ..validation import (
    MAX_QUANTITY,
    ModelValidationPolicy,
    enforce_rules_product,
    require_non_negative_int,
    require_positive_int,
    require_quantity,
    require_text,
    validate_payload,
)
from .concurrency import begin_write, lock_for_update, run_write


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "description", "barcode", "unit_price_cents", "low_stock_threshold"},
    required_on_create={"name", "unit_price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "description", "barcode", "unit_price_cents", "low_stock_threshold", "is_active"},
)


def _expire_stock(product_id: int) -> None:
    """Drop the cached current_stock after a core UPDATE bypassed the ORM."""
    obj = db.session.identity_map.get(identity_key(Product, product_id))
    if obj is not None:
        db.session.expire(obj, ["current_stock"])


def _stock_of(product_id: int) -> int:
    return db.session.query(Product.current_stock).filter(Product.id == product_id).scalar()


def deduct(product_id: int, quantity: int) -> int:
    """
    Compare-and-swap decrement of current_stock; returns the new level.

    Runs inside the caller's transaction and never commits. The WHERE clause
    guards the decrement, so two concurrent sales can never both take the last
    units: the loser matches zero rows and gets InsufficientStockError.
    """
    quantity = require_quantity(quantity)
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.current_stock >= quantity)
        .values(current_stock=Product.current_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        row = db.session.query(Product.name, Product.current_stock).filter(Product.id == product_id).first()
        if row is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        raise InsufficientStockError(product_id, quantity, row.current_stock, product_name=row.name)

    _expire_stock(product_id)
    return _stock_of(product_id)


def restore(product_id: int, quantity: int) -> int:
    """Return units from a cancelled bill. No StockEntry: the bill itself is no longer PAID."""
    quantity = require_quantity(quantity)
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(current_stock=Product.current_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    _expire_stock(product_id)
    return _stock_of(product_id)


def _replenish_locked(product: Product, quantity: int, actor_id: int | None, note: str | None) -> StockEntry:
    db.session.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(current_stock=Product.current_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    entry = StockEntry(
        product_id=product.id,
        quantity_added=quantity,
        added_by_user_id=actor_id,
        note=note,
    )
    db.session.add(entry)
    db.session.flush()
    _expire_stock(product.id)
    return entry


def replenish(product_id: int, quantity, actor_id: int | None, note: str | None = None, *, commit: bool = True) -> StockEntry:
    """
    Add stock: increment current_stock and append one StockEntry atomically.

    With commit=False the work joins the caller's transaction.
    """
    product_id = require_positive_int(product_id, "product_id")
    quantity = require_quantity(quantity)
    if note is not None:
        note = str(note).strip()[:255] or None

    def _op() -> StockEntry:
        if commit:
            begin_write()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        entry = _replenish_locked(product, quantity, actor_id, note)
        if commit:
            db.session.commit()
            current_app.logger.info(
                "Stock replenished: product=%s qty=%s by user=%s", product_id, quantity, actor_id
            )
        return entry

    if not commit:
        return _op()
    return run_write(_op)


def _find_or_create_brand(name: str) -> Brand:
    brand = db.session.query(Brand).filter(func.lower(Brand.name) == name.lower()).first()
    if brand is None:
        brand = Brand(name=name)
        db.session.add(brand)
        db.session.flush()
    return brand


def _require_category(category_id) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise NotFoundError("Category not found", details={"category_id": category_id})


def create_product(payload: dict, actor_id: int | None) -> Product:
    """
    Create a product under a (found or created) brand.

    Opening stock, when given, is booked as the first StockEntry in the same
    transaction so the ledger invariant holds from the start.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    brand_name = require_text(payload.pop("brand", None), "brand", max_length=100)
    opening_stock = require_non_negative_int(
        payload.pop("opening_stock", None), "opening_stock", default=0, maximum=MAX_QUANTITY
    )
    if "current_stock" in payload:
        raise ValidationError("current_stock cannot be set directly; use opening_stock",
                              details={"field": "current_stock"})

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    if patch.get("low_stock_threshold") is None:
        patch["low_stock_threshold"] = int(current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 10))

    def _op() -> Product:
        begin_write()
        _require_category(patch.get("category_id"))
        brand = _find_or_create_brand(brand_name)
        product = Product(brand_id=brand.id, current_stock=0, is_active=True, **patch)
        db.session.add(product)
        db.session.flush()
        if opening_stock:
            _replenish_locked(product, opening_stock, actor_id, "Opening stock")
        db.session.commit()
        current_app.logger.info("Product created: id=%s name=%s opening=%s", product.id, product.name, opening_stock)
        return product

    return run_write(_op)


def update_product(product_id: int, payload: dict) -> Product:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    if "current_stock" in payload:
        raise ValidationError("current_stock cannot be edited; add a stock entry instead",
                              details={"field": "current_stock"})
    brand_name = payload.pop("brand", None)
    if brand_name is not None:
        brand_name = require_text(brand_name, "brand", max_length=100)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op() -> Product:
        begin_write()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        if "category_id" in patch:
            _require_category(patch["category_id"])
        if brand_name is not None:
            product.brand_id = _find_or_create_brand(brand_name).id
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_write(_op)


def deactivate_product(product_id: int) -> Product:
    """Soft delete. Bills keep referencing the product."""
    def _op() -> Product:
        begin_write()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        product.is_active = False
        db.session.commit()
        return product

    return run_write(_op)


def get_product(product_id: int, *, active_only: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (active_only and not product.is_active):
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(
    *,
    include_inactive: bool = False,
    q: str | None = None,
    brand_id: int | None = None,
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Returns a dict with 'items' (Product rows), 'count' and, when paginated,
    'pagination' metadata.
    """
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if q:
        like = f"%{q.strip()}%"
        query = query.outerjoin(Brand, Product.brand_id == Brand.id).filter(
            or_(Product.name.ilike(like), Brand.name.ilike(like), Product.barcode == q.strip())
        )
    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {"items": products, "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": products,
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_low_stock() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.low_stock_threshold)
        .order_by(Product.current_stock.asc(), Product.id.asc())
        .all()
    )


def list_stock_entries(product_id: int) -> list[StockEntry]:
    get_product(product_id)
    return (
        db.session.query(StockEntry)
        .filter_by(product_id=product_id)
        .order_by(StockEntry.entry_date.desc(), StockEntry.id.desc())
        .all()
    )


def list_brands() -> list[Brand]:
    return db.session.query(Brand).order_by(Brand.name.asc()).all()


def create_category(name, description=None) -> Category:
    name = require_text(name, "name", max_length=100)

    def _op() -> Category:
        begin_write()
        existing = db.session.query(Category).filter(func.lower(Category.name) == name.lower()).first()
        if existing:
            raise ConflictError("Category already exists", details={"name": name})
        category = Category(name=name, description=(str(description).strip() or None) if description else None)
        db.session.add(category)
        db.session.commit()
        return category

    return run_write(_op)


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def reconcile(product_id: int) -> dict:
    """
    Recompute expected stock from the ledger and report any drift.

    expected = sum(StockEntry.quantity_added) - units on PAID bills
    Read-only; drift is reported, never corrected.
    """
    product = get_product(product_id)
    added = (
        db.session.query(func.coalesce(func.sum(StockEntry.quantity_added), 0))
        .filter(StockEntry.product_id == product_id)
        .scalar()
    )
    sold = (
        db.session.query(func.coalesce(func.sum(BillItem.quantity), 0))
        .join(Bill, BillItem.bill_id == Bill.id)
        .filter(BillItem.product_id == product_id, Bill.status == "PAID")
        .scalar()
    )
    expected = int(added) - int(sold)
    current = _stock_of(product_id)
    return {
        "product_id": product.id,
        "name": product.name,
        "current_stock": current,
        "total_added": int(added),
        "total_sold": int(sold),
        "expected_stock": expected,
        "drift": current - expected,
    }


def reconcile_all() -> list[dict]:
    ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    return [reconcile(pid) for pid in ids]
