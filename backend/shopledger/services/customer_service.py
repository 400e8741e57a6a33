# Overview: Customer records keyed by mobile number.

from __future__ import annotations

import re

from sqlalchemy import or_

from ..errors import ConflictError, DuplicateIdentifierError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer
from ..validation import require_percent_bps, require_text
from .concurrency import begin_write, flush_unique, lock_for_update, run_write


_MOBILE_RE = re.compile(r"^\+?\d{10,15}$")

SEARCH_DEFAULT_LIMIT = 20


def normalize_mobile(value) -> str:
    """Strip separators; accept 10-15 digits with an optional leading '+'."""
    mobile = re.sub(r"[\s\-()]", "", str(value or ""))
    if not mobile:
        raise ValidationError("mobile is required", details={"field": "mobile"})
    if not _MOBILE_RE.match(mobile):
        raise ValidationError("mobile must be 10-15 digits", details={"field": "mobile"})
    return mobile


def find_by_mobile(mobile: str) -> Customer | None:
    return db.session.query(Customer).filter_by(mobile=normalize_mobile(mobile)).first()


def _mobile_taken(mobile: str) -> bool:
    return db.session.query(Customer.id).filter_by(mobile=mobile).first() is not None


def create_customer(payload: dict) -> Customer:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    name = require_text(payload.get("name"), "name", max_length=255)
    mobile = normalize_mobile(payload.get("mobile"))
    address = (str(payload.get("address")).strip() or None) if payload.get("address") else None
    discount_bps = require_percent_bps(payload.get("discount_bps", 0), "discount_bps")

    def _op() -> Customer:
        begin_write()
        if _mobile_taken(mobile):
            raise ConflictError("Customer with this mobile already exists", details={"mobile": mobile})
        customer = Customer(
            name=name,
            mobile=mobile,
            address=address,
            whatsapp_opt_in=bool(payload.get("whatsapp_opt_in", True)),
            discount_bps=discount_bps,
        )
        db.session.add(customer)
        try:
            flush_unique("CUSTOMER", "customers.mobile", "uq_customers_mobile", identifier=mobile)
        except DuplicateIdentifierError as exc:
            raise ConflictError("Customer with this mobile already exists", details={"mobile": mobile}) from exc
        db.session.commit()
        return customer

    return run_write(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def search_customers(q: str | None = None, limit: int | None = None) -> list[Customer]:
    """Name or mobile substring match. With no query, the most recent customers."""
    query = db.session.query(Customer)
    term = (q or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Customer.name.ilike(like), Customer.mobile.like(like)))
        query = query.order_by(Customer.name.asc(), Customer.id.asc())
        if limit:
            query = query.limit(limit)
    else:
        query = query.order_by(Customer.id.desc()).limit(limit or SEARCH_DEFAULT_LIMIT)
    return query.all()


def update_customer_discount(customer_id: int, discount_bps) -> Customer:
    bps = require_percent_bps(discount_bps, "discount_bps")

    def _op() -> Customer:
        begin_write()
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})
        customer.discount_bps = bps
        db.session.commit()
        return customer

    return run_write(_op)


def upsert_by_mobile(mobile: str, name: str, address: str | None = None) -> Customer:
    """
    Find-or-create inside the caller's transaction (no commit).

    Name and address are refreshed when the caller supplies different values.
    """
    customer = db.session.query(Customer).filter_by(mobile=mobile).first()
    if customer is None:
        customer = Customer(name=name, mobile=mobile, address=address, whatsapp_opt_in=True, discount_bps=0)
        db.session.add(customer)
        # A concurrent first order from the same mobile retries the whole transaction
        flush_unique("CUSTOMER", "customers.mobile", "uq_customers_mobile", identifier=mobile)
        return customer
    if name and customer.name != name:
        customer.name = name
    if address and customer.address != address:
        customer.address = address
    return customer
