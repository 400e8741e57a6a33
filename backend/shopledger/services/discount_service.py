# Overview: Discount resolver. Global discount, tiered cart rules and per-customer
# discounts are looked up independently and surfaced side by side.

from __future__ import annotations

from dataclasses import dataclass, asdict

from flask import current_app
from sqlalchemy import update

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Discount, DiscountRule
from ..time_utils import utcnow
from ..validation import require_amount_cents, require_percent_bps
from .concurrency import begin_write, lock_for_update, run_write


@dataclass(frozen=True)
class DiscountCandidates:
    """
    The three discount sources for one cart.

    They are never summed or compounded here; choosing which to apply is the
    caller's business.
    """
    global_bps: int
    rule_bps: int
    customer_bps: int
    rule_id: int | None = None
    customer_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def get_active_discount() -> Discount | None:
    return (
        db.session.query(Discount)
        .filter(Discount.is_active.is_(True))
        .order_by(Discount.id.desc())
        .first()
    )


def global_discount_bps() -> int:
    active = get_active_discount()
    return active.percentage_bps if active else 0


def set_global_discount(percentage_bps, actor_id: int | None, name: str | None = None) -> Discount:
    """
    Replace the active global discount.

    Deactivation of the old row(s) and insertion of the new one commit
    together; readers see either the old or the new discount, never none
    and never two.
    """
    percentage_bps = require_percent_bps(percentage_bps, "percentage_bps")
    name = (str(name).strip() if name else "") or "Global Discount"

    def _op() -> Discount:
        begin_write()
        lock_for_update(db.session.query(Discount).filter(Discount.is_active.is_(True))).all()
        db.session.execute(
            update(Discount)
            .where(Discount.is_active.is_(True))
            .values(is_active=False, deactivated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        discount = Discount(
            name=name[:100],
            percentage_bps=percentage_bps,
            is_active=True,
            created_by_user_id=actor_id,
        )
        db.session.add(discount)
        db.session.commit()
        current_app.logger.info("Global discount set to %s bps by user=%s", percentage_bps, actor_id)
        return discount

    return run_write(_op)


def _rule_bounds(min_amount, max_amount) -> tuple[int, int]:
    min_cents = require_amount_cents(min_amount, "min_amount_cents", default=0)
    max_cents = require_amount_cents(max_amount, "max_amount_cents", default=0)
    if max_cents and max_cents <= min_cents:
        raise ValidationError(
            "max_amount_cents must be greater than min_amount_cents (or 0 for no upper bound)",
            details={"field": "max_amount_cents"},
        )
    return min_cents, max_cents


def create_rule(payload: dict) -> DiscountRule:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    min_cents, max_cents = _rule_bounds(payload.get("min_amount_cents"), payload.get("max_amount_cents"))
    bps = require_percent_bps(payload.get("percentage_bps"), "percentage_bps")
    is_active = bool(payload.get("is_active", True))

    def _op() -> DiscountRule:
        begin_write()
        rule = DiscountRule(
            min_amount_cents=min_cents,
            max_amount_cents=max_cents,
            percentage_bps=bps,
            is_active=is_active,
        )
        db.session.add(rule)
        db.session.commit()
        return rule

    return run_write(_op)


def update_rule(rule_id: int, payload: dict) -> DiscountRule:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    def _op() -> DiscountRule:
        begin_write()
        rule = lock_for_update(db.session.query(DiscountRule).filter_by(id=rule_id)).first()
        if not rule:
            raise NotFoundError("Discount rule not found", details={"rule_id": rule_id})
        min_cents, max_cents = _rule_bounds(
            payload.get("min_amount_cents", rule.min_amount_cents),
            payload.get("max_amount_cents", rule.max_amount_cents),
        )
        rule.min_amount_cents = min_cents
        rule.max_amount_cents = max_cents
        if "percentage_bps" in payload:
            rule.percentage_bps = require_percent_bps(payload["percentage_bps"], "percentage_bps")
        if "is_active" in payload:
            rule.is_active = bool(payload["is_active"])
        db.session.commit()
        return rule

    return run_write(_op)


def delete_rule(rule_id: int) -> None:
    def _op() -> None:
        begin_write()
        rule = db.session.get(DiscountRule, rule_id)
        if not rule:
            raise NotFoundError("Discount rule not found", details={"rule_id": rule_id})
        db.session.delete(rule)
        db.session.commit()

    run_write(_op)


def list_rules(active_only: bool = False) -> list[DiscountRule]:
    query = db.session.query(DiscountRule)
    if active_only:
        query = query.filter(DiscountRule.is_active.is_(True))
    return query.order_by(DiscountRule.min_amount_cents.asc(), DiscountRule.id.asc()).all()


def match_rule(cart_total_cents) -> DiscountRule | None:
    """
    Best active rule for a cart total.

    A rule matches when min <= total and (max == 0 or total < max).
    Overlapping matches resolve to the highest percentage, then the lowest id.
    """
    total = require_amount_cents(cart_total_cents, "cart_total_cents")
    matches = [rule for rule in list_rules(active_only=True) if rule.matches(total)]
    if not matches:
        return None
    return min(matches, key=lambda rule: (-rule.percentage_bps, rule.id))


def customer_discount_bps(customer_id: int | None) -> int:
    if customer_id is None:
        return 0
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer.discount_bps or 0


def resolve(customer_id: int | None, cart_total_cents) -> DiscountCandidates:
    rule = match_rule(cart_total_cents)
    return DiscountCandidates(
        global_bps=global_discount_bps(),
        rule_bps=rule.percentage_bps if rule else 0,
        customer_bps=customer_discount_bps(customer_id),
        rule_id=rule.id if rule else None,
        customer_id=customer_id,
    )
