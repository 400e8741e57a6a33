"""
Discount resolver tests.

Verifies:
- Global, rule and customer discounts are reported independently
- Rule bounds (max 0 = unbounded) and overlap tie-break
- At most one global discount is active at any time
"""

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.models import Discount
from shopledger.services import customer_service, discount_service


class TestGlobalDiscount:
    def test_no_discount_by_default(self, db_session):
        assert discount_service.global_discount_bps() == 0
        assert discount_service.get_active_discount() is None

    def test_setting_replaces_previous(self, admin_user):
        first = discount_service.set_global_discount(500, admin_user.id)
        second = discount_service.set_global_discount(1000, admin_user.id, name="Festival")

        active = db.session.query(Discount).filter(Discount.is_active.is_(True)).all()
        assert [d.id for d in active] == [second.id]
        assert db.session.get(Discount, first.id).deactivated_at is not None
        assert discount_service.global_discount_bps() == 1000
        assert second.name == "Festival"

    def test_zero_is_allowed(self, admin_user):
        discount_service.set_global_discount(0, admin_user.id)
        assert discount_service.global_discount_bps() == 0

    @pytest.mark.parametrize("value", [-1, 10001, "ten", 12.5, True])
    def test_invalid_percentage(self, admin_user, value):
        with pytest.raises(ValidationError):
            discount_service.set_global_discount(value, admin_user.id)
        assert discount_service.get_active_discount() is None


class TestRules:
    def test_bounds(self, db_session):
        rule = discount_service.create_rule(
            {"min_amount_cents": 100000, "max_amount_cents": 500000, "percentage_bps": 500}
        )
        assert discount_service.match_rule(99999) is None
        assert discount_service.match_rule(100000).id == rule.id
        assert discount_service.match_rule(499999).id == rule.id
        assert discount_service.match_rule(500000) is None

    def test_zero_max_is_unbounded(self, db_session):
        rule = discount_service.create_rule({"min_amount_cents": 100000, "percentage_bps": 300})
        assert discount_service.match_rule(10_000_000).id == rule.id

    def test_overlap_prefers_highest_then_oldest(self, db_session):
        discount_service.create_rule({"min_amount_cents": 0, "percentage_bps": 200})
        best = discount_service.create_rule({"min_amount_cents": 1000, "percentage_bps": 700})
        discount_service.create_rule({"min_amount_cents": 500, "percentage_bps": 700})

        assert discount_service.match_rule(2000).id == best.id

    def test_inactive_rule_ignored(self, db_session):
        discount_service.create_rule({"min_amount_cents": 0, "percentage_bps": 900, "is_active": False})
        assert discount_service.match_rule(5000) is None

    def test_max_must_exceed_min(self, db_session):
        with pytest.raises(ValidationError):
            discount_service.create_rule({"min_amount_cents": 5000, "max_amount_cents": 5000, "percentage_bps": 100})

    def test_update_and_delete(self, db_session):
        rule = discount_service.create_rule({"min_amount_cents": 0, "percentage_bps": 100})

        updated = discount_service.update_rule(rule.id, {"percentage_bps": 250, "max_amount_cents": 9000})
        assert updated.percentage_bps == 250
        assert updated.max_amount_cents == 9000

        discount_service.delete_rule(rule.id)
        assert discount_service.list_rules() == []
        with pytest.raises(NotFoundError):
            discount_service.delete_rule(rule.id)


class TestResolve:
    def test_sources_reported_side_by_side(self, admin_user):
        discount_service.set_global_discount(1000, admin_user.id)
        customer = customer_service.create_customer(
            {"name": "Asha", "mobile": "9123456780", "discount_bps": 500}
        )

        candidates = discount_service.resolve(customer.id, 20000)

        assert candidates.global_bps == 1000
        assert candidates.customer_bps == 500
        assert candidates.rule_bps == 0
        assert candidates.rule_id is None
        assert candidates.to_dict()["customer_id"] == customer.id

    def test_rule_included(self, db_session):
        rule = discount_service.create_rule({"min_amount_cents": 10000, "percentage_bps": 400})
        candidates = discount_service.resolve(None, 15000)
        assert candidates.rule_bps == 400
        assert candidates.rule_id == rule.id
        assert candidates.customer_bps == 0

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            discount_service.resolve(999, 100)

    def test_customer_discount_update(self, db_session):
        customer = customer_service.create_customer({"name": "Dev", "mobile": "9000000001"})
        customer_service.update_customer_discount(customer.id, 750)
        assert discount_service.customer_discount_bps(customer.id) == 750

        with pytest.raises(ValidationError):
            customer_service.update_customer_discount(customer.id, 10001)
