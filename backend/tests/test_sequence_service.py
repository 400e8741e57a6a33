"""
Sequence allocation tests.

Verifies:
- Bill/order/employee identifier formats
- Counter seeding from existing rows
- Rolled-back callers do not consume numbers
- Resync after a collision
"""

import re

import pytest

from shopledger.errors import ValidationError
from shopledger.extensions import db
from shopledger.models import Bill, SequenceCounter
from shopledger.services import sequence_service
from shopledger.time_utils import date_stamp


BILL_RE = re.compile(r"^B-\d{8}-\d{5}$")
ORDER_RE = re.compile(r"^ORD-\d{8}-\d{5}$")


def _insert_bill(bill_no: str, user_id: int) -> Bill:
    bill = Bill(
        bill_no=bill_no,
        user_id=user_id,
        total_amount_cents=0,
        net_payable_cents=0,
        payment_mode="CASH",
        status="PAID",
    )
    db.session.add(bill)
    db.session.commit()
    return bill


class TestFormats:
    def test_bill_numbers_are_dated_and_padded(self, db_session, app):
        spec = sequence_service.bill_sequence()
        first = sequence_service.next_identifier(spec)
        second = sequence_service.next_identifier(spec)
        db.session.commit()

        assert BILL_RE.match(first)
        assert first == f"B-{date_stamp()}-00001"
        assert second == f"B-{date_stamp()}-00002"

    def test_order_numbers_use_order_prefix(self, db_session, app):
        order_no = sequence_service.next_identifier(sequence_service.order_sequence())
        db.session.commit()
        assert ORDER_RE.match(order_no)
        assert order_no.endswith("-00001")

    def test_employee_ids_follow_role_prefix(self, setup_roles):
        spec = sequence_service.employee_sequence("biller")
        assert sequence_service.next_identifier(spec) == "BIL001"
        assert sequence_service.next_identifier(spec) == "BIL002"
        db.session.commit()

    def test_wide_numbers_are_not_truncated(self, app):
        spec = sequence_service.bill_sequence()
        assert spec.format(123456, "20240101") == "B-20240101-123456"
        assert sequence_service.employee_sequence("admin").format(1234) == "ADM1234"

    def test_unknown_role_rejected(self, app):
        with pytest.raises(ValidationError):
            sequence_service.employee_sequence("janitor")

    def test_parse_ignores_foreign_identifiers(self, app):
        spec = sequence_service.bill_sequence()
        assert spec.parse("B-20240101-00042") == 42
        assert spec.parse("ORD-20240101-00042") is None
        assert spec.parse("B-2024-01") is None


class TestCounter:
    def test_counter_seeds_from_latest_existing_row(self, admin_user):
        _insert_bill("B-20240101-00041", admin_user.id)

        bill_no = sequence_service.next_identifier(sequence_service.bill_sequence())
        db.session.commit()

        assert bill_no.endswith("-00042")

    def test_rollback_does_not_consume_number(self, db_session, app):
        spec = sequence_service.bill_sequence()
        sequence_service.next_identifier(spec)
        db.session.commit()

        discarded = sequence_service.next_identifier(spec)
        db.session.rollback()
        reused = sequence_service.next_identifier(spec)
        db.session.commit()

        assert discarded == reused

    def test_peek_does_not_advance(self, db_session, app):
        spec = sequence_service.bill_sequence()
        preview = sequence_service.peek_next_identifier(spec)
        assert db.session.query(SequenceCounter).count() == 0

        allocated = sequence_service.next_identifier(spec)
        db.session.commit()
        assert preview == allocated

    def test_resync_moves_past_collision(self, admin_user):
        spec = sequence_service.bill_sequence()
        sequence_service.next_identifier(spec)
        db.session.commit()
        taken = f"B-{date_stamp()}-00007"
        _insert_bill(taken, admin_user.id)

        value = sequence_service.resync_counter(spec, taken)

        assert value == 8
        assert sequence_service.next_identifier(spec).endswith("-00008")
        db.session.commit()

    def test_resync_never_moves_backwards(self, db_session, app):
        spec = sequence_service.bill_sequence()
        for _ in range(5):
            sequence_service.next_identifier(spec)
        db.session.commit()

        assert sequence_service.resync_counter(spec) == 6
