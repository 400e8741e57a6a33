# Overview: Human-readable identifier allocation for bills, orders and employees.

from __future__ import annotations

import re
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update

from ..errors import ValidationError
from ..extensions import db
from ..models import Bill, CustomerOrder, SequenceCounter, User
from ..time_utils import date_stamp
from .concurrency import begin_write, flush_unique, run_with_retry


# Rows scanned (newest first) when looking for the last issued identifier
_SCAN_LIMIT = 50

ROLE_PREFIX_KEYS = {
    "admin": "ADMIN_PREFIX",
    "manager": "MANAGER_PREFIX",
    "inventory": "INVENTORY_PREFIX",
    "biller": "BILLER_PREFIX",
}


@dataclass(frozen=True)
class SequenceSpec:
    """
    One identifier namespace.

    dated=True  -> "<prefix>-YYYYMMDD-<n padded to pad>"  (bills, orders)
    dated=False -> "<prefix><n padded to pad>"            (employee ids)

    The counter is shared across days; the date only records when the number
    was allocated.
    """
    namespace: str
    prefix: str
    pad: int
    dated: bool
    model: type
    column: str

    def format(self, number: int, stamp: str | None = None) -> str:
        # Padding is a minimum width; wider numbers are never truncated
        digits = f"{number:0{self.pad}d}"
        if self.dated:
            return f"{self.prefix}-{stamp or date_stamp()}-{digits}"
        return f"{self.prefix}{digits}"

    def parse(self, identifier: str | None) -> int | None:
        """Trailing number of an identifier issued in this namespace, else None."""
        if not identifier:
            return None
        if self.dated:
            pattern = rf"^{re.escape(self.prefix)}-\d{{8}}-(\d+)$"
        else:
            pattern = rf"^{re.escape(self.prefix)}(\d+)$"
        match = re.match(pattern, identifier)
        return int(match.group(1)) if match else None

    @property
    def like_pattern(self) -> str:
        return f"{self.prefix}-%" if self.dated else f"{self.prefix}%"


def bill_sequence() -> SequenceSpec:
    prefix = current_app.config.get("BILL_PREFIX", "B")
    return SequenceSpec(f"BILL:{prefix}", prefix, 5, True, Bill, "bill_no")


def order_sequence() -> SequenceSpec:
    prefix = current_app.config.get("ORDER_PREFIX", "ORD")
    return SequenceSpec(f"ORDER:{prefix}", prefix, 5, True, CustomerOrder, "order_no")


def employee_sequence(role_name: str) -> SequenceSpec:
    key = ROLE_PREFIX_KEYS.get((role_name or "").strip().lower())
    if not key:
        raise ValidationError(f"Unknown role: {role_name}", details={"field": "role"})
    prefix = current_app.config[key]
    return SequenceSpec(f"EMPLOYEE:{prefix}", prefix, 3, False, User, "employee_id")


def highest_existing_number(spec: SequenceSpec) -> int:
    """
    Suffix of the most recently inserted identifier in this namespace.

    Rows are ordered by surrogate id; identifiers that do not match the
    namespace format are skipped.
    """
    column = getattr(spec.model, spec.column)
    rows = (
        db.session.query(column)
        .filter(column.like(spec.like_pattern))
        .order_by(spec.model.id.desc())
        .limit(_SCAN_LIMIT)
        .all()
    )
    for (identifier,) in rows:
        number = spec.parse(identifier)
        if number is not None:
            return number
    return 0


def _counter_value(namespace: str) -> int | None:
    return (
        db.session.query(SequenceCounter.next_number)
        .filter_by(namespace=namespace)
        .scalar()
    )


def next_identifier(spec: SequenceSpec) -> str:
    """
    Allocate the next identifier inside the caller's transaction.

    The counter row is advanced with a conditional UPDATE; on first use it is
    seeded from the highest identifier already stored. Nothing is committed
    here, so a rolled-back caller does not consume the number.
    """
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.namespace == spec.namespace)
        .values(next_number=SequenceCounter.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        number = _counter_value(spec.namespace) - 1
    else:
        number = highest_existing_number(spec) + 1
        db.session.add(SequenceCounter(namespace=spec.namespace, next_number=number + 1))
        # A concurrent seeder won; the whole transaction is retried
        flush_unique(spec.namespace, "sequence_counters", "namespace")

    return spec.format(number)


def peek_next_identifier(spec: SequenceSpec) -> str:
    """Identifier the next allocation would produce. Read-only."""
    current = _counter_value(spec.namespace)
    if current is None:
        current = highest_existing_number(spec) + 1
    return spec.format(current)


def resync_counter(spec: SequenceSpec, collided: str | None = None) -> int:
    """
    Move the counter past every identifier known to be taken.

    Called after a unique violation on insert. Runs and commits its own
    transaction; returns the counter's new next_number.
    """
    def _op() -> int:
        begin_write()
        target = highest_existing_number(spec) + 1
        collided_number = spec.parse(collided)
        if collided_number is not None:
            target = max(target, collided_number + 1)

        counter = db.session.query(SequenceCounter).filter_by(namespace=spec.namespace).first()
        if counter is None:
            counter = SequenceCounter(namespace=spec.namespace, next_number=target)
            db.session.add(counter)
        elif counter.next_number < target:
            counter.next_number = target
        value = counter.next_number
        db.session.commit()
        current_app.logger.warning("Resynced sequence %s to %s", spec.namespace, value)
        return value

    return run_with_retry(_op)


def collision_handler(spec: SequenceSpec):
    """on_collision callback for run_with_identifier_retry."""
    def _resync(exc) -> None:
        resync_counter(spec, getattr(exc, "identifier", None))
    return _resync
