from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SequenceCounter(db.Model):
    """
    Atomic per-namespace identifier counter (bills, orders, employee ids).

    WHY: Deriving the next number from "last row + 1" races between
    concurrent writers. The counter row is advanced with a conditional UPDATE
    inside the caller's transaction, so a rolled-back sale never burns a number.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("namespace", name="uq_sequence_counters_namespace"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    namespace = db.Column(db.String(64), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "namespace": self.namespace,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
