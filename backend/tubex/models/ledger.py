from __future__ import annotations

from ..extensions import db
from tubex.time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only domain event log.

    Events are written inside the same DB transaction as the change they
    record. External consumers (e.g. procurement for
    'inventory.reorder_triggered') read from this table.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_company_occurred", "company_id", "occurred_at"),
        db.Index("ix_ledger_events_type_consumed", "event_type", "consumed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "consumed_at": to_utc_z(self.consumed_at),
            "note": self.note,
            "payload": self.payload,
        }
