# Overview: Append-only domain event log shared by inventory, transfer and order services.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
from tubex.time_utils import utcnow
"""
Ledger Invariants

- Append-only: events are never updated except for consumed_at, which the
  external consumer sets once it has processed the event.
- Events are written inside the same DB transaction as the change they
  record (flush, never commit, here).
- 'inventory.reorder_triggered' is the hand-off point to procurement; this
  service does not create purchase orders itself.
"""


REORDER_TRIGGERED = "inventory.reorder_triggered"


def append_ledger_event(
    *,
    company_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        company_id=company_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_unconsumed_events(event_type: str, *, company_id: int | None = None, limit: int = 100) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent).filter(
        LedgerEvent.event_type == event_type,
        LedgerEvent.consumed_at.is_(None),
    )
    if company_id is not None:
        q = q.filter(LedgerEvent.company_id == company_id)
    return q.order_by(LedgerEvent.occurred_at.asc(), LedgerEvent.id.asc()).limit(limit).all()


def mark_events_consumed(event_ids: list[int]) -> int:
    if not event_ids:
        return 0
    updated = (
        db.session.query(LedgerEvent)
        .filter(LedgerEvent.id.in_(event_ids), LedgerEvent.consumed_at.is_(None))
        .update({LedgerEvent.consumed_at: utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return int(updated or 0)
