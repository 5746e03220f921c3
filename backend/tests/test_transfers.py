# Overview: Pytest coverage for warehouse-to-warehouse stock transfers.

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import false

from tubex.errors import InsufficientStock, NotFound, TransactionConflict, ValidationError
from tubex.models import Batch, Inventory, LedgerEvent
from tubex.services import transfer_service
from tubex.services.concurrency import run_with_retry
from tubex.services.transfer_service import transfer_stock
from tubex.time_utils import today

from conftest import make_inventory


def quantities(session, *rows):
    session.expire_all()
    return [session.get(Inventory, row.id).quantity for row in rows]


class TestTransferStock:
    def test_transfer_creates_target_and_conserves_total(
        self, db_session, company_a, warehouse_a1, warehouse_a2, product_a
    ):
        """Source 50, no target row: 20 moves, source 30, target 20."""
        source = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="50")

        result = transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 20)

        target = db_session.query(Inventory).filter_by(
            product_id=product_a.id, warehouse_id=warehouse_a2.id, company_id=company_a.id
        ).one()
        assert result.target.id == target.id
        assert quantities(db_session, source, target) == [Decimal("30.00"), Decimal("20.00")]
        assert target.unit == source.unit

    def test_transfer_into_existing_row(self, db_session, company_a, warehouse_a1, warehouse_a2, product_a):
        source = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="50")
        target = make_inventory(db_session, company_a, warehouse_a2, product_a, quantity="7")

        transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, "12.5")

        assert quantities(db_session, source, target) == [Decimal("37.50"), Decimal("19.50")]

    def test_shortfall_writes_nothing(self, db_session, company_a, warehouse_a1, warehouse_a2, product_a):
        source = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="10")

        with pytest.raises(InsufficientStock):
            transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 11)

        assert quantities(db_session, source) == [Decimal("10.00")]
        assert db_session.query(Inventory).filter_by(warehouse_id=warehouse_a2.id).count() == 0
        assert db_session.query(LedgerEvent).count() == 0

    def test_missing_source_row_is_shortfall(self, db_session, company_a, warehouse_a1, warehouse_a2, product_a):
        with pytest.raises(InsufficientStock):
            transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 1)

    def test_same_warehouse_rejected(self, db_session, company_a, warehouse_a1, product_a):
        with pytest.raises(ValidationError):
            transfer_stock(company_a.id, warehouse_a1.id, warehouse_a1.id, product_a.id, 1)

    def test_foreign_target_warehouse_not_found(
        self, db_session, company_a, warehouse_a1, warehouse_b1, product_a
    ):
        source = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="10")

        with pytest.raises(NotFound, match="Warehouse not found or access denied"):
            transfer_stock(company_a.id, warehouse_a1.id, warehouse_b1.id, product_a.id, 5)

        assert quantities(db_session, source) == [Decimal("10.00")]

    def test_foreign_product_not_found(
        self, db_session, company_a, warehouse_a1, warehouse_a2, product_b
    ):
        make_inventory(db_session, company_a, warehouse_a1, product_b, quantity="10")
        with pytest.raises(NotFound, match="Product not found or access denied"):
            transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_b.id, 5)

    def test_named_batches_follow_the_stock(
        self, db_session, company_a, warehouse_a1, warehouse_a2, product_a
    ):
        make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="30")
        for number in ("LOT-1", "LOT-2"):
            db_session.add(Batch(
                batch_number=number,
                product_id=product_a.id,
                warehouse_id=warehouse_a1.id,
                company_id=company_a.id,
                quantity=Decimal("15"),
                expiry_date=today() + timedelta(days=30),
            ))
        db_session.commit()

        result = transfer_stock(
            company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 15, batch_numbers=["LOT-1"]
        )

        assert [b.batch_number for b in result.moved_batches] == ["LOT-1"]
        db_session.expire_all()
        assert db_session.query(Batch).filter_by(batch_number="LOT-1").one().warehouse_id == warehouse_a2.id
        assert db_session.query(Batch).filter_by(batch_number="LOT-2").one().warehouse_id == warehouse_a1.id

    def test_unknown_batch_aborts_transfer(self, db_session, company_a, warehouse_a1, warehouse_a2, product_a):
        source = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="30")

        with pytest.raises(NotFound):
            transfer_stock(
                company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 5, batch_numbers=["MISSING"]
            )

        assert quantities(db_session, source) == [Decimal("30.00")]

    def test_transfer_is_recorded_in_ledger(self, db_session, company_a, user_a, warehouse_a1, warehouse_a2, product_a):
        make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="30")
        transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 5, actor_user_id=user_a.id)

        event = db_session.query(LedgerEvent).filter_by(event_type="inventory.transferred").one()
        assert event.actor_user_id == user_a.id
        assert event.payload["quantity"] == "5.00"
        assert event.payload["target_warehouse_id"] == warehouse_a2.id


class TestConcurrentTargetCreation:
    def test_losing_the_target_insert_race_is_retryable(
        self, db_session, monkeypatch, company_a, warehouse_a1, warehouse_a2, product_a
    ):
        """Another transfer inserts the target row after ours saw none."""
        source = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="50")
        real_lock = transfer_service.lock_for_update
        calls = []

        def lock_then_lose_race(query):
            calls.append(1)
            if len(calls) == 2:
                db_session.add(Inventory(
                    product_id=product_a.id,
                    warehouse_id=warehouse_a2.id,
                    company_id=company_a.id,
                    quantity=Decimal("0"),
                ))
                db_session.flush()
                return real_lock(query).filter(false())
            return real_lock(query)

        monkeypatch.setattr(transfer_service, "lock_for_update", lock_then_lose_race)

        with pytest.raises(TransactionConflict):
            transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 20)
        assert quantities(db_session, source) == [Decimal("50.00")]

        result = run_with_retry(
            lambda: transfer_stock(company_a.id, warehouse_a1.id, warehouse_a2.id, product_a.id, 20),
            backoff_base=0,
        )
        assert quantities(db_session, source, result.target) == [Decimal("30.00"), Decimal("20.00")]
