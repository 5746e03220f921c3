# Overview: Pytest coverage for the data integrity validator.

"""
Integrity Validator Tests

SQLite does not enforce foreign keys by default, which lets these tests
plant the orphaned and cross-company rows the validator must find.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from tubex.errors import DuplicateBatchNumber, IntegrityViolation, NotFound
from tubex.models import Batch, Invoice, Order, Payment
from tubex.services import integrity_service
from tubex.services.store import Repositories, Repository
from tubex.time_utils import today

from conftest import make_inventory


def add_batch(session, company, warehouse_id, product, number, quantity="10", status="active"):
    batch = Batch(
        batch_number=number,
        product_id=product.id,
        warehouse_id=warehouse_id,
        company_id=company.id,
        quantity=Decimal(quantity),
        expiry_date=today() + timedelta(days=30),
        status=status,
    )
    session.add(batch)
    session.commit()
    return batch


def add_order(session, company, warehouse):
    order = Order(company_id=company.id, warehouse_id=warehouse.id)
    session.add(order)
    session.commit()
    return order


class TestPointChecks:
    def test_batch_ownership(self, db_session, company_a, company_b, warehouse_a1, warehouse_b1, product_a):
        good = add_batch(db_session, company_a, warehouse_a1.id, product_a, "GOOD")
        misplaced = add_batch(db_session, company_a, warehouse_b1.id, product_a, "MISPLACED")

        assert integrity_service.validate_batch_ownership(good.id, company_a.id).id == good.id
        with pytest.raises(IntegrityViolation):
            integrity_service.validate_batch_ownership(good.id, company_b.id)
        with pytest.raises(IntegrityViolation, match="another company"):
            integrity_service.validate_batch_ownership(misplaced.id, company_a.id)
        with pytest.raises(NotFound):
            integrity_service.validate_batch_ownership(999999, company_a.id)

    def test_payment_ownership(self, db_session, company_a, company_b, warehouse_a1, warehouse_b1):
        own_order = add_order(db_session, company_a, warehouse_a1)
        foreign_order = add_order(db_session, company_b, warehouse_b1)
        good = Payment(company_id=company_a.id, order_id=own_order.id, amount=Decimal("5"))
        crossed = Payment(company_id=company_a.id, order_id=foreign_order.id, amount=Decimal("5"))
        db_session.add_all([good, crossed])
        db_session.commit()

        assert integrity_service.validate_payment_ownership(good.id, company_a.id).id == good.id
        with pytest.raises(IntegrityViolation, match="another company"):
            integrity_service.validate_payment_ownership(crossed.id, company_a.id)

    def test_inventory_relationships(self, db_session, company_a, warehouse_a1, warehouse_b1, product_a):
        good = make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="1")
        crossed = make_inventory(db_session, company_a, warehouse_b1, product_a, quantity="1")

        assert integrity_service.validate_inventory_relationships(good.id, company_a.id).id == good.id
        with pytest.raises(IntegrityViolation):
            integrity_service.validate_inventory_relationships(crossed.id, company_a.id)

    def test_unique_batch_number(self, db_session, company_a, company_b, warehouse_a1, product_a):
        existing = add_batch(db_session, company_a, warehouse_a1.id, product_a, "LOT-1")

        with pytest.raises(DuplicateBatchNumber):
            integrity_service.validate_unique_batch_number("LOT-1", company_a.id)
        integrity_service.validate_unique_batch_number("LOT-1", company_b.id)
        integrity_service.validate_unique_batch_number("LOT-1", company_a.id, exclude_batch_id=existing.id)


class TestBatchInventoryConsistency:
    def test_consistent_within_tolerance(self, db_session, company_a, warehouse_a1, product_a):
        make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="30")
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "L1", quantity="20")
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "L2", quantity="10")
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "DONE", quantity="0", status="depleted")

        result = integrity_service.validate_batch_inventory_consistency(product_a.id, warehouse_a1.id, company_a.id)
        assert result["is_consistent"] is True
        assert result["batch_total"] == Decimal("30.00")

    def test_discrepancy_reported_and_repeatable(self, db_session, company_a, warehouse_a1, product_a):
        """Reconciliation is read-only: running it twice gives the same answer."""
        make_inventory(db_session, company_a, warehouse_a1, product_a, quantity="30")
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "L1", quantity="29.99")

        first = integrity_service.validate_batch_inventory_consistency(product_a.id, warehouse_a1.id, company_a.id)
        second = integrity_service.validate_batch_inventory_consistency(product_a.id, warehouse_a1.id, company_a.id)

        assert first == second
        assert first["is_consistent"] is False
        assert first["discrepancy"] == Decimal("0.01")

    def test_no_inventory_row(self, db_session, company_a, warehouse_a1, product_a):
        result = integrity_service.validate_batch_inventory_consistency(product_a.id, warehouse_a1.id, company_a.id)
        assert result["is_consistent"] is True

        add_batch(db_session, company_a, warehouse_a1.id, product_a, "STRAY", quantity="1")
        result = integrity_service.validate_batch_inventory_consistency(product_a.id, warehouse_a1.id, company_a.id)
        assert result["is_consistent"] is False


class TestComprehensiveCheck:
    def test_clean_company(self, db_session, company_a, inventory_a, warehouse_a1, product_a):
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "L1")
        report = integrity_service.run_comprehensive_integrity_check(Repositories.for_session(), company_a.id)
        assert report["is_valid"] is True
        assert report["errors"] == []
        assert report["warnings"] == []

    def test_finds_orphans_and_cross_company_links(
        self, db_session, company_a, company_b, warehouse_a1, warehouse_b1, product_a
    ):
        add_batch(db_session, company_a, 999999, product_a, "ORPHAN")
        add_batch(db_session, company_a, warehouse_b1.id, product_a, "ELSEWHERE")
        make_inventory(db_session, company_a, warehouse_b1, product_a, quantity="3")

        foreign_invoice = Invoice(company_id=company_b.id, amount=Decimal("9"))
        db_session.add(foreign_invoice)
        db_session.commit()
        db_session.add_all([
            Payment(company_id=company_a.id, order_id=888888, amount=Decimal("1")),
            Payment(company_id=company_a.id, invoice_id=foreign_invoice.id, amount=Decimal("1")),
        ])
        db_session.commit()

        report = integrity_service.run_comprehensive_integrity_check(Repositories.for_session(), company_a.id)

        assert report["is_valid"] is False
        joined = "\n".join(report["errors"])
        assert "1 batches referencing a missing warehouse or product" in joined
        assert "1 payments referencing a missing order or invoice" in joined
        assert "orphaned" not in joined
        assert "1 inventory records in warehouses of another company" in joined
        assert "1 batches in warehouses of another company" in joined
        assert "1 payments linked to another company" in joined

    def test_rows_of_deleted_company_are_orphans(self, db_session, company_a, warehouse_a1, product_a):
        missing_company_id = 424242
        batch = Batch(
            batch_number="LEFTOVER",
            product_id=product_a.id,
            warehouse_id=warehouse_a1.id,
            company_id=missing_company_id,
            quantity=Decimal("4"),
        )
        payment = Payment(company_id=missing_company_id, amount=Decimal("12"))
        db_session.add_all([batch, payment])
        db_session.commit()

        report = integrity_service.run_comprehensive_integrity_check(Repositories.for_session(), missing_company_id)

        assert report["is_valid"] is False
        assert f"Found 1 orphaned batches: [{batch.id}]" in report["errors"]
        assert f"Found 1 orphaned payments: [{payment.id}]" in report["errors"]

    def test_other_company_data_not_reported(self, db_session, company_a, company_b, warehouse_b1, product_b):
        add_batch(db_session, company_b, 999999, product_b, "B-ORPHAN")
        report = integrity_service.run_comprehensive_integrity_check(Repositories.for_session(), company_a.id)
        assert report["is_valid"] is True

    def test_volume_warnings(self, app, db_session, monkeypatch, company_a, warehouse_a1, product_a):
        monkeypatch.setitem(app.config, "INTEGRITY_BATCH_WARN_THRESHOLD", 1)
        monkeypatch.setitem(app.config, "INTEGRITY_PAYMENT_WARN_THRESHOLD", 0)
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "L1")
        add_batch(db_session, company_a, warehouse_a1.id, product_a, "L2")
        db_session.add(Payment(company_id=company_a.id, amount=Decimal("1")))
        db_session.commit()

        report = integrity_service.run_comprehensive_integrity_check(Repositories.for_session(), company_a.id)

        assert report["is_valid"] is True
        assert any("batches (2)" in w for w in report["warnings"])
        assert any("payments (1)" in w for w in report["warnings"])

    def test_failing_query_becomes_an_error(self, db_session, company_a):
        class BrokenRepository(Repository):
            def query(self):
                raise RuntimeError("connection reset")

        repositories = Repositories.for_session()
        repositories.batch = BrokenRepository(Batch)

        report = integrity_service.run_comprehensive_integrity_check(repositories, company_a.id)

        assert report["is_valid"] is False
        assert "connection reset" in report["errors"][0]
