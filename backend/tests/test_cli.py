# Overview: Pytest coverage for the Flask CLI command groups.

import json
from datetime import timedelta
from decimal import Decimal

import pytest

from tubex.models import Batch, Company, LedgerEvent, User
from tubex.services import inventory_service
from tubex.time_utils import today


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestCompaniesAndUsers:
    def test_create_and_list_company(self, runner, db_session):
        result = runner.invoke(args=["companies", "create", "--name", "Acme Supply", "--type", "supplier", "--active"])
        assert result.exit_code == 0
        assert "PASS Created company: Acme Supply" in result.output

        db_session.expire_all()
        company = db_session.query(Company).filter_by(name="Acme Supply").one()
        assert company.status == "active"

        listed = runner.invoke(args=["companies", "list"])
        assert "Acme Supply" in listed.output

    def test_create_user(self, runner, db_session, company_a):
        result = runner.invoke(args=[
            "users", "create",
            "--company-id", str(company_a.id),
            "--email", "ops@a.test",
            "--password", "Password123!",
            "--role", "manager",
        ])
        assert result.exit_code == 0
        db_session.expire_all()
        assert db_session.query(User).filter_by(email="ops@a.test").one().role == "manager"

    def test_weak_password_fails(self, runner, db_session, company_a):
        result = runner.invoke(args=[
            "users", "create",
            "--company-id", str(company_a.id),
            "--email", "weak@a.test",
            "--password", "weak",
            "--role", "staff",
        ])
        assert result.exit_code == 1
        assert "Password validation failed" in result.output


class TestIntegrityCommand:
    def test_clean_company_exits_zero(self, runner, db_session, company_a, inventory_a):
        result = runner.invoke(args=["integrity", "check", "--company-id", str(company_a.id)])
        assert result.exit_code == 0
        assert json.loads(result.output)["is_valid"] is True

    def test_errors_exit_one(self, runner, db_session, company_a, product_a):
        db_session.add(Batch(
            batch_number="ORPHAN",
            product_id=product_a.id,
            warehouse_id=999999,
            company_id=company_a.id,
            quantity=Decimal("1"),
        ))
        db_session.commit()

        result = runner.invoke(args=["integrity", "check", "--company-id", str(company_a.id)])
        assert result.exit_code == 1


class TestLedgerAndMaintenance:
    def test_reorders_listed_and_acknowledged(self, runner, db_session, company_a, inventory_a):
        inventory_service.adjust_inventory_quantity(inventory_a.id, company_a.id, Decimal("-85"), "Drain")

        result = runner.invoke(args=["ledger", "reorders", "--company-id", str(company_a.id), "--ack"])

        assert result.exit_code == 0
        assert "inventory.reorder_triggered" in result.output
        assert "PASS Marked 1 event(s) consumed" in result.output

        db_session.expire_all()
        pending = db_session.query(LedgerEvent).filter(
            LedgerEvent.event_type == "inventory.reorder_triggered",
            LedgerEvent.consumed_at.is_(None),
        ).count()
        assert pending == 0

    def test_retire_expired_batches(self, runner, db_session, company_a, inventory_a):
        db_session.add(Batch(
            batch_number="STALE",
            product_id=inventory_a.product_id,
            warehouse_id=inventory_a.warehouse_id,
            company_id=company_a.id,
            quantity=Decimal("5"),
            expiry_date=today() - timedelta(days=1),
        ))
        db_session.commit()

        result = runner.invoke(args=["maintenance", "retire-expired-batches", "--company-id", str(company_a.id)])

        assert result.exit_code == 0
        assert "PASS Marked 1 batch(es) expired" in result.output

    def test_cleanup_security_events(self, runner, db_session):
        result = runner.invoke(args=["maintenance", "cleanup-security-events", "--retention-days", "30"])
        assert result.exit_code == 0
        assert "PASS Deleted 0 security event(s)" in result.output
