# Overview: Pytest coverage for security event logging and its failure policy.

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tubex.models import SecurityEvent
from tubex.services import security_service
from tubex.services.tenant_service import Principal
from tubex.time_utils import utcnow


def _broken_write(**kwargs):
    raise OperationalError("INSERT INTO security_events", {}, Exception("disk I/O error"))


class TestRecordRequestEvent:
    def test_captures_request_and_principal(self, app, db_session, user_a, company_a):
        principal = Principal(id=user_a.id, company_id=company_a.id, role="admin", email=user_a.email)

        with app.test_request_context(
            "/api/companies/1/transfers",
            method="POST",
            headers={"User-Agent": "pytest-agent"},
            environ_base={"REMOTE_ADDR": "10.0.0.7"},
        ):
            event = security_service.record_request_event(
                "STOCK_TRANSFERRED", details={"note": "x"}, principal=principal
            )

        assert event.user_id == user_a.id
        assert event.company_id == company_a.id
        assert event.user_role == "admin"
        assert event.action == "POST"
        assert event.resource.endswith("/api/companies/1/transfers")
        assert event.ip_address == "10.0.0.7"
        assert event.user_agent == "pytest-agent"
        assert event.details == {"note": "x"}
        assert event.occurred_at is not None

    def test_write_failure_is_swallowed_by_default(self, app, db_session, monkeypatch, caplog):
        monkeypatch.setattr(security_service, "log_security_event", _broken_write)

        with app.test_request_context("/anything"):
            assert security_service.record_request_event("SOMETHING") is None

        assert "Failed to write security audit event SOMETHING" in caplog.text

    def test_write_failure_fails_closed_when_configured(self, app, db_session, monkeypatch):
        monkeypatch.setattr(security_service, "log_security_event", _broken_write)
        monkeypatch.setitem(app.config, "AUDIT_FAIL_CLOSED", True)

        with app.test_request_context("/anything"):
            with pytest.raises(OperationalError):
                security_service.record_request_event("SOMETHING")

    def test_outside_request_context(self, db_session):
        event = security_service.record_request_event("BACKGROUND", success=False, reason="cli")
        assert event.resource is None
        assert event.user_id is None


class TestAuditDecorator:
    def test_audited_route_records_event(self, client, headers_a, db_session, company_a, inventory_a, user_a):
        response = client.post(
            f"/api/companies/{company_a.id}/inventory/{inventory_a.id}/adjust",
            json={"adjustment": "-1", "reason": "Audit me"},
            headers={**headers_a, "User-Agent": "audit-test"},
        )
        assert response.status_code == 200

        event = db_session.query(SecurityEvent).filter_by(event_type="INVENTORY_ADJUSTED").one()
        assert event.user_id == user_a.id
        assert event.company_id == company_a.id
        assert event.user_agent == "audit-test"
        assert event.details["route_args"]["inventory_id"] == inventory_a.id

    def test_audit_failure_does_not_block_route(self, client, monkeypatch, headers_a, company_a, inventory_a):
        monkeypatch.setattr(security_service, "log_security_event", _broken_write)

        response = client.post(
            f"/api/companies/{company_a.id}/inventory/{inventory_a.id}/adjust",
            json={"adjustment": "-1", "reason": "Still works"},
            headers=headers_a,
        )
        assert response.status_code == 200
        assert response.json["inventory"]["quantity"] == "99.00"


class TestEventQueriesAndRetention:
    def test_list_and_cleanup(self, db_session, company_a, company_b):
        old = security_service.log_security_event(event_type="OLD", success=True, company_id=company_a.id)
        old.occurred_at = utcnow() - timedelta(days=120)
        db_session.commit()
        security_service.log_security_event(event_type="NEW", success=True, company_id=company_a.id)
        security_service.log_security_event(event_type="OTHER", success=True, company_id=company_b.id)

        assert [e.event_type for e in security_service.list_company_events(company_a.id)] == ["NEW", "OLD"]
        assert security_service.cleanup_security_events(90) == 1
        assert [e.event_type for e in security_service.list_company_events(company_a.id)] == ["NEW"]

    def test_retention_must_be_positive(self, db_session):
        with pytest.raises(ValueError):
            security_service.cleanup_security_events(0)
