# Overview: Pytest coverage for per-company rate limiting.

import pytest

from tubex.models import SecurityEvent
from tubex.services.rate_limit_service import (
    CompanyRateLimiter,
    DatabaseRateLimitStore,
    InMemoryRateLimitStore,
    build_store,
)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(params=["memory", "database"])
def store(request, db_session):
    if request.param == "memory":
        return InMemoryRateLimitStore()
    return DatabaseRateLimitStore()


class TestCompanyRateLimiter:
    def test_allows_up_to_limit_then_denies(self, store):
        clock = FakeClock()
        limiter = CompanyRateLimiter(3, 60, store=store, clock=clock)

        decisions = [limiter.hit(1) for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions[:3]] == [2, 1, 0]
        assert 0 < decisions[3].retry_after <= 60

    def test_companies_are_counted_separately(self, store):
        limiter = CompanyRateLimiter(1, 60, store=store, clock=FakeClock())
        assert limiter.hit(1).allowed
        assert limiter.hit(2).allowed
        assert not limiter.hit(1).allowed

    def test_window_resets_after_expiry(self, store):
        """Fixed window: the count resets only once the window has passed."""
        clock = FakeClock()
        limiter = CompanyRateLimiter(2, 60, store=store, clock=clock)
        limiter.hit(7)
        limiter.hit(7)

        clock.advance(30)
        assert not limiter.hit(7).allowed

        clock.advance(31)
        decision = limiter.hit(7)
        assert decision.allowed
        assert decision.remaining == 1

    def test_reset_clears_counters(self, store):
        limiter = CompanyRateLimiter(1, 60, store=store, clock=FakeClock())
        limiter.hit(3)
        assert not limiter.hit(3).allowed

        store.reset()

        assert limiter.hit(3).allowed

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            CompanyRateLimiter(0, 60)
        with pytest.raises(ValueError):
            CompanyRateLimiter(1, 0)

    def test_build_store(self, db_session):
        assert isinstance(build_store("memory"), InMemoryRateLimitStore)
        assert isinstance(build_store("database"), DatabaseRateLimitStore)
        with pytest.raises(ValueError):
            build_store("redis")


class TestRateLimitDecorator:
    def test_exceeding_limit_returns_429_and_is_audited(
        self, app, client, monkeypatch, headers_a, company_a, warehouse_a1, db_session
    ):
        monkeypatch.setitem(app.config, "RATE_LIMIT_MAX_REQUESTS", 2)
        url = f"/api/companies/{company_a.id}/warehouses/{warehouse_a1.id}"

        assert client.get(url, headers=headers_a).status_code == 200
        assert client.get(url, headers=headers_a).status_code == 200
        response = client.get(url, headers=headers_a)

        assert response.status_code == 429
        assert response.json["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) >= 1

        event = db_session.query(SecurityEvent).filter_by(event_type="RATE_LIMITED").one()
        assert event.company_id == company_a.id
        assert event.success is False

    def test_limit_is_per_company(
        self, app, client, monkeypatch, headers_a, headers_b, company_a, company_b, warehouse_a1, warehouse_b1
    ):
        monkeypatch.setitem(app.config, "RATE_LIMIT_MAX_REQUESTS", 1)

        assert client.get(f"/api/companies/{company_a.id}/warehouses/{warehouse_a1.id}", headers=headers_a).status_code == 200
        assert client.get(f"/api/companies/{company_b.id}/warehouses/{warehouse_b1.id}", headers=headers_b).status_code == 200
        assert client.get(f"/api/companies/{company_a.id}/warehouses/{warehouse_a1.id}", headers=headers_a).status_code == 429
