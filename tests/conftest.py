"""
Shared pytest fixtures for the FieldOps workflow core test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant entities
    - worker / second_worker / manager: Users of ``tenant``
    - customer: Client of ``tenant`` with one service address
    - headers: Gateway identity headers for ``tenant`` acting as ``manager``
    - frozen_clock: Pins ``fieldops.core.clock.utcnow``
"""

from datetime import datetime, timedelta, timezone

import pytest

from fieldops import create_app
from fieldops.core import clock
from fieldops.models import db as _db
from fieldops.models.tenant import Client, ClientAddress, Tenant, User


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


def _make_tenant(name="Acme Plumbing", slug="acme-plumbing", is_active=True) -> Tenant:
    t = Tenant(name=name, slug=slug, is_active=is_active)
    _db.session.add(t)
    _db.session.commit()
    return t


def _make_user(tenant, email, full_name="Field Worker", role="worker") -> User:
    u = User(tenant_id=tenant.id, email=email, full_name=full_name, role=role)
    _db.session.add(u)
    _db.session.commit()
    return u


def _make_client(tenant, company_name="Harbor Cafe", with_address=True) -> Client:
    c = Client(tenant_id=tenant.id, company_name=company_name, email="owner@example.com")
    if with_address:
        c.addresses.append(ClientAddress(street="1 Dock St", city="Portland", is_primary=True))
    _db.session.add(c)
    _db.session.commit()
    return c


@pytest.fixture()
def tenant():
    return _make_tenant()


@pytest.fixture()
def other_tenant():
    return _make_tenant(name="Rival HVAC", slug="rival-hvac")


@pytest.fixture()
def worker(tenant):
    return _make_user(tenant, "ana@acme.test", full_name="Ana Field")


@pytest.fixture()
def second_worker(tenant):
    return _make_user(tenant, "ben@acme.test", full_name="Ben Field")


@pytest.fixture()
def manager(tenant):
    return _make_user(tenant, "mo@acme.test", full_name="Mo Dispatch", role="manager")


@pytest.fixture()
def customer(tenant):
    return _make_client(tenant)


@pytest.fixture()
def headers(tenant, manager):
    return {"X-Tenant-ID": str(tenant.id), "X-User-ID": str(manager.id)}


class FrozenClock:
    """Callable stand-in for ``clock.utcnow``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def frozen_clock(monkeypatch):
    fc = FrozenClock(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(clock, "utcnow", fc)
    return fc
