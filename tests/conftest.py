"""Shared fixtures: in-memory database, stores and network fakes."""

from datetime import datetime, timedelta

import pytest
import requests

from mailshield.modules.email_blocking import ListStore
from mailshield.modules.email_database import DatabaseHandler
from mailshield.modules.tenant_config import TenantConfigStore
from mailshield.services.audit import MemoryAuditSink
from mailshield.services.policy_engine import PolicyEngine, PolicyStore


class FakeResponse:
    def __init__(self, status_code=200, location=None):
        self.status_code = status_code
        self.headers = {'Location': location} if location else {}


class FakeSession:
    """
    Stands in for requests.Session in redirect/SSL checks.

    routes maps URL -> (status, location) or an exception instance to raise.
    Unknown URLs answer 200.
    """

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def head(self, url, **kwargs):
        self.calls.append(url)
        route = self.routes.get(url, (200, None))
        if isinstance(route, Exception):
            raise route
        status, location = route
        return FakeResponse(status, location)


class FakeReputation:
    """Returns a fixed reputation result for every target"""

    def __init__(self, risk_level='low', indicators=None, domain_age_days=None):
        self.risk_level = risk_level
        self.indicators = indicators or []
        self.domain_age_days = domain_age_days
        self.calls = []

    def check_reputation(self, target):
        self.calls.append(target)
        return {
            'target': target,
            'domain': target,
            'risk_level': self.risk_level,
            'risk_score': 0.1,
            'indicators': list(self.indicators),
            'sources': {'fake_feed': {'risk_level': self.risk_level, 'indicators': list(self.indicators)}},
            'domain_age_days': self.domain_age_days,
            'cached': False,
        }


class FakeFeed:
    def __init__(self, name, risk_level='low', indicators=None, error=None):
        self.name = name
        self.risk_level = risk_level
        self.indicators = indicators or []
        self.error = error

    def lookup(self, domain, url=None):
        if self.error:
            raise self.error
        return {'risk_level': self.risk_level, 'indicators': list(self.indicators)}


def whois_created(days_ago, **extra):
    """A whois lookup callable reporting a domain created `days_ago` days back"""
    def lookup(domain):
        data = {'domain': domain, 'created': datetime.now() - timedelta(days=days_ago), 'error': None}
        data.update(extra)
        return data
    return lookup


def whois_failing(domain):
    return {'domain': domain, 'created': None, 'error': 'Whois timeout'}


@pytest.fixture
def db():
    return DatabaseHandler('sqlite://')


@pytest.fixture
def list_store(db):
    return ListStore(db)


@pytest.fixture
def policy_store(db):
    return PolicyStore(db)


@pytest.fixture
def tenant_configs():
    return TenantConfigStore()


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def engine(list_store, policy_store, tenant_configs, audit_sink):
    return PolicyEngine(list_store, policy_store, tenant_configs=tenant_configs, audit_sink=audit_sink)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def connection_error():
    return requests.exceptions.ConnectionError('connection refused')
