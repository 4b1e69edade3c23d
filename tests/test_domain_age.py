import subprocess
from datetime import datetime, timedelta

from mailshield.modules import domain_age
from mailshield.modules.domain_age import (
    check_domain_age, parse_whois_date, parse_whois_output, quick_domain_age_risk,
    check_multiple_domain_ages, get_domain_whois,
)

from conftest import whois_created, whois_failing

SAMPLE_WHOIS = """
Domain Name: EXAMPLE-SHOP.NET
Registrar: NameCheap, Inc.
Updated Date: 2024-03-02T10:11:12Z
Creation Date: 2024-03-01T08:00:00Z
Registry Expiry Date: 2025-03-01T08:00:00Z
Registrant Name: REDACTED FOR PRIVACY
Registrant Country: US
"""


def test_parse_whois_date_formats():
    assert parse_whois_date('2024-03-01T08:00:00Z') == datetime(2024, 3, 1, 8, 0, 0)
    assert parse_whois_date('2024-03-01T08:00:00.000Z') == datetime(2024, 3, 1, 8, 0, 0)
    assert parse_whois_date('2024-03-01 08:00:00+00:00') == datetime(2024, 3, 1, 8, 0, 0)
    assert parse_whois_date('01-Mar-2024') == datetime(2024, 3, 1)
    assert parse_whois_date('not a date') is None
    assert parse_whois_date('') is None


def test_parse_whois_output():
    data = parse_whois_output('example-shop.net', SAMPLE_WHOIS)
    assert data['created'] == datetime(2024, 3, 1, 8, 0, 0)
    assert data['expires'] == datetime(2025, 3, 1, 8, 0, 0)
    assert data['registrar'] == 'NameCheap, Inc.'
    assert data['country'] == 'US'
    assert data['error'] is None


def test_parse_whois_output_not_found():
    assert parse_whois_output('nothing.net', 'No match for "NOTHING.NET".')['error'] == 'Domain not found'


def test_age_tiers():
    assert check_domain_age('fresh-shop.net', whois_lookup=whois_created(3))['risk_level'] == 'critical'
    assert check_domain_age('fresh-shop.net', whois_lookup=whois_created(20))['risk_level'] == 'high'
    assert check_domain_age('fresh-shop.net', whois_lookup=whois_created(60))['risk_level'] == 'medium'
    assert check_domain_age('fresh-shop.net', whois_lookup=whois_created(200))['risk_level'] == 'low'

    mature = check_domain_age('fresh-shop.net', whois_lookup=whois_created(2000))
    assert mature['risk_level'] == 'low'
    assert mature['age_days'] == 2000
    assert 'mature_domain' in mature['indicators']


def test_failed_lookup_is_unknown_not_safe():
    result = check_domain_age('fresh-shop.net', whois_lookup=whois_failing)
    assert result['risk_level'] == 'unknown'
    assert 'whois_lookup_failed' in result['indicators']


def test_lookup_exception_is_unknown():
    def broken(domain):
        raise OSError('whois missing')

    assert check_domain_age('fresh-shop.net', whois_lookup=broken)['risk_level'] == 'unknown'


def test_missing_creation_date_is_unknown():
    result = check_domain_age('fresh-shop.net', whois_lookup=lambda d: {'domain': d, 'created': None, 'error': None})
    assert result['indicators'][0] == 'no_creation_date'


def test_trusted_domain_skips_lookup():
    def never(domain):
        raise AssertionError('lookup should not run')

    result = check_domain_age('https://mail.google.com/inbox', whois_lookup=never)
    assert result['domain'] == 'google.com'
    assert result['indicators'] == ['trusted_domain']


def test_suspicious_tld_raises_low_to_medium():
    result = check_domain_age('old-site.xyz', whois_lookup=whois_created(200))
    assert result['risk_level'] == 'medium'
    assert 'suspicious_tld:xyz' in result['indicators']


def test_privacy_and_short_registration_add_risk():
    lookup = whois_created(10, registrant_name='Privacy Protect LLC',
                           expires=datetime.now() + timedelta(days=5))
    result = check_domain_age('fresh-shop.net', whois_lookup=lookup)
    assert 'privacy_protected' in result['indicators']
    assert any(i.startswith('expiring_soon') for i in result['indicators'])
    assert result['risk_score'] == 1.0


def test_quick_risk_heuristics():
    assert quick_domain_age_risk('google.com')['risk_level'] == 'low'
    assert quick_domain_age_risk('free-prizes.tk') == {'risk_level': 'high', 'reason': 'suspicious_tld:tk'}
    assert quick_domain_age_risk('shop12345.com')['reason'] == 'numeric_pattern'
    assert quick_domain_age_risk('a-b-c-d-e.com')['reason'] == 'excessive_hyphens'
    assert quick_domain_age_risk('example.com')['risk_level'] == 'unknown'


def test_check_multiple_deduplicates_roots():
    results = check_multiple_domain_ages(
        ['a.fresh-shop.net', 'b.fresh-shop.net', 'other-shop.org'],
        whois_lookup=whois_created(3),
    )
    assert set(results) == {'fresh-shop.net', 'other-shop.org'}


def test_get_domain_whois_timeout(monkeypatch):
    def timeout(*args, **kwargs):
        raise subprocess.TimeoutExpired(cmd='whois', timeout=1)

    monkeypatch.setattr(domain_age.subprocess, 'run', timeout)
    assert get_domain_whois('fresh-shop.net')['error'] == 'Whois timeout'
