import pytest
import requests

from mailshield.errors import ClickMappingNotFoundError
from mailshield.services import click_scanner
from mailshield.services.click_scanner import ClickScanner, extract_host

from conftest import FakeSession, FakeReputation


@pytest.fixture
def reputation():
    return FakeReputation('low')


@pytest.fixture
def scanner(db, list_store, audit_sink, fake_session, reputation):
    return ClickScanner(db, reputation=reputation, list_store=list_store, audit_sink=audit_sink,
                        session=fake_session, check_ssl=False)


def make_scanner(db, list_store, audit_sink, reputation=None, routes=None, **kwargs):
    kwargs.setdefault('check_ssl', False)
    return ClickScanner(db, reputation=reputation or FakeReputation('low'), list_store=list_store,
                        audit_sink=audit_sink, session=FakeSession(routes), **kwargs)


def test_extract_host():
    assert extract_host('https://Files.Acme.org:8443/a?b=c') == 'files.acme.org'
    assert extract_host('not a url') == ''


def test_mapping_lifecycle(scanner):
    click_id = scanner.create_click_mapping('acme', 'https://news.acme.org/today', email_id='m1',
                                            recipient='tom@acme.example')
    mapping = scanner.get_click_mapping(click_id)
    assert mapping['tenant_id'] == 'acme'
    assert mapping['original_url'] == 'https://news.acme.org/today'
    assert mapping['click_count'] == 0
    assert mapping['expires_at'] > mapping['created_at']

    with pytest.raises(ValueError):
        scanner.create_click_mapping('acme', 'no scheme here')


def test_unknown_click_id(scanner):
    with pytest.raises(ClickMappingNotFoundError):
        scanner.scan_at_click_time('missing')
    with pytest.raises(ClickMappingNotFoundError):
        scanner.process_click('missing')


def test_expired_link(scanner, reputation, audit_sink):
    click_id = scanner.create_click_mapping('acme', 'https://news.acme.org/today', ttl_days=-1)

    result = scanner.scan_at_click_time(click_id)
    assert result['status'] == 'expired'
    assert reputation.calls == []

    decision = scanner.process_click(click_id, user='tom')
    assert decision['action'] == 'expired'
    assert scanner.get_scans(click_id) == []
    assert audit_sink.events('click')[0]['action'] == 'expired'


def test_safe_link_is_allowed(scanner, audit_sink):
    click_id = scanner.create_click_mapping('acme', 'https://news.acme.org/today')
    decision = scanner.process_click(click_id, user='tom')

    assert decision['action'] == 'allow'
    assert decision['reason'] == 'URL appears safe'
    result = decision['scan_result']
    assert result['verdict'] == 'safe'
    assert result['risk_score'] == 0
    assert result['reputation']['score'] == 100
    assert result['redirect_chain'] == ['https://news.acme.org/today']
    assert audit_sink.events('click')[0]['verdict'] == 'safe'


def test_redirect_to_other_domain(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, routes={
        'https://short.acme.org/x': (301, 'https://landing.partner.org/offer'),
    })
    click_id = scanner.create_click_mapping('acme', 'https://short.acme.org/x')
    result = scanner.scan_at_click_time(click_id)

    assert result['final_url'] == 'https://landing.partner.org/offer'
    assert result['redirect_chain'] == ['https://short.acme.org/x', 'https://landing.partner.org/offer']
    redirect_threats = [t for t in result['threats'] if t['source'] == 'redirects']
    assert redirect_threats[0]['severity'] == 'high'
    assert result['risk_score'] == 25


def test_relative_redirect_and_hop_limit(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, max_redirects=2, routes={
        'https://hop.acme.org/1': (302, '/2'),
        'https://hop.acme.org/2': (302, '/3'),
        'https://hop.acme.org/3': (302, '/4'),
    })
    redirects = scanner.resolve_redirects('https://hop.acme.org/1')
    assert redirects['chain'] == ['https://hop.acme.org/1', 'https://hop.acme.org/2', 'https://hop.acme.org/3']
    assert redirects['final_url'] == 'https://hop.acme.org/3'
    assert redirects['timed_out'] is False


def test_redirect_timeout_scores_last_url(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, routes={
        'https://slow.acme.org/': (301, 'https://slower.acme.org/'),
        'https://slower.acme.org/': requests.exceptions.Timeout('read timed out'),
    })
    redirects = scanner.resolve_redirects('https://slow.acme.org/')
    assert redirects['timed_out'] is True
    assert redirects['final_url'] == 'https://slower.acme.org/'


def test_connection_error_keeps_original(db, list_store, audit_sink, connection_error):
    scanner = make_scanner(db, list_store, audit_sink, routes={'https://down.acme.org/': connection_error})
    redirects = scanner.resolve_redirects('https://down.acme.org/')
    assert redirects == {'final_url': 'https://down.acme.org/', 'chain': ['https://down.acme.org/'],
                         'timed_out': False}


def test_ssl_check(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, check_ssl=True, routes={
        'https://badcert.acme.org/': requests.exceptions.SSLError('certificate verify failed'),
    })
    assert scanner.check_ssl_certificate('http://plain.acme.org/') is False
    assert scanner.check_ssl_certificate('https://news.acme.org/') is True
    assert scanner.check_ssl_certificate('https://badcert.acme.org/') is False

    click_id = scanner.create_click_mapping('acme', 'http://plain.acme.org/')
    result = scanner.scan_at_click_time(click_id)
    assert result['reputation']['ssl_valid'] is False
    assert any(t['source'] == 'ssl_check' for t in result['threats'])


def test_tenant_blocklist_gives_blocked(scanner, list_store):
    list_store.add_entry('acme', 'blocklist', 'domain', 'evil.org')
    click_id = scanner.create_click_mapping('acme', 'https://login.evil.org/session')

    decision = scanner.process_click(click_id)
    assert decision['action'] == 'block'
    assert decision['reason'] == 'URL is on the tenant blocklist'
    assert decision['scan_result']['verdict'] == 'blocked'
    assert decision['scan_result']['should_block'] is True
    assert 'block_message' in decision


def test_tenant_blocklist_is_tenant_scoped(scanner, list_store):
    list_store.add_entry('globex', 'blocklist', 'domain', 'evil.org')
    click_id = scanner.create_click_mapping('acme', 'https://login.evil.org/session')
    assert scanner.scan_at_click_time(click_id)['verdict'] == 'safe'


def test_critical_reputation_is_malicious(db, list_store, audit_sink):
    reputation = FakeReputation('critical', ['openphish:exact_url_match'])
    scanner = make_scanner(db, list_store, audit_sink, reputation=reputation)
    click_id = scanner.create_click_mapping('acme', 'https://files.acme.org/payload')

    decision = scanner.process_click(click_id)
    assert decision['action'] == 'block'
    assert decision['reason'] == 'URL identified as malicious'
    result = decision['scan_result']
    assert result['verdict'] == 'malicious'
    assert result['reputation']['sources'] == {'fake_feed': 'critical'}


def test_suspicious_link_gets_warning(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, reputation=FakeReputation('high', ['dbl:spam_domain']),
                           routes={'https://short.acme.org/x': (301, 'https://landing.partner.org/offer')})
    click_id = scanner.create_click_mapping('acme', 'https://short.acme.org/x')

    decision = scanner.process_click(click_id)
    assert decision['scan_result']['risk_score'] == 60
    assert decision['scan_result']['verdict'] == 'suspicious'
    assert decision['action'] == 'warn'
    assert decision['reason'].startswith('Suspicious indicators detected: suspicious redirect')
    assert 'Continue Anyway' in decision['warning_page']


def test_new_domain_signal(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, reputation=FakeReputation('low', domain_age_days=3))
    click_id = scanner.create_click_mapping('acme', 'https://fresh.acme.org/')
    result = scanner.scan_at_click_time(click_id)
    assert result['reputation']['domain_age'] == 3
    assert result['verdict'] == 'malicious'


def test_brand_lookalike_destination(scanner):
    click_id = scanner.create_click_mapping('acme', 'https://paypa1.com/signin')
    result = scanner.scan_at_click_time(click_id)
    brand_threats = [t for t in result['threats'] if t['source'] == 'brand_impersonation']
    assert brand_threats
    assert 'PayPal' in brand_threats[0]['details'] or 'paypal' in brand_threats[0]['details'].lower()


def test_every_click_is_recorded(scanner):
    click_id = scanner.create_click_mapping('acme', 'https://news.acme.org/today')
    scanner.process_click(click_id)
    scanner.process_click(click_id)

    assert len(scanner.get_scans(click_id)) == 2
    assert scanner.get_click_mapping(click_id)['click_count'] == 2
    assert scanner.get_click_mapping(click_id)['last_clicked_at'] is not None


def test_scan_results_are_cached(scanner, reputation):
    click_id = scanner.create_click_mapping('acme', 'https://news.acme.org/today')
    first = scanner.scan_at_click_time(click_id)
    second = scanner.scan_at_click_time(click_id)
    assert first['cached'] is False
    assert second['cached'] is True
    assert len(reputation.calls) == 1

    scanner.clear_cache()
    scanner.scan_at_click_time(click_id)
    assert len(reputation.calls) == 2


def test_cache_is_tenant_scoped(scanner, reputation):
    acme = scanner.create_click_mapping('acme', 'https://news.acme.org/today')
    globex = scanner.create_click_mapping('globex', 'https://news.acme.org/today')
    scanner.scan_at_click_time(acme)
    assert scanner.scan_at_click_time(globex)['cached'] is False
    assert len(reputation.calls) == 2


def test_proceed_anyway_is_audited(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink, reputation=FakeReputation('high'),
                           routes={'https://short.acme.org/x': (301, 'https://landing.partner.org/offer')})
    click_id = scanner.create_click_mapping('acme', 'https://short.acme.org/x')
    scanner.process_click(click_id, user='tom')

    outcome = scanner.proceed_anyway(click_id, user='tom')
    assert outcome == {'allowed': True, 'url': 'https://landing.partner.org/offer'}
    bypass = audit_sink.events('click_bypass')
    assert len(bypass) == 1
    assert bypass[0]['user'] == 'tom'
    assert bypass[0]['allowed'] is True


def test_proceed_anyway_refused_after_block(scanner, list_store, audit_sink):
    list_store.add_entry('acme', 'blocklist', 'domain', 'evil.org')
    click_id = scanner.create_click_mapping('acme', 'https://login.evil.org/session')
    scanner.process_click(click_id)

    assert scanner.proceed_anyway(click_id, user='tom') == {'allowed': False, 'url': None}
    assert audit_sink.events('click_bypass')[0]['allowed'] is False


def test_previous_block_feeds_internal_blocklist(scanner, list_store):
    entry = list_store.add_entry('acme', 'blocklist', 'domain', 'evil.org')
    first = scanner.create_click_mapping('acme', 'https://login.evil.org/session')
    scanner.process_click(first)
    list_store.remove_entry('acme', entry['id'])

    second = scanner.create_click_mapping('acme', 'https://login.evil.org/other')
    result = scanner.scan_at_click_time(second)
    assert result['verdict'] == 'malicious'
    assert result['reputation']['sources']['internal']['previously_blocked'] is True

    other_tenant = scanner.create_click_mapping('globex', 'https://login.evil.org/other')
    assert scanner.scan_at_click_time(other_tenant)['verdict'] == 'safe'


def test_user_reports_feed_internal_blocklist(scanner, audit_sink):
    click_id = scanner.create_click_mapping('acme', 'https://odd.acme.org/form')
    for user in ('a', 'b', 'c'):
        scanner.report_url(click_id, user=user, comment='looks phishy')
    assert len(audit_sink.events('click_report')) == 3

    internal = scanner.check_internal_blocklist('acme', 'odd.acme.org')
    assert internal == {'previously_blocked': False, 'report_count': 3}

    result = scanner.scan_at_click_time(click_id)
    reported = [t for t in result['threats'] if t['source'] == 'internal']
    assert reported[0]['details'] == 'URL has been reported 3 times by users'


def test_warning_page_escapes_scan_text(scanner):
    page = scanner.generate_warning_page({
        'click_id': 'abc',
        'verdict': 'suspicious',
        'original_url': 'https://odd.acme.org/"><script>alert(1)</script>',
        'final_url': 'https://odd.acme.org/<script>alert(1)</script>',
        'threats': [{'type': 'phishing', 'severity': 'high', 'source': 'internal',
                     'details': '<script>alert(2)</script>'}],
        'reputation': {'score': 55},
    })
    assert '<script>' not in page
    assert '&lt;script&gt;alert(2)&lt;/script&gt;' in page
    assert 'Suspicious Link Warning' in page
    assert '55/100' in page


def test_warning_page_for_malicious_has_no_continue_link(scanner):
    page = scanner.generate_warning_page({'click_id': 'abc', 'verdict': 'malicious', 'threats': []})
    assert 'Dangerous Link Detected' in page
    assert 'Continue Anyway' not in page


def test_click_analytics(db, list_store, audit_sink):
    list_store.add_entry('acme', 'blocklist', 'domain', 'evil.org')
    scanner = make_scanner(db, list_store, audit_sink)
    blocked = scanner.create_click_mapping('acme', 'https://login.evil.org/session')
    safe = scanner.create_click_mapping('acme', 'https://news.acme.org/today')
    scanner.process_click(blocked)
    scanner.process_click(safe)
    scanner.process_click(safe)

    analytics = scanner.get_click_analytics('acme')
    assert analytics['total_links'] == 2
    assert analytics['total_clicks'] == 3
    assert analytics['blocked_clicks'] == 1
    assert analytics['warned_clicks'] == 0
    assert analytics['unique_urls'] == 2
    assert analytics['top_blocked_domains'] == [{'domain': 'login.evil.org', 'count': 1}]
    assert analytics['top_threat_types'] == [{'type': 'blocklisted', 'count': 1}]

    assert scanner.get_click_analytics('globex')['total_clicks'] == 0


def test_blocklist_added_after_scan_overrides_cache(scanner, list_store, reputation):
    click_id = scanner.create_click_mapping('acme', 'https://login.evil.org/session')
    assert scanner.scan_at_click_time(click_id)['verdict'] == 'safe'

    list_store.add_entry('acme', 'blocklist', 'domain', 'evil.org')
    result = scanner.scan_at_click_time(click_id)
    assert result['verdict'] == 'blocked'
    assert result['cached'] is False
    assert len(reputation.calls) == 2

    assert scanner.scan_at_click_time(click_id)['cached'] is True


def test_expired_cache_entries_are_swept_on_write(scanner, monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(click_scanner.time, 'time', lambda: clock[0])
    scanner.cache_ttl = 60

    first = scanner.create_click_mapping('acme', 'https://news.acme.org/today')
    scanner.scan_at_click_time(first)
    assert ('acme', 'https://news.acme.org/today') in scanner._cache

    clock[0] += 120
    second = scanner.create_click_mapping('acme', 'https://news.acme.org/tomorrow')
    scanner.scan_at_click_time(second)
    assert ('acme', 'https://news.acme.org/today') not in scanner._cache
    assert ('acme', 'https://news.acme.org/tomorrow') in scanner._cache


def test_scan_cache_is_bounded(scanner, monkeypatch):
    monkeypatch.setattr(click_scanner, 'MAX_CACHE_ENTRIES', 2)
    for page in ('one', 'two', 'three'):
        scanner.scan_at_click_time(scanner.create_click_mapping('acme', f'https://news.acme.org/{page}'))

    assert len(scanner._cache) == 2
    assert ('acme', 'https://news.acme.org/one') not in scanner._cache
    assert ('acme', 'https://news.acme.org/three') in scanner._cache


def test_inconclusive_reputation_is_reported(db, list_store, audit_sink):
    scanner = make_scanner(db, list_store, audit_sink,
                           reputation=FakeReputation('unknown', ['dbl:lookup_failed']))
    result = scanner.scan_at_click_time(scanner.create_click_mapping('acme', 'https://news.acme.org/today'))

    assert result['verdict'] == 'safe'
    assert result['risk_score'] == 0
    unknown = [t for t in result['threats'] if t['type'] == 'reputation_unknown']
    assert len(unknown) == 1
    assert unknown[0]['source'] == 'reputation'
    assert 'dbl:lookup_failed' in unknown[0]['details']
    assert result['reputation']['risk_level'] == 'unknown'
