import time

from mailshield.errors import FeedLookupError
from mailshield.modules import url_reputation
from mailshield.modules.url_reputation import ReputationAggregator, merge_risk_levels, CACHE_PREFIX

from conftest import FakeFeed, whois_created, whois_failing


class SlowFeed(FakeFeed):
    def lookup(self, domain, url=None):
        time.sleep(0.5)
        return super().lookup(domain, url)


class CountingFeed(FakeFeed):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def lookup(self, domain, url=None):
        self.calls += 1
        return super().lookup(domain, url)


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value


def test_merge_most_severe_wins():
    assert merge_risk_levels(['low', 'high', 'medium']) == 'high'
    assert merge_risk_levels(['low', 'critical', 'unknown']) == 'critical'
    assert merge_risk_levels(['low', 'low']) == 'low'


def test_merge_failure_never_reads_as_low():
    assert merge_risk_levels(['low', 'unknown']) == 'unknown'
    assert merge_risk_levels([]) == 'unknown'


def test_feed_hit_on_url():
    aggregator = ReputationAggregator(
        feeds=[FakeFeed('openphish', 'critical', ['openphish:exact_url_match']), FakeFeed('dbl')],
        whois_lookup=whois_created(2000),
    )
    result = aggregator.check_reputation('https://evil-shop.net/login')
    assert result['domain'] == 'evil-shop.net'
    assert result['risk_level'] == 'critical'
    assert result['risk_score'] == 0.95
    assert 'openphish:exact_url_match' in result['indicators']
    assert result['sources']['dbl']['risk_level'] == 'low'
    assert result['domain_age_days'] == 2000


def test_clean_established_domain_is_low():
    aggregator = ReputationAggregator(feeds=[FakeFeed('dbl')], whois_lookup=whois_created(2000))
    assert aggregator.check_reputation('established-shop.net')['risk_level'] == 'low'


def test_new_domain_raises_risk():
    aggregator = ReputationAggregator(feeds=[], whois_lookup=whois_created(2))
    result = aggregator.check_reputation('brand-new-shop.net')
    assert result['risk_level'] == 'critical'
    assert result['domain_age_days'] == 2


def test_failed_feed_gives_unknown():
    aggregator = ReputationAggregator(
        feeds=[FakeFeed('dbl', error=FeedLookupError('dbl', 'timeout'))],
        whois_lookup=whois_created(2000),
    )
    result = aggregator.check_reputation('established-shop.net')
    assert result['risk_level'] == 'unknown'
    assert 'dbl:lookup_failed' in result['indicators']


def test_feed_timeout_gives_unknown():
    aggregator = ReputationAggregator(feeds=[SlowFeed('slow')], check_domain_age=False, lookup_timeout=0.05)
    result = aggregator.check_reputation('established-shop.net')
    assert result['risk_level'] == 'unknown'
    assert 'slow:timeout' in result['indicators']


def test_failed_whois_with_clean_feeds_is_unknown():
    aggregator = ReputationAggregator(feeds=[FakeFeed('dbl')], whois_lookup=whois_failing)
    assert aggregator.check_reputation('established-shop.net')['risk_level'] == 'unknown'


def test_trusted_domain_fast_path():
    feed = CountingFeed('dbl', 'critical')
    aggregator = ReputationAggregator(feeds=[feed], whois_lookup=whois_failing)
    result = aggregator.check_reputation('https://www.google.com/search?q=x')
    assert result['risk_level'] == 'low'
    assert result['indicators'] == ['trusted_domain']
    assert feed.calls == 0


def test_suspicious_tld_heuristic():
    aggregator = ReputationAggregator(feeds=[], whois_lookup=whois_created(2000))
    result = aggregator.check_reputation('old-shop.xyz')
    assert result['risk_level'] == 'medium'
    assert result['sources']['tld_heuristic']['risk_level'] == 'medium'


def test_invalid_target():
    aggregator = ReputationAggregator(feeds=[], check_domain_age=False)
    result = aggregator.check_reputation('not a domain')
    assert result['risk_level'] == 'unknown'
    assert result['indicators'] == ['invalid_target']


def test_results_are_cached():
    feed = CountingFeed('dbl')
    aggregator = ReputationAggregator(feeds=[feed], whois_lookup=whois_created(2000))

    first = aggregator.check_reputation('established-shop.net')
    second = aggregator.check_reputation('established-shop.net')
    assert first['cached'] is False
    assert second['cached'] is True
    assert feed.calls == 1

    aggregator.clear_cache()
    aggregator.check_reputation('established-shop.net')
    assert feed.calls == 2


def test_unknown_results_are_not_cached():
    feed = CountingFeed('dbl', error=FeedLookupError('dbl', 'down'))
    aggregator = ReputationAggregator(feeds=[feed], whois_lookup=whois_created(2000))
    aggregator.check_reputation('established-shop.net')
    aggregator.check_reputation('established-shop.net')
    assert feed.calls == 2


def test_redis_cache_shared_between_instances():
    redis_client = FakeRedis()
    first = ReputationAggregator(feeds=[FakeFeed('dbl', 'high', ['dbl:spam_domain'])],
                                 whois_lookup=whois_created(2000))
    first.redis_client = redis_client
    first.check_reputation('spammy-shop.net')
    assert CACHE_PREFIX + 'spammy-shop.net' in redis_client.store

    feed = CountingFeed('dbl')
    second = ReputationAggregator(feeds=[feed], whois_lookup=whois_created(2000))
    second.redis_client = redis_client
    result = second.check_reputation('spammy-shop.net')
    assert result['risk_level'] == 'high'
    assert result['cached'] is True
    assert feed.calls == 0


def test_expired_entries_are_swept_on_write(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(url_reputation.time, 'time', lambda: clock[0])
    aggregator = ReputationAggregator(feeds=[FakeFeed('dbl')], whois_lookup=whois_created(2000),
                                      cache_ttl=60)

    aggregator.check_reputation('first-shop.net')
    assert 'first-shop.net' in aggregator._cache

    clock[0] += 120
    aggregator.check_reputation('second-shop.net')
    assert 'first-shop.net' not in aggregator._cache
    assert 'second-shop.net' in aggregator._cache


def test_memory_cache_is_bounded(monkeypatch):
    monkeypatch.setattr(url_reputation, 'MAX_CACHE_ENTRIES', 2)
    aggregator = ReputationAggregator(feeds=[FakeFeed('dbl')], whois_lookup=whois_created(2000))

    for name in ('one-shop.net', 'two-shop.net', 'three-shop.net'):
        aggregator.check_reputation(name)

    assert len(aggregator._cache) == 2
    assert 'one-shop.net' not in aggregator._cache
    assert 'three-shop.net' in aggregator._cache
