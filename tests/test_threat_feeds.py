from unittest import mock

import dns.exception
import dns.resolver
import pytest
import requests

from mailshield.errors import FeedLookupError
from mailshield.modules.threat_feeds import (
    TextFeedClient, DnsblFeedClient, build_feed_client, normalize_url, url_domain,
)

FEED_TEXT = """# OpenPhish sample
https://evil.example/login/
http://phish.test/paypal/verify?id=1

"""


def test_normalize_url():
    assert normalize_url('HTTPS://Evil.Example/Login/') == 'https://evil.example/login'
    assert normalize_url('http://phish.test/a?b=1') == 'http://phish.test/a?b=1'
    assert url_domain('phish.test/path') == 'phish.test'


def test_text_feed_matches():
    feed = TextFeedClient('openphish', 'https://feeds.test/feed.txt', session=mock.Mock())
    assert feed.load_entries(FEED_TEXT.splitlines()) == 2

    exact = feed.lookup('evil.example', 'https://evil.example/login')
    assert exact == {'risk_level': 'critical', 'indicators': ['openphish:exact_url_match']}

    same_host = feed.lookup('phish.test', 'http://phish.test/other')
    assert same_host['risk_level'] == 'high'

    assert feed.lookup('clean.example', 'https://clean.example/')['risk_level'] == 'low'


def test_text_feed_refresh_downloads_once():
    session = mock.Mock()
    session.get.return_value = mock.Mock(text=FEED_TEXT)
    feed = TextFeedClient('urlhaus', 'https://feeds.test/urlhaus.txt', session=session)

    assert feed.lookup('evil.example')['risk_level'] == 'high'
    assert feed.lookup('evil.example')['risk_level'] == 'high'
    assert session.get.call_count == 1
    assert feed.stats()['count'] == 2


def test_text_feed_unreachable_without_data_raises():
    session = mock.Mock()
    session.get.side_effect = requests.exceptions.ConnectionError('down')
    feed = TextFeedClient('urlhaus', 'https://feeds.test/urlhaus.txt', session=session)

    with pytest.raises(FeedLookupError):
        feed.lookup('evil.example')


def test_text_feed_uses_stale_data_when_refresh_fails():
    session = mock.Mock()
    session.get.side_effect = requests.exceptions.ConnectionError('down')
    feed = TextFeedClient('urlhaus', 'https://feeds.test/urlhaus.txt', refresh_interval=0, session=session)
    feed.load_entries(FEED_TEXT.splitlines())

    assert feed.lookup('evil.example')['risk_level'] == 'high'


def test_dnsbl_listed_domain():
    resolver = mock.Mock()
    resolver.resolve.return_value = ['127.0.1.4']
    client = DnsblFeedClient(resolver=resolver)

    result = client.lookup('phish.test')
    assert result == {'risk_level': 'critical', 'indicators': ['spamhaus_dbl:phish_domain']}
    assert resolver.resolve.call_args[0][0] == 'phish.test.dbl.spamhaus.org'


def test_dnsbl_not_listed():
    resolver = mock.Mock()
    resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
    assert DnsblFeedClient(resolver=resolver).lookup('clean.test')['risk_level'] == 'low'


def test_dnsbl_timeout_raises():
    resolver = mock.Mock()
    resolver.resolve.side_effect = dns.exception.Timeout()
    with pytest.raises(FeedLookupError):
        DnsblFeedClient(resolver=resolver).lookup('slow.test')


def test_dnsbl_refused_query_is_not_a_listing():
    resolver = mock.Mock()
    resolver.resolve.return_value = ['127.255.255.254']
    with pytest.raises(FeedLookupError, match='open resolver'):
        DnsblFeedClient(resolver=resolver).lookup('any.test')


def test_build_feed_client():
    client = build_feed_client({'name': 'custom', 'type': 'text', 'url': 'https://feeds.test/x.txt'},
                               session=mock.Mock())
    assert isinstance(client, TextFeedClient)
    assert client.name == 'custom'
    assert build_feed_client({'name': 'odd', 'type': 'carrier-pigeon'}) is None
