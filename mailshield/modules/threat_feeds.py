#!/usr/bin/env python3
"""
Threat Feed Clients
Blocklist lookups used by the reputation aggregator.

Configured feeds (feeds.json, built-in defaults otherwise):
- OPENPHISH (openphish.com/feed.txt) - phishing URLs, one per line
- URLHAUS (urlhaus.abuse.ch text_online) - malware distribution URLs
- SPAMHAUS DBL (dbl.spamhaus.org) - DNS domain blocklist

Every client answers lookup(domain, url) with
{'risk_level': ..., 'indicators': [...]} or raises FeedLookupError.
"""

import time
import logging
import threading
from typing import Dict, List, Optional, Any
from urllib.parse import urlparse

import dns.resolver
import requests

from mailshield import config
from mailshield.errors import FeedLookupError

logger = logging.getLogger(__name__)

USER_AGENT = 'MailShield-Threat-Feeds/1.0'

DEFAULT_FEEDS = {
    'feeds': [
        {
            'name': 'openphish',
            'type': 'text',
            'url': 'https://openphish.com/feed.txt',
            'refresh_interval': 12 * 3600,
            'enabled': True,
        },
        {
            'name': 'urlhaus',
            'type': 'text',
            'url': 'https://urlhaus.abuse.ch/downloads/text_online/',
            'refresh_interval': 3600,
            'enabled': True,
        },
        {
            'name': 'spamhaus_dbl',
            'type': 'dnsbl',
            'zone': 'dbl.spamhaus.org',
            'enabled': True,
        },
    ]
}

# Spamhaus DBL return codes
DBL_RETURN_CODES = {
    '127.0.1.2': ('high', 'spam_domain'),
    '127.0.1.4': ('critical', 'phish_domain'),
    '127.0.1.5': ('critical', 'malware_domain'),
    '127.0.1.6': ('critical', 'botnet_cc_domain'),
    '127.0.1.102': ('medium', 'abused_legit_spam'),
    '127.0.1.103': ('medium', 'abused_spammed_redirector'),
    '127.0.1.104': ('high', 'abused_legit_phish'),
    '127.0.1.105': ('high', 'abused_legit_malware'),
    '127.0.1.106': ('high', 'abused_legit_botnet_cc'),
}

# Answers meaning the query itself was refused, not a listing
DBL_ERROR_CODES = {
    '127.255.255.252': 'typing error in DNSBL name',
    '127.255.255.254': 'query via public/open resolver',
    '127.255.255.255': 'excessive number of queries',
}

SEVERITY_ORDER = ['low', 'medium', 'high', 'critical']


def normalize_url(url: str) -> str:
    """Lower-cased scheme://host/path?query without a trailing slash"""
    candidate = (url or '').strip().lower()
    try:
        parsed = urlparse(candidate)
        if not parsed.scheme or not parsed.netloc:
            return candidate.rstrip('/')
        normalized = f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"
        if parsed.query:
            normalized += f"?{parsed.query}"
        return normalized
    except ValueError:
        return candidate


def url_domain(url: str) -> Optional[str]:
    candidate = (url or '').strip().lower()
    if '://' not in candidate:
        candidate = 'https://' + candidate
    try:
        return urlparse(candidate).hostname
    except ValueError:
        return None


class FeedClient:
    """Base class for a reputation feed"""

    name = 'feed'

    def lookup(self, domain: str, url: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name}>"


class TextFeedClient(FeedClient):
    """
    Feed published as a plain list of URLs, one per line ('#' comments
    allowed). Exact URL matches are critical; a URL on the same host is high.
    """

    def __init__(self, name: str, url: str, refresh_interval: int = 3600,
                 session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.name = name
        self.url = url
        self.refresh_interval = refresh_interval
        self.session = session or requests.Session()
        self.timeout = timeout or config.FEED_TIMEOUT
        self._urls = set()
        self._domains = set()
        self._last_refresh = 0.0
        self._lock = threading.Lock()

    def load_entries(self, lines: List[str]) -> int:
        """Replace the feed contents with the given URL lines"""
        urls = set()
        domains = set()
        for line in lines:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            urls.add(normalize_url(line))
            host = url_domain(line)
            if host:
                domains.add(host)

        with self._lock:
            self._urls = urls
            self._domains = domains
            self._last_refresh = time.time()
        return len(urls)

    def is_stale(self) -> bool:
        return time.time() - self._last_refresh > self.refresh_interval

    def refresh(self) -> int:
        """Download the feed. Raises FeedLookupError when it cannot be fetched."""
        try:
            response = self.session.get(
                self.url,
                headers={'User-Agent': USER_AGENT},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FeedLookupError(self.name, f"feed download failed: {e}")

        count = self.load_entries(response.text.splitlines())
        logger.info(f"Refreshed {self.name} feed: {count} URLs")
        return count

    def lookup(self, domain: str, url: Optional[str] = None) -> Dict[str, Any]:
        if self.is_stale():
            try:
                self.refresh()
            except FeedLookupError:
                # Stale data is still better than none
                if not self._urls:
                    raise
                logger.warning(f"Using stale {self.name} feed data")

        with self._lock:
            if url and normalize_url(url) in self._urls:
                return {'risk_level': 'critical', 'indicators': [f'{self.name}:exact_url_match']}
            if domain and domain.lower() in self._domains:
                return {'risk_level': 'high', 'indicators': [f'{self.name}:domain_match']}
        return {'risk_level': 'low', 'indicators': []}

    def stats(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'count': len(self._urls),
            'last_refresh': self._last_refresh or None,
        }


class DnsblFeedClient(FeedClient):
    """
    DNS domain blocklist (Spamhaus DBL style): <domain>.<zone> A lookups.
    NXDOMAIN/NoAnswer means not listed; timeouts raise FeedLookupError.
    """

    def __init__(self, name: str = 'spamhaus_dbl', zone: str = 'dbl.spamhaus.org',
                 resolver: Optional[dns.resolver.Resolver] = None, timeout: Optional[float] = None):
        self.name = name
        self.zone = zone
        self.resolver = resolver or dns.resolver.Resolver()
        self.timeout = timeout or config.FEED_TIMEOUT

    def lookup(self, domain: str, url: Optional[str] = None) -> Dict[str, Any]:
        if not domain:
            return {'risk_level': 'low', 'indicators': []}

        query = f"{domain.lower().rstrip('.')}.{self.zone}"
        try:
            answers = self.resolver.resolve(query, 'A', lifetime=self.timeout)
            return_codes = [str(rdata) for rdata in answers]
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return {'risk_level': 'low', 'indicators': []}
        except dns.resolver.Timeout:
            logger.warning(f"DNSBL timeout for {domain} on {self.zone}")
            raise FeedLookupError(self.name, 'timeout')
        except Exception as e:
            logger.warning(f"DNSBL check error for {domain} on {self.zone}: {e}")
            raise FeedLookupError(self.name, str(e))

        errors = [DBL_ERROR_CODES[c] for c in return_codes if c in DBL_ERROR_CODES]
        if errors:
            raise FeedLookupError(self.name, errors[0])

        risk_level = 'low'
        indicators = []
        for code in return_codes:
            level, label = DBL_RETURN_CODES.get(code, ('medium', f'listed:{code}'))
            indicators.append(f'{self.name}:{label}')
            if SEVERITY_ORDER.index(level) > SEVERITY_ORDER.index(risk_level):
                risk_level = level

        logger.warning(f"DNSBL HIT: {domain} listed in {self.zone} - codes: {return_codes}")
        return {'risk_level': risk_level, 'indicators': indicators}


def build_feed_client(feed_config: Dict[str, Any], session: Optional[requests.Session] = None) -> Optional[FeedClient]:
    feed_type = feed_config.get('type')
    if feed_type == 'text':
        return TextFeedClient(
            feed_config['name'],
            feed_config['url'],
            refresh_interval=feed_config.get('refresh_interval', 3600),
            session=session,
        )
    if feed_type == 'dnsbl':
        return DnsblFeedClient(feed_config.get('name', 'dnsbl'), feed_config['zone'])

    logger.error(f"Unknown feed type {feed_type!r} in feed config, skipping")
    return None


def load_feed_clients(session: Optional[requests.Session] = None) -> List[FeedClient]:
    """Enabled feed clients from feeds.json, or the built-in defaults"""
    feed_config = config.load_json_config('feeds.json', DEFAULT_FEEDS)
    clients = []
    for entry in feed_config.get('feeds', []):
        if not entry.get('enabled', True):
            continue
        try:
            client = build_feed_client(entry, session)
        except KeyError as e:
            logger.error(f"Feed config entry missing {e}: {entry}")
            continue
        if client:
            clients.append(client)
    return clients
