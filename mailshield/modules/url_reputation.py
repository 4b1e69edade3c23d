#!/usr/bin/env python3
"""
Domain and URL Reputation Aggregation
Merges domain age, a suspicious-TLD heuristic and blocklist feeds into one
risk tier per domain or URL.

Features:
- Trusted-domain fast path (no lookups)
- Domain age tiers from WHOIS
- Feed lookups in parallel, each bounded by a timeout
- "Most severe wins" merge across signals
- In-process TTL cache plus optional Redis cache

A lookup that fails or times out contributes an `unknown` signal and an
indicator. When no signal shows elevated risk and any lookup failed, the
result is `unknown`, never `low`.
"""

import json
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Dict, List, Optional, Any

import redis

from mailshield import config
from mailshield.errors import FeedLookupError
from mailshield.modules import domain_age
from mailshield.modules.brand_impersonation import normalize_domain
from mailshield.modules.threat_feeds import FeedClient, load_feed_clients, SEVERITY_ORDER

logger = logging.getLogger(__name__)

RISK_SCORES = {
    'low': 0.1,
    'medium': 0.5,
    'high': 0.8,
    'critical': 0.95,
    'unknown': 0.5,
}

CACHE_PREFIX = 'mailshield:reputation:'
MAX_CACHE_ENTRIES = 10000


def merge_risk_levels(levels: List[str]) -> str:
    """Most severe known tier; unknown only when nothing is elevated and something failed"""
    known = [level for level in levels if level in SEVERITY_ORDER]
    worst = max(known, key=SEVERITY_ORDER.index) if known else None
    if worst and worst != 'low':
        return worst
    if 'unknown' in levels or worst is None:
        return 'unknown'
    return 'low'


class ReputationAggregator:
    """Combines reputation signals for domains and URLs"""

    def __init__(self, feeds: Optional[List[FeedClient]] = None,
                 whois_lookup: Optional[Callable[[str], Dict]] = None,
                 redis_url: Optional[str] = None,
                 cache_ttl: Optional[int] = None,
                 lookup_timeout: Optional[float] = None,
                 check_domain_age: bool = True):
        self.feeds = feeds if feeds is not None else load_feed_clients()
        self.whois_lookup = whois_lookup
        self.cache_ttl = cache_ttl if cache_ttl is not None else config.REPUTATION_CACHE_TTL
        self.lookup_timeout = lookup_timeout or config.FEED_TIMEOUT
        self.check_domain_age = check_domain_age
        self._cache = {}
        self._cache_lock = threading.Lock()
        self.redis_client = None
        self._initialize_redis(redis_url if redis_url is not None else config.get_redis_url())

    def _initialize_redis(self, redis_url: Optional[str]):
        if not redis_url:
            return
        try:
            self.redis_client = redis.Redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=1,
                socket_timeout=1
            )
            self.redis_client.ping()
            logger.info("Reputation Redis cache connected")
        except Exception as e:
            logger.warning(f"Redis cache not available: {e}")
            self.redis_client = None

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_cached(self, key: str) -> Optional[Dict[str, Any]]:
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry:
                stored_at, result = entry
                if time.time() - stored_at < self.cache_ttl:
                    return dict(result, cached=True)
                del self._cache[key]

        if self.redis_client:
            try:
                cached = self.redis_client.get(CACHE_PREFIX + key)
                if cached:
                    result = json.loads(cached)
                    self._put_cached(key, result)
                    return dict(result, cached=True)
            except Exception as e:
                logger.warning(f"Redis cache read failed: {e}")
        return None

    def _put_cached(self, key: str, result: Dict[str, Any]):
        now = time.time()
        with self._cache_lock:
            expired = [k for k, (stored_at, _) in self._cache.items()
                       if now - stored_at >= self.cache_ttl]
            for k in expired:
                del self._cache[k]
            # Oldest first
            while len(self._cache) >= MAX_CACHE_ENTRIES:
                self._cache.pop(next(iter(self._cache)))
            self._cache[key] = (now, dict(result))

    def _store_cached(self, key: str, result: Dict[str, Any]):
        self._put_cached(key, result)

        if self.redis_client:
            try:
                self.redis_client.setex(
                    CACHE_PREFIX + key,
                    self.cache_ttl,
                    json.dumps(result, default=str)
                )
            except Exception as e:
                logger.warning(f"Redis cache write failed: {e}")

    def clear_cache(self):
        with self._cache_lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _age_signal(self, domain: str) -> Dict[str, Any]:
        try:
            age = domain_age.check_domain_age(domain, whois_lookup=self.whois_lookup)
        except Exception as e:
            logger.warning(f"Domain age check failed for {domain}: {e}")
            return {'risk_level': 'unknown', 'indicators': ['domain_age:lookup_failed'], 'age_days': None}
        return {
            'risk_level': age['risk_level'],
            'indicators': [f'domain_age:{i}' for i in age['indicators']],
            'age_days': age['age_days'],
        }

    def _feed_signals(self, domain: str, url: Optional[str]) -> Dict[str, Dict[str, Any]]:
        signals = {}
        if not self.feeds:
            return signals

        executor = ThreadPoolExecutor(max_workers=len(self.feeds))
        try:
            futures = {feed.name: executor.submit(feed.lookup, domain, url) for feed in self.feeds}
            deadline = time.monotonic() + self.lookup_timeout
            for name, future in futures.items():
                try:
                    signals[name] = future.result(timeout=max(0.0, deadline - time.monotonic()))
                except FutureTimeout:
                    logger.warning(f"Feed {name} timed out for {domain}")
                    signals[name] = {'risk_level': 'unknown', 'indicators': [f'{name}:timeout']}
                except FeedLookupError as e:
                    logger.warning(f"Feed lookup failed: {e}")
                    signals[name] = {'risk_level': 'unknown', 'indicators': [f'{name}:lookup_failed']}
                except Exception as e:
                    logger.error(f"Feed {name} raised unexpectedly for {domain}: {e}")
                    signals[name] = {'risk_level': 'unknown', 'indicators': [f'{name}:lookup_failed']}
        finally:
            executor.shutdown(wait=False)
        return signals

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_reputation(self, target: str) -> Dict[str, Any]:
        """
        Reputation of a domain or URL.

        Returns:
            {
                'target': str,
                'domain': str,
                'risk_level': 'low' | 'medium' | 'high' | 'critical' | 'unknown',
                'risk_score': float (0-1),
                'indicators': list,
                'sources': {name: {'risk_level', 'indicators'}},
                'domain_age_days': int or None,
                'cached': bool
            }
        """
        is_url = '://' in (target or '')
        domain = normalize_domain(target)
        if not domain or '.' not in domain:
            return {
                'target': target,
                'domain': domain or None,
                'risk_level': 'unknown',
                'risk_score': RISK_SCORES['unknown'],
                'indicators': ['invalid_target'],
                'sources': {},
                'domain_age_days': None,
                'cached': False,
            }

        cache_key = (target.strip().lower() if is_url else domain)
        cached = self._get_cached(cache_key)
        if cached:
            return cached

        result = {
            'target': target,
            'domain': domain,
            'risk_level': 'low',
            'risk_score': RISK_SCORES['low'],
            'indicators': [],
            'sources': {},
            'domain_age_days': None,
            'cached': False,
        }

        if domain_age.is_trusted_domain(domain):
            result['indicators'].append('trusted_domain')
            self._store_cached(cache_key, result)
            return result

        levels = []

        quick = domain_age.quick_domain_age_risk(domain)
        if quick['reason'].startswith('suspicious_tld'):
            result['sources']['tld_heuristic'] = {'risk_level': 'medium', 'indicators': [quick['reason']]}
            levels.append('medium')
            result['indicators'].append(quick['reason'])

        if self.check_domain_age:
            age = self._age_signal(domain)
            result['sources']['domain_age'] = {'risk_level': age['risk_level'], 'indicators': age['indicators']}
            result['domain_age_days'] = age['age_days']
            levels.append(age['risk_level'])
            result['indicators'].extend(age['indicators'])

        for name, signal in self._feed_signals(domain, target if is_url else None).items():
            result['sources'][name] = signal
            levels.append(signal['risk_level'])
            result['indicators'].extend(signal['indicators'])

        result['risk_level'] = merge_risk_levels(levels)
        result['risk_score'] = RISK_SCORES[result['risk_level']]

        if result['risk_level'] in ('high', 'critical'):
            logger.info(f"Reputation {result['risk_level']} for {domain}: {result['indicators']}")

        # Failed lookups are retried on the next call
        if result['risk_level'] != 'unknown':
            self._store_cached(cache_key, result)
        return result

    def check_multiple(self, targets: List[str]) -> Dict[str, Dict[str, Any]]:
        return {target: self.check_reputation(target) for target in targets}
