#!/usr/bin/env python3
"""
Click-Time URL Scanner
Re-checks a rewritten link when the user clicks it, independent of the
verdict the email received at delivery.

Features:
- Click mappings with expiry (expired links give a terminal 'expired' outcome)
- Redirect resolution bounded by hop count and wall-clock time
- Brand impersonation and reputation checks on the final URL
- SSL, newly-registered domain and redirect signals
- Internal blocklist: earlier blocked clicks and user reports per domain
- Tenant blocklist hit on the final URL gives 'blocked'
- Insert-only scan records, click events and bypass auditing
- Warning page generation and click analytics
"""

import html
import time
import uuid
import logging
import threading
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any
from urllib.parse import urljoin, urlparse

import requests

from mailshield import config
from mailshield.errors import ClickMappingNotFoundError
from mailshield.modules.brand_impersonation import detect_brand_impersonation
from mailshield.modules.email_blocking import ListStore
from mailshield.modules.email_database import (
    DatabaseHandler, ClickMapping, ClickScan, ClickEvent, to_json, from_json,
)
from mailshield.modules.lookalike_learner import LookalikeLearner
from mailshield.modules.url_reputation import ReputationAggregator
from mailshield.services.audit import AuditSink, LoggingAuditSink

logger = logging.getLogger(__name__)

BLOCK_THRESHOLD = 70
WARN_THRESHOLD = 40
NEW_DOMAIN_AGE_DAYS = 30
INTERNAL_LOOKBACK_DAYS = 90
DEFAULT_LINK_TTL_DAYS = 30
SSL_CHECK_TIMEOUT = 3
MAX_CACHE_ENTRIES = 10000

USER_AGENT = 'Mozilla/5.0 (compatible; MailShieldLinkScanner/1.0)'

# Reputation tier -> (risk points, threat severity)
REPUTATION_RISK = {
    'critical': (50, 'critical'),
    'high': (35, 'high'),
    'medium': (15, 'medium'),
}


def extract_host(url: str) -> str:
    try:
        return (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''


def _threat(threat_type, severity, details, source):
    return {'type': threat_type, 'severity': severity, 'details': details, 'source': source}


class ClickScanner:
    """Scans rewritten links at click time and records what the user did"""

    def __init__(self, db: DatabaseHandler,
                 reputation: Optional[ReputationAggregator] = None,
                 list_store: Optional[ListStore] = None,
                 learner: Optional[LookalikeLearner] = None,
                 audit_sink: Optional[AuditSink] = None,
                 session: Optional[requests.Session] = None,
                 max_redirects: Optional[int] = None,
                 redirect_timeout: Optional[float] = None,
                 cache_ttl: Optional[int] = None,
                 check_ssl: bool = True):
        self.db = db
        self.reputation = reputation or ReputationAggregator()
        self.list_store = list_store or ListStore(db)
        self.learner = learner
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.session = session or requests.Session()
        self.max_redirects = max_redirects if max_redirects is not None else config.CLICK_MAX_REDIRECTS
        self.redirect_timeout = redirect_timeout if redirect_timeout is not None else config.CLICK_REDIRECT_TIMEOUT
        self.cache_ttl = cache_ttl if cache_ttl is not None else config.CLICK_CACHE_TTL
        self.check_ssl = check_ssl

        self._cache: Dict[tuple, tuple] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Click mappings
    # ------------------------------------------------------------------

    def create_click_mapping(self, tenant_id: str, original_url: str, email_id: Optional[str] = None,
                             recipient: Optional[str] = None,
                             ttl_days: int = DEFAULT_LINK_TTL_DAYS) -> str:
        """Store a rewritten link and return its click id"""
        if not extract_host(original_url):
            raise ValueError(f"Not a URL: {original_url!r}")

        click_id = uuid.uuid4().hex
        now = datetime.now()
        with self.db.session_scope() as session:
            session.add(ClickMapping(
                click_id=click_id,
                tenant_id=tenant_id,
                email_id=email_id,
                recipient=recipient,
                original_url=original_url,
                created_at=now,
                expires_at=now + timedelta(days=ttl_days) if ttl_days else None,
                click_count=0,
            ))
        return click_id

    def get_click_mapping(self, click_id: str) -> Dict[str, Any]:
        with self.db.session_scope() as session:
            mapping = session.get(ClickMapping, click_id)
            if mapping is None:
                raise ClickMappingNotFoundError(click_id)
            return {
                'click_id': mapping.click_id,
                'tenant_id': mapping.tenant_id,
                'email_id': mapping.email_id,
                'recipient': mapping.recipient,
                'original_url': mapping.original_url,
                'created_at': mapping.created_at,
                'expires_at': mapping.expires_at,
                'click_count': mapping.click_count,
                'last_clicked_at': mapping.last_clicked_at,
            }

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_cached(self, key) -> Optional[Dict[str, Any]]:
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            stored_at, result = entry
            if time.time() - stored_at > self.cache_ttl:
                del self._cache[key]
                return None
            return dict(result)

    def _store_cached(self, key, result):
        now = time.time()
        with self._cache_lock:
            expired = [k for k, (stored_at, _) in self._cache.items()
                       if now - stored_at > self.cache_ttl]
            for k in expired:
                del self._cache[k]
            while len(self._cache) >= MAX_CACHE_ENTRIES:
                self._cache.pop(next(iter(self._cache)))
            self._cache[key] = (now, dict(result))

    def clear_cache(self):
        with self._cache_lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def resolve_redirects(self, url: str) -> Dict[str, Any]:
        """
        Follow Location headers with HEAD requests.

        Stops at the first non-redirect response, after max_redirects hops,
        or when the wall-clock budget runs out. On timeout or error the last
        URL reached is the final URL.
        """
        chain = [url]
        current = url
        timed_out = False
        deadline = time.monotonic() + self.redirect_timeout

        try:
            while len(chain) - 1 < self.max_redirects:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = True
                    break
                response = self.session.head(
                    current, allow_redirects=False, timeout=remaining,
                    headers={'User-Agent': USER_AGENT},
                )
                location = response.headers.get('Location')
                if not (300 <= response.status_code < 400 and location):
                    break
                current = urljoin(current, location)
                chain.append(current)
        except requests.exceptions.Timeout:
            timed_out = True
            logger.warning(f"Redirect resolution timed out for {url}")
        except requests.exceptions.RequestException as e:
            logger.warning(f"Redirect resolution failed for {current}: {e}")

        if timed_out:
            logger.warning(f"Redirect budget exhausted for {url}, scoring {current}")
        return {'final_url': current, 'chain': chain, 'timed_out': timed_out}

    def check_ssl_certificate(self, url: str) -> Optional[bool]:
        """False for plain HTTP or a certificate error; None when inconclusive"""
        if urlparse(url).scheme != 'https':
            return False
        try:
            self.session.head(url, allow_redirects=False, timeout=SSL_CHECK_TIMEOUT,
                              headers={'User-Agent': USER_AGENT})
            return True
        except requests.exceptions.SSLError:
            return False
        except requests.exceptions.RequestException as e:
            logger.warning(f"SSL check inconclusive for {url}: {e}")
            return None

    def check_internal_blocklist(self, tenant_id: str, domain: str) -> Dict[str, Any]:
        """Earlier blocked clicks and user reports for a domain, last 90 days"""
        since = datetime.now() - timedelta(days=INTERNAL_LOOKBACK_DAYS)
        try:
            with self.db.session_scope() as session:
                query = session.query(ClickEvent).filter(
                    ClickEvent.tenant_id == tenant_id,
                    ClickEvent.domain == domain,
                    ClickEvent.created_at > since,
                )
                blocked = query.filter(ClickEvent.event_type == 'block').count()
                reports = query.filter(ClickEvent.event_type == 'report').count()
            return {'previously_blocked': blocked > 0, 'report_count': reports}
        except Exception as e:
            logger.error(f"Internal blocklist check failed for {domain}: {e}")
            return {'previously_blocked': False, 'report_count': 0}

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_at_click_time(self, click_id: str) -> Dict[str, Any]:
        """
        Scan the destination of a rewritten link.

        Returns a ClickScanResult dict with status 'scanned', or a terminal
        {'status': 'expired', ...} for expired links. Raises
        ClickMappingNotFoundError for unknown click ids.
        """
        start = time.monotonic()
        mapping = self.get_click_mapping(click_id)
        tenant_id = mapping['tenant_id']
        original_url = mapping['original_url']

        if mapping['expires_at'] and mapping['expires_at'] <= datetime.now():
            return {
                'status': 'expired',
                'click_id': click_id,
                'original_url': original_url,
                'expired_at': mapping['expires_at'],
            }

        cache_key = (tenant_id, original_url.lower())
        cached = self._get_cached(cache_key)
        # A blocklist entry added since the last scan invalidates the cached verdict
        if cached and cached['verdict'] != 'blocked' and \
                self.list_store.find_url_match(tenant_id, 'blocklist', cached['final_url']):
            cached = None
        if cached:
            cached['click_id'] = click_id
            cached['scan_time_ms'] = (time.monotonic() - start) * 1000
            cached['cached'] = True
            return cached

        threats = []
        score = 0

        redirects = self.resolve_redirects(original_url)
        final_url = redirects['final_url']
        chain = redirects['chain']
        original_host = extract_host(original_url)
        final_host = extract_host(final_url)

        if len(chain) - 1 > 3:
            threats.append(_threat('suspicious_redirect', 'medium',
                                   f"URL has {len(chain) - 1} redirects", 'redirects'))
            score += 15
        if original_host != final_host:
            threats.append(_threat('suspicious_redirect', 'high',
                                   f"URL redirects to different domain: {original_host} -> {final_host}",
                                   'redirects'))
            score += 25

        # Brand impersonation on the final destination
        brand_matches = detect_brand_impersonation(final_host)
        if self.learner and not brand_matches:
            learned = self.learner.detect_with_learning(tenant_id, final_host)
            if learned['is_lookalike']:
                brand_matches = [{
                    'brand': learned['target_brand'],
                    'domain': learned['target_domain'],
                    'attack_type': learned['attack_type'],
                    'confidence': learned['final_confidence'],
                    'detail': f"Learned {learned['attack_type']} of {learned['target_domain']}",
                }]
        if brand_matches:
            top = brand_matches[0]
            severity = 'critical' if top['confidence'] >= 0.85 else 'high'
            threats.append(_threat('phishing', severity,
                                   f"Impersonates {top['brand']} ({top['attack_type']}): {top['detail']}",
                                   'brand_impersonation'))
            score += round(top['confidence'] * 50)

        reputation_result = self.reputation.check_reputation(final_url)
        level = reputation_result['risk_level']
        if level in REPUTATION_RISK:
            points, severity = REPUTATION_RISK[level]
            threats.append(_threat('bad_reputation', severity,
                                   f"Reputation {level}: {', '.join(reputation_result['indicators'])}",
                                   'reputation'))
            score += points
        elif level == 'unknown':
            threats.append(_threat('reputation_unknown', 'low',
                                   f"Reputation lookup inconclusive: {', '.join(reputation_result['indicators'])}",
                                   'reputation'))

        reputation = {
            'sources': {name: signal['risk_level'] for name, signal in reputation_result['sources'].items()},
            'risk_level': level,
            'domain_age': reputation_result['domain_age_days'],
            'ssl_valid': None,
        }

        age_days = reputation_result['domain_age_days']
        if age_days is not None and age_days < NEW_DOMAIN_AGE_DAYS:
            threats.append(_threat('newly_registered', 'critical' if age_days < 7 else 'high',
                                   f"Domain was registered {age_days} days ago", 'domain_age'))
            score += 30 if age_days < 7 else 20

        if self.check_ssl:
            ssl_valid = self.check_ssl_certificate(final_url)
            reputation['ssl_valid'] = ssl_valid
            if ssl_valid is False:
                threats.append(_threat('phishing', 'high',
                                       'URL does not have a valid SSL certificate', 'ssl_check'))
                score += 20

        internal = self.check_internal_blocklist(tenant_id, final_host)
        if internal['previously_blocked'] or internal['report_count']:
            reputation['sources']['internal'] = internal
        if internal['previously_blocked']:
            threats.append(_threat('malware', 'critical',
                                   'URL domain was previously blocked by your organization', 'internal'))
            score += 50
        elif internal['report_count'] > 2:
            threats.append(_threat('phishing', 'high',
                                   f"URL has been reported {internal['report_count']} times by users", 'internal'))
            score += 25

        tenant_block = self.list_store.find_url_match(tenant_id, 'blocklist', final_url)
        if tenant_block:
            threats.append(_threat('blocklisted', 'critical',
                                   f"Destination is on the tenant blocklist: {tenant_block['value']}",
                                   'tenant_blocklist'))

        score = min(100, score)
        reputation['score'] = 100 - score
        verdict = self.determine_verdict(score, threats, blocklisted=tenant_block is not None)

        result = {
            'status': 'scanned',
            'click_id': click_id,
            'tenant_id': tenant_id,
            'original_url': original_url,
            'final_url': final_url,
            'redirect_chain': chain,
            'redirect_timed_out': redirects['timed_out'],
            'verdict': verdict,
            'risk_score': score,
            'threats': threats,
            'reputation': reputation,
            'should_warn': verdict in ('suspicious', 'malicious'),
            'should_block': verdict in ('malicious', 'blocked'),
            'scan_time_ms': (time.monotonic() - start) * 1000,
            'cached': False,
        }
        self._store_cached(cache_key, result)
        return result

    @staticmethod
    def determine_verdict(score: float, threats: List[Dict[str, Any]], blocklisted: bool = False) -> str:
        if blocklisted:
            return 'blocked'
        if score >= BLOCK_THRESHOLD or any(t['severity'] == 'critical' for t in threats):
            return 'malicious'
        if score >= WARN_THRESHOLD:
            return 'suspicious'
        return 'safe'

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_click(self, click_id: str, result: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one scan record for this activation; earlier records are kept"""
        scanned_at = datetime.now()
        with self.db.session_scope() as session:
            mapping = session.get(ClickMapping, click_id)
            if mapping is None:
                raise ClickMappingNotFoundError(click_id)

            row = ClickScan(
                click_id=click_id,
                tenant_id=mapping.tenant_id,
                scanned_at=scanned_at,
                original_url=result.get('original_url'),
                final_url=result.get('final_url'),
                redirect_chain=to_json(result.get('redirect_chain') or []),
                verdict=result.get('verdict'),
                threats=to_json(result.get('threats') or []),
                reputation=to_json(result.get('reputation') or {}),
                should_warn=bool(result.get('should_warn')),
                should_block=bool(result.get('should_block')),
                scan_time_ms=result.get('scan_time_ms') or 0.0,
            )
            session.add(row)
            mapping.click_count = (mapping.click_count or 0) + 1
            mapping.last_clicked_at = scanned_at
            session.flush()
            return row.to_dict()

    def _record_event(self, mapping: Dict[str, Any], event_type: str, user: Optional[str],
                      url: Optional[str], verdict: Optional[str] = None, details: Optional[Dict] = None):
        with self.db.session_scope() as session:
            session.add(ClickEvent(
                click_id=mapping['click_id'],
                tenant_id=mapping['tenant_id'],
                event_type=event_type,
                user=user,
                url=url,
                domain=extract_host(url or ''),
                verdict=verdict,
                details=to_json(details or {}),
                created_at=datetime.now(),
            ))

    def get_scans(self, click_id: str) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            rows = session.query(ClickScan).filter_by(click_id=click_id).order_by(ClickScan.scanned_at).all()
            return [row.to_dict() for row in rows]

    # ------------------------------------------------------------------
    # User-facing actions
    # ------------------------------------------------------------------

    def process_click(self, click_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        """
        Scan, record and decide. Returns {'action': 'allow' | 'warn' | 'block' | 'expired', ...}.
        """
        mapping = self.get_click_mapping(click_id)
        result = self.scan_at_click_time(click_id)

        if result['status'] == 'expired':
            self._record_event(mapping, 'expired', user, mapping['original_url'])
            self.audit_sink.emit('click', mapping['tenant_id'], click_id=click_id, user=user,
                                 action='expired', url=mapping['original_url'])
            return {
                'action': 'expired',
                'reason': 'This link has expired',
                'original_url': mapping['original_url'],
                'scan_result': result,
            }

        self.record_click(click_id, result)

        if result['should_block']:
            action = 'block'
            reason = 'URL is on the tenant blocklist' if result['verdict'] == 'blocked' else 'URL identified as malicious'
        elif result['should_warn']:
            action = 'warn'
            summary = ', '.join(t['type'].replace('_', ' ') for t in result['threats'][:3])
            reason = f"Suspicious indicators detected: {summary}"
        else:
            action = 'allow'
            reason = 'URL appears safe'

        self._record_event(mapping, action, user, result['final_url'], verdict=result['verdict'],
                           details={'threats': [t['type'] for t in result['threats']]})
        self.audit_sink.emit('click', mapping['tenant_id'], click_id=click_id, user=user, action=action,
                             verdict=result['verdict'], url=result['final_url'])
        logger.info(f"Click {click_id} by {user or 'unknown'}: {action} ({result['verdict']})")

        decision = {
            'action': action,
            'reason': reason,
            'original_url': mapping['original_url'],
            'scan_result': result,
        }
        if action == 'block':
            decision['block_message'] = ('This link has been blocked because it was identified as dangerous. '
                                         'Please contact your IT security team if you believe this is an error.')
        elif action == 'warn':
            decision['warning_message'] = ('This link shows signs of being potentially unsafe. '
                                           'Proceed with caution and verify the sender before clicking.')
            decision['warning_page'] = self.generate_warning_page(result)
        return decision

    def proceed_anyway(self, click_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        """
        User confirmed a warning page. Allowed unless the latest scan blocked
        the link; either way the attempt is recorded as a bypass event.
        """
        mapping = self.get_click_mapping(click_id)
        scans = self.get_scans(click_id)
        latest = scans[-1] if scans else None
        allowed = not (latest and latest['should_block'])
        url = latest['final_url'] if latest else mapping['original_url']

        self._record_event(mapping, 'proceed_anyway', user, url,
                           verdict=latest['verdict'] if latest else None,
                           details={'allowed': allowed})
        self.audit_sink.emit('click_bypass', mapping['tenant_id'], click_id=click_id, user=user,
                             url=url, allowed=allowed)
        logger.warning(f"User {user or 'unknown'} chose to proceed to {url} (click {click_id}, allowed={allowed})")
        return {'allowed': allowed, 'url': url if allowed else None}

    def report_url(self, click_id: str, user: Optional[str] = None, comment: Optional[str] = None):
        """User report against a link's destination domain"""
        mapping = self.get_click_mapping(click_id)
        scans = self.get_scans(click_id)
        url = scans[-1]['final_url'] if scans else mapping['original_url']
        self._record_event(mapping, 'report', user, url, details={'comment': comment})
        self.audit_sink.emit('click_report', mapping['tenant_id'], click_id=click_id, user=user, url=url)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def generate_warning_page(self, result: Dict[str, Any]) -> str:
        """Warning page for a scan result; all scan-derived text is HTML-escaped"""
        is_malicious = result.get('verdict') in ('malicious', 'blocked')
        title = 'Dangerous Link Detected' if is_malicious else 'Suspicious Link Warning'
        color = '#dc2626' if is_malicious else '#d97706'

        threat_items = ''.join(
            f'<li><strong>{html.escape(t["severity"].upper())}</strong> '
            f'{html.escape(t["type"].replace("_", " "))}: {html.escape(t["details"])} '
            f'<small>(source: {html.escape(t["source"])})</small></li>'
            for t in result.get('threats') or []
        )
        reputation_score = (result.get('reputation') or {}).get('score', 0)
        final_url = html.escape(result.get('final_url') or '')
        original_url = html.escape(result.get('original_url') or '', quote=True)
        click_id = html.escape(result.get('click_id') or '')

        if is_malicious:
            proceed = '<span class="btn btn-disabled" aria-disabled="true">Blocked</span>'
        else:
            proceed = (f'<a href="{original_url}" class="btn btn-danger" '
                       f'onclick="return confirm(\'This site has been flagged for security concerns. '
                       f'Are you sure you want to continue?\')">Continue Anyway</a>')

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{title} | MailShield</title>
  <style>
    body {{ font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; background: #f8fafc; padding: 20px; }}
    .container {{ max-width: 640px; margin: 0 auto; background: white; border: 2px solid {color}; border-radius: 12px; }}
    .header {{ padding: 24px; text-align: center; color: {color}; }}
    .content {{ padding: 24px; }}
    code {{ word-break: break-all; }}
    .btn {{ display: inline-block; padding: 10px 20px; border-radius: 8px; text-decoration: none; }}
    .btn-primary {{ background: #3b82f6; color: white; }}
    .btn-danger {{ background: #fef2f2; color: #dc2626; }}
    .btn-disabled {{ background: #f3f4f6; color: #6b7280; opacity: 0.6; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{title}</h1>
      <p>Our security analysis has identified potential risks with this link.</p></div>
    <div class="content">
      <p>Destination URL: <code>{final_url}</code></p>
      <ul class="threats">{threat_items}</ul>
      <p>Security reputation score: {reputation_score}/100</p>
      <p><small>Click ID: {click_id}</small></p>
      <a href="javascript:history.back()" class="btn btn-primary">Go Back (Recommended)</a>
      {proceed}
    </div>
  </div>
</body>
</html>"""

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_click_analytics(self, tenant_id: str, start: Optional[datetime] = None,
                            end: Optional[datetime] = None, limit: int = 10) -> Dict[str, Any]:
        end = end or datetime.now()
        start = start or end - timedelta(days=30)

        try:
            with self.db.session_scope() as session:
                mappings = session.query(ClickMapping).filter(
                    ClickMapping.tenant_id == tenant_id,
                    ClickMapping.created_at.between(start, end),
                ).all()
                scans = session.query(ClickScan).filter(
                    ClickScan.tenant_id == tenant_id,
                    ClickScan.scanned_at.between(start, end),
                ).all()

                blocked_domains = Counter()
                threat_types = Counter()
                blocked = warned = 0
                total_time = 0.0
                for scan in scans:
                    total_time += scan.scan_time_ms or 0.0
                    if scan.verdict in ('blocked', 'malicious'):
                        blocked += 1
                        blocked_domains[extract_host(scan.final_url or '') or 'unknown'] += 1
                    elif scan.verdict == 'suspicious':
                        warned += 1
                    for threat in from_json(scan.threats, []):
                        threat_types[threat.get('type', 'unknown')] += 1

                return {
                    'total_clicks': sum(m.click_count or 0 for m in mappings),
                    'total_links': len(mappings),
                    'blocked_clicks': blocked,
                    'warned_clicks': warned,
                    'unique_urls': len({m.original_url for m in mappings}),
                    'top_blocked_domains': [{'domain': d, 'count': c} for d, c in blocked_domains.most_common(limit)],
                    'top_threat_types': [{'type': t, 'count': c} for t, c in threat_types.most_common(limit)],
                    'average_scan_time_ms': total_time / len(scans) if scans else 0.0,
                }
        except Exception as e:
            logger.error(f"Failed to get click analytics for tenant {tenant_id}: {e}")
            return {
                'total_clicks': 0, 'total_links': 0, 'blocked_clicks': 0, 'warned_clicks': 0,
                'unique_urls': 0, 'top_blocked_domains': [], 'top_threat_types': [],
                'average_scan_time_ms': 0.0,
            }
