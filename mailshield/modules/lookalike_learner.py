#!/usr/bin/env python3
"""
Adaptive Lookalike Learning Module
Learns lookalike-domain attack patterns from confirmed detections and
analyst feedback, and uses them to adjust future detection confidence.

Features:
- Tenant-specific brand registrations (isolated per tenant)
- Pattern store keyed by (tenant, brand, attack type) with a
  recency-weighted running average of confidence
- Generalization of fragments ("secure-", "-login") seen across 3+ brands
- Feedback loop: confirmed threats boost, false positives penalize
- Learned-variant matching for domains the static analyzers miss
  (paypa1-new.com after paypa1*.com was confirmed)

Patterns recorded without a tenant are shared intelligence and are
consulted for every tenant. Tenant-scoped patterns are only consulted for
that tenant.
"""

import math
import logging
import threading
from collections import deque, defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Any, Tuple

from mailshield.errors import BrandNotFoundError
from mailshield.modules.brand_registry import PROTECTED_BRANDS, COUSIN_PREFIXES, COUSIN_SUFFIXES
from mailshield.modules.brand_impersonation import (
    normalize_domain, get_base_label, is_same_or_subdomain,
    levenshtein, homoglyph_substitutions,
)
from mailshield.services.audit import AuditSink, LoggingAuditSink

logger = logging.getLogger(__name__)

# Recency weighting (days)
DECAY_HALF_WINDOW_DAYS = 7
RECENCY_WINDOW_DAYS = 30

GENERALIZATION_MIN_BRANDS = 3
MAX_DETECTION_HISTORY = 10000
MAX_INDEXED_DOMAINS = 10000

FEEDBACK_SOURCE_WEIGHTS = {
    'analyst': 1.5,
    'automated': 0.8,
    'user': 1.0,
}
POSITIVE_FEEDBACK_STEP = 0.15
NEGATIVE_FEEDBACK_STEP = 0.2
POSITIVE_CONFIDENCE_NUDGE = 0.03
NEGATIVE_CONFIDENCE_NUDGE = 0.1

PRIORITY_ORDER = {'high': 0, 'medium': 1, 'low': 2}

ATTACK_TYPES = ('homoglyph', 'typosquat', 'cousin')


def _not_lookalike() -> Dict[str, Any]:
    return {
        'is_lookalike': False,
        'target_brand': None,
        'target_domain': None,
        'attack_type': None,
        'base_confidence': 0.0,
        'learning_boost': 0.0,
        'final_confidence': 0.0,
        'confidence': 0.0,
        'matched_pattern': None,
    }


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _days_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / 86400)


def _recency_weight(when: datetime, now: datetime) -> float:
    return math.exp(-_days_between(when, now) / DECAY_HALF_WINDOW_DAYS)


def is_similar_part(part: str, target_base: str) -> bool:
    """A hyphen-separated part that is the brand or a near miss of it"""
    if len(part) < 2:
        return False
    if part == target_base:
        return True
    return levenshtein(part, target_base) <= max(1, len(target_base) // 4)


def extract_pattern(attacker_base: str, target_base: str) -> str:
    """
    Reduce an attacker label to the fragment surrounding the brand.

    login-paypal  -> 'login-'   (prefix form)
    paypal-secure -> '-secure'  (suffix form)
    paypa1        -> 'paypa1'   (no decoration, whole label)
    """
    parts = attacker_base.split('-')
    if len(parts) < 2:
        return attacker_base

    similar = [is_similar_part(p, target_base) for p in parts]
    if not any(similar):
        return attacker_base

    rest = [p for p, s in zip(parts, similar) if not s and p]
    if not rest:
        return attacker_base

    if similar[0]:
        return '-' + '-'.join(rest)
    return '-'.join(rest) + '-'


def matches_pattern(domain_base: str, pattern: Dict[str, Any]) -> bool:
    fragment = pattern['pattern']
    if pattern['is_generalized']:
        if fragment.endswith('-'):
            return domain_base.startswith(fragment)
        if fragment.startswith('-'):
            return domain_base.endswith(fragment)
        return False

    core = fragment.replace('-', '')
    return len(core) >= 3 and core in domain_base.replace('-', '')


def contains_learned_variant(domain_base: str, brand_base: str, attack_type: str) -> bool:
    """True when one hyphen part of the label is a homoglyph/typo variant of the brand"""
    for part in domain_base.split('-'):
        if len(part) < len(brand_base) - 1:
            continue
        if attack_type == 'homoglyph' and homoglyph_substitutions(part, brand_base):
            return True
        if attack_type == 'typosquat' and levenshtein(part, brand_base) in (1, 2):
            return True
    return False


def _brand_entry_names(domain: str, aliases) -> List[str]:
    names = [get_base_label(domain)]
    for alias in aliases or []:
        alias = alias.lower()
        if alias and alias not in names:
            names.append(alias)
    return names


def check_against_brand(domain: str, domain_base: str, brand_domain: str,
                        brand_name: str, aliases=None) -> Optional[Dict[str, Any]]:
    """
    Static lookalike check of one domain against one brand.
    Returns a partial result dict or None. The brand's own domain and its
    subdomains never match.
    """
    brand_domain = brand_domain.lower()
    if is_same_or_subdomain(domain, brand_domain):
        return None

    best = None
    for name in _brand_entry_names(brand_domain, aliases):
        attack_type = None
        confidence = 0.0

        substitutions = homoglyph_substitutions(domain_base, name)
        if substitutions:
            attack_type = 'homoglyph'
            confidence = max(0.5, 0.9 - (substitutions - 1) * 0.05)
        elif len(name) >= 4 and levenshtein(domain_base, name) in (1, 2):
            attack_type = 'typosquat'
            confidence = 0.85 if levenshtein(domain_base, name) == 1 else 0.7
        elif len(name) >= 3:
            candidates = [name + s for s in COUSIN_SUFFIXES] + [p + name for p in COUSIN_PREFIXES]
            if any(levenshtein(domain_base, c) <= 1 for c in candidates):
                attack_type = 'cousin'
                confidence = 0.75
            elif name in domain_base and len(domain_base) > len(name) + 2:
                attack_type = 'cousin'
                confidence = 0.65

        if attack_type and (best is None or confidence > best['base_confidence']):
            best = {
                'is_lookalike': True,
                'target_brand': brand_name,
                'target_domain': brand_domain,
                'attack_type': attack_type,
                'base_confidence': round(confidence, 4),
            }
    return best


class LookalikeLearner:
    """
    Owned store of tenant brands, detections and learned patterns.

    One instance per service; pass it to whatever needs it. Updates to the
    same (tenant, brand, attack type) key are serialized on a per-key lock,
    structural changes (new keys, generalization) on the store lock.
    """

    def __init__(self, audit_sink: Optional[AuditSink] = None):
        self.audit_sink = audit_sink or LoggingAuditSink()
        self._lock = threading.Lock()
        self._key_locks: Dict[Tuple, threading.Lock] = {}

        self._tenant_brands: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._detections = deque(maxlen=MAX_DETECTION_HISTORY)
        self._feedback = deque(maxlen=MAX_DETECTION_HISTORY)

        # (tenant, brand, attack_type) -> pattern
        self._patterns: Dict[Tuple, Dict[str, Any]] = {}
        # (tenant, attack_type, fragment) -> generalized pattern
        self._generalized: Dict[Tuple, Dict[str, Any]] = {}
        # (tenant, attacker domain) -> pattern keys it contributed to; oldest evicted first
        self._domain_index: Dict[Tuple, set] = {}

    def _key_lock(self, key: Tuple) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _index_domain(self, index_key: Tuple, pattern_key: Tuple):
        """Caller holds the store lock"""
        keys = self._domain_index.get(index_key)
        if keys is None:
            while len(self._domain_index) >= MAX_INDEXED_DOMAINS:
                self._domain_index.pop(next(iter(self._domain_index)))
            keys = self._domain_index[index_key] = set()
        keys.add(pattern_key)

    # ------------------------------------------------------------------
    # Tenant brands
    # ------------------------------------------------------------------

    def add_tenant_brand(self, tenant_id: str, brand: Dict[str, Any]) -> Dict[str, Any]:
        """Register (or replace) a brand for one tenant"""
        domain = normalize_domain(brand.get('domain'))
        if not domain:
            raise ValueError(f"Invalid brand domain: {brand.get('domain')!r}")

        entry = {
            'domain': domain,
            'brand_name': brand.get('brand_name') or brand.get('brand') or get_base_label(domain),
            'aliases': [a.lower() for a in brand.get('aliases') or []],
            'priority': brand.get('priority', 'medium'),
        }
        with self._lock:
            self._tenant_brands.setdefault(tenant_id, {})[domain] = entry
        logger.info(f"Added brand {entry['brand_name']} ({domain}) for tenant {tenant_id}")
        return dict(entry)

    def get_tenant_brands(self, tenant_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            brands = [dict(b) for b in self._tenant_brands.get(tenant_id, {}).values()]
        return sorted(brands, key=lambda b: PRIORITY_ORDER.get(b['priority'], 1))

    def remove_tenant_brand(self, tenant_id: str, domain: str):
        normalized = normalize_domain(domain)
        with self._lock:
            brands = self._tenant_brands.get(tenant_id, {})
            if normalized not in brands:
                raise BrandNotFoundError(tenant_id, domain)
            del brands[normalized]
        logger.info(f"Removed brand {normalized} for tenant {tenant_id}")

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def record_lookalike_detection(self, detection: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record a lookalike detection and fold it into the learned patterns.

        Args:
            detection: attacker_domain, target_brand, target_domain,
                       attack_type, confidence, optional timestamp and tenant_id

        Returns:
            Copy of the updated pattern
        """
        attacker = normalize_domain(detection['attacker_domain'])
        target_domain = normalize_domain(detection.get('target_domain')) or ''
        brand = detection['target_brand']
        attack_type = detection['attack_type']
        confidence = _clamp(float(detection.get('confidence', 0.0)))
        timestamp = detection.get('timestamp') or datetime.now()
        scope = detection.get('tenant_id')

        self._detections.append({
            'attacker_domain': attacker,
            'target_brand': brand,
            'target_domain': target_domain,
            'attack_type': attack_type,
            'confidence': confidence,
            'timestamp': timestamp,
            'tenant_id': scope,
        })

        key = (scope, brand, attack_type)
        with self._key_lock(key):
            with self._lock:
                pattern = self._patterns.get(key)
                if pattern is None:
                    pattern = {
                        'pattern': extract_pattern(get_base_label(attacker), get_base_label(target_domain)),
                        'target_brand': brand,
                        'target_domain': target_domain,
                        'attack_type': attack_type,
                        'occurrences': 0,
                        'average_confidence': confidence,
                        'is_generalized': False,
                        'last_seen': timestamp,
                        'feedback_score': 0.0,
                        'tenant_id': scope,
                    }
                    self._patterns[key] = pattern
                self._index_domain((scope, attacker), key)

            if pattern['occurrences']:
                now = datetime.now()
                old_weight = pattern['occurrences'] * _recency_weight(pattern['last_seen'], now)
                new_weight = _recency_weight(timestamp, now)
                if old_weight + new_weight > 0:
                    pattern['average_confidence'] = (
                        (pattern['average_confidence'] * old_weight + confidence * new_weight)
                        / (old_weight + new_weight)
                    )
                else:
                    pattern['average_confidence'] = (
                        (pattern['average_confidence'] * pattern['occurrences'] + confidence)
                        / (pattern['occurrences'] + 1)
                    )
                pattern['last_seen'] = max(pattern['last_seen'], timestamp)
            pattern['occurrences'] += 1
            snapshot = dict(pattern)

        self._generalize(scope, pattern)
        logger.debug(f"Recorded {attack_type} detection {attacker} -> {brand}")
        return snapshot

    def _generalize(self, scope, pattern: Dict[str, Any]):
        fragment = pattern['pattern']
        if not (fragment.startswith('-') or fragment.endswith('-')):
            return

        with self._lock:
            members = [
                p for (s, _, _), p in self._patterns.items()
                if s == scope and p['pattern'] == fragment and p['attack_type'] == pattern['attack_type']
            ]
            brands = {p['target_brand'] for p in members}
            if len(brands) < GENERALIZATION_MIN_BRANDS:
                return

            key = (scope, pattern['attack_type'], fragment)
            occurrences = sum(p['occurrences'] for p in members)
            existing = self._generalized.get(key)
            if existing is not None:
                existing['occurrences'] = max(existing['occurrences'], occurrences)
                existing['last_seen'] = max(existing['last_seen'], pattern['last_seen'])
                return

            self._generalized[key] = {
                'pattern': fragment,
                'target_brand': '*',
                'target_domain': '',
                'attack_type': pattern['attack_type'],
                'occurrences': occurrences,
                'average_confidence': sum(p['average_confidence'] for p in members) / len(members),
                'is_generalized': True,
                'last_seen': max(p['last_seen'] for p in members),
                'feedback_score': 0.0,
                'tenant_id': scope,
            }
        logger.info(f"Generalized pattern '{fragment}' across {len(brands)} brands")

    def record_feedback(self, feedback: Dict[str, Any]) -> int:
        """
        Apply analyst/user feedback for an attacker domain.

        Confirmed threats raise the feedback score and nudge the average up;
        false positives lower both. Correct-but-unconfirmed feedback leaves
        patterns unchanged.

        Returns:
            Number of patterns adjusted
        """
        attacker = normalize_domain(feedback['attacker_domain'])
        scope = feedback.get('tenant_id')
        was_correct = bool(feedback.get('was_correct'))
        confirmed = bool(feedback.get('confirmed_threat', was_correct))
        source = feedback.get('feedback_source', 'user')
        source_weight = FEEDBACK_SOURCE_WEIGHTS.get(source, 1.0)

        self._feedback.append({
            'attacker_domain': attacker,
            'was_correct': was_correct,
            'confirmed_threat': confirmed,
            'feedback_source': source,
            'tenant_id': scope,
            'timestamp': datetime.now(),
        })
        self.audit_sink.emit('feedback', scope, attacker_domain=attacker, was_correct=was_correct,
                             confirmed_threat=confirmed, feedback_source=source)

        if was_correct and confirmed:
            delta = POSITIVE_FEEDBACK_STEP * source_weight
        elif not was_correct:
            delta = -NEGATIVE_FEEDBACK_STEP * source_weight
        else:
            return 0

        base = get_base_label(attacker)
        with self._lock:
            keys = list(self._domain_index.get((scope, attacker), ()))
            targets = [(k, self._patterns[k]) for k in keys]
            if not targets:
                targets = [
                    (k, p) for k, p in self._patterns.items()
                    if k[0] == scope and matches_pattern(base, p)
                ]
            targets += [
                (('*',) + k, p) for k, p in self._generalized.items()
                if k[0] == scope and matches_pattern(base, p)
            ]

        for key, pattern in targets:
            with self._key_lock(key):
                pattern['feedback_score'] = _clamp(pattern['feedback_score'] + delta, -1.0, 1.0)
                if delta > 0:
                    pattern['average_confidence'] = min(1.0, pattern['average_confidence'] + POSITIVE_CONFIDENCE_NUDGE)
                else:
                    pattern['average_confidence'] = max(0.0, pattern['average_confidence'] - NEGATIVE_CONFIDENCE_NUDGE)

        logger.info(f"Feedback ({source}) for {attacker}: correct={was_correct}, "
                    f"{len(targets)} pattern(s) adjusted")
        return len(targets)

    def get_learned_patterns(self, brand: Optional[str] = None) -> List[Dict[str, Any]]:
        """Copies of all learned patterns, optionally filtered by target brand"""
        with self._lock:
            patterns = list(self._patterns.values()) + list(self._generalized.values())
            patterns = [dict(p) for p in patterns]
        if brand is not None:
            patterns = [p for p in patterns if p['target_brand'].lower() == brand.lower()]
        return sorted(patterns, key=lambda p: -p['occurrences'])

    def _scoped_patterns(self, tenant_id: Optional[str]) -> Tuple[List[Dict], List[Dict]]:
        scopes = {None, tenant_id}
        with self._lock:
            regular = [p for k, p in self._patterns.items() if k[0] in scopes]
            generalized = [p for k, p in self._generalized.items() if k[0] in scopes]
        return regular, generalized

    def calculate_adaptive_confidence(self, domain: str, base_confidence: float, brand: str,
                                      tenant_id: Optional[str] = None) -> float:
        """
        Adjust a static detector's confidence for `domain` impersonating
        `brand` using pattern history: positive feedback boosts, negative
        feedback penalizes, weighted by occurrence count.
        """
        base = get_base_label(normalize_domain(domain) or (domain or '').lower())
        brand_key = brand.lower()
        now = datetime.now()
        boost = 0.0
        penalty = 0.0

        regular, generalized = self._scoped_patterns(tenant_id)
        for pattern in regular + generalized:
            if pattern['is_generalized']:
                applies = matches_pattern(base, pattern)
            else:
                applies = pattern['target_brand'].lower() == brand_key and (
                    matches_pattern(base, pattern)
                    or (pattern['attack_type'] == 'cousin' and brand_key[:4] in base)
                )
            if not applies:
                continue

            occurrence_weight = min(10, pattern['occurrences']) / 10
            if pattern['feedback_score'] > 0:
                recency = math.exp(-_days_between(pattern['last_seen'], now) / RECENCY_WINDOW_DAYS)
                boost += pattern['feedback_score'] * 0.08 * (1 + occurrence_weight) * recency
            elif pattern['feedback_score'] < 0:
                penalty += abs(pattern['feedback_score']) * 0.1 * (1 + occurrence_weight)

        return _clamp(base_confidence + boost - penalty)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def _learning_adjustment(self, base: str, brand_name: str, tenant_id: Optional[str]) -> float:
        regular, generalized = self._scoped_patterns(tenant_id)
        adjustment = 0.0
        for pattern in regular:
            if pattern['target_brand'] != brand_name:
                continue
            if pattern['feedback_score'] > 0:
                adjustment += pattern['feedback_score'] * 0.05 * min(pattern['occurrences'], 10)
            elif pattern['feedback_score'] < 0 and matches_pattern(base, pattern):
                adjustment -= abs(pattern['feedback_score']) * 0.05 * min(pattern['occurrences'], 10)
        for pattern in generalized:
            if pattern['feedback_score'] > 0 and matches_pattern(base, pattern):
                adjustment += pattern['feedback_score'] * 0.05
        return adjustment

    def _finish(self, match: Dict[str, Any], adjustment: float,
                matched_pattern: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = _not_lookalike()
        result.update(match)
        final = _clamp(match['base_confidence'] + adjustment)
        result['learning_boost'] = round(adjustment, 4)
        result['final_confidence'] = round(final, 4)
        result['confidence'] = result['final_confidence']
        result['matched_pattern'] = dict(matched_pattern) if matched_pattern else None
        return result

    def _best_static_match(self, domain: str, base: str, brands) -> Optional[Dict[str, Any]]:
        best = None
        for brand_domain, brand_name, aliases in brands:
            match = check_against_brand(domain, base, brand_domain, brand_name, aliases)
            if match and (best is None or match['base_confidence'] > best['base_confidence']):
                best = match
        return best

    def detect_with_learning(self, tenant_id: Optional[str], domain: str) -> Dict[str, Any]:
        """
        Lookalike detection enhanced with learned patterns.

        Order: tenant brands, protected brands, learned variants of
        confirmed attacks, then generalized fragments. Exact brand domains
        and their subdomains are never flagged.
        """
        try:
            normalized = normalize_domain(domain)
            if not normalized or len(normalized) < 3 or '.' not in normalized:
                return _not_lookalike()

            base = get_base_label(normalized)

            all_brands = []
            if tenant_id:
                all_brands = [(b['domain'], b['brand_name'], b['aliases'])
                              for b in self.get_tenant_brands(tenant_id)]
            all_brands += [(b['domain'], b['brand'], b.get('aliases')) for b in PROTECTED_BRANDS]
            if any(is_same_or_subdomain(normalized, d.lower()) for d, _, _ in all_brands):
                return _not_lookalike()

            if tenant_id:
                tenant_brands = all_brands[:len(all_brands) - len(PROTECTED_BRANDS)]
                match = self._best_static_match(normalized, base, tenant_brands)
                if match:
                    return self._finish(match, self._learning_adjustment(base, match['target_brand'], tenant_id))

            match = self._best_static_match(normalized, base, all_brands[-len(PROTECTED_BRANDS):])
            if match:
                return self._finish(match, self._learning_adjustment(base, match['target_brand'], tenant_id))

            regular, generalized = self._scoped_patterns(tenant_id)
            for pattern in sorted(regular, key=lambda p: -p['feedback_score']):
                if pattern['feedback_score'] <= 0 or pattern['occurrences'] < 2:
                    continue
                target_base = get_base_label(pattern['target_domain']) if pattern['target_domain'] else ''
                if target_base and contains_learned_variant(base, target_base, pattern['attack_type']):
                    learned = {
                        'is_lookalike': True,
                        'target_brand': pattern['target_brand'],
                        'target_domain': pattern['target_domain'],
                        'attack_type': pattern['attack_type'],
                        'base_confidence': round(pattern['average_confidence'] * 0.9, 4),
                    }
                    boost = pattern['feedback_score'] * 0.1 * min(pattern['occurrences'], 10)
                    return self._finish(learned, boost, pattern)

            for pattern in sorted(generalized, key=lambda p: -p['feedback_score']):
                if pattern['feedback_score'] <= 0 or not matches_pattern(base, pattern):
                    continue
                learned = {
                    'is_lookalike': True,
                    'target_brand': pattern['target_brand'],
                    'target_domain': None,
                    'attack_type': pattern['attack_type'],
                    'base_confidence': round(pattern['average_confidence'] * 0.8, 4),
                }
                return self._finish(learned, pattern['feedback_score'] * 0.1, pattern)

            return _not_lookalike()

        except Exception as e:
            logger.error(f"Lookalike detection failed for {domain!r}: {e}")
            return _not_lookalike()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            by_type = defaultdict(int)
            for detection in self._detections:
                by_type[detection['attack_type']] += 1
            return {
                'tenants': len(self._tenant_brands),
                'tenant_brands': sum(len(b) for b in self._tenant_brands.values()),
                'detections': len(self._detections),
                'detections_by_type': dict(by_type),
                'feedback_events': len(self._feedback),
                'learned_patterns': len(self._patterns),
                'generalized_patterns': len(self._generalized),
            }
