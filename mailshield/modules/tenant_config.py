#!/usr/bin/env python3
"""
Tenant Configuration Store
Per-tenant detection thresholds, allowlists, industry presets and toggles.

A tenant's configuration is resolved in three layers:
    DEFAULT_TENANT_CONFIG <- INDUSTRY_PRESETS[industry] <- custom overrides
Every tenant holds an independent deep copy; callers receive copies too.
Tenants without a configuration get the default.
"""

import copy
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Any

from mailshield.errors import TenantNotFoundError

logger = logging.getLogger(__name__)

INDUSTRIES = (
    'financial', 'healthcare', 'technology', 'retail', 'manufacturing',
    'education', 'government', 'legal', 'media', 'other',
)

CATEGORIES = ('phishing', 'malware', 'spam', 'bec', 'impersonation')
SIGNALS = ('url_risk', 'attachment_risk', 'brand_impersonation', 'reputation_risk', 'qr_code_risk')
MODULES = ('enable_brand_protection', 'enable_qr_detection', 'enable_url_classification', 'enable_attachment_sandbox')

STRICT_MODE_MULTIPLIER = 1.2

DEFAULT_TENANT_CONFIG = {
    'tenant_id': 'default',
    'name': 'Default Configuration',
    'industry': None,
    'thresholds': {
        'min_detection_score': 40,
        'categories': {
            'phishing': 35,
            'malware': 30,
            'spam': 50,
            'bec': 40,
            'impersonation': 45,
        },
        'signals': {
            'url_risk': 50,
            'attachment_risk': 40,
            'brand_impersonation': 45,
            'reputation_risk': 55,
            'qr_code_risk': 50,
        },
    },
    'allowlists': {
        'domains': [],
        'senders': [],
        'ip_ranges': [],
        'tracking_domains': [],
        'partner_domains': [],
    },
    'settings': {
        'enable_brand_protection': True,
        'enable_qr_detection': True,
        'enable_url_classification': True,
        'enable_attachment_sandbox': True,
        'quarantine_threshold': 50,
        'block_threshold': 70,
        'notify_on_quarantine': True,
        'notify_on_block': True,
        'strict_mode': False,
        'learning_mode': False,
    },
}


def _preset(min_score, categories, signals, **settings):
    return {
        'thresholds': {
            'min_detection_score': min_score,
            'categories': dict(zip(CATEGORIES, categories)),
            'signals': dict(zip(SIGNALS, signals)),
        },
        'settings': settings,
    }


# categories: phishing, malware, spam, bec, impersonation
# signals: url, attachment, brand, reputation, qr
INDUSTRY_PRESETS = {
    'financial': _preset(30, (25, 25, 45, 30, 30), (40, 35, 35, 45, 40),
                         strict_mode=True, quarantine_threshold=40, block_threshold=60),
    'healthcare': _preset(35, (30, 25, 50, 35, 40), (45, 35, 40, 50, 45),
                          strict_mode=True, quarantine_threshold=45, block_threshold=65),
    'technology': _preset(45, (40, 35, 55, 45, 50), (55, 45, 50, 55, 55),
                          strict_mode=False, quarantine_threshold=55, block_threshold=75),
    'retail': _preset(40, (35, 30, 45, 40, 40), (50, 40, 40, 50, 45),
                      quarantine_threshold=50, block_threshold=70),
    'manufacturing': _preset(38, (35, 30, 50, 35, 40), (50, 38, 45, 50, 50),
                             quarantine_threshold=48, block_threshold=68),
    'education': _preset(45, (40, 35, 50, 45, 45), (55, 45, 50, 55, 55),
                         strict_mode=False, quarantine_threshold=55, block_threshold=75),
    'government': _preset(30, (25, 20, 40, 25, 30), (40, 30, 35, 40, 40),
                          strict_mode=True, quarantine_threshold=35, block_threshold=55),
    'legal': _preset(35, (30, 25, 45, 30, 35), (45, 35, 40, 45, 50),
                     strict_mode=True, quarantine_threshold=45, block_threshold=65),
    'media': _preset(45, (40, 35, 50, 45, 45), (55, 45, 50, 55, 55),
                     quarantine_threshold=55, block_threshold=75),
    'other': {},
}


def _merge_thresholds(base: Dict, overrides: Optional[Dict]):
    if not overrides:
        return
    if 'min_detection_score' in overrides:
        base['min_detection_score'] = overrides['min_detection_score']
    base['categories'].update(overrides.get('categories') or {})
    base['signals'].update(overrides.get('signals') or {})


def _industry_baseline(industry: Optional[str]) -> Dict[str, Any]:
    """Thresholds and settings of DEFAULT_TENANT_CONFIG with the industry preset applied"""
    baseline = {
        'thresholds': copy.deepcopy(DEFAULT_TENANT_CONFIG['thresholds']),
        'settings': dict(DEFAULT_TENANT_CONFIG['settings']),
    }
    preset = INDUSTRY_PRESETS.get(industry) or {}
    _merge_thresholds(baseline['thresholds'], preset.get('thresholds'))
    baseline['settings'].update(preset.get('settings') or {})
    return baseline


def _rebase_industry(config: Dict[str, Any], old_industry: Optional[str], new_industry: Optional[str]):
    """Move preset-derived values to the new industry; customized values stay"""
    old = _industry_baseline(old_industry)
    new = _industry_baseline(new_industry)

    thresholds = config['thresholds']
    if thresholds['min_detection_score'] == old['thresholds']['min_detection_score']:
        thresholds['min_detection_score'] = new['thresholds']['min_detection_score']
    for group in ('categories', 'signals'):
        for key, value in new['thresholds'][group].items():
            if thresholds[group].get(key) == old['thresholds'][group][key]:
                thresholds[group][key] = value
    for key, value in new['settings'].items():
        if config['settings'].get(key) == old['settings'][key]:
            config['settings'][key] = value


def _normalize_list(values) -> List[str]:
    seen = []
    for value in values or []:
        value = value.strip().lower()
        if value and value not in seen:
            seen.append(value)
    return seen


def _domain_matches(domain: str, entries: List[str]) -> bool:
    return any(domain == d or domain.endswith('.' + d) for d in entries)


class TenantConfigStore:
    """Owned, thread-safe map of tenant id -> resolved configuration"""

    def __init__(self):
        self._configs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_tenant_config(self, tenant_id: str, name: str, industry: Optional[str] = None,
                             custom_thresholds: Optional[Dict] = None,
                             custom_allowlists: Optional[Dict] = None,
                             custom_settings: Optional[Dict] = None) -> Dict[str, Any]:
        """Resolve defaults <- industry preset <- overrides and store the result"""
        config = copy.deepcopy(DEFAULT_TENANT_CONFIG)
        config['tenant_id'] = tenant_id
        config['name'] = name

        if industry:
            if industry not in INDUSTRY_PRESETS:
                logger.warning(f"Unknown industry {industry!r} for tenant {tenant_id}, using defaults")
            else:
                preset = INDUSTRY_PRESETS[industry]
                config['industry'] = industry
                _merge_thresholds(config['thresholds'], preset.get('thresholds'))
                config['settings'].update(preset.get('settings') or {})

        _merge_thresholds(config['thresholds'], copy.deepcopy(custom_thresholds))
        for key, values in (custom_allowlists or {}).items():
            config['allowlists'][key] = _normalize_list(values)
        config['settings'].update(custom_settings or {})

        now = datetime.now()
        config['created_at'] = now
        config['updated_at'] = now

        with self._lock:
            self._configs[tenant_id] = config
        logger.info(f"Created config for tenant {tenant_id} (industry={config['industry']})")
        return copy.deepcopy(config)

    def get_tenant_config(self, tenant_id: str) -> Dict[str, Any]:
        """Tenant's configuration, or a copy of the default when none exists"""
        with self._lock:
            config = self._configs.get(tenant_id)
            if config is None:
                return copy.deepcopy(DEFAULT_TENANT_CONFIG)
            return copy.deepcopy(config)

    def has_tenant(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._configs

    def _require(self, tenant_id: str) -> Dict[str, Any]:
        config = self._configs.get(tenant_id)
        if config is None:
            raise TenantNotFoundError(tenant_id)
        return config

    def update_tenant_config(self, tenant_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            config = self._require(tenant_id)
            updates = copy.deepcopy(updates)

            if 'name' in updates:
                config['name'] = updates['name']
            industry = updates.get('industry', config['industry'])
            if industry != config['industry']:
                if industry is not None and industry not in INDUSTRY_PRESETS:
                    logger.warning(f"Unknown industry {industry!r} for tenant {tenant_id}, keeping "
                                   f"{config['industry']!r}")
                else:
                    _rebase_industry(config, config['industry'], industry)
                    config['industry'] = industry
            _merge_thresholds(config['thresholds'], updates.get('thresholds'))
            for key, values in (updates.get('allowlists') or {}).items():
                config['allowlists'][key] = _normalize_list(values)
            config['settings'].update(updates.get('settings') or {})
            config['updated_at'] = datetime.now()

            logger.info(f"Updated config for tenant {tenant_id}")
            return copy.deepcopy(config)

    def delete_tenant_config(self, tenant_id: str) -> bool:
        with self._lock:
            return self._configs.pop(tenant_id, None) is not None

    def get_all_tenant_ids(self) -> List[str]:
        with self._lock:
            return list(self._configs.keys())

    def clear(self):
        with self._lock:
            self._configs.clear()

    # ------------------------------------------------------------------
    # Allowlists
    # ------------------------------------------------------------------

    def _add_to_list(self, tenant_id: str, list_name: str, value: str) -> bool:
        value = value.strip().lower()
        with self._lock:
            config = self._require(tenant_id)
            entries = config['allowlists'][list_name]
            if value in entries:
                return False
            entries.append(value)
            config['updated_at'] = datetime.now()
            return True

    def add_allowlist_domain(self, tenant_id: str, domain: str) -> bool:
        """Returns False when the domain was already allowlisted"""
        return self._add_to_list(tenant_id, 'domains', domain)

    def remove_allowlist_domain(self, tenant_id: str, domain: str) -> bool:
        domain = domain.strip().lower()
        with self._lock:
            config = self._require(tenant_id)
            entries = config['allowlists']['domains']
            if domain not in entries:
                return False
            entries.remove(domain)
            config['updated_at'] = datetime.now()
            return True

    def add_tracking_domain(self, tenant_id: str, domain: str) -> bool:
        return self._add_to_list(tenant_id, 'tracking_domains', domain)

    def is_domain_allowlisted(self, tenant_id: str, domain: str) -> bool:
        """Allowlisted or partner domain, exact or subdomain"""
        domain = (domain or '').strip().lower()
        if not domain:
            return False
        allowlists = self.get_tenant_config(tenant_id)['allowlists']
        return (_domain_matches(domain, allowlists['domains'])
                or _domain_matches(domain, allowlists['partner_domains']))

    def is_sender_allowlisted(self, tenant_id: str, sender: str) -> bool:
        sender = (sender or '').strip().lower()
        return bool(sender) and sender in self.get_tenant_config(tenant_id)['allowlists']['senders']

    def is_tracking_domain(self, tenant_id: str, domain: str) -> bool:
        domain = (domain or '').strip().lower()
        return bool(domain) and _domain_matches(domain, self.get_tenant_config(tenant_id)['allowlists']['tracking_domains'])

    # ------------------------------------------------------------------
    # Thresholds and scoring
    # ------------------------------------------------------------------

    def get_category_threshold(self, tenant_id: str, category: str) -> float:
        thresholds = self.get_tenant_config(tenant_id)['thresholds']
        value = thresholds['categories'].get(category)
        return thresholds['min_detection_score'] if value is None else value

    def get_signal_threshold(self, tenant_id: str, signal: str) -> float:
        thresholds = self.get_tenant_config(tenant_id)['thresholds']
        value = thresholds['signals'].get(signal)
        return thresholds['min_detection_score'] if value is None else value

    def is_module_enabled(self, tenant_id: str, module: str) -> bool:
        return bool(self.get_tenant_config(tenant_id)['settings'].get(module, False))

    def apply_tenant_scoring(self, tenant_id: str, base_score: float,
                             category: Optional[str] = None) -> Dict[str, Any]:
        """
        Adjust a 0-100 threat score for the tenant and map it to an action.

        Strict mode boosts the score by 20% (capped at 100). In learning
        mode the action is always 'allow'; the action that would have been
        taken is reported as 'would_action'.
        """
        config = self.get_tenant_config(tenant_id)
        settings = config['settings']

        threshold = config['thresholds']['min_detection_score']
        if category:
            threshold = self.get_category_threshold(tenant_id, category)

        adjusted = base_score
        if settings.get('strict_mode'):
            adjusted = min(100, base_score * STRICT_MODE_MULTIPLIER)

        if adjusted >= settings['block_threshold']:
            action = 'block'
        elif adjusted >= settings['quarantine_threshold']:
            action = 'quarantine'
        else:
            action = 'allow'

        result = {
            'adjusted_score': adjusted,
            'action': action,
            'would_action': action,
            'detection_threshold': threshold,
            'detected': adjusted >= threshold,
        }
        if settings.get('learning_mode'):
            result['action'] = 'allow'
        return result
