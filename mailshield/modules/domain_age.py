#!/usr/bin/env python3
"""
Domain Age Detection Module
Checks domain registration age to flag newly registered (disposable) domains

Features:
- WHOIS lookup through the system `whois` binary with a hard timeout
- Creation/expiry/updated date, registrar and registrant parsing
- Age tiers: <7d critical, <30d high, <90d medium, <365d low
- Suspicious TLD and privacy-protected registrant adjustments
- Quick heuristic risk without any lookup
- Batched checks of several domains in parallel

A failed lookup is reported as `unknown` with an indicator, never as safe.
"""

import re
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any

from mailshield import config
from mailshield.modules.brand_impersonation import normalize_domain, get_registrable_domain

logger = logging.getLogger(__name__)

# Risk thresholds in days
AGE_CRITICAL_DAYS = 7
AGE_HIGH_DAYS = 30
AGE_MEDIUM_DAYS = 90
AGE_LOW_DAYS = 365

EXPIRING_SOON_DAYS = 30
BATCH_SIZE = 5

DEFAULT_TRUSTED_DOMAINS = [
    'google.com', 'microsoft.com', 'apple.com', 'amazon.com', 'facebook.com',
    'twitter.com', 'linkedin.com', 'github.com', 'cloudflare.com', 'amazonaws.com',
    'azure.com', 'salesforce.com', 'shopify.com', 'stripe.com', 'zoom.us',
    'slack.com', 'dropbox.com', 'box.com', 'atlassian.com', 'zendesk.com',
]

SUSPICIOUS_TLDS = {
    'tk', 'ml', 'ga', 'cf', 'gq',
    'xyz', 'top', 'club', 'online', 'site', 'work', 'click', 'link',
    'loan', 'win', 'racing', 'review', 'stream', 'download',
}


def load_trusted_domains() -> set:
    """Trusted domains from trusted_domains.json ({"domains": [...]}), built-ins otherwise"""
    data = config.load_json_config('trusted_domains.json', {'domains': DEFAULT_TRUSTED_DOMAINS})
    return {d.lower() for d in data.get('domains', DEFAULT_TRUSTED_DOMAINS)}


TRUSTED_DOMAINS = load_trusted_domains()


def parse_whois_date(date_str: str) -> Optional[datetime]:
    """
    Parse various whois date formats into a naive datetime
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    # Timezone offsets, fractional seconds and trailing Z
    date_str = re.sub(r'\+\d{2}:?\d{2}$', '', date_str).strip()
    date_str = re.sub(r'\.\d*Z?$', '', date_str).strip()
    date_str = date_str.rstrip('Z').strip()

    date_formats = [
        '%Y-%m-%dT%H:%M:%S',
        '%Y-%m-%d %H:%M:%S',
        '%Y-%m-%d',
        '%d-%b-%Y',
        '%d %b %Y',
        '%Y/%m/%d',
        '%Y.%m.%d',
        '%d.%m.%Y',
        '%B %d, %Y',
        '%b %d, %Y',
    ]

    for fmt in date_formats:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue

    return None


CREATION_PATTERNS = [
    r'Creation Date:\s*(.+)',
    r'Created On:\s*(.+)',
    r'Created:\s*(.+)',
    r'Registration Date:\s*(.+)',
    r'Domain Registration Date:\s*(.+)',
]

EXPIRY_PATTERNS = [
    r'Registry Expiry Date:\s*(.+)',
    r'Registrar Registration Expiration Date:\s*(.+)',
    r'Expir(?:y|ation) Date:\s*(.+)',
    r'Expires On:\s*(.+)',
    r'Expires:\s*(.+)',
    r'paid-till:\s*(.+)',
]

UPDATED_PATTERNS = [
    r'Updated Date:\s*(.+)',
    r'Last Updated On:\s*(.+)',
    r'Last Modified:\s*(.+)',
    r'changed:\s*(.+)',
]


def _first_date(patterns: List[str], text: str) -> Optional[datetime]:
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            parsed = parse_whois_date(match.group(1))
            if parsed:
                return parsed
    return None


def _first_value(patterns: List[str], text: str) -> Optional[str]:
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def parse_whois_output(domain: str, whois_output: str) -> Dict[str, Any]:
    """Extract dates, registrar and registrant fields from raw whois text"""
    result = {
        'domain': domain,
        'created': None,
        'expires': None,
        'updated': None,
        'registrar': None,
        'registrant_name': None,
        'registrant_org': None,
        'country': None,
        'error': None,
    }

    if not whois_output or 'No match' in whois_output or 'NOT FOUND' in whois_output.upper():
        result['error'] = 'Domain not found'
        return result

    result['created'] = _first_date(CREATION_PATTERNS, whois_output)
    result['expires'] = _first_date(EXPIRY_PATTERNS, whois_output)
    result['updated'] = _first_date(UPDATED_PATTERNS, whois_output)
    result['registrar'] = _first_value([r'Registrar:\s*(.+)'], whois_output)
    result['registrant_name'] = _first_value([r'Registrant Name:\s*(.+)'], whois_output)
    result['registrant_org'] = _first_value([r'Registrant Organi[sz]ation:\s*(.+)', r'org:\s*(.+)'], whois_output)

    country = _first_value([r'Registrant Country:\s*(.+)', r'country:\s*(.+)'], whois_output)
    if country:
        result['country'] = country[:2].upper()

    return result


def get_domain_whois(domain: str, timeout: Optional[int] = None) -> Dict[str, Any]:
    """
    Get whois information for a domain.
    Errors (timeout, missing binary, unknown domain) are reported in 'error'.
    """
    try:
        proc = subprocess.run(
            ['whois', domain],
            capture_output=True,
            text=True,
            timeout=timeout or config.WHOIS_TIMEOUT
        )
        return parse_whois_output(domain, proc.stdout)

    except subprocess.TimeoutExpired:
        logger.warning(f"Whois timeout for {domain}")
        result = parse_whois_output(domain, '')
        result['error'] = 'Whois timeout'
        return result
    except Exception as e:
        logger.warning(f"Whois lookup error for {domain}: {e}")
        result = parse_whois_output(domain, '')
        result['error'] = str(e)
        return result


def extract_root_domain(domain: str) -> str:
    normalized = normalize_domain(domain) or (domain or '').strip().lower()
    return get_registrable_domain(normalized)


def get_tld(domain: str) -> str:
    return domain.rsplit('.', 1)[-1]


def is_trusted_domain(domain: str) -> bool:
    return extract_root_domain(domain) in TRUSTED_DOMAINS


def _age_result(domain: str, risk_level: str, risk_score: float, indicators: List[str],
                whois_data: Optional[Dict] = None, age_days: Optional[int] = None) -> Dict[str, Any]:
    return {
        'domain': domain,
        'age_days': age_days,
        'created_date': whois_data.get('created') if whois_data else None,
        'risk_level': risk_level,
        'risk_score': round(risk_score, 4),
        'indicators': indicators,
        'whois_data': whois_data,
    }


def check_domain_age(domain: str, whois_lookup: Optional[Callable[[str], Dict]] = None,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Check domain age and assess risk.

    Args:
        domain: Domain, URL or address (reduced to its registrable domain)
        whois_lookup: Callable returning a get_domain_whois()-style dict
        now: Reference time, defaults to datetime.now()

    Returns:
        {
            'domain': str,
            'age_days': int or None,
            'created_date': datetime or None,
            'risk_level': 'low' | 'medium' | 'high' | 'critical' | 'unknown',
            'risk_score': float,
            'indicators': list,
            'whois_data': dict or None
        }
    """
    root = extract_root_domain(domain)
    indicators = []

    if root in TRUSTED_DOMAINS:
        return _age_result(root, 'low', 0.1, ['trusted_domain'])

    tld = get_tld(root)
    suspicious_tld = tld in SUSPICIOUS_TLDS
    if suspicious_tld:
        indicators.append(f'suspicious_tld:{tld}')

    lookup = whois_lookup or get_domain_whois
    try:
        whois_data = lookup(root)
    except Exception as e:
        logger.warning(f"Whois lookup failed for {root}: {e}")
        whois_data = {'error': str(e)}

    if whois_data.get('error') and not whois_data.get('created'):
        return _age_result(root, 'unknown', 0.5, ['whois_lookup_failed'] + indicators, whois_data)

    created = whois_data.get('created')
    if not created:
        return _age_result(root, 'unknown', 0.5, ['no_creation_date'] + indicators, whois_data)

    now = now or datetime.now()
    age_days = (now - created).days

    if age_days < AGE_CRITICAL_DAYS:
        risk_level, risk_score = 'critical', 0.95
        indicators.append('newly_registered_critical')
    elif age_days < AGE_HIGH_DAYS:
        risk_level, risk_score = 'high', 0.8
        indicators.append('newly_registered_high')
    elif age_days < AGE_MEDIUM_DAYS:
        risk_level, risk_score = 'medium', 0.5
        indicators.append('recently_registered')
    elif age_days < AGE_LOW_DAYS:
        risk_level, risk_score = 'low', 0.3
        indicators.append('established_domain')
    else:
        risk_level, risk_score = 'low', 0.1
        indicators.append('mature_domain')

    if suspicious_tld:
        risk_score = min(1.0, risk_score + 0.15)
        if risk_level == 'low' and risk_score >= 0.4:
            risk_level = 'medium'

    registrant = ' '.join(filter(None, [whois_data.get('registrant_name'), whois_data.get('registrant_org')])).lower()
    if 'privacy' in registrant or 'redacted' in registrant:
        indicators.append('privacy_protected')
        if age_days < AGE_MEDIUM_DAYS:
            risk_score = min(1.0, risk_score + 0.1)

    # Short registrations are typical of throwaway domains
    expires = whois_data.get('expires')
    if expires and (expires - now).days <= EXPIRING_SOON_DAYS:
        indicators.append(f'expiring_soon:{(expires - now).days}d')
        risk_score = min(1.0, risk_score + 0.1)

    return _age_result(root, risk_level, risk_score, indicators, whois_data, age_days)


def quick_domain_age_risk(domain: str) -> Dict[str, str]:
    """
    Heuristic risk without a WHOIS lookup.
    Returns {'risk_level': ..., 'reason': ...}; 'unknown' means a lookup is needed.
    """
    root = extract_root_domain(domain)

    if root in TRUSTED_DOMAINS:
        return {'risk_level': 'low', 'reason': 'trusted_domain'}

    tld = get_tld(root)
    if tld in SUSPICIOUS_TLDS:
        return {'risk_level': 'high', 'reason': f'suspicious_tld:{tld}'}

    if re.search(r'\d{4,}', root):
        return {'risk_level': 'medium', 'reason': 'numeric_pattern'}

    if len(root) > 30:
        return {'risk_level': 'medium', 'reason': 'long_domain'}

    if root.count('-') > 3:
        return {'risk_level': 'medium', 'reason': 'excessive_hyphens'}

    return {'risk_level': 'unknown', 'reason': 'needs_whois_lookup'}


def check_multiple_domain_ages(domains: List[str],
                               whois_lookup: Optional[Callable[[str], Dict]] = None) -> Dict[str, Dict]:
    """Check several domains, BATCH_SIZE lookups at a time, keyed by root domain"""
    unique = []
    for domain in domains:
        root = extract_root_domain(domain)
        if root and root not in unique:
            unique.append(root)

    results = {}
    with ThreadPoolExecutor(max_workers=BATCH_SIZE) as executor:
        for result in executor.map(lambda d: check_domain_age(d, whois_lookup), unique):
            results[result['domain']] = result
    return results


if __name__ == '__main__':
    import sys

    logging.basicConfig(level=logging.INFO)
    for name in sys.argv[1:] or ['google.com', 'example.com']:
        analysis = check_domain_age(name)
        print(f"{analysis['domain']}: {analysis['risk_level']} ({analysis['risk_score']}) "
              f"age={analysis['age_days']} indicators={analysis['indicators']}")
