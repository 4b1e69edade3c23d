#!/usr/bin/env python3
"""
Brand Impersonation Analyzer
Checks sender and link domains against the protected brand registry.

Three independent checks run for every brand name and alias:
- Homoglyph: same length, every character either equal or a known
  confusable, at least one substitution (confidence 0.9-1.0)
- Typosquat: omission, duplication, adjacent-key and transposition
  variants of the brand name (confidence 0.85)
- Cousin domain: brand name decorated with a known prefix/suffix, or
  starting a hyphen-separated segment of the label (confidence 0.75)

Results are deduplicated to one match per brand, highest confidence first.
Domains that are the brand's own domain or one of its subdomains are never
reported for that brand.
"""

import re
import logging
from typing import Dict, List, Optional, Any, Iterable
from urllib.parse import urlparse

from mailshield.modules.brand_registry import (
    PROTECTED_BRANDS, HOMOGLYPHS, ADJACENT_KEYS,
    COUSIN_PREFIXES, COUSIN_SUFFIXES, SECOND_LEVEL_TLDS,
)

logger = logging.getLogger(__name__)

HOMOGLYPH_THRESHOLD = 0.85
TYPOSQUAT_CONFIDENCE = 0.85
COUSIN_CONFIDENCE = 0.75
DISPLAY_NAME_CONFIDENCE = 0.8
MIN_BRAND_LENGTH = 3


# ============================================================================
# DOMAIN NORMALIZATION
# ============================================================================

def normalize_domain(value: Optional[str]) -> str:
    """
    Reduce an email address, URL or hostname to a lower-case hostname.
    Punycode labels are decoded so look-alike characters can be compared.
    Returns '' for unusable input.
    """
    if not value or not isinstance(value, str):
        return ''

    candidate = value.strip().lower()
    if '://' in candidate:
        try:
            candidate = urlparse(candidate).hostname or ''
        except ValueError:
            return ''
    else:
        if '@' in candidate:
            candidate = candidate.rsplit('@', 1)[1]
        candidate = re.split(r'[/?#]', candidate, maxsplit=1)[0]
        candidate = candidate.split(':', 1)[0]

    candidate = candidate.strip('.').strip()
    if not candidate or ' ' in candidate:
        return ''

    labels = []
    for label in candidate.split('.'):
        if label.startswith('xn--'):
            try:
                label = label.encode('ascii').decode('idna')
            except UnicodeError:
                pass
        labels.append(label)
    return '.'.join(labels)


def get_registrable_domain(domain: str) -> str:
    """Last two labels, or last three under a two-level public suffix"""
    parts = domain.split('.')
    if len(parts) > 2 and '.'.join(parts[-2:]) in SECOND_LEVEL_TLDS:
        return '.'.join(parts[-3:])
    if len(parts) > 2:
        return '.'.join(parts[-2:])
    return domain


def get_base_label(domain: str) -> str:
    """The label immediately left of the public suffix (paypal for www.paypal.co.uk)"""
    return get_registrable_domain(domain).split('.')[0]


def is_same_or_subdomain(domain: str, parent: str) -> bool:
    parent = parent.lower()
    return domain == parent or domain.endswith('.' + parent)


# ============================================================================
# STRING SIMILARITY
# ============================================================================

def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings"""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def is_homoglyph(test_char: str, target_char: str) -> bool:
    if test_char == target_char:
        return True
    return test_char in HOMOGLYPHS.get(target_char, [])


def homoglyph_substitutions(test: str, target: str) -> int:
    """
    Number of confusable substitutions turning `target` into `test`.
    Returns 0 when the strings are not a pure homoglyph variant.
    """
    if len(test) != len(target) or test == target:
        return 0

    substitutions = 0
    for test_char, target_char in zip(test, target):
        if test_char == target_char:
            continue
        if not is_homoglyph(test_char, target_char):
            return 0
        substitutions += 1
    return substitutions


def homoglyph_similarity(test: str, target: str) -> float:
    """0.9-1.0 for a homoglyph variant (denser substitution scores higher), else 0"""
    substitutions = homoglyph_substitutions(test, target)
    if not substitutions:
        return 0.0
    return 0.9 + (substitutions / len(test)) * 0.1


def generate_typosquats(name: str) -> set:
    """Omission, duplication, adjacent-key and transposition variants of a name"""
    variants = set()
    for i in range(len(name)):
        variants.add(name[:i] + name[i + 1:])
        variants.add(name[:i] + name[i] + name[i:])
        for adjacent in ADJACENT_KEYS.get(name[i], []):
            variants.add(name[:i] + adjacent + name[i + 1:])
        if i < len(name) - 1:
            variants.add(name[:i] + name[i + 1] + name[i] + name[i + 2:])
    variants.discard(name)
    return variants


def is_typosquat(test_base: str, name: str) -> bool:
    if len(name) < MIN_BRAND_LENGTH or test_base == name:
        return False
    return test_base in generate_typosquats(name)


def cousin_pattern(test_base: str, name: str) -> Optional[str]:
    """
    Describe how `test_base` decorates the brand name, or None.
    Brand names shorter than three characters are never matched.
    """
    if len(name) < MIN_BRAND_LENGTH or name not in test_base or test_base == name:
        return None

    for suffix in COUSIN_SUFFIXES:
        if name + suffix in test_base:
            return f'cousin domain with suffix "{suffix}"'
    for prefix in COUSIN_PREFIXES:
        if prefix + name in test_base:
            return f'cousin domain with prefix "{prefix}"'

    # Brand must start a hyphen-separated segment (rejects mybrandish)
    start = test_base.find(name)
    while start >= 0:
        if start == 0 or test_base[start - 1] == '-':
            return 'cousin domain containing brand name'
        start = test_base.find(name, start + 1)

    return None


# ============================================================================
# BRAND CHECKS
# ============================================================================

def brand_names(brand: Dict[str, Any]) -> List[str]:
    """Base label of the brand's domain followed by its aliases"""
    names = [get_base_label(brand['domain'].lower())]
    for alias in brand.get('aliases') or []:
        alias = alias.lower()
        if alias not in names:
            names.append(alias)
    return names


def _brand_match(brand: Dict[str, Any], attack_type: str, confidence: float, detail: str) -> Dict[str, Any]:
    return {
        'brand': brand['brand'],
        'domain': brand['domain'],
        'category': brand.get('category', 'enterprise'),
        'attack_type': attack_type,
        'confidence': round(confidence, 4),
        'detail': detail,
    }


def check_brand(domain: str, test_base: str, brand: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Best match of `domain` against one brand across all its names, or None"""
    if is_same_or_subdomain(domain, brand['domain']):
        return None

    best = None
    for name in brand_names(brand):
        match = None
        similarity = homoglyph_similarity(test_base, name)
        if similarity > HOMOGLYPH_THRESHOLD:
            match = _brand_match(
                brand, 'homoglyph', similarity,
                f'Domain "{domain}" uses homoglyph characters to impersonate {brand["brand"]}')
        elif is_typosquat(test_base, name):
            match = _brand_match(
                brand, 'typosquat', TYPOSQUAT_CONFIDENCE,
                f'Domain "{domain}" appears to be a typosquat of {brand["brand"]}')
        else:
            pattern = cousin_pattern(test_base, name)
            if pattern:
                match = _brand_match(
                    brand, 'cousin', COUSIN_CONFIDENCE,
                    f'Domain "{domain}" is a {pattern} of {brand["brand"]}')

        if match and (best is None or match['confidence'] > best['confidence']):
            best = match
    return best


def dedupe_brand_matches(matches: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Keep the highest-confidence match per brand, then order by confidence
    with longer canonical base names first on ties.
    """
    best = {}
    for match in matches:
        current = best.get(match['brand'])
        if current is None or match['confidence'] > current['confidence']:
            best[match['brand']] = match

    return sorted(
        best.values(),
        key=lambda m: (-m['confidence'], -len(get_base_label(m['domain'].lower())))
    )


def detect_brand_impersonation(domain: str, brands: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """
    Detect brand impersonation in a domain, URL or address.

    Args:
        domain: Candidate domain (URLs and addresses are reduced to their host)
        brands: Registry to check against, PROTECTED_BRANDS by default

    Returns:
        List of brand matches, one per brand, strongest first. Empty for
        unusable input.
    """
    try:
        normalized = normalize_domain(domain)
        if not normalized or '.' not in normalized:
            return []

        test_base = get_base_label(normalized)
        matches = []
        for brand in brands if brands is not None else PROTECTED_BRANDS:
            match = check_brand(normalized, test_base, brand)
            if match:
                matches.append(match)

        return dedupe_brand_matches(matches)

    except Exception as e:
        logger.error(f"Brand impersonation check failed for {domain!r}: {e}")
        return []


def detect_display_name_brand_spoof(display_name: str, sender_domain: str) -> Optional[Dict[str, Any]]:
    """
    Flag a display name that names a brand while the sender domain does not
    contain that brand's base name ("PayPal Support" <x@mailer.ru>).
    """
    if not display_name:
        return None

    try:
        name_lower = display_name.lower()
        domain_lower = normalize_domain(sender_domain) or (sender_domain or '').lower()

        for brand in PROTECTED_BRANDS:
            base = get_base_label(brand['domain'])
            candidates = [base, brand['brand'].lower()] + [a.lower() for a in brand.get('aliases') or []]

            for candidate in candidates:
                if len(candidate) < 2:
                    continue
                if not re.search(r'(?<![a-z0-9])' + re.escape(candidate) + r'(?![a-z0-9])', name_lower):
                    continue
                if base in domain_lower:
                    break
                return _brand_match(
                    brand, 'exact', DISPLAY_NAME_CONFIDENCE,
                    f'Display name "{display_name}" impersonates {brand["brand"]} but sent from {sender_domain}')

        return None

    except Exception as e:
        logger.error(f"Display name brand check failed: {e}")
        return None


def get_protected_brand_domains() -> List[str]:
    return [b['domain'] for b in PROTECTED_BRANDS]


def is_protected_brand(domain: str) -> bool:
    """True when the domain is a protected brand domain or one of its subdomains"""
    normalized = normalize_domain(domain)
    if not normalized:
        return False
    return any(is_same_or_subdomain(normalized, b['domain']) for b in PROTECTED_BRANDS)
