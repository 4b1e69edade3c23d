#!/usr/bin/env python3
"""
BEC Pattern Library
Keyword and regex matchers for Business Email Compromise language.

Features:
- Wire transfer, gift card, invoice and payroll fraud language
- Urgency, secrecy and authority pressure tactics
- Credential harvesting requests
- Monetary amount extraction and amount risk tiers
- Compound attack detection (financial request + pressure)

All functions are pure: no I/O, no shared state, no time dependence.
"""

import re
import logging
from typing import Dict, List, Any

logger = logging.getLogger(__name__)

# Categories
WIRE_FRAUD = 'wire_fraud'
GIFT_CARD = 'gift_card'
INVOICE_FRAUD = 'invoice_fraud'
PAYROLL_DIVERSION = 'payroll_diversion'
URGENCY_PRESSURE = 'urgency_pressure'
EXECUTIVE_SPOOF = 'executive_spoof'
CREDENTIAL_THEFT = 'credential_theft'

FINANCIAL_CATEGORIES = (WIRE_FRAUD, GIFT_CARD, INVOICE_FRAUD, PAYROLL_DIVERSION)
PRESSURE_CATEGORIES = (URGENCY_PRESSURE, EXECUTIVE_SPOOF)

WIRE_FRAUD_KEYWORDS = [
    'wire transfer', 'wire payment', 'wire funds',
    'bank transfer', 'bank wire', 'transfer funds',
    'send payment', 'payment instruction', 'payment details',
    'banking information', 'bank account', 'routing number',
    'swift code', 'iban', 'aba number',
    'account number', 'beneficiary',
]

GIFT_CARD_KEYWORDS = [
    'gift card', 'gift cards', 'itunes card', 'itunes cards',
    'google play card', 'google play cards', 'google play',
    'amazon card', 'amazon cards', 'amazon gift',
    'steam card', 'steam cards', 'visa gift', 'visa cards',
    'prepaid card', 'prepaid cards', 'buy cards', 'purchase cards',
    'scratch off', 'redemption code', 'card numbers', 'pin numbers',
]

INVOICE_FRAUD_KEYWORDS = [
    'updated invoice', 'revised invoice', 'new invoice',
    'banking changed', 'account changed', 'payment method changed',
    'vendor change', 'supplier change', 'new bank details',
    'payment redirect', 'updated payment',
]

PAYROLL_DIVERSION_KEYWORDS = [
    'direct deposit', 'change my direct deposit', 'update payroll',
    'w-2', 'w2 form', 'tax form', 'employee tax',
    'payroll change', 'salary deposit', 'pay stub',
]

URGENCY_KEYWORDS = [
    'urgent', 'urgently', 'asap', 'immediately', 'right away',
    'time sensitive', 'critical', 'important', 'priority',
    'today', 'now', 'before end of day', 'before close',
    'deadline', 'must be done', 'need this done',
    "don't delay", 'cannot wait', "can't wait",
]

# Secrecy is a red flag when combined with a financial request
SECRECY_KEYWORDS = [
    'confidential', 'keep this between us', 'private matter',
    "don't tell anyone", 'just between us', 'secret',
    "don't mention", 'discreet', 'quietly',
    "don't involve", 'bypass', 'skip the usual',
]

AUTHORITY_KEYWORDS = [
    'i need you to', "i'm asking you", 'can you handle',
    'take care of this', 'personal favor', 'trust you',
    'count on you', 'rely on you', 'need your help',
    "i'm in a meeting", 'traveling', 'out of office',
    "can't call", "can't talk", 'email only',
]

CREDENTIAL_KEYWORDS = [
    'verify your account', 'confirm your password', 'login credentials',
    'username and password', 'reset your password', 'validate your account',
    'verification code', 'mfa code', 'one-time code', 'sign-in details',
]

AMOUNT_PATTERNS = [
    re.compile(r'\$\s*[\d,]+(?:\.\d{2})?'),                              # $1,000.00
    re.compile(r'\d+(?:,\d{3})*(?:\.\d{2})?\s*(?:usd|dollars?)', re.I),  # 1000 USD
    re.compile(r'(?:usd|dollars?)\s*\d+(?:,\d{3})*(?:\.\d{2})?', re.I),  # USD 1000
]


def _keywords(keywords: List[str], weight: float) -> List[Dict[str, Any]]:
    return [{'type': 'keyword', 'pattern': k, 'weight': weight} for k in keywords]


def _regex(pattern: str, weight: float) -> Dict[str, Any]:
    return {'type': 'regex', 'pattern': re.compile(pattern, re.I), 'weight': weight}


BEC_PATTERNS = [
    {
        'id': 'wire_transfer_request',
        'name': 'Wire Transfer Request',
        'description': 'Request to initiate or redirect wire transfer',
        'category': WIRE_FRAUD,
        'severity': 'critical',
        'indicators': _keywords(WIRE_FRAUD_KEYWORDS, 0.3) + [
            _regex(r'(?:wire|transfer|send)\s+(?:the\s+)?(?:funds?|money|payment)', 0.4),
        ],
    },
    {
        'id': 'gift_card_scam',
        'name': 'Gift Card Scam',
        'description': 'Request to purchase gift cards',
        'category': GIFT_CARD,
        'severity': 'high',
        'indicators': _keywords(GIFT_CARD_KEYWORDS, 0.35) + [
            _regex(r'(?:buy|purchase|get)\s+(?:some\s+)?(?:\d+\s+)?gift\s*cards?', 0.5),
        ],
    },
    {
        'id': 'invoice_fraud',
        'name': 'Invoice/Payment Fraud',
        'description': 'Attempt to redirect invoice payments',
        'category': INVOICE_FRAUD,
        'severity': 'critical',
        'indicators': _keywords(INVOICE_FRAUD_KEYWORDS, 0.3) + [
            _regex(r'(?:our|my)\s+(?:bank(?:ing)?|account)\s+(?:details?|info(?:rmation)?)\s+(?:has|have)\s+changed', 0.5),
        ],
    },
    {
        'id': 'payroll_diversion',
        'name': 'Payroll Diversion',
        'description': 'Attempt to redirect payroll or obtain tax info',
        'category': PAYROLL_DIVERSION,
        'severity': 'high',
        'indicators': _keywords(PAYROLL_DIVERSION_KEYWORDS, 0.3) + [
            _regex(r'(?:change|update)\s+(?:my\s+)?direct\s+deposit', 0.5),
        ],
    },
    {
        'id': 'urgency_pressure',
        'name': 'Urgency & Pressure',
        'description': 'High-pressure tactics to rush decision',
        'category': URGENCY_PRESSURE,
        'severity': 'medium',
        'indicators': _keywords(URGENCY_KEYWORDS, 0.2) + [
            _regex(r'(?:need|must|have to)\s+(?:be\s+)?(?:done|completed?|sent)\s+(?:by\s+)?(?:today|now|immediately)', 0.3),
        ],
    },
    {
        'id': 'secrecy_request',
        'name': 'Secrecy Request',
        'description': 'Request to keep transaction confidential',
        'category': EXECUTIVE_SPOOF,
        'severity': 'high',
        'indicators': _keywords(SECRECY_KEYWORDS, 0.25) + [
            _regex(r'(?:keep|this)\s+(?:is\s+)?(?:between\s+us|confidential|private)', 0.4),
        ],
    },
    {
        'id': 'authority_manipulation',
        'name': 'Authority Manipulation',
        'description': 'Using authority/trust to pressure action',
        'category': EXECUTIVE_SPOOF,
        'severity': 'medium',
        'indicators': _keywords(AUTHORITY_KEYWORDS, 0.2),
    },
    {
        'id': 'credential_request',
        'name': 'Credential Request',
        'description': 'Request for passwords, login details or one-time codes',
        'category': CREDENTIAL_THEFT,
        'severity': 'high',
        'indicators': _keywords(CREDENTIAL_KEYWORDS, 0.25) + [
            _regex(r'(?:send|share|provide|confirm)\s+(?:me\s+)?(?:your\s+)?(?:password|credentials|login|verification code)', 0.4),
        ],
    },
]


def _match_indicator(indicator: Dict[str, Any], text: str):
    """Return (matched_text, span) for the first hit of an indicator, or None"""
    if indicator['type'] == 'keyword':
        start = text.find(indicator['pattern'])
        if start < 0:
            return None
        end = start + len(indicator['pattern'])
        return text[start:end], (start, end)

    match = indicator['pattern'].search(text)
    if not match:
        return None
    return match.group(0), match.span()


def check_bec_patterns(subject: str, body: str) -> List[Dict[str, Any]]:
    """
    Check subject and body against the BEC pattern library.

    Each indicator is tested against the subject and the body separately and
    every hit adds its weight. Returns matches sorted by score (capped at 1.0)
    descending; an empty list when nothing matched.
    """
    try:
        texts = [
            ('subject', (subject or '').lower()),
            ('body', (body or '').lower()),
        ]
        results = []

        for pattern in BEC_PATTERNS:
            hits = []
            total = 0.0
            for indicator in pattern['indicators']:
                for location, text in texts:
                    if not text:
                        continue
                    found = _match_indicator(indicator, text)
                    if found:
                        matched_text, span = found
                        hits.append({
                            'text': matched_text,
                            'location': location,
                            'span': span,
                            'weight': indicator['weight'],
                        })
                        total += indicator['weight']

            if hits:
                results.append({
                    'id': pattern['id'],
                    'name': pattern['name'],
                    'description': pattern['description'],
                    'category': pattern['category'],
                    'severity': pattern['severity'],
                    'matches': hits,
                    'score': round(min(total, 1.0), 4),
                })

        results.sort(key=lambda m: m['score'], reverse=True)
        return results

    except Exception as e:
        logger.error(f"BEC pattern check failed: {e}")
        return []


def extract_amounts(text: str) -> List[Dict[str, Any]]:
    """
    Extract monetary amounts ($12,345.67, 12345 USD, 12,345 dollars).
    Overlapping hits from different formats are reported once.
    """
    amounts = []
    taken = []
    if not text:
        return amounts

    for regex in AMOUNT_PATTERNS:
        for match in regex.finditer(text):
            start, end = match.span()
            if any(start < t_end and end > t_start for t_start, t_end in taken):
                continue
            original = match.group(0)
            numeric = re.sub(r'[^0-9.]', '', original)
            try:
                amount = float(numeric)
            except ValueError:
                continue
            if amount > 0:
                taken.append((start, end))
                amounts.append({'amount': amount, 'original': original, 'position': start})

    amounts.sort(key=lambda a: a['position'])
    return amounts


def assess_amount_risk(amounts: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Risk tier from the largest amount found"""
    if not amounts:
        return {'has_high_risk_amount': False, 'max_amount': 0.0, 'risk_level': 'low'}

    max_amount = max(a['amount'] for a in amounts)

    if max_amount >= 100000:
        risk_level = 'critical'
    elif max_amount >= 25000:
        risk_level = 'high'
    elif max_amount >= 5000:
        risk_level = 'medium'
    else:
        risk_level = 'low'

    return {
        'has_high_risk_amount': max_amount >= 5000,
        'max_amount': max_amount,
        'risk_level': risk_level,
    }


CRITICAL_COMBOS = [
    (WIRE_FRAUD, URGENCY_PRESSURE),
    (WIRE_FRAUD, EXECUTIVE_SPOOF),
    (GIFT_CARD, EXECUTIVE_SPOOF),
    (INVOICE_FRAUD, URGENCY_PRESSURE),
]


def detect_compound_attack(matches: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Classify combinations of matched patterns"""
    if len(matches) < 2:
        return {
            'is_compound_attack': False,
            'severity': 'low',
            'explanation': 'Single pattern or no patterns detected',
        }

    categories = {m['category'] for m in matches}

    for combo in CRITICAL_COMBOS:
        if all(c in categories for c in combo):
            return {
                'is_compound_attack': True,
                'severity': 'critical',
                'explanation': f"Critical combination detected: {' + '.join(combo)}",
            }

    has_financial = any(c in categories for c in FINANCIAL_CATEGORIES)
    has_pressure = any(c in categories for c in PRESSURE_CATEGORIES)
    if has_financial and has_pressure:
        return {
            'is_compound_attack': True,
            'severity': 'high',
            'explanation': 'Financial request combined with pressure tactics',
        }

    if len(matches) >= 3:
        return {
            'is_compound_attack': True,
            'severity': 'medium',
            'explanation': f"Multiple BEC indicators detected ({len(matches)} patterns)",
        }

    return {
        'is_compound_attack': False,
        'severity': 'low',
        'explanation': 'Patterns detected but not in high-risk combination',
    }


def quick_bec_check(subject: str, body: str) -> Dict[str, Any]:
    """
    Lightweight BEC check with no tenant lookups.

    Suspicious when two or more categories match, or when any match appears
    alongside an amount of 5,000 or more.
    """
    patterns = check_bec_patterns(subject, body)
    amount_risk = assess_amount_risk(extract_amounts(f"{subject or ''} {body or ''}"))

    categories = {p['category'] for p in patterns}
    is_suspicious = len(categories) >= 2 or (bool(patterns) and amount_risk['has_high_risk_amount'])

    urgency_level = 'low'
    for p in patterns:
        if p['id'] == 'urgency_pressure':
            urgency_level = 'high' if p['score'] > 0.5 else 'medium'
            break

    return {
        'is_suspicious': is_suspicious,
        'top_patterns': [p['name'] for p in patterns[:3]],
        'categories': sorted(categories),
        'urgency_level': urgency_level,
        'max_amount': amount_risk['max_amount'],
    }
