#!/usr/bin/env python3
"""
BEC (Business Email Compromise) Detector
Combines content patterns, executive impersonation and amount risk into one
BEC verdict per email.

Features:
- Per-tenant VIP list with fuzzy display-name matching
- VIP display-name spoofing from non-VIP addresses
- Executive titles in display names, alone or on free-mail senders
- Reply-To domain mismatch
- Cousin domains of the organisation domain
- Unicode homoglyphs in display name or address
- Financial request amount tiers and compound attacks
"""

import re
import uuid
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Any

from mailshield.modules.bec_patterns import (
    check_bec_patterns, extract_amounts, assess_amount_risk, detect_compound_attack,
    WIRE_FRAUD, GIFT_CARD, INVOICE_FRAUD,
)
from mailshield.modules.brand_impersonation import levenshtein

logger = logging.getLogger(__name__)

VIP_ROLES = ('executive', 'finance', 'hr', 'it', 'legal', 'board', 'assistant', 'custom')
HIGH_RISK_ROLES = ('executive', 'finance')

FREE_EMAIL_DOMAINS = {
    'gmail.com', 'yahoo.com', 'hotmail.com', 'outlook.com',
    'aol.com', 'icloud.com', 'protonmail.com', 'mail.com',
    'zoho.com', 'yandex.com', 'gmx.com', 'live.com',
}

EXECUTIVE_TITLE_PATTERNS = [
    re.compile(r'\b(?:ceo|chief executive)\b', re.IGNORECASE),
    re.compile(r'\b(?:cfo|chief financial)\b', re.IGNORECASE),
    re.compile(r'\b(?:coo|chief operating)\b', re.IGNORECASE),
    re.compile(r'\b(?:cto|chief technology)\b', re.IGNORECASE),
    re.compile(r'\b(?:cio|chief information)\b', re.IGNORECASE),
    re.compile(r'\b(?:president|vice president|vp)\b', re.IGNORECASE),
    re.compile(r'\b(?:director|managing director)\b', re.IGNORECASE),
    re.compile(r'\b(?:chairman|chairwoman|chair)\b', re.IGNORECASE),
    re.compile(r'\b(?:founder|co-founder)\b', re.IGNORECASE),
    re.compile(r'\b(?:owner|partner)\b', re.IGNORECASE),
]

EXECUTIVE_TITLES = [
    'ceo', 'chief executive', 'president',
    'cfo', 'chief financial', 'finance director',
    'coo', 'chief operating', 'operations director',
    'cto', 'chief technology', 'cio', 'chief information',
    'ciso', 'chief security', 'cmo', 'chief marketing',
    'svp', 'senior vice president', 'evp', 'executive vice president',
    'vp', 'vice president', 'director', 'managing director',
    'general counsel', 'chief legal', 'board member', 'chairman', 'chairwoman',
]

FINANCE_TITLES = [
    'controller', 'comptroller', 'treasurer',
    'accounts payable', 'accounts receivable',
    'financial analyst', 'finance manager', 'bookkeeper', 'accountant',
]

# Non-ASCII characters rendered like ASCII letters
UNICODE_HOMOGLYPHS = {
    'a': 'аɑαą',
    'c': 'сϲç',
    'e': 'еёεę',
    'i': 'іιı',
    'o': 'оοøö',
    'p': 'рρ',
    's': 'ѕș',
    'x': 'хχ',
    'y': 'уγ',
    'n': 'пη',
}

# Digit/letter substitutions used in cousin domains
DOMAIN_SUBSTITUTIONS = [
    ('o', '0'), ('l', '1'), ('i', '1'), ('s', '5'),
    ('a', '4'), ('e', '3'), ('rn', 'm'), ('vv', 'w'),
]

SEVERITY_WEIGHTS = {'critical': 1.0, 'high': 0.7, 'medium': 0.4, 'low': 0.2}

CATEGORY_NAMES = {
    'wire_fraud': 'wire transfer request',
    'gift_card': 'gift card scam',
    'invoice_fraud': 'invoice fraud',
    'payroll_diversion': 'payroll diversion',
    'urgency_pressure': 'urgency tactics',
    'executive_spoof': 'authority manipulation',
    'credential_theft': 'credential harvesting',
}


def normalize_display_name(name: str) -> str:
    name = re.sub(r'[^a-z0-9\s]', '', (name or '').lower())
    return re.sub(r'\s+', ' ', name).strip()


def fuzzy_name_match(name1: str, name2: str) -> bool:
    """Names equal, one containing the other, or sharing enough words"""
    if not name1 or not name2:
        return False
    if name1 == name2 or name1 in name2 or name2 in name1:
        return True

    words1 = set(name1.split(' '))
    words2 = set(name2.split(' '))
    overlap = sum(1 for w in words1 if len(w) > 2 and w in words2)
    min_words = min(len(words1), len(words2))
    return overlap >= 2 or (min_words > 0 and overlap / min_words >= 0.5)


def _domain(address: str) -> str:
    address = (address or '').strip().lower()
    return address.rsplit('@', 1)[1] if '@' in address else ''


def suggest_vip_role(display_name: str, title: Optional[str] = None) -> Optional[str]:
    """'executive' or 'finance' when the name/title carries such a title"""
    text = f"{display_name or ''} {title or ''}".lower()
    if any(t in text for t in EXECUTIVE_TITLES):
        return 'executive'
    if any(t in text for t in FINANCE_TITLES):
        return 'finance'
    return None


class VIPList:
    """Per-tenant VIP entries, keyed by tenant then entry id"""

    def __init__(self):
        self._entries: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def add_vip(self, tenant_id: str, email: str, display_name: str, role: str = 'executive',
                title: Optional[str] = None, department: Optional[str] = None,
                aliases: Optional[List[str]] = None) -> Dict[str, Any]:
        if '@' not in (email or ''):
            raise ValueError(f"Invalid VIP email: {email!r}")
        if role not in VIP_ROLES:
            raise ValueError(f"Unknown VIP role: {role!r}")

        now = datetime.now()
        entry = {
            'id': str(uuid.uuid4()),
            'tenant_id': tenant_id,
            'email': email.strip().lower(),
            'display_name': display_name,
            'title': title,
            'department': department,
            'role': role,
            'aliases': [a.strip().lower() for a in aliases or []],
            'created_at': now,
            'updated_at': now,
        }
        with self._lock:
            self._entries.setdefault(tenant_id, {})[entry['id']] = entry
        logger.info(f"Added VIP {entry['email']} ({role}) for tenant {tenant_id}")
        return dict(entry)

    def remove_vip(self, tenant_id: str, vip_id: str) -> bool:
        with self._lock:
            return self._entries.get(tenant_id, {}).pop(vip_id, None) is not None

    def get_vips(self, tenant_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            entries = [dict(e) for e in self._entries.get(tenant_id, {}).values()]
        entries.sort(key=lambda e: (e['role'], e['display_name']))
        return entries

    def find_by_email(self, tenant_id: str, email: str) -> Optional[Dict[str, Any]]:
        email = (email or '').strip().lower()
        for entry in self.get_vips(tenant_id):
            if entry['email'] == email or email in entry['aliases']:
                return entry
        return None

    def find_by_display_name(self, tenant_id: str, display_name: str) -> List[Dict[str, Any]]:
        name = normalize_display_name(display_name)
        if not name:
            return []
        return [e for e in self.get_vips(tenant_id)
                if fuzzy_name_match(name, normalize_display_name(e['display_name']))]

    def bulk_import(self, tenant_id: str, people: List[Dict[str, Any]]) -> Dict[str, int]:
        """Add directory entries whose title marks them as executive or finance"""
        imported = skipped = 0
        for person in people:
            role = suggest_vip_role(person.get('display_name', ''), person.get('title'))
            if not role or self.find_by_email(tenant_id, person.get('email', '')):
                skipped += 1
                continue
            self.add_vip(tenant_id, person['email'], person.get('display_name', ''), role=role,
                         title=person.get('title'), department=person.get('department'))
            imported += 1
        return {'imported': imported, 'skipped': skipped}

    def get_stats(self, tenant_id: str) -> Dict[str, Any]:
        by_role = {role: 0 for role in VIP_ROLES}
        for entry in self.get_vips(tenant_id):
            by_role[entry['role']] += 1
        return {'total': sum(by_role.values()), 'by_role': by_role}

    def check_impersonation(self, tenant_id: str, sender_email: str, display_name: str) -> Dict[str, Any]:
        """Display name matching a VIP while the address is not one of theirs"""
        if self.find_by_email(tenant_id, sender_email):
            return {'is_impersonation': False, 'confidence': 0.0}

        matches = self.find_by_display_name(tenant_id, display_name)
        if not matches:
            return {'is_impersonation': False, 'confidence': 0.0}

        vip = matches[0]
        confidence = 0.5
        if vip['role'] in HIGH_RISK_ROLES:
            confidence += 0.1
        sender_domain = _domain(sender_email)
        vip_domain = _domain(vip['email'])
        if sender_domain and vip_domain and sender_domain != vip_domain:
            confidence += 0.2
        if normalize_display_name(display_name) == normalize_display_name(vip['display_name']):
            confidence += 0.15
        if any(t in (display_name or '').lower() for t in ('ceo', 'cfo', 'president', 'director', 'chief')):
            confidence += 0.1
        confidence = min(confidence, 1.0)

        return {
            'is_impersonation': confidence > 0.5,
            'matched_vip': vip,
            'confidence': round(confidence, 4),
            'reason': (f'Display name "{display_name}" matches VIP "{vip["display_name"]}" '
                       f'but email "{sender_email}" doesn\'t match expected "{vip["email"]}"'),
        }


# ============================================================================
# IMPERSONATION CHECKS
# ============================================================================

def check_title_spoof(display_name: str) -> Optional[str]:
    for pattern in EXECUTIVE_TITLE_PATTERNS:
        match = pattern.search(display_name or '')
        if match:
            return match.group(0)
    return None


def check_domain_lookalike(sender_domain: str, org_domain: str) -> Optional[Dict[str, Any]]:
    """Cousin of the organisation domain: TLD swap, small edit or character substitution"""
    sender_domain = (sender_domain or '').lower()
    org_domain = (org_domain or '').lower()
    if not sender_domain or not org_domain or sender_domain == org_domain:
        return None

    sender_base = sender_domain.split('.')[0]
    org_base = org_domain.split('.')[0]

    if sender_base == org_base:
        return {'confidence': 0.85,
                'explanation': f'Lookalike domain: "{sender_domain}" mimics "{org_domain}" with different TLD'}

    distance = levenshtein(sender_base, org_base)
    if 0 < distance <= 2 and len(sender_base) >= 4:
        return {'confidence': 0.9 if distance == 1 else 0.7,
                'explanation': (f'Lookalike domain: "{sender_domain}" is {distance} '
                                f'character(s) different from "{org_domain}"')}

    for original, replacement in DOMAIN_SUBSTITUTIONS:
        if original in org_base and sender_base == org_base.replace(original, replacement):
            return {'confidence': 0.85,
                    'explanation': (f'Lookalike domain: "{sender_domain}" uses character '
                                    f'substitution ({original}->{replacement})')}
    return None


def check_unicode_spoof(display_name: str, email: str) -> Optional[str]:
    text = f"{display_name or ''} {email or ''}"
    non_ascii = [ch for ch in text if ord(ch) > 127]
    if not non_ascii:
        return None
    for ch in non_ascii:
        for ascii_char, lookalikes in UNICODE_HOMOGLYPHS.items():
            if ch in lookalikes:
                return f'Unicode homoglyph detected: "{ch}" looks like "{ascii_char}"'
    if any(ord(ch) > 127 for ch in (email or '')):
        return 'Non-ASCII characters in email address (possible homoglyph attack)'
    return None


def detect_impersonation(tenant_id: str, sender_email: str, display_name: str,
                         reply_to: Optional[str] = None, organization_domain: Optional[str] = None,
                         vip_list: Optional[VIPList] = None) -> Dict[str, Any]:
    """Executive/VIP impersonation signals for one sender"""
    signals = []
    confidence = 0.0
    matched_vip = None
    impersonation_type = None
    sender_email = (sender_email or '').strip().lower()
    sender_domain = _domain(sender_email)
    display_name = display_name or ''

    def add(signal_type, severity, detail, signal_confidence):
        nonlocal confidence, impersonation_type
        if impersonation_type is None:
            impersonation_type = signal_type
        confidence = max(confidence, signal_confidence)
        signals.append({'type': signal_type, 'severity': severity, 'detail': detail})

    if vip_list:
        vip_check = vip_list.check_impersonation(tenant_id, sender_email, display_name)
        if vip_check['is_impersonation']:
            matched_vip = vip_check['matched_vip']
            add('display_name_spoof', 'critical', vip_check['reason'], vip_check['confidence'])

    title = check_title_spoof(display_name)
    if title:
        add('title_spoof', 'high', f"Executive title in display name: {title}", 0.6)

    if sender_domain in FREE_EMAIL_DOMAINS:
        potential = vip_list.find_by_display_name(tenant_id, display_name) if vip_list else []
        if potential:
            add('free_email_executive', 'high',
                f'Executive name "{display_name}" used with free email domain "{sender_domain}"', 0.7)
            matched_vip = matched_vip or potential[0]
        if title:
            add('free_email_executive', 'critical',
                f'Executive title "{title}" with free email is highly suspicious', 0.75)

    reply_to = (reply_to or '').strip().lower()
    if reply_to and reply_to != sender_email:
        reply_domain = _domain(reply_to)
        if reply_domain != sender_domain:
            severity = 'high' if reply_domain in FREE_EMAIL_DOMAINS else 'medium'
            add('reply_to_mismatch', severity,
                f'Reply-To "{reply_to}" differs from sender "{sender_email}"', 0.5)

    if organization_domain:
        lookalike = check_domain_lookalike(sender_domain, organization_domain)
        if lookalike:
            add('cousin_domain', 'critical', lookalike['explanation'], lookalike['confidence'])

    unicode_detail = check_unicode_spoof(display_name, sender_email)
    if unicode_detail:
        add('unicode_spoof', 'critical', unicode_detail, 0.9)

    if not signals:
        explanation = 'No impersonation indicators detected'
    elif len(signals) == 1:
        explanation = signals[0]['detail']
    else:
        explanation = f"Multiple impersonation indicators: {', '.join(s['type'] for s in signals)}"

    return {
        'is_impersonation': confidence > 0.5,
        'impersonation_type': impersonation_type,
        'confidence': confidence,
        'matched_vip': matched_vip,
        'signals': signals,
        'explanation': explanation,
    }


def calculate_impersonation_risk(impersonation: Dict[str, Any]) -> Dict[str, Any]:
    if not impersonation.get('is_impersonation') or not impersonation.get('signals'):
        return {'score': 0.0, 'level': 'low'}

    weight = sum(SEVERITY_WEIGHTS.get(s['severity'], 0) for s in impersonation['signals'])
    score = min(weight / 2, 1.0)
    if score >= 0.8 or any(s['severity'] == 'critical' for s in impersonation['signals']):
        level = 'critical'
    elif score >= 0.5:
        level = 'high'
    elif score >= 0.3:
        level = 'medium'
    else:
        level = 'low'
    return {'score': score, 'level': level}


# ============================================================================
# BEC VERDICT
# ============================================================================

def _neutral_result(summary='No BEC indicators detected'):
    return {
        'is_bec': False,
        'confidence': 0.0,
        'risk_level': 'low',
        'signals': [],
        'patterns': [],
        'impersonation': None,
        'financial_risk': {'has_financial_request': False, 'amounts': [], 'max_amount': 0.0, 'risk_level': 'low'},
        'summary': summary,
    }


def _summary(is_bec, signals, impersonation, financial_risk) -> str:
    if not is_bec and not signals:
        return 'No BEC indicators detected'

    parts = []
    if impersonation and impersonation['is_impersonation']:
        vip = impersonation.get('matched_vip')
        if vip:
            parts.append(f"Possible impersonation of {vip['display_name']} ({vip['role']})")
        else:
            parts.append('Executive impersonation attempt detected')

    if financial_risk['has_financial_request'] and financial_risk['max_amount'] > 0:
        parts.append(f"Financial request for ${financial_risk['max_amount']:,.0f}")

    categories = []
    for signal in signals:
        name = CATEGORY_NAMES.get(signal['category'])
        if name and name not in categories:
            categories.append(name)
    if categories:
        parts.append(f"Detected: {', '.join(categories)}")

    return '. '.join(parts) if parts else 'Suspicious patterns detected'


def detect_bec(email: Dict[str, Any], tenant_id: Optional[str] = None,
               vip_list: Optional[VIPList] = None,
               organization_domain: Optional[str] = None) -> Dict[str, Any]:
    """
    BEC verdict for a parsed email.

    Score: patterns min(sum(score * 0.15), 0.4), impersonation risk * 0.4,
    financial request 0.2 * amount tier multiplier, compound attack +0.15.
    Any critical signal lifts the score to at least 0.8.
    """
    try:
        sender = email.get('sender') or {}
        headers = email.get('headers') or {}
        subject = email.get('subject') or ''
        body = (email.get('body') or {}).get('text') or ''

        signals = []
        patterns = check_bec_patterns(subject, body)
        for match in patterns:
            signals.append({
                'type': match['id'],
                'category': match['category'],
                'severity': match['severity'],
                'description': match['description'],
                'evidence': ', '.join(f'"{h["text"]}" in {h["location"]}' for h in match['matches']),
            })

        reply_to = headers.get('reply-to')
        if reply_to and '<' in reply_to:
            reply_to = reply_to[reply_to.find('<') + 1:reply_to.find('>')]
        impersonation = detect_impersonation(
            tenant_id, sender.get('address', ''), sender.get('display_name', ''),
            reply_to=reply_to, organization_domain=organization_domain, vip_list=vip_list,
        )
        if impersonation['is_impersonation']:
            for signal in impersonation['signals']:
                signals.append({
                    'type': signal['type'],
                    'category': 'impersonation',
                    'severity': signal['severity'],
                    'description': signal['detail'],
                    'evidence': f"Sender: {sender.get('display_name', '')} <{sender.get('address', '')}>",
                })

        amounts = extract_amounts(f"{subject} {body}")
        amount_risk = assess_amount_risk(amounts)
        financial_risk = {
            'has_financial_request': bool(amounts) and any(
                p['category'] in (WIRE_FRAUD, GIFT_CARD, INVOICE_FRAUD) for p in patterns),
            'amounts': [{'amount': a['amount'], 'original': a['original']} for a in amounts],
            'max_amount': amount_risk['max_amount'],
            'risk_level': amount_risk['risk_level'],
        }
        if financial_risk['has_financial_request'] and financial_risk['max_amount'] > 0:
            signals.append({
                'type': 'financial_amount',
                'category': 'financial_request',
                'severity': amount_risk['risk_level'],
                'description': f"Financial amount detected: ${financial_risk['max_amount']:,.0f}",
                'evidence': ', '.join(a['original'] for a in amounts),
            })

        compound = detect_compound_attack(patterns)
        if compound['is_compound_attack']:
            signals.append({
                'type': 'compound_attack',
                'category': 'multi_vector',
                'severity': compound['severity'],
                'description': 'Multiple BEC attack vectors detected',
                'evidence': compound['explanation'],
            })

        score = min(sum(p['score'] * 0.15 for p in patterns), 0.4)
        if impersonation['is_impersonation']:
            score += calculate_impersonation_risk(impersonation)['score'] * 0.4
        if financial_risk['has_financial_request']:
            score += 0.2 * SEVERITY_WEIGHTS.get(financial_risk['risk_level'], 0)
        if compound['is_compound_attack']:
            score = min(score + 0.15, 1.0)

        has_critical = any(s['severity'] == 'critical' for s in signals)
        if has_critical:
            score = max(score, 0.8)

        if score >= 0.8 or has_critical:
            risk_level = 'critical'
        elif score >= 0.5:
            risk_level = 'high'
        elif score >= 0.3:
            risk_level = 'medium'
        else:
            risk_level = 'low'

        is_bec = (score >= 0.5
                  or (impersonation['is_impersonation'] and financial_risk['has_financial_request'])
                  or has_critical)

        result = {
            'is_bec': is_bec,
            'confidence': round(score, 4),
            'risk_level': risk_level,
            'signals': signals,
            'patterns': patterns,
            'impersonation': impersonation,
            'financial_risk': financial_risk,
            'summary': _summary(is_bec, signals, impersonation, financial_risk),
        }
        if is_bec:
            logger.info(f"BEC detected from {sender.get('address', '')}: {risk_level} ({score:.2f})")
        return result

    except Exception as e:
        logger.error(f"BEC detection failed: {e}")
        return _neutral_result('BEC detection failed')
