#!/usr/bin/env python3
"""
Policy Decision Engine
Turns one parsed email into one verdict for a tenant.

Evaluation states, first match wins:
    AllowlistCheck -> BlocklistCheck -> PolicyRuleScan -> ThresholdFallback -> Verdict

Features:
- Tenant list entries (email/domain) checked before any policy
- Tenant configuration allowlists (senders, domains, partner domains)
- Active policies ordered by priority tier, then creation time
- First matching enabled rule within a policy wins
- AND/OR condition logic over a fixed field vocabulary
- Threshold fallback with strict mode boost and learning mode
- Every verdict logged and published to the audit sink
"""

import re
import uuid
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from mailshield.errors import PolicyNotFoundError
from mailshield.modules.email_blocking import ListStore, CountryLookup
from mailshield.modules.email_database import DatabaseHandler, Policy, to_json
from mailshield.modules.policy_types import (
    DEFAULT_POLICIES, NULL_MATCHING_OPERATORS, PRIORITY_RANK,
    validate_policy, sort_rules,
)
from mailshield.modules.tenant_config import TenantConfigStore
from mailshield.services.audit import AuditSink, LoggingAuditSink

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r'https?://[^\s<>"{}|\\^`\[\]]+', re.IGNORECASE)
LINK_HOST_PATTERN = re.compile(r'https?://([^/\s<>"{}|\\^`\[\]]+)', re.IGNORECASE)
RECEIVED_IP_PATTERN = re.compile(r'\[(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\]')

# Fields holding one value per attachment/link
MULTI_VALUE_FIELDS = ('attachment_name', 'attachment_type', 'link_domain')


# ============================================================================
# POLICY STORE
# ============================================================================

class PolicyStore:
    """Tenant policies persisted through SQLAlchemy; validated on save"""

    def __init__(self, db: DatabaseHandler):
        self.db = db

    def create_policy(self, tenant_id: str, policy: Dict[str, Any],
                      created_by: Optional[str] = None) -> Dict[str, Any]:
        validate_policy(policy)
        now = datetime.now()
        row = Policy(
            id=policy.get('id') or str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=policy['name'],
            description=policy.get('description'),
            type=policy.get('type', 'custom'),
            status=policy.get('status', 'active'),
            priority=policy.get('priority', 'medium'),
            rules=to_json(policy.get('rules') or []),
            created_at=policy.get('created_at') or now,
            updated_at=now,
            created_by=created_by,
        )
        with self.db.session_scope() as session:
            session.add(row)
            session.flush()
            logger.info(f"Created policy '{row.name}' ({row.id}) for tenant {tenant_id}")
            return row.to_dict()

    def get_policy(self, tenant_id: str, policy_id: str) -> Optional[Dict[str, Any]]:
        with self.db.session_scope() as session:
            row = session.query(Policy).filter_by(tenant_id=tenant_id, id=policy_id).first()
            return row.to_dict() if row else None

    def list_policies(self, tenant_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            query = session.query(Policy).filter_by(tenant_id=tenant_id)
            if status:
                query = query.filter_by(status=status)
            return [row.to_dict() for row in query.order_by(Policy.created_at).all()]

    def get_active_policies(self, tenant_id: str) -> List[Dict[str, Any]]:
        """Active policies, critical first, oldest first within a tier"""
        policies = self.list_policies(tenant_id, status='active')
        policies.sort(key=lambda p: (PRIORITY_RANK.get(p['priority'], len(PRIORITY_RANK)), p['created_at']))
        return policies

    def update_policy(self, tenant_id: str, policy_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        with self.db.session_scope() as session:
            row = session.query(Policy).filter_by(tenant_id=tenant_id, id=policy_id).first()
            if row is None:
                raise PolicyNotFoundError(tenant_id, policy_id)

            merged = row.to_dict()
            merged.update({k: v for k, v in updates.items() if k not in ('id', 'tenant_id', 'created_at')})
            validate_policy(merged)

            row.name = merged['name']
            row.description = merged.get('description')
            row.type = merged.get('type', 'custom')
            row.status = merged.get('status', 'active')
            row.priority = merged.get('priority', 'medium')
            row.rules = to_json(merged.get('rules') or [])
            row.updated_at = datetime.now()
            session.flush()
            logger.info(f"Updated policy {policy_id} for tenant {tenant_id}")
            return row.to_dict()

    def delete_policy(self, tenant_id: str, policy_id: str) -> bool:
        with self.db.session_scope() as session:
            deleted = session.query(Policy).filter_by(tenant_id=tenant_id, id=policy_id).delete()
        return deleted > 0

    def create_default_policies(self, tenant_id: str, created_by: Optional[str] = None) -> List[Dict[str, Any]]:
        """Install the built-in templates for a new tenant"""
        created = []
        for template in DEFAULT_POLICIES:
            created.append(self.create_policy(tenant_id, template, created_by=created_by))
        logger.info(f"Installed {len(created)} default policies for tenant {tenant_id}")
        return created


# ============================================================================
# FIELD EXTRACTION AND CONDITIONS
# ============================================================================

def _email_domain(address: str) -> str:
    return address.rsplit('@', 1)[1] if '@' in address else ''


def extract_ip_address(headers: Dict[str, str]) -> Optional[str]:
    match = RECEIVED_IP_PATTERN.search(headers.get('received') or '')
    return match.group(1) if match else None


def get_field_value(email: Dict[str, Any], field: str, header_name: Optional[str] = None,
                    threat_score: Optional[float] = None,
                    country_lookup: Optional[CountryLookup] = None):
    """
    Value of a condition field for an email. Attachment and link fields
    return a list; a missing value is None.
    """
    sender = email.get('sender') or {}
    recipients = email.get('recipients') or []
    body = email.get('body') or {}
    headers = email.get('headers') or {}
    attachments = email.get('attachments') or []
    first_recipient = recipients[0]['address'] if recipients else None

    if field == 'sender_email':
        return sender.get('address')
    if field == 'sender_domain':
        return sender.get('domain') or _email_domain(sender.get('address') or '')
    if field == 'sender_name':
        return sender.get('display_name')
    if field == 'recipient_email':
        return first_recipient
    if field == 'recipient_domain':
        return _email_domain(first_recipient) if first_recipient else None
    if field == 'subject':
        return email.get('subject')
    if field == 'body_text':
        return body.get('text')
    if field == 'body_html':
        return body.get('html')
    if field == 'attachment_name':
        return [a.get('filename') or '' for a in attachments]
    if field == 'attachment_type':
        return [a.get('content_type') or '' for a in attachments]
    if field == 'attachment_count':
        return len(attachments)
    if field == 'has_attachments':
        return len(attachments) > 0
    if field == 'has_links':
        return bool(URL_PATTERN.search(body.get('text') or '') or URL_PATTERN.search(body.get('html') or ''))
    if field == 'link_domain':
        content = (body.get('text') or '') + (body.get('html') or '')
        return LINK_HOST_PATTERN.findall(content)
    if field == 'spf_result':
        return headers.get('received-spf') or headers.get('authentication-results') or ''
    if field == 'dkim_result':
        return 'pass' if headers.get('dkim-signature') else 'none'
    if field == 'dmarc_result':
        auth_results = headers.get('authentication-results') or ''
        if 'dmarc=pass' in auth_results:
            return 'pass'
        if 'dmarc=fail' in auth_results:
            return 'fail'
        return 'none'
    if field == 'threat_score':
        return threat_score if threat_score is not None else 0
    if field == 'header':
        if not header_name:
            return None
        return headers.get(header_name.lower()) or None
    if field == 'ip_address':
        return extract_ip_address(headers)
    if field == 'country':
        ip = extract_ip_address(headers)
        if ip and country_lookup:
            return country_lookup.get_country_from_ip(ip)
        return None
    return None


def _to_number(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).lower()


def evaluate_condition(condition: Dict[str, Any], field_value) -> bool:
    """
    Apply one condition to an extracted value. A missing value satisfies
    only the negated operators; a bad regex never matches.
    """
    operator = condition.get('operator')
    value = condition.get('value')

    if field_value is None:
        return operator in NULL_MATCHING_OPERATORS

    if isinstance(field_value, list):
        items = [_as_text(v) for v in field_value]
        field_str = ','.join(items)
    else:
        items = None
        field_str = _as_text(field_value)

    if operator in ('in_list', 'not_in_list'):
        if not isinstance(value, (list, tuple)):
            return operator == 'not_in_list'
        wanted = {_as_text(v) for v in value}
        candidates = items if items is not None else [field_str]
        found = any(c in wanted for c in candidates)
        return found if operator == 'in_list' else not found

    if operator in ('greater_than', 'less_than', 'between'):
        number = _to_number(field_value if items is None else len(items))
        if number is None:
            return False
        if operator == 'between':
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                return False
            low, high = _to_number(value[0]), _to_number(value[1])
            return low is not None and high is not None and low <= number <= high
        limit = _to_number(value)
        if limit is None:
            return False
        return number > limit if operator == 'greater_than' else number < limit

    if operator in ('matches_regex', 'not_matches_regex'):
        try:
            matched = re.search(str(value), field_str, re.IGNORECASE) is not None
        except re.error:
            return False
        return matched if operator == 'matches_regex' else not matched

    target = _as_text(value if value is not None else '')
    if operator == 'equals':
        return field_str == target
    if operator == 'not_equals':
        return field_str != target
    if operator == 'contains':
        return target in field_str
    if operator == 'not_contains':
        return target not in field_str
    if operator == 'starts_with':
        return field_str.startswith(target)
    if operator == 'not_starts_with':
        return not field_str.startswith(target)
    if operator == 'ends_with':
        return field_str.endswith(target)
    if operator == 'not_ends_with':
        return not field_str.endswith(target)
    return False


# ============================================================================
# ENGINE
# ============================================================================

class PolicyEngine:
    """Evaluates emails against tenant lists, policies and thresholds"""

    def __init__(self, list_store: ListStore, policy_store: PolicyStore,
                 tenant_configs: Optional[TenantConfigStore] = None,
                 audit_sink: Optional[AuditSink] = None,
                 country_lookup: Optional[CountryLookup] = None):
        self.list_store = list_store
        self.policy_store = policy_store
        self.tenant_configs = tenant_configs or TenantConfigStore()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.country_lookup = country_lookup

    def evaluate_email(self, email: Dict[str, Any], tenant_id: str,
                       options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Evaluate one parsed email.

        options:
            skip_allowlists: bool
            skip_blocklists: bool
            threat_score: 0-100 score from the detectors; enables ThresholdFallback

        Returns {'matched', 'action', 'stage', 'reason', ...}. Policy matches
        also carry policy_id/policy_name/rule_id/rule_name/action_params.
        """
        options = options or {}
        threat_score = options.get('threat_score')

        result = None
        if not options.get('skip_allowlists'):
            result = self.check_allowlist(email, tenant_id)
        if result is None and not options.get('skip_blocklists'):
            result = self.check_blocklist(email, tenant_id)
        if result is None:
            result = self.scan_policies(email, tenant_id, threat_score)
        if result is None and threat_score is not None:
            result = self.threshold_fallback(tenant_id, threat_score)
        if result is None:
            result = {'matched': False, 'action': 'allow', 'stage': 'default', 'reason': 'No policy matched'}

        sender = (email.get('sender') or {}).get('address', '')
        logger.info(f"Verdict for {sender} (tenant {tenant_id}): {result['action']} [{result['stage']}] {result['reason']}")
        self.audit_sink.emit(
            'verdict', tenant_id,
            sender=sender,
            subject=email.get('subject', ''),
            action=result['action'],
            stage=result['stage'],
            reason=result['reason'],
            policy_id=result.get('policy_id'),
            rule_id=result.get('rule_id'),
        )
        return result

    def check_allowlist(self, email, tenant_id) -> Optional[Dict[str, Any]]:
        sender = ((email.get('sender') or {}).get('address') or '').lower()
        entry = self.list_store.find_sender_match(tenant_id, 'allowlist', sender)
        if entry:
            return {'matched': True, 'action': 'allow', 'stage': 'allowlist',
                    'reason': entry['reason_text'], 'list_entry_id': entry['id']}

        domain = _email_domain(sender)
        if self.tenant_configs.is_sender_allowlisted(tenant_id, sender):
            return {'matched': True, 'action': 'allow', 'stage': 'allowlist',
                    'reason': f"Sender email is in tenant allowlist: {sender}"}
        if domain and self.tenant_configs.is_domain_allowlisted(tenant_id, domain):
            return {'matched': True, 'action': 'allow', 'stage': 'allowlist',
                    'reason': f"Sender domain is in tenant allowlist: {domain}"}
        return None

    def check_blocklist(self, email, tenant_id) -> Optional[Dict[str, Any]]:
        sender = ((email.get('sender') or {}).get('address') or '').lower()
        entry = self.list_store.find_sender_match(tenant_id, 'blocklist', sender)
        if entry:
            return {'matched': True, 'action': 'block', 'stage': 'blocklist',
                    'reason': entry['reason_text'], 'list_entry_id': entry['id']}
        return None

    def rule_matches(self, rule: Dict[str, Any], email: Dict[str, Any],
                     threat_score: Optional[float] = None) -> bool:
        conditions = rule.get('conditions') or []
        if not conditions:
            return False

        results = (
            evaluate_condition(
                c,
                get_field_value(email, c.get('field'), c.get('header_name'), threat_score, self.country_lookup),
            )
            for c in conditions
        )
        if rule.get('condition_logic', 'and') == 'or':
            return any(results)
        return all(results)

    def scan_policies(self, email, tenant_id, threat_score=None) -> Optional[Dict[str, Any]]:
        for policy in self.policy_store.get_active_policies(tenant_id):
            for rule in sort_rules(policy.get('rules') or []):
                if not rule.get('enabled', True):
                    continue
                try:
                    matched = self.rule_matches(rule, email, threat_score)
                except Exception as e:
                    logger.error(f"Error evaluating rule {rule.get('id')} of policy {policy['id']}: {e}")
                    continue
                if matched:
                    return {
                        'matched': True,
                        'action': rule['action'],
                        'stage': 'policy',
                        'policy_id': policy['id'],
                        'policy_name': policy['name'],
                        'rule_id': rule.get('id'),
                        'rule_name': rule.get('name'),
                        'action_params': rule.get('action_params') or {},
                        'reason': f'Matched policy "{policy["name"]}" rule "{rule.get("name")}"',
                    }
        return None

    def threshold_fallback(self, tenant_id: str, threat_score: float) -> Optional[Dict[str, Any]]:
        scoring = self.tenant_configs.apply_tenant_scoring(tenant_id, threat_score)
        if scoring['would_action'] == 'allow':
            return None
        reason = f"Threat score {scoring['adjusted_score']:.0f} reached {scoring['would_action']} threshold"
        if scoring['action'] != scoring['would_action']:
            reason += ' (learning mode)'
        return {
            'matched': True,
            'action': scoring['action'],
            'would_action': scoring['would_action'],
            'stage': 'threshold',
            'threat_score': scoring['adjusted_score'],
            'reason': reason,
        }
