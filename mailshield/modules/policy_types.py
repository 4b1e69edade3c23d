"""
Policy vocabulary, default policy templates and validation.

A policy is a dict:
    {
        'name', 'description', 'type', 'status', 'priority',
        'rules': [{
            'id', 'name', 'enabled', 'order',
            'condition_logic': 'and' | 'or',
            'conditions': [{'id', 'field', 'operator', 'value', 'header_name'?}],
            'action', 'action_params',
        }],
    }
"""

import re
from typing import Dict, List, Any

from mailshield.errors import PolicyValidationError

POLICY_STATUSES = ('active', 'inactive', 'draft')

# Evaluation order, first wins
POLICY_PRIORITIES = ('critical', 'high', 'medium', 'low')
PRIORITY_RANK = {p: i for i, p in enumerate(POLICY_PRIORITIES)}

POLICY_TYPES = ('detection', 'allowlist', 'blocklist', 'content', 'attachment', 'dlp', 'custom')

POLICY_ACTIONS = ('allow', 'block', 'quarantine', 'tag', 'log', 'notify')

CONDITION_LOGIC = ('and', 'or')

STRING_OPERATORS = (
    'equals', 'not_equals',
    'contains', 'not_contains',
    'starts_with', 'not_starts_with',
    'ends_with', 'not_ends_with',
    'matches_regex', 'not_matches_regex',
)
LIST_OPERATORS = ('in_list', 'not_in_list')
NUMERIC_OPERATORS = ('greater_than', 'less_than', 'between')
CONDITION_OPERATORS = STRING_OPERATORS + LIST_OPERATORS + NUMERIC_OPERATORS

# A missing field value satisfies only these
NULL_MATCHING_OPERATORS = ('not_equals', 'not_contains', 'not_in_list')

CONDITION_FIELDS = (
    'sender_email', 'sender_domain', 'sender_name',
    'recipient_email', 'recipient_domain',
    'subject', 'body_text', 'body_html',
    'attachment_name', 'attachment_type', 'attachment_count', 'has_attachments',
    'has_links', 'link_domain',
    'ip_address', 'country',
    'spf_result', 'dkim_result', 'dmarc_result',
    'threat_score', 'header',
)

DANGEROUS_ATTACHMENT_TYPES = [
    'application/x-msdownload',
    'application/x-executable',
    'application/x-msdos-program',
    'application/vnd.microsoft.portable-executable',
    'application/x-sh',
    'application/x-csh',
    'application/x-bat',
    'application/x-powershell',
]

DEFAULT_POLICIES = [
    {
        'name': 'Block Known Malicious Senders',
        'description': 'Automatically block emails from known malicious domains',
        'type': 'blocklist',
        'status': 'active',
        'priority': 'critical',
        'rules': [
            {
                'id': 'rule-block-malicious',
                'name': 'Block malicious domains',
                'conditions': [
                    {
                        'id': 'cond-1',
                        'field': 'sender_domain',
                        'operator': 'in_list',
                        'value': ['malware.com', 'phishing-site.net'],
                    },
                ],
                'condition_logic': 'and',
                'action': 'block',
                'action_params': {'block_reason': 'Sender domain is on known malicious list'},
                'enabled': True,
                'order': 1,
            },
        ],
    },
    {
        'name': 'Quarantine High-Risk Attachments',
        'description': 'Quarantine emails with potentially dangerous attachment types',
        'type': 'attachment',
        'status': 'active',
        'priority': 'high',
        'rules': [
            {
                'id': 'rule-dangerous-attachments',
                'name': 'Dangerous attachment types',
                'conditions': [
                    {
                        'id': 'cond-1',
                        'field': 'attachment_type',
                        'operator': 'in_list',
                        'value': DANGEROUS_ATTACHMENT_TYPES,
                    },
                ],
                'condition_logic': 'and',
                'action': 'quarantine',
                'action_params': {'quarantine_reason': 'Email contains potentially dangerous attachment type'},
                'enabled': True,
                'order': 1,
            },
        ],
    },
    {
        'name': 'Tag External Emails',
        'description': 'Add warning tag to emails from external senders',
        'type': 'content',
        'status': 'inactive',
        'priority': 'low',
        'rules': [
            {
                'id': 'rule-external-tag',
                'name': 'Tag external emails',
                'conditions': [
                    {
                        'id': 'cond-1',
                        'field': 'sender_domain',
                        'operator': 'not_equals',
                        'value': '',
                    },
                ],
                'condition_logic': 'and',
                'action': 'tag',
                'action_params': {'tag_text': '[EXTERNAL] '},
                'enabled': True,
                'order': 1,
            },
        ],
    },
]


def validate_condition(condition: Dict[str, Any], where: str):
    field = condition.get('field')
    operator = condition.get('operator')
    value = condition.get('value')

    if field not in CONDITION_FIELDS:
        raise PolicyValidationError(f"{where}: unknown field {field!r}")
    if operator not in CONDITION_OPERATORS:
        raise PolicyValidationError(f"{where}: unknown operator {operator!r}")
    if field == 'header' and not condition.get('header_name'):
        raise PolicyValidationError(f"{where}: header conditions need a header_name")

    if operator in LIST_OPERATORS and not isinstance(value, (list, tuple)):
        raise PolicyValidationError(f"{where}: {operator} needs a list value")
    if operator == 'between':
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise PolicyValidationError(f"{where}: between needs a [low, high] value")
    if operator in ('matches_regex', 'not_matches_regex'):
        try:
            re.compile(str(value))
        except re.error as e:
            raise PolicyValidationError(f"{where}: invalid regex {value!r}: {e}")


def validate_policy(policy: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a policy against the vocabulary before it is saved.
    Raises PolicyValidationError on the first problem; returns the policy.
    """
    if not policy.get('name'):
        raise PolicyValidationError("Policy needs a name")
    if policy.get('type', 'custom') not in POLICY_TYPES:
        raise PolicyValidationError(f"Unknown policy type {policy.get('type')!r}")
    if policy.get('status', 'active') not in POLICY_STATUSES:
        raise PolicyValidationError(f"Unknown policy status {policy.get('status')!r}")
    if policy.get('priority', 'medium') not in POLICY_PRIORITIES:
        raise PolicyValidationError(f"Unknown policy priority {policy.get('priority')!r}")

    rules = policy.get('rules') or []
    if not isinstance(rules, list):
        raise PolicyValidationError("Policy rules must be a list")

    for index, rule in enumerate(rules):
        where = f"rule {rule.get('name') or index}"
        if rule.get('action') not in POLICY_ACTIONS:
            raise PolicyValidationError(f"{where}: unknown action {rule.get('action')!r}")
        if rule.get('condition_logic', 'and') not in CONDITION_LOGIC:
            raise PolicyValidationError(f"{where}: unknown condition logic {rule.get('condition_logic')!r}")
        for condition in rule.get('conditions') or []:
            validate_condition(condition, where)

    return policy


def sort_rules(rules: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Rules in stored order (explicit 'order' first, list position breaks ties)"""
    indexed = list(enumerate(rules))
    indexed.sort(key=lambda pair: (pair[1].get('order', pair[0]), pair[0]))
    return [rule for _, rule in indexed]
