#!/usr/bin/env python3
"""
Parsed Email Construction

Builds the parsed-email dict consumed by the policy engine and the BEC
detector from explicit fields:

    {
        'sender': {'address', 'display_name', 'domain'},
        'recipients': [{'address', 'display_name'}],
        'subject': str,
        'body': {'text', 'html'},
        'headers': {lower-case name: value},
        'attachments': [{'filename', 'content_type', 'size', 'content'}],
    }

Consumers treat the dict as read-only.
"""

import logging
from email.utils import parseaddr, getaddresses
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)


def _address(display_name: str, address: str) -> Dict[str, str]:
    address = (address or '').strip().lower()
    return {
        'address': address,
        'display_name': (display_name or '').strip().strip('"').strip("'"),
    }


def build_email(sender: str, recipients: Optional[List[str]] = None, subject: str = '',
                text: str = '', html: str = '', headers: Optional[Dict[str, str]] = None,
                attachments: Optional[List[Dict[str, Any]]] = None,
                sender_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Parsed email from explicit fields. `sender` may be 'Name <addr>' or a
    bare address; `sender_name` overrides the display name.
    """
    display_name, address = parseaddr(sender or '')
    sender_entry = _address(sender_name if sender_name is not None else display_name, address)
    sender_entry['domain'] = sender_entry['address'].rsplit('@', 1)[1] if '@' in sender_entry['address'] else ''

    parsed_attachments = []
    for attachment in attachments or []:
        content = attachment.get('content')
        parsed_attachments.append({
            'filename': attachment.get('filename') or '',
            'content_type': (attachment.get('content_type') or 'application/octet-stream').lower(),
            'size': attachment.get('size', len(content) if content else 0),
            'content': content,
        })

    return {
        'sender': sender_entry,
        'recipients': [_address(n, a) for n, a in getaddresses(recipients or [])],
        'subject': subject or '',
        'body': {'text': text or '', 'html': html or ''},
        'headers': {k.lower(): v for k, v in (headers or {}).items()},
        'attachments': parsed_attachments,
    }
