#!/usr/bin/env python3
"""
MailShield command line
Runs the stateless detectors against a single input and prints JSON.

    mailshield brand paypa1.com
    mailshield bec --subject "Urgent wire" --body "Send $50,000 today"
    mailshield domain-age example.com
    mailshield reputation https://example.com/login
    mailshield lookalike login-paypal.com --tenant acme
"""

import sys
import json
import logging
import argparse

from mailshield.modules.bec_detector import detect_bec
from mailshield.modules.bec_patterns import quick_bec_check
from mailshield.modules.brand_impersonation import detect_brand_impersonation, detect_display_name_brand_spoof
from mailshield.modules.domain_age import check_domain_age
from mailshield.modules.email_parser import build_email
from mailshield.modules.lookalike_learner import LookalikeLearner
from mailshield.modules.url_reputation import ReputationAggregator

logger = logging.getLogger(__name__)


def cmd_brand(args):
    result = {'domain': args.domain, 'matches': detect_brand_impersonation(args.domain)}
    if args.display_name:
        result['display_name_spoof'] = detect_display_name_brand_spoof(args.display_name, args.domain)
    return result


def cmd_bec(args):
    if args.quick:
        return quick_bec_check(args.subject, args.body)
    email = build_email(args.sender or '', subject=args.subject, text=args.body,
                        headers={'reply-to': args.reply_to} if args.reply_to else None)
    return detect_bec(email, organization_domain=args.org_domain)


def cmd_domain_age(args):
    return check_domain_age(args.domain)


def cmd_reputation(args):
    aggregator = ReputationAggregator(check_domain_age=not args.no_whois)
    return aggregator.check_reputation(args.target)


def cmd_lookalike(args):
    learner = LookalikeLearner()
    if args.tenant and args.brand:
        learner.add_tenant_brand(args.tenant, {'domain': args.brand, 'brand_name': args.brand.split('.')[0]})
    return learner.detect_with_learning(args.tenant, args.domain)


def build_parser():
    parser = argparse.ArgumentParser(prog='mailshield', description='MailShield email threat detectors')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command')
    subparsers.required = True

    brand = subparsers.add_parser('brand', help='Check a domain for brand impersonation')
    brand.add_argument('domain')
    brand.add_argument('--display-name', help='Also check a sender display name for brand spoofing')
    brand.set_defaults(func=cmd_brand)

    bec = subparsers.add_parser('bec', help='Check message text for BEC indicators')
    bec.add_argument('--subject', default='')
    bec.add_argument('--body', default='')
    bec.add_argument('--sender', help="Sender, e.g. 'Jane Doe <jane@example.com>'")
    bec.add_argument('--reply-to')
    bec.add_argument('--org-domain', help='Organisation domain for cousin-domain checks')
    bec.add_argument('--quick', action='store_true', help='Patterns and amounts only')
    bec.set_defaults(func=cmd_bec)

    age = subparsers.add_parser('domain-age', help='WHOIS-based domain age risk')
    age.add_argument('domain')
    age.set_defaults(func=cmd_domain_age)

    reputation = subparsers.add_parser('reputation', help='Aggregate reputation of a domain or URL')
    reputation.add_argument('target')
    reputation.add_argument('--no-whois', action='store_true', help='Skip the domain age lookup')
    reputation.set_defaults(func=cmd_reputation)

    lookalike = subparsers.add_parser('lookalike', help='Lookalike detection against brand registries')
    lookalike.add_argument('domain')
    lookalike.add_argument('--tenant', help='Tenant id')
    lookalike.add_argument('--brand', help='Tenant brand domain to protect')
    lookalike.set_defaults(func=cmd_lookalike)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        result = args.func(args)
    except ValueError as e:
        logger.error(str(e))
        return 2

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == '__main__':
    sys.exit(main())
