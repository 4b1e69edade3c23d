"""
Exceptions raised for administrative misuse.

Detection paths never raise these; they return neutral results instead.
"""


class MailShieldError(Exception):
    """Base class for MailShield errors"""


class TenantNotFoundError(MailShieldError):
    def __init__(self, tenant_id):
        super().__init__(f"Tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class BrandNotFoundError(MailShieldError):
    def __init__(self, tenant_id, domain):
        super().__init__(f"Brand {domain} not registered for tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.domain = domain


class ClickMappingNotFoundError(MailShieldError):
    def __init__(self, click_id):
        super().__init__(f"Click mapping not found: {click_id}")
        self.click_id = click_id


class PolicyValidationError(MailShieldError):
    """Raised when a policy uses an unknown field, operator or action"""


class FeedLookupError(MailShieldError):
    """Raised by feed clients when a reputation lookup cannot complete"""

    def __init__(self, feed, message):
        super().__init__(f"{feed}: {message}")
        self.feed = feed


class PolicyNotFoundError(MailShieldError):
    def __init__(self, tenant_id, policy_id):
        super().__init__(f"Policy {policy_id} not found for tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.policy_id = policy_id
