#!/usr/bin/env python3
"""
Tenant Allowlist/Blocklist Module

Per-tenant list entries checked before any policy rule runs.
Features:
- Entry types: email, domain, ip (address or CIDR), url
- Optional expiry; expired entries are ignored but kept
- Sender matching by exact address or sender domain
- URL matching by exact URL, or by domain (subdomains included)
- GeoIP country lookup for IP-based policy conditions
"""

import os
import logging
import ipaddress
from datetime import datetime
from typing import Optional, Dict, List, Any

import geoip2.database
import geoip2.errors
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from mailshield import config
from mailshield.modules.brand_impersonation import normalize_domain
from mailshield.modules.email_database import DatabaseHandler, ListEntry
from mailshield.modules.threat_feeds import normalize_url

logger = logging.getLogger(__name__)

LIST_TYPES = ('allowlist', 'blocklist')
ENTRY_TYPES = ('email', 'domain', 'ip', 'url')


def normalize_entry_value(entry_type: str, value: str) -> str:
    """Canonical form stored for an entry; raises ValueError for unusable values"""
    value = (value or '').strip()
    if entry_type == 'email':
        value = value.lower()
        if '@' not in value:
            raise ValueError(f"Invalid email entry: {value!r}")
        return value
    if entry_type == 'domain':
        domain = normalize_domain(value)
        if not domain or '.' not in domain:
            raise ValueError(f"Invalid domain entry: {value!r}")
        return domain
    if entry_type == 'ip':
        try:
            if '/' in value:
                return str(ipaddress.ip_network(value, strict=False))
            return str(ipaddress.ip_address(value))
        except ValueError:
            raise ValueError(f"Invalid IP entry: {value!r}")
    if entry_type == 'url':
        if '://' not in value:
            raise ValueError(f"Invalid URL entry: {value!r}")
        return normalize_url(value)
    raise ValueError(f"Unknown entry type: {entry_type!r}")


def _active(query, now: datetime):
    return query.filter(or_(ListEntry.expires_at.is_(None), ListEntry.expires_at > now))


def _describe_match(entry: ListEntry) -> str:
    return f"Sender {entry.entry_type} is in {entry.list_type}: {entry.value}"


class ListStore:
    """Tenant-scoped allowlist/blocklist store backed by SQLAlchemy"""

    def __init__(self, db: DatabaseHandler):
        self.db = db

    def add_entry(self, tenant_id: str, list_type: str, entry_type: str, value: str,
                  reason: Optional[str] = None, expires_at: Optional[datetime] = None,
                  created_by: Optional[str] = None) -> Dict[str, Any]:
        """Add an entry, or refresh reason/expiry of an identical one"""
        if list_type not in LIST_TYPES:
            raise ValueError(f"Unknown list type: {list_type!r}")
        normalized = normalize_entry_value(entry_type, value)

        with self.db.session_scope() as session:
            entry = session.query(ListEntry).filter_by(
                tenant_id=tenant_id, list_type=list_type,
                entry_type=entry_type, value=normalized
            ).first()
            if entry is None:
                entry = ListEntry(
                    tenant_id=tenant_id, list_type=list_type, entry_type=entry_type,
                    value=normalized, reason=reason, expires_at=expires_at,
                    created_by=created_by, created_at=datetime.now()
                )
                session.add(entry)
            else:
                entry.reason = reason
                entry.expires_at = expires_at
            try:
                session.flush()
            except IntegrityError:
                raise ValueError(f"Duplicate {list_type} entry {normalized} for tenant {tenant_id}")

            logger.info(f"{list_type} entry {entry_type}:{normalized} saved for tenant {tenant_id}")
            return entry.to_dict()

    def remove_entry(self, tenant_id: str, entry_id: int) -> bool:
        with self.db.session_scope() as session:
            deleted = session.query(ListEntry).filter_by(tenant_id=tenant_id, id=entry_id).delete()
        return deleted > 0

    def get_entries(self, tenant_id: str, list_type: Optional[str] = None,
                    include_expired: bool = True) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            query = session.query(ListEntry).filter_by(tenant_id=tenant_id)
            if list_type:
                query = query.filter_by(list_type=list_type)
            if not include_expired:
                query = _active(query, datetime.now())
            return [e.to_dict() for e in query.order_by(ListEntry.created_at).all()]

    def find_sender_match(self, tenant_id: str, list_type: str, sender_email: str,
                          now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """First active entry matching the sender address or its domain"""
        sender = (sender_email or '').strip().lower()
        if '@' not in sender:
            return None
        domain = sender.rsplit('@', 1)[1]

        with self.db.session_scope() as session:
            query = session.query(ListEntry).filter_by(tenant_id=tenant_id, list_type=list_type)
            query = _active(query, now or datetime.now()).filter(or_(
                (ListEntry.entry_type == 'email') & (ListEntry.value == sender),
                (ListEntry.entry_type == 'domain') & (ListEntry.value == domain),
            ))
            # Address entries are more specific than domain entries
            entry = query.order_by(ListEntry.entry_type.desc()).first()
            if entry is None:
                return None
            result = entry.to_dict()
            result['reason_text'] = _describe_match(entry)
            return result

    def find_url_match(self, tenant_id: str, list_type: str, url: str,
                       now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """First active url entry equal to the URL, or domain entry covering its host"""
        host = normalize_domain(url)
        if not host:
            return None
        normalized = normalize_url(url)

        with self.db.session_scope() as session:
            query = session.query(ListEntry).filter_by(tenant_id=tenant_id, list_type=list_type)
            entries = _active(query, now or datetime.now()).filter(
                ListEntry.entry_type.in_(('url', 'domain'))
            ).all()
            for entry in entries:
                if entry.entry_type == 'url' and entry.value == normalized:
                    return entry.to_dict()
            for entry in entries:
                if entry.entry_type == 'domain' and (host == entry.value or host.endswith('.' + entry.value)):
                    return entry.to_dict()
        return None

    def find_ip_match(self, tenant_id: str, list_type: str, ip: str,
                      now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        try:
            address = ipaddress.ip_address((ip or '').strip())
        except ValueError:
            return None

        with self.db.session_scope() as session:
            query = session.query(ListEntry).filter_by(tenant_id=tenant_id, list_type=list_type, entry_type='ip')
            for entry in _active(query, now or datetime.now()).all():
                try:
                    if address in ipaddress.ip_network(entry.value, strict=False):
                        return entry.to_dict()
                except ValueError:
                    logger.warning(f"Invalid stored IP entry {entry.value!r} (id={entry.id})")
        return None


class CountryLookup:
    """GeoIP2 country lookups; country is None without a database"""

    def __init__(self, geoip_db_path: Optional[str] = None):
        self.geoip_db_path = geoip_db_path or config.get_geoip_db_path()
        self.geoip_reader = None
        self._initialize_geoip()

    def _initialize_geoip(self):
        if not self.geoip_db_path:
            return
        try:
            if os.path.exists(self.geoip_db_path):
                self.geoip_reader = geoip2.database.Reader(self.geoip_db_path)
                logger.info("GeoIP database loaded")
            else:
                logger.warning(f"GeoIP database not found at {self.geoip_db_path}")
        except Exception as e:
            logger.error(f"GeoIP initialization failed: {e}")

    def get_country_from_ip(self, ip_address: str) -> Optional[str]:
        if not self.geoip_reader or not ip_address:
            return None
        try:
            response = self.geoip_reader.country(ip_address)
            return response.country.iso_code
        except geoip2.errors.AddressNotFoundError:
            return None
        except Exception as e:
            logger.warning(f"GeoIP lookup error for {ip_address}: {e}")
            return None

    def close(self):
        if self.geoip_reader:
            self.geoip_reader.close()
            self.geoip_reader = None
