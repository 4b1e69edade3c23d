#!/usr/bin/env python3
"""
MailShield Database Module

SQLAlchemy models and session handling for the list, policy and click
stores. Any SQLAlchemy URL works; MySQL is reached via mysql+pymysql://
and an in-memory SQLite database is the default.

Features:
- Declarative models with lookup indexes
- Session factory with proper close/rollback handling
- JSON payloads stored in Text columns
- Click scans are insert-only, keyed by (click_id, scanned_at)
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import (
    create_engine, Column, Integer, String, Text, Float, DateTime, Boolean,
    Index, UniqueConstraint, text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from mailshield import config

logger = logging.getLogger(__name__)

# Base class for database models
Base = declarative_base()


def to_json(value) -> str:
    return json.dumps(value, default=str)


def from_json(value, default=None):
    if not value:
        return default
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        logger.error(f"Corrupt JSON column value: {value[:80]!r}")
        return default


# ============================================================================
# DATABASE MODELS
# ============================================================================

class ListEntry(Base):
    """Tenant allowlist/blocklist entry"""
    __tablename__ = 'list_entries'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False)
    list_type = Column(String(20), nullable=False)   # 'allowlist', 'blocklist'
    entry_type = Column(String(20), nullable=False)  # 'email', 'domain', 'ip', 'url'
    value = Column(String(512), nullable=False)
    reason = Column(Text)
    expires_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    created_by = Column(String(255))

    __table_args__ = (
        UniqueConstraint('tenant_id', 'list_type', 'entry_type', 'value', name='uq_list_entry'),
        Index('idx_list_entries_lookup', 'tenant_id', 'list_type', 'entry_type'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'list_type': self.list_type,
            'entry_type': self.entry_type,
            'value': self.value,
            'reason': self.reason,
            'expires_at': self.expires_at,
            'created_at': self.created_at,
            'created_by': self.created_by,
        }


class Policy(Base):
    """Tenant policy; rules (with conditions) are a JSON list"""
    __tablename__ = 'policies'

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    type = Column(String(50), nullable=False)
    status = Column(String(20), default='active')
    priority = Column(String(20), default='medium')
    rules = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    created_by = Column(String(255))

    __table_args__ = (
        Index('idx_policies_tenant_status', 'tenant_id', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'status': self.status,
            'priority': self.priority,
            'rules': from_json(self.rules, []),
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'created_by': self.created_by,
        }


class ClickMapping(Base):
    """Rewritten link -> original URL"""
    __tablename__ = 'click_mappings'

    click_id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    email_id = Column(String(255))
    recipient = Column(String(255))
    original_url = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    expires_at = Column(DateTime)
    click_count = Column(Integer, default=0)
    last_clicked_at = Column(DateTime)


class ClickScan(Base):
    """One click-time scan; never updated"""
    __tablename__ = 'click_scans'

    id = Column(Integer, primary_key=True, autoincrement=True)
    click_id = Column(String(64), nullable=False)
    tenant_id = Column(String(64), nullable=False)
    scanned_at = Column(DateTime, nullable=False, default=datetime.now)
    original_url = Column(Text)
    final_url = Column(Text)
    redirect_chain = Column(Text)
    verdict = Column(String(20))
    threats = Column(Text)
    reputation = Column(Text)
    should_warn = Column(Boolean, default=False)
    should_block = Column(Boolean, default=False)
    scan_time_ms = Column(Float, default=0.0)

    __table_args__ = (
        UniqueConstraint('click_id', 'scanned_at', name='uq_click_scan'),
        Index('idx_click_scans_tenant_time', 'tenant_id', 'scanned_at'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'click_id': self.click_id,
            'tenant_id': self.tenant_id,
            'scanned_at': self.scanned_at,
            'original_url': self.original_url,
            'final_url': self.final_url,
            'redirect_chain': from_json(self.redirect_chain, []),
            'verdict': self.verdict,
            'threats': from_json(self.threats, []),
            'reputation': from_json(self.reputation, {}),
            'should_warn': self.should_warn,
            'should_block': self.should_block,
            'scan_time_ms': self.scan_time_ms,
        }


class ClickEvent(Base):
    """User-facing click action: allow, warn, block, expired, proceed_anyway, report"""
    __tablename__ = 'click_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    click_id = Column(String(64), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False)
    event_type = Column(String(30), nullable=False)
    user = Column(String(255))
    url = Column(Text)
    domain = Column(String(255))
    verdict = Column(String(20))
    details = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('idx_click_events_tenant_type', 'tenant_id', 'event_type'),
        Index('idx_click_events_domain', 'tenant_id', 'domain'),
    )


# ============================================================================
# DATABASE HANDLER
# ============================================================================

class DatabaseHandler:
    """Engine and session factory shared by the stores of one service"""

    def __init__(self, db_url: Optional[str] = None):
        self.db_url = db_url or config.get_database_url()
        self.engine = None
        self.SessionLocal = None
        self._initialize_database()

    def _initialize_database(self):
        url = make_url(self.db_url)
        if url.get_backend_name() == 'sqlite' and url.database in (None, '', ':memory:'):
            # One shared connection so an in-memory database survives across sessions
            self.engine = create_engine(
                self.db_url,
                connect_args={'check_same_thread': False},
                poolclass=StaticPool,
                echo=False
            )
        elif url.get_backend_name() == 'sqlite':
            self.engine = create_engine(
                self.db_url,
                connect_args={'check_same_thread': False},
                echo=False
            )
        else:
            self.engine = create_engine(
                self.db_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=False
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database initialized ({self.engine.url.get_backend_name()})")

    def get_db_session(self):
        """Get a new database session"""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self):
        """Transactional scope: commit on success, rollback on error"""
        session = self.get_db_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        session = None
        try:
            session = self.get_db_session()
            session.execute(text("SELECT 1")).fetchone()
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False
        finally:
            if session:
                session.close()

    def get_stats(self) -> Dict[str, Any]:
        with self.session_scope() as session:
            return {
                'list_entries': session.query(ListEntry).count(),
                'policies': session.query(Policy).count(),
                'click_mappings': session.query(ClickMapping).count(),
                'click_scans': session.query(ClickScan).count(),
                'click_events': session.query(ClickEvent).count(),
            }
