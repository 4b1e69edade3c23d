#!/usr/bin/env python3
"""
Audit Event Sinks

Verdicts, click actions and feedback events are published to an audit sink.
Publishing is fire-and-forget: a failing sink is logged and never breaks
the decision that produced the event.
"""

import json
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)


class AuditSink:
    """Base sink; subclasses implement write()"""

    def write(self, event: Dict[str, Any]):
        raise NotImplementedError

    def emit(self, event_type: str, tenant_id: Optional[str], **fields):
        event = {
            'event_type': event_type,
            'tenant_id': tenant_id,
            'timestamp': datetime.now().isoformat(),
        }
        event.update(fields)
        try:
            self.write(event)
        except Exception as e:
            logger.error(f"Audit sink {type(self).__name__} failed for {event_type}: {e}")


class LoggingAuditSink(AuditSink):
    """Writes each event as one JSON line to the 'mailshield.audit' logger"""

    def __init__(self, logger_name: str = 'mailshield.audit'):
        self.audit_logger = logging.getLogger(logger_name)

    def write(self, event):
        self.audit_logger.info(json.dumps(event, default=str, sort_keys=True))


class MemoryAuditSink(AuditSink):
    """Keeps the most recent events in memory"""

    def __init__(self, max_events: int = 10000):
        self._events = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def write(self, event):
        with self._lock:
            self._events.append(event)

    def events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            events = list(self._events)
        if event_type:
            events = [e for e in events if e['event_type'] == event_type]
        return events

    def clear(self):
        with self._lock:
            self._events.clear()
