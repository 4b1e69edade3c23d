import json
import logging

from mailshield.services.audit import AuditSink, LoggingAuditSink, MemoryAuditSink


class BrokenSink(AuditSink):
    def write(self, event):
        raise IOError('disk full')


def test_memory_sink_filters_by_type():
    sink = MemoryAuditSink()
    sink.emit('verdict', 'acme', action='block')
    sink.emit('click', 'acme', action='allow')

    assert [e['event_type'] for e in sink.events()] == ['verdict', 'click']
    verdicts = sink.events('verdict')
    assert verdicts[0]['tenant_id'] == 'acme'
    assert verdicts[0]['action'] == 'block'
    assert 'timestamp' in verdicts[0]

    sink.clear()
    assert sink.events() == []


def test_memory_sink_is_bounded():
    sink = MemoryAuditSink(max_events=2)
    for i in range(3):
        sink.emit('verdict', 'acme', n=i)
    assert [e['n'] for e in sink.events()] == [1, 2]


def test_logging_sink_writes_json(caplog):
    with caplog.at_level(logging.INFO, logger='mailshield.audit'):
        LoggingAuditSink().emit('click_bypass', 'acme', user='tom', allowed=True)
    event = json.loads(caplog.records[-1].getMessage())
    assert event['event_type'] == 'click_bypass'
    assert event['allowed'] is True


def test_failing_sink_does_not_raise(caplog):
    BrokenSink().emit('verdict', 'acme')
    assert 'BrokenSink failed for verdict' in caplog.text
