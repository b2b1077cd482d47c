import json
import logging
import os
import sys
import warnings

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from firephp_wildfire.debug.handler import THROTTLE_NOTICE, ErrorReporter, FirePHPHandler
from firephp_wildfire.debug.sink import ListHeaderSink
from firephp_wildfire.protocol.framer import reassemble
from firephp_wildfire.protocol.session import ProtocolSession


def decode_messages(sink):
    messages, pending = [], []
    for _, value in sink.message_headers():
        pending.append(value)
        if not value.endswith('\\'):
            messages.append(json.loads(reassemble(pending)))
            pending = []
    return messages


class TestErrorReporter:
    """Exceptions, warnings and notices sent through a reporter."""

    def setup_method(self):
        self.sink = ListHeaderSink()
        self.session = ProtocolSession(self.sink)
        self.reporter = ErrorReporter(self.session, throttle=2)

    def teardown_method(self):
        self.reporter.uninstall()

    def test_report_exception(self):
        try:
            raise ZeroDivisionError('division by zero')
        except ZeroDivisionError as e:
            assert self.reporter.report_exception(e) is True
        meta, payload = decode_messages(self.sink)[0]
        assert meta == {'Type': 'EXCEPTION'}
        assert payload['Class'] == 'ZeroDivisionError'

    def test_report_exception_after_response_started(self):
        written = []
        session = ProtocolSession(
            self.sink,
            response_started=lambda: (True, 'view.py', 3),
            inline_writer=written.append,
        )
        reporter = ErrorReporter(session)
        assert reporter.report_exception(RuntimeError('late')) is False
        assert len(self.sink) == 0
        assert 'view.py' in written[0]

    def test_report_warning(self):
        assert self.reporter.report_warning('careful', DeprecationWarning, '/srv/app.py', 7) is True
        meta, payload = decode_messages(self.sink)[0]
        assert meta == {'Type': 'WARN', 'Label': 'DeprecationWarning - in /srv/app.py on line 7'}
        assert payload == 'careful'

    def test_warning_throttle(self):
        results = [self.reporter.report_warning(f'w{i}') for i in range(5)]
        assert results == [True, True, True, False, False]
        messages = decode_messages(self.sink)
        assert [payload for _, payload in messages] == ['w0', 'w1', THROTTLE_NOTICE]
        assert messages[2][0]['Label'].startswith('Notice - in ')

    def test_throttle_notice_uses_warning_location(self):
        for i in range(3):
            self.reporter.report_warning(f'w{i}', UserWarning, '/srv/app.py', 12)
        meta, payload = decode_messages(self.sink)[2]
        assert payload == THROTTLE_NOTICE
        assert meta['Label'] == 'Notice - in /srv/app.py on line 12'

    def test_notice_at_given_location(self):
        self.reporter.notice('moved', filename='/srv/lib.py', lineno=4)
        assert decode_messages(self.sink)[0][0]['Label'] == 'Notice - in /srv/lib.py on line 4'

    def test_reset(self):
        for i in range(4):
            self.reporter.report_warning(f'w{i}')
        self.reporter.reset()
        assert self.reporter.report_warning('again') is True

    def test_notice(self):
        assert self.reporter.notice('heads up') is True
        meta, payload = decode_messages(self.sink)[0]
        assert payload == 'heads up'
        assert meta['Type'] == 'WARN'
        assert 'test_handler.py on line ' in meta['Label']

    def test_hidden_notice(self):
        reporter = ErrorReporter(self.session, show_notices=False)
        assert reporter.notice('quiet') is False
        assert reporter.notice('loud', always_show=True) is True
        assert [payload for _, payload in decode_messages(self.sink)] == ['loud']

    def test_install_and_uninstall(self):
        original_hook = sys.excepthook
        with warnings.catch_warnings():
            warnings.simplefilter('always')
            self.reporter.install()
            assert sys.excepthook != original_hook
            warnings.warn('deprecated thing', UserWarning)
            self.reporter.uninstall()
        assert sys.excepthook is original_hook
        meta, payload = decode_messages(self.sink)[0]
        assert payload == 'deprecated thing'
        assert meta['Label'].startswith('UserWarning - in ')

    def test_excepthook_chains_previous_hook(self, monkeypatch):
        previous = []
        monkeypatch.setattr(sys, 'excepthook', lambda *args: previous.append(args))
        self.reporter.install()
        try:
            raise LookupError('missing')
        except LookupError as e:
            sys.excepthook(type(e), e, e.__traceback__)
        self.reporter.uninstall()
        assert decode_messages(self.sink)[0][1]['Class'] == 'LookupError'
        assert len(previous) == 1


class TestFirePHPHandler:
    """Log records forwarded to the console."""

    def setup_method(self):
        self.sink = ListHeaderSink()
        self.session = ProtocolSession(self.sink)
        self.handler = FirePHPHandler(self.session)
        self.logger = logging.getLogger('test.firephp')
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.logger.addHandler(self.handler)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def test_level_mapping(self):
        self.logger.debug('d')
        self.logger.info('i')
        self.logger.warning('w %s', 'arg')
        self.logger.error('e')
        self.logger.critical('c')
        messages = decode_messages(self.sink)
        assert [meta['Type'] for meta, _ in messages] == ['LOG', 'INFO', 'WARN', 'ERROR', 'ERROR']
        assert messages[2] == [{'Type': 'WARN', 'Label': 'test.firephp'}, 'w arg']

    def test_exception_record(self):
        try:
            raise ValueError('bad')
        except ValueError:
            self.logger.exception('while parsing')
        meta, payload = decode_messages(self.sink)[0]
        assert meta == {'Type': 'EXCEPTION', 'Label': 'while parsing'}
        assert payload['Class'] == 'ValueError'

    def test_failures_do_not_escape(self, monkeypatch):
        session = ProtocolSession(self.sink, response_started=lambda: (True, None, None))
        self.handler.session = session
        monkeypatch.setattr(logging, 'raiseExceptions', False)
        self.logger.error('lost')
        assert len(self.sink) == 0

    def test_handler_level(self):
        self.handler.setLevel(logging.WARNING)
        self.logger.info('skipped')
        self.logger.warning('kept')
        assert [payload for _, payload in decode_messages(self.sink)] == ['kept']
