"""
Tests for logging setup: level parsing, noisy library floors and the
playback tick filter.
"""

import logging

import pytest

from smartflow_server.core.logging_config import (
    PlaybackChatterFilter,
    configure_logging,
    resolve_level,
)
from smartflow_server.schemas.health import HealthStatus, worst


def _record(msg: str) -> logging.LogRecord:
    return logging.LogRecord('smartflow_server.flows.overlays', logging.DEBUG, __file__, 1, msg, (), None)


class TestResolveLevel:
    @pytest.mark.parametrize('name, expected', [
        ('debug', logging.DEBUG),
        ('WARNING', logging.WARNING),
        (None, logging.INFO),
        ('loud', logging.INFO),
    ])
    def test_names(self, name, expected):
        assert resolve_level(name) == expected


class TestPlaybackChatterFilter:
    def test_drops_tick_lines(self):
        f = PlaybackChatterFilter()
        assert f.filter(_record('overlays.tick t=1.000 active=[1]')) is False
        assert f.filter(_record('loaded flow s-int')) is True

    def test_disabled_passes_everything(self):
        f = PlaybackChatterFilter(enabled=False)
        assert f.filter(_record('overlays.tick t=1.000 active=[]')) is True


class TestConfigureLogging:
    def test_library_floors_and_idempotent_handler(self):
        configure_logging('DEBUG')
        configure_logging('DEBUG')
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert logging.getLogger('httpx').level >= logging.WARNING
        streams = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
        assert streams
        configure_logging('INFO')

    def test_tick_toggle(self):
        configure_logging('INFO', playback_ticks=True)
        try:
            app_logger = logging.getLogger('smartflow_server')
            assert all(f.filter(_record('overlays.tick t=2.0 active=[]')) for f in app_logger.filters)
        finally:
            configure_logging('INFO')


class TestWorstStatus:
    def test_ordering(self):
        assert worst(HealthStatus.OK, HealthStatus.WARN) is HealthStatus.WARN
        assert worst(HealthStatus.ERROR, HealthStatus.OK, HealthStatus.WARN) is HealthStatus.ERROR
        assert worst() is HealthStatus.OK
