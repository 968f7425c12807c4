"""
Shared pytest fixtures for ibmpower tests.

These fixtures provide mock data, loggers, clocks and fake /proc trees that
can be used across all test modules without POWER hardware or AIX.
"""

from unittest.mock import MagicMock

import pytest

from ibmpower.config import ModuleConfig
from ibmpower.rate_sampler import RateSampler
from tests.fixtures import FakeClock, MockCommandRunner, MockLogger, aix_responses, write_proc_tree


# =============================================================================
# Logger Fixtures
# =============================================================================

@pytest.fixture
def mock_logger():
    """
    Create a mock logger that captures all log calls.

    Usage:
        def test_something(mock_logger):
            some_function(logger=mock_logger)
            mock_logger.verbose.assert_called()
    """
    logger = MagicMock()
    for level in ['debug', 'info', 'warning', 'error', 'critical',
                  'status', 'verbose', 'verboser', 'ridiculous']:
        setattr(logger, level, MagicMock())
    return logger


@pytest.fixture
def capturing_logger():
    """
    Create a MockLogger that records messages per level.

    Usage:
        def test_something(capturing_logger):
            some_function(logger=capturing_logger)
            capturing_logger.assert_logged('warning', 'timed out')
    """
    return MockLogger()


# =============================================================================
# Clock and Sampler Fixtures
# =============================================================================

@pytest.fixture
def fake_clock():
    """A clock starting at 100 s that only moves via advance()/set()."""
    return FakeClock(100.0)


@pytest.fixture
def sampler(capturing_logger):
    return RateSampler(logger=capturing_logger)


@pytest.fixture
def module_config():
    return ModuleConfig()


# =============================================================================
# Platform Fixtures
# =============================================================================

@pytest.fixture
def proc_root(tmp_path):
    """A fake root with the shared-LPAR /proc capture and device tree."""
    return write_proc_tree(tmp_path, device_tree={
        'ibm,partition-name': b'lpar05-web\x00',
        'system-id': b'IBM,02781A1BX\x00',
        'openprom/ibm,fw-vernum_encoded': b'FW950.50 (92)\x00',
    })


@pytest.fixture
def linux_provider(proc_root, capturing_logger, fake_clock):
    from ibmpower.providers.linux import LinuxPowerProvider
    return LinuxPowerProvider(logger=capturing_logger, clock=fake_clock, root=str(proc_root),
                              os_release=lambda: 'Red Hat Enterprise Linux 9.2 (Plow)')


@pytest.fixture
def aix_runner():
    """Command runner answering like a shared AIX 7.2 LPAR."""
    return MockCommandRunner(aix_responses())


@pytest.fixture
def disk_counters():
    """Mutable psutil-style disk counters; tweak attributes between calls."""
    counters = MagicMock()
    counters.read_count = 1000
    counters.write_count = 500
    counters.read_bytes = 1_000_000
    counters.write_bytes = 2_000_000
    return counters


@pytest.fixture
def aix_provider(tmp_path, aix_runner, disk_counters, capturing_logger, fake_clock):
    from ibmpower.providers.aix import AIXPowerProvider
    return AIXPowerProvider(logger=capturing_logger, clock=fake_clock, root=str(tmp_path),
                            runner=aix_runner, disk_counters=lambda: disk_counters)
