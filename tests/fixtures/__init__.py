"""
Test fixtures package for ibmpower tests.

This package provides reusable mock classes and sample data
for testing parsers, providers and the module entry points.
"""

from tests.fixtures.fake_clock import FakeClock
from tests.fixtures.mock_executor import MockCommandRunner
from tests.fixtures.mock_logger import MockLogger, create_mock_logger
from tests.fixtures.sample_data import (
    SAMPLE_CPUINFO,
    SAMPLE_DISKSTATS,
    SAMPLE_LPARCFG,
    SAMPLE_LPARSTAT_INFO,
    SAMPLE_LPARSTAT_SAMPLE,
    SAMPLE_PROC_STAT,
    aix_responses,
    write_proc_tree,
)

__all__ = [
    # Mock classes
    'FakeClock',
    'MockCommandRunner',
    'MockLogger',
    'create_mock_logger',
    # Sample data
    'SAMPLE_CPUINFO',
    'SAMPLE_DISKSTATS',
    'SAMPLE_LPARCFG',
    'SAMPLE_LPARSTAT_INFO',
    'SAMPLE_LPARSTAT_SAMPLE',
    'SAMPLE_PROC_STAT',
    'aix_responses',
    'write_proc_tree',
]
