"""
Mock logger for testing.

Provides a logger that captures all log calls for verification
without writing to stdout.
"""

from typing import Dict, List


class MockLogger:
    """
    A mock logger that captures all log messages for testing.

    Attributes:
        messages: Dictionary mapping log level to list of messages.
        call_count: Dictionary mapping log level to call count.

    Example:
        logger = MockLogger()
        provider = LinuxPowerProvider(logger=logger, root=tmp_path)

        assert logger.has_message('debug', 'lparcfg')
        assert logger.call_count['warning'] == 0
    """

    # All supported log levels
    LOG_LEVELS = [
        'debug', 'info', 'warning', 'error', 'critical',
        'status', 'verbose', 'verboser', 'ridiculous',
    ]

    def __init__(self):
        self.messages: Dict[str, List[str]] = {level: [] for level in self.LOG_LEVELS}
        self.call_count: Dict[str, int] = {level: 0 for level in self.LOG_LEVELS}
        for level in self.LOG_LEVELS:
            setattr(self, level, self._make_log_method(level))

    def _make_log_method(self, level: str):
        def log_method(msg: str, *args, **kwargs):
            if args:
                try:
                    msg = msg % args
                except TypeError:
                    pass
            self.messages[level].append(msg)
            self.call_count[level] += 1
        return log_method

    def has_message(self, level: str, substring: str) -> bool:
        """Check if any message at the given level contains the substring."""
        return any(substring in msg for msg in self.messages.get(level, []))

    def get_messages(self, level: str) -> List[str]:
        return self.messages.get(level, [])

    def clear(self):
        """Clear all captured messages."""
        self.messages = {level: [] for level in self.LOG_LEVELS}
        self.call_count = {level: 0 for level in self.LOG_LEVELS}

    def assert_logged(self, level: str, substring: str):
        """
        Assert that a message was logged at the given level.

        Raises:
            AssertionError: If no message contains the substring.
        """
        if not self.has_message(level, substring):
            raise AssertionError(
                f"Expected '{substring}' in {level} messages.\n"
                f"Actual messages: {self.messages.get(level, [])}"
            )

    def assert_not_logged(self, level: str, substring: str):
        if self.has_message(level, substring):
            raise AssertionError(
                f"Did not expect '{substring}' in {level} messages.\n"
                f"Actual messages: {self.messages.get(level, [])}"
            )


def create_mock_logger() -> MockLogger:
    """Factory function to create a MockLogger instance."""
    return MockLogger()
