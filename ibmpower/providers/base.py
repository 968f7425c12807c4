"""
Shared plumbing for the platform providers.

Both providers own a RateSampler, read time from the same uptime clock and
resolve absolute source paths below an optional root directory, which lets
tests point a provider at a captured /proc tree.
"""

import os
from typing import Callable, Optional

from ibmpower.config import ModuleConfig
from ibmpower.interfaces.provider import FloatResult, LparProviderInterface, Unavailable, is_unavailable
from ibmpower.power_logging import get_logger
from ibmpower.rate_sampler import RateSampler
from ibmpower.utils import uptime_clock


class BasePowerProvider(LparProviderInterface):
    """
    Base class holding the state every provider needs.

    Attributes:
        config: Effective module configuration.
        logger: PowerLogger used for diagnostics.
        sampler: Rate sampler shared by all rate metrics of this provider.
        clock: Monotonic seconds source for rate computation.
        root: Directory that absolute source paths are resolved under.
    """

    def __init__(
        self,
        config: Optional[ModuleConfig] = None,
        logger=None,
        sampler: Optional[RateSampler] = None,
        clock: Callable[[], float] = uptime_clock,
        root: str = '/',
    ):
        self.config = config or ModuleConfig()
        self.logger = logger or get_logger()
        self.sampler = sampler or RateSampler(logger=self.logger)
        self.clock = clock
        self.root = root
        self._last_cpu_used = 0.0

    def _path(self, path: str) -> str:
        if self.root in ('', '/'):
            return path
        return os.path.join(self.root, path.lstrip('/'))

    def _bounded(self, value: float, bound: float, metric: str, inclusive: bool = False) -> float:
        """Zero out an implausible reading instead of reporting it.

        With ``inclusive`` a value equal to ``bound`` is implausible too.
        """
        if value > bound or (inclusive and value == bound):
            self.logger.verbose(f'{metric}: {value} above {bound}, reporting 0')
            return 0.0
        return value

    def _remember_cpu_used(self, value: FloatResult) -> FloatResult:
        if not is_unavailable(value):
            self._last_cpu_used = value
        return value

    def _entitlement_ratio(self, entitlement: FloatResult) -> float:
        """Last cpu_used as a percentage of ``entitlement``, 100 when there is none."""
        if is_unavailable(entitlement) or entitlement <= 0:
            return 100.0
        return 100.0 * self._last_cpu_used / entitlement

    def _log_unavailable(self, metric: str, reason: str) -> Unavailable:
        self.logger.debug(f'{metric}: {reason}')
        return Unavailable(reason)
