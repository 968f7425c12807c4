"""
Rate computation from monotonically increasing counters.

Kernel and hypervisor counters (PURR cycles, pool idle time, disk sectors)
are sampled at irregular intervals by the monitoring daemon. ``sample`` turns
two consecutive readings into a rate and absorbs every anomaly into the
returned value instead of raising:

- first reading: no baseline, rate 0
- no time elapsed: previous rate held
- counter went backwards (reset or wrap): previous rate held
- implausibly large rate: 0, the provider was toggled mid-interval

``RateSampler`` keeps one ``SamplerState`` per metric key and serializes
updates per key.
"""

import math
import threading
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class SamplerState:
    """Last accepted reading of one counter.

    Attributes:
        last_timestamp: Clock value (seconds) of the last accepted interval end.
        last_raw_value: Counter value the next delta is measured from.
        last_rate: Rate returned by the previous call.
    """
    last_timestamp: float
    last_raw_value: float
    last_rate: float = 0.0


def sample(
    state: Optional[SamplerState],
    now: float,
    raw_value: float,
    scale: float = 1.0,
    max_plausible_rate: float = math.inf,
) -> Tuple[float, SamplerState]:
    """Compute the rate since the previous reading.

    Args:
        state: Previous state, or None for the first reading of a metric.
        now: Current clock value in seconds.
        raw_value: Cumulative counter value.
        scale: Conversion from raw units to output units, e.g. 512 for
            disk sectors or 1/timebase for processor cycles.
        max_plausible_rate: Rates above this are reported as 0.

    Returns:
        Tuple of (rate, new_state).

    Example:
        >>> rate, state = sample(None, 100.0, 1000, scale=512)
        >>> rate
        0.0
        >>> rate, state = sample(state, 110.0, 1200, scale=512)
        >>> rate
        10240.0
    """
    if state is None:
        return 0.0, SamplerState(float(now), float(raw_value), 0.0)

    delta_t = now - state.last_timestamp
    if delta_t <= 0:
        # Keep the interval start, only move the counter baseline.
        return state.last_rate, replace(state, last_raw_value=float(raw_value))

    delta_v = raw_value - state.last_raw_value
    if delta_v < 0:
        return state.last_rate, SamplerState(float(now), float(raw_value), state.last_rate)

    rate = (float(delta_v) * scale) / delta_t
    if rate > max_plausible_rate:
        rate = 0.0

    return rate, SamplerState(float(now), float(raw_value), rate)


class RateSampler:
    """Per-metric sampler states keyed by name.

    Keys are metric names, optionally qualified by a sub-resource
    (``"disk_read:all"``). Calls for the same key are serialized with a
    per-key lock; different keys never block each other.

    Usage:
        sampler = RateSampler()
        rate = sampler.update('disk_read', now, sectors, scale=512)
    """

    def __init__(self, logger=None):
        self.logger = logger
        self._states: Dict[str, SamplerState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def update(
        self,
        key: str,
        now: float,
        raw_value: float,
        scale: float = 1.0,
        max_plausible_rate: float = math.inf,
    ) -> float:
        """Feed a new counter reading for ``key`` and return the rate."""
        with self._lock_for(key):
            previous = self._states.get(key)
            rate, new_state = sample(previous, now, raw_value, scale, max_plausible_rate)
            self._states[key] = new_state

        if self.logger and previous is not None:
            if raw_value < previous.last_raw_value:
                self.logger.verbose(f'{key}: counter went backwards ({previous.last_raw_value} -> {raw_value}), '
                                    f'holding rate {rate}')
            elif now > previous.last_timestamp and rate == 0.0 and raw_value > previous.last_raw_value \
                    and max_plausible_rate != math.inf:
                self.logger.verbose(f'{key}: rate above {max_plausible_rate} suppressed')
        return rate

    def state(self, key: str) -> Optional[SamplerState]:
        """Return the current state for ``key`` or None before its first reading."""
        with self._registry_lock:
            return self._states.get(key)

    def keys(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._states)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when ``key`` is None.

        Per-key locks are kept, an update may still be holding one.
        """
        with self._registry_lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)
