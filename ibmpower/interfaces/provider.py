"""
Partition metric provider interface definitions for ibmpower.

This module defines the abstract interface every platform provider (AIX,
Linux on POWER) implements, and the typed ``Unavailable`` result returned
when a data source cannot be read.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Unavailable:
    """A metric whose source could not be read.

    The reason doubles as the human-readable status reported for string
    metrics, e.g. "No SPLPAR-capable system".

    Attributes:
        reason: Why the value is missing.
    """
    reason: str

    def __str__(self) -> str:
        return self.reason


def is_unavailable(value: Any) -> bool:
    return isinstance(value, Unavailable)


Number = Union[int, float]
IntResult = Union[int, Unavailable]
FloatResult = Union[float, Unavailable]
StrResult = Union[str, Unavailable]


class LparProviderInterface(ABC):
    """Interface for platform-specific partition probes.

    One method per metric. Methods never raise for a missing or failing
    source; they return ``Unavailable`` instead. Rate metrics are computed
    from counters through a ``RateSampler`` owned by the provider.

    Example:
        class FakeProvider(LparProviderInterface):
            def capped(self):
                return 'no'
            # ... implement other abstract methods
    """

    @abstractmethod
    def platform_name(self) -> str:
        """Return 'linux' or 'aix'."""
        pass

    def prime(self) -> None:
        """Take the first reading of every rate metric.

        Called once at module init so the first scheduled collection already
        has a baseline.
        """
        for metric in ('cpu_pool_idle', 'cpu_used', 'disk_iops', 'disk_read', 'disk_write'):
            getattr(self, metric)()

    @abstractmethod
    def capped(self) -> StrResult:
        """Is this shared-processor LPAR capped ('yes'/'no')?"""
        pass

    @abstractmethod
    def cpu_ec(self) -> FloatResult:
        """Physical cores used as a percentage of the entitlement."""
        pass

    @abstractmethod
    def cpu_entitlement(self) -> FloatResult:
        """Capacity entitlement in physical cores."""
        pass

    @abstractmethod
    def cpu_in_lpar(self) -> IntResult:
        """Number of (virtual) CPUs configured in the partition."""
        pass

    @abstractmethod
    def cpu_in_machine(self) -> IntResult:
        """Physical cores in the whole system."""
        pass

    @abstractmethod
    def cpu_in_pool(self) -> IntResult:
        """Physical cores in the partition's shared processor pool."""
        pass

    @abstractmethod
    def cpu_in_syspool(self) -> IntResult:
        """Physical cores in the global shared processor pool."""
        pass

    @abstractmethod
    def cpu_pool_id(self) -> IntResult:
        """Shared processor pool ID."""
        pass

    @abstractmethod
    def cpu_pool_idle(self) -> FloatResult:
        """Idle physical cores in the shared processor pool."""
        pass

    @abstractmethod
    def cpu_used(self) -> FloatResult:
        """Physical cores consumed by the partition."""
        pass

    @abstractmethod
    def disk_iops(self) -> FloatResult:
        """Disk I/O operations per second, all disks."""
        pass

    @abstractmethod
    def disk_read(self) -> FloatResult:
        """Bytes read per second, all disks."""
        pass

    @abstractmethod
    def disk_write(self) -> FloatResult:
        """Bytes written per second, all disks."""
        pass

    @abstractmethod
    def fwversion(self) -> StrResult:
        pass

    @abstractmethod
    def kernel64bit(self) -> StrResult:
        pass

    @abstractmethod
    def lpar(self) -> StrResult:
        pass

    @abstractmethod
    def lpar_name(self) -> StrResult:
        pass

    @abstractmethod
    def lpar_num(self) -> IntResult:
        pass

    @abstractmethod
    def model_name(self) -> StrResult:
        pass

    @abstractmethod
    def oslevel(self) -> StrResult:
        pass

    @abstractmethod
    def serial_num(self) -> StrResult:
        pass

    @abstractmethod
    def smt(self) -> StrResult:
        pass

    @abstractmethod
    def splpar(self) -> StrResult:
        pass

    @abstractmethod
    def weight(self) -> IntResult:
        pass

    @abstractmethod
    def kvm_guest(self) -> StrResult:
        pass

    @abstractmethod
    def cpu_type(self) -> StrResult:
        pass
