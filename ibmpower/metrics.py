"""
Metric descriptors for the ibmpower metric group.

Each descriptor carries what the monitoring daemon needs to schedule and
present a metric: refresh interval, value type, units, slope, format and
description. ``render_value`` turns a provider result into the declared
type.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from ibmpower.config import DEFAULT_TIME_MAX, MAX_STRING_SIZE, METRIC_GROUP
from ibmpower.interfaces.provider import is_unavailable

STRING = 'string'
UINT = 'uint'
FLOAT = 'float'
DOUBLE = 'double'

INT_SENTINEL = -1
FLOAT_SENTINEL = 0.0


@dataclass(frozen=True)
class MetricDescriptor:
    """Static description of one metric."""
    name: str
    time_max: int
    value_type: str
    units: str
    format: str
    description: str
    slope: str = 'both'
    groups: str = METRIC_GROUP

    @property
    def is_numeric(self) -> bool:
        return self.value_type != STRING

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _descriptor(name, value_type, units, fmt, description):
    return MetricDescriptor(name=name, time_max=DEFAULT_TIME_MAX[name], value_type=value_type,
                            units=units, format=fmt, description=description)


METRIC_DESCRIPTORS: List[MetricDescriptor] = [
    _descriptor('capped', STRING, '', '%s', "Is this SPLPAR running in capped mode?"),
    _descriptor('cpu_ec', FLOAT, '%', '%.2f', "Ratio of physical cores used vs. entitlement"),
    _descriptor('cpu_entitlement', FLOAT, 'CPUs', '%.2f', "Capacity entitlement in units of physical cores"),
    _descriptor('cpu_in_lpar', UINT, 'CPUs', '%d', "Number of CPUs the OS sees in the system"),
    _descriptor('cpu_in_machine', UINT, 'CPUs', '%d', "Total number of physical cores in the whole system"),
    _descriptor('cpu_in_pool', UINT, 'CPUs', '%d', "Number of physical cores in the shared processor pool"),
    _descriptor('cpu_in_syspool', UINT, 'CPUs', '%d',
                "Number of physical cores in the global shared processor pool"),
    _descriptor('cpu_pool_id', UINT, '', '%d', "Shared processor pool ID of this LPAR"),
    _descriptor('cpu_pool_idle', FLOAT, 'CPUs', '%.4f', "Number of idle cores in the shared processor pool"),
    _descriptor('cpu_used', FLOAT, 'CPUs', '%.4f', "Number of physical cores used"),
    _descriptor('disk_iops', DOUBLE, 'IO/sec', '%.3f', "Total number of I/O operations per second"),
    _descriptor('disk_read', DOUBLE, 'bytes/sec', '%.2f', "Total number of bytes read I/O of the system"),
    _descriptor('disk_write', DOUBLE, 'bytes/sec', '%.2f', "Total number of bytes write I/O of the system"),
    _descriptor('fwversion', STRING, '', '%s', "Firmware Version"),
    _descriptor('kernel64bit', STRING, '', '%s', "Is the kernel running in 64-bit mode?"),
    _descriptor('lpar', STRING, '', '%s', "Is the system an LPAR or not?"),
    _descriptor('lpar_name', STRING, '', '%s', "Name of the LPAR as defined on the HMC"),
    _descriptor('lpar_num', UINT, '', '%d', "Partition ID of the LPAR as defined on the HMC"),
    _descriptor('model_name', STRING, '', '%s', "Machine Model Name"),
    _descriptor('oslevel', STRING, '', '%s', "Exact Linux version"),
    _descriptor('serial_num', STRING, '', '%s', "Serial number of the hardware system"),
    _descriptor('smt', STRING, '', '%s', "Is SMT enabled or not?"),
    _descriptor('splpar', STRING, '', '%s', "Is this a shared processor LPAR or not?"),
    _descriptor('weight', UINT, '', '%d', "Capacity weight of the LPAR"),
    _descriptor('kvm_guest', STRING, '', '%s', "Is this a KVM guest VM or not?"),
    _descriptor('cpu_type', STRING, '', '%s', "CPU model name"),
]

DESCRIPTORS_BY_NAME: Dict[str, MetricDescriptor] = {d.name: d for d in METRIC_DESCRIPTORS}

# Descriptions that differ per platform
PLATFORM_DESCRIPTIONS = {
    'aix': {'oslevel': "Exact AIX version string"},
    'linux': {},
}


def descriptors_for(platform: str) -> List[MetricDescriptor]:
    """Descriptors in handler order with the platform's descriptions applied."""
    overrides = PLATFORM_DESCRIPTIONS.get(platform, {})
    result = []
    for descriptor in METRIC_DESCRIPTORS:
        if descriptor.name in overrides:
            descriptor = MetricDescriptor(**{**descriptor.to_dict(), 'description': overrides[descriptor.name]})
        result.append(descriptor)
    return result


def sentinel_for(descriptor: MetricDescriptor, reason: str = '') -> Any:
    if descriptor.value_type == UINT:
        return INT_SENTINEL
    if descriptor.value_type in (FLOAT, DOUBLE):
        return FLOAT_SENTINEL
    return reason


def render_value(descriptor: MetricDescriptor, value: Any, max_string_size: Optional[int] = None) -> Any:
    """
    Convert a provider result to the descriptor's value type.

    ``Unavailable`` becomes the type's sentinel: -1 for integer metrics, 0.0
    for float and double metrics, and the reason for string metrics.
    Strings are cut to ``max_string_size`` characters.

    Example:
        >>> render_value(DESCRIPTORS_BY_NAME['cpu_in_lpar'], 8.0)
        8
    """
    max_string_size = max_string_size or MAX_STRING_SIZE
    if value is None:
        value = sentinel_for(descriptor)
    elif is_unavailable(value):
        value = sentinel_for(descriptor, value.reason)

    if descriptor.value_type == UINT:
        return int(value)
    if descriptor.value_type in (FLOAT, DOUBLE):
        return float(value)
    return str(value)[:max_string_size]
