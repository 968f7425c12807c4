"""
Configuration for the IBM POWER metric module.

Constants describe the kernel and device-tree sources, the sanity bounds
applied to rate metrics and the per-metric refresh intervals. Site overrides
come from a YAML file (``IBMPOWER_CONFIG`` or an explicit path) and from the
module params handed over by the monitoring daemon; params win.

Example YAML:

    command_timeout: 5
    stream_log_level: info
    time_max:
      cpu_used: 30
      disk_iops: 60
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml

from ibmpower.errors import ConfigurationError, ErrorCode

CONFIG_ENV_VAR = "IBMPOWER_CONFIG"
METRIC_GROUP = "ibmpower"

# Linux sources
PROC_LPARCFG = "/proc/ppc64/lparcfg"
PROC_CPUINFO = "/proc/cpuinfo"
PROC_STAT = "/proc/stat"
PROC_DISKSTATS = "/proc/diskstats"
DT_PARTITION_NAME = "/proc/device-tree/ibm,partition-name"
DT_HOST_MODEL = "/proc/device-tree/host-model"
DT_HOST_SERIAL = "/proc/device-tree/host-serial"
DT_SYSTEM_ID = "/proc/device-tree/system-id"
DT_FW_VERNUM = "/proc/device-tree/openprom/ibm,fw-vernum_encoded"
DT_OPAL_ML_VERSION = "/proc/device-tree/ibm,opal/firmware/ml-version"
DT_OPAL_MI_VERSION = "/proc/device-tree/ibm,opal/firmware/mi-version"
KVM_GUEST_SYSTEM_TYPE = "IBM pSeries (emulated by qemu)"

# AIX sources
AIX_IOSCLI = "/usr/ios/cli/ioscli"
AIX_LPARSTAT = "/usr/bin/lparstat"
AIX_UNAME = "/usr/bin/uname"
AIX_OSLEVEL = "/usr/bin/oslevel"
AIX_LSATTR = "/usr/sbin/lsattr"
AIX_GETCONF = "/usr/bin/getconf"

# Rate sanity bounds, in physical cores. Larger values come from performance
# data collection being switched on or off for the LPAR mid-interval.
MAX_CPU_POOL_IDLE = 256.0
MAX_CPU_USED = 256.0

DISK_BLOCK_SIZE = 512

# JS20/JS21 blades expose a purr stanza without a PURR register.
PURR_UNUSABLE_MODELS = (
    "IBM,8842-21X",
    "IBM,8842-41X",
    "IBM,8844-31",
    "IBM,8844-41",
    "IBM,8844-51",
)
# Re-check PURR usability this often, the LPAR may have been moved.
PURR_RECHECK_SECONDS = 180.0

# Seconds a cached /proc file or command output stays fresh
TIMELY_FILE_THRESHOLD = 1.0
# An lparstat interval sample feeds cpu_used, cpu_ec and cpu_pool_idle
AIX_SAMPLE_THRESHOLD = 5.0
AIX_SAMPLE_INTERVAL = 1

DEFAULT_COMMAND_TIMEOUT = 10.0
MAX_STRING_SIZE = 32

# Refresh interval (gmond time_max) per metric, in seconds
DEFAULT_TIME_MAX = {
    'capped': 180,
    'cpu_ec': 15,
    'cpu_entitlement': 180,
    'cpu_in_lpar': 180,
    'cpu_in_machine': 1200,
    'cpu_in_pool': 180,
    'cpu_in_syspool': 180,
    'cpu_pool_id': 180,
    'cpu_pool_idle': 15,
    'cpu_used': 15,
    'disk_iops': 180,
    'disk_read': 180,
    'disk_write': 180,
    'fwversion': 1200,
    'kernel64bit': 1200,
    'lpar': 1200,
    'lpar_name': 180,
    'lpar_num': 1200,
    'model_name': 1200,
    'oslevel': 180,
    'serial_num': 1200,
    'smt': 180,
    'splpar': 1200,
    'weight': 180,
    'kvm_guest': 1200,
    'cpu_type': 180,
}


@dataclass
class ModuleConfig:
    """Effective module configuration.

    Attributes:
        command_timeout: Seconds an external command may run.
        max_string_size: Maximum length of string metric values.
        time_max: Per-metric refresh interval overrides.
        stream_log_level: Level name for the stream handler.
        verbose: Lower the stream handler to VERBOSE.
        debug: Lower the stream handler to DEBUG with caller info.
        platform: Force 'linux' or 'aix' instead of detecting it.
    """
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    max_string_size: int = MAX_STRING_SIZE
    time_max: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TIME_MAX))
    stream_log_level: Optional[str] = None
    verbose: bool = False
    debug: bool = False
    platform: Optional[str] = None

    def logging_options(self) -> Dict[str, Any]:
        return {
            'verbose': self.verbose,
            'debug': self.debug,
            'stream_log_level': self.stream_log_level,
        }


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('1', 'yes', 'true', 'on'):
        return True
    if isinstance(value, str) and value.strip().lower() in ('0', 'no', 'false', 'off', ''):
        return False
    if isinstance(value, int):
        return bool(value)
    raise ConfigurationError(f"Invalid boolean for '{key}'", parameter=key,
                             expected="true/false", actual=value)


def _as_number(key: str, value: Any, cast=float):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid number for '{key}'", parameter=key,
                                 expected="a positive number", actual=value)
    if number <= 0:
        raise ConfigurationError(f"'{key}' must be positive", parameter=key,
                                 expected="a positive number", actual=value)
    return number


def read_config_file(path: str) -> Dict[str, Any]:
    """Load a YAML configuration file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or not a mapping.
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"Configuration file not found: {path}",
                                 parameter=CONFIG_ENV_VAR, actual=path,
                                 code=ErrorCode.CONFIG_FILE_NOT_FOUND)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse configuration file: {path}",
                                 actual=str(e), code=ErrorCode.CONFIG_PARSE_ERROR)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {path}",
                                 expected="mapping", actual=type(data).__name__,
                                 code=ErrorCode.CONFIG_PARSE_ERROR)
    return data


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> ModuleConfig:
    """Build the effective configuration.

    Args:
        path: YAML file to read. Defaults to ``$IBMPOWER_CONFIG`` when set.
        overrides: Module params from the daemon. Flat ``time_max_<metric>``
            keys are accepted as well as a nested ``time_max`` mapping.

    Returns:
        ModuleConfig with defaults, file values and overrides merged.
    """
    raw: Dict[str, Any] = {}
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if path:
        raw.update(read_config_file(path))

    time_max = dict(raw.pop('time_max', None) or {})
    for key, value in (overrides or {}).items():
        if key.startswith('time_max_'):
            time_max[key[len('time_max_'):]] = value
        elif key == 'time_max':
            time_max.update(value or {})
        else:
            raw[key] = value

    config = ModuleConfig()
    known = {f.name for f in fields(ModuleConfig)} - {'time_max'}
    for key, value in raw.items():
        if key not in known:
            raise ConfigurationError(f"Unknown configuration key '{key}'", parameter=key,
                                     expected=sorted(known), code=ErrorCode.CONFIG_UNKNOWN_KEY)
        if key == 'command_timeout':
            config.command_timeout = _as_number(key, value)
        elif key == 'max_string_size':
            config.max_string_size = _as_number(key, value, int)
        elif key in ('verbose', 'debug'):
            setattr(config, key, _as_bool(key, value))
        elif key == 'platform':
            if value is not None and str(value).lower() not in ('linux', 'aix'):
                raise ConfigurationError("Unsupported platform override", parameter=key,
                                         expected="linux or aix", actual=value)
            config.platform = str(value).lower() if value is not None else None
        else:
            config.stream_log_level = str(value) if value is not None else None

    for metric, value in time_max.items():
        if metric not in DEFAULT_TIME_MAX:
            raise ConfigurationError(f"Unknown metric '{metric}' in time_max", parameter='time_max',
                                     expected=sorted(DEFAULT_TIME_MAX), actual=metric,
                                     code=ErrorCode.CONFIG_UNKNOWN_KEY)
        config.time_max[metric] = _as_number(f'time_max.{metric}', value, int)

    return config
