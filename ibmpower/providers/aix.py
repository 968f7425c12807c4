"""
AIX partition metrics.

libperfstat is not reachable from Python, so partition data comes from the
AIX command line tools: ``lparstat -i`` for the configuration and an
``lparstat <interval> 1`` sample for physical processor consumption, pool
idle and entitlement usage. Both outputs are cached for a few seconds so the
metrics of one collection cycle share a single run. Disk counters come from
psutil.
"""

import os
from typing import Callable, Dict, Optional, Tuple

import psutil

from ibmpower.config import (
    AIX_GETCONF,
    AIX_IOSCLI,
    AIX_LPARSTAT,
    AIX_LSATTR,
    AIX_OSLEVEL,
    AIX_SAMPLE_INTERVAL,
    AIX_SAMPLE_THRESHOLD,
    AIX_UNAME,
    MAX_CPU_POOL_IDLE,
    MAX_CPU_USED,
    TIMELY_FILE_THRESHOLD,
)
from ibmpower.errors import CommandError
from ibmpower.interfaces.provider import FloatResult, IntResult, StrResult, Unavailable, is_unavailable
from ibmpower.parsers import (
    lparstat_number,
    parse_lparstat_info,
    parse_lparstat_sample,
    parse_lsattr_value,
    parse_uname_l,
    smt_description,
)
from ibmpower.providers.base import BasePowerProvider
from ibmpower.utils import ComputeOnce, TimelyCommand, run_command, uptime_clock

NO_SPLPAR = "No SPLPAR-capable system"
NO_LPAR = "No LPAR system"
NO_SMT = "No SMT-capable system"

LPARSTAT_INFO = [AIX_LPARSTAT, '-i']
LPARSTAT_SAMPLE = [AIX_LPARSTAT, str(AIX_SAMPLE_INTERVAL), '1']
UNAME_PARTITION = [AIX_UNAME, '-L']
UNAME_MODEL = [AIX_UNAME, '-M']
UNAME_SERIAL = [AIX_UNAME, '-u']
OSLEVEL_SP = [AIX_OSLEVEL, '-s']
OSLEVEL_TL = [AIX_OSLEVEL, '-r']
IOSLEVEL = [AIX_IOSCLI, 'ioslevel']
LSATTR_FWVERSION = [AIX_LSATTR, '-El', 'sys0', '-a', 'fwversion']
LSATTR_PROC_TYPE = [AIX_LSATTR, '-El', 'proc0', '-a', 'type']
GETCONF_BITMODE = [AIX_GETCONF, 'KERNEL_BITMODE']


def _cannot_run(cmd) -> str:
    return f"Can't run AIX cmd '{os.path.basename(cmd[0])}'"


def smt_field_from_type(partition_type: str) -> Optional[str]:
    """
    Derive the lparstat ``smt=`` field from the ``lparstat -i`` Type.

    Example:
        >>> smt_field_from_type('Shared-SMT-4'), smt_field_from_type('Dedicated')
        ('4', 'Off')
    """
    if not partition_type:
        return None
    parts = partition_type.split('-')
    if 'SMT' not in parts:
        return 'Off'
    index = parts.index('SMT')
    return parts[index + 1] if index + 1 < len(parts) else 'On'


class AIXPowerProvider(BasePowerProvider):
    """
    Partition metrics for AIX and VIO servers.

    Args:
        config: Module configuration.
        logger: PowerLogger for diagnostics.
        sampler: RateSampler; a private one is created when omitted.
        clock: Seconds-since-boot source for rate metrics.
        root: Directory the ioscli path is resolved under ('/' in production).
        runner: Command runner with the ``run_command`` signature.
        disk_counters: Callable returning psutil-style aggregate disk counters.
    """

    def __init__(self, config=None, logger=None, sampler=None, clock=uptime_clock, root: str = '/',
                 runner: Optional[Callable[..., str]] = None,
                 disk_counters: Optional[Callable] = None):
        super().__init__(config=config, logger=logger, sampler=sampler, clock=clock, root=root)
        self.runner = runner or run_command
        self.disk_counters = disk_counters or psutil.disk_io_counters
        timeout = self.config.command_timeout

        self._info = TimelyCommand(LPARSTAT_INFO, TIMELY_FILE_THRESHOLD, timeout=timeout,
                                   logger=self.logger, clock=self.clock, runner=self.runner)
        self._sample = TimelyCommand(LPARSTAT_SAMPLE, AIX_SAMPLE_THRESHOLD,
                                     timeout=timeout + AIX_SAMPLE_INTERVAL,
                                     logger=self.logger, clock=self.clock, runner=self.runner)
        self._oslevel = ComputeOnce(self._read_oslevel)

        self.is_vio_server = os.path.exists(self._path(AIX_IOSCLI))
        self.logger.debug(f'VIO server: {self.is_vio_server}')

    def platform_name(self) -> str:
        return 'aix'

    # -------------------------------------------------------------------------
    # Command helpers
    # -------------------------------------------------------------------------

    def _run(self, cmd) -> Optional[str]:
        try:
            return self.runner(cmd, timeout=self.config.command_timeout, logger=self.logger)
        except CommandError as e:
            self.logger.warning(f'{e.message} ({e.command})')
            return None

    def _command_line(self, cmd) -> StrResult:
        output = self._run(cmd)
        if not output:
            return Unavailable(_cannot_run(cmd))
        return output.splitlines()[0].strip()

    def _lparstat_info(self) -> Optional[Dict[str, str]]:
        try:
            return parse_lparstat_info(self._info.read())
        except CommandError as e:
            self.logger.warning(f'{e.message} ({e.command})')
            return None

    def _lparstat_sample(self) -> Optional[Tuple[Dict[str, str], Dict[str, float]]]:
        try:
            return parse_lparstat_sample(self._sample.read())
        except CommandError as e:
            self.logger.warning(f'{e.message} ({e.command})')
            return None

    def _is_shared(self, info: Dict[str, str]) -> bool:
        return info.get('Type', '').startswith('Shared')

    def _info_int(self, key: str, fallback: Optional[str] = None) -> IntResult:
        info = self._lparstat_info()
        if info is None:
            return Unavailable(_cannot_run(LPARSTAT_INFO))
        value = lparstat_number(info, key)
        if value is None and fallback:
            value = lparstat_number(info, fallback)
        if value is None:
            return Unavailable(f"'{key}' not reported by lparstat")
        return int(value)

    def _partition(self) -> Tuple[Optional[int], Optional[str]]:
        """Partition (number, name) from lparstat, falling back to ``uname -L``."""
        info = self._lparstat_info() or {}
        number = lparstat_number(info, 'Partition Number')
        name = info.get('Partition Name') or None
        if number is None:
            output = self._run(UNAME_PARTITION)
            if output is None:
                return None, None
            number, name = parse_uname_l(output)
        return int(number), name

    # -------------------------------------------------------------------------
    # Partition configuration
    # -------------------------------------------------------------------------

    def capped(self) -> StrResult:
        info = self._lparstat_info()
        if info is None or not self._is_shared(info):
            return Unavailable(NO_SPLPAR)
        return 'yes' if info.get('Mode', '').startswith('Capped') else 'no'

    def cpu_entitlement(self) -> FloatResult:
        info = self._lparstat_info()
        if info is None:
            return Unavailable(_cannot_run(LPARSTAT_INFO))
        key = 'Entitled Capacity' if self._is_shared(info) else 'Online Virtual CPUs'
        value = lparstat_number(info, key)
        return value if value is not None else Unavailable(f"'{key}' not reported by lparstat")

    def cpu_in_lpar(self) -> IntResult:
        return self._info_int('Online Virtual CPUs')

    def cpu_in_machine(self) -> IntResult:
        return self._info_int('Active Physical CPUs in system')

    def cpu_in_pool(self) -> IntResult:
        return self._info_int('Active CPUs in Pool')

    def cpu_in_syspool(self) -> IntResult:
        return self._info_int('Shared Physical CPUs in system', fallback='Active CPUs in Pool')

    def cpu_pool_id(self) -> IntResult:
        info = self._lparstat_info()
        if info is None or not self._is_shared(info):
            return Unavailable(NO_SPLPAR)
        return self._info_int('Shared Pool ID')

    def weight(self) -> IntResult:
        info = self._lparstat_info()
        if info is None or not self._is_shared(info):
            return Unavailable(NO_SPLPAR)
        return self._info_int('Variable Capacity Weight')

    def splpar(self) -> StrResult:
        info = self._lparstat_info()
        if info is None:
            return Unavailable(NO_SPLPAR)
        return 'yes' if self._is_shared(info) else 'no'

    def lpar(self) -> StrResult:
        number, _ = self._partition()
        return 'yes' if number is not None and number > 0 else 'no'

    def lpar_name(self) -> StrResult:
        number, name = self._partition()
        if number is None or number <= 0 or not name:
            return Unavailable(NO_LPAR)
        return name

    def lpar_num(self) -> IntResult:
        number, _ = self._partition()
        return number if number is not None else Unavailable(NO_LPAR)

    def kvm_guest(self) -> StrResult:
        return 'no'

    def smt(self) -> StrResult:
        info = self._lparstat_info()
        description = smt_description(smt_field_from_type(info.get('Type', ''))) if info else None
        return description or Unavailable(NO_SMT)

    # -------------------------------------------------------------------------
    # Rates
    # -------------------------------------------------------------------------

    def cpu_pool_idle(self) -> FloatResult:
        sample = self._lparstat_sample()
        if sample is None:
            return Unavailable(_cannot_run(LPARSTAT_SAMPLE))
        _, values = sample
        if 'app' not in values:
            # Pool utilization authority is not granted to this partition
            return self._log_unavailable('cpu_pool_idle', "lparstat reports no available pool processors")
        return self._bounded(values['app'], MAX_CPU_POOL_IDLE, 'cpu_pool_idle')

    def cpu_used(self) -> FloatResult:
        sample = self._lparstat_sample()
        if sample is None:
            return Unavailable(_cannot_run(LPARSTAT_SAMPLE))
        _, values = sample
        if 'physc' in values:
            used = values['physc']
        elif '%idle' in values:
            entitlement = self.cpu_entitlement()
            if is_unavailable(entitlement):
                return entitlement
            used = entitlement * (100.0 - values['%idle']) / 100.0
        else:
            return self._log_unavailable('cpu_used', "lparstat reports no processor consumption")
        return self._remember_cpu_used(self._bounded(used, MAX_CPU_USED, 'cpu_used'))

    def cpu_ec(self) -> FloatResult:
        sample = self._lparstat_sample()
        if sample is not None and '%entc' in sample[1]:
            return sample[1]['%entc']
        return self._entitlement_ratio(self.cpu_entitlement())

    def _disk_io(self):
        try:
            return self.disk_counters()
        except (OSError, RuntimeError) as e:
            self.logger.warning(f'Cannot read disk counters: {e}')
            return None

    def disk_iops(self) -> FloatResult:
        counters = self._disk_io()
        if counters is None:
            return Unavailable("No disk counters")
        return self.sampler.update('disk_iops', self.clock(), counters.read_count + counters.write_count)

    def disk_read(self) -> FloatResult:
        counters = self._disk_io()
        if counters is None:
            return Unavailable("No disk counters")
        return self.sampler.update('disk_read', self.clock(), counters.read_bytes)

    def disk_write(self) -> FloatResult:
        counters = self._disk_io()
        if counters is None:
            return Unavailable("No disk counters")
        return self.sampler.update('disk_write', self.clock(), counters.write_bytes)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def fwversion(self) -> StrResult:
        output = self._run(LSATTR_FWVERSION)
        value = parse_lsattr_value(output) if output else None
        return value or Unavailable(_cannot_run(LSATTR_FWVERSION))

    def kernel64bit(self) -> StrResult:
        output = self._run(GETCONF_BITMODE)
        if output is None:
            return Unavailable(_cannot_run(GETCONF_BITMODE))
        return 'yes' if output.strip() == '64' else 'no'

    def model_name(self) -> StrResult:
        return self._command_line(UNAME_MODEL)

    def serial_num(self) -> StrResult:
        return self._command_line(UNAME_SERIAL)

    def cpu_type(self) -> StrResult:
        output = self._run(LSATTR_PROC_TYPE)
        value = parse_lsattr_value(output) if output else None
        return value or self.model_name()

    def _read_oslevel(self) -> StrResult:
        if self.is_vio_server:
            return self._command_line(IOSLEVEL)
        level = self._command_line(OSLEVEL_SP)
        # Old releases without service pack reporting print a usage message
        if is_unavailable(level) or level.startswith('Usage: oslevel'):
            self.logger.verboser(f'oslevel -s gave {level}, falling back to oslevel -r')
            level = self._command_line(OSLEVEL_TL)
        return level

    def oslevel(self) -> StrResult:
        level = self._oslevel.get()
        if is_unavailable(level):
            # Failures are retried on the next call
            self._oslevel.reset()
        return level
