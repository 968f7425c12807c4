"""
Linux on POWER partition metrics.

Most values come from /proc/ppc64/lparcfg, which the pseries kernel exposes
in LPARs and KVM guests. Counters (purr, pool_idle_time) are in timebase
ticks and are turned into core counts by the provider's RateSampler. Static
identity data (partition name, serial, firmware) comes from the device tree.
"""

import platform
from typing import Callable, Dict, Optional

from ibmpower.config import (
    DISK_BLOCK_SIZE,
    DT_FW_VERNUM,
    DT_HOST_MODEL,
    DT_HOST_SERIAL,
    DT_OPAL_MI_VERSION,
    DT_OPAL_ML_VERSION,
    DT_PARTITION_NAME,
    DT_SYSTEM_ID,
    KVM_GUEST_SYSTEM_TYPE,
    MAX_CPU_POOL_IDLE,
    MAX_CPU_USED,
    PROC_CPUINFO,
    PROC_DISKSTATS,
    PROC_LPARCFG,
    PROC_STAT,
    PURR_RECHECK_SECONDS,
    PURR_UNUSABLE_MODELS,
    TIMELY_FILE_THRESHOLD,
)
from ibmpower.environment import detect_os
from ibmpower.errors import ProbeError
from ibmpower.interfaces.provider import FloatResult, IntResult, StrResult, Unavailable, is_unavailable
from ibmpower.parsers import (
    DiskTotals,
    count_proc_stat_cpus,
    lparcfg_int,
    parse_cpuinfo_field,
    parse_cpuinfo_timebase,
    parse_diskstats_totals,
    parse_lparcfg,
    parse_proc_stat_cpu_times,
)
from ibmpower.providers.base import BasePowerProvider
from ibmpower.utils import ComputeOnce, TimelyFile, read_first_line, uptime_clock

NO_SPLPAR = "No SPLPAR-capable system"
NO_LPAR = "No LPAR system"
NO_SMT = "No SMT-capable system"
NO_LPAR_NAME = "Can't find out LPAR name!"
NO_MODEL_NAME = "Can't find out model name"
NO_SERIAL = "serial number not found"
NO_FIRMWARE = "Firmware version not detected!"
NO_LINUX_RELEASE = "No known Linux release found"
KVM_GUEST = "KVM Guest"
UNKNOWN = "Unknown"


class LinuxPowerProvider(BasePowerProvider):
    """
    Partition metrics for Linux on POWER (PowerVM LPARs and KVM guests).

    Args:
        config: Module configuration.
        logger: PowerLogger for diagnostics.
        sampler: RateSampler; a private one is created when omitted.
        clock: Seconds-since-boot source for rate metrics.
        root: Directory /proc paths are resolved under ('/' in production).
        os_release: Callable returning the pretty distribution name.
    """

    def __init__(self, config=None, logger=None, sampler=None, clock=uptime_clock, root: str = '/',
                 os_release: Optional[Callable[[], Optional[str]]] = None):
        super().__init__(config=config, logger=logger, sampler=sampler, clock=clock, root=root)

        self._lparcfg_file = TimelyFile(self._path(PROC_LPARCFG), TIMELY_FILE_THRESHOLD, clock=self.clock)
        self._cpuinfo_file = TimelyFile(self._path(PROC_CPUINFO), TIMELY_FILE_THRESHOLD, clock=self.clock)
        self._stat_file = TimelyFile(self._path(PROC_STAT), TIMELY_FILE_THRESHOLD, clock=self.clock)
        self._diskstats_file = TimelyFile(self._path(PROC_DISKSTATS), TIMELY_FILE_THRESHOLD, clock=self.clock)
        self._oslevel = ComputeOnce(os_release or (lambda: detect_os().distro_name))

        self._purr_usable = True
        self._purr_checked_at: Optional[float] = None

        self.lparcfg_exists = self._lparcfg_file.exists()
        cfg = self._lparcfg() or {}
        self.is_kvm_guest = cfg.get('system_type') == KVM_GUEST_SYSTEM_TYPE
        self.is_splpar = lparcfg_int(cfg, 'shared_processor_mode', 0) > 0
        self.logger.debug(f'lparcfg: {self.lparcfg_exists}, KVM guest: {self.is_kvm_guest}, '
                          f'SPLPAR: {self.is_splpar}')

    def platform_name(self) -> str:
        return 'linux'

    # -------------------------------------------------------------------------
    # Source readers
    # -------------------------------------------------------------------------

    def _read(self, timely_file: TimelyFile) -> Optional[str]:
        try:
            return timely_file.read()
        except ProbeError as e:
            self.logger.debug(e.message)
            return None

    def _lparcfg(self) -> Optional[Dict[str, str]]:
        if not self.lparcfg_exists:
            return None
        content = self._read(self._lparcfg_file)
        return parse_lparcfg(content) if content is not None else None

    def _cpuinfo_field(self, field: str) -> Optional[str]:
        content = self._read(self._cpuinfo_file)
        return parse_cpuinfo_field(content, field) if content is not None else None

    def _timebase(self) -> Optional[int]:
        content = self._read(self._cpuinfo_file)
        return parse_cpuinfo_timebase(content) if content is not None else None

    def _cpu_count(self) -> IntResult:
        content = self._read(self._stat_file)
        if content is None:
            return Unavailable(f"Cannot read {PROC_STAT}")
        return count_proc_stat_cpus(content)

    def _device_tree(self, path: str) -> Optional[str]:
        try:
            return read_first_line(self._path(path))
        except ProbeError:
            return None

    def _device_tree_token(self, path: str, index: int = 1) -> Optional[str]:
        line = self._device_tree(path)
        if not line:
            return None
        parts = line.split()
        return parts[index] if len(parts) > index else None

    def _lparcfg_count(self, key: str) -> IntResult:
        cfg = self._lparcfg()
        if cfg is not None and key in cfg:
            return lparcfg_int(cfg, key)
        return self._cpu_count()

    # -------------------------------------------------------------------------
    # Partition configuration
    # -------------------------------------------------------------------------

    def capped(self) -> StrResult:
        cfg = self._lparcfg()
        if cfg is None or 'capped' not in cfg:
            return Unavailable(NO_SPLPAR)
        return 'yes' if lparcfg_int(cfg, 'capped') == 1 else 'no'

    def cpu_entitlement(self) -> FloatResult:
        cfg = self._lparcfg()
        if cfg is not None and 'partition_entitled_capacity' in cfg:
            return lparcfg_int(cfg, 'partition_entitled_capacity', 0) / 100.0
        count = self._cpu_count()
        return count if is_unavailable(count) else float(count)

    def cpu_in_lpar(self) -> IntResult:
        return self._lparcfg_count('partition_active_processors')

    def cpu_in_machine(self) -> IntResult:
        return self._lparcfg_count('system_potential_processors')

    def cpu_in_pool(self) -> IntResult:
        return self._lparcfg_count('pool_num_procs')

    def cpu_in_syspool(self) -> IntResult:
        # lparcfg has no separate figure for the physical shared pool
        return self._lparcfg_count('pool_num_procs')

    def cpu_pool_id(self) -> IntResult:
        cfg = self._lparcfg()
        if cfg is None or 'pool' not in cfg:
            return Unavailable("No shared processor pool")
        return lparcfg_int(cfg, 'pool')

    def weight(self) -> IntResult:
        cfg = self._lparcfg()
        if cfg is None or 'capacity_weight' not in cfg:
            return Unavailable(NO_SPLPAR)
        return lparcfg_int(cfg, 'capacity_weight')

    def splpar(self) -> StrResult:
        cfg = self._lparcfg()
        if cfg is None or 'shared_processor_mode' not in cfg:
            return Unavailable(NO_SPLPAR)
        return 'yes' if lparcfg_int(cfg, 'shared_processor_mode', 0) > 0 else 'no'

    def lpar(self) -> StrResult:
        cfg = self._lparcfg() or {}
        if (lparcfg_int(cfg, 'shared_processor_mode') > 0
                or lparcfg_int(cfg, 'capped') >= 0
                or lparcfg_int(cfg, 'partition_id') > 0
                or lparcfg_int(cfg, 'DisWheRotPer') > 0
                or lparcfg_int(cfg, 'purr') > 0):
            return 'yes'
        return 'no'

    def lpar_name(self) -> StrResult:
        try:
            name = read_first_line(self._path(DT_PARTITION_NAME))
        except ProbeError:
            return Unavailable(NO_LPAR)
        return name if name else Unavailable(NO_LPAR_NAME)

    def lpar_num(self) -> IntResult:
        cfg = self._lparcfg()
        if cfg is None or 'partition_id' not in cfg:
            return Unavailable(NO_LPAR)
        return lparcfg_int(cfg, 'partition_id')

    def kvm_guest(self) -> StrResult:
        return 'yes' if self.is_kvm_guest else 'no'

    def smt(self) -> StrResult:
        cfg = self._lparcfg()
        threads = self._cpu_count()
        virtual = lparcfg_int(cfg, 'partition_active_processors', 0) if cfg else 0
        if is_unavailable(threads) or virtual <= 0:
            return Unavailable(NO_SMT)
        if threads > virtual:
            return f'yes (SMT={threads // virtual})'
        return 'no (SMT=1)'

    # -------------------------------------------------------------------------
    # Rates
    # -------------------------------------------------------------------------

    def cpu_pool_idle(self) -> FloatResult:
        cfg = self._lparcfg()
        if cfg is None or 'pool_idle_time' not in cfg:
            return self._log_unavailable('cpu_pool_idle', "No pool idle time in lparcfg")
        timebase = self._timebase()
        if timebase is None:
            return self._log_unavailable('cpu_pool_idle', "No timebase in cpuinfo")
        return self.sampler.update('cpu_pool_idle', self.clock(), lparcfg_int(cfg, 'pool_idle_time', 0),
                                   scale=1.0 / timebase, max_plausible_rate=MAX_CPU_POOL_IDLE)

    def _check_purr(self, now: float) -> bool:
        if self._purr_checked_at is None or now - self._purr_checked_at >= PURR_RECHECK_SECONDS:
            model = self.model_name()
            usable = is_unavailable(model) or not model.startswith(PURR_UNUSABLE_MODELS)
            self.logger.verboser(f'PURR usability checked for model {model}: {usable}')
            if usable != self._purr_usable:
                self.logger.verbose(f'PURR usable: {usable} (model {model})')
            self._purr_usable = usable
            self._purr_checked_at = now
        return self._purr_usable

    def cpu_used(self) -> FloatResult:
        """Physical cores consumed, from PURR or from the /proc/stat idle fraction."""
        now = self.clock()
        cfg = self._lparcfg()
        if cfg is None:
            return self._log_unavailable('cpu_used', f"Cannot read {PROC_LPARCFG}")

        timebase = self._timebase()
        if 'purr' in cfg and timebase is not None and self._check_purr(now):
            value = self.sampler.update('cpu_used', now, lparcfg_int(cfg, 'purr', 0),
                                        scale=1.0 / timebase, max_plausible_rate=MAX_CPU_USED)
        else:
            value = self._cpu_used_from_idle(cfg, now)
        if not is_unavailable(value):
            value = self._bounded(value, MAX_CPU_USED, 'cpu_used', inclusive=True)
        return self._remember_cpu_used(value)

    def _cpu_used_from_idle(self, cfg: Dict[str, str], now: float) -> FloatResult:
        virtual = lparcfg_int(cfg, 'partition_active_processors', 0)
        content = self._read(self._stat_file)
        times = parse_proc_stat_cpu_times(content) if content is not None else None
        if virtual <= 0 or times is None:
            return self._log_unavailable('cpu_used', "No PURR and no idle time available")

        idle, total = times
        idle_rate = self.sampler.update('cpu_used:idle', now, idle)
        total_rate = self.sampler.update('cpu_used:total', now, total)
        if total_rate <= 0:
            return 0.0
        busy = max(0.0, 1.0 - idle_rate / total_rate)
        return virtual * busy

    def cpu_ec(self) -> FloatResult:
        return self._entitlement_ratio(self.cpu_entitlement())

    def _disk_totals(self) -> Optional[DiskTotals]:
        content = self._read(self._diskstats_file)
        return parse_diskstats_totals(content) if content is not None else None

    def disk_iops(self) -> FloatResult:
        totals = self._disk_totals()
        if totals is None:
            return self._log_unavailable('disk_iops', f"Cannot read {PROC_DISKSTATS}")
        return self.sampler.update('disk_iops', self.clock(), totals.operations)

    def disk_read(self) -> FloatResult:
        totals = self._disk_totals()
        if totals is None:
            return self._log_unavailable('disk_read', f"Cannot read {PROC_DISKSTATS}")
        return self.sampler.update('disk_read', self.clock(), totals.sectors_read, scale=DISK_BLOCK_SIZE)

    def disk_write(self) -> FloatResult:
        totals = self._disk_totals()
        if totals is None:
            return self._log_unavailable('disk_write', f"Cannot read {PROC_DISKSTATS}")
        return self.sampler.update('disk_write', self.clock(), totals.sectors_written, scale=DISK_BLOCK_SIZE)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def fwversion(self) -> StrResult:
        version = self._device_tree(DT_FW_VERNUM)
        if version:
            return version

        # OPAL (PowerNV) firmware: "<ML> (<MI>)"
        ml_version = self._device_tree_token(DT_OPAL_ML_VERSION)
        mi_version = self._device_tree_token(DT_OPAL_MI_VERSION)
        if ml_version and mi_version:
            return f'{ml_version} ({mi_version})'
        return Unavailable(NO_FIRMWARE)

    def kernel64bit(self) -> StrResult:
        return 'yes' if '64' in platform.machine() else 'no'

    def model_name(self) -> StrResult:
        if self.lparcfg_exists:
            if self.is_kvm_guest:
                return self._device_tree(DT_HOST_MODEL) or KVM_GUEST
            cfg = self._lparcfg() or {}
            return cfg.get('system_type') or Unavailable(NO_MODEL_NAME)
        return self._cpuinfo_field('model') or Unavailable(NO_MODEL_NAME)

    def oslevel(self) -> StrResult:
        try:
            release = self._oslevel.get()
        except OSError as e:
            self.logger.warning(f'Cannot determine Linux release: {e}')
            return Unavailable(NO_LINUX_RELEASE)
        return release or Unavailable(NO_LINUX_RELEASE)

    def serial_num(self) -> StrResult:
        if self.is_kvm_guest:
            return self._device_tree(DT_HOST_SERIAL) or Unavailable(NO_SERIAL)
        serial = self._device_tree(DT_SYSTEM_ID)
        if serial:
            return serial
        cfg = self._lparcfg() or {}
        return cfg.get('serial_number') or Unavailable(NO_SERIAL)

    def cpu_type(self) -> StrResult:
        field = 'model' if self.is_kvm_guest else 'cpu'
        return self._cpuinfo_field(field) or Unavailable(UNKNOWN)
