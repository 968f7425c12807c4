"""
Parsers for POWER partition data sources.

All functions take raw text (file content or command output) and never do
I/O, so they can be tested against captured samples.

Linux sources: /proc/ppc64/lparcfg, /proc/cpuinfo, /proc/stat,
/proc/diskstats. AIX sources: ``lparstat -i``, ``lparstat <interval> 1``,
``uname -L``, ``lsattr -El``.
"""

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

_CPU_LINE = re.compile(r'^cpu\d+\s')
_PARTITION_SUFFIX = re.compile(r'^\d+$')
# A parent whose name ends in a digit numbers its partitions after a "p"
_P_PARTITION_SUFFIX = re.compile(r'^p\d+$')

# Virtual block devices that would double count the physical I/O beneath them
EXCLUDED_DISK_PREFIXES = ('dm-', 'md')


# =============================================================================
# Linux /proc parsers
# =============================================================================

def parse_lparcfg(content: str) -> Dict[str, str]:
    """
    Parse /proc/ppc64/lparcfg into a dictionary of raw string values.

    Example:
        >>> parse_lparcfg("lparcfg 1.9\\npartition_id=5\\ncapped=0\\n")
        {'partition_id': '5', 'capped': '0'}
    """
    result = {}
    for line in content.splitlines():
        if '=' not in line:
            continue
        key, _, value = line.partition('=')
        result[key.strip()] = value.strip()
    return result


def lparcfg_int(cfg: Dict[str, str], key: str, default: int = -1) -> int:
    """Integer value of an lparcfg key, ``default`` when missing or malformed."""
    try:
        return int(cfg[key])
    except (KeyError, ValueError):
        return default


def parse_cpuinfo_field(content: str, field: str) -> Optional[str]:
    """
    Return the value of the first ``field : value`` line in /proc/cpuinfo.

    Example:
        >>> parse_cpuinfo_field("cpu\\t\\t: POWER9 (architected)\\n", "cpu")
        'POWER9 (architected)'
    """
    for line in content.splitlines():
        if ':' not in line:
            continue
        key, _, value = line.partition(':')
        if key.strip() == field:
            return value.strip()
    return None


def parse_cpuinfo_timebase(content: str) -> Optional[int]:
    """Timebase frequency (Hz) from /proc/cpuinfo, None if absent or invalid."""
    value = parse_cpuinfo_field(content, 'timebase')
    if value is None:
        return None
    try:
        timebase = int(value.split()[0])
    except (ValueError, IndexError):
        return None
    return timebase if timebase > 0 else None


def count_proc_stat_cpus(content: str) -> int:
    """Number of per-CPU ``cpuN`` lines in /proc/stat (logical CPUs online)."""
    return sum(1 for line in content.splitlines() if _CPU_LINE.match(line))


def parse_proc_stat_cpu_times(content: str) -> Optional[Tuple[int, int]]:
    """
    Aggregate (idle, total) jiffies from the ``cpu`` line of /proc/stat.

    Total covers user, nice, system, idle, iowait, irq, softirq and steal;
    guest time is already accounted in user.

    Example:
        >>> parse_proc_stat_cpu_times("cpu  10 0 5 80 5 0 0 0 0 0\\n")
        (80, 100)
    """
    for line in content.splitlines():
        parts = line.split()
        if not parts or parts[0] != 'cpu':
            continue
        try:
            values = [int(v) for v in parts[1:9]]
        except ValueError:
            return None
        if len(values) < 4:
            return None
        return values[3], sum(values)
    return None


@dataclass
class DiskTotals:
    """
    Cumulative I/O counters summed over all whole disks.

    Fields correspond to the /proc/diskstats columns of the same name.
    """
    reads: int = 0
    writes: int = 0
    sectors_read: int = 0
    sectors_written: int = 0
    devices: int = 0

    @property
    def operations(self) -> int:
        return self.reads + self.writes

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _is_partition(name: str, names: set) -> bool:
    """
    Is ``name`` a partition of another listed device?

    ``sda1`` belongs to ``sda`` and ``nvme0n1p1`` to ``nvme0n1``, but
    ``nvme0n10`` and ``loop10`` are whole devices of their own.
    """
    for parent in names:
        if parent == name or not name.startswith(parent):
            continue
        suffix = name[len(parent):]
        pattern = _P_PARTITION_SUFFIX if parent[-1].isdigit() else _PARTITION_SUFFIX
        if pattern.match(suffix):
            return True
    return False


def parse_diskstats_totals(content: str) -> DiskTotals:
    """
    Sum /proc/diskstats counters over whole disks.

    Partitions (``sda1`` next to ``sda``, ``nvme0n1p2`` next to ``nvme0n1``),
    device-mapper and md devices are skipped so that each physical I/O is
    counted once. Short lines (pre-2.6.25 partition format) are skipped.
    """
    rows: List[List[str]] = []
    for line in content.splitlines():
        parts = line.split()
        if len(parts) < 14:
            continue
        rows.append(parts)

    names = {parts[2] for parts in rows}
    totals = DiskTotals()
    for parts in rows:
        name = parts[2]
        if name.startswith(EXCLUDED_DISK_PREFIXES) or _is_partition(name, names):
            continue
        try:
            reads, sectors_read = int(parts[3]), int(parts[5])
            writes, sectors_written = int(parts[7]), int(parts[9])
        except ValueError:
            continue
        totals.reads += reads
        totals.sectors_read += sectors_read
        totals.writes += writes
        totals.sectors_written += sectors_written
        totals.devices += 1
    return totals


# =============================================================================
# AIX command output parsers
# =============================================================================

def parse_lparstat_info(output: str) -> Dict[str, str]:
    """
    Parse ``lparstat -i`` output (``Key    : value`` lines).

    Example:
        >>> parse_lparstat_info("Partition Name   : lpar01\\nPartition Number : 5\\n")
        {'Partition Name': 'lpar01', 'Partition Number': '5'}
    """
    result = {}
    for line in output.splitlines():
        if ':' not in line:
            continue
        key, _, value = line.partition(':')
        if key.strip():
            result[key.strip()] = value.strip()
    return result


def lparstat_number(info: Dict[str, str], key: str, default: Optional[float] = None) -> Optional[float]:
    """Numeric value of an ``lparstat -i`` field, ignoring units such as ``MB`` or ``%``."""
    value = info.get(key)
    if not value:
        return default
    token = value.split()[0].rstrip('%')
    try:
        return float(token)
    except ValueError:
        return default


def parse_lparstat_sample(output: str) -> Tuple[Dict[str, str], Dict[str, float]]:
    """
    Parse ``lparstat <interval> 1`` output.

    Returns:
        Tuple of (system configuration, values by column header). Columns
        whose value is not numeric (``-``) are omitted.

    Example:
        >>> out = '''System configuration: type=Shared mode=Uncapped smt=4 lcpu=8 ent=0.50
        ...
        ... %user  %sys  %wait  %idle physc %entc
        ... ----- ----- ------ ------ ----- -----
        ...   0.3   0.5    0.0   99.2  0.01   2.5'''
        >>> config, values = parse_lparstat_sample(out)
        >>> config['smt'], values['physc']
        ('4', 0.01)
    """
    config: Dict[str, str] = {}
    values: Dict[str, float] = {}
    lines = [line for line in output.splitlines() if line.strip()]

    for line in lines:
        if line.strip().startswith('System configuration:'):
            for token in line.split(':', 1)[1].split():
                if '=' in token:
                    key, _, value = token.partition('=')
                    config[key] = value
            break

    for index, line in enumerate(lines):
        if index == 0 or index + 1 >= len(lines):
            continue
        if not set(line.strip()) <= set('- '):
            continue
        headers = lines[index - 1].split()
        data = lines[index + 1].split()
        for header, value in zip(headers, data):
            try:
                values[header] = float(value)
            except ValueError:
                continue
        break

    return config, values


def smt_description(smt: Optional[str]) -> Optional[str]:
    """
    Describe the ``smt=`` field of the lparstat configuration line.

    Example:
        >>> smt_description('Off'), smt_description('On'), smt_description('8')
        ('no (SMT=1)', 'yes (SMT=2)', 'yes (SMT=8)')
    """
    if smt is None:
        return None
    if smt == 'Off':
        return 'no (SMT=1)'
    if smt == 'On':
        return 'yes (SMT=2)'
    if smt.isdigit():
        threads = int(smt)
        return f'yes (SMT={threads})' if threads > 1 else 'no (SMT=1)'
    return None


def parse_uname_l(output: str) -> Tuple[int, Optional[str]]:
    """
    Parse ``uname -L`` output (``<partition number> <partition name>``).

    A system that is not partitioned reports ``-1 NULL``.

    Example:
        >>> parse_uname_l("5 lpar01")
        (5, 'lpar01')
    """
    parts = output.strip().split(None, 1)
    try:
        number = int(parts[0])
    except (ValueError, IndexError):
        return -1, None
    name = parts[1].strip() if len(parts) > 1 else None
    if name == 'NULL':
        name = None
    return number, name


def parse_lsattr_value(output: str) -> Optional[str]:
    """
    Value column of ``lsattr -El <device> -a <attribute>`` output.

    Example:
        >>> parse_lsattr_value("fwversion IBM,SV860_138 Firmware version and revision levels False")
        'IBM,SV860_138'
    """
    parts = output.strip().split()
    return parts[1] if len(parts) > 1 else None
