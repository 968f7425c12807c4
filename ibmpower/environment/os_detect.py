"""
OS detection utilities for ibmpower.

This module provides operating system and Linux distribution detection
used to pick a platform provider and to report the OS level.

Public exports:
    OSInfo: Data class containing operating system information
    detect_os: Function to detect current OS and distribution
    detect_platform: Function returning the provider platform name
"""

import platform
from dataclasses import dataclass
from typing import Optional

import distro

from ibmpower.errors import ErrorCode, ProbeError


@dataclass
class OSInfo:
    """
    Operating system information.

    Attributes:
        system: Operating system type ('Linux', 'AIX')
        release: OS kernel release version
        machine: Machine architecture ('ppc64le', 'ppc64', '00F84C0C4C00', ...)
        distro_id: Linux distribution ID ('sles', 'rhel', 'ubuntu', etc.)
        distro_name: Pretty distribution name ('SUSE Linux Enterprise Server 15 SP5')
        distro_version: Distribution version ('15.5', '9.2', etc.)
    """
    system: str
    release: str
    machine: str
    distro_id: Optional[str] = None
    distro_name: Optional[str] = None
    distro_version: Optional[str] = None

    @property
    def is_aix(self) -> bool:
        return self.system == 'AIX'

    @property
    def is_linux(self) -> bool:
        return self.system == 'Linux'


def detect_os() -> OSInfo:
    """
    Detect the current operating system and Linux distribution.

    Uses the `platform` module for basic OS info and the `distro` package
    for Linux distribution details (it reads /etc/os-release and the
    vendor release files).

    Returns:
        OSInfo: Detected operating system information

    Examples:
        >>> info = detect_os()
        >>> info.system
        'Linux'
        >>> info.distro_name
        'Red Hat Enterprise Linux 9.2 (Plow)'
    """
    info = OSInfo(
        system=platform.system(),
        release=platform.release(),
        machine=platform.machine(),
    )

    if info.is_linux:
        info.distro_id = distro.id() or None
        info.distro_name = distro.name(pretty=True) or None
        info.distro_version = distro.version() or None

    return info


def detect_platform(os_info: Optional[OSInfo] = None) -> str:
    """
    Return the provider platform for this host: 'linux' or 'aix'.

    Raises:
        ProbeError: On any other operating system.
    """
    os_info = os_info or detect_os()
    if os_info.is_aix:
        return 'aix'
    if os_info.is_linux:
        return 'linux'
    raise ProbeError(f"Unsupported operating system: {os_info.system}",
                     code=ErrorCode.PROBE_UNSUPPORTED_PLATFORM)
