"""
Environment detection for ibmpower.

Public exports:
    OSInfo: Data class containing operating system information
    detect_os: Function to detect current OS and distribution
    detect_platform: Function returning 'linux' or 'aix'
"""

from ibmpower.environment.os_detect import OSInfo, detect_os, detect_platform

__all__ = [
    "OSInfo",
    "detect_os",
    "detect_platform",
]
