"""
Platform providers for ibmpower.

Available Providers:
    - LinuxPowerProvider: Linux on POWER (PowerVM LPARs, KVM guests)
    - AIXPowerProvider: AIX and VIO servers
"""

from typing import Optional

from ibmpower.config import ModuleConfig
from ibmpower.environment import detect_platform
from ibmpower.errors import ErrorCode, ProbeError
from ibmpower.providers.aix import AIXPowerProvider
from ibmpower.providers.base import BasePowerProvider
from ibmpower.providers.linux import LinuxPowerProvider

PROVIDERS = {
    'linux': LinuxPowerProvider,
    'aix': AIXPowerProvider,
}


def get_provider(platform: Optional[str] = None, config: Optional[ModuleConfig] = None,
                 logger=None, **kwargs) -> BasePowerProvider:
    """
    Create the provider for ``platform``, detecting the running OS when None.

    Extra keyword arguments are passed to the provider constructor.

    Raises:
        ProbeError: If the platform is not supported.
    """
    config = config or ModuleConfig()
    platform = platform or config.platform or detect_platform()
    try:
        provider_class = PROVIDERS[platform]
    except KeyError:
        raise ProbeError(f"No provider for platform '{platform}'",
                         code=ErrorCode.PROBE_UNSUPPORTED_PLATFORM)
    return provider_class(config=config, logger=logger, **kwargs)


__all__ = [
    'AIXPowerProvider',
    'BasePowerProvider',
    'LinuxPowerProvider',
    'PROVIDERS',
    'get_provider',
]
