"""
Monitoring daemon entry points for the ibmpower metric group.

The host (a gmond-style Python module loader) calls ``metric_init`` once
with the module params, then ``metric_handler(name)`` each time a metric is
due, and ``metric_cleanup`` at shutdown.

Example module configuration:

    modules {
      module {
        name = "ibmpower"
        language = "python"
        param stream_log_level { value = "info" }
        param time_max_cpu_used { value = 30 }
      }
    }
"""

import threading
import traceback
from typing import Any, Dict, List, Optional

from ibmpower.config import ModuleConfig, load_config
from ibmpower.errors import PowerMetricsException
from ibmpower.metrics import DESCRIPTORS_BY_NAME, descriptors_for, render_value, sentinel_for
from ibmpower.power_logging import apply_logging_options, get_logger
from ibmpower.providers import BasePowerProvider, get_provider

CONFIG_FILE_PARAM = 'config_file'

logger = get_logger()

_lock = threading.Lock()
_provider: Optional[BasePowerProvider] = None
_config: Optional[ModuleConfig] = None


def metric_init(params: Optional[Dict[str, Any]] = None,
                provider: Optional[BasePowerProvider] = None) -> List[Dict[str, Any]]:
    """
    Initialize the module and return one descriptor dict per metric.

    Args:
        params: Module params from the daemon. ``config_file`` names a YAML
            file; every other key overrides the file (see ``load_config``).
        provider: Provider to use instead of the one for the running OS.

    Returns:
        Descriptor dicts with ``name, call_back, time_max, value_type, units,
        slope, format, description, groups``.

    Raises:
        ConfigurationError: If the configuration is invalid.
        ProbeError: If the platform is not supported.
    """
    global _provider, _config

    params = dict(params or {})
    config_file = params.pop(CONFIG_FILE_PARAM, None)
    config = load_config(config_file, overrides=params)
    apply_logging_options(logger, config.logging_options())

    with _lock:
        _config = config
        _provider = provider or get_provider(config=config, logger=logger)
        platform = _provider.platform_name()
        logger.verbose(f'Using {type(_provider).__name__} for platform {platform}')

        # First counter readings, so the first scheduled collection has a baseline
        _provider.prime()

    descriptors = []
    for descriptor in descriptors_for(platform):
        entry = descriptor.to_dict()
        entry['time_max'] = config.time_max.get(descriptor.name, descriptor.time_max)
        entry['call_back'] = metric_handler
        descriptors.append(entry)

    logger.status(f'ibmpower initialized with {len(descriptors)} metrics')
    return descriptors


def metric_handler(name: str) -> Any:
    """
    Return the current value of metric ``name``.

    Never raises: failures are logged and the metric's sentinel is returned
    (-1, 0.0 or a status string). Unknown names return None.
    """
    descriptor = DESCRIPTORS_BY_NAME.get(name)
    if descriptor is None:
        logger.error(f'Unknown metric: {name}')
        return None

    provider, config = _provider, _config
    if provider is None:
        logger.error(f'Metric {name} requested before metric_init')
        return sentinel_for(descriptor, 'Not initialized')

    try:
        value = getattr(provider, name)()
    except PowerMetricsException as e:
        logger.warning(f'{name}: {e.message}')
        return render_value(descriptor, sentinel_for(descriptor, e.message), config.max_string_size)
    except Exception as e:
        logger.error(f'{name}: unexpected {type(e).__name__}: {e}')
        logger.debug(traceback.format_exc())
        return sentinel_for(descriptor, 'Internal error')

    value = render_value(descriptor, value, config.max_string_size)
    logger.ridiculous(f'{name} = {value!r}')
    return value


def metric_cleanup() -> None:
    """Drop the provider and all rate sampler state."""
    global _provider, _config

    with _lock:
        if _provider is not None:
            _provider.sampler.reset()
        _provider = None
        _config = None
    logger.verbose('ibmpower cleaned up')
