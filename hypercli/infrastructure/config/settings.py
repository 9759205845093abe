"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.hypercli/config.yaml), and builds the CoreSettings
value handed to the resolution and resilience core.

Keys are dotted (``retry.max_retries``). The matching environment variable is
``HYPERCLI_`` plus the key upper-cased with dots turned into underscores
(``HYPERCLI_RETRY_MAX_RETRIES``).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from hypercli.domain.errors import ValidationError
from hypercli.domain.models.settings import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_NAMESPACE_TTLS_MS,
    CoreSettings,
)

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "HYPERCLI_"
CONFIG_FILE_ENV = "HYPERCLI_CONFIG_FILE"
REMOTE_FACTORY_KEY = "remote.factory"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def load_configuration(config_file: Optional[Path] = None, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Test overrides (``set_config_for_testing``)
    2. Environment Variables
    3. .env file
    4. YAML configuration file
    5. Defaults supplied by the caller

    Args:
        config_file: Path to the YAML configuration file (``HYPERCLI_CONFIG_FILE``
            or ~/.hypercli/config.yaml when None).
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # .env first so it can point at a different YAML file
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):  # real ENV VARS take precedence
            logger.debug(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    yaml_path = config_file or Path(os.environ.get(CONFIG_FILE_ENV, str(DEFAULT_CONFIG_FILE))).expanduser()
    if yaml_path.is_file():
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.debug(f"Loaded configuration from YAML: {yaml_path}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {yaml_path} did not contain a mapping; ignoring it.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {yaml_path}: {e}")
    else:
        logger.debug(f"YAML config file not found: {yaml_path}")

    _loaded = True


def reset_configuration() -> None:
    """Forgets loaded configuration so the next access reloads it."""
    global _config, _loaded
    _config = {}
    _loaded = False


def env_var_for(key: str) -> str:
    return ENV_PREFIX + key.upper().replace('.', '_').replace('-', '_')


def _coerce(value: str) -> Any:
    """Converts environment strings to bool/int/float where they look like one."""
    lowered = value.strip().lower()
    if lowered in ('true', 'yes', 'on'):
        return True
    if lowered in ('false', 'no', 'off'):
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def _lookup_nested(data: Dict[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    current: Any = data
    for part in key.split('.'):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by dotted key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (``HYPERCLI_<KEY>``)
    3. YAML config (nested sections or flat dotted keys)
    4. Default value

    Args:
        key: The configuration key, e.g. ``cache.capacity``.
        default: Default value if the key is not found.

    Returns:
        The configuration value.
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_for(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if not _loaded:
        load_configuration()
    value = _lookup_nested(_config, key)
    if value is not None:
        return value

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the rest of this process.

    Args:
        key: Configuration key (e.g., 'logging.level')
        value: Value to set
    """
    logger.debug(f"Setting config: {key} = {value}")
    _config[key] = value
    os.environ[env_var_for(key)] = str(value)


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values for testing purposes.

    These values override any environment or file configuration.
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


# --- Typed accessors ---

def _as_int(key: str, default: int, minimum: int = 0) -> int:
    value = get_config(key, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Configuration '{key}' must be an integer, got {value!r}",
            suggestions=[{"description": f"Fix {env_var_for(key)} or '{key}' in {DEFAULT_CONFIG_FILE}"}],
        )
    if result < minimum:
        raise ValidationError(f"Configuration '{key}' must be >= {minimum}, got {result}")
    return result


def _as_float(key: str, default: float) -> float:
    value = get_config(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Configuration '{key}' must be a number, got {value!r}")


def _as_bool(key: str, default: bool) -> bool:
    value = get_config(key, default)
    if isinstance(value, str):
        coerced = _coerce(value)
        if isinstance(coerced, bool):
            return coerced
        raise ValidationError(f"Configuration '{key}' must be true or false, got {value!r}")
    return bool(value)


def _as_path(key: str, default: Optional[Path]) -> Optional[Path]:
    value = get_config(key, None)
    if value is None or value == "":
        return default
    return Path(str(value)).expanduser()


def get_remote_factory() -> Optional[str]:
    """The ``module:callable`` that builds the RemoteGateway, if configured."""
    value = get_config(REMOTE_FACTORY_KEY)
    return str(value) if value else None


def load_core_settings(verbose: Optional[bool] = None) -> CoreSettings:
    """Builds CoreSettings from the layered configuration.

    Raises:
        ValidationError: If a configured value has the wrong type or range.
    """
    defaults = CoreSettings()
    namespace_ttls = dict(DEFAULT_NAMESPACE_TTLS_MS)
    for namespace in DEFAULT_NAMESPACE_TTLS_MS:
        namespace_ttls[namespace] = _as_int(f"cache.ttl.{namespace}", namespace_ttls[namespace])
    configured_ttls = get_config("cache.ttl")
    if isinstance(configured_ttls, dict):
        for namespace in configured_ttls:
            namespace_ttls[str(namespace)] = _as_int(f"cache.ttl.{namespace}", namespace_ttls.get(namespace, 0))

    settings = CoreSettings(
        max_retries=_as_int("retry.max_retries", defaults.max_retries),
        base_delay_ms=_as_int("retry.base_delay_ms", defaults.base_delay_ms),
        max_delay_ms=_as_int("retry.max_delay_ms", defaults.max_delay_ms),
        cache_enabled=_as_bool("cache.enabled", defaults.cache_enabled),
        default_ttl_ms=_as_int("cache.default_ttl_ms", defaults.default_ttl_ms),
        namespace_ttls_ms=namespace_ttls,
        cache_capacity=_as_int("cache.capacity", defaults.cache_capacity, minimum=1),
        breaker_threshold=_as_int("breaker.threshold", defaults.breaker_threshold, minimum=1),
        breaker_cooldown_ms=_as_int("breaker.cooldown_ms", defaults.breaker_cooldown_ms),
        breaker_backoff_factor=_as_float("breaker.backoff_factor", defaults.breaker_backoff_factor),
        breaker_max_cooldown_ms=_as_int("breaker.max_cooldown_ms", defaults.breaker_max_cooldown_ms),
        workspace_cache_path=_as_path("workspace.cache_path", defaults.workspace_cache_path),
        disk_cache_dir=_as_path("cache.disk_dir", defaults.disk_cache_dir),
        verbose=_as_bool("verbose", defaults.verbose) if verbose is None else verbose,
    )
    if settings.breaker_backoff_factor < 1.0:
        raise ValidationError("Configuration 'breaker.backoff_factor' must be >= 1.0")
    logger.debug(f"Core settings loaded: {settings}")
    return settings
