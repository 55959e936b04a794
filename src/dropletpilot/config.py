"""Configuration loading for Droplet Pilot.

Values come from an optional YAML file (a ``deployment:`` mapping keyed by
field name) and from the process environment, which takes precedence.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .models import DeploymentConfig
from .ssl_check import validate_ssl
from .utils import parse_env_var_names

logger = logging.getLogger('DropletPilot')

# field name -> environment variable
ENV_KEYS = {
    'registry': 'DO_REGISTRY',
    'access_token': 'DO_ACCESS_TOKEN',
    'container_name': 'CONTAINER_NAME',
    'health_check_cmd': 'HEALTH_CHECK_CMD',
    'domain': 'DO_DOMAIN',
    'ssl_cert_path': 'SSL_CERT_PATH',
    'ssl_key_path': 'SSL_KEY_PATH',
    'container_env_vars': 'CONTAINER_ENV_VARS',
    'registry_host': 'REGISTRY_HOST',
    'api_url': 'DO_API_URL',
    'network': 'DOCKER_NETWORK',
    'health_check_attempts': 'HEALTH_CHECK_ATTEMPTS',
    'health_check_interval': 'HEALTH_CHECK_INTERVAL',
}

REQUIRED_KEYS = ('registry', 'access_token', 'container_name')


def load_config_file(config_file: str) -> Dict[str, Any]:
    """Load the ``deployment`` mapping of a YAML configuration file."""
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_file} must contain a mapping")
    section = data.get('deployment', data)
    if not isinstance(section, dict):
        raise ConfigError(f"'deployment' section of {config_file} must be a mapping")

    unknown = set(section) - set(ENV_KEYS)
    if unknown:
        logger.warning(f"Ignoring unknown config keys in {config_file}: {', '.join(sorted(unknown))}")
    logger.info(f"Configuration loaded from {config_file}")
    return {k: v for k, v in section.items() if k in ENV_KEYS}


def _merge_sources(file_values: Mapping[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    values = dict(file_values)
    for field_name, env_name in ENV_KEYS.items():
        if environ.get(env_name):
            values[field_name] = environ[env_name]
    return values


def _as_number(values: Mapping[str, Any], key: str, cast, default):
    raw = values.get(key)
    if raw in (None, ""):
        return default
    try:
        number = cast(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{ENV_KEYS[key]} must be a number, got {raw!r}") from e
    if number <= 0:
        raise ConfigError(f"{ENV_KEYS[key]} must be positive, got {raw!r}")
    return number


def collect_container_environment(names, environ: Mapping[str, str]) -> Dict[str, str]:
    """Values of the variables to forward into the container.

    Unset variables only produce a notice: the application may have defaults.
    """
    environment = {}
    for name in names:
        value = environ.get(name)
        if value:
            environment[name] = value
        else:
            logger.warning(
                f"Container environment variable '{name}' is not set. "
                "The application may have defaults or handle this gracefully."
            )
    return environment


def load_config(config_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> DeploymentConfig:
    """Build the immutable DeploymentConfig.

    Raises:
        ConfigError: a required key is missing or a value is invalid.
        SSLValidationError: SSL was fully configured but failed validation.
    """
    environ = os.environ if environ is None else environ
    file_values = {}
    if config_file:
        if not Path(config_file).exists():
            raise ConfigError(f"Config file not found: {config_file}")
        file_values = load_config_file(config_file)

    values = _merge_sources(file_values, environ)

    missing = [ENV_KEYS[key] for key in REQUIRED_KEYS if not values.get(key)]
    if missing:
        raise ConfigError(f"Required environment variable(s) not set: {', '.join(missing)}")

    names = values.get('container_env_vars') or []
    if isinstance(names, str):
        names = parse_env_var_names(names)
    environment = collect_container_environment(names, environ)

    ssl = validate_ssl(values.get('domain'), values.get('ssl_cert_path'), values.get('ssl_key_path'))
    if ssl is not None:
        environment.update({
            'SSL_CERT_PATH': ssl.cert_path,
            'SSL_KEY_PATH': ssl.key_path,
            'DOMAIN': ssl.domain,
        })

    defaults = DeploymentConfig(registry='', access_token='', container_name='')
    return DeploymentConfig(
        registry=str(values['registry']),
        access_token=str(values['access_token']),
        container_name=str(values['container_name']),
        health_check_cmd=str(values.get('health_check_cmd') or defaults.health_check_cmd),
        ssl=ssl,
        environment=environment,
        registry_host=str(values.get('registry_host') or defaults.registry_host),
        api_url=str(values.get('api_url') or defaults.api_url),
        network=str(values.get('network') or defaults.network),
        health_check_attempts=_as_number(values, 'health_check_attempts', int, defaults.health_check_attempts),
        health_check_interval=_as_number(values, 'health_check_interval', float, defaults.health_check_interval),
    )
