"""Configuration loader for tls-secret-sync."""
import os
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .constants import (
    DEFAULT_CERTIFICATE_MANAGER_LOCATION,
    DEFAULT_METRICS_LISTEN,
    SOURCE_TYPES,
    SYNC_TYPES,
)
from .metrics import parse_listen
from .preferences import get_config_path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "tls-secret-sync" / "config.yml"


class ConfigError(Exception):
    """Configuration error exception."""
    pass


@dataclass
class Settings:
    """Everything needed to build the source, the targets and the metrics server."""
    source_type: Optional[str] = None
    source_namespace: Optional[str] = None
    secret_name: Optional[str] = None
    secret_manager_project: Optional[str] = None
    cert_secret: Optional[str] = None
    key_secret: Optional[str] = None
    sync_types: List[str] = field(default_factory=list)
    certificate_manager_host_name: Optional[str] = None
    certificate_manager_project: Optional[str] = None
    certificate_manager_location: str = DEFAULT_CERTIFICATE_MANAGER_LOCATION
    certificate_manager_name_prefix: Optional[str] = None
    certificate_manager_certificate_map: Optional[str] = None
    certificate_manager_certificate_map_entry: Optional[str] = None
    metrics_listen: str = DEFAULT_METRICS_LISTEN
    service_account_path: Optional[str] = None


def resolve_config_path(explicit_path: Optional[str] = None) -> Optional[str]:
    """
    Find the config file to load.

    Priority order:
    1. Explicit path (--config flag)
    2. User preference (~/.config/tls-secret-sync/preferences.json)
    3. Default location: ~/.config/tls-secret-sync/config.yml

    Returns:
        Path to the config file, or None when no config file is in use

    Raises:
        ConfigError: If an explicit path was given and does not exist
    """
    if explicit_path:
        if not os.path.isfile(explicit_path):
            raise ConfigError(f"Configuration file not found at: {explicit_path}")
        return explicit_path

    preferred = get_config_path()
    if preferred:
        if Path(preferred).exists():
            logger.info(f"Using config from preference: {preferred}")
            return preferred
        logger.warning(f"Config path from preference doesn't exist: {preferred}")

    if DEFAULT_CONFIG_PATH.exists():
        logger.info(f"Using default config location: {DEFAULT_CONFIG_PATH}")
        return str(DEFAULT_CONFIG_PATH)

    return None


def _validate_authentication(auth: Any, config_path: str) -> None:
    if not isinstance(auth, dict):
        raise ConfigError(f"'authentication' in {config_path} must be a mapping")

    if auth.get('type', 'service_account') != 'service_account':
        raise ConfigError(
            f"Unsupported authentication type: {auth['type']}\n"
            f"Only 'service_account' is supported."
        )

    if 'service_account_path' not in auth:
        raise ConfigError(
            "Missing 'authentication.service_account_path' in config\n"
            "Please specify the absolute path to your service account JSON file."
        )

    service_account_path = auth['service_account_path']
    if not os.path.isfile(service_account_path):
        raise ConfigError(
            f"Service account file not found at: {service_account_path}\n"
            f"Please ensure the file exists or update the path in {config_path}"
        )


def load_config(explicit_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    The file is optional: with no file in use an empty dict is returned and
    every setting must come from command line flags.

    Returns:
        Dict containing the raw configuration

    Raises:
        ConfigError: If the file is unreadable, invalid or references a missing service account file
    """
    config_path = resolve_config_path(explicit_path)
    if config_path is None:
        logger.debug("No config file found, using command line flags only")
        return {}

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    if 'authentication' in config:
        _validate_authentication(config['authentication'], config_path)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return config


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' in config must be a mapping, got {type(value).__name__}")
    return value


def settings_from_config(config: Dict[str, Any]) -> Settings:
    """
    Flatten the YAML sections into Settings.

    Raises:
        ConfigError: If a section is not a mapping or sync_types is not a list of names
    """
    source = _section(config, 'source')
    secret_manager = _section(config, 'secret_manager')
    certificate_manager = _section(config, 'certificate_manager')
    metrics = _section(config, 'metrics')
    auth = _section(config, 'authentication')

    sync_types = config.get('sync_types') or []
    if isinstance(sync_types, str):
        sync_types = [sync_types]
    if not isinstance(sync_types, list) or not all(isinstance(t, str) for t in sync_types):
        raise ConfigError("'sync_types' in config must be a list of names")

    return Settings(
        source_type=source.get('type'),
        source_namespace=source.get('namespace'),
        secret_name=config.get('secret_name'),
        secret_manager_project=secret_manager.get('project_id'),
        cert_secret=secret_manager.get('cert_secret'),
        key_secret=secret_manager.get('key_secret'),
        sync_types=list(sync_types),
        certificate_manager_host_name=certificate_manager.get('host_name'),
        certificate_manager_project=certificate_manager.get('project_id'),
        certificate_manager_location=certificate_manager.get('location', DEFAULT_CERTIFICATE_MANAGER_LOCATION),
        certificate_manager_name_prefix=certificate_manager.get('name_prefix'),
        certificate_manager_certificate_map=certificate_manager.get('certificate_map'),
        certificate_manager_certificate_map_entry=certificate_manager.get('certificate_map_entry'),
        metrics_listen=metrics.get('listen', DEFAULT_METRICS_LISTEN),
        service_account_path=auth.get('service_account_path'),
    )


def merge_settings(settings: Settings, overrides: Dict[str, Any]) -> Settings:
    """Apply command line values on top of file settings; None and empty values are ignored."""
    names = {f.name for f in fields(Settings)}
    for name, value in overrides.items():
        if name not in names:
            raise ConfigError(f"Unknown setting: {name}")
        if value is None or value == []:
            continue
        setattr(settings, name, value)
    return settings


def validate_settings(settings: Settings) -> None:
    """
    Check that the chosen source and targets have everything they need.

    Raises:
        ConfigError: Naming the first missing or invalid flag
    """
    if not settings.source_type:
        raise ConfigError("source-type is required")
    if settings.source_type not in SOURCE_TYPES:
        raise ConfigError(f"invalid value for source-type: {settings.source_type}")

    if settings.source_type == "kubernetes":
        if not settings.source_namespace:
            raise ConfigError("source-namespace is required if source-type is kubernetes")
        if not settings.secret_name:
            raise ConfigError("secret-name is required if source-type is kubernetes")
    else:
        _require_secret_manager(settings)

    for sync_type in settings.sync_types:
        if sync_type not in SYNC_TYPES:
            raise ConfigError(f"invalid value for sync-type: {sync_type}")
        if sync_type == "kubernetes" and not settings.secret_name:
            raise ConfigError("secret-name is required if sync type has kubernetes")
        if sync_type == "secret-manager":
            _require_secret_manager(settings)
        if sync_type == "certificate-manager":
            _require_certificate_manager(settings)

    if not isinstance(settings.metrics_listen, str):
        raise ConfigError(f"invalid value for metrics-listen: {settings.metrics_listen!r}")
    try:
        parse_listen(settings.metrics_listen)
    except ValueError as e:
        raise ConfigError(f"invalid value for metrics-listen: {e}") from e


def _require_secret_manager(settings: Settings) -> None:
    if not settings.secret_manager_project:
        raise ConfigError("secret-manager-gcp-project is required if source / sync type has secret-manager")
    if not settings.cert_secret:
        raise ConfigError("cert-secret is required if source / sync type has secret-manager")
    if not settings.key_secret:
        raise ConfigError("key-secret is required if source / sync type has secret-manager")


def _require_certificate_manager(settings: Settings) -> None:
    required = [
        ("certificate-manager-host-name", settings.certificate_manager_host_name),
        ("certificate-manager-gcp-project", settings.certificate_manager_project),
        ("certificate-manager-name-prefix", settings.certificate_manager_name_prefix),
        ("certificate-manager-certificate-map", settings.certificate_manager_certificate_map),
        ("certificate-manager-certificate-map-entry", settings.certificate_manager_certificate_map_entry),
    ]
    for flag, value in required:
        if not value:
            raise ConfigError(f"{flag} is required if sync type has certificate-manager")
