# ABOUTME: Configuration parser for SwitchBot TH exporter application
# ABOUTME: Loads and validates YAML config with listen port, BLE scanning, and logging parameters
from dataclasses import dataclass
from typing import Optional

import yaml

from switchbot_exporter.parser import SWITCHBOT_SERVICE_UUID

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


@dataclass
class AppConfig:
    """Application configuration loaded from YAML file."""
    listen_port: int
    log_file: str = "./logs/switchbot_exporter.log"
    service_uuid: str = SWITCHBOT_SERVICE_UUID
    adapter: Optional[str] = None  # BlueZ adapter name, e.g. 'hci0'
    log_level: str = "INFO"
    log_backup_days: int = 30


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def load_config(path: str) -> AppConfig:
    """
    Load and validate application configuration from YAML file.

    Args:
        path: Path to YAML config file

    Returns:
        AppConfig instance with validated configuration

    Raises:
        ValueError: If config is invalid or missing required keys
    """
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ValueError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a YAML mapping")

    required_keys = ['listen_port']
    missing_keys = [key for key in required_keys if key not in data]
    if missing_keys:
        raise ValueError(f"Missing required config keys: {', '.join(missing_keys)}")

    listen_port = data['listen_port']
    if not _is_int(listen_port):
        raise ValueError("'listen_port' must be an integer")
    if not 0 < listen_port < 65536:
        raise ValueError(f"'listen_port' out of range: {listen_port}")

    service_uuid = data.get('service_uuid', SWITCHBOT_SERVICE_UUID)
    if not isinstance(service_uuid, str):
        raise ValueError("'service_uuid' must be a string")

    adapter = data.get('adapter')
    if adapter is not None and not isinstance(adapter, str):
        raise ValueError("'adapter' must be a string")

    log_level = str(data.get('log_level', 'INFO')).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"'log_level' must be one of: {', '.join(VALID_LOG_LEVELS)}")

    log_backup_days = data.get('log_backup_days', 30)
    if not _is_int(log_backup_days) or log_backup_days < 0:
        raise ValueError("'log_backup_days' must be a non-negative integer")

    return AppConfig(
        listen_port=listen_port,
        log_file=data.get('log_file', './logs/switchbot_exporter.log'),
        service_uuid=service_uuid.lower(),
        adapter=adapter,
        log_level=log_level,
        log_backup_days=log_backup_days
    )
