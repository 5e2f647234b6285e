"""
Configuration loading for the cabinet admin app.

Loads config.yaml, merges it over built-in defaults and applies
SUPABASE_URL / SUPABASE_KEY from the environment.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

from .form_exceptions import ConfigurationLoadError

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("memory", "supabase")
STORAGE_BACKENDS = ("local", "supabase")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_OVERRIDES = {
    "SUPABASE_URL": ("store", "url"),
    "SUPABASE_KEY": ("store", "key"),
}


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    The defaults run fully offline: in-memory rows and files under ./uploads.
    """
    return {
        'app': {
            'name': 'Cabinet Admin',
            'version': '1.0.0',
            'debug': False
        },
        'store': {
            'backend': 'memory',
            'url': '',
            'key': '',
            'forms_table': 'forms',
            'timeout': 10
        },
        'storage': {
            'backend': 'local',
            'bucket': 'documents',
            'local_dir': 'uploads',
            'public_url': None
        },
        'logging': {
            'level': 'INFO'
        },
        'ui': {
            'page_title': 'Cabinet Admin',
            'sidebar_title': 'Navigation',
            'validate_on_change': True
        }
    }


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of config with store credentials taken from the environment when set."""
    result = deepcopy(config)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            result.setdefault(section, {})[key] = value
            logger.debug(f"Using {env_name} from environment for {section}.{key}")
    return result


def load_config(config_path: Optional[Path] = None, strict: bool = False) -> Dict[str, Any]:
    """
    Load application configuration.

    A missing or empty file falls back to the defaults. An invalid or
    unreadable file falls back too unless strict is set.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)
        strict: Raise instead of falling back on an invalid file

    Returns:
        Complete configuration dictionary

    Raises:
        ConfigurationLoadError: If strict and the file cannot be parsed or read
    """
    if config_path is None:
        config_path = Path("config.yaml")

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return apply_env_overrides(default_config)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return apply_env_overrides(default_config)

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            if strict:
                raise ConfigurationLoadError(config_path, TypeError("top level must be a mapping"))
            logger.info("Using default configuration")
            return apply_env_overrides(default_config)

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return apply_env_overrides(config)

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        if strict:
            raise ConfigurationLoadError(config_path, e)
        logger.info("Using default configuration")
        return apply_env_overrides(default_config)

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        if strict:
            raise ConfigurationLoadError(config_path, e)
        logger.info("Using default configuration")
        return apply_env_overrides(default_config)


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and required fields.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'store', 'storage', 'logging', 'ui']

    for section in required_sections:
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config['app']
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    store = config['store']
    if store.get('backend') not in STORE_BACKENDS:
        logger.warning(f"store.backend must be one of {STORE_BACKENDS}")
        return False

    if store['backend'] == 'supabase' and not (store.get('url') and store.get('key')):
        logger.warning("store.url and store.key are required for the supabase backend")
        return False

    if not isinstance(store.get('forms_table', 'forms'), str) or not store.get('forms_table', 'forms'):
        logger.warning("store.forms_table must be a non-empty string")
        return False

    if 'timeout' in store:
        try:
            if float(store['timeout']) <= 0:
                logger.warning("store.timeout must be positive")
                return False
        except (ValueError, TypeError):
            logger.warning("store.timeout must be a valid number")
            return False

    storage = config['storage']
    if storage.get('backend') not in STORAGE_BACKENDS:
        logger.warning(f"storage.backend must be one of {STORAGE_BACKENDS}")
        return False

    if storage['backend'] == 'supabase' and not storage.get('bucket'):
        logger.warning("storage.bucket is required for the supabase backend")
        return False

    level = str(config['logging'].get('level', 'INFO')).upper()
    if level not in LOG_LEVELS:
        logger.warning(f"logging.level must be one of {LOG_LEVELS}")
        return False

    return True


def get_config_value(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """
    Read one value from a configuration section.

    Args:
        config: Configuration dictionary
        section: Top-level section name
        key: Key inside the section
        default: Returned when the section or key is missing

    Returns:
        The configured value or default
    """
    section_config = config.get(section)
    if not isinstance(section_config, dict):
        return default
    return section_config.get(key, default)


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary to save
        config_path: Optional path to save to (defaults to config.yaml)

    Returns:
        True if save was successful, False otherwise
    """
    if config_path is None:
        config_path = Path("config.yaml")

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
        return True

    except (IOError, OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        return False


def get_config_summary(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Get a summary of the current configuration.

    Credentials are never included.

    Args:
        config: Configuration dictionary

    Returns:
        Dictionary with configuration summary
    """
    return {
        'app_name': get_config_value(config, 'app', 'name', 'Unknown'),
        'app_version': get_config_value(config, 'app', 'version', 'Unknown'),
        'debug_mode': get_config_value(config, 'app', 'debug', False),
        'store_backend': get_config_value(config, 'store', 'backend', 'memory'),
        'store_url': get_config_value(config, 'store', 'url', '') or None,
        'has_store_key': bool(get_config_value(config, 'store', 'key', '')),
        'forms_table': get_config_value(config, 'store', 'forms_table', 'forms'),
        'storage_backend': get_config_value(config, 'storage', 'backend', 'local'),
        'bucket': get_config_value(config, 'storage', 'bucket', 'documents'),
        'log_level': get_config_value(config, 'logging', 'level', 'INFO')
    }
