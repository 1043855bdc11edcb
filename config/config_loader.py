"""
Configuration loading for featurestream.

This module handles loading and validation of the client configuration JSON
file, and merges it over built-in defaults so that transports and layers always
see a complete settings dictionary.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DEFAULT_CONFIG_FILE: Bundled client configuration

Functions:
    load_config: Load and validate client configuration from JSON
    load_client_settings: Merge configuration sections over defaults
"""

import copy
import json
from pathlib import Path
from typing import Dict, Optional, Union

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
DEFAULT_CONFIG_FILE = CONFIG_DIR / 'client_config.json'

REQUIRED_SECTIONS = ('transport', 'pagination', 'authentication')

DEFAULT_SETTINGS = {
    'transport': {
        'timeout_seconds': 240,
        'max_retry_attempts': 4,
        'retry_base_delay_seconds': 1.0,
        'user_agent': 'featurestream/1.0'
    },
    'pagination': {
        'default_page_size': 10,
        'degree_of_parallelism': 1
    },
    'authentication': {
        'token_url': 'https://www.arcgis.com/sharing/rest/generateToken',
        'token_expiration_minutes': 60,
        'renewal_margin_seconds': 30
    }
}


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """
    Load client configuration from JSON file.

    Reads client_config.json (or the given path) and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Union[str, Path]]
        Path to a configuration file (defaults to config/client_config.json)

    Returns:
    --------
    Dict
        Configuration dictionary with 'transport', 'pagination' and
        'authentication' keys

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_FILE

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise KeyError(f"Configuration missing required '{section}' key")

    return config


def load_client_settings(config: Optional[Dict] = None) -> Dict:
    """
    Load client settings, merging configuration over defaults.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with 'transport', 'pagination' and 'authentication' sections

    Defaults:
        - transport.timeout_seconds: 240
        - transport.max_retry_attempts: 4
        - transport.retry_base_delay_seconds: 1.0
        - pagination.default_page_size: 10
        - pagination.degree_of_parallelism: 1
        - authentication.token_expiration_minutes: 60
        - authentication.renewal_margin_seconds: 30

    Note:
        Sections or keys missing from the configuration fall back to the
        defaults, so partial configuration files keep working.
    """
    if config is None:
        config = load_config()

    result = copy.deepcopy(DEFAULT_SETTINGS)
    for section, values in config.items():
        if isinstance(values, dict):
            result.setdefault(section, {}).update(values)
        else:
            result[section] = values

    return result
