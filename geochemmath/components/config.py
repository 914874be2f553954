"""
Configuration management for geochemmath.

Settings are layered: built-in defaults, then environment variables,
then explicit overrides (usually read from a YAML or JSON file), then
values derived from the others.
"""

import os
import json
import logging
import threading
from typing import Dict, List, Optional, Any
from copy import deepcopy
import yaml

# Set up logging
logger = logging.getLogger(__name__)


TRUE_STRINGS = ('true', 'yes', 'y', '1', 't', 'on')
FALSE_STRINGS = ('false', 'no', 'n', '0', 'f', 'off')
DISABLED_STRINGS = ('none', 'off', 'null', '')


def to_int(value: Any) -> Optional[int]:
    """Parse an integer setting, or None when it cannot be parsed."""
    try:
        return None if value is None else int(value)
    except (ValueError, TypeError):
        return None


def to_float(value: Any) -> Optional[float]:
    """Parse a float setting, or None when it cannot be parsed."""
    try:
        return None if value is None else float(value)
    except (ValueError, TypeError):
        return None


def to_bool(value: Any) -> Optional[bool]:
    """
    Parse a boolean setting.

    Numbers follow Python truthiness; strings are matched against the usual
    yes/no spellings. Anything else gives None.
    """
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    return None


def to_list(value: Any, separator: str = ',') -> Optional[List[str]]:
    """Parse a list setting from a sequence or a separated string."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [item.strip() for item in value.split(separator) if item.strip()]
    return None


def to_optional_k(value: Any) -> Optional[int]:
    """
    Parse the favored cluster count.

    Args:
        value: Raw setting; 0, negative numbers, 'none', 'off' and 'null'
            disable the preference

    Returns:
        Positive integer, or None when disabled
    """
    if isinstance(value, str) and value.strip().lower() in DISABLED_STRINGS:
        return None
    k = to_int(value)
    return k if k is not None and k > 0 else None


def _from_env(name: str, current: Any, convert) -> Any:
    """
    Read one environment override, keeping `current` when it does not parse.

    Args:
        name: Environment variable name
        current: Value to keep when the variable is unset or malformed
        convert: Converter returning None for unparseable input

    Returns:
        The converted value or `current`
    """
    raw = os.environ.get(name)
    if raw is None:
        return current

    value = convert(raw)
    if value is None:
        logger.warning(f"Ignoring invalid {name}={raw!r}, keeping {current!r}")
        return current
    return value


def _file_format(filepath: str) -> str:
    if filepath.endswith('.json'):
        return 'json'
    if filepath.endswith(('.yaml', '.yml')):
        return 'yaml'
    raise ValueError(f"Unsupported configuration file format: {filepath}")


def _deep_update(target: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            target[key] = _deep_update(target[key], value)
        else:
            target[key] = value
    return target


class Config:
    """
    Layered settings for an analysis session.

    Values are addressed with dot-separated paths such as
    ``'scan.corr-threshold'``.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        self._lock = threading.RLock()
        self._config = {}
        self._initialized = False

        self.load_config(overrides)

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        """
        Rebuild the settings from every source.

        Args:
            overrides: Nested values merged over defaults and environment
        """
        with self._lock:
            config = self._apply_env_vars(self._get_defaults())
            if overrides:
                config = _deep_update(config, deepcopy(overrides))
            self._config = self._apply_inferred_values(config)
            self._initialized = True

            logger.info(f"Configuration loaded for environment '{self._config['analysis-env']}'")

    def _get_defaults(self) -> Dict[str, Any]:
        return {
            'analysis-env': 'dev',

            # Pairwise scan
            'scan': {
                'corr-threshold': 0.5,
                'p-threshold': 0.05,
                'methods': ['pearson'],
                'chunk-size': 500,          # pairs per chunk
                'exclude-identifiers': True
            },

            'pca': {
                'n-components': 2,
                'group-threshold': 0.6
            },

            # Power iteration
            'eigen': {
                'max-iters': 100,
                'tolerance': 1e-8,
                'noise-floor': 1e-10
            },

            'clustering': {
                'max-k': 8,
                'max-iters': 100,
                'min-silhouette': 0.15,
                'favored-k': 3,             # None disables the preference
                'favor-margin': 0.05
            },

            'random-seed': None,

            'logging': {
                'level': 'warn'
            }
        }

    def _apply_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overlay settings taken from environment variables.

        Args:
            config: Current configuration

        Returns:
            Updated copy of the configuration
        """
        config = deepcopy(config)
        env = os.environ

        if 'GEOCHEM_ENV' in env:
            config['analysis-env'] = env['GEOCHEM_ENV']

        scan = config['scan']
        scan['corr-threshold'] = _from_env('SCAN_CORR_THRESHOLD', scan['corr-threshold'], to_float)
        scan['p-threshold'] = _from_env('SCAN_P_THRESHOLD', scan['p-threshold'], to_float)
        scan['methods'] = _from_env('SCAN_METHODS', scan['methods'], to_list)
        scan['chunk-size'] = _from_env('SCAN_CHUNK_SIZE', scan['chunk-size'], to_int)

        pca = config['pca']
        pca['group-threshold'] = _from_env('PCA_GROUP_THRESHOLD', pca['group-threshold'], to_float)

        clustering = config['clustering']
        clustering['max-k'] = _from_env('CLUSTER_MAX_K', clustering['max-k'], to_int)
        if 'CLUSTER_FAVORED_K' in env:
            clustering['favored-k'] = to_optional_k(env['CLUSTER_FAVORED_K'])

        config['random-seed'] = _from_env('RANDOM_SEED', config['random-seed'], to_int)

        config['logging']['level'] = env.get('LOG_LEVEL', config['logging']['level']).lower()

        return config

    def _apply_inferred_values(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize loosely typed values and derive dependent ones.

        Args:
            config: Current configuration

        Returns:
            Updated copy of the configuration
        """
        config = deepcopy(config)

        # Files may carry strings where numbers or lists are expected
        config['clustering']['favored-k'] = to_optional_k(config['clustering']['favored-k'])
        config['scan']['methods'] = [str(m).lower() for m in to_list(config['scan']['methods']) or []]
        exclude = to_bool(config['scan']['exclude-identifiers'])
        config['scan']['exclude-identifiers'] = True if exclude is None else exclude

        # Test runs are reproducible unless a seed was given
        if config['random-seed'] is None and config['analysis-env'] == 'test':
            config['random-seed'] = 0

        return config

    def get(self, path: str, default: Any = None) -> Any:
        """
        Look up a value by dot-separated path.

        Args:
            path: Configuration path, e.g. ``'clustering.max-k'``
            default: Returned when any part of the path is missing

        Returns:
            The stored value, or `default`
        """
        if not self._initialized:
            self.load_config()

        node = self._config
        for key in path.split('.'):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set(self, path: str, value: Any) -> None:
        """Store a value by dot-separated path, creating sections as needed."""
        with self._lock:
            if not self._initialized:
                self.load_config()

            *parents, leaf = path.split('.')
            node = self._config
            for key in parents:
                node = node.setdefault(key, {})
            node[leaf] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the current settings."""
        if not self._initialized:
            self.load_config()

        return deepcopy(self._config)

    def save_to_file(self, filepath: str) -> None:
        """
        Write the current settings as JSON or YAML, chosen by extension.

        Args:
            filepath: Destination path ending in .json, .yaml or .yml
        """
        fmt = _file_format(filepath)
        data = self.to_dict()

        with open(filepath, 'w') as f:
            if fmt == 'json':
                json.dump(data, f, indent=2)
            else:
                yaml.safe_dump(data, f, default_flow_style=False)

    def load_from_file(self, filepath: str) -> None:
        """Reload the settings with overrides read from `filepath`."""
        self.load_config(load_config_file(filepath))


def load_config_file(filepath: str) -> Dict[str, Any]:
    """
    Read configuration overrides from a JSON or YAML file.

    Args:
        filepath: Path to configuration file

    Returns:
        Configuration dictionary (empty for an empty file)
    """
    fmt = _file_format(filepath)

    with open(filepath, 'r') as f:
        data = json.load(f) if fmt == 'json' else yaml.safe_load(f)
    return data or {}


class ConfigManager:
    """
    Process-wide shared configuration.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_config(cls, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """
        Return the shared Config, creating it on first use.

        Args:
            overrides: When given, the shared instance is reloaded with them

        Returns:
            Config instance
        """
        with cls._lock:
            if cls._instance is None:
                cls._instance = Config(overrides)
            elif overrides:
                cls._instance.load_config(overrides)

            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance so the next call reloads from scratch."""
        with cls._lock:
            cls._instance = None
