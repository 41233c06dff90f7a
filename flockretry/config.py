"""Configuration handler for flock-retry"""

import os
import logging
import yaml
from typing import Dict

from .errors import ConfigError
from .utils import parse_mode

logger = logging.getLogger(__name__)


class Config:
    """Configuration handler"""

    DEFAULT_CONFIG_FILE = '.flock-retry.yml'
    KEYS = ('retries', 'shared', 'mode')

    @staticmethod
    def load_config(directory: str) -> Dict:
        """Load configuration from the YAML file in ``directory``, if any"""
        config_path = os.path.join(directory, Config.DEFAULT_CONFIG_FILE)
        if not os.path.exists(config_path):
            return {}

        try:
            return Config.load_file(config_path)
        except ConfigError as e:
            logger.warning(f"Failed to load config file: {e}")
            return {}

    @staticmethod
    def load_file(config_path: str) -> Dict:
        """Load configuration from an explicit YAML file"""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Can't read config file '{config_path}': {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file '{config_path}' must contain a mapping")
        unknown = set(data) - set(Config.KEYS)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(map(str, unknown)))}")
        return {k: data[k] for k in Config.KEYS if k in data}

    @staticmethod
    def merge_config(file_config: Dict, cli_args: Dict) -> Dict:
        """Merge file config with CLI arguments, CLI args take precedence"""
        config = {
            'retries': cli_args.get('retries') if cli_args.get('retries') is not None
            else file_config.get('retries'),
            'shared': cli_args.get('shared') if cli_args.get('shared') is not None
            else file_config.get('shared', False),
            'mode': cli_args.get('mode') or file_config.get('mode'),
        }

        # Remove None values
        config = {k: v for k, v in config.items() if v is not None}
        return Config.validate(config)

    @staticmethod
    def validate(config: Dict) -> Dict:
        """Check value types and normalise the open mode"""
        validated = dict(config)
        if 'retries' in validated:
            retries = validated['retries']
            if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
                raise ConfigError(f"retries must be a non-negative integer, got {retries!r}")
        if 'shared' in validated and not isinstance(validated['shared'], bool):
            raise ConfigError(f"shared must be true or false, got {validated['shared']!r}")
        if 'mode' in validated:
            validated['mode'] = parse_mode(validated['mode'])
        return validated
