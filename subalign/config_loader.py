"""Handles loading configuration from YAML files."""

import copy
import yaml
import os
import logging
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

DEFAULT_CONFIG = {
    'log_dir': 'logs',
    'log_file': 'subalign.log',
    'ffmpeg_path': None,
    'whisper_model': 'small',
    'whisper_fp16': True,
    'device': 'cuda',
    'work_dir': os.path.join('work', 'sub-sync'),
    'videos_dir': os.path.join('source_content', 'videos'),
    'jp_subs_dir': os.path.join('source_content', 'subs', 'japanese'),
    'en_subs_dir': os.path.join('source_content', 'subs', 'english'),
    'offsets_file': os.path.join('source_content', 'subs', 'sub-offsets.json'),
    'db_file': os.path.join('source_content', 'subs', 'sub-sync-db.json'),
    'jp_language': 'Japanese',
    'keep_temp': False,
    'episode_timeout_sec': None,
    'sample_sec': 60,
    'max_attempts': 4,
    'search': {
        'min_offset_ms': -5000,
        'max_offset_ms': 5000,
        'coarse_step_ms': 100,
        'fine_step_ms': 20,
        'max_pair_dist_ms': 1400,
        'min_text_len': 2,
    },
}


def merge_config(base: dict, overrides: dict) -> dict:
    """Recursively overlays `overrides` on a copy of `base`."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the loaded configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
            logger.error(f"Configuration path is not a file: {config_path}")
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except IOError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")
        if 'search' in config and not isinstance(config['search'], dict):
            raise ConfigurationError(f"'search' in {config_path} must be a mapping.")

        logger.info(f"Configuration loaded successfully from {config_path}")
        return merge_config(DEFAULT_CONFIG, config)

    def load_or_default(self, config_path: str) -> dict:
        """
        Like load_config, but a missing file at the default location falls back
        to the built-in defaults. An explicitly named missing file is an error.
        """
        if config_path == DEFAULT_CONFIG_PATH and not os.path.exists(config_path):
            logger.info(f"No {DEFAULT_CONFIG_PATH} found; using built-in defaults.")
            return copy.deepcopy(DEFAULT_CONFIG)
        return self.load_config(config_path)
