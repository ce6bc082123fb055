"""
PECorrect v0.1.0

Configuration schema for PECorrect.

Defines all available configuration parameters with defaults, YAML loading,
environment variable substitution and validation.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import copy
import math
import os
import re
from typing import Dict, Any, Optional, List
from pathlib import Path
import yaml

from ..core.errors import ConfigValidationError
from ..core.resolver import DEFAULTS, INDEXING_ALGORITHMS, RunPlan, resolve


# Default configuration values
DEFAULT_CONFIG = {
    # ========================================================================
    # Inputs (paired-end FASTQ)
    # ========================================================================
    'input': {
        'forward': None,  # Forward mate reads (required)
        'reverse': None,  # Reverse mate reads (required)
    },

    # ========================================================================
    # External engine
    # ========================================================================
    'tool': {
        'executable': None,  # Auto-detect ($SGA_PATH, PATH, common locations)
    },

    # ========================================================================
    # sga preprocess
    # ========================================================================
    'preprocess': {
        'min_length': DEFAULTS['min_retained_length'],
        'quality_trim': DEFAULTS['quality_trim_threshold'],
        'quality_filter': DEFAULTS['quality_filter_threshold'],
    },

    # ========================================================================
    # sga index
    # ========================================================================
    'index': {
        'algorithm': DEFAULTS['indexing_algorithm'],  # 'sais' or 'ropebwt'
        'threads': DEFAULTS['thread_count'],
        'disk_batch_size': DEFAULTS['disk_batch_size'],  # Used with sais only
    },

    # ========================================================================
    # sga correct
    # ========================================================================
    'correct': {
        'kmer_threshold': DEFAULTS['kmer_correction_threshold'],
        'kmer_length': DEFAULTS['kmer_length'],
    },

    # ========================================================================
    # Output
    # ========================================================================
    'output': {
        'directory': None,  # Default: current working directory
        'filename': DEFAULTS['output_filename'],
        'keep_intermediates': DEFAULTS['keep_intermediates'],
        'logging': {
            'level': 'INFO',
            'log_file': 'pecorrect.log',
        },
    },

    # ========================================================================
    # Execution
    # ========================================================================
    'execution': {
        'debug': DEFAULTS['debug_enabled'],
        'stage_timeout': DEFAULTS['stage_timeout'],  # Seconds per stage, None = no limit
    },
}

# Nested config location -> RunPlan field
FIELD_MAP = {
    ('input', 'forward'): 'forward_reads_path',
    ('input', 'reverse'): 'reverse_reads_path',
    ('tool', 'executable'): 'tool_executable_path',
    ('preprocess', 'min_length'): 'min_retained_length',
    ('preprocess', 'quality_trim'): 'quality_trim_threshold',
    ('preprocess', 'quality_filter'): 'quality_filter_threshold',
    ('index', 'algorithm'): 'indexing_algorithm',
    ('index', 'threads'): 'thread_count',
    ('index', 'disk_batch_size'): 'disk_batch_size',
    ('correct', 'kmer_threshold'): 'kmer_correction_threshold',
    ('correct', 'kmer_length'): 'kmer_length',
    ('output', 'directory'): 'output_directory',
    ('output', 'filename'): 'output_filename',
    ('output', 'keep_intermediates'): 'keep_intermediates',
    ('execution', 'debug'): 'debug_enabled',
    ('execution', 'stage_timeout'): 'stage_timeout',
}

_ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::-(.*?))?\}')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Path to YAML config file (None = use defaults)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: config_path does not exist
        ConfigValidationError: File is not valid YAML or not a mapping
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path) as f:
                user_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in config file {config_path}: {e}")

        if user_config is None:
            user_config = {}
        if not isinstance(user_config, dict):
            raise ConfigValidationError(
                f"Config file {config_path} must contain a mapping at top level"
            )

        # Deep merge user config into defaults
        config = _deep_merge(config, _substitute_env_vars(user_config))

    return config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _substitute_env_vars(config: Any) -> Any:
    """
    Recursively substitute environment variables in configuration.

    Supports ${VAR} and ${VAR:-default}.
    """
    if isinstance(config, dict):
        return {k: _substitute_env_vars(v) for k, v in config.items()}

    elif isinstance(config, list):
        return [_substitute_env_vars(item) for item in config]

    elif isinstance(config, str):
        def replace_var(match):
            return os.environ.get(match.group(1), match.group(2) or '')

        return _ENV_PATTERN.sub(replace_var, config)

    return config


def merge_cli_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply command-line overrides to a configuration.

    Args:
        config: Loaded configuration
        overrides: Dotted keys ('index.threads') -> value; None values are ignored

    Returns:
        New configuration dictionary
    """
    result = copy.deepcopy(config)

    for key, value in overrides.items():
        if value is None:
            continue
        keys = key.split('.')
        target = result
        for k in keys[:-1]:
            target = target.setdefault(k, {})
        target[keys[-1]] = value

    return result


def flatten_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a nested configuration into the flat mapping resolve() takes.

    Raises:
        ConfigValidationError: Unknown section or key in the configuration
    """
    unknown = _unknown_keys(config)
    if unknown:
        raise ConfigValidationError(f"Unknown configuration key(s): {', '.join(unknown)}")

    raw = {}
    for (section, key), field in FIELD_MAP.items():
        value = _lookup(config, section, key)
        if value is not None:
            raw[field] = value
    return raw


def _unknown_keys(config: Dict[str, Any]) -> List[str]:
    unknown = []
    for section, values in config.items():
        if section not in DEFAULT_CONFIG:
            unknown.append(section)
            continue
        if not isinstance(values, dict):
            unknown.append(f"{section} (expected a mapping)")
            continue
        for key in values:
            if key not in DEFAULT_CONFIG[section]:
                unknown.append(f"{section}.{key}")
    return unknown


def _lookup(config: Dict[str, Any], section: str, key: str) -> Any:
    values = config.get(section)
    return values.get(key) if isinstance(values, dict) else None


def save_config_template(output_path: Path, template: str = 'default'):
    """
    Save a configuration template to file.

    Args:
        output_path: Output file path
        template: Template type ('default', 'ropebwt', 'lowmem')
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config['input']['forward'] = 'reads_1.fastq'
    config['input']['reverse'] = 'reads_2.fastq'

    if template == 'ropebwt':
        # Short reads (<200bp): ropebwt indexing is fast and memory bounded
        config['index']['algorithm'] = 'ropebwt'

    elif template == 'lowmem':
        config['index']['algorithm'] = 'sais'
        config['index']['disk_batch_size'] = 5000000

    elif template != 'default':
        raise ValueError(f"Unknown template: {template}")

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration dictionary.

    Checks everything that does not require the read files to exist.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    for key in _unknown_keys(config):
        errors.append(f"Unknown configuration key: {key}")

    algorithm = _lookup(config, 'index', 'algorithm')
    if algorithm is not None and str(algorithm).lower() not in INDEXING_ALGORITHMS:
        errors.append(
            f"Invalid index.algorithm: {algorithm} (must be one of {', '.join(INDEXING_ALGORITHMS)})"
        )

    minimums = {
        ('preprocess', 'min_length'): 0,
        ('preprocess', 'quality_trim'): 0,
        ('preprocess', 'quality_filter'): 0,
        ('index', 'threads'): 1,
        ('index', 'disk_batch_size'): 1,
        ('correct', 'kmer_threshold'): 0,
        ('correct', 'kmer_length'): 0,
    }
    for (section, key), minimum in minimums.items():
        value = _lookup(config, section, key)
        if value is None:
            continue
        try:
            if isinstance(value, bool):
                raise ValueError
            number = int(value)
        except (TypeError, ValueError):
            errors.append(f"Invalid {section}.{key}: {value!r} (must be an integer)")
            continue
        if number < minimum:
            errors.append(f"Invalid {section}.{key}: {value} (must be >= {minimum})")

    timeout = _lookup(config, 'execution', 'stage_timeout')
    if timeout is not None:
        try:
            seconds = float(timeout)
            if not math.isfinite(seconds) or seconds <= 0:
                errors.append(f"Invalid execution.stage_timeout: {timeout} (must be a finite number > 0)")
        except (TypeError, ValueError):
            errors.append(f"Invalid execution.stage_timeout: {timeout!r} (must be a number)")

    logging_section = _lookup(config, 'output', 'logging')
    level = logging_section.get('level', 'INFO') if isinstance(logging_section, dict) else 'INFO'
    if str(level).upper() not in LOG_LEVELS:
        errors.append(f"Invalid output.logging.level: {level}")

    filename = _lookup(config, 'output', 'filename')
    if filename is not None and ('/' in str(filename) or not str(filename).strip()):
        errors.append(f"Invalid output.filename: {filename!r} (must be a bare file name)")

    return errors


def resolve_config(config: Dict[str, Any]) -> RunPlan:
    """
    Resolve a nested configuration into a RunPlan.

    Raises:
        ConfigurationError: Unknown keys, missing inputs or invalid values
    """
    return resolve(flatten_config(config))

# PECorrect v0.1.0
# Any usage is subject to this software's license.
