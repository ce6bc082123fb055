#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PECorrect v0.1.0

Parameter resolution: raw user configuration -> immutable RunPlan.

Every knob of a correction run is resolved here, once. Fields the user did
not supply receive their documented defaults, supplied fields are type and
range checked, and the two read files are checked for existence and
readability. Nothing downstream of resolve() re-reads user input.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import math
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import InvalidParameterError, MissingInputError
from ..utils.tools import find_sga


INDEXING_ALGORITHMS = ('ropebwt', 'sais')

DEFAULT_OUTPUT_FILENAME = '_sga_error_corrected.fastq'

# Defaults for every optional RunPlan field. tool_executable_path and
# output_directory are environment dependent and resolved at call time.
DEFAULTS: Dict[str, Any] = {
    'min_retained_length': 51,        # Discard reads shorter than this after trimming
    'quality_trim_threshold': 3,      # Low-quality end trimming parameter
    'quality_filter_threshold': 3,    # Max low-quality bases before a read is dropped
    'indexing_algorithm': 'sais',
    'thread_count': 1,
    'disk_batch_size': 28000000,      # Reads per batch for disk-based index construction
    'kmer_correction_threshold': 5,   # Correct k-mers seen fewer than this many times
    'kmer_length': 41,                # ~60% of read length is the usual guidance
    'output_filename': DEFAULT_OUTPUT_FILENAME,
    'debug_enabled': False,
    'stage_timeout': None,
    'keep_intermediates': True,
}

# Integer fields and their lower bounds
_INT_FIELDS = {
    'min_retained_length': 0,
    'quality_trim_threshold': 0,
    'quality_filter_threshold': 0,
    'thread_count': 1,
    'disk_batch_size': 1,
    'kmer_correction_threshold': 0,
    'kmer_length': 0,
}

_BOOL_FIELDS = ('debug_enabled', 'keep_intermediates')

_TRUE_STRINGS = ('1', 'true', 'yes', 'on')
_FALSE_STRINGS = ('0', 'false', 'no', 'off')

KNOWN_FIELDS = frozenset(
    ['forward_reads_path', 'reverse_reads_path', 'tool_executable_path', 'output_directory']
    + list(DEFAULTS)
)


@dataclass(frozen=True)
class RunPlan:
    """
    Fully-resolved configuration for one pipeline execution.

    Attributes:
        forward_reads_path: Forward mate FASTQ (existing, readable)
        reverse_reads_path: Reverse mate FASTQ (existing, readable)
        tool_executable_path: SGA executable
        min_retained_length: Minimum read length kept by preprocessing
        quality_trim_threshold: Quality trimming parameter
        quality_filter_threshold: Low-quality base count filter
        indexing_algorithm: 'ropebwt' or 'sais'
        thread_count: Threads passed through to the engine
        disk_batch_size: Reads per batch for disk-based SA-IS indexing
        kmer_correction_threshold: Correct k-mers seen fewer times than this
        kmer_length: k-mer size used for correction
        output_directory: Absolute directory for outputs and intermediates
        output_filename: Name of the corrected reads file
        debug_enabled: Stream engine output to the log
        stage_timeout: Per-stage timeout in seconds (None = wait forever)
        keep_intermediates: Leave per-stage artifacts on disk after success
    """
    forward_reads_path: Path
    reverse_reads_path: Path
    tool_executable_path: str
    output_directory: Path
    min_retained_length: int = 51
    quality_trim_threshold: int = 3
    quality_filter_threshold: int = 3
    indexing_algorithm: str = 'sais'
    thread_count: int = 1
    disk_batch_size: int = 28000000
    kmer_correction_threshold: int = 5
    kmer_length: int = 41
    output_filename: str = DEFAULT_OUTPUT_FILENAME
    debug_enabled: bool = False
    stage_timeout: Optional[float] = None
    keep_intermediates: bool = True

    @property
    def final_output_path(self) -> Path:
        return self.output_directory / self.output_filename

    @property
    def uses_disk_indexing(self) -> bool:
        """Disk-batched construction applies to the SA-IS builder only."""
        return self.indexing_algorithm == 'sais'

    def to_dict(self) -> Dict[str, Any]:
        """Convert plan to a JSON-friendly dictionary."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
        return data


def resolve(
    raw_config: Mapping[str, Any],
    tool_locator: Callable[[], str] = find_sga,
) -> RunPlan:
    """
    Resolve raw configuration into a validated RunPlan.

    Args:
        raw_config: Flat mapping of RunPlan field names to raw values.
                    Only the two read paths are required; None counts as
                    "not provided".
        tool_locator: Supplies the engine path when none is configured

    Returns:
        Immutable RunPlan

    Raises:
        MissingInputError: A read file is absent, missing or unreadable
        InvalidParameterError: A provided value fails validation
    """
    unknown = sorted(set(raw_config) - KNOWN_FIELDS)
    if unknown:
        raise InvalidParameterError(
            unknown[0], raw_config[unknown[0]],
            f"one of the known fields: {', '.join(sorted(KNOWN_FIELDS))}"
        )

    def provided(field: str) -> bool:
        return raw_config.get(field) is not None

    forward = _resolve_reads(raw_config.get('forward_reads_path'), 'forward_reads_path')
    reverse = _resolve_reads(raw_config.get('reverse_reads_path'), 'reverse_reads_path')

    if forward.resolve() == reverse.resolve():
        raise InvalidParameterError(
            'reverse_reads_path', str(reverse),
            "a file distinct from forward_reads_path"
        )

    values: Dict[str, Any] = {}

    for field, minimum in _INT_FIELDS.items():
        raw = raw_config[field] if provided(field) else DEFAULTS[field]
        values[field] = _parse_int(field, raw, minimum)

    for field in _BOOL_FIELDS:
        raw = raw_config[field] if provided(field) else DEFAULTS[field]
        values[field] = _parse_bool(field, raw)

    algorithm = raw_config['indexing_algorithm'] if provided('indexing_algorithm') \
        else DEFAULTS['indexing_algorithm']
    values['indexing_algorithm'] = _parse_algorithm(algorithm)

    values['stage_timeout'] = _parse_timeout(raw_config.get('stage_timeout'))

    filename = raw_config['output_filename'] if provided('output_filename') \
        else DEFAULTS['output_filename']
    values['output_filename'] = _parse_filename(filename)

    tool = raw_config['tool_executable_path'] if provided('tool_executable_path') \
        else tool_locator()
    tool = str(tool).strip()
    if not tool:
        raise InvalidParameterError('tool_executable_path', tool, "a non-empty path")
    values['tool_executable_path'] = tool

    output_directory = raw_config.get('output_directory') or os.getcwd()
    values['output_directory'] = Path(os.path.abspath(os.path.expanduser(str(output_directory))))

    return RunPlan(
        forward_reads_path=forward,
        reverse_reads_path=reverse,
        **values
    )


# ============================================================================
# Field parsers
# ============================================================================

def _resolve_reads(value: Any, field: str) -> Path:
    """Normalize a read file path and check it can be read."""
    if value is None or str(value).strip() == '':
        raise MissingInputError(field, f"Required input '{field}' was not provided")

    path = Path(os.path.abspath(os.path.expanduser(str(value))))
    if not path.exists():
        raise MissingInputError(field, f"Reads file not found: {path}")
    if not path.is_file():
        raise MissingInputError(field, f"Reads path is not a regular file: {path}")
    if not os.access(path, os.R_OK):
        raise MissingInputError(field, f"Reads file is not readable: {path}")
    return path


def _parse_int(field: str, value: Any, minimum: int) -> int:
    """Parse an integer field, rejecting bools, floats and out-of-range values."""
    expected = f"an integer >= {minimum}"

    if isinstance(value, bool):
        raise InvalidParameterError(field, value, expected)

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            raise InvalidParameterError(field, value, expected)
    else:
        raise InvalidParameterError(field, value, expected)

    if parsed < minimum:
        raise InvalidParameterError(field, value, expected)
    return parsed


def _parse_bool(field: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise InvalidParameterError(field, value, "a boolean (true/false)")


def _parse_algorithm(value: Any) -> str:
    token = str(value).strip().lower()
    if token not in INDEXING_ALGORITHMS:
        raise InvalidParameterError(
            'indexing_algorithm', value, f"one of {', '.join(INDEXING_ALGORITHMS)}"
        )
    return token


def _parse_timeout(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidParameterError('stage_timeout', value, "a positive number of seconds")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError('stage_timeout', value, "a positive number of seconds")
    if not math.isfinite(seconds) or seconds <= 0:
        raise InvalidParameterError('stage_timeout', value, "a positive number of seconds")
    return seconds


def _parse_filename(value: Any) -> str:
    name = str(value).strip()
    if not name or name in ('.', '..') or '/' in name or os.sep in name:
        raise InvalidParameterError('output_filename', value, "a bare file name")
    return name

# PECorrect v0.1.0
# Any usage is subject to this software's license.
