#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PECorrect v0.1.0

Exception hierarchy for the correction pipeline.

Configuration errors are raised before any stage runs. Stage errors describe
why a running pipeline stopped; the driver records them in its result and
only raises them on request (PipelineResult.raise_for_status).

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from pathlib import Path
from typing import Optional


class PipelineError(Exception):
    """Base class for all PECorrect errors."""
    pass


# ============================================================================
# Configuration errors (fatal, raised before the pipeline starts)
# ============================================================================

class ConfigurationError(PipelineError):
    """Raised when the run configuration cannot be resolved."""
    pass


class MissingInputError(ConfigurationError):
    """A required read file is absent, missing on disk, or unreadable."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class InvalidParameterError(ConfigurationError):
    """A provided value fails validation."""

    def __init__(self, field: str, value, expected: str):
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(
            f"Invalid value for '{field}': {value!r} (expected {expected})"
        )


class ConfigValidationError(ConfigurationError):
    """Raised when a configuration file is malformed."""
    pass


# ============================================================================
# Stage errors (fatal at pipeline level, one per failed run)
# ============================================================================

class StageError(PipelineError):
    """Base class for failures attributed to a pipeline stage."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(message)


class LaunchFailure(StageError):
    """The engine executable could not be started."""
    pass


class ToolFailure(StageError):
    """The engine ran and exited non-zero."""

    def __init__(self, stage: str, message: str, exit_code: int, stderr_tail: str = ""):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(stage, message)


class MissingStageOutputError(StageError):
    """An artifact a stage should have produced is not on disk."""

    def __init__(self, stage: str, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(stage, message)


class OutputDirectoryError(StageError):
    """The output directory or a file in it could not be created, moved or written."""

    def __init__(self, stage: str, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(stage, message)


class StageTimeout(StageError):
    """The engine exceeded the configured per-stage timeout."""
    pass


class PipelineCancelled(StageError):
    """The run was interrupted while a stage was executing."""
    pass

# PECorrect v0.1.0
# Any usage is subject to this software's license.
