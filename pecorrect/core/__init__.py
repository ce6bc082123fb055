"""
PECorrect v0.1.0

Core orchestration: parameter resolution, stage sequencing, process running.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from .errors import (
    PipelineError,
    ConfigurationError,
    MissingInputError,
    InvalidParameterError,
    ConfigValidationError,
    StageError,
    LaunchFailure,
    ToolFailure,
    MissingStageOutputError,
    OutputDirectoryError,
    StageTimeout,
    PipelineCancelled,
)
from .resolver import RunPlan, resolve, DEFAULTS, INDEXING_ALGORITHMS
from .stages import Stage, StageName, StageArtifacts, plan, describe_plan
from .runner import OutcomeKind, StageOutcome, run_stage

__all__ = [
    # Errors
    "PipelineError",
    "ConfigurationError",
    "MissingInputError",
    "InvalidParameterError",
    "ConfigValidationError",
    "StageError",
    "LaunchFailure",
    "ToolFailure",
    "MissingStageOutputError",
    "OutputDirectoryError",
    "StageTimeout",
    "PipelineCancelled",
    # Parameter resolution
    "RunPlan",
    "resolve",
    "DEFAULTS",
    "INDEXING_ALGORITHMS",
    # Stage sequencing
    "Stage",
    "StageName",
    "StageArtifacts",
    "plan",
    "describe_plan",
    # Process runner
    "OutcomeKind",
    "StageOutcome",
    "run_stage",
]

# PECorrect v0.1.0
# Any usage is subject to this software's license.
