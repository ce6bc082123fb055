"""
PECorrect Pipeline Driver.

Runs the three SGA stages of a RunPlan in order:

    NotStarted -> Running(preprocess) -> Running(index) -> Running(correct)
               -> Completed
    (any Running state may exit to Failed)

Key rules:
- Stages run strictly one at a time; each consumes its predecessor's file
- Before a stage starts, its declared inputs must exist on disk
- After a zero exit, the declared output must exist on disk
- The first failure halts the run; nothing is retried
- On success the corrected reads are moved to output_directory/output_filename
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum
import logging
import shutil

from ..core.errors import (
    LaunchFailure,
    MissingStageOutputError,
    OutputDirectoryError,
    PipelineCancelled,
    StageError,
    StageTimeout,
    ToolFailure,
)
from ..core.resolver import RunPlan
from ..core.runner import OutcomeKind, StageOutcome, run_stage
from ..core.stages import Stage, StageArtifacts, StageName, plan
from .manifest import RunManifest

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = 'pecorrect.log'

# Orchestrator-level exit codes
EXIT_SUCCESS = 0
EXIT_USAGE = 2
EXIT_MISSING_STAGE_OUTPUT = 3
EXIT_OUTPUT_ERROR = 74  # sysexits EX_IOERR
EXIT_TIMEOUT = 124
EXIT_LAUNCH_FAILURE = 127
EXIT_CANCELLED = 130

_ERRORS_BY_KIND = {
    OutcomeKind.TOOL_FAILURE: ToolFailure,
    OutcomeKind.LAUNCH_FAILURE: LaunchFailure,
    OutcomeKind.TIMEOUT: StageTimeout,
    OutcomeKind.CANCELLED: PipelineCancelled,
}

_EXIT_BY_KIND = {
    OutcomeKind.LAUNCH_FAILURE: EXIT_LAUNCH_FAILURE,
    OutcomeKind.TIMEOUT: EXIT_TIMEOUT,
    OutcomeKind.CANCELLED: EXIT_CANCELLED,
}


class DriverState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """
    Terminal outcome of a pipeline run.

    Attributes:
        succeeded: True iff every stage succeeded and the output was placed
        final_output_path: Corrected reads file (set iff succeeded)
        failed_stage: Stage that stopped the run (set iff not succeeded)
        diagnostic_message: Human-readable summary / failure explanation
        exit_code: Process exit code mirroring the outcome
        error_kind: Name of the StageError subclass for failures
        outcomes: StageOutcome of every stage that ran, in order
    """
    succeeded: bool
    final_output_path: Optional[Path] = None
    failed_stage: Optional[StageName] = None
    diagnostic_message: str = ""
    exit_code: int = EXIT_SUCCESS
    error_kind: Optional[str] = None
    outcomes: List[StageOutcome] = field(default_factory=list)

    def raise_for_status(self):
        """Raise the StageError matching a failed result; no-op on success."""
        if self.succeeded:
            return
        stage = self.failed_stage.value if self.failed_stage else "unknown"
        if self.error_kind == ToolFailure.__name__:
            last = self.outcomes[-1]
            raise ToolFailure(stage, self.diagnostic_message,
                              exit_code=last.exit_code, stderr_tail=last.stderr_tail)
        error_classes = {cls.__name__: cls for cls in
                         (LaunchFailure, StageTimeout, PipelineCancelled,
                          MissingStageOutputError, OutputDirectoryError)}
        raise error_classes.get(self.error_kind, StageError)(stage, self.diagnostic_message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'succeeded': self.succeeded,
            'final_output_path': str(self.final_output_path) if self.final_output_path else None,
            'failed_stage': self.failed_stage.value if self.failed_stage else None,
            'diagnostic_message': self.diagnostic_message,
            'exit_code': self.exit_code,
            'error_kind': self.error_kind,
        }


def setup_logging(output_dir: Path, level: str = 'INFO',
                  log_file: Optional[str] = DEFAULT_LOG_FILE):
    """
    Configure root logging with a stream handler and a log file in output_dir.

    Args:
        output_dir: Directory for the log file (created if needed)
        level: Logging level name
        log_file: Log file name (None = console only)
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(output_dir / log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


class PipelineDriver:
    """
    Sequences the SGA stages of one RunPlan.

    The runner is injectable so tests can substitute scripted outcomes for
    real engine invocations.
    """

    def __init__(self, run_plan: RunPlan,
                 runner: Callable[..., StageOutcome] = run_stage,
                 manifest: Optional[RunManifest] = None):
        """
        Initialize pipeline driver.

        Args:
            run_plan: Resolved run configuration
            runner: Callable executing one Stage (run_stage signature)
            manifest: Run manifest (default: one in the output directory)
        """
        self.run_plan = run_plan
        self.runner = runner
        self.manifest = manifest or RunManifest(run_plan.output_directory, plan=run_plan.to_dict())
        self.artifacts = StageArtifacts.for_plan(run_plan)
        self.logger = logging.getLogger(__name__)

        self.state = DriverState.NOT_STARTED
        self.current_stage: Optional[StageName] = None
        self.outcomes: List[StageOutcome] = []

    def execute(self) -> PipelineResult:
        """
        Run all stages and return the terminal result.

        Returns:
            PipelineResult; stage failures and output directory errors are
            reported here, not raised
        """
        if self.state != DriverState.NOT_STARTED:
            raise RuntimeError("PipelineDriver.execute() may only be called once")

        stages = plan(self.run_plan)
        self.state = DriverState.RUNNING
        self.current_stage = stages[0].name

        self.logger.info("=" * 60)
        self.logger.info("Starting SGA error-correction pipeline")
        self.logger.info("=" * 60)

        output_dir = self.run_plan.output_directory
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return self._fail_output(stages[0].name,
                                     f"Could not create output directory {output_dir}: {e}")

        for i, stage in enumerate(stages, start=1):
            self.current_stage = stage.name
            self.logger.info(f"STEP {i}/{len(stages)}: {stage.name.value.upper()}")

            missing = self._first_missing(stage.input_paths)
            if missing is not None:
                return self._fail_missing(stage, missing, "input")

            # Leftovers from an earlier run must not satisfy the output check
            for stale in self._outputs_of(stage):
                try:
                    stale.unlink(missing_ok=True)
                except OSError as e:
                    return self._fail_output(stage.name,
                                             f"Could not remove stale {stale}: {e}")

            outcome = self.runner(
                stage,
                debug=self.run_plan.debug_enabled,
                timeout=self.run_plan.stage_timeout,
            )
            self.outcomes.append(outcome)
            try:
                self.manifest.record(outcome, stage.command)
            except OSError as e:
                return self._fail_output(stage.name,
                                         f"Could not write run manifest {self.manifest.path}: {e}")

            if not outcome.success:
                return self._fail(
                    stage.name,
                    outcome.describe(),
                    _ERRORS_BY_KIND[outcome.kind].__name__,
                    self._exit_code_for(outcome),
                )

            if not stage.expected_output_path.exists():
                return self._fail_missing(stage, stage.expected_output_path, "output")

        try:
            final_path = self._place_output()
        except OSError as e:
            return self._fail_output(StageName.CORRECT,
                                     f"Could not move corrected reads to "
                                     f"{self.artifacts.final_output}: {e}")

        if not self.run_plan.keep_intermediates:
            self._remove_intermediates()

        result = PipelineResult(
            succeeded=True,
            final_output_path=final_path,
            diagnostic_message=f"Corrected reads written to {final_path}",
            exit_code=EXIT_SUCCESS,
            outcomes=list(self.outcomes),
        )
        try:
            self.manifest.finish(result)
        except OSError as e:
            return self._fail_output(StageName.CORRECT,
                                     f"Could not write run manifest {self.manifest.path}: {e}")

        self.state = DriverState.COMPLETED
        self.logger.info(f"✓ Pipeline complete: {final_path}")
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _first_missing(paths) -> Optional[Path]:
        for path in paths:
            if not Path(path).exists():
                return Path(path)
        return None

    def _outputs_of(self, stage: Stage) -> List[Path]:
        """Files a stage writes; the index is a .bwt/.sai pair."""
        outputs = [stage.expected_output_path]
        if stage.name == StageName.INDEX:
            outputs.append(self.artifacts.index_sai)
        return outputs

    @staticmethod
    def _exit_code_for(outcome: StageOutcome) -> int:
        if outcome.kind == OutcomeKind.TOOL_FAILURE:
            code = outcome.exit_code or 1
            # Signals show up as negative return codes
            return code if 0 < code < 256 else 1
        return _EXIT_BY_KIND[outcome.kind]

    def _fail_missing(self, stage: Stage, path: Path, role: str) -> PipelineResult:
        if role == "input":
            message = f"{stage.name.label} input not found: {path}"
        else:
            message = f"{stage.name.label} exited 0 but did not produce {path}"
        return self._fail(stage.name, message, MissingStageOutputError.__name__,
                          EXIT_MISSING_STAGE_OUTPUT)

    def _fail_output(self, stage_name: StageName, message: str) -> PipelineResult:
        return self._fail(stage_name, message, OutputDirectoryError.__name__, EXIT_OUTPUT_ERROR)

    def _fail(self, stage_name: StageName, message: str, error_kind: str,
              exit_code: int) -> PipelineResult:
        self.state = DriverState.FAILED
        self.logger.error(f"Pipeline failed at {stage_name.label}: {message}")
        result = PipelineResult(
            succeeded=False,
            failed_stage=stage_name,
            diagnostic_message=message,
            exit_code=exit_code,
            error_kind=error_kind,
            outcomes=list(self.outcomes),
        )
        try:
            self.manifest.finish(result)
        except OSError as e:
            # The run already failed; the result above is what gets reported
            self.logger.warning(f"Could not write run manifest {self.manifest.path}: {e}")
        return result

    def _place_output(self) -> Path:
        """Move the corrected reads to their final name."""
        source = self.artifacts.corrected_reads
        destination = self.artifacts.final_output
        if source != destination:
            shutil.move(str(source), str(destination))
        self.logger.info(f"Moved {source.name} -> {destination}")
        return destination

    def _remove_intermediates(self):
        for path in self.artifacts.intermediates():
            if not path.is_file():
                continue
            try:
                path.unlink()
                self.logger.debug(f"Removed intermediate: {path.name}")
            except OSError as e:
                # Corrected reads are already in place; a leftover is not a failure
                self.logger.warning(f"Could not remove intermediate {path}: {e}")


def execute(run_plan: RunPlan, runner: Callable[..., StageOutcome] = run_stage) -> PipelineResult:
    """Run the pipeline for run_plan with a fresh driver."""
    return PipelineDriver(run_plan, runner=runner).execute()
