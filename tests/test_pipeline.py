#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PECorrect v0.1.0

Tests for the pipeline driver.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
import os
from pathlib import Path

import pytest

from pecorrect.core.errors import (
    LaunchFailure,
    MissingStageOutputError,
    OutputDirectoryError,
    PipelineCancelled,
    ToolFailure,
)
from pecorrect.core.resolver import resolve
from pecorrect.core.runner import OutcomeKind, StageOutcome
from pecorrect.core.stages import StageName
from pecorrect.utils import pipeline as pipeline_module
from pecorrect.utils.manifest import RunManifest
from pecorrect.utils.pipeline import (
    EXIT_CANCELLED,
    EXIT_LAUNCH_FAILURE,
    EXIT_MISSING_STAGE_OUTPUT,
    EXIT_OUTPUT_ERROR,
    EXIT_TIMEOUT,
    DriverState,
    PipelineDriver,
    PipelineResult,
    execute,
    setup_logging,
)


class ScriptedRunner:
    """
    Runner stand-in: writes each stage's declared output and returns the
    scripted outcome kind for it (SUCCESS unless listed).
    """

    def __init__(self, kinds=None, exit_code=None):
        self.kinds = kinds or {}
        self.exit_code = exit_code
        self.calls = []

    def __call__(self, stage, debug=False, timeout=None):
        self.calls.append((stage.name, debug, timeout))
        kind = self.kinds.get(stage.name, OutcomeKind.SUCCESS)
        if kind == OutcomeKind.SUCCESS:
            stage.expected_output_path.write_text("@r\nACGT\n+\nIIII\n")
            return StageOutcome(stage=stage.name, kind=kind, exit_code=0)
        return StageOutcome(stage=stage.name, kind=kind, exit_code=self.exit_code,
                            stderr_tail="scripted", reason=f"scripted {kind.value}")


# ═══════════════════════════════════════════════════════════════════════
#  Real process execution (fake sga)
# ═══════════════════════════════════════════════════════════════════════

class TestSuccessfulRun:
    """All three stages succeed."""

    def test_final_output_in_place(self, make_plan, fake_sga, sga_calls):
        script = fake_sga()
        run_plan = make_plan(tool_executable_path=str(script))

        result = PipelineDriver(run_plan).execute()

        assert result.succeeded
        assert result.exit_code == 0
        assert result.failed_stage is None
        assert result.final_output_path == run_plan.output_directory / "_sga_error_corrected.fastq"
        assert result.final_output_path.exists()
        assert sga_calls(script) == ["preprocess", "index", "correct"]

    def test_corrected_reads_are_moved(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga()))
        PipelineDriver(run_plan).execute()

        assert not (run_plan.output_directory / "a.pp.ec.fastq").exists()

    def test_intermediates_kept_by_default(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga()))
        PipelineDriver(run_plan).execute()

        for name in ("a.pp.fastq", "a.pp.bwt", "a.pp.sai"):
            assert (run_plan.output_directory / name).exists(), name

    def test_cleanup_removes_intermediates(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga()), keep_intermediates=False)
        result = PipelineDriver(run_plan).execute()

        assert result.succeeded
        for name in ("a.pp.fastq", "a.pp.bwt", "a.pp.sai"):
            assert not (run_plan.output_directory / name).exists(), name
        assert result.final_output_path.exists()

    def test_output_named_like_corrected_reads(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga()),
                             output_filename="a.pp.ec.fastq", keep_intermediates=False)
        result = PipelineDriver(run_plan).execute()

        assert result.succeeded
        assert (run_plan.output_directory / "a.pp.ec.fastq").exists()

    def test_state_and_outcomes(self, make_plan, fake_sga):
        driver = PipelineDriver(make_plan(tool_executable_path=str(fake_sga())))
        assert driver.state == DriverState.NOT_STARTED

        result = driver.execute()

        assert driver.state == DriverState.COMPLETED
        assert [o.stage for o in result.outcomes] == [
            StageName.PREPROCESS, StageName.INDEX, StageName.CORRECT,
        ]
        assert all(o.success for o in result.outcomes)

    def test_output_directory_created(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga()))
        assert not run_plan.output_directory.exists()

        assert PipelineDriver(run_plan).execute().succeeded
        assert run_plan.output_directory.is_dir()

    def test_output_to_current_directory(self, read_pair, fake_sga, sga_calls,
                                         temp_output_dir, monkeypatch):
        """No output directory given: everything lands in the cwd."""
        work = temp_output_dir / "work"
        work.mkdir()
        monkeypatch.chdir(work)
        forward, reverse = read_pair
        script = fake_sga()

        run_plan = resolve({
            'forward_reads_path': str(forward),
            'reverse_reads_path': str(reverse),
            'tool_executable_path': str(script),
        })
        result = execute(run_plan)

        assert result.succeeded
        assert result.final_output_path == Path(os.getcwd()) / "_sga_error_corrected.fastq"
        assert (work / "_sga_error_corrected.fastq").exists()
        assert sga_calls(script) == ["preprocess", "index", "correct"]


class TestFailedRun:
    """The first failing stage halts the run."""

    def test_preprocess_tool_failure(self, make_plan, fake_sga, sga_calls):
        script = fake_sga(fail="preprocess", exit_code=3)
        run_plan = make_plan(tool_executable_path=str(script))

        result = PipelineDriver(run_plan).execute()

        assert not result.succeeded
        assert result.failed_stage == StageName.PREPROCESS
        assert result.exit_code == 3
        assert result.error_kind == "ToolFailure"
        assert "simulated failure" in result.diagnostic_message
        assert result.final_output_path is None
        assert sga_calls(script) == ["preprocess"]
        assert not run_plan.final_output_path.exists()

    def test_index_failure_exit_code_mirrored(self, make_plan, fake_sga, sga_calls):
        script = fake_sga(fail="index", exit_code=7)
        result = PipelineDriver(make_plan(tool_executable_path=str(script))).execute()

        assert result.failed_stage == StageName.INDEX
        assert result.exit_code == 7
        assert sga_calls(script) == ["preprocess", "index"]

    def test_correct_failure(self, make_plan, fake_sga, sga_calls):
        script = fake_sga(fail="correct", exit_code=1)
        result = PipelineDriver(make_plan(tool_executable_path=str(script))).execute()

        assert result.failed_stage == StageName.CORRECT
        assert sga_calls(script) == ["preprocess", "index", "correct"]

    def test_missing_engine_is_launch_failure(self, make_plan, temp_output_dir):
        run_plan = make_plan(tool_executable_path=str(temp_output_dir / "nowhere" / "sga"))
        result = PipelineDriver(run_plan).execute()

        assert result.failed_stage == StageName.PREPROCESS
        assert result.error_kind == "LaunchFailure"
        assert result.exit_code == EXIT_LAUNCH_FAILURE
        assert "could not launch" in result.diagnostic_message

    def test_index_without_output(self, make_plan, fake_sga, sga_calls):
        script = fake_sga(skip="index")
        result = PipelineDriver(make_plan(tool_executable_path=str(script))).execute()

        assert result.failed_stage == StageName.INDEX
        assert result.error_kind == "MissingStageOutputError"
        assert result.exit_code == EXIT_MISSING_STAGE_OUTPUT
        assert "did not produce" in result.diagnostic_message
        assert "a.pp.bwt" in result.diagnostic_message
        assert sga_calls(script) == ["preprocess", "index"]

    def test_preprocess_without_output_stops_before_index(self, make_plan, fake_sga, sga_calls):
        script = fake_sga(skip="preprocess")
        result = PipelineDriver(make_plan(tool_executable_path=str(script))).execute()

        assert result.failed_stage == StageName.PREPROCESS
        assert result.exit_code == EXIT_MISSING_STAGE_OUTPUT
        assert sga_calls(script) == ["preprocess"]

    def test_failure_keeps_intermediates(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga(fail="correct")),
                             keep_intermediates=False)
        PipelineDriver(run_plan).execute()

        assert (run_plan.output_directory / "a.pp.fastq").exists()

    def test_failed_state(self, make_plan, fake_sga):
        driver = PipelineDriver(make_plan(tool_executable_path=str(fake_sga(fail="index"))))
        driver.execute()

        assert driver.state == DriverState.FAILED
        assert driver.current_stage == StageName.INDEX


# ═══════════════════════════════════════════════════════════════════════
#  Injected runner
# ═══════════════════════════════════════════════════════════════════════

class TestInjectedRunner:
    """The driver only talks to the runner callable."""

    def test_success_without_engine(self, make_plan):
        runner = ScriptedRunner()
        result = PipelineDriver(make_plan(), runner=runner).execute()

        assert result.succeeded
        assert [c[0] for c in runner.calls] == [StageName.PREPROCESS, StageName.INDEX,
                                                 StageName.CORRECT]

    def test_debug_and_timeout_forwarded(self, make_plan):
        runner = ScriptedRunner()
        PipelineDriver(make_plan(debug_enabled=True, stage_timeout=30), runner=runner).execute()

        assert all(debug is True and timeout == 30.0 for _, debug, timeout in runner.calls)

    @pytest.mark.parametrize("kind,exit_code,error_kind", [
        (OutcomeKind.TIMEOUT, EXIT_TIMEOUT, "StageTimeout"),
        (OutcomeKind.CANCELLED, EXIT_CANCELLED, "PipelineCancelled"),
        (OutcomeKind.LAUNCH_FAILURE, EXIT_LAUNCH_FAILURE, "LaunchFailure"),
    ])
    def test_outcome_kinds_map_to_exit_codes(self, make_plan, kind, exit_code, error_kind):
        runner = ScriptedRunner(kinds={StageName.INDEX: kind})
        result = PipelineDriver(make_plan(), runner=runner).execute()

        assert result.failed_stage == StageName.INDEX
        assert result.exit_code == exit_code
        assert result.error_kind == error_kind
        assert len(runner.calls) == 2

    def test_signal_exit_clamped(self, make_plan):
        runner = ScriptedRunner(kinds={StageName.CORRECT: OutcomeKind.TOOL_FAILURE}, exit_code=-9)
        result = PipelineDriver(make_plan(), runner=runner).execute()

        assert result.exit_code == 1

    def test_missing_read_file_detected_before_launch(self, make_plan, read_pair):
        run_plan = make_plan()
        read_pair[1].unlink()
        runner = ScriptedRunner()

        result = PipelineDriver(run_plan, runner=runner).execute()

        assert runner.calls == []
        assert result.failed_stage == StageName.PREPROCESS
        assert result.exit_code == EXIT_MISSING_STAGE_OUTPUT
        assert "input not found" in result.diagnostic_message

    def test_execute_only_once(self, make_plan):
        driver = PipelineDriver(make_plan(), runner=ScriptedRunner())
        driver.execute()
        with pytest.raises(RuntimeError):
            driver.execute()

    def test_stage_logging(self, make_plan, caplog):
        with caplog.at_level(logging.INFO, logger="pecorrect.utils.pipeline"):
            PipelineDriver(make_plan(), runner=ScriptedRunner()).execute()

        assert "STEP 1/3: PREPROCESS" in caplog.text
        assert "STEP 3/3: CORRECT" in caplog.text


class SilentRunner:
    """Runner stand-in reporting success without writing anything."""

    def __init__(self):
        self.calls = []

    def __call__(self, stage, debug=False, timeout=None):
        self.calls.append(stage.name)
        return StageOutcome(stage=stage.name, kind=OutcomeKind.SUCCESS, exit_code=0)


# ═══════════════════════════════════════════════════════════════════════
#  Leftovers from earlier runs
# ═══════════════════════════════════════════════════════════════════════

class TestStaleArtifacts:
    """Files from a previous run in the same directory never count as output."""

    def _leave_previous_run(self, run_plan):
        run_plan.output_directory.mkdir(parents=True)
        for name in ("a.pp.fastq", "a.pp.bwt", "a.pp.sai", "a.pp.ec.fastq"):
            (run_plan.output_directory / name).write_text("stale from previous run")

    def test_silent_stage_fails_despite_old_output(self, make_plan):
        run_plan = make_plan()
        self._leave_previous_run(run_plan)
        runner = SilentRunner()

        result = PipelineDriver(run_plan, runner=runner).execute()

        assert not result.succeeded
        assert result.failed_stage == StageName.PREPROCESS
        assert result.error_kind == "MissingStageOutputError"
        assert result.exit_code == EXIT_MISSING_STAGE_OUTPUT
        assert runner.calls == [StageName.PREPROCESS]
        assert not run_plan.final_output_path.exists()

    def test_old_index_pair_removed_before_index(self, make_plan):
        run_plan = make_plan()
        self._leave_previous_run(run_plan)

        result = PipelineDriver(run_plan, runner=ScriptedRunner()).execute()

        out = run_plan.output_directory
        assert result.succeeded
        assert not (out / "a.pp.sai").exists()
        assert (out / "a.pp.bwt").read_text() != "stale from previous run"
        assert result.final_output_path.read_text() != "stale from previous run"

    def test_rerun_with_real_engine(self, make_plan, fake_sga):
        run_plan = make_plan(tool_executable_path=str(fake_sga()))
        self._leave_previous_run(run_plan)

        result = PipelineDriver(run_plan).execute()

        assert result.succeeded
        assert result.final_output_path.read_text().startswith("@r1")


# ═══════════════════════════════════════════════════════════════════════
#  Output directory errors
# ═══════════════════════════════════════════════════════════════════════

class TestOutputDirectoryErrors:
    """Filesystem errors end the run with a failed result, not an exception."""

    def test_output_directory_is_a_file(self, make_plan, temp_output_dir):
        blocker = temp_output_dir / "occupied"
        blocker.write_text("not a directory")
        runner = ScriptedRunner()
        driver = PipelineDriver(make_plan(output_directory=str(blocker)), runner=runner)

        result = driver.execute()

        assert not result.succeeded
        assert result.failed_stage == StageName.PREPROCESS
        assert result.error_kind == "OutputDirectoryError"
        assert result.exit_code == EXIT_OUTPUT_ERROR
        assert str(blocker) in result.diagnostic_message
        assert driver.state == DriverState.FAILED
        assert runner.calls == []
        with pytest.raises(OutputDirectoryError):
            result.raise_for_status()

    def test_failed_move(self, make_plan, monkeypatch):
        def refuse_move(source, destination):
            raise PermissionError(13, "Permission denied", destination)

        monkeypatch.setattr(pipeline_module.shutil, "move", refuse_move)
        driver = PipelineDriver(make_plan(), runner=ScriptedRunner())

        result = driver.execute()

        assert result.failed_stage == StageName.CORRECT
        assert result.error_kind == "OutputDirectoryError"
        assert result.exit_code == EXIT_OUTPUT_ERROR
        assert "Could not move corrected reads" in result.diagnostic_message
        assert driver.state == DriverState.FAILED

    def test_unwritable_manifest(self, make_plan, temp_output_dir):
        blocker = temp_output_dir / "occupied"
        blocker.write_text("not a directory")
        manifest = RunManifest(blocker / "nested")
        driver = PipelineDriver(make_plan(), runner=ScriptedRunner(), manifest=manifest)

        result = driver.execute()

        assert result.failed_stage == StageName.PREPROCESS
        assert result.error_kind == "OutputDirectoryError"
        assert "run manifest" in result.diagnostic_message
        assert driver.state == DriverState.FAILED


# ═══════════════════════════════════════════════════════════════════════
#  Result and manifest
# ═══════════════════════════════════════════════════════════════════════

class TestPipelineResult:
    """raise_for_status maps failures back onto the error hierarchy."""

    def test_success_does_not_raise(self):
        PipelineResult(succeeded=True).raise_for_status()

    def test_tool_failure_raised(self, make_plan, fake_sga):
        result = PipelineDriver(make_plan(tool_executable_path=str(fake_sga(fail="index",
                                                                            exit_code=5)))).execute()
        with pytest.raises(ToolFailure) as exc:
            result.raise_for_status()
        assert exc.value.exit_code == 5
        assert exc.value.stage == "index"
        assert "simulated failure" in exc.value.stderr_tail

    @pytest.mark.parametrize("kind,error", [
        (OutcomeKind.LAUNCH_FAILURE, LaunchFailure),
        (OutcomeKind.CANCELLED, PipelineCancelled),
    ])
    def test_other_kinds_raised(self, make_plan, kind, error):
        runner = ScriptedRunner(kinds={StageName.PREPROCESS: kind})
        result = PipelineDriver(make_plan(), runner=runner).execute()
        with pytest.raises(error):
            result.raise_for_status()

    def test_missing_output_raised(self, make_plan, fake_sga):
        result = PipelineDriver(make_plan(tool_executable_path=str(fake_sga(skip="correct")))).execute()
        with pytest.raises(MissingStageOutputError):
            result.raise_for_status()

    def test_to_dict(self):
        data = PipelineResult(succeeded=False, failed_stage=StageName.INDEX,
                              diagnostic_message="boom", exit_code=4,
                              error_kind="ToolFailure").to_dict()
        assert data['failed_stage'] == 'index'
        assert data['final_output_path'] is None
        assert data['exit_code'] == 4


class TestRunManifest:
    """Every run leaves a JSON manifest in the output directory."""

    def test_manifest_after_success(self, make_plan, fake_sga):
        script = fake_sga()
        run_plan = make_plan(tool_executable_path=str(script))
        driver = PipelineDriver(run_plan)
        driver.execute()

        data = RunManifest.load(driver.manifest.path)
        assert [s['stage'] for s in data['stages']] == ['preprocess', 'index', 'correct']
        assert data['stages'][0]['command'][0] == str(script)
        assert data['result']['succeeded'] is True
        assert data['plan']['thread_count'] == 1
        assert data['finished'] is not None

    def test_manifest_after_failure(self, make_plan, fake_sga):
        driver = PipelineDriver(make_plan(tool_executable_path=str(fake_sga(fail="index"))))
        driver.execute()

        data = RunManifest.load(driver.manifest.path)
        assert [s['kind'] for s in data['stages']] == ['success', 'tool_failure']
        assert data['result']['failed_stage'] == 'index'

    def test_custom_manifest(self, make_plan, temp_output_dir):
        manifest = RunManifest(temp_output_dir / "elsewhere", filename="run.json")
        PipelineDriver(make_plan(), runner=ScriptedRunner(), manifest=manifest).execute()

        assert (temp_output_dir / "elsewhere" / "run.json").exists()
        assert len(manifest.stages) == 3


class TestSetupLogging:
    """Log file goes to the output directory."""

    def test_log_file_created(self, temp_output_dir):
        setup_logging(temp_output_dir / "logs", level='DEBUG')
        logging.getLogger("pecorrect.test").info("hello")

        log_path = temp_output_dir / "logs" / "pecorrect.log"
        assert log_path.exists()
        assert "hello" in log_path.read_text()

        for handler in logging.getLogger().handlers[:]:
            handler.close()
            logging.getLogger().removeHandler(handler)

# PECorrect v0.1.0
# Any usage is subject to this software's license.
