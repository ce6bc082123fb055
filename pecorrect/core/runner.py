#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PECorrect v0.1.0

External process runner: executes one Stage and classifies the outcome.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Deque, Dict, Optional

from .stages import Stage, StageName

logger = logging.getLogger(__name__)

DEFAULT_STDERR_TAIL_LINES = 20
TERMINATE_GRACE_SEC = 5.0


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TOOL_FAILURE = "tool_failure"
    LAUNCH_FAILURE = "launch_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class StageOutcome:
    """
    Result of running one stage.

    Attributes:
        stage: Stage that ran
        kind: Classification of the outcome
        exit_code: Process exit status (None if it never started or was killed)
        stderr_tail: Last lines of standard error
        reason: Human-readable explanation for non-success outcomes
        duration_sec: Wall time spent in the stage
    """
    stage: StageName
    kind: OutcomeKind
    exit_code: Optional[int] = None
    stderr_tail: str = ""
    reason: str = ""
    duration_sec: float = 0.0

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    def describe(self) -> str:
        """One-paragraph diagnostic for this outcome."""
        label = self.stage.label
        if self.kind == OutcomeKind.SUCCESS:
            return f"{label} completed in {self.duration_sec:.1f}s"
        if self.kind == OutcomeKind.TOOL_FAILURE:
            message = f"{label} failed with exit code {self.exit_code}"
        else:
            message = f"{label} failed: {self.reason}"
        if self.stderr_tail:
            message += f"\n--- stderr (tail) ---\n{self.stderr_tail}"
        return message

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage.value,
            'kind': self.kind.value,
            'exit_code': self.exit_code,
            'stderr_tail': self.stderr_tail,
            'reason': self.reason,
            'duration_sec': round(self.duration_sec, 3),
        }


def _drain(stream: BinaryIO, stage: Stage, channel: str, debug: bool,
           tail: Optional[Deque[str]] = None):
    """
    Read a pipe to EOF, keeping a tail and optionally logging each line.

    Lines are decoded here with replacement so arbitrary engine output never
    stops the reader before EOF.
    """
    try:
        for raw in iter(stream.readline, b''):
            text = raw.decode('utf-8', errors='replace').rstrip('\n\r')
            if tail is not None:
                tail.append(text)
            if debug:
                logger.debug(f"[{stage.name.value}:{channel}] {text}")
    finally:
        stream.close()


def _stop(proc: subprocess.Popen):
    """Terminate a running process, killing it if it ignores SIGTERM."""
    proc.terminate()
    try:
        proc.wait(timeout=TERMINATE_GRACE_SEC)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def run_stage(
    stage: Stage,
    debug: bool = False,
    timeout: Optional[float] = None,
    stderr_tail_lines: int = DEFAULT_STDERR_TAIL_LINES,
) -> StageOutcome:
    """
    Run one stage synchronously.

    Args:
        stage: Stage to execute
        debug: Log every stdout/stderr line of the engine at DEBUG level
        timeout: Seconds to wait before killing the engine (None = no limit)
        stderr_tail_lines: Number of trailing stderr lines kept for diagnostics

    Returns:
        StageOutcome classifying the run. Launch errors, non-zero exits,
        timeouts and Ctrl-C are all reported, never raised.
    """
    logger.info(f"Running {stage.name.label}: {stage.command_line()}")
    started = time.monotonic()

    try:
        proc = subprocess.Popen(
            stage.command,
            cwd=str(stage.working_directory),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        # FileNotFoundError, PermissionError and friends
        reason = f"could not launch '{stage.executable}': {e.strerror or e}"
        logger.error(f"{stage.name.label}: {reason}")
        return StageOutcome(
            stage=stage.name,
            kind=OutcomeKind.LAUNCH_FAILURE,
            reason=reason,
            duration_sec=time.monotonic() - started,
        )

    tail: Deque[str] = deque(maxlen=max(stderr_tail_lines, 1))
    readers = [
        threading.Thread(target=_drain, args=(proc.stdout, stage, 'stdout', debug), daemon=True),
        threading.Thread(target=_drain, args=(proc.stderr, stage, 'stderr', debug, tail), daemon=True),
    ]
    for reader in readers:
        reader.start()

    kind = None
    reason = ""
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.error(f"{stage.name.label} exceeded {timeout:g}s timeout, killing engine")
        proc.kill()
        proc.wait()
        kind = OutcomeKind.TIMEOUT
        reason = f"timed out after {timeout:g}s"
    except KeyboardInterrupt:
        logger.warning(f"Interrupted during {stage.name.label}, terminating engine")
        _stop(proc)
        kind = OutcomeKind.CANCELLED
        reason = "cancelled by user"

    for reader in readers:
        reader.join(timeout=5.0)

    duration = time.monotonic() - started
    stderr_tail = "\n".join(tail)

    if kind is not None:
        return StageOutcome(
            stage=stage.name,
            kind=kind,
            stderr_tail=stderr_tail,
            reason=reason,
            duration_sec=duration,
        )

    if proc.returncode != 0:
        logger.error(f"{stage.name.label} exited with code {proc.returncode}")
        return StageOutcome(
            stage=stage.name,
            kind=OutcomeKind.TOOL_FAILURE,
            exit_code=proc.returncode,
            stderr_tail=stderr_tail,
            reason=f"exit code {proc.returncode}",
            duration_sec=duration,
        )

    logger.info(f"✓ {stage.name.label} finished in {duration:.1f}s")
    return StageOutcome(
        stage=stage.name,
        kind=OutcomeKind.SUCCESS,
        exit_code=0,
        stderr_tail=stderr_tail,
        duration_sec=duration,
    )

# PECorrect v0.1.0
# Any usage is subject to this software's license.
