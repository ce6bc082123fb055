#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PECorrect v0.1.0

Stage sequencing for the SGA correction pipeline.

The pipeline is a straight line, not a DAG: every stage consumes the
artifact of the one before it.

    PREPROCESS:  forward + reverse  ->  <prefix>.pp.fastq
    INDEX:       <prefix>.pp.fastq  ->  <prefix>.pp.bwt / .sai
    CORRECT:     <prefix>.pp.fastq + index  ->  <prefix>.pp.ec.fastq

SGA names its index after the base name of the reads file and writes it to
the current directory, so every stage runs with the output directory as its
working directory. StageArtifacts is the single place that naming is spelled
out; the driver checks stage inputs and outputs against it.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import glob
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Sequence, Tuple

from .resolver import RunPlan


class StageName(str, Enum):
    """Pipeline stages, in execution order."""
    PREPROCESS = "preprocess"
    INDEX = "index"
    CORRECT = "correct"

    @property
    def label(self) -> str:
        return self.value.capitalize()


STAGE_ORDER = (StageName.PREPROCESS, StageName.INDEX, StageName.CORRECT)

_READ_EXTENSIONS = ('.fastq', '.fq', '.fasta', '.fa', '.fna')
_COMPRESSION_EXTENSIONS = ('.gz', '.bz2')
_SEPARATORS = '_.-'


@dataclass(frozen=True)
class Stage:
    """
    One planned engine invocation.

    Attributes:
        name: Which pipeline stage this is
        executable: Engine executable
        arguments: Sub-command and flags, in order
        input_paths: Files that must exist before the stage starts
        expected_output_path: File the stage must produce
        working_directory: Directory the engine runs in
    """
    name: StageName
    executable: str
    arguments: Tuple[str, ...]
    input_paths: Tuple[Path, ...]
    expected_output_path: Path
    working_directory: Path

    @property
    def command(self) -> List[str]:
        return [self.executable, *self.arguments]

    def command_line(self) -> str:
        """Shell-quoted command line, for logs and dry runs."""
        return " ".join(shlex.quote(token) for token in self.command)


@dataclass(frozen=True)
class StageArtifacts:
    """Paths of every file the pipeline reads or writes for one read set."""
    prefix: str
    working_directory: Path
    preprocessed_reads: Path
    index_bwt: Path
    index_sai: Path
    corrected_reads: Path
    final_output: Path

    @classmethod
    def for_plan(cls, run_plan: RunPlan) -> "StageArtifacts":
        prefix = read_set_prefix(run_plan.forward_reads_path, run_plan.reverse_reads_path)
        workdir = run_plan.output_directory
        pp_base = f"{prefix}.pp"
        return cls(
            prefix=prefix,
            working_directory=workdir,
            preprocessed_reads=workdir / f"{pp_base}.fastq",
            index_bwt=workdir / f"{pp_base}.bwt",
            index_sai=workdir / f"{pp_base}.sai",
            corrected_reads=workdir / f"{pp_base}.ec.fastq",
            final_output=run_plan.final_output_path,
        )

    @property
    def index_prefix(self) -> str:
        """Base name SGA uses to locate the index of the preprocessed reads."""
        return self.preprocessed_reads.name[:-len('.fastq')]

    def intermediates(self) -> List[Path]:
        """Transient files that may be removed once the run has succeeded."""
        base = self.index_prefix
        return sorted(
            path for path in self.working_directory.glob(f"{glob.escape(base)}.*")
            if path != self.final_output
        )


def read_stem(path: Path) -> str:
    """File name with compression and read-format extensions removed."""
    name = Path(path).name
    for ext in _COMPRESSION_EXTENSIONS:
        if name.lower().endswith(ext):
            name = name[:-len(ext)]
            break
    for ext in _READ_EXTENSIONS:
        if name.lower().endswith(ext):
            name = name[:-len(ext)]
            break
    return name


def read_set_prefix(forward: Path, reverse: Path) -> str:
    """
    Derive a shared base name for a pair of mate files.

    Examples:
        >>> read_set_prefix(Path("a_1.fastq"), Path("a_2.fastq"))
        'a'
        >>> read_set_prefix(Path("lib_R1.fq.gz"), Path("lib_R2.fq.gz"))
        'lib'
    """
    fwd, rev = read_stem(forward), read_stem(reverse)

    common = []
    for a, b in zip(fwd, rev):
        if a != b:
            break
        common.append(a)
    prefix = "".join(common).rstrip(_SEPARATORS)

    # Drop a dangling mate marker (lib_R1/lib_R2 share "lib_R")
    if len(prefix) > 1 and prefix[-1] in 'Rr' and prefix[-2] in _SEPARATORS:
        prefix = prefix[:-1].rstrip(_SEPARATORS)

    return prefix or fwd


# ============================================================================
# Argument construction
# ============================================================================

def preprocess_arguments(run_plan: RunPlan, artifacts: StageArtifacts) -> Tuple[str, ...]:
    return (
        "preprocess",
        "--pe-mode", "1",
        "-m", str(run_plan.min_retained_length),
        "-q", str(run_plan.quality_trim_threshold),
        "-f", str(run_plan.quality_filter_threshold),
        "-o", str(artifacts.preprocessed_reads),
        str(run_plan.forward_reads_path),
        str(run_plan.reverse_reads_path),
    )


def index_arguments(run_plan: RunPlan, artifacts: StageArtifacts) -> Tuple[str, ...]:
    args = [
        "index",
        "-a", run_plan.indexing_algorithm,
        "-t", str(run_plan.thread_count),
    ]
    if run_plan.uses_disk_indexing:
        args += ["--disk", str(run_plan.disk_batch_size)]
    args.append(str(artifacts.preprocessed_reads))
    return tuple(args)


def correct_arguments(run_plan: RunPlan, artifacts: StageArtifacts) -> Tuple[str, ...]:
    return (
        "correct",
        "-k", str(run_plan.kmer_length),
        "-x", str(run_plan.kmer_correction_threshold),
        "-t", str(run_plan.thread_count),
        "-p", artifacts.index_prefix,
        "-o", str(artifacts.corrected_reads),
        str(artifacts.preprocessed_reads),
    )


def plan(run_plan: RunPlan) -> List[Stage]:
    """
    Build the ordered stage list for a run.

    Always returns PREPROCESS, INDEX, CORRECT in that order.
    """
    artifacts = StageArtifacts.for_plan(run_plan)
    workdir = artifacts.working_directory
    tool = run_plan.tool_executable_path

    return [
        Stage(
            name=StageName.PREPROCESS,
            executable=tool,
            arguments=preprocess_arguments(run_plan, artifacts),
            input_paths=(run_plan.forward_reads_path, run_plan.reverse_reads_path),
            expected_output_path=artifacts.preprocessed_reads,
            working_directory=workdir,
        ),
        Stage(
            name=StageName.INDEX,
            executable=tool,
            arguments=index_arguments(run_plan, artifacts),
            input_paths=(artifacts.preprocessed_reads,),
            expected_output_path=artifacts.index_bwt,
            working_directory=workdir,
        ),
        Stage(
            name=StageName.CORRECT,
            executable=tool,
            arguments=correct_arguments(run_plan, artifacts),
            input_paths=(artifacts.preprocessed_reads, artifacts.index_bwt),
            expected_output_path=artifacts.corrected_reads,
            working_directory=workdir,
        ),
    ]


def describe_plan(stages: Sequence[Stage]) -> str:
    """Render stages as numbered shell command lines."""
    lines = []
    for i, stage in enumerate(stages, start=1):
        lines.append(f"[{i}/{len(stages)}] {stage.name.label}")
        lines.append(f"    cd {shlex.quote(str(stage.working_directory))}")
        lines.append(f"    {stage.command_line()}")
    return "\n".join(lines)

# PECorrect v0.1.0
# Any usage is subject to this software's license.
