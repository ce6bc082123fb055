#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PECorrect v0.1.0

Pytest configuration and shared fixtures.

The SGA engine is replaced by a small POSIX shell script that honours the
same sub-command contract: it writes the -o file for preprocess/correct and
<base>.bwt/<base>.sai into its working directory for index.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import stat
import pytest
from pathlib import Path
import tempfile
import shutil

from pecorrect.core.resolver import resolve


FAKE_SGA_TEMPLATE = """#!/bin/sh
# Fake sga used by the PECorrect test-suite
cmd="$1"
shift
echo "$cmd $*" >> "{calls}"

if [ "$cmd" = "{fail}" ]; then
    echo "sga $cmd: simulated failure" >&2
    echo "sga $cmd: second line" >&2
    exit {exit_code}
fi

for last; do :; done
out=""
while [ $# -gt 0 ]; do
    case "$1" in
        -o) out="$2"; shift 2 ;;
        *) shift ;;
    esac
done

if [ "$cmd" = "{skip}" ]; then
    exit 0
fi

case "$cmd" in
    preprocess)
        printf '@r1\\nACGTACGT\\n+\\nIIIIIIII\\n' > "$out" ;;
    index)
        base=$(basename "$last" .fastq)
        touch "$base.bwt" "$base.sai" ;;
    correct)
        printf '@r1\\nACGTACGT\\n+\\nIIIIIIII\\n' > "$out" ;;
    *)
        echo "unknown command $cmd" >&2
        exit 1 ;;
esac
echo "sga $cmd done"
"""


@pytest.fixture
def temp_output_dir():
    """Create temporary output directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="pecorrect_test_")
    yield Path(temp_dir)
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def simple_fastq():
    """Generate simple FASTQ reads for testing."""
    return """@read1
ATCGATCGATCG
+
IIIIIIIIIIII
@read2
GCTAGCTAGCTA
+
IIIIIIIIIIII
"""


@pytest.fixture
def read_pair(temp_output_dir, simple_fastq):
    """Forward/reverse mate files a_1.fastq and a_2.fastq."""
    reads_dir = temp_output_dir / "reads"
    reads_dir.mkdir()
    forward = reads_dir / "a_1.fastq"
    reverse = reads_dir / "a_2.fastq"
    forward.write_text(simple_fastq)
    reverse.write_text(simple_fastq)
    return forward, reverse


@pytest.fixture
def fake_sga(temp_output_dir):
    """
    Factory writing a fake sga executable.

    Args (of the returned callable):
        fail: Sub-command that should exit non-zero
        exit_code: Exit code used for the failure
        skip: Sub-command that should exit 0 without writing its output

    Every invocation is appended to sga.calls next to the script.
    """
    bin_dir = temp_output_dir / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(fail: str = "", exit_code: int = 3, skip: str = "") -> Path:
        script = bin_dir / "sga"
        calls = bin_dir / "sga.calls"
        script.write_text(FAKE_SGA_TEMPLATE.format(
            calls=calls, fail=fail or "__none__", exit_code=exit_code,
            skip=skip or "__none__",
        ))
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


@pytest.fixture
def sga_calls():
    """Returns a reader for the sub-commands a fake sga was invoked with, in order."""
    def _read(script: Path):
        calls = script.parent / "sga.calls"
        if not calls.exists():
            return []
        return [line.split()[0] for line in calls.read_text().splitlines() if line.strip()]

    return _read


@pytest.fixture
def make_plan(read_pair, temp_output_dir):
    """Factory resolving a RunPlan for read_pair with overrides."""
    forward, reverse = read_pair
    out_dir = temp_output_dir / "out"

    def _make(**overrides):
        raw = {
            'forward_reads_path': str(forward),
            'reverse_reads_path': str(reverse),
            'tool_executable_path': 'sga',
            'output_directory': str(out_dir),
        }
        raw.update(overrides)
        return resolve(raw)

    return _make

# PECorrect v0.1.0
# Any usage is subject to this software's license.
