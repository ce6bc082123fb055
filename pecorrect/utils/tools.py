"""
PECorrect v0.1.0

External tool discovery.

Author: PECorrect Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import os
import shutil
from pathlib import Path
from typing import Optional

SGA_ENV_VAR = "SGA_PATH"


def find_sga(environ: Optional[dict] = None) -> str:
    """
    Find the SGA executable.

    Checks $SGA_PATH, then PATH, then common install locations. Falls back
    to the bare name "sga" so a missing engine surfaces as a launch failure
    of the first stage instead of an error at configuration time.
    """
    environ = os.environ if environ is None else environ

    override = environ.get(SGA_ENV_VAR)
    if override:
        return override

    sga_in_path = shutil.which("sga")
    if sga_in_path:
        return sga_in_path

    home = Path.home()
    candidates = [
        home / "sga" / "bin" / "sga",
        home / ".local" / "bin" / "sga",
        Path("/usr/local/bin/sga"),
    ]
    for candidate in candidates:
        if candidate.exists():
            return str(candidate)

    return "sga"


def is_executable(path: str) -> bool:
    """True if path names an executable file, directly or via PATH."""
    if os.sep in path:
        return os.path.isfile(path) and os.access(path, os.X_OK)
    return shutil.which(path) is not None

# PECorrect v0.1.0
# Any usage is subject to this software's license.
