"""
Utilities module for PECorrect.

This module provides the run-level utilities of the correction pipeline:
- Pipeline driver and PipelineResult
- Run manifest
- SGA executable discovery

Import submodules directly (pecorrect.utils.pipeline); pecorrect.core imports
pecorrect.utils.tools.
"""
