"""
Run manifest for PECorrect pipelines.

Records every executed stage (command, outcome, timing) and the final result
as a JSON document in the output directory.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_MANIFEST_NAME = "_sga_run_manifest.json"


class RunManifest:
    """
    JSON record of one pipeline run.

    The file is rewritten after every record, so a crashed or interrupted
    run still leaves an accurate account of the stages that did run.
    """

    def __init__(self, output_dir: Path, filename: str = DEFAULT_MANIFEST_NAME,
                 plan: Optional[Dict[str, Any]] = None):
        """
        Initialize run manifest.

        Args:
            output_dir: Directory the manifest is written to
            filename: Manifest file name
            plan: Resolved run parameters to store alongside the stages
        """
        self.path = Path(output_dir) / filename
        self.logger = logging.getLogger(__name__)
        self._data: Dict[str, Any] = {
            'started': datetime.now().isoformat(),
            'finished': None,
            'plan': plan or {},
            'stages': [],
            'result': None,
        }

    @property
    def stages(self) -> List[Dict[str, Any]]:
        return self._data['stages']

    def record(self, outcome, command: List[str]):
        """
        Append a stage outcome.

        Args:
            outcome: StageOutcome of the executed stage
            command: Command vector that was run
        """
        entry = outcome.to_dict()
        entry['command'] = list(command)
        entry['timestamp'] = datetime.now().isoformat()
        self._data['stages'].append(entry)
        self._write()
        self.logger.debug(f"Manifest: recorded {entry['stage']} ({entry['kind']})")

    def finish(self, result):
        """Store the final PipelineResult and close the manifest."""
        self._data['finished'] = datetime.now().isoformat()
        self._data['result'] = result.to_dict()
        self._write()
        self.logger.info(f"Run manifest written: {self.path}")

    def _write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    @staticmethod
    def load(path: Path) -> Dict[str, Any]:
        """Read a manifest written by a previous run."""
        with open(path, 'r') as f:
            return json.load(f)
