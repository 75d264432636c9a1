"""
Results Writer
==============
Serializes the final BuildResult into build-report.json.
"""
import json
import logging
import os

from web2apk.core.config import RESULTS_PATH
from web2apk.models.build_result import BuildResult

logger = logging.getLogger(__name__)


class ResultsWriter:
    """
    Writes the outcome of a build flow to disk so it can be inspected after
    the terminal session is gone.
    """

    @staticmethod
    def write_results(result: BuildResult, output_path: str = RESULTS_PATH) -> bool:
        try:
            data = {
                "flow": result.flow,
                "repository": result.repository,
                "branch": result.branch,
                "commit_sha": result.commit_sha,
                "version": result.version,
                "changed_site_files": result.changed_site_files,
                "push_status": result.push_status,
                "preflight_warnings": result.preflight_warnings,
                "final_results": {
                    "status": result.status,
                    "payload_path": result.payload_path,
                    "message": result.message,
                    "build_completed": result.watch.build_completed if result.watch else False,
                },
                "watch": result.watch.model_dump() if result.watch else None,
            }

            abs_output = os.path.abspath(output_path)
            logger.info("Writing build report to %s", abs_output)

            with open(abs_output, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)

            return True

        except OSError as e:
            logger.error("Failed to write %s: %s", output_path, e, exc_info=True)
            return False
