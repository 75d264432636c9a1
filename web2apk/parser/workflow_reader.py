"""
Workflow Reader
===============
Parses the packaging project's GitHub Actions workflows to confirm, before
anything is pushed, that a push will actually produce a downloadable APK.

A workflow qualifies when it:
    - is triggered by `push` (a workflow_dispatch-only workflow never starts on its own), and
    - has a step using `actions/upload-artifact`.

Deterministic: same workflow files → same result. Read-only.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

logger = logging.getLogger(__name__)

WORKFLOWS_DIR = os.path.join(".github", "workflows")
_UPLOAD_ACTION = "actions/upload-artifact"


@dataclass
class WorkflowInfo:
    """What matters about one workflow file."""
    path: str
    name: str = ""
    triggers: List[str] = field(default_factory=list)
    uploads_artifact: bool = False
    artifact_names: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def builds_on_push(self) -> bool:
        return "push" in self.triggers and self.uploads_artifact


def _triggers_of(data: dict) -> List[str]:
    # PyYAML (YAML 1.1) parses a bare `on:` key as the boolean True
    raw = data.get("on", data.get(True))
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [str(t) for t in raw]
    if isinstance(raw, dict):
        return [str(t) for t in raw.keys()]
    return []


def parse_workflow(content: str, path: str) -> WorkflowInfo:
    """Parse one workflow YAML document."""
    info = WorkflowInfo(path=path)

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning("Failed to parse YAML %s: %s", path, e)
        info.error = f"invalid YAML: {e}"
        return info

    if not isinstance(data, dict):
        info.error = "workflow is not a mapping"
        return info

    info.name = str(data.get("name", "") or "")
    info.triggers = _triggers_of(data)

    jobs = data.get("jobs", {})
    if not isinstance(jobs, dict):
        return info

    for job_def in jobs.values():
        if not isinstance(job_def, dict):
            continue
        steps = job_def.get("steps", [])
        if not isinstance(steps, list):
            continue
        for step in steps:
            if not isinstance(step, dict):
                continue
            uses = str(step.get("uses", ""))
            if uses.startswith(_UPLOAD_ACTION):
                info.uploads_artifact = True
                step_with = step.get("with") or {}
                if isinstance(step_with, dict) and step_with.get("name"):
                    info.artifact_names.append(str(step_with["name"]))

    return info


def read_workflows(project_root: str) -> List[WorkflowInfo]:
    """Parse every .yml / .yaml file under .github/workflows/."""
    workflows_dir = os.path.join(project_root, WORKFLOWS_DIR)
    if not os.path.isdir(workflows_dir):
        return []

    found: List[WorkflowInfo] = []
    for fname in sorted(os.listdir(workflows_dir)):
        if not fname.endswith((".yml", ".yaml")):
            continue
        rel_path = f".github/workflows/{fname}"
        with open(os.path.join(workflows_dir, fname), "r", encoding="utf-8") as f:
            found.append(parse_workflow(f.read(), rel_path))

    logger.debug("Found %d workflow file(s) in %s", len(found), workflows_dir)
    return found


def find_build_workflow(project_root: str) -> Optional[WorkflowInfo]:
    """First workflow that builds on push and uploads an artifact, if any."""
    for info in read_workflows(project_root):
        if info.builds_on_push:
            return info
    return None
