"""
Build Result Model
Summary of one orchestrated flow (build, update or watch), written to build-report.json.
"""
from typing import List, Optional

from pydantic import BaseModel

from .watch_report import WatchReport


class BuildResult(BaseModel):
    flow: str                       # build | update | watch
    repository: str = ""
    branch: str = ""
    commit_sha: str = ""
    version: str = ""
    push_status: str = ""
    status: str = "pending"         # succeeded | failed | other_conclusion | timed_out | cancelled | no_run | error | payload_missing | push_failed
    preflight_warnings: List[str] = []
    changed_site_files: List[str] = []   # www/ paths changed since the last commit
    watch: Optional[WatchReport] = None
    payload_path: str = ""
    message: str = ""
