"""
Watch Report Model
==================
Outcome of one watch session, returned to the CLI, the API and the results writer.

Fields:
    repository          — owner/repo
    run_id              — the single run this session observed
    state               — pending | succeeded | failed | other_conclusion | timed_out | cancelled
    conclusion          — provider conclusion when the run completed
    last_status         — last status the provider reported
    attempts            — polling ticks performed (discovery excluded)
    max_attempts        — tick ceiling the session ran with
    elapsed_seconds     — wall clock time spent watching
    run_url             — link for manual follow-up
    payload_path        — canonical payload path (succeeded only)
    payload_size_bytes  — size of the staged payload
    summary             — one human-readable line
    timeline            — status changes observed, oldest first

`timed_out` means "stopped watching": the run's real outcome is unknown.
It must not be read as a failed build.
"""
from typing import List, Optional

from pydantic import BaseModel

from web2apk.core.constants import (
    STATE_SUCCEEDED,
    STATE_FAILED,
    STATE_OTHER_CONCLUSION,
)


class TimelineEvent(BaseModel):
    attempt: int
    status: str
    conclusion: Optional[str] = None
    timestamp: str
    elapsed: float = 0.0


class WatchReport(BaseModel):
    repository: str
    run_id: int
    state: str
    conclusion: Optional[str] = None
    last_status: str = ""
    attempts: int = 0
    max_attempts: int = 0
    elapsed_seconds: float = 0.0
    run_url: str = ""
    payload_path: str = ""
    payload_size_bytes: int = 0
    summary: str = ""
    timeline: List[TimelineEvent] = []

    @property
    def build_completed(self) -> bool:
        """True when the provider reported a final verdict for the run."""
        return self.state in (STATE_SUCCEEDED, STATE_FAILED, STATE_OTHER_CONCLUSION)
