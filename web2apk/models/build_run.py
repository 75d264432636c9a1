"""
Build Run Model
===============
Pydantic model for one GitHub Actions workflow run, as read from the provider.

Fields:
    run_id      — provider-assigned identifier (GitHub `id` / `databaseId`)
    status      — queued | in_progress | completed (GitHub may also report
                  waiting / requested / pending; all non-completed values are pending)
    conclusion  — success | failure | cancelled | ... ; only meaningful once completed
    created_at  — when the run was registered
    updated_at  — last status change
    html_url    — browser link for manual follow-up
    head_sha    — commit that triggered the run

The watcher only reads runs; it never mutates them.
"""
from datetime import datetime
from typing import Optional, Any, Dict

from pydantic import BaseModel

from web2apk.core.constants import RUN_STATUS_COMPLETED


class BuildRun(BaseModel):
    run_id: int
    status: str
    conclusion: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    html_url: str = ""
    head_sha: str = ""

    @property
    def is_completed(self) -> bool:
        return self.status == RUN_STATUS_COMPLETED

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "BuildRun":
        """Build from a GitHub REST `workflow_run` object."""
        return cls(
            run_id=payload["id"],
            status=payload.get("status") or "queued",
            conclusion=payload.get("conclusion"),
            created_at=payload.get("created_at"),
            updated_at=payload.get("updated_at"),
            html_url=payload.get("html_url") or "",
            head_sha=payload.get("head_sha") or "",
        )
