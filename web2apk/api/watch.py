"""
Build watch endpoints
=====================
POST /api/watch        — watch the latest run of a repository and stage its APK
GET  /api/runs/latest  — current state of the latest run, no watching

Error mapping:
    NoRunFound          → 404 (retry later; the push may not be registered yet)
    PayloadNotFound     → 422 (build succeeded, no APK in its artifacts)
    ProviderQueryFailed → 502 (GitHub could not be queried)

destination_dir is a folder under DOWNLOADS_DIR ("" = DOWNLOADS_DIR itself);
absolute paths and paths leaving it are rejected with 422. max_attempts above
MAX_POLL_ATTEMPTS is lowered to it, and the report carries the value used.
"""
import os
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, field_validator

from web2apk.agents.build_watcher import BuildWatcher
from web2apk.core.config import GITHUB_TOKEN, DOWNLOADS_DIR, MAX_POLL_ATTEMPTS, CANONICAL_PAYLOAD_NAME
from web2apk.core.errors import NoRunFound, PayloadNotFound, ProviderQueryFailed
from web2apk.models.build_run import BuildRun
from web2apk.models.watch_report import WatchReport
from web2apk.services.github_actions import GitHubActionsClient, parse_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Builds"])


class WatchRequest(BaseModel):
    repository: str
    head_sha: str = ""
    destination_dir: str = Field("", validate_default=True)
    max_attempts: Optional[int] = None

    @field_validator("repository")
    @classmethod
    def normalise_repository(cls, v: str) -> str:
        repository = parse_repository(v)
        if not repository:
            raise ValueError("repository must be owner/repo or a GitHub URL")
        return repository

    @field_validator("destination_dir")
    @classmethod
    def resolve_destination(cls, v: str) -> str:
        root = os.path.abspath(DOWNLOADS_DIR)
        if os.path.isabs(v):
            raise ValueError(f"destination_dir must be relative to {DOWNLOADS_DIR}/")
        target = os.path.abspath(os.path.join(root, v))
        if target != root and not target.startswith(root + os.sep):
            raise ValueError(f"destination_dir must stay inside {DOWNLOADS_DIR}/")
        return target

    @field_validator("max_attempts")
    @classmethod
    def cap_attempts(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        if v > MAX_POLL_ATTEMPTS:
            logger.warning("[API] max_attempts %d lowered to %d", v, MAX_POLL_ATTEMPTS)
            return MAX_POLL_ATTEMPTS
        return v


def _provider_error(exc: ProviderQueryFailed) -> HTTPException:
    detail = str(exc)
    if exc.run_id:
        detail += f" (run #{exc.run_id}, {exc.attempts} checks, last status: {exc.last_status})"
    return HTTPException(status_code=502, detail=detail)


@router.post("/watch", response_model=WatchReport)
async def watch_build(request: WatchRequest):
    """Watch the latest run of the repository until it finishes."""
    watcher = BuildWatcher(
        GitHubActionsClient(GITHUB_TOKEN),
        max_attempts=request.max_attempts or MAX_POLL_ATTEMPTS,
    )
    logger.info("[API] Watch requested for %s", request.repository)

    try:
        return await watcher.watch_latest(
            request.repository,
            request.destination_dir,
            head_sha=request.head_sha,
            canonical_name=CANONICAL_PAYLOAD_NAME,
        )
    except NoRunFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except PayloadNotFound as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ProviderQueryFailed as exc:
        raise _provider_error(exc)


@router.get("/runs/latest", response_model=BuildRun)
async def latest_run(repository: str, head_sha: str = ""):
    slug = parse_repository(repository)
    if not slug:
        raise HTTPException(status_code=400, detail="repository must be owner/repo or a GitHub URL")
    try:
        return await GitHubActionsClient(GITHUB_TOKEN).latest_run(slug, head_sha)
    except NoRunFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ProviderQueryFailed as exc:
        raise _provider_error(exc)
