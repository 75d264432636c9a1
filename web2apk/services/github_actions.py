"""
GitHub Actions Client
=====================
Typed client for the three GitHub Actions operations the build watcher needs:

    latest_run(repository, head_sha)            → BuildRun | NoRunFound
    run_status(repository, run_id)              → BuildRun
    download_artifacts(repository, run_id, dir) → ArtifactBundle

Every transport or HTTP failure is raised as ProviderQueryFailed; nothing is
retried here. Retrying (or not) is the caller's decision.

Artifact Layout:
    Each artifact zip is extracted into its own sub-folder named after the
    artifact, mirroring `gh run download`. The payload therefore usually sits
    one directory below the destination.
"""
import io
import os
import re
import shutil
import logging
import zipfile
from typing import Optional, Dict, Any, List

import httpx

from web2apk.core.config import GITHUB_API_URL, GITHUB_WEB_URL, GITHUB_TOKEN, HTTP_TIMEOUT_SECONDS
from web2apk.core.errors import NoRunFound, ProviderQueryFailed
from web2apk.models.build_run import BuildRun
from web2apk.models.artifact_bundle import ArtifactBundle
from web2apk.services.artifact_service import scan_tree

logger = logging.getLogger(__name__)

_REPOSITORY_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def parse_repository(remote_url: str) -> str:
    """
    Extract 'owner/repo' from a GitHub remote URL.

    Accepts https://github.com/owner/repo(.git), git@github.com:owner/repo(.git)
    and a bare owner/repo slug. Returns "" when nothing matches.
    """
    url = remote_url.strip()
    if _REPOSITORY_RE.match(url):
        return url[:-4] if url.endswith(".git") else url
    match = re.search(r"github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?/?$", url)
    if match:
        return f"{match.group(1)}/{match.group(2)}"
    return ""


def run_url(repository: str, run_id: int) -> str:
    """Browser link to a workflow run."""
    return f"{GITHUB_WEB_URL}/{repository}/actions/runs/{run_id}"


def actions_url(repository: str) -> str:
    return f"{GITHUB_WEB_URL}/{repository}/actions"


class GitHubActionsClient:
    """Run-lookup and artifact-fetch capability backed by the GitHub REST API."""

    def __init__(
        self,
        github_token: Optional[str] = GITHUB_TOKEN,
        api_url: str = GITHUB_API_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "web2apk",
        }
        if github_token:
            self.headers["Authorization"] = f"Bearer {github_token}"

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as http_err:
            status_code = http_err.response.status_code
            logger.error("GitHub API returned HTTP %d for %s", status_code, url)
            raise ProviderQueryFailed(
                f"GitHub API returned HTTP {status_code} for {path}", status_code=status_code
            ) from http_err
        except httpx.HTTPError as e:
            logger.error("GitHub API request failed for %s: %s", url, e)
            raise ProviderQueryFailed(f"GitHub API request failed for {path}: {e}") from e
        except ValueError as e:
            raise ProviderQueryFailed(f"GitHub API returned invalid JSON for {path}") from e

    async def _get_bytes(self, url: str) -> bytes:
        # archive_download_url answers with a redirect to short-lived storage
        try:
            async with httpx.AsyncClient(
                headers=self.headers, timeout=self.timeout * 6, follow_redirects=True
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as http_err:
            status_code = http_err.response.status_code
            logger.error("Artifact download returned HTTP %d: %s", status_code, url)
            raise ProviderQueryFailed(
                f"Artifact download returned HTTP {status_code}", status_code=status_code
            ) from http_err
        except httpx.HTTPError as e:
            logger.error("Artifact download failed: %s", e)
            raise ProviderQueryFailed(f"Artifact download failed: {e}") from e

    # -------------------------------------------------------------------
    # Run lookup
    # -------------------------------------------------------------------
    async def latest_run(self, repository: str, head_sha: str = "") -> BuildRun:
        """Most recent workflow run of the repository, optionally for one commit."""
        params: Dict[str, Any] = {"per_page": 1}
        if head_sha:
            params["head_sha"] = head_sha
        data = await self._get_json(f"/repos/{repository}/actions/runs", params=params)
        runs = data.get("workflow_runs") or []
        if not runs:
            raise NoRunFound(repository, head_sha)
        run = BuildRun.from_api(runs[0])
        logger.info(
            "Latest run for %s: #%d status=%s conclusion=%s",
            repository, run.run_id, run.status, run.conclusion,
        )
        return run

    async def run_status(self, repository: str, run_id: int) -> BuildRun:
        data = await self._get_json(f"/repos/{repository}/actions/runs/{run_id}")
        return BuildRun.from_api(data)

    # -------------------------------------------------------------------
    # Artifact fetch
    # -------------------------------------------------------------------
    async def list_artifacts(self, repository: str, run_id: int) -> List[Dict[str, Any]]:
        data = await self._get_json(
            f"/repos/{repository}/actions/runs/{run_id}/artifacts", params={"per_page": 100}
        )
        return [a for a in data.get("artifacts", []) if not a.get("expired", False)]

    async def download_artifacts(
        self, repository: str, run_id: int, destination_dir: str
    ) -> ArtifactBundle:
        """Download and extract every live artifact of the run into destination_dir."""
        os.makedirs(destination_dir, exist_ok=True)
        artifacts = await self.list_artifacts(repository, run_id)
        names: List[str] = []

        for artifact in artifacts:
            name = artifact.get("name") or f"artifact-{artifact.get('id')}"
            if name in (".", "..") or os.path.basename(name) != name:
                raise ProviderQueryFailed(f"Refusing artifact with unsafe name: {name!r}")
            logger.info("Downloading artifact '%s' of run #%d", name, run_id)
            content = await self._get_bytes(artifact["archive_download_url"])
            target = os.path.join(destination_dir, name)
            # same-named folder from an earlier run
            if os.path.isdir(target):
                shutil.rmtree(target)
            _extract_zip(content, target)
            names.append(name)

        if not names:
            logger.warning("Run #%d has no downloadable artifacts", run_id)

        return ArtifactBundle(
            run_id=run_id,
            root=os.path.abspath(destination_dir),
            artifact_names=names,
            files=scan_tree(destination_dir, only=names),
        )


def _extract_zip(content: bytes, target_dir: str) -> None:
    """Extract an artifact archive, refusing members that escape target_dir."""
    target_root = os.path.abspath(target_dir)
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            for member in archive.namelist():
                member_path = os.path.abspath(os.path.join(target_root, member))
                if member_path != target_root and not member_path.startswith(target_root + os.sep):
                    raise ProviderQueryFailed(f"Artifact member escapes destination: {member}")
            os.makedirs(target_root, exist_ok=True)
            archive.extractall(target_root)
    except zipfile.BadZipFile as e:
        raise ProviderQueryFailed(f"Artifact archive is not a valid zip: {e}") from e
