"""
Build Orchestrator
==================
Drives the packaging project through one remote build:

    [Import site] → Preflight → Apply config → Commit → Push → Watch → Stage APK → Report

Flows:
    build   — first conversion; APK staged as downloads/app-debug.apk
    update  — bumps the version first; APK staged as
              downloads/app-update-v<version>/app-update-v<version>.apk
              and copied to downloads/app-update-v<version>.apk
    watch   — no commit or push; watches the latest run of a repository

All flows share one watcher configuration and one outcome mapping, and
every flow ends with build-report.json written.

Outcome → BuildResult.status:
    succeeded / failed / other_conclusion / timed_out / cancelled  (from the watch)
    no_run           — NoRunFound: GitHub has not registered the push yet
    error            — ProviderQueryFailed or SourceControlError
    payload_missing  — run succeeded, no APK in its artifacts
    push_failed      — push rejected; nothing was watched
"""
import os
import shutil
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from web2apk.core.config import (
    GITHUB_TOKEN,
    DOWNLOADS_DIR,
    CANONICAL_PAYLOAD_NAME,
    PAYLOAD_EXTENSION,
    APP_CONFIG_PATH,
    RESULTS_PATH,
)
from web2apk.core.constants import (
    STATE_SUCCEEDED,
    INITIAL_COMMIT_MESSAGE,
    UPDATE_COMMIT_TEMPLATE,
    UPDATE_PAYLOAD_TEMPLATE,
)
from web2apk.core.errors import (
    NoRunFound,
    ProviderQueryFailed,
    PayloadNotFound,
    SourceControlError,
    AppConfigError,
)
from web2apk.models.app_config import AppConfig
from web2apk.models.build_result import BuildResult
from web2apk.agents.build_watcher import BuildWatcher
from web2apk.agents.git_agent import GitAgent
from web2apk.services.github_actions import GitHubActionsClient, actions_url, run_url
from web2apk.services.packaging_service import (
    load_app_config,
    save_app_config,
    bump_version,
    apply_app_config,
    import_site,
    preflight,
    WEB_DIR,
)
from web2apk.services.results_writer import ResultsWriter

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """
    Runs the build, update and watch flows against one packaging project.
    """

    def __init__(
        self,
        github_token: Optional[str] = GITHUB_TOKEN,
        git_agent: Optional[GitAgent] = None,
        watcher: Optional[BuildWatcher] = None,
        downloads_dir: str = DOWNLOADS_DIR,
        results_path: str = RESULTS_PATH,
    ) -> None:
        self.git_agent = git_agent or GitAgent()
        self.watcher = watcher or BuildWatcher(GitHubActionsClient(github_token))
        self.downloads_dir = downloads_dir
        self.results_path = results_path

    # -------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------
    async def build(
        self,
        project_root: str,
        commit_message: str = INITIAL_COMMIT_MESSAGE,
        cancel_event: Optional[asyncio.Event] = None,
        site_dir: str = "",
    ) -> BuildResult:
        """Push the project and fetch the APK of the triggered build."""
        config = load_app_config(os.path.join(project_root, APP_CONFIG_PATH))
        if site_dir:
            import_site(project_root, site_dir)
        result = BuildResult(flow="build", version=config.version)

        result.preflight_warnings = preflight(project_root)
        for warning in result.preflight_warnings:
            logger.warning("Preflight: %s", warning)
        apply_app_config(project_root, config)

        destination = os.path.join(project_root, self.downloads_dir)
        await self._push_and_watch(
            result, project_root, commit_message, destination, CANONICAL_PAYLOAD_NAME, cancel_event
        )
        return self._finish(result, project_root)

    async def update(
        self,
        project_root: str,
        bump: str = "patch",
        version: str = "",
        cancel_event: Optional[asyncio.Event] = None,
        site_dir: str = "",
    ) -> BuildResult:
        """Bump the version, push the update and fetch the versioned APK."""
        if site_dir:
            import_site(project_root, site_dir)
        config_path = os.path.join(project_root, APP_CONFIG_PATH)
        config = load_app_config(config_path)
        new_version = version or bump_version(config.version, bump)
        try:
            config = AppConfig.model_validate(
                {**config.model_dump(by_alias=True), "version": new_version}
            )
        except ValidationError as e:
            raise AppConfigError(f"Invalid version {new_version!r}: {e}") from e
        save_app_config(config, config_path)
        logger.info("Version updated to %s", new_version)

        result = BuildResult(flow="update", version=new_version)
        result.preflight_warnings = preflight(project_root)
        for warning in result.preflight_warnings:
            logger.warning("Preflight: %s", warning)
        apply_app_config(project_root, config)

        payload_stem = UPDATE_PAYLOAD_TEMPLATE.format(version=new_version)
        downloads_root = os.path.join(project_root, self.downloads_dir)
        destination = os.path.join(downloads_root, payload_stem)
        await self._push_and_watch(
            result,
            project_root,
            UPDATE_COMMIT_TEMPLATE.format(version=new_version),
            destination,
            f"{payload_stem}{PAYLOAD_EXTENSION}",
            cancel_event,
        )

        if result.status == STATE_SUCCEEDED and result.payload_path:
            top_level_copy = os.path.join(downloads_root, f"{payload_stem}{PAYLOAD_EXTENSION}")
            shutil.copy2(result.payload_path, top_level_copy)
            logger.info("Updated APK also copied to %s", top_level_copy)
            result.payload_path = os.path.abspath(top_level_copy)

        return self._finish(result, project_root)

    async def watch(
        self,
        repository: str,
        destination_dir: str = "",
        head_sha: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BuildResult:
        """Watch the latest run of `repository` without pushing anything."""
        result = BuildResult(flow="watch", repository=repository, commit_sha=head_sha)
        await self._watch_into(
            result,
            repository,
            destination_dir or self.downloads_dir,
            head_sha,
            CANONICAL_PAYLOAD_NAME,
            cancel_event,
        )
        return self._finish(result, "")

    # -------------------------------------------------------------------
    # Shared steps
    # -------------------------------------------------------------------
    async def _push_and_watch(
        self,
        result: BuildResult,
        project_root: str,
        commit_message: str,
        destination: str,
        canonical_name: str,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        try:
            result.repository = self.git_agent.get_repository(project_root)
        except SourceControlError as e:
            logger.error("Cannot build: %s", e)
            result.status = "error"
            result.message = str(e)
            return

        result.branch = self.git_agent.detect_branch(project_root)
        result.changed_site_files = self.git_agent.changed_files(project_root, WEB_DIR)
        if result.changed_site_files:
            logger.info("%d website file(s) changed", len(result.changed_site_files))
        try:
            self.git_agent.commit_all(
                project_root, commit_message, exclude=(self.downloads_dir, self.results_path, "logs")
            )
        except SourceControlError as e:
            logger.error("Cannot build: %s", e)
            result.status = "error"
            result.message = f"{e}; nothing was pushed"
            return
        result.push_status = self.git_agent.push(project_root, result.branch)
        if result.push_status != "success":
            result.status = "push_failed"
            result.message = (
                f"Push to {result.branch} failed ({result.push_status}); nothing was built"
            )
            return

        result.commit_sha = self.git_agent.get_last_commit_sha(project_root)
        logger.info("GitHub Actions is now building %s@%s", result.repository, result.commit_sha[:7])
        await self._watch_into(
            result, result.repository, destination, result.commit_sha, canonical_name, cancel_event
        )

    async def _watch_into(
        self,
        result: BuildResult,
        repository: str,
        destination: str,
        head_sha: str,
        canonical_name: str,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        try:
            report = await self.watcher.watch_latest(
                repository,
                destination,
                head_sha=head_sha,
                canonical_name=canonical_name,
                cancel_event=cancel_event,
            )
        except NoRunFound as e:
            result.status = "no_run"
            result.message = f"{e} Try again later or check {actions_url(repository)}"
            logger.warning(result.message)
            return
        except PayloadNotFound as e:
            result.status = "payload_missing"
            result.message = f"{e}. See {run_url(repository, e.run_id)}"
            logger.error(result.message)
            return
        except ProviderQueryFailed as e:
            result.status = "error"
            context = f" (run #{e.run_id}, {e.attempts} checks, last status: {e.last_status})" if e.run_id else ""
            result.message = f"Could not check the build: {e}{context}. See {actions_url(repository)}"
            logger.error(result.message)
            return

        result.watch = report
        result.status = report.state
        result.payload_path = report.payload_path
        result.message = report.summary

    def _finish(self, result: BuildResult, project_root: str) -> BuildResult:
        output_path = os.path.join(project_root, self.results_path) if project_root else self.results_path
        ResultsWriter.write_results(result, output_path)
        return result
