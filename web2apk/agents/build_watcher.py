"""
Build Watcher Agent
===================
Watches one GitHub Actions run from pending to a terminal state and, when the
build succeeds, downloads its artifacts and stages the APK.

State Machine (one WatchSession per watch):
    pending ──completed/success──▶ succeeded        → download + stage payload
    pending ──completed/failure──▶ failed           → report run URL
    pending ──completed/other────▶ other_conclusion → report run URL
    pending ──ceiling reached────▶ timed_out        → report run URL (outcome unknown)
    pending ──cancel signal──────▶ cancelled

Tick:
    sleep(interval) → query status → classify → loop or exit.
    Terminal states are absorbing; a run that is already completed when it is
    discovered is classified with zero ticks.

Errors:
    NoRunFound          — raised from discovery, transient, caller may retry later
    ProviderQueryFailed — aborts the loop immediately, with run context attached
    PayloadNotFound     — the build succeeded but produced no payload file
"""
import time
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Protocol

from web2apk.core.config import (
    POLL_INTERVAL_SECONDS,
    MAX_POLL_ATTEMPTS,
    INITIAL_POLL_DELAY_SECONDS,
    PAYLOAD_EXTENSION,
    CANONICAL_PAYLOAD_NAME,
)
from web2apk.core.constants import (
    CONCLUSION_SUCCESS,
    CONCLUSION_FAILURE,
    STATE_PENDING,
    STATE_SUCCEEDED,
    STATE_FAILED,
    STATE_OTHER_CONCLUSION,
    STATE_TIMED_OUT,
    STATE_CANCELLED,
    TERMINAL_STATES,
)
from web2apk.core.errors import ProviderQueryFailed, PayloadNotFound
from web2apk.models.build_run import BuildRun
from web2apk.models.artifact_bundle import ArtifactBundle
from web2apk.models.watch_report import WatchReport, TimelineEvent
from web2apk.services.artifact_service import stage_payload, format_size
from web2apk.services.github_actions import run_url

logger = logging.getLogger(__name__)


class RunProvider(Protocol):
    """Run-lookup and artifact-fetch capability consumed by the watcher."""

    async def latest_run(self, repository: str, head_sha: str = "") -> BuildRun: ...

    async def run_status(self, repository: str, run_id: int) -> BuildRun: ...

    async def download_artifacts(
        self, repository: str, run_id: int, destination_dir: str
    ) -> ArtifactBundle: ...


def classify(run: BuildRun) -> str:
    """Map a run to a watch state. Pure: the same run always maps to the same state."""
    if not run.is_completed:
        return STATE_PENDING
    if run.conclusion == CONCLUSION_SUCCESS:
        return STATE_SUCCEEDED
    if run.conclusion == CONCLUSION_FAILURE:
        return STATE_FAILED
    return STATE_OTHER_CONCLUSION


@dataclass
class WatchSession:
    """Ephemeral state of one watch. Bound to a single run for its whole life."""
    repository: str
    run: BuildRun
    interval: float
    max_attempts: int
    attempts: int = 0
    state: str = STATE_PENDING
    started_at: float = field(default_factory=time.monotonic)
    timeline: List[TimelineEvent] = field(default_factory=list)

    @property
    def run_id(self) -> int:
        return self.run.run_id

    @property
    def elapsed(self) -> float:
        return round(time.monotonic() - self.started_at, 2)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def observe(self, run: BuildRun) -> str:
        """Record a status response for the tracked run and re-classify."""
        if run.run_id != self.run.run_id:
            raise ValueError(
                f"Session for run #{self.run.run_id} received status of run #{run.run_id}"
            )
        changed = run.status != self.run.status or run.conclusion != self.run.conclusion
        self.run = run
        self.state = classify(run)
        if changed or not self.timeline:
            self.timeline.append(TimelineEvent(
                attempt=self.attempts,
                status=run.status,
                conclusion=run.conclusion,
                timestamp=datetime.now(timezone.utc).isoformat(),
                elapsed=self.elapsed,
            ))
        return self.state


class BuildWatcher:
    """
    Agent that follows a workflow run to completion and retrieves its APK.
    """

    def __init__(
        self,
        provider: RunProvider,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        initial_delay: float = INITIAL_POLL_DELAY_SECONDS,
        payload_extension: str = PAYLOAD_EXTENSION,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.payload_extension = payload_extension

    async def discover_run(self, repository: str, head_sha: str = "") -> BuildRun:
        """
        Resolve the run to track, after the initial delay that lets GitHub
        register the push. Raises NoRunFound when no run exists yet.
        """
        if self.initial_delay > 0:
            logger.info("Waiting %.0fs for the workflow to register...", self.initial_delay)
            await asyncio.sleep(self.initial_delay)
        return await self.provider.latest_run(repository, head_sha)

    async def watch_latest(
        self,
        repository: str,
        destination_dir: str,
        head_sha: str = "",
        canonical_name: str = CANONICAL_PAYLOAD_NAME,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WatchReport:
        """Discover the latest run (optionally for head_sha) and watch it."""
        run = await self.discover_run(repository, head_sha)
        return await self.watch(
            repository, run, destination_dir,
            canonical_name=canonical_name, cancel_event=cancel_event,
        )

    async def watch(
        self,
        repository: str,
        run: BuildRun,
        destination_dir: str,
        canonical_name: str = CANONICAL_PAYLOAD_NAME,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WatchReport:
        """Poll `run` until terminal, then act on the outcome."""
        session = WatchSession(
            repository=repository,
            run=run,
            interval=self.poll_interval,
            max_attempts=self.max_attempts,
        )
        session.observe(run)

        if session.is_terminal:
            logger.info("Run #%d already finished: %s", run.run_id, run.conclusion)
        else:
            await self._poll(session, cancel_event)

        return await self._finish(session, destination_dir, canonical_name)

    async def _poll(self, session: WatchSession, cancel_event: Optional[asyncio.Event]) -> None:
        logger.info(
            "Watching run #%d every %.0fs (max %d checks)",
            session.run_id, session.interval, session.max_attempts,
        )
        while session.attempts < session.max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Watch of run #%d cancelled after %d checks", session.run_id, session.attempts)
                session.state = STATE_CANCELLED
                return

            await asyncio.sleep(session.interval)
            session.attempts += 1

            try:
                current = await self.provider.run_status(session.repository, session.run_id)
            except ProviderQueryFailed as exc:
                logger.error("Status query for run #%d failed: %s", session.run_id, exc)
                raise exc.attach_context(
                    session.run_id, session.attempts, session.elapsed, session.run.status
                )

            previous_status = session.run.status
            state = session.observe(current)
            if current.status != previous_status:
                logger.info("Run #%d status: %s", session.run_id, current.status)
            else:
                logger.debug(
                    "Run #%d still %s (%d/%d)",
                    session.run_id, current.status, session.attempts, session.max_attempts,
                )
            if state in TERMINAL_STATES:
                return

        session.state = STATE_TIMED_OUT
        logger.warning(
            "Gave up watching run #%d after %d checks (%.0fs); last status: %s",
            session.run_id, session.attempts, session.elapsed, session.run.status,
        )

    async def _finish(
        self, session: WatchSession, destination_dir: str, canonical_name: str
    ) -> WatchReport:
        url = session.run.html_url or run_url(session.repository, session.run_id)
        report = WatchReport(
            repository=session.repository,
            run_id=session.run_id,
            state=session.state,
            conclusion=session.run.conclusion if session.run.is_completed else None,
            last_status=session.run.status,
            attempts=session.attempts,
            max_attempts=session.max_attempts,
            run_url=url,
            timeline=session.timeline,
        )

        if session.state == STATE_SUCCEEDED:
            bundle = await self.provider.download_artifacts(
                session.repository, session.run_id, destination_dir
            )
            try:
                payload_path = stage_payload(bundle, self.payload_extension, canonical_name)
            except PayloadNotFound:
                logger.error(
                    "Run #%d succeeded but no %s was found in artifacts %s",
                    session.run_id, self.payload_extension, bundle.artifact_names,
                )
                raise
            report.payload_path = payload_path
            report.payload_size_bytes = bundle.payload.size
            report.summary = (
                f"Build succeeded: {payload_path} ({format_size(report.payload_size_bytes)})"
            )
        elif session.state == STATE_FAILED:
            report.summary = f"Build failed. View error details: {url}"
        elif session.state == STATE_OTHER_CONCLUSION:
            report.summary = f"Build completed with status: {session.run.conclusion}. See {url}"
        elif session.state == STATE_TIMED_OUT:
            report.summary = (
                f"Stopped watching after {session.attempts} checks; the build may still "
                f"be running. Check manually: {url}"
            )
        else:
            report.summary = f"Watch cancelled after {session.attempts} checks. See {url}"

        report.elapsed_seconds = session.elapsed
        logger.info(report.summary)
        return report
