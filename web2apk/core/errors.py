"""
Errors
======
Exception hierarchy for the build pipeline.

Build outcomes (failed, other conclusion, timed out) are NOT exceptions:
they are states of a WatchReport. Exceptions here mean the watcher could not
determine or deliver an outcome.
"""
from typing import Optional


class Web2ApkError(Exception):
    """Base class for all web2apk errors."""


class NoRunFound(Web2ApkError):
    """
    The provider reported zero workflow runs for the repository.

    Usually the push has not registered with GitHub Actions yet. Transient:
    the caller may retry later.
    """

    def __init__(self, repository: str, head_sha: str = "") -> None:
        self.repository = repository
        self.head_sha = head_sha
        target = f"{repository}@{head_sha[:7]}" if head_sha else repository
        super().__init__(
            f"No workflow runs found for {target}. The workflow may not have started yet."
        )


class ProviderQueryFailed(Web2ApkError):
    """
    A lookup, status or download call to the CI provider errored.

    The watch loop aborts on this error rather than continue with stale
    state. Run context is attached by the watcher when available.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.run_id: Optional[int] = None
        self.attempts: int = 0
        self.elapsed_seconds: float = 0.0
        self.last_status: str = ""

    def attach_context(
        self,
        run_id: int,
        attempts: int,
        elapsed_seconds: float,
        last_status: str,
    ) -> "ProviderQueryFailed":
        self.run_id = run_id
        self.attempts = attempts
        self.elapsed_seconds = round(elapsed_seconds, 2)
        self.last_status = last_status
        return self


class PayloadNotFound(Web2ApkError):
    """The run succeeded but its artifacts contain no payload file."""

    def __init__(self, run_id: Optional[int], search_root: str, extension: str) -> None:
        self.run_id = run_id
        self.search_root = search_root
        self.extension = extension
        super().__init__(
            f"No '{extension}' file found in artifacts of run {run_id} under {search_root}"
        )


class SourceControlError(Web2ApkError):
    """git could not report what the pipeline needs (remote, repository)."""


class AppConfigError(Web2ApkError):
    """apk-config.json is unreadable or invalid."""


class SiteImportError(Web2ApkError):
    """The website directory to package is missing or has no index.html."""
