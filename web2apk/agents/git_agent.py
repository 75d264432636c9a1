"""
Git Agent
=========
Source-control client for the packaging project: reads the GitHub remote,
detects the branch GitHub Actions builds from, commits and pushes.

Every call goes through `git` with an argument list (never a shell string),
so user-supplied names and messages are never interpreted by a shell.
"""
import os
import re
import subprocess
import logging
import time
from typing import Dict, List, Sequence

from web2apk.core.config import DEFAULT_BRANCH
from web2apk.core.errors import SourceControlError
from web2apk.services.github_actions import parse_repository

logger = logging.getLogger(__name__)

_BUILD_BRANCHES = ("main", "master")


class GitAgent:
    """
    Agent responsible for committing the packaging project and pushing it
    to the GitHub repository whose workflow builds the APK.
    """

    def __init__(self, remote: str = "origin") -> None:
        self.remote = remote
        self.commit_count = 0
        self.branch_name = ""
        self.push_status = "pending"

    def _git(self, workspace_path: str, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", *args],
            cwd=workspace_path,
            check=check,
            capture_output=True,
            text=True,
        )

    # -------------------------------------------------------------------
    # Remote / repository
    # -------------------------------------------------------------------
    def get_remote_url(self, workspace_path: str) -> str:
        try:
            res = self._git(workspace_path, "remote", "get-url", self.remote)
        except subprocess.CalledProcessError as e:
            raise SourceControlError(
                f"No '{self.remote}' remote configured: {(e.stderr or '').strip()}"
            ) from e
        return res.stdout.strip()

    def get_repository(self, workspace_path: str) -> str:
        """Return 'owner/repo' for the GitHub remote of the workspace."""
        remote_url = self.get_remote_url(workspace_path)
        repository = parse_repository(remote_url)
        if not repository:
            raise SourceControlError(
                f"Could not determine GitHub repository from git remote: {remote_url}"
            )
        return repository

    def set_remote(self, workspace_path: str, remote_url: str) -> None:
        """Point the remote at remote_url, adding it when missing."""
        existing = self._git(workspace_path, "remote", "get-url", self.remote, check=False)
        if existing.returncode == 0:
            self._git(workspace_path, "remote", "set-url", self.remote, remote_url)
        else:
            self._git(workspace_path, "remote", "add", self.remote, remote_url)
        logger.info("Remote %s set to %s", self.remote, remote_url)

    def init_repository(self, workspace_path: str, remote_url: str) -> bool:
        """
        Make the workspace a git repository pushing to remote_url.
        Existing history is kept. Returns True when `git init` ran.
        """
        created = not os.path.isdir(os.path.join(workspace_path, ".git"))
        try:
            if created:
                self._git(workspace_path, "init")
                logger.info("Initialized git repository in %s", workspace_path)
            self.set_remote(workspace_path, remote_url)
        except subprocess.CalledProcessError as e:
            raise SourceControlError(
                f"Could not set up git repository: {(e.stderr or '').strip()}"
            ) from e
        return created

    def changed_files(self, workspace_path: str, path: str = "www") -> List[str]:
        """Uncommitted changes under `path`, as reported by `git status --porcelain`."""
        res = self._git(workspace_path, "status", "--porcelain", "--", path, check=False)
        if res.returncode != 0:
            logger.warning("git status failed: %s", (res.stderr or "").strip())
            return []
        # each line is "XY <path>"
        return [line[3:].strip() for line in res.stdout.splitlines() if line.strip()]

    # -------------------------------------------------------------------
    # Branch detection
    # -------------------------------------------------------------------
    def detect_branch(self, workspace_path: str) -> str:
        """
        Pick the branch to push, in order:
            1. remote default branch, if main/master
            2. current branch, if main/master
            3. main/master seen among remote branches
            4. local main, then local master
            5. DEFAULT_BRANCH
        """
        head = self._git(
            workspace_path, "symbolic-ref", f"refs/remotes/{self.remote}/HEAD", check=False
        )
        if head.returncode == 0:
            default = head.stdout.strip().replace(f"refs/remotes/{self.remote}/", "")
            if default in _BUILD_BRANCHES:
                return default

        current = self._git(workspace_path, "branch", "--show-current", check=False)
        if current.returncode == 0 and current.stdout.strip() in _BUILD_BRANCHES:
            return current.stdout.strip()

        remote_branches = self._git(workspace_path, "branch", "-r", check=False)
        if remote_branches.returncode == 0:
            listed = remote_branches.stdout
            if f"{self.remote}/master" in listed:
                return "master"
            if f"{self.remote}/main" in listed:
                return "main"

        for branch in _BUILD_BRANCHES:
            ref = self._git(
                workspace_path, "show-ref", "--verify", "--quiet", f"refs/heads/{branch}",
                check=False,
            )
            if ref.returncode == 0:
                return branch

        logger.warning("Could not detect branch name, defaulting to %s", DEFAULT_BRANCH)
        return DEFAULT_BRANCH

    # -------------------------------------------------------------------
    # Commit / push
    # -------------------------------------------------------------------
    def commit_all(self, workspace_path: str, message: str, exclude: Sequence[str] = ()) -> bool:
        """
        Stage every change except the `exclude` paths and commit it.
        Returns False when there was nothing to commit; raises
        SourceControlError when git refuses the add or the commit.
        """
        pathspec = [".", *(f":(exclude){path}" for path in exclude)]
        try:
            self._git(workspace_path, "add", "--all", "--", *pathspec)

            # returncode 0 = NO differences → nothing to commit
            diff_check = self._git(workspace_path, "diff", "--cached", "--quiet", check=False)
            if diff_check.returncode == 0:
                logger.info("Nothing to commit in %s", workspace_path)
                return False

            self._git(workspace_path, "commit", "-m", message)
            self.commit_count += 1
            logger.info("Committed: %s", message)
            return True
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip()
            logger.error("Commit failed: %s", detail)
            raise SourceControlError(f"git commit failed: {detail}") from e

    def push(self, workspace_path: str, branch: str = "") -> str:
        """
        Push to the remote with one fetch + rebase retry on rejection.
        Returns push_status: success | conflict_unresolved.
        """
        if not branch:
            branch = self.branch_name or self.detect_branch(workspace_path)
        self.branch_name = branch

        attempts = 0
        max_attempts = 2

        while attempts < max_attempts:
            attempts += 1
            try:
                self._git(workspace_path, "push", "-u", self.remote, branch)
                logger.info("Pushed to %s/%s", self.remote, branch)
                self.push_status = "success"
                return self.push_status
            except subprocess.CalledProcessError as e:
                logger.error("Push attempt %d failed: %s", attempts, (e.stderr or "").strip())
                if attempts < max_attempts:
                    logger.info("Attempting fetch + rebase before retry...")
                    try:
                        self._git(workspace_path, "fetch", self.remote, branch)
                        self._git(workspace_path, "rebase", f"{self.remote}/{branch}")
                    except subprocess.CalledProcessError as rebase_err:
                        logger.error("Fetch/rebase failed: %s", (rebase_err.stderr or "").strip())
                        self.push_status = "conflict_unresolved"
                        return self.push_status
                    time.sleep(2)
                else:
                    self.push_status = "conflict_unresolved"

        return self.push_status

    def get_last_commit_sha(self, workspace_path: str) -> str:
        """Get the SHA of the HEAD commit ("" when there is none)."""
        try:
            res = self._git(workspace_path, "rev-parse", "HEAD")
            return res.stdout.strip()
        except subprocess.CalledProcessError:
            return ""

    # -------------------------------------------------------------------
    # User identity
    # -------------------------------------------------------------------
    def get_user_config(self, workspace_path: str) -> Dict[str, str]:
        config = {}
        for key in ("name", "email"):
            res = self._git(workspace_path, "config", f"user.{key}", check=False)
            config[key] = res.stdout.strip() if res.returncode == 0 else ""
        return config

    def configure_user(self, workspace_path: str, name: str, email: str) -> bool:
        """Set user.name / user.email for the repository."""
        name, email = name.strip(), email.strip()
        if not name or not validate_email(email):
            logger.error("Refusing git identity name=%r email=%r", name, email)
            return False
        try:
            self._git(workspace_path, "config", "user.name", name)
            self._git(workspace_path, "config", "user.email", email)
        except subprocess.CalledProcessError as e:
            logger.error("Failed to set git identity: %s", (e.stderr or "").strip())
            return False
        logger.info("Git identity set to %s <%s>", name, email)
        return True


def validate_email(email: str) -> bool:
    return bool(re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email))
