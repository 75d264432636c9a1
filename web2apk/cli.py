"""
web2apk command line
====================
    web2apk build        push the packaging project and download the APK
    web2apk update       bump the version, push and download the updated APK
    web2apk watch        watch the latest run of a repository and download its APK
    web2apk init-config  write apk-config.json
    web2apk gitconfig    show or set the git identity used for commits
    web2apk serve        run the HTTP API

Exit codes follow BuildResult.status so scripts can tell a failed build
(1) from a watch that merely gave up (3).
"""
import asyncio
import logging
import os
import signal
from typing import Optional

import typer
import uvicorn
from pydantic import ValidationError
from rich.console import Console

from web2apk.agents.build_watcher import BuildWatcher
from web2apk.agents.git_agent import GitAgent
from web2apk.agents.orchestrator import BuildOrchestrator
from web2apk.core.config import (
    GITHUB_TOKEN,
    GITHUB_WEB_URL,
    APP_CONFIG_PATH,
    POLL_INTERVAL_SECONDS,
    MAX_POLL_ATTEMPTS,
    INITIAL_POLL_DELAY_SECONDS,
)
from web2apk.core.errors import Web2ApkError
from web2apk.models.app_config import AppConfig, IconConfig, SplashConfig
from web2apk.models.build_result import BuildResult
from web2apk.services.artifact_service import format_size
from web2apk.services.github_actions import GitHubActionsClient, parse_repository
from web2apk.services.packaging_service import save_app_config, import_site
from web2apk.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)
console = Console()

EXIT_CODES = {
    "succeeded": 0,
    "failed": 1,
    "other_conclusion": 1,
    "error": 2,
    "timed_out": 3,
    "no_run": 4,
    "payload_missing": 5,
    "push_failed": 6,
    "cancelled": 130,
}

_STATUS_STYLE = {
    "succeeded": "bold green",
    "failed": "bold red",
    "timed_out": "bold yellow",
    "cancelled": "yellow",
}

app = typer.Typer(
    name="web2apk",
    help="Turn a static website into an Android APK built by GitHub Actions.",
    no_args_is_help=True,
    add_completion=False,
)

# Shared watch options
INTERVAL_OPTION = typer.Option(POLL_INTERVAL_SECONDS, "--interval", help="Seconds between status checks.")
MAX_ATTEMPTS_OPTION = typer.Option(MAX_POLL_ATTEMPTS, "--max-attempts", min=1, help="Status checks before giving up.")
INITIAL_DELAY_OPTION = typer.Option(
    INITIAL_POLL_DELAY_SECONDS, "--initial-delay", min=0, help="Seconds to wait before the first lookup."
)
PROJECT_OPTION = typer.Option(".", "--project", "-p", help="Packaging project directory.")
SITE_OPTION = typer.Option("", "--site", "-s", help="Website folder to copy into www/ first.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    no_log_file: bool = typer.Option(False, "--no-log-file", help="Log to the console only."),
) -> None:
    setup_logging(
        level=logging.DEBUG if verbose else logging.INFO,
        log_to_file=not no_log_file,
    )


def _make_orchestrator(interval: float, max_attempts: int, initial_delay: float) -> BuildOrchestrator:
    watcher = BuildWatcher(
        GitHubActionsClient(GITHUB_TOKEN),
        poll_interval=interval,
        max_attempts=max_attempts,
        initial_delay=initial_delay,
    )
    return BuildOrchestrator(github_token=GITHUB_TOKEN, watcher=watcher)


async def _run_with_cancel(flow) -> BuildResult:
    """Run a flow; the first Ctrl-C ends the watch at the next tick."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers
        pass
    try:
        return await flow(cancel_event)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def _run_flow(flow) -> BuildResult:
    try:
        return asyncio.run(_run_with_cancel(flow))
    except Web2ApkError as e:
        logger.error("%s", e)
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=EXIT_CODES["error"])


def _report(result: BuildResult) -> None:
    for warning in result.preflight_warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if result.changed_site_files:
        console.print(f"Website changes: {len(result.changed_site_files)} file(s) in www/")
    style = _STATUS_STYLE.get(result.status, "bold")
    console.print(f"[{style}]{result.status}[/{style}] {result.message}")
    if result.payload_path:
        size = result.watch.payload_size_bytes if result.watch else 0
        console.print(f"APK: [cyan]{result.payload_path}[/cyan] ({format_size(size)})")
    raise typer.Exit(code=EXIT_CODES.get(result.status, EXIT_CODES["error"]))


@app.command(name="build", help="Push the project and download the APK.")
def build_cmd(
    project: str = PROJECT_OPTION,
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message."),
    site: str = SITE_OPTION,
    interval: float = INTERVAL_OPTION,
    max_attempts: int = MAX_ATTEMPTS_OPTION,
    initial_delay: float = INITIAL_DELAY_OPTION,
) -> None:
    orchestrator = _make_orchestrator(interval, max_attempts, initial_delay)
    project_root = os.path.abspath(project)
    kwargs = {"commit_message": message} if message else {}
    result = _run_flow(
        lambda cancel: orchestrator.build(project_root, cancel_event=cancel, site_dir=site, **kwargs)
    )
    _report(result)


@app.command(name="update", help="Bump the version and rebuild.")
def update_cmd(
    project: str = PROJECT_OPTION,
    bump: str = typer.Option("patch", "--bump", help="patch, minor or major."),
    version: str = typer.Option("", "--version", help="Explicit new version (overrides --bump)."),
    site: str = SITE_OPTION,
    interval: float = INTERVAL_OPTION,
    max_attempts: int = MAX_ATTEMPTS_OPTION,
    initial_delay: float = INITIAL_DELAY_OPTION,
) -> None:
    if bump not in ("patch", "minor", "major"):
        console.print(f"[bold red]Error:[/bold red] --bump must be patch, minor or major, got {bump!r}")
        raise typer.Exit(code=EXIT_CODES["error"])
    orchestrator = _make_orchestrator(interval, max_attempts, initial_delay)
    project_root = os.path.abspath(project)
    result = _run_flow(
        lambda cancel: orchestrator.update(
            project_root, bump=bump, version=version, cancel_event=cancel, site_dir=site
        )
    )
    _report(result)


@app.command(name="watch", help="Watch the latest run and download its APK.")
def watch_cmd(
    repo: str = typer.Option("", "--repo", "-r", help="owner/repo (default: from the project's git remote)."),
    project: str = PROJECT_OPTION,
    sha: str = typer.Option("", "--sha", help="Only consider runs for this commit."),
    dest: str = typer.Option("", "--dest", help="Download directory."),
    interval: float = INTERVAL_OPTION,
    max_attempts: int = MAX_ATTEMPTS_OPTION,
    initial_delay: float = INITIAL_DELAY_OPTION,
) -> None:
    repository = parse_repository(repo) if repo else ""
    if repo and not repository:
        console.print(f"[bold red]Error:[/bold red] not a GitHub repository: {repo}")
        raise typer.Exit(code=EXIT_CODES["error"])
    if not repository:
        try:
            repository = GitAgent().get_repository(os.path.abspath(project))
        except Web2ApkError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=EXIT_CODES["error"])

    orchestrator = _make_orchestrator(interval, max_attempts, initial_delay)
    result = _run_flow(
        lambda cancel: orchestrator.watch(repository, destination_dir=dest, head_sha=sha, cancel_event=cancel)
    )
    _report(result)


@app.command(name="init", help="Set up the git repository and copy the website into www/.")
def init_cmd(
    project: str = PROJECT_OPTION,
    repo: str = typer.Option(..., "--repo", "-r", help="GitHub repository (owner/repo or URL)."),
    site: str = SITE_OPTION,
) -> None:
    repository = parse_repository(repo)
    if not repository:
        console.print(f"[bold red]Error:[/bold red] not a GitHub repository: {repo}")
        raise typer.Exit(code=EXIT_CODES["error"])

    project_root = os.path.abspath(project)
    try:
        if GitAgent().init_repository(project_root, f"{GITHUB_WEB_URL}/{repository}.git"):
            console.print(f"Initialized git repository in [cyan]{project_root}[/cyan]")
        console.print(f"Remote: [cyan]{GITHUB_WEB_URL}/{repository}[/cyan]")
        if site:
            copied = import_site(project_root, site)
            console.print(f"[green]Copied {len(copied)} website file(s) into www/[/green]")
    except Web2ApkError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=EXIT_CODES["error"])


@app.command(name="init-config", help="Write apk-config.json.")
def init_config_cmd(
    project: str = PROJECT_OPTION,
    app_name: str = typer.Option("My Web App", "--app-name"),
    app_id: str = typer.Option("com.example.myapp", "--app-id"),
    version: str = typer.Option("1.0.0", "--version"),
    description: str = typer.Option("My converted web app", "--description"),
    icon: str = typer.Option("", "--icon", help="Icon path; enables the custom icon."),
    splash: str = typer.Option("", "--splash", help="Splash image path; enables the splash screen."),
    splash_color: str = typer.Option("#ffffff", "--splash-color"),
) -> None:
    try:
        config = AppConfig(
            app_name=app_name,
            app_id=app_id,
            version=version,
            description=description,
            icon=IconConfig(enabled=bool(icon), path=icon or "www/icon.png"),
            splash=SplashConfig(enabled=bool(splash), path=splash or "www/splash.png", color=splash_color),
        )
    except ValidationError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        raise typer.Exit(code=EXIT_CODES["error"])

    path = save_app_config(config, os.path.join(os.path.abspath(project), APP_CONFIG_PATH))
    console.print(f"App Name: [cyan]{config.app_name}[/cyan]")
    console.print(f"App ID:   [cyan]{config.app_id}[/cyan]")
    console.print(f"Version:  [cyan]{config.version}[/cyan]")
    console.print(f"[green]Saved to {path}[/green]")


@app.command(name="gitconfig", help="Show or set the git identity.")
def gitconfig_cmd(
    project: str = PROJECT_OPTION,
    name: str = typer.Option("", "--name"),
    email: str = typer.Option("", "--email"),
) -> None:
    agent = GitAgent()
    project_root = os.path.abspath(project)
    if not name and not email:
        current = agent.get_user_config(project_root)
        console.print(f"user.name:  {current['name'] or '(not set)'}")
        console.print(f"user.email: {current['email'] or '(not set)'}")
        return
    if not agent.configure_user(project_root, name, email):
        console.print("[bold red]Error:[/bold red] a name and a valid email are required")
        raise typer.Exit(code=EXIT_CODES["error"])
    console.print(f"[green]Git identity set to {name} <{email}>[/green]")


@app.command(name="serve", help="Run the HTTP API.")
def serve_cmd(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
) -> None:
    uvicorn.run("main:app", host=host, port=port)


if __name__ == "__main__":
    app()
