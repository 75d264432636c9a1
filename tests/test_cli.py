"""Unit tests for the CLI, driven through typer.testing.CliRunner."""
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from typer.testing import CliRunner

from web2apk.cli import app
from web2apk.core.errors import AppConfigError, SourceControlError
from web2apk.models.build_result import BuildResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("web2apk.cli.setup_logging"):
        yield


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("build", "update", "watch", "init", "init-config", "gitconfig", "serve"):
        assert command in result.output


def test_init_config_writes_file(tmp_path):
    result = runner.invoke(app, [
        "init-config", "--project", str(tmp_path),
        "--app-name", "Site", "--app-id", "com.octo.site", "--splash-color", "#000000",
    ])
    assert result.exit_code == 0
    data = json.loads((tmp_path / "apk-config.json").read_text())
    assert data["appName"] == "Site"
    assert data["splash"]["color"] == "#000000"
    assert "com.octo.site" in result.output


def test_init_config_invalid_app_id(tmp_path):
    result = runner.invoke(app, ["init-config", "--project", str(tmp_path), "--app-id", "bad"])
    assert result.exit_code == 2
    assert not (tmp_path / "apk-config.json").exists()


def test_watch_rejects_bad_repository():
    result = runner.invoke(app, ["watch", "--repo", "https://gitlab.com/octo/site"])
    assert result.exit_code == 2


@pytest.mark.parametrize("status, code", [
    ("succeeded", 0),
    ("failed", 1),
    ("other_conclusion", 1),
    ("timed_out", 3),
    ("no_run", 4),
    ("payload_missing", 5),
    ("cancelled", 130),
])
def test_watch_exit_codes(status, code):
    orchestrator = MagicMock()
    orchestrator.watch = AsyncMock(return_value=BuildResult(flow="watch", status=status))
    with patch("web2apk.cli._make_orchestrator", return_value=orchestrator) as make:
        result = runner.invoke(app, ["watch", "--repo", "octo/site", "--initial-delay", "0"])
    assert result.exit_code == code
    assert orchestrator.watch.call_args.args[0] == "octo/site"
    assert make.call_args.args == (10, 180, 0)


def test_update_passes_version(tmp_path):
    orchestrator = MagicMock()
    orchestrator.update = AsyncMock(return_value=BuildResult(flow="update", status="push_failed"))
    with patch("web2apk.cli._make_orchestrator", return_value=orchestrator):
        result = runner.invoke(app, ["update", "--project", str(tmp_path), "--version", "3.0.0"])
    assert result.exit_code == 6
    assert orchestrator.update.call_args.kwargs["version"] == "3.0.0"


def test_update_rejects_unknown_bump(tmp_path):
    result = runner.invoke(app, ["update", "--project", str(tmp_path), "--bump", "build"])
    assert result.exit_code == 2


def test_flow_error_exits_with_error_code(tmp_path):
    orchestrator = MagicMock()
    orchestrator.build = AsyncMock(side_effect=AppConfigError("apk-config.json is invalid"))
    with patch("web2apk.cli._make_orchestrator", return_value=orchestrator):
        result = runner.invoke(app, ["build", "--project", str(tmp_path)])
    assert result.exit_code == 2
    assert "apk-config.json is invalid" in result.output


def test_gitconfig_show(tmp_path):
    with patch("web2apk.cli.GitAgent") as agent_cls:
        agent_cls.return_value.get_user_config.return_value = {"name": "Dev", "email": ""}
        result = runner.invoke(app, ["gitconfig", "--project", str(tmp_path)])
    assert result.exit_code == 0
    assert "Dev" in result.output
    assert "(not set)" in result.output


def test_init_sets_remote_and_copies_site(tmp_path):
    site = tmp_path / "site"
    site.mkdir()
    (site / "index.html").write_text("<h1>hi</h1>")
    project = tmp_path / "project"
    project.mkdir()
    with patch("web2apk.cli.GitAgent") as agent_cls:
        agent_cls.return_value.init_repository.return_value = True
        result = runner.invoke(app, [
            "init", "--project", str(project), "--repo", "octo/site", "--site", str(site),
        ])
    assert result.exit_code == 0
    agent_cls.return_value.init_repository.assert_called_once_with(
        str(project), "https://github.com/octo/site.git"
    )
    assert (project / "www" / "index.html").exists()


def test_init_rejects_bad_repository(tmp_path):
    with patch("web2apk.cli.GitAgent") as agent_cls:
        result = runner.invoke(app, ["init", "--project", str(tmp_path), "--repo", "not a repo"])
    assert result.exit_code == 2
    agent_cls.return_value.init_repository.assert_not_called()


def test_init_git_failure(tmp_path):
    with patch("web2apk.cli.GitAgent") as agent_cls:
        agent_cls.return_value.init_repository.side_effect = SourceControlError("git init failed")
        result = runner.invoke(app, ["init", "--project", str(tmp_path), "--repo", "octo/site"])
    assert result.exit_code == 2
    assert "git init failed" in result.output


def test_build_passes_site(tmp_path):
    orchestrator = MagicMock()
    orchestrator.build = AsyncMock(return_value=BuildResult(flow="build", status="succeeded"))
    with patch("web2apk.cli._make_orchestrator", return_value=orchestrator):
        result = runner.invoke(app, ["build", "--project", str(tmp_path), "--site", "../site"])
    assert result.exit_code == 0
    assert orchestrator.build.call_args.kwargs["site_dir"] == "../site"
    assert "commit_message" not in orchestrator.build.call_args.kwargs
