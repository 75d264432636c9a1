import pytest
import subprocess
from unittest.mock import MagicMock, patch

from web2apk.agents.git_agent import GitAgent, validate_email
from web2apk.core.errors import SourceControlError


def _done(stdout="", returncode=0):
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr="")


@pytest.fixture
def git_agent():
    return GitAgent()


@patch("subprocess.run")
def test_repository_from_https_remote(mock_run, git_agent):
    mock_run.return_value = _done("https://github.com/octo/site.git\n")
    assert git_agent.get_repository("/tmp/repo") == "octo/site"
    assert mock_run.call_args.args[0] == ["git", "remote", "get-url", "origin"]
    assert mock_run.call_args.kwargs["cwd"] == "/tmp/repo"


@patch("subprocess.run")
def test_repository_from_non_github_remote(mock_run, git_agent):
    mock_run.return_value = _done("https://gitlab.com/octo/site.git\n")
    with pytest.raises(SourceControlError):
        git_agent.get_repository("/tmp/repo")


@patch("subprocess.run")
def test_missing_remote(mock_run, git_agent):
    mock_run.side_effect = subprocess.CalledProcessError(2, "git remote", stderr="No such remote")
    with pytest.raises(SourceControlError):
        git_agent.get_remote_url("/tmp/repo")


@patch("subprocess.run")
def test_detect_branch_prefers_remote_default(mock_run, git_agent):
    mock_run.return_value = _done("refs/remotes/origin/master\n")
    assert git_agent.detect_branch("/tmp/repo") == "master"
    assert mock_run.call_count == 1


@patch("subprocess.run")
def test_detect_branch_falls_back_to_current(mock_run, git_agent):
    mock_run.side_effect = [
        _done(returncode=1),          # no origin/HEAD
        _done("main\n"),              # current branch
    ]
    assert git_agent.detect_branch("/tmp/repo") == "main"


@patch("subprocess.run")
def test_detect_branch_default(mock_run, git_agent):
    mock_run.side_effect = [
        _done(returncode=1),          # origin/HEAD
        _done("feature-x\n"),         # current branch
        _done(""),                    # branch -r
        _done(returncode=1),          # refs/heads/main
        _done(returncode=1),          # refs/heads/master
    ]
    assert git_agent.detect_branch("/tmp/repo") == "main"


@patch("subprocess.run")
def test_commit_all_excludes_outputs(mock_run, git_agent):
    mock_run.side_effect = [
        _done(),                      # add
        _done(returncode=1),          # diff --cached --quiet: changes staged
        _done(),                      # commit
    ]
    assert git_agent.commit_all("/tmp/repo", "Update: Version 1.0.1", exclude=("downloads",)) is True

    add_args = mock_run.call_args_list[0].args[0]
    assert add_args == ["git", "add", "--all", "--", ".", ":(exclude)downloads"]
    commit_args = mock_run.call_args_list[2].args[0]
    assert commit_args == ["git", "commit", "-m", "Update: Version 1.0.1"]
    assert git_agent.commit_count == 1


@patch("subprocess.run")
def test_commit_all_nothing_to_commit(mock_run, git_agent):
    mock_run.side_effect = [_done(), _done(returncode=0)]
    assert git_agent.commit_all("/tmp/repo", "msg") is False
    assert mock_run.call_count == 2
    assert git_agent.commit_count == 0


@patch("subprocess.run")
def test_push_success(mock_run, git_agent):
    mock_run.return_value = MagicMock()
    assert git_agent.push("/tmp/repo", branch="main") == "success"
    assert mock_run.call_args.args[0] == ["git", "push", "-u", "origin", "main"]


@patch("subprocess.run")
def test_push_retry_on_failure(mock_run, git_agent):
    # Fail first push, succeed fetch, rebase, then second push
    mock_run.side_effect = [
        subprocess.CalledProcessError(1, "git push", stderr="rejected"),
        MagicMock(),  # git fetch
        MagicMock(),  # git rebase
        MagicMock(),  # push 2 success
    ]

    with patch("time.sleep"):
        status = git_agent.push("/tmp/repo", branch="main")
        assert status == "success"
        assert mock_run.call_count == 4


@patch("subprocess.run")
def test_push_gives_up_after_second_rejection(mock_run, git_agent):
    mock_run.side_effect = [
        subprocess.CalledProcessError(1, "git push", stderr="rejected"),
        MagicMock(),
        MagicMock(),
        subprocess.CalledProcessError(1, "git push", stderr="rejected"),
    ]
    with patch("time.sleep"):
        assert git_agent.push("/tmp/repo", branch="main") == "conflict_unresolved"
    assert git_agent.push_status == "conflict_unresolved"


@patch("subprocess.run")
def test_configure_user_rejects_bad_email(mock_run, git_agent):
    assert git_agent.configure_user("/tmp/repo", "Dev", "not-an-email") is False
    mock_run.assert_not_called()


@patch("subprocess.run")
def test_configure_user(mock_run, git_agent):
    mock_run.return_value = _done()
    assert git_agent.configure_user("/tmp/repo", "Dev", "dev@example.com") is True
    assert mock_run.call_args_list[1].args[0] == ["git", "config", "user.email", "dev@example.com"]


def test_validate_email():
    assert validate_email("a@b.io")
    assert not validate_email("a@b")
    assert not validate_email("a b@c.io")


@patch("subprocess.run")
def test_set_remote_adds_missing_remote(mock_run, git_agent):
    mock_run.side_effect = [_done(returncode=2), _done()]
    git_agent.set_remote("/tmp/repo", "https://github.com/octo/site.git")
    assert mock_run.call_args.args[0] == [
        "git", "remote", "add", "origin", "https://github.com/octo/site.git"
    ]


@patch("subprocess.run")
def test_set_remote_updates_existing_remote(mock_run, git_agent):
    mock_run.side_effect = [_done("git@github.com:old/site.git\n"), _done()]
    git_agent.set_remote("/tmp/repo", "https://github.com/octo/site.git")
    assert mock_run.call_args.args[0][:3] == ["git", "remote", "set-url"]


@patch("subprocess.run")
def test_commit_failure_raises(mock_run, git_agent):
    mock_run.side_effect = [
        _done(),                      # add
        _done(returncode=1),          # changes staged
        subprocess.CalledProcessError(1, "git commit", stderr="Author identity unknown"),
    ]
    with pytest.raises(SourceControlError, match="Author identity unknown"):
        git_agent.commit_all("/tmp/repo", "msg")
    assert git_agent.commit_count == 0


@patch("subprocess.run")
def test_init_repository_creates_repo_and_remote(mock_run, git_agent, tmp_path):
    mock_run.side_effect = [_done(), _done(returncode=2), _done()]
    assert git_agent.init_repository(str(tmp_path), "https://github.com/octo/site.git") is True
    calls = [c.args[0] for c in mock_run.call_args_list]
    assert calls[0] == ["git", "init"]
    assert calls[2] == ["git", "remote", "add", "origin", "https://github.com/octo/site.git"]


@patch("subprocess.run")
def test_init_repository_keeps_existing_repo(mock_run, git_agent, tmp_path):
    (tmp_path / ".git").mkdir()
    mock_run.side_effect = [_done("https://github.com/old/site.git\n"), _done()]
    assert git_agent.init_repository(str(tmp_path), "https://github.com/octo/site.git") is False
    assert ["git", "init"] not in [c.args[0] for c in mock_run.call_args_list]


@patch("subprocess.run")
def test_init_repository_failure(mock_run, git_agent, tmp_path):
    mock_run.side_effect = subprocess.CalledProcessError(128, "git init", stderr="permission denied")
    with pytest.raises(SourceControlError):
        git_agent.init_repository(str(tmp_path), "https://github.com/octo/site.git")


@patch("subprocess.run")
def test_changed_files_under_www(mock_run, git_agent):
    mock_run.return_value = _done(" M www/index.html\n?? www/app.js\n")
    assert git_agent.changed_files("/tmp/repo") == ["www/index.html", "www/app.js"]
    assert mock_run.call_args.args[0] == ["git", "status", "--porcelain", "--", "www"]


@patch("subprocess.run")
def test_changed_files_when_status_fails(mock_run, git_agent):
    mock_run.return_value = _done(returncode=128)
    assert git_agent.changed_files("/tmp/repo") == []
