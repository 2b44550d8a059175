import pytest
from click.testing import CliRunner

import cli
from config.models import CacheConfig, Config, GitHubConfig, ModelConfig


@pytest.fixture
def runner(mocker, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    mocker.patch("cli.setup_logger")
    return CliRunner()


def use_config(mocker, **github):
    config = Config(
        model=ModelConfig(provider="echo"),
        github=GitHubConfig(**github),
        cache=CacheConfig(enabled=False),
    )
    mocker.patch("cli.load_and_merge_configs", return_value=config)
    return config


def test_render(runner):
    result = runner.invoke(cli.cli, ["render"], input="# Hi\n\n- one\n")
    assert result.exit_code == 0
    assert '<h1 id="hi" class="md-heading md-h1">' in result.output
    assert '<li class="md-li">one</li>' in result.output


def test_issue_dry_run(runner, mocker):
    use_config(mocker, token="ghp_test")
    result = runner.invoke(cli.cli, ["issue", "-t", "Login bug", "--dry-run"], input="Safari fails\n")
    assert result.exit_code == 0
    assert "Login bug" in result.output
    assert "Safari fails" in result.output


def test_repo_override_is_validated(runner, mocker):
    use_config(mocker, token="ghp_test")
    result = runner.invoke(cli.cli, ["--repo", "no-slash", "issue", "-t", "T", "--dry-run"], input="x\n")
    assert result.exit_code == 2
    assert "OWNER/NAME" in result.output


def test_repo_override_applies(runner, mocker):
    config = use_config(mocker, token="ghp_test")
    result = runner.invoke(cli.cli, ["--repo", "acme/notes", "issue", "-t", "T", "--dry-run"], input="x\n")
    assert result.exit_code == 0
    assert (config.github.owner, config.github.repo) == ("acme", "notes")


def test_known_errors_exit_non_zero(runner, mocker):
    use_config(mocker)
    result = runner.invoke(cli.cli, ["whoami"])
    assert result.exit_code == 1
    assert "Missing token" in result.output


def test_format_streams_with_echo_provider(runner, mocker):
    use_config(mocker, token="ghp_test")
    result = runner.invoke(cli.cli, ["format"], input="hello world\n")
    assert result.exit_code == 0
    assert "hello" in result.output


def test_format_without_token_fails(runner, mocker):
    use_config(mocker)
    result = runner.invoke(cli.cli, ["format", "--no-stream"], input="hello\n")
    assert result.exit_code == 1
    assert "Missing token" in result.output


def test_clients_are_closed_after_command(runner, mocker):
    use_config(mocker, token="ghp_test")
    close = mocker.patch("cli.NoteCapture.close")
    aclose = mocker.patch("cli.NoteCapture.aclose", new_callable=mocker.AsyncMock)

    result = runner.invoke(cli.cli, ["format"], input="hello world\n")

    assert result.exit_code == 0
    aclose.assert_awaited_once()
    close.assert_called_once()
