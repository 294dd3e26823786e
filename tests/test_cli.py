import json
from types import SimpleNamespace

import pytest
from click.testing import CliRunner
from pulumi.automation.errors import CommandError

from gatewright.cli import cli
from gatewright.cli import commands
from gatewright.cli.commands import ConfigLoadError, load_config

VALID_CONFIG = {
    "hosted_zone_name": "example.com",
    "alias_record_name": "api",
    "caching_enabled": True,
    "routes": [
        {"type": "file", "public_path": "/", "filename": "dist/index.html"},
        {
            "type": "function",
            "public_path": "/users",
            "http_method": "GET",
            "identifier": "list-users",
            "filename": "functions/users.py",
        },
    ],
}


class FakeStack:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def _run(self, operation, result):
        self.calls.append(operation)
        if self.fail:
            raise CommandError("stderr: update failed")
        return result

    def preview(self, on_output=None):
        return self._run("preview", SimpleNamespace(change_summary={"create": 12}))

    def up(self, on_output=None):
        outputs = {"site_api-example-com_invoke_url": SimpleNamespace(value="https://x/prod")}
        return self._run("up", SimpleNamespace(outputs=outputs))

    def destroy(self, on_output=None):
        return self._run("destroy", None)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "gatewright.json"
    path.write_text(json.dumps(VALID_CONFIG))
    return path


@pytest.fixture
def fake_stack(monkeypatch):
    stack = FakeStack()
    created = []

    def create_stack(config, compiled, base_dir):
        created.append((config, compiled, base_dir))
        return stack

    monkeypatch.setattr(commands, "_create_stack", create_stack)
    stack.created = created
    return stack


def test_load_config(config_file):
    config = load_config(config_file)

    assert config.domain_name == "api.example.com"
    assert len(config.routes) == 2


def test_load_config_rejects_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")

    with pytest.raises(ConfigLoadError, match="Cannot read"):
        load_config(path)


def test_load_config_rejects_non_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[]")

    with pytest.raises(ConfigLoadError, match="must contain a JSON object"):
        load_config(path)


def test_load_config_rejects_invalid_route(tmp_path):
    path = tmp_path / "invalid.json"
    path.write_text(
        json.dumps(
            {
                "hosted_zone_name": "example.com",
                "routes": [{"type": "lambda", "public_path": "/"}],
            }
        )
    )

    with pytest.raises(ConfigLoadError, match="Invalid route type: 'lambda'"):
        load_config(path)


def test_cli_without_command_shows_help(runner):
    result = runner.invoke(cli, [])

    assert result.exit_code == 0
    assert "plan" in result.output
    assert "deploy" in result.output


def test_plan(runner, config_file):
    result = runner.invoke(cli, ["plan", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "Stack gatewright-api-example-com" in result.output
    assert "Functions" in result.output
    assert "list-users => GET https://api.example.com/users" in result.output


def test_plan_json(runner, config_file):
    result = runner.invoke(cli, ["plan", "--json", str(config_file)])

    assert result.exit_code == 0, result.output
    plan = json.loads(result.output)
    assert plan["stack_name"] == "gatewright-api-example-com"
    assert plan["rest_api_name"] == "api-example-com"
    assert plan["domain_name"] == "api.example.com"
    assert plan["resources"] == [
        {"path": "/", "http_method": "GET", "integration": "s3", "authorization": "NONE"},
        {"path": "/users", "http_method": "GET", "integration": "lambda", "authorization": "NONE"},
    ]
    assert len(plan["functions"]) == 1
    assert plan["functions"][0].startswith("GET-list-users-")
    assert plan["method_paths"] == ["//GET", "/users/GET"]


def test_plan_reports_every_compile_error(runner, tmp_path):
    path = tmp_path / "gatewright.json"
    path.write_text(
        json.dumps(
            {
                "hosted_zone_name": "example.com",
                "routes": [
                    {
                        "type": "file",
                        "public_path": "/private",
                        "filename": "index.html",
                        "authentication_enabled": True,
                    },
                    {
                        "type": "function",
                        "public_path": "/slow",
                        "http_method": "GET",
                        "identifier": "slow",
                        "filename": "functions/slow.py",
                        "timeout_in_seconds": 60,
                    },
                ],
            }
        )
    )

    result = runner.invoke(cli, ["plan", str(path)])

    assert result.exit_code == 1
    assert "Stack configuration has 2 error(s)" in result.output
    assert "Route '/private': Authentication cannot be enabled" in result.output
    assert "Route '/slow': The timeout of a Lambda function (60s)" in result.output


def test_plan_reports_unreadable_config(runner, tmp_path):
    path = tmp_path / "gatewright.json"
    path.write_text("{not json")

    result = runner.invoke(cli, ["plan", str(path)])

    assert result.exit_code == 1
    assert "Cannot read" in result.output


def test_plan_requires_existing_file(runner, tmp_path):
    result = runner.invoke(cli, ["plan", str(tmp_path / "missing.json")])

    assert result.exit_code == 2


def test_preview(runner, config_file, fake_stack):
    result = runner.invoke(cli, ["preview", str(config_file)])

    assert result.exit_code == 0, result.output
    assert fake_stack.calls == ["preview"]
    [(config, compiled, base_dir)] = fake_stack.created
    assert compiled.stack_name == "gatewright-api-example-com"
    assert base_dir == config_file.parent.resolve()
    assert "Preview gatewright-api-example-com" in result.output


def test_deploy_prints_outputs(runner, config_file, fake_stack):
    result = runner.invoke(cli, ["deploy", str(config_file)])

    assert result.exit_code == 0, result.output
    assert fake_stack.calls == ["up"]
    assert "Deployed" in result.output
    assert "https://x/prod" in result.output


def test_deploy_failure_exits_with_error(runner, config_file, fake_stack):
    fake_stack.fail = True

    result = runner.invoke(cli, ["deploy", str(config_file)])

    assert result.exit_code == 1
    assert "Error" in result.output


def test_deploy_does_not_touch_stack_for_invalid_config(runner, tmp_path, fake_stack):
    path = tmp_path / "gatewright.json"
    path.write_text(
        json.dumps(
            {
                "hosted_zone_name": "example.com",
                "routes": [
                    {
                        "type": "file",
                        "public_path": "/",
                        "filename": "index.html",
                        "authentication_enabled": True,
                    }
                ],
            }
        )
    )

    result = runner.invoke(cli, ["deploy", str(path)])

    assert result.exit_code == 1
    assert fake_stack.created == []


def test_destroy_with_yes(runner, config_file, fake_stack):
    result = runner.invoke(cli, ["destroy", "--yes", str(config_file)])

    assert result.exit_code == 0, result.output
    assert fake_stack.calls == ["destroy"]
    assert "Destroyed" in result.output


def test_destroy_cancelled(runner, config_file, fake_stack):
    result = runner.invoke(cli, ["destroy", str(config_file)], input="n\n")

    assert result.exit_code == 0
    assert fake_stack.calls == []
    assert "Destroy cancelled." in result.output
