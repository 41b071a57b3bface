"""Tests for the depalign command line."""

import json

import pytest

from depalign.args import parse_args
from depalign.cli import build_policy, main
from depalign.constants import Constants, ExitCodes, default_policy_settings

REQUEST_YAML = """\
dependencies:
  implementation:
    - com.fasterxml.jackson.core:jackson-databind:2.8.9
    - io.vertx:vertx-core:3.5.3
metadata:
  io.vertx:vertx-core:
    "3.5.3":
      - com.fasterxml.jackson.core:jackson-databind:2.9.5
  com.fasterxml.jackson.core:jackson-databind:
    "2.8.9": []
    "2.9.5": []
"""


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Keep config discovery and log level changes away from the real environment."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(Constants.ENV_CONFIG, raising=False)
    monkeypatch.setenv(Constants.ENV_LOG_LEVEL, "INFO")


@pytest.fixture
def request_file(tmp_path):
    path = tmp_path / "request.yml"
    path.write_text(REQUEST_YAML, encoding="utf-8")
    return str(path)


def run(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


class TestArgs:
    def test_resolve_defaults(self):
        ns = parse_args(["resolve", "-i", "request.yml"])
        assert ns.action == "resolve"
        assert ns.INPUT == "request.yml"
        assert ns.CONFIGURATIONS == []
        assert ns.FAIL_ON_VERSION_CONFLICT is None
        assert ns.LOG_LEVEL == "INFO"

    def test_resolve_flags(self):
        ns = parse_args([
            "resolve", "-i", "request.yml",
            "-c", "runtimeClasspath", "-c", "compileClasspath",
            "--fail-on-version-conflict", "--max-workers", "2",
            "--loglevel", "debug",
        ])
        assert ns.CONFIGURATIONS == ["runtimeClasspath", "compileClasspath"]
        assert ns.FAIL_ON_VERSION_CONFLICT is True
        assert ns.MAX_WORKERS == 2
        assert ns.LOG_LEVEL == "DEBUG"

    def test_input_required(self):
        with pytest.raises(SystemExit):
            parse_args(["resolve"])


class TestPolicyPrecedence:
    def test_defaults(self):
        settings = default_policy_settings({})
        assert settings["fail_on_version_conflict"] is False
        assert settings["max_workers"] == Constants.MAX_WORKERS

    def test_config_sections(self):
        settings = default_policy_settings({
            "policy": {"fail_on_version_conflict": True, "unknown": 1},
            "resolution": {"lookup_timeout": 5},
        })
        assert settings["fail_on_version_conflict"] is True
        assert settings["lookup_timeout"] == 5
        assert "unknown" not in settings

    def test_cli_overrides_config(self, tmp_path):
        config = tmp_path / "custom.yml"
        config.write_text("resolution:\n  max_workers: 2\npolicy:\n  fail_on_version_conflict: true\n", encoding="utf-8")
        policy = build_policy(parse_args(["resolve", "-i", "x.yml", "--config", str(config), "--max-workers", "4"]))
        assert policy.max_workers == 4
        assert policy.fail_on_version_conflict is True

    def test_config_discovered_in_working_directory(self, tmp_path):
        (tmp_path / "depalign.yml").write_text("policy:\n  fail_on_non_reproducible_resolution: true\n", encoding="utf-8")
        policy = build_policy(parse_args(["resolve", "-i", "x.yml"]))
        assert policy.fail_on_non_reproducible_resolution is True


class TestResolveCommand:
    def test_success_writes_json_to_stdout(self, request_file, capsys):
        assert run(["resolve", "-i", request_file, "-c", "runtimeClasspath"]) == ExitCodes.SUCCESS.value
        data = json.loads(capsys.readouterr().out)
        report = data["configurations"]["runtimeClasspath"]
        assert report["resolved"]["com.fasterxml.jackson.core:jackson-databind"] == "2.9.5"
        assert report["warnings"][0]["requests"] == {
            "2.8.9": ["implementation"],
            "2.9.5": ["io.vertx:vertx-core:3.5.3"],
        }

    def test_version_conflict_fails(self, request_file, capsys):
        code = run(["resolve", "-i", request_file, "--fail-on-version-conflict"])
        assert code == ExitCodes.RESOLUTION_FAILURE.value
        data = json.loads(capsys.readouterr().out)
        issue = data["configurations"]["compileClasspath"]["error"]["issues"][0]
        assert issue["kind"] == "VERSION_CONFLICT"
        assert issue["message"].startswith(
            "VERSION_CONFLICT for com.fasterxml.jackson.core:jackson-databind between versions 2.8.9 and 2.9.5"
        )

    def test_config_file_policy(self, request_file, tmp_path):
        config = tmp_path / "strict.yml"
        config.write_text("policy:\n  fail_on_version_conflict: true\n", encoding="utf-8")
        code = run(["resolve", "-i", request_file, "--config", str(config), "-q"])
        assert code == ExitCodes.RESOLUTION_FAILURE.value

    def test_error_on_warnings(self, request_file):
        code = run(["resolve", "-i", request_file, "--error-on-warnings", "-q"])
        assert code == ExitCodes.EXIT_WARNINGS.value

    def test_output_file(self, request_file, tmp_path, capsys):
        out = tmp_path / "out.json"
        assert run(["resolve", "-i", request_file, "-o", str(out)]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out == ""
        data = json.loads(out.read_text(encoding="utf-8"))
        assert set(data["configurations"]) == {"compileClasspath", "runtimeClasspath"}

    def test_quiet(self, request_file, capsys):
        assert run(["resolve", "-i", request_file, "-q"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out == ""

    def test_missing_input(self, tmp_path):
        assert run(["resolve", "-i", str(tmp_path / "absent.yml")]) == ExitCodes.FILE_ERROR.value

    def test_malformed_input(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("dependencies:\n  implementation:\n    - com.example:lib\n", encoding="utf-8")
        assert run(["resolve", "-i", str(path)]) == ExitCodes.FILE_ERROR.value

    def test_missing_metadata_fails_resolution(self, tmp_path):
        path = tmp_path / "request.yml"
        path.write_text("dependencies:\n  implementation:\n    - com.example:lib:1.0\n", encoding="utf-8")
        assert run(["resolve", "-i", str(path), "-q"]) == ExitCodes.RESOLUTION_FAILURE.value
