"""Tests for covgate/cli.py"""

import json

import pytest
from click.testing import CliRunner

from covgate.cli import cli

API = "https://api.github.com"
SHA = "abc123"
BADGE_URL = "http://coverage.example.com/bo/badges/flat.svg"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def badge(tmp_path):
    p = tmp_path / "report" / "badges" / "flat.svg"
    p.parent.mkdir(parents=True)
    p.write_text("<svg><title>coverage: 82.3%</title></svg>")
    return p


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "covgate" in result.output


def test_init_writes_template(runner, tmp_path):
    out = tmp_path / "covgate.yaml"
    result = runner.invoke(cli, ["init", "--output", str(out)])
    assert result.exit_code == 0
    assert out.exists()


def test_init_refuses_overwrite(runner, tmp_path):
    out = tmp_path / "covgate.yaml"
    out.write_text("x")
    result = runner.invoke(cli, ["init", "--output", str(out)])
    assert result.exit_code == 2


def test_parse_badge(runner, badge):
    result = runner.invoke(cli, ["parse", str(badge)])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["percentage"] == 82.3
    assert data["source"] == "local"


def test_parse_invalid_badge(runner, tmp_path):
    p = tmp_path / "bad.svg"
    p.write_text("<svg/>")
    result = runner.invoke(cli, ["parse", str(p)])
    assert result.exit_code == 1


def test_compare(runner):
    result = runner.invoke(cli, ["compare", "80.0", "82.3"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["description"] == "80% -> 82.3%"
    assert data["classification"] == "improved"


def test_compare_negative_tolerance_is_config_error(runner):
    result = runner.invoke(cli, ["compare", "80", "81", "--tolerance", "-1"])
    assert result.exit_code == 2


def test_compare_non_number(runner):
    result = runner.invoke(cli, ["compare", "eighty", "81"])
    assert result.exit_code == 2


def test_output_file_and_pretty(runner, tmp_path):
    out = tmp_path / "verdict.json"
    result = runner.invoke(cli, ["--pretty", "--output", str(out), "compare", "1", "2"])
    assert result.exit_code == 0
    assert json.loads(out.read_text())["delta"] == 1.0
    assert "\n  " in out.read_text()


def test_run_compare_mode(runner, badge, monkeypatch, requests_mock):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("GITHUB_REPOSITORY", "brouberol/bo")
    monkeypatch.setenv("COMMIT_SHA", SHA)
    monkeypatch.setenv("RUN_ID", "345")
    monkeypatch.setenv("PULL_NUMBER", "12")
    monkeypatch.setenv("COV_REPORT_DIR", str(badge.parent.parent))
    monkeypatch.setenv("COVGATE_BADGE_URL", BADGE_URL)
    requests_mock.get(BADGE_URL, text="<title>coverage: 80.0%</title>")
    post = requests_mock.post(f"{API}/repos/brouberol/bo/statuses/{SHA}", status_code=201, json={})

    result = runner.invoke(cli, ["run", "--ref", "feature"])

    assert result.exit_code == 0
    assert post.last_request.json()["description"] == "80% -> 82.3%"
    assert '"state": "done"' in result.output


def test_run_missing_config_exits_2(runner, requests_mock):
    result = runner.invoke(cli, ["run", "--ref", "feature"])
    assert result.exit_code == 2
    assert requests_mock.call_count == 0


def test_run_baseline_not_found_exits_1(runner, badge, monkeypatch, requests_mock):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("GITHUB_REPOSITORY", "brouberol/bo")
    monkeypatch.setenv("COMMIT_SHA", SHA)
    monkeypatch.setenv("RUN_ID", "345")
    monkeypatch.setenv("PULL_NUMBER", "12")
    monkeypatch.setenv("COV_REPORT_DIR", str(badge.parent.parent))
    monkeypatch.setenv("COVGATE_BADGE_URL", BADGE_URL)
    requests_mock.get(BADGE_URL, status_code=404)
    requests_mock.post(f"{API}/repos/brouberol/bo/statuses/{SHA}", status_code=201, json={})

    result = runner.invoke(cli, ["run", "--ref", "feature"])

    assert result.exit_code == 1


def test_run_without_ref_exits_2(runner, badge, monkeypatch, requests_mock):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("GITHUB_REPOSITORY", "brouberol/bo")
    monkeypatch.setenv("COMMIT_SHA", SHA)
    monkeypatch.setenv("COV_REPORT_DIR", str(badge.parent.parent))
    monkeypatch.setenv("COVGATE_BADGE_URL", BADGE_URL)

    result = runner.invoke(cli, ["run"])

    assert result.exit_code == 2
    assert "run.ref_name" in result.output
    assert requests_mock.call_count == 0


def test_missing_config_file(runner, tmp_path):
    result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "run"])
    assert result.exit_code == 2


def test_plan_lists_changes_without_mutating(runner, badge, monkeypatch, make_store):
    store = make_store(keys=["bo/old.html"])
    monkeypatch.setattr("covgate.pipeline.S3ObjectStore", lambda **_kwargs: store)
    monkeypatch.setenv("COV_REPORT_DIR", str(badge.parent.parent))
    monkeypatch.setenv("AWS_S3_BUCKET", "coverage-bucket")
    monkeypatch.setenv("AWS_REGION", "eu-west-3")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIA")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.setenv("COVGATE_PREFIX", "bo")

    result = runner.invoke(cli, ["plan"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["summary"] == {"uploads": 1, "deletes": 1}
    assert [c[0] for c in store.calls] == ["list"]


def test_plan_requires_bucket(runner, badge, monkeypatch):
    monkeypatch.setenv("COV_REPORT_DIR", str(badge.parent.parent))
    result = runner.invoke(cli, ["plan"])
    assert result.exit_code == 2
