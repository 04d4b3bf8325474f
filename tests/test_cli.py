"""Tests for the strictwatch command line."""

import json

import pytest

from strictwatch.cli import EXIT_DEGRADED, EXIT_INVALID, EXIT_OK, main
from strictwatch.categories import ViolationCategory


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(
        "name: debug\n"
        "categories: thread\n"
        "actions: [log, visual-alert, terminate-process]\n",
        encoding="utf-8",
    )
    return path


def run(capsys, *argv):
    code = main(list(argv))
    return code, capsys.readouterr().out


def test_categories_lists_every_category(capsys):
    code, out = run(capsys, "categories")
    assert code == EXIT_OK
    for category in ViolationCategory:
        assert category.value in out


def test_validate_ok(capsys, policy_file):
    code, out = run(capsys, "validate", str(policy_file))
    report = json.loads(out)
    assert code == EXIT_OK
    assert report["valid"] is True
    assert report["dropped_actions"] == []
    assert len(report["policy_hash"]) == 64


def test_validate_degraded_on_headless_host(capsys, policy_file):
    code, out = run(capsys, "validate", str(policy_file), "--non-interactive", "--no-terminate")
    report = json.loads(out)
    assert code == EXIT_DEGRADED
    assert report["effective_actions"] == ["log"]
    assert report["dropped_actions"] == ["terminate-process", "visual-alert"]


def test_validate_invalid_file(capsys, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("categories: [warp-core-breach]\n", encoding="utf-8")
    code, out = run(capsys, "validate", str(path))
    report = json.loads(out)
    assert code == EXIT_INVALID
    assert report["error"]["code"] == "WATCHDOG_UNKNOWN_CATEGORY"


def test_simulate_violation_records_actions_without_terminating(capsys, policy_file):
    code, out = run(capsys, "simulate", str(policy_file), "disk-write", "--description", "save draft")
    result = json.loads(out)
    assert code == EXIT_OK
    assert result["decision"] == "VIOLATION"
    assert result["violation"]["operation"] == "save draft"
    assert result["reported"] == 1
    assert result["recorded_actions"] == ["visual-alert", "terminate-process"]


def test_simulate_allowed(capsys, policy_file):
    code, out = run(capsys, "simulate", str(policy_file), "resource-leak")
    result = json.loads(out)
    assert result["decision"] == "ALLOWED"
    assert result["reported"] == 0
    assert result["recorded_actions"] == []
