"""Tests for the cartpilot CLI (HTTP client is mocked)."""

import json
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def sched_yaml(tmp_path):
    sched = {
        "name": "weekday-lunch",
        "template_id": "tmpl-1",
        "reminder_minutes": 15,
        "timing": {"kind": "recurring", "days_of_week": [0, 2, 4], "time_of_day": "12:00"},
    }
    p = tmp_path / "sched.yaml"
    p.write_text(yaml.dump(sched))
    return str(p)


def _resp(status: int, data=None, text: str = ""):
    r = MagicMock()
    r.status_code = status
    r.json = MagicMock(return_value=data if data is not None else {})
    r.text = text
    r.is_error = status >= 400
    return r


def _patched_client():
    """Patch cli.main._client; returns (patcher, mock client)."""
    mc = MagicMock()
    mc.__enter__ = MagicMock(return_value=mc)
    mc.__exit__ = MagicMock(return_value=False)
    patcher = patch("cli.main._client", return_value=mc)
    return patcher, mc


# ── cartpilot --help ──────────────────────────────────────────────────────────


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for cmd in ("serve", "health", "order", "template", "schedule", "history", "export", "import"):
        assert cmd in result.output


def test_schedule_help(runner):
    result = runner.invoke(cli, ["schedule", "--help"])
    assert result.exit_code == 0
    for cmd in ("list", "create", "delete", "toggle", "due", "trigger", "snooze"):
        assert cmd in result.output


# ── cartpilot health / order ──────────────────────────────────────────────────


def test_health(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, {"status": "ok", "timestamp": "2026-03-02T12:00:00+00:00"})
        result = runner.invoke(cli, ["health"])
    assert result.exit_code == 0
    assert "ok" in result.output
    mc.get.assert_called_once_with("/health")


def test_order_posts_camel_case_body(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(200, {
            "success": True, "message": "Added 1 of 2 items to cart", "itemsAdded": 1, "status": "partial",
        })
        result = runner.invoke(cli, [
            "order", "https://www.doordash.com/store/chipotle-12345/",
            "--store", "Chipotle", "--item", "Chips", "--item", "Bowl", "--headless",
        ])
    assert result.exit_code == 0
    assert "Added 1 of 2 items to cart" in result.output
    path, = mc.post.call_args.args
    body = mc.post.call_args.kwargs["json"]
    assert path == "/order"
    assert body["storeUrl"] == "https://www.doordash.com/store/chipotle-12345/"
    assert body["items"] == ["Chips", "Bowl"]
    assert body["options"] == {"headless": True, "profileRef": None}


def test_order_error_exits_nonzero(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(400, {"error": "URL must be from doordash.com"})
        result = runner.invoke(cli, ["order", "https://example.com/"])
    assert result.exit_code == 1
    assert "URL must be from doordash.com" in result.output


# ── cartpilot template ────────────────────────────────────────────────────────


def test_template_list_table(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, [{
            "template_id": "tmpl-1", "name": "Lunch", "store_name": "Chipotle",
            "items": ["Chips"], "order_count": 3,
        }])
        result = runner.invoke(cli, ["template", "list"])
    assert result.exit_code == 0
    assert "tmpl-1" in result.output
    assert "Chipotle" in result.output


def test_template_list_empty(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, [])
        result = runner.invoke(cli, ["template", "list"])
    assert "No templates found." in result.output


def test_template_create(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(201, {"template_id": "tmpl-9", "name": "Lunch"})
        result = runner.invoke(cli, [
            "template", "create", "--name", "Lunch",
            "--url", "https://www.doordash.com/store/chipotle-12345/", "--item", "Chips",
        ])
    assert result.exit_code == 0
    assert "tmpl-9" in result.output
    assert mc.post.call_args.kwargs["json"]["items"] == ["Chips"]


def test_template_delete_not_found(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.delete.return_value = _resp(404, {"detail": "Template 'x' not found"})
        result = runner.invoke(cli, ["template", "delete", "x"])
    assert result.exit_code == 1
    assert "not found" in result.output


# ── cartpilot schedule ────────────────────────────────────────────────────────


def test_schedule_create_from_yaml(runner, sched_yaml):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(201, {
            "schedule_id": "s-1", "next_trigger_at": "2026-03-04T11:45:00Z",
        })
        result = runner.invoke(cli, ["schedule", "create", sched_yaml])
    assert result.exit_code == 0
    assert "s-1" in result.output
    body = mc.post.call_args.kwargs["json"]
    assert body["timing"]["days_of_week"] == [0, 2, 4]


def test_schedule_list_marks_snoozed(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, [{
            "schedule_id": "s-1", "name": "Lunch", "enabled": True,
            "timing": {"kind": "recurring"}, "next_trigger_at": "2026-03-04T11:45:00Z",
            "snoozed_until": "2026-03-04T11:50:00Z",
        }])
        result = runner.invoke(cli, ["schedule", "list"])
    assert result.exit_code == 0
    assert "snoozed" in result.output


def test_schedule_due_empty(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, [])
        result = runner.invoke(cli, ["schedule", "due"])
    assert "Nothing due." in result.output
    mc.get.assert_called_once_with("/schedules/due")


def test_schedule_snooze(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(200, {"schedule_id": "s-1", "resume_at": "2026-03-04T11:50:00Z"})
        result = runner.invoke(cli, ["schedule", "snooze", "s-1", "-m", "5"])
    assert result.exit_code == 0
    assert "2026-03-04T11:50:00Z" in result.output
    assert mc.post.call_args.kwargs["json"] == {"minutes": 5.0}


def test_schedule_toggle(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(200, {"schedule_id": "s-1", "enabled": False})
        result = runner.invoke(cli, ["schedule", "toggle", "s-1"])
    assert "Disabled" in result.output


def test_schedule_trigger(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(202, {"status": "started"})
        result = runner.invoke(cli, ["schedule", "trigger", "s-1"])
    assert result.exit_code == 0
    mc.post.assert_called_once_with("/schedules/s-1/trigger")


# ── cartpilot history / export / import ───────────────────────────────────────


def test_history_json_output(runner):
    rows = [{"outcome_id": "o-1", "status": "completed", "items_fulfilled": 2, "items_requested": 2}]
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, rows)
        result = runner.invoke(cli, ["--json", "history", "--period", "week"])
    assert result.exit_code == 0
    assert json.loads(result.output) == rows
    assert mc.get.call_args.kwargs["params"] == {"period": "week"}


def test_history_table_shows_trigger(runner):
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, [{
            "timestamp": "2026-03-04T11:45:00Z", "template_name": "Lunch", "store_name": "Chipotle",
            "status": "partial", "items_fulfilled": 1, "items_requested": 2,
            "triggered_by": "schedule", "schedule_name": "Weekday",
        }])
        result = runner.invoke(cli, ["history"])
    assert "via Weekday" in result.output
    assert "1/2" in result.output


def test_export_writes_file(runner, tmp_path):
    target = tmp_path / "backup.json"
    patcher, mc = _patched_client()
    with patcher:
        mc.get.return_value = _resp(200, {"version": "1.0", "templates": []})
        result = runner.invoke(cli, ["export", str(target)])
    assert result.exit_code == 0
    assert json.loads(target.read_text())["version"] == "1.0"


def test_import_posts_file(runner, tmp_path):
    source = tmp_path / "backup.json"
    source.write_text(json.dumps({"version": "1.0", "templates": []}))
    patcher, mc = _patched_client()
    with patcher:
        mc.post.return_value = _resp(200, {"success": True, "message": "Data imported successfully"})
        result = runner.invoke(cli, ["import", str(source)])
    assert result.exit_code == 0
    assert "Data imported successfully" in result.output
    assert mc.post.call_args.kwargs["json"]["version"] == "1.0"
