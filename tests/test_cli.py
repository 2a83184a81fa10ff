from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest
from typer.testing import CliRunner

from action_engine.actions.models import ActionStatus
from action_engine.app import ActionSummary, ReplaySummary
from action_engine.cli.main import app


def test_cli_init_creates_config_file(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 0
    config_path = tmp_path / "action_engine.yaml"
    assert config_path.exists()
    data = json.loads(config_path.read_text(encoding="utf-8"))
    assert data["workspace_root"] == str(tmp_path.resolve())
    assert data["sandbox"]["mode"] == "local"


def test_cli_init_refuses_to_overwrite(tmp_path: Path) -> None:
    runner = CliRunner()
    runner.invoke(app, ["init", str(tmp_path)])

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_cli_replay_command_invokes_replay(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    runner = CliRunner()
    captured: dict[str, object] = {}

    def fake_replay_events(
        events_path: Path,
        workspace: Path,
        sandbox_mode: str | None = None,
        log_level: str | None = None,
    ) -> ReplaySummary:
        captured["events_path"] = events_path
        captured["workspace"] = workspace
        captured["sandbox_mode"] = sandbox_mode
        captured["log_level"] = log_level
        return ReplaySummary(
            actions=[
                ActionSummary("msg-1", "1", "file: /home/project/a.txt", ActionStatus.COMPLETE),
                ActionSummary("msg-1", "2", "shell: npm run dev", ActionStatus.ABORTED),
            ]
        )

    monkeypatch.setattr("action_engine.cli.main.replay_events", fake_replay_events)

    result = runner.invoke(
        app,
        ["--log-level", "debug", "replay", "events.jsonl", "-w", str(tmp_path), "--sandbox", "docker"],
    )

    assert result.exit_code == 0
    assert "[msg-1/1] complete: file: /home/project/a.txt" in result.output
    assert "[msg-1/2] aborted: shell: npm run dev" in result.output
    assert "Replayed 2 actions (aborted=1, complete=1)." in result.output
    assert captured["events_path"] == Path("events.jsonl")
    assert captured["workspace"] == tmp_path
    assert captured["sandbox_mode"] == "docker"
    assert captured["log_level"] == "debug"


def test_cli_replay_exits_nonzero_on_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    runner = CliRunner()

    def fake_replay_events(
        events_path: Path,
        workspace: Path,
        sandbox_mode: str | None = None,
        log_level: str | None = None,
    ) -> ReplaySummary:
        return ReplaySummary(
            actions=[
                ActionSummary(
                    "msg-1",
                    "1",
                    "shell: false",
                    ActionStatus.FAILED,
                    error="Process failed with exit code 1",
                )
            ],
            protocol_errors=["Artifact ghost not found"],
        )

    monkeypatch.setattr("action_engine.cli.main.replay_events", fake_replay_events)

    result = runner.invoke(app, ["replay", "events.jsonl"])

    assert result.exit_code == 1
    assert "[msg-1/1] failed: shell: false (Process failed with exit code 1)" in result.output
    assert "Rejected event: Artifact ghost not found" in result.output


def test_cli_replay_reports_invalid_event_file(tmp_path: Path) -> None:
    runner = CliRunner()
    events = tmp_path / "events.jsonl"
    events.write_text('{"event": "artifact.add"}\n', encoding="utf-8")

    result = runner.invoke(app, ["--log-level", "info", "replay", str(events), "-w", str(tmp_path)])

    assert result.exit_code == 1
    assert "Error: Line 1:" in result.output


def test_cli_replay_rejects_unknown_sandbox_mode(tmp_path: Path) -> None:
    runner = CliRunner()
    events = tmp_path / "events.jsonl"
    events.write_text("", encoding="utf-8")

    result = runner.invoke(app, ["replay", str(events), "-w", str(tmp_path), "--sandbox", "vm"])

    assert result.exit_code == 1
    assert "Unknown sandbox mode: vm" in result.output


@pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")
def test_cli_replay_runs_actions_in_local_sandbox(tmp_path: Path) -> None:
    runner = CliRunner()
    events = tmp_path / "events.jsonl"
    lines = [
        {"event": "artifact.add", "message_id": "msg-1", "title": "Hello"},
        {
            "event": "action.add",
            "message_id": "msg-1",
            "action_id": "1",
            "action": {"type": "file", "filePath": "/home/project/src/hello.txt", "content": "hi"},
        },
        {"event": "action.run", "message_id": "msg-1", "action_id": "1"},
        {
            "event": "action.add",
            "message_id": "msg-1",
            "action_id": "2",
            "action": {"type": "shell", "content": "cat src/hello.txt > copy.txt"},
        },
        {"event": "action.run", "message_id": "msg-1", "action_id": "2"},
    ]
    events.write_text("\n".join(json.dumps(line) for line in lines), encoding="utf-8")

    result = runner.invoke(app, ["--log-level", "info", "replay", str(events), "-w", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "Replayed 2 actions (complete=2)." in result.output
    assert (tmp_path / "copy.txt").read_text(encoding="utf-8") == "hi"
