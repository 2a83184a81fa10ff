from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from action_engine.actions.models import ActionStatus
from action_engine.app import (
    ActionSummary,
    AppConfigError,
    initialize_config,
    replay_events,
    replay_events_async,
)
from action_engine.config import EngineConfig

if TYPE_CHECKING:
    from conftest import FakeSandbox


async def test_replay_summarizes_actions_per_artifact(
    tmp_path: Path, fake_sandbox: FakeSandbox
) -> None:
    fake_sandbox.exit_codes["make"] = 2
    events = tmp_path / "events.jsonl"
    lines = [
        {"event": "artifact.add", "message_id": "msg-1", "title": "One"},
        {"event": "artifact.add", "message_id": "msg-2", "title": "Two"},
        {
            "event": "action.add",
            "message_id": "msg-2",
            "action_id": "1",
            "action": {"type": "shell", "content": "make"},
        },
        {"event": "action.run", "message_id": "msg-2", "action_id": "1"},
        {
            "event": "action.add",
            "message_id": "msg-1",
            "action_id": "1",
            "action": {"type": "file", "filePath": "a.txt", "content": "a"},
        },
        {"event": "action.run", "message_id": "msg-1", "action_id": "1"},
        {"event": "action.run", "message_id": "msg-3", "action_id": "1"},
    ]
    events.write_text("\n".join(json.dumps(line) for line in lines), encoding="utf-8")

    summary = await replay_events_async(events, EngineConfig(), sandbox=fake_sandbox)

    assert summary.actions == [
        ActionSummary("msg-1", "1", "file: a.txt", ActionStatus.COMPLETE),
        ActionSummary(
            "msg-2", "1", "shell: make", ActionStatus.FAILED, "Process failed with exit code 2"
        ),
    ]
    assert [action.action_id for action in summary.failed] == ["1"]
    assert summary.status_counts() == {"complete": 1, "failed": 1}
    assert summary.protocol_errors == ["Artifact msg-3 not found"]
    assert summary.metrics["counters"]["artifacts.registered"] == 2
    assert summary.metrics["durations"]["replay.duration"]["count"] == 1.0


def test_initialize_config_refuses_existing_file(tmp_path: Path) -> None:
    config_path = initialize_config(tmp_path)

    assert config_path == tmp_path.resolve() / "action_engine.yaml"
    with pytest.raises(AppConfigError, match="already exists"):
        initialize_config(tmp_path)


def test_replay_events_applies_configured_logging(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls: list[tuple[str, str | None, bool]] = []

    def fake_configure_logging(level: str, fmt: str | None = None, *, force: bool = False) -> None:
        calls.append((level, fmt, force))

    monkeypatch.setattr("action_engine.app.configure_logging", fake_configure_logging)
    (tmp_path / "action_engine.yaml").write_text(
        '{"logging": {"level": "DEBUG", "format": "%(message)s"}}', encoding="utf-8"
    )
    events = tmp_path / "events.jsonl"
    events.write_text("", encoding="utf-8")

    summary = replay_events(events, tmp_path)
    replay_events(events, tmp_path, log_level="WARNING")

    assert summary.actions == []
    assert calls == [("DEBUG", "%(message)s", True)]
