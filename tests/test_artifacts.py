from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from action_engine.actions.models import ActionStatus, ShellAction
from action_engine.artifacts import ArtifactNotFoundError, ArtifactRegistry
from action_engine.handlers.builtins import build_default_handler_registry
from action_engine.runtime.runner import ActionNotFoundError, ProtocolError

if TYPE_CHECKING:
    from conftest import FakeSandbox


def make_registry(sandbox: FakeSandbox) -> ArtifactRegistry:
    return ArtifactRegistry(build_default_handler_registry(sandbox, completion_timeout_s=0.05))


async def test_add_artifact_is_idempotent(fake_sandbox: FakeSandbox) -> None:
    registry = make_registry(fake_sandbox)

    registry.add_artifact("msg-1", "Todo app")
    runner = registry.get_artifact("msg-1").runner
    registry.add_artifact("msg-1", "Renamed")

    artifact = registry.get_artifact("msg-1")
    assert artifact.title == "Todo app"
    assert artifact.runner is runner
    assert registry.first_artifact == artifact
    await registry.close()


async def test_update_artifact_merges_fields(fake_sandbox: FakeSandbox) -> None:
    registry = make_registry(fake_sandbox)
    registry.add_artifact("msg-1", "Todo app")

    registry.update_artifact("msg-1", closed=True)
    registry.update_artifact("msg-2", title="ignored")

    artifact = registry.get_artifact("msg-1")
    assert artifact.title == "Todo app"
    assert artifact.closed is True
    assert registry.get_artifact("msg-2") is None
    await registry.close()


async def test_actions_are_routed_to_their_artifact(fake_sandbox: FakeSandbox) -> None:
    registry = make_registry(fake_sandbox)
    registry.add_artifact("msg-1", "First")
    registry.add_artifact("msg-2", "Second")

    registry.add_action("msg-1", "1", ShellAction("ls"))
    registry.add_action("msg-2", "1", ShellAction("pwd"))
    record = await registry.run_action("msg-2", "1")
    await registry.wait_idle()

    assert record.status == ActionStatus.COMPLETE
    assert registry.get_artifact("msg-1").runner.get_action("1").status == ActionStatus.RUNNING
    assert fake_sandbox.commands == ["pwd"]
    assert registry.first_artifact.id == "msg-1"
    await registry.close()


async def test_unknown_artifact_is_a_protocol_error(
    fake_sandbox: FakeSandbox, caplog: pytest.LogCaptureFixture
) -> None:
    registry = make_registry(fake_sandbox)

    with pytest.raises(ArtifactNotFoundError, match="Artifact msg-9 not found"):
        registry.add_action("msg-9", "1", ShellAction("ls"))
    with pytest.raises(ProtocolError):
        registry.run_action("msg-9", "1")

    assert "Artifact not found for action" in caplog.text
    assert registry.first_artifact is None


async def test_unknown_action_is_a_protocol_error(fake_sandbox: FakeSandbox) -> None:
    registry = make_registry(fake_sandbox)
    registry.add_artifact("msg-1", "First")

    with pytest.raises(ActionNotFoundError):
        registry.run_action("msg-1", "7")
    await registry.close()


async def test_abort_all_actions_spans_artifacts(fake_sandbox: FakeSandbox) -> None:
    fake_sandbox.hanging.add("serve")
    registry = make_registry(fake_sandbox)
    registry.add_artifact("msg-1", "First")
    registry.add_artifact("msg-2", "Second")
    registry.add_action("msg-1", "1", ShellAction("serve"))
    registry.add_action("msg-2", "1", ShellAction("ls"))
    running = registry.run_action("msg-1", "1")

    registry.abort_all_actions()
    await registry.wait_idle()

    assert (await running).status == ActionStatus.ABORTED
    assert registry.get_artifact("msg-2").runner.get_action("1").status == ActionStatus.ABORTED
    await registry.close()
    await fake_sandbox.close()
