"""Execution runtime: stores, chains and runners."""

from action_engine.runtime.chain import ExecutionChain, ExecutionChainClosedError
from action_engine.runtime.runner import ActionNotFoundError, ActionRunner, ProtocolError
from action_engine.runtime.store import ObservableStore

__all__ = [
    "ActionNotFoundError",
    "ActionRunner",
    "ExecutionChain",
    "ExecutionChainClosedError",
    "ObservableStore",
    "ProtocolError",
]
