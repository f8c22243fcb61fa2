"""Orquestração: trigger entre jobs, event bus e workflow de ML."""

from .chain import ChainState, ChainTrigger
from .events import ChangeNotifier, EventBus, EventPattern, StartSignal
from .workflow import (
    TRANSITIONS,
    Orchestrator,
    WorkflowExecution,
    WorkflowState,
    WorkflowTemplate,
    next_state,
)

__all__ = [
    "ChainState",
    "ChainTrigger",
    "ChangeNotifier",
    "EventBus",
    "EventPattern",
    "Orchestrator",
    "StartSignal",
    "TRANSITIONS",
    "WorkflowExecution",
    "WorkflowState",
    "WorkflowTemplate",
    "next_state",
]
