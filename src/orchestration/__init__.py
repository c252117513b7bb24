"""Orchestration layer - audit lifecycle state machine."""

from src.orchestration.state_machine import (
    StateMachine,
    can_transition,
    valid_transitions,
    TERMINAL_STATES,
)

__all__ = [
    "StateMachine",
    "can_transition",
    "valid_transitions",
    "TERMINAL_STATES",
]
