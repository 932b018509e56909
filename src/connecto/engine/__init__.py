"""Deal lifecycle engine — pure transition rules."""

from connecto.engine.state_machine import DealStateMachine

__all__ = ["DealStateMachine"]
