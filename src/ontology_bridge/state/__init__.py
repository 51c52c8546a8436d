"""Persistent synchronization state."""

from ontology_bridge.state.registry import AlarmMapping, DatapointMapping, StateRegistry

__all__ = ["AlarmMapping", "DatapointMapping", "StateRegistry"]
