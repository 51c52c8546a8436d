"""Synchronization between the vendor ontology and the platform."""

from ontology_bridge.sync.alarms import AlarmUpdate, acknowledge_from_platform, apply_alarm
from ontology_bridge.sync.livedata import LiveDataUpdate, apply_livedata
from ontology_bridge.sync.orchestrator import (
    CollectOutcome,
    Orchestrator,
    RunOnceGate,
    SyncResult,
    VersionGate,
    fetch_ontology,
)
from ontology_bridge.sync.outputs import forward_output

__all__ = [
    "AlarmUpdate",
    "CollectOutcome",
    "LiveDataUpdate",
    "Orchestrator",
    "RunOnceGate",
    "SyncResult",
    "VersionGate",
    "acknowledge_from_platform",
    "apply_alarm",
    "apply_livedata",
    "fetch_ontology",
    "forward_output",
]
