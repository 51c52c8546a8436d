"""Outbound asset management platform."""

from ontology_bridge.platform.assets import create_assets
from ontology_bridge.platform.client import (
    AlarmRecord,
    AssetPlatform,
    DataRecord,
    PlatformClient,
)

__all__ = [
    "AlarmRecord",
    "AssetPlatform",
    "DataRecord",
    "PlatformClient",
    "create_assets",
]
