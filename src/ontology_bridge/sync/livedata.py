"""Forwarding of vendor live data to platform attributes."""

import logging
from dataclasses import dataclass
from datetime import datetime

from ontology_bridge.domain.errors import DataInconsistencyError
from ontology_bridge.mapping.complex import ComplexValue, decode_value
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.platform.client import AssetPlatform
from ontology_bridge.state.registry import StateRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LiveDataUpdate:
    """A new value of a vendor datapoint or property instance."""

    account_id: int
    provider_id: str
    timestamp: datetime
    value: ComplexValue


def apply_livedata(
    update: LiveDataUpdate,
    registry: StateRegistry,
    platform: AssetPlatform,
) -> int:
    """Write a live value to every platform asset the datapoint feeds.

    Nested values are flattened below the datapoint's attribute name
    prefix; scalar values go to its only attribute. Values that fit
    neither shape are logged and dropped.

    Returns:
        Number of platform assets written.

    Raises:
        TransportError: If a platform write fails.
    """
    mappings = registry.datapoints_by_provider(update.account_id, update.provider_id)
    if not mappings:
        logger.warning(
            "No datapoint %s known for account %d", update.provider_id, update.account_id
        )
        METRICS.lookup_misses_total.labels(kind="datapoint").inc()
        return 0

    first = mappings[0]
    try:
        data = decode_value(update.value, first.attribute_names, first.attribute_name_prefix)
    except DataInconsistencyError as e:
        logger.error("Live data for datapoint %s dropped: %s", update.provider_id, e)
        METRICS.data_inconsistencies_total.labels(source="livedata").inc()
        return 0

    for mapping in mappings:
        platform.upsert_data(mapping.asset_id, mapping.subtype, data, update.timestamp)
        METRICS.data_upserts_total.labels(source="livedata").inc()
    return len(mappings)
