"""Forwarding of platform output writes to vendor datapoints."""

import logging
from collections import defaultdict

from ontology_bridge.domain.errors import DataInconsistencyError
from ontology_bridge.mapping.complex import ComplexValue, encode_value
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.platform.client import AssetPlatform, DataRecord
from ontology_bridge.state.registry import DatapointMapping, StateRegistry
from ontology_bridge.sync.alarms import VendorFactory

logger = logging.getLogger(__name__)


def forward_output(
    change: DataRecord,
    registry: StateRegistry,
    platform: AssetPlatform,
    vendor_factory: VendorFactory,
    client_reference: str,
) -> int:
    """Write a platform output change to the vendor datapoints behind it.

    Writes carrying this bridge's own client reference are echoes and are
    ignored. A datapoint with several attributes is written as one nested
    value, assembled from the platform's current values of all its
    attributes overlaid with the change.

    Returns:
        Number of vendor datapoints written.

    Raises:
        TransportError: If reading platform data or writing to the vendor fails.
    """
    if change.client_reference == client_reference:
        return 0

    datapoints: dict[str, DatapointMapping] = {}
    for name in change.data:
        mapping = registry.datapoint_by_attribute(change.asset_id, name)
        if mapping is None:
            logger.warning(
                "No datapoint writes attribute %s of asset %d", name, change.asset_id
            )
            METRICS.lookup_misses_total.labels(kind="datapoint").inc()
            continue
        datapoints.setdefault(mapping.provider_id, mapping)

    values_by_account: dict[int, dict[str, ComplexValue]] = defaultdict(dict)
    for provider_id, mapping in datapoints.items():
        current = platform.get_asset_data(mapping.asset_id, mapping.subtype)
        merged = {**current, **change.data}
        try:
            value = encode_value(
                merged, mapping.attribute_names, mapping.attribute_name_prefix
            )
        except DataInconsistencyError as e:
            logger.error("Output for datapoint %s dropped: %s", provider_id, e)
            METRICS.data_inconsistencies_total.labels(source="output").inc()
            continue
        values_by_account[mapping.account_id][provider_id] = value

    written = 0
    for account_id, values in values_by_account.items():
        with vendor_factory(account_id) as vendor:
            vendor.put_livedata(values)
        written += len(values)
        METRICS.outputs_forwarded_total.inc(len(values))
        logger.debug("Forwarded %d output values to account %d", len(values), account_id)
    return written
