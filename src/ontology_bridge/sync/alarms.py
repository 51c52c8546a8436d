"""Mirroring of vendor alarms onto platform alarm rules, and acknowledgements back."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ontology_bridge.domain.errors import TransportError
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.ontology.client import VendorClient
from ontology_bridge.ontology.schema import LiveAlarmRecord
from ontology_bridge.platform.client import AlarmRecord, AssetPlatform
from ontology_bridge.state.registry import StateRegistry

logger = logging.getLogger(__name__)

ALARM_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
"""Layout of vendor alarm timestamps, always UTC."""

LANGUAGES = ("de", "en", "fr", "it")

GONE_TEMPLATES = {
    "de": "{name} behoben",
    "en": "{name} resolved",
    "fr": "{name} résolu",
    "it": "{name} risolto",
}

SEVERITY_PRIORITY = {
    "Critical": 1,
    "Urgent": 1,
    "High": 2,
    "Low": 3,
    "Log": 10,
}
DEFAULT_PRIORITY = 10

VendorFactory = Callable[[int], VendorClient]
"""Creates a vendor client for an account id."""


def parse_alarm_timestamp(value: str) -> datetime:
    """Parse a vendor alarm timestamp.

    Raises:
        ValueError: If the value does not match the alarm timestamp layout.
    """
    return datetime.strptime(value, ALARM_TIMESTAMP_FORMAT).replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class AlarmUpdate:
    """An alarm event of a vendor datapoint."""

    account_id: int
    session_id: str
    datapoint_id: str
    timestamp: datetime
    severity: str = ""
    name: str = ""
    description: str = ""
    active: bool = False
    acked: bool = False
    closed: bool = False
    need_acknowledge: bool = False
    acked_by: str = ""
    comment: str = ""
    value: Any = None

    @classmethod
    def from_record(
        cls, account_id: int, record: LiveAlarmRecord, timestamp: datetime
    ) -> "AlarmUpdate":
        return cls(
            account_id=account_id,
            session_id=record.session_id,
            datapoint_id=record.data_point_instance_id,
            timestamp=timestamp,
            severity=record.severity,
            name=record.name,
            description=record.description,
            active=record.active,
            acked=record.acked,
            closed=record.closed,
            need_acknowledge=record.need_acknowledge,
            acked_by=record.acked_by,
            comment=record.comment,
            value=record.value,
        )

    @property
    def priority(self) -> int:
        """Platform alarm priority; 1 is the most urgent."""
        return SEVERITY_PRIORITY.get(self.severity, DEFAULT_PRIORITY)

    def build_message(self) -> dict[str, dict[str, str]]:
        """Alarm rule texts shown when the alarm comes and goes."""
        description = f": {self.description}" if self.description else ""
        come = f"{self.name}{description} {{{{asset.name}}}} ({{{{alarm.val}}}})"
        return {
            "come": {lang: come for lang in LANGUAGES},
            "gone": {lang: GONE_TEMPLATES[lang].format(name=self.name) for lang in LANGUAGES},
        }

    def ack_message(self) -> str:
        return f"{self.acked_by}: {self.comment}"


def apply_alarm(
    update: AlarmUpdate,
    registry: StateRegistry,
    platform: AssetPlatform,
) -> list[int]:
    """Mirror a vendor alarm event onto the platform.

    Every attribute of the alarmed datapoint gets one alarm rule, created
    the first time the datapoint raises an alarm. The state of every rule
    linked to the alarm session is then updated.

    Returns:
        Ids of the updated alarm rules.

    Raises:
        TransportError: If a platform call fails.
    """
    mappings = registry.datapoints_by_provider(update.account_id, update.datapoint_id)
    if not mappings:
        logger.warning(
            "Alarm %s references unknown datapoint %s",
            update.session_id,
            update.datapoint_id,
        )
        METRICS.lookup_misses_total.labels(kind="datapoint").inc()
        return []

    for mapping in mappings:
        for attribute in mapping.attribute_names:
            rule_id = registry.get_alarm_rule(update.account_id, mapping.asset_id, attribute)
            if rule_id is None:
                rule_id = platform.create_alarm_rule(
                    asset_id=mapping.asset_id,
                    subtype=mapping.subtype,
                    attribute=attribute,
                    requires_acknowledge=update.need_acknowledge,
                    priority=update.priority,
                    message=update.build_message(),
                )
                METRICS.alarms_total.labels(action="rule_created").inc()
                logger.info("Created alarm rule %d for attribute %s", rule_id, attribute)
            registry.save_alarm(
                update.account_id, mapping.asset_id, attribute, rule_id, update.session_id
            )

    rule_ids = registry.rules_for_session(update.account_id, update.session_id)
    for rule_id in rule_ids:
        platform.update_alarm_status(
            rule_id=rule_id,
            appeared=update.timestamp,
            acknowledged=update.acked,
            acknowledge_text=update.ack_message(),
            closed=update.closed,
        )
        METRICS.alarms_total.labels(action="status_updated").inc()
    return rule_ids


def acknowledge_from_platform(
    change: AlarmRecord,
    registry: StateRegistry,
    vendor_factory: VendorFactory,
    platform: AssetPlatform,
) -> bool:
    """Forward an acknowledgement made on the platform to the vendor.

    Changes other than acknowledgements, and rules the bridge did not
    create, are ignored.

    Returns:
        Whether the acknowledgement was forwarded.

    Raises:
        TransportError: If the vendor rejects the acknowledgement.
    """
    if change.acknowledge_timestamp is None:
        return False
    alarm = registry.alarm_by_rule(change.rule_id)
    if alarm is None:
        return False

    username = ""
    if change.acknowledge_user_id:
        try:
            username = platform.get_user_name(change.acknowledge_user_id)
        except TransportError as e:
            logger.error("Getting acknowledging user name: %s", e)

    with vendor_factory(alarm.account_id) as vendor:
        vendor.ack_alarm(alarm.session_id, username, change.acknowledge_text or "")
    METRICS.alarms_total.labels(action="acknowledged").inc()
    logger.info("Forwarded acknowledgement of alarm %s", alarm.session_id)
    return True
