"""Unit tests for the vendor webhook dispatcher."""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock

import httpx
import pytest

from ontology_bridge.config import AccountConfig, BridgeConfig
from ontology_bridge.domain.errors import TransportError
from ontology_bridge.domain.models import Attribute, Datapoint, Subtype
from ontology_bridge.state.registry import StateRegistry
from ontology_bridge.sync.orchestrator import Orchestrator
from ontology_bridge.webhook.server import WebhookDispatcher, WebhookServer, parse_timestamp


def encode(payload: object) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def platform() -> MagicMock:
    return MagicMock()


@pytest.fixture
def trigger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def dispatcher(
    account: AccountConfig,
    registry: StateRegistry,
    platform: MagicMock,
    trigger: MagicMock,
) -> WebhookDispatcher:
    disabled = account.model_copy(update={"id": 2, "enable": False})
    config = BridgeConfig(accounts=[account, disabled])
    registry.save_asset(
        1,
        "p1",
        "open_bos_a1",
        10,
        "a1",
        [
            Datapoint(
                subtype=Subtype.INPUT,
                provider_id="dp-temp",
                attribute_name_prefix="Temperature",
                attributes=[Attribute("Temperature")],
            )
        ],
    )
    orchestrator = Orchestrator(config, registry, platform, vendor_factory=MagicMock())
    return WebhookDispatcher(orchestrator, trigger_collect=trigger)


def livedata(*items: dict) -> bytes:
    return encode({"Items": list(items), "Id": "n1", "NotificationIdentifier": "LiveData"})


class TestRouting:
    """Tests for path and account routing."""

    def test_invalid_path(self, dispatcher: WebhookDispatcher) -> None:
        assert dispatcher.dispatch("/abc/ontology-version", b"{}") == 400
        assert dispatcher.dispatch("/", b"{}") == 400

    def test_unknown_topic(self, dispatcher: WebhookDispatcher) -> None:
        assert dispatcher.dispatch("/1/other", b"{}") == 404

    def test_unknown_account(self, dispatcher: WebhookDispatcher) -> None:
        assert dispatcher.dispatch("/99/ontology-version", b"{}") == 404

    def test_disabled_account_is_ignored(
        self, dispatcher: WebhookDispatcher, trigger: MagicMock
    ) -> None:
        body = encode({"Version": 8, "NotificationIdentifier": "StructureVersion"})

        assert dispatcher.dispatch("/2/ontology-version", body) == 200
        trigger.assert_not_called()

    def test_invalid_json(self, dispatcher: WebhookDispatcher) -> None:
        assert dispatcher.dispatch("/1/ontology-livedata", b"{not json") == 400


class TestVersionEvents:
    """Tests for ontology version notifications."""

    def test_structure_version_triggers_collect(
        self, dispatcher: WebhookDispatcher, trigger: MagicMock
    ) -> None:
        body = encode({"Version": 8, "Id": "x", "NotificationIdentifier": "StructureVersion"})

        assert dispatcher.dispatch("/1/ontology-version?foo=bar", body) == 200
        trigger.assert_called_once_with(1)

    def test_other_notifications_are_ignored(
        self, dispatcher: WebhookDispatcher, trigger: MagicMock
    ) -> None:
        body = encode({"Version": 8, "NotificationIdentifier": "DataVersion"})

        assert dispatcher.dispatch("/1/ontology-version/", body) == 200
        trigger.assert_not_called()


class TestLiveDataEvents:
    """Tests for live data notifications."""

    def test_good_values_are_written(
        self, dispatcher: WebhookDispatcher, platform: MagicMock
    ) -> None:
        body = livedata(
            {"Id": "dp-temp", "Timestamp": "2024-05-01T12:00:00Z", "Quality": "Good", "Value": 21}
        )

        assert dispatcher.dispatch("/1/ontology-livedata", body) == 200
        platform.upsert_data.assert_called_once_with(
            10, Subtype.INPUT, {"Temperature": 21}, datetime(2024, 5, 1, 12, tzinfo=UTC)
        )

    def test_bad_quality_and_timestamp_are_skipped(
        self, dispatcher: WebhookDispatcher, platform: MagicMock
    ) -> None:
        body = livedata(
            {"Id": "dp-temp", "Timestamp": "2024-05-01T12:00:00Z", "Quality": "Bad", "Value": 1},
            {"Id": "dp-temp", "Timestamp": "yesterday", "Quality": "Good", "Value": 2},
        )

        assert dispatcher.dispatch("/1/ontology-livedata", body) == 200
        platform.upsert_data.assert_not_called()

    def test_platform_failure_is_server_error(
        self, dispatcher: WebhookDispatcher, platform: MagicMock
    ) -> None:
        platform.upsert_data.side_effect = TransportError("down", status_code=503)
        body = livedata(
            {"Id": "dp-temp", "Timestamp": "2024-05-01T12:00:00Z", "Quality": "good", "Value": 1}
        )

        assert dispatcher.dispatch("/1/ontology-livedata", body) == 500

    def test_naive_timestamp_is_utc(self) -> None:
        assert parse_timestamp("2024-05-01T12:00:00") == datetime(2024, 5, 1, 12, tzinfo=UTC)


class TestLiveAlarmEvents:
    """Tests for live alarm notifications."""

    def test_alarm_creates_rule(self, dispatcher: WebhookDispatcher, platform: MagicMock) -> None:
        platform.create_alarm_rule.return_value = 100
        body = encode(
            [
                {
                    "sessionId": "s1",
                    "dataPointInstanceId": "dp-temp",
                    "name": "Overheat",
                    "quality": "Good",
                    "timeStamp": "01/05/2024 12:00:00",
                    "severity": "Urgent",
                }
            ]
        )

        assert dispatcher.dispatch("/1/ontology-livealarm", body) == 200
        assert platform.create_alarm_rule.call_args.kwargs["priority"] == 1
        platform.update_alarm_status.assert_called_once()

    def test_alarm_with_bad_timestamp_is_skipped(
        self, dispatcher: WebhookDispatcher, platform: MagicMock
    ) -> None:
        body = encode(
            [{"sessionId": "s1", "dataPointInstanceId": "dp-temp", "timeStamp": "2024-05-01"}]
        )

        assert dispatcher.dispatch("/1/ontology-livealarm", body) == 200
        platform.create_alarm_rule.assert_not_called()

    def test_alarm_payload_must_be_list(self, dispatcher: WebhookDispatcher) -> None:
        assert dispatcher.dispatch("/1/ontology-livealarm", encode({"sessionId": "s1"})) == 400


class TestWebhookServer:
    """Tests for the HTTP server wrapper."""

    def test_post_is_dispatched(self) -> None:
        dispatcher = MagicMock()
        dispatcher.dispatch.return_value = 200
        server = WebhookServer(dispatcher, host="127.0.0.1", port=0)
        server.start()
        try:
            response = httpx.post(
                f"http://127.0.0.1:{server.port}/1/ontology-version", content=b"{}"
            )
        finally:
            server.stop()

        assert response.status_code == 200
        dispatcher.dispatch.assert_called_once_with("/1/ontology-version", b"{}")
