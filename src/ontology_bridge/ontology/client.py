"""HTTP client for the vendor ontology API.

Requests are authenticated with an OAuth2 client-credentials token and
addressed to a single gateway: ``{base_url}/gateway/{gateway_id}/api/v1/...``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from ontology_bridge.config import AccountConfig, VendorConfig, WebhookConfig
from ontology_bridge.domain.errors import TransportError
from ontology_bridge.mapping.complex import ComplexValue
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.ontology.schema import LiveAlarmRecord, Ontology

logger = logging.getLogger(__name__)

TOPIC_VERSION = "ontology-version"
TOPIC_LIVEDATA = "ontology-livedata"
TOPIC_LIVEALARM = "ontology-livealarm"

SUBSCRIPTION_ENDPOINTS = {
    TOPIC_VERSION: "core/application/data/version/subscribe",
    TOPIC_LIVEDATA: "core/application/livedata/subscribe",
    TOPIC_LIVEALARM: "core/application/livealarm/subscribe",
}


def webhook_url(base_url: str, account_id: int, topic: str) -> str:
    """URL the vendor posts ``topic`` events of an account to."""
    return f"{base_url.rstrip('/')}/{account_id}/{topic}"


class VendorClient:
    """Client for one vendor gateway."""

    def __init__(
        self,
        account: AccountConfig,
        vendor: VendorConfig,
        webhook: WebhookConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            account: Account whose gateway and credentials are used.
            vendor: Vendor API endpoints.
            webhook: Webhook settings used for subscriptions.
            transport: Optional httpx transport, mainly for tests.
        """
        self._account = account
        self._vendor = vendor
        self._webhook = webhook or WebhookConfig()
        self._base_url = (
            f"{vendor.base_url.rstrip('/')}/gateway/{account.gateway_id}/api/v1"
        )
        self._access_token: str | None = None
        self._client = httpx.Client(
            timeout=min(vendor.timeout_seconds, account.request_timeout_seconds),
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> VendorClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def authenticate(self) -> None:
        """Obtain an access token with the client-credentials grant.

        Raises:
            TransportError: If the token request fails or returns no token.
        """
        data = {
            "grant_type": "client_credentials",
            "client_id": self._account.client_id,
            "client_secret": self._account.client_secret.get_secret_value(),
            "scope": self._vendor.scope,
        }
        try:
            response = self._client.post(self._vendor.token_url, data=data)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to request access token: {e}") from e

        if response.status_code != 200:
            raise TransportError(
                f"Failed to obtain access token: {response.text}",
                status_code=response.status_code,
            )
        try:
            token = response.json().get("access_token")
        except ValueError as e:
            raise TransportError(f"Invalid token response: {e}") from e
        if not isinstance(token, str) or not token:
            raise TransportError("Invalid token response: no access_token")
        self._access_token = token

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> httpx.Response:
        if self._access_token is None:
            self.authenticate()

        url = f"{self._base_url}/{endpoint}"
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            response = self._client.request(
                method, url, params=params, json=body, headers=headers
            )
        except httpx.HTTPError as e:
            METRICS.errors_total.labels(error_type="vendor_transport").inc()
            raise TransportError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code != 200:
            METRICS.errors_total.labels(error_type="vendor_status").inc()
            raise TransportError(
                f"{method} {endpoint} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response, endpoint: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Decoding response of {endpoint}: {e}") from e

    def get_ontology_version(self) -> int:
        """Current version of the gateway's ontology."""
        endpoint = "core/application/data/version"
        version = self._json(self._request("GET", endpoint), endpoint)
        if isinstance(version, bool) or not isinstance(version, int):
            raise TransportError(f"Unexpected ontology version {version!r}")
        return version

    def get_ontology(self) -> Ontology:
        """Fetch the complete ontology document."""
        endpoint = "core/application/data"
        response = self._request("GET", endpoint)
        METRICS.ontology_fetches_total.inc()
        try:
            return Ontology.from_json(response.content)
        except ValidationError as e:
            raise TransportError(f"Invalid ontology document: {e}") from e

    def subscription_url(self, topic: str) -> str:
        """Webhook URL this client subscribes ``topic`` events to."""
        return webhook_url(self._webhook.public_base_url, self._account.id, topic)

    def _subscription(self, topic: str, with_lease: bool) -> dict[str, Any]:
        second = 1000
        minute = 60 * second
        body: dict[str, Any] = {
            "minSendTime": self._webhook.min_send_minutes * minute,
            "webhookURL": self.subscription_url(topic),
            "webhookRetries": self._webhook.retries,
            "webhookRetryDelay": self._webhook.retry_delay_seconds * second,
            "webhookPersist": self._webhook.persist,
        }
        if with_lease:
            body["webhookLeaseTime"] = self._webhook.lease_minutes * minute
            body["contentType"] = "application/json"
        return body

    def subscribe_ontology_version(self) -> dict[str, Any]:
        """Subscribe to structure version changes.

        Returns:
            Subscription result with its id and webhook URL.
        """
        endpoint = SUBSCRIPTION_ENDPOINTS[TOPIC_VERSION]
        body = self._subscription(TOPIC_VERSION, with_lease=False)
        result = self._json(self._request("POST", endpoint, body=body), endpoint)
        logger.debug("Subscribed to %s at %s", TOPIC_VERSION, body["webhookURL"])
        return result if isinstance(result, dict) else {}

    def subscribe_livedata(self) -> None:
        """Subscribe to live data and trigger the initial synchronization.

        The refresh makes the gateway send the current value of every
        datapoint to the new subscription.
        """
        endpoint = SUBSCRIPTION_ENDPOINTS[TOPIC_LIVEDATA]
        body = self._subscription(TOPIC_LIVEDATA, with_lease=True)
        self._request("POST", endpoint, body=body)
        self._request(
            "PUT", f"{endpoint}/refresh", body={"webhookURL": body["webhookURL"]}
        )
        logger.debug("Subscribed to %s at %s", TOPIC_LIVEDATA, body["webhookURL"])

    def subscribe_livealarm(self) -> None:
        """Subscribe to live alarm events."""
        endpoint = SUBSCRIPTION_ENDPOINTS[TOPIC_LIVEALARM]
        body = self._subscription(TOPIC_LIVEALARM, with_lease=True)
        self._request("POST", endpoint, body=body)
        logger.debug("Subscribed to %s at %s", TOPIC_LIVEALARM, body["webhookURL"])

    def delete_subscription(
        self,
        topic: str,
        subscription_id: str | None = None,
        url: str | None = None,
    ) -> None:
        """Delete a subscription by id or webhook URL.

        Raises:
            TransportError: If the request fails, including when no such
                subscription exists.
        """
        endpoint = SUBSCRIPTION_ENDPOINTS[topic]
        body: dict[str, str] = {}
        if subscription_id:
            body["id"] = subscription_id
        if url:
            body["webhookURL"] = url
        self._request("DELETE", endpoint, body=body)
        logger.debug("Deleted %s subscription %s", topic, subscription_id or url)

    def get_live_alarms(self, timestamp: str = "") -> list[LiveAlarmRecord]:
        """Live alarms, optionally only those changed since ``timestamp``."""
        endpoint = "core/application/livealarm"
        params = {"timestamp": timestamp} if timestamp else None
        payload = self._json(self._request("GET", endpoint, params=params), endpoint)
        try:
            return [LiveAlarmRecord.model_validate(item) for item in payload or []]
        except ValidationError as e:
            raise TransportError(f"Invalid live alarm response: {e}") from e

    def ack_alarm(self, session_id: str, acked_by: str = "", comment: str = "") -> None:
        """Acknowledge an alarm on the gateway."""
        body = {
            key: value
            for key, value in (
                ("sessionId", session_id),
                ("ackedBy", acked_by),
                ("comment", comment),
            )
            if value
        }
        self._request("POST", "core/application/livealarm/ack", body=body)
        logger.debug("Acknowledged alarm %s", session_id)

    def put_livedata(self, items: Mapping[str, ComplexValue]) -> None:
        """Write values to datapoint instances.

        Args:
            items: Value per datapoint instance (provider) id.

        Raises:
            TransportError: If the request fails or any item is rejected.
        """
        endpoint = "ontology/datapointinstance/livedata"
        body = [{"id": provider_id, "value": value} for provider_id, value in items.items()]
        results = self._json(self._request("POST", endpoint, body=body), endpoint) or []
        logger.debug("Posting data: received %d results", len(results))

        rejected = [
            f"{r.get('id')}: {r.get('errorCode')} {r.get('innerError', '')}".strip()
            for r in results
            if isinstance(r, dict) and r.get("errorCode")
        ]
        if rejected:
            raise TransportError(f"Datapoint writes rejected: {'; '.join(rejected)}")
