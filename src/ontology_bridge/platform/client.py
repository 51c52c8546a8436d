"""Client for the asset management platform REST API.

The platform receives the exported asset types, the asset tree and live
data, hosts alarm rules, and reports output writes and alarm
acknowledgements made by its users.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from functools import wraps
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ontology_bridge.domain.errors import TransportError
from ontology_bridge.domain.models import AssetType, Subtype
from ontology_bridge.observability.metrics import METRICS

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# 429: Too Many Requests, 5xx: Server errors
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> Callable[[F], F]:
    """Decorator for retrying failed platform requests with exponential backoff.

    Only retries on transient errors (5xx, 429, network errors).
    Client errors (4xx) are raised immediately.

    Args:
        max_retries: Maximum number of attempts.
        base_delay: Initial delay between retries in seconds.
        max_delay: Maximum delay between retries in seconds.

    Returns:
        Decorated function that retries on transient TransportError.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception: Exception | None = None
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except TransportError as e:
                    last_exception = e

                    if e.status_code and e.status_code not in RETRYABLE_STATUS_CODES:
                        logger.warning(
                            "Platform request failed with non-retryable status %d: %s",
                            e.status_code,
                            e,
                        )
                        raise

                    METRICS.platform_retries_total.inc()
                    if attempt < max_retries - 1:
                        delay = min(base_delay * (2**attempt), max_delay)
                        logger.warning(
                            "Platform request failed (attempt %d/%d), retrying in %.1fs: %s",
                            attempt + 1,
                            max_retries,
                            delay,
                            e,
                        )
                        time.sleep(delay)
            raise last_exception  # type: ignore[misc]

        return wrapper  # type: ignore[return-value]

    return decorator


class PlatformModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class DataRecord(PlatformModel):
    """Attribute values of one asset and subtype."""

    asset_id: int
    subtype: Subtype
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None
    client_reference: str | None = None


class AlarmRecord(PlatformModel):
    """State change of an alarm on the platform."""

    rule_id: int
    timestamp: datetime | None = None
    acknowledge_timestamp: datetime | None = None
    acknowledge_text: str | None = None
    acknowledge_user_id: str | None = None
    gone_timestamp: datetime | None = None


class AssetPlatform(Protocol):
    """Operations the bridge needs from the asset management platform."""

    def create_asset_type(self, asset_type: AssetType) -> None: ...

    def upsert_asset(
        self,
        project_id: str,
        global_asset_id: str,
        name: str,
        asset_type: str,
        parent_locational_id: int | None = None,
        parent_functional_id: int | None = None,
    ) -> int: ...

    def upsert_data(
        self,
        asset_id: int,
        subtype: Subtype,
        data: Mapping[str, Any],
        timestamp: datetime | None = None,
    ) -> None: ...

    def get_asset_data(self, asset_id: int, subtype: Subtype) -> dict[str, Any]: ...

    def create_alarm_rule(
        self,
        asset_id: int,
        subtype: Subtype,
        attribute: str,
        requires_acknowledge: bool,
        priority: int,
        message: Mapping[str, Mapping[str, str]],
    ) -> int: ...

    def update_alarm_status(
        self,
        rule_id: int,
        appeared: datetime,
        acknowledged: bool,
        acknowledge_text: str,
        closed: bool,
    ) -> None: ...

    def list_output_changes(self, since: datetime | None = None) -> list[DataRecord]: ...

    def list_alarm_changes(self, since: datetime | None = None) -> list[AlarmRecord]: ...

    def get_user_name(self, user_id: str) -> str: ...

    def notify_user(self, user_id: str, project_id: str, message: Mapping[str, str]) -> None: ...


class PlatformClient:
    """httpx implementation of :class:`AssetPlatform`."""

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        timeout: float = 30.0,
        client_reference: str = "ontology-bridge",
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the platform client.

        Args:
            base_url: Base URL of the platform API.
            api_token: Optional API key.
            timeout: Request timeout in seconds.
            client_reference: Reference stamped on written data, used to
                recognise the bridge's own writes when they are echoed back.
            transport: Optional httpx transport, mainly for tests.
        """
        self._base_url = base_url.rstrip("/")
        self.client_reference = client_reference

        headers: dict[str, str] = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if api_token:
            headers["X-API-Key"] = api_token

        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> PlatformClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _send(
        self,
        method: str,
        url: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        try:
            response = self._client.request(method, url, json=body, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{method} {url} failed: {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Decoding response of {method} {url}: {e}") from e

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def create_asset_type(self, asset_type: AssetType) -> None:
        """Create or update an asset type."""
        self._send("PUT", "/asset-types", asset_type.to_dict())
        logger.debug("Upserted asset type %s", asset_type.name)

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def upsert_asset(
        self,
        project_id: str,
        global_asset_id: str,
        name: str,
        asset_type: str,
        parent_locational_id: int | None = None,
        parent_functional_id: int | None = None,
    ) -> int:
        """Create or update an asset identified by project and global asset id.

        Returns:
            The platform asset id.
        """
        body = {
            "projectId": project_id,
            "globalAssetIdentifier": global_asset_id,
            "name": name,
            "assetType": asset_type,
            "parentLocationalAssetId": parent_locational_id,
            "parentFunctionalAssetId": parent_functional_id,
        }
        result = self._send("PUT", "/assets", body)
        if not isinstance(result, dict) or not isinstance(result.get("id"), int):
            raise TransportError(f"Asset upsert of {global_asset_id} returned no id")
        return result["id"]

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def upsert_data(
        self,
        asset_id: int,
        subtype: Subtype,
        data: Mapping[str, Any],
        timestamp: datetime | None = None,
    ) -> None:
        """Write attribute values of an asset."""
        when = timestamp or datetime.now(UTC)
        body = {
            "assetId": asset_id,
            "subtype": subtype.value,
            "timestamp": when.isoformat(),
            "data": dict(data),
            "clientReference": self.client_reference,
        }
        logger.debug("Upserting %s data for asset %d", subtype.value, asset_id)
        self._send("PUT", "/data", body)

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def get_asset_data(self, asset_id: int, subtype: Subtype) -> dict[str, Any]:
        """Current attribute values of an asset and subtype.

        Raises:
            TransportError: If the platform does not return exactly one record.
        """
        result = self._send(
            "GET", "/data", params={"assetId": asset_id, "dataSubtype": subtype.value}
        )
        records = result if isinstance(result, list) else []
        if len(records) != 1:
            raise TransportError(
                f"Expected one data record for asset {asset_id}/{subtype.value}, "
                f"got {len(records)}"
            )
        try:
            return DataRecord.model_validate(records[0]).data
        except ValidationError as e:
            raise TransportError(f"Invalid data record: {e}") from e

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def create_alarm_rule(
        self,
        asset_id: int,
        subtype: Subtype,
        attribute: str,
        requires_acknowledge: bool,
        priority: int,
        message: Mapping[str, Mapping[str, str]],
    ) -> int:
        """Create an externally triggered alarm rule on an attribute.

        Returns:
            The alarm rule id.
        """
        body = {
            "assetId": asset_id,
            "subtype": subtype.value,
            "attribute": attribute,
            "priority": priority,
            "requiresAcknowledge": requires_acknowledge,
            "message": {key: dict(texts) for key, texts in message.items()},
            "tags": [],
            "enable": True,
            "checkType": "external",
        }
        result = self._send("POST", "/alarm-rules", body)
        if not isinstance(result, dict) or not isinstance(result.get("id"), int):
            raise TransportError(f"Alarm rule creation for {attribute} returned no id")
        return result["id"]

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def update_alarm_status(
        self,
        rule_id: int,
        appeared: datetime,
        acknowledged: bool,
        acknowledge_text: str,
        closed: bool,
    ) -> None:
        """Report the state of an external alarm."""
        now = datetime.now(UTC).isoformat()
        body: dict[str, Any] = {"ruleId": rule_id, "timestamp": appeared.isoformat()}
        if acknowledged:
            body["acknowledgeTimestamp"] = now
            body["acknowledgeText"] = acknowledge_text
        if closed:
            body["goneTimestamp"] = now
        self._send("PUT", "/alarms", body)

    def _since(self, since: datetime | None) -> dict[str, str] | None:
        return {"since": since.isoformat()} if since else None

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def list_output_changes(self, since: datetime | None = None) -> list[DataRecord]:
        """Output attribute writes made on the platform since a point in time."""
        params = {"dataSubtype": Subtype.OUTPUT.value, **(self._since(since) or {})}
        result = self._send("GET", "/data-listener/changes", params=params)
        try:
            return [DataRecord.model_validate(item) for item in result or []]
        except ValidationError as e:
            raise TransportError(f"Invalid output change: {e}") from e

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    def list_alarm_changes(self, since: datetime | None = None) -> list[AlarmRecord]:
        """Alarm state changes made on the platform since a point in time."""
        result = self._send("GET", "/alarm-listener/changes", params=self._since(since))
        try:
            return [AlarmRecord.model_validate(item) for item in result or []]
        except ValidationError as e:
            raise TransportError(f"Invalid alarm change: {e}") from e

    def get_user_name(self, user_id: str) -> str:
        """Display name of a platform user."""
        result = self._send("GET", f"/users/{user_id}")
        if not isinstance(result, dict):
            return ""
        name = " ".join(p for p in (result.get("firstname"), result.get("lastname")) if p)
        return name or result.get("email") or ""

    def notify_user(self, user_id: str, project_id: str, message: Mapping[str, str]) -> None:
        """Send a notification to a platform user."""
        body = {"user": user_id, "projectId": project_id, "message": dict(message)}
        self._send("POST", "/communication/notifications", body)
