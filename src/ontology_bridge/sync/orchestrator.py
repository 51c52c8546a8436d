"""Per-account ontology synchronization.

A sync cycle checks the remote ontology version, and only when it differs
from the last committed one fetches the full ontology, rebuilds the asset
types and the asset tree, pushes them to the platform, and commits the new
version. A failure anywhere aborts the cycle without committing, so the
next cycle retries in full.
"""

import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from ontology_bridge.config import AccountConfig, BridgeConfig
from ontology_bridge.domain.errors import (
    BridgeError,
    LookupMissError,
    NoUpdateError,
    TransportError,
)
from ontology_bridge.domain.models import AssetType, ResolvedNode
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.ontology.catalog import build_catalog
from ontology_bridge.ontology.client import SUBSCRIPTION_ENDPOINTS, VendorClient
from ontology_bridge.ontology.hierarchy import build_hierarchy
from ontology_bridge.platform.assets import create_assets
from ontology_bridge.platform.client import AssetPlatform
from ontology_bridge.state.registry import StateRegistry

logger = logging.getLogger(__name__)


class CollectOutcome(Enum):
    """Result of one collect attempt."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    BUSY = "busy"
    """Another collect of the same account was in flight."""

    FAILED = "failed"
    DISABLED = "disabled"


@dataclass
class SyncResult:
    """Output of one ontology transformation."""

    version: int
    asset_types: list[AssetType]
    root: ResolvedNode


class RunOnceGate:
    """Non-blocking per-key mutual exclusion.

    A second caller for a key that is already running does not wait; it is
    told the key is busy and skips its run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[int] = set()

    def try_acquire(self, key: int) -> bool:
        with self._lock:
            if key in self._running:
                return False
            self._running.add(key)
            return True

    def release(self, key: int) -> None:
        with self._lock:
            self._running.discard(key)

    @contextmanager
    def hold(self, key: int) -> Iterator[bool]:
        """Hold the gate for ``key`` if free; yields whether it was acquired."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    def in_flight(self) -> set[int]:
        with self._lock:
            return set(self._running)


class VersionGate:
    """Compares the remote ontology version with the last committed one."""

    def __init__(self, registry: StateRegistry):
        self._registry = registry

    def check(self, client: VendorClient, account_id: int, force: bool = False) -> int:
        """Return the remote version if it requires a rebuild.

        Args:
            client: Vendor client of the account.
            account_id: Account id.
            force: Rebuild even if the version is unchanged.

        Raises:
            NoUpdateError: If the remote version equals the committed one.
            TransportError: If the version cannot be read.
        """
        remote = client.get_ontology_version()
        committed = self._registry.get_version(account_id)
        if not force and committed is not None and remote == committed:
            METRICS.version_checks_total.labels(result="unchanged").inc()
            raise NoUpdateError(remote)
        METRICS.version_checks_total.labels(result="changed").inc()
        logger.info(
            "Ontology version of account %d: committed %s, remote %d",
            account_id,
            committed,
            remote,
        )
        return remote

    def commit(self, account_id: int, version: int) -> None:
        """Record a successfully synchronized version."""
        self._registry.set_version(account_id, version)
        METRICS.ontology_version.labels(account_id=str(account_id)).set(version)


def fetch_ontology(
    client: VendorClient,
    account: AccountConfig,
    version: int,
    asset_type_prefix: str = "open_bos_",
) -> SyncResult:
    """Fetch the ontology and transform it into asset types and an asset tree.

    Args:
        client: Vendor client of the account.
        account: Account whose asset filter applies.
        version: Remote version the fetched ontology is recorded under.
        asset_type_prefix: Prefix of asset type names.

    Raises:
        TransportError: If the ontology cannot be fetched or parsed.
    """
    ontology = client.get_ontology()
    with METRICS.rebuild_duration_seconds.time():
        catalog = build_catalog(ontology, asset_type_prefix)
        root = build_hierarchy(ontology, catalog.lookup, account.asset_filter)
    return SyncResult(version=version, asset_types=catalog.asset_types, root=root)


class Orchestrator:
    """Runs sync cycles of all accounts against one platform and registry."""

    def __init__(
        self,
        config: BridgeConfig,
        registry: StateRegistry,
        platform: AssetPlatform,
        vendor_factory: Callable[[int], VendorClient] | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Bridge configuration.
            registry: State registry.
            platform: Platform client.
            vendor_factory: Creates a vendor client for an account id.
                Defaults to clients built from the configuration.
        """
        self.config = config
        self.registry = registry
        self.platform = platform
        self._vendor_factory = vendor_factory or self.vendor
        self.gate = RunOnceGate()
        self.version_gate = VersionGate(registry)
        self.last_success: dict[int, float] = {}
        self.last_failure: dict[int, float] = {}
        self._results: dict[int, SyncResult] = {}

    def vendor(self, account_id: int) -> VendorClient:
        """Create a vendor client for a configured account."""
        account = self.config.account(account_id)
        if account is None:
            raise LookupMissError("account", str(account_id))
        return VendorClient(account, self.config.vendor, self.config.webhook)

    def current(self, account_id: int) -> SyncResult | None:
        """The last successfully synchronized ontology of an account."""
        return self._results.get(account_id)

    @property
    def asset_type_prefix(self) -> str:
        return self.config.platform.asset_type_prefix

    def collect(self, account: AccountConfig, force: bool = False) -> CollectOutcome:
        """Run one collect cycle for an account unless one is already running.

        Errors are logged and counted; they never propagate.
        """
        if not account.enable:
            return CollectOutcome.DISABLED
        with self.gate.hold(account.id) as acquired:
            if not acquired:
                logger.info("Collect of account %d already in flight, skipping", account.id)
                return CollectOutcome.BUSY
            return self._collect(account, force)

    def collect_by_id(self, account_id: int) -> CollectOutcome:
        """Collect a configured account by id, as triggered by a webhook."""
        account = self.config.account(account_id)
        if account is None:
            logger.warning("Collect requested for unknown account %d", account_id)
            return CollectOutcome.FAILED
        return self.collect(account)

    def _collect(self, account: AccountConfig, force: bool) -> CollectOutcome:
        logger.info("Collecting account %d started", account.id)
        try:
            with self._vendor_factory(account.id) as client:
                version = self.version_gate.check(client, account.id, force)
                result = fetch_ontology(client, account, version, self.asset_type_prefix)

            for asset_type in result.asset_types:
                self.platform.create_asset_type(asset_type)
            created = create_assets(
                self.platform, self.registry, account, result.root, self.asset_type_prefix
            )
            self.version_gate.commit(account.id, result.version)
            self._results[account.id] = result
        except NoUpdateError as e:
            logger.debug(
                "Ontology of account %d is up to date (version %d)", account.id, e.version
            )
            self.last_success[account.id] = time.time()
            return CollectOutcome.UNCHANGED
        except (BridgeError, sqlite3.Error) as e:
            logger.error("Collecting account %d failed: %s", account.id, e)
            METRICS.rebuilds_total.labels(result="failure").inc()
            METRICS.errors_total.labels(error_type="collect").inc()
            self.last_failure[account.id] = time.time()
            return CollectOutcome.FAILED

        METRICS.rebuilds_total.labels(result="success").inc()
        METRICS.hierarchy_nodes.labels(account_id=str(account.id)).set(result.root.count())
        self.last_success[account.id] = time.time()
        logger.info(
            "Collecting account %d finished: version %d, %d asset types, %d new assets",
            account.id,
            result.version,
            len(result.asset_types),
            created,
        )
        return CollectOutcome.UPDATED

    def subscribe(self, account: AccountConfig) -> None:
        """Subscribe the account's webhooks for version, live data and alarms.

        Subscriptions left at this bridge's webhook URLs by an earlier run
        are deleted first.

        Raises:
            TransportError: If a subscription fails.
        """
        with self._vendor_factory(account.id) as client:
            for topic in SUBSCRIPTION_ENDPOINTS:
                try:
                    client.delete_subscription(topic, url=client.subscription_url(topic))
                except TransportError as e:
                    if e.status_code != 404:
                        raise
            client.subscribe_ontology_version()
            logger.info("Subscribed to ontology updates of account %d", account.id)
            client.subscribe_livedata()
            logger.info("Subscribed to data updates of account %d", account.id)
            client.subscribe_livealarm()
            logger.info("Subscribed to alarm updates of account %d", account.id)

    def sync_account(
        self,
        account: AccountConfig,
        subscribe: bool = True,
        force: bool = False,
    ) -> CollectOutcome:
        """Collect an account and, if that succeeded, (re)subscribe its webhooks."""
        outcome = self.collect(account, force=force)
        if not subscribe or outcome not in (CollectOutcome.UPDATED, CollectOutcome.UNCHANGED):
            return outcome
        try:
            self.subscribe(account)
        except TransportError as e:
            logger.error("Subscribing account %d failed: %s", account.id, e)
            METRICS.errors_total.labels(error_type="subscribe").inc()
            self.last_failure[account.id] = time.time()
            return CollectOutcome.FAILED
        return outcome
