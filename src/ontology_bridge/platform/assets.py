"""Creation of the resolved asset tree on the platform."""

import logging
from datetime import UTC, datetime

from ontology_bridge.config import AccountConfig
from ontology_bridge.domain.models import MASTER_ATTRIBUTE, ResolvedNode, Subtype
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.platform.client import AssetPlatform
from ontology_bridge.state.registry import StateRegistry

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "open_bos_"


def notification_message(created: int) -> dict[str, str]:
    return {
        "de": (
            f"OpenBOS App hat {created} neue Assets angelegt. "
            "Diese sind nun im Asset-Management verfügbar."
        ),
        "en": (
            f"OpenBOS app added {created} new assets. "
            "They are now available in Asset Management."
        ),
    }


class _ProjectAssets:
    """Creates one project's assets and upserts their property data."""

    def __init__(
        self,
        platform: AssetPlatform,
        registry: StateRegistry,
        account: AccountConfig,
        project_id: str,
        prefix: str,
        timestamp: datetime,
    ):
        self._platform = platform
        self._registry = registry
        self._account = account
        self._project_id = project_id
        self._prefix = prefix
        self._timestamp = timestamp
        self.created = 0

    def create(
        self,
        node: ResolvedNode,
        parent_locational_id: int | None = None,
        parent_functional_id: int | None = None,
    ) -> None:
        global_asset_id = node.global_asset_id(self._prefix)
        known = self._registry.get_asset_id(
            self._account.id, self._project_id, global_asset_id
        )
        asset_id = self._platform.upsert_asset(
            project_id=self._project_id,
            global_asset_id=global_asset_id,
            name=node.name,
            asset_type=node.asset_type_name(self._prefix),
            parent_locational_id=parent_locational_id,
            parent_functional_id=parent_functional_id,
        )
        if known is None:
            self.created += 1
            METRICS.assets_created_total.inc()
            logger.debug(
                "Created asset %s (%d) in project %s",
                global_asset_id,
                asset_id,
                self._project_id,
            )

        self._registry.save_asset(
            self._account.id,
            self._project_id,
            global_asset_id,
            asset_id,
            node.id,
            node.datapoints,
        )
        self._platform.upsert_data(
            asset_id,
            Subtype.PROPERTY,
            {MASTER_ATTRIBUTE: int(node.is_master)},
            self._timestamp,
        )

        for dp in node.datapoints:
            if dp.data:
                self._platform.upsert_data(asset_id, dp.subtype, dp.data, self._timestamp)
                METRICS.data_upserts_total.labels(source="hierarchy").inc()

        for child in node.locational_children.values():
            self.create(child, parent_locational_id=asset_id)
        for child in node.functional_children:
            self.create(child, parent_functional_id=asset_id)


def create_assets(
    platform: AssetPlatform,
    registry: StateRegistry,
    account: AccountConfig,
    root: ResolvedNode,
    prefix: str = DEFAULT_PREFIX,
) -> int:
    """Create or update the asset tree in every project of an account.

    The tree is walked depth first; locational children link to their parent
    as locational parent, functional children as functional parent. The
    asset and datapoint mapping is recorded in the registry, and property
    values carried by the tree are written as data. The account's user is
    notified per project when new assets appeared.

    Args:
        platform: Platform client.
        registry: State registry.
        account: Account owning the tree.
        root: Root of the resolved tree.
        prefix: Prefix of asset type names and global asset ids.

    Returns:
        Number of newly created assets over all projects.

    Raises:
        TransportError: On the first failing platform call.
    """
    timestamp = datetime.now(UTC)
    total = 0
    for project_id in account.project_ids:
        project = _ProjectAssets(platform, registry, account, project_id, prefix, timestamp)
        project.create(root)
        if project.created and account.user_id:
            platform.notify_user(
                account.user_id, project_id, notification_message(project.created)
            )
        logger.info(
            "Account %d project %s: %d new assets", account.id, project_id, project.created
        )
        total += project.created
    return total
