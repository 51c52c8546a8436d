"""SQLite-backed registry of synchronization state.

Holds everything the bridge must remember between cycles and restarts:
the last committed ontology version per account, the platform assets
created for each ontology node, which datapoints feed which platform
attributes, and the alarm rules created for vendor alarms.
"""

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from ontology_bridge.domain.models import Datapoint, Subtype

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DatapointMapping:
    """A vendor datapoint instance bound to one platform asset."""

    account_id: int
    provider_id: str
    asset_id: int
    """Platform asset id receiving the datapoint's values."""

    subtype: Subtype
    attribute_name_prefix: str
    attribute_names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AlarmMapping:
    """A platform alarm rule and the vendor alarm session that last fired it."""

    rule_id: int
    account_id: int
    session_id: str
    asset_id: int
    attribute: str


class StateRegistry:
    """Persistent state shared by the sync tasks of all accounts.

    Thread-safe: sync threads, webhook handlers and platform listeners
    use the same instance.
    """

    def __init__(self, db_path: Path):
        """Initialize the registry.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._lock = threading.Lock()

        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ontology_versions (
                    account_id INTEGER PRIMARY KEY,
                    version INTEGER NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS assets (
                    account_id INTEGER NOT NULL,
                    project_id TEXT NOT NULL,
                    global_asset_id TEXT NOT NULL,
                    asset_id INTEGER NOT NULL,
                    provider_id TEXT NOT NULL,
                    PRIMARY KEY (account_id, project_id, global_asset_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS datapoints (
                    account_id INTEGER NOT NULL,
                    provider_id TEXT NOT NULL,
                    asset_id INTEGER NOT NULL,
                    subtype TEXT NOT NULL,
                    prefix TEXT NOT NULL,
                    attribute_names TEXT NOT NULL,
                    PRIMARY KEY (account_id, provider_id, asset_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS datapoint_attributes (
                    asset_id INTEGER NOT NULL,
                    attribute TEXT NOT NULL,
                    account_id INTEGER NOT NULL,
                    provider_id TEXT NOT NULL,
                    PRIMARY KEY (asset_id, attribute)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alarms (
                    rule_id INTEGER NOT NULL,
                    session_id TEXT NOT NULL,
                    account_id INTEGER NOT NULL,
                    asset_id INTEGER NOT NULL,
                    attribute TEXT NOT NULL,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (rule_id, session_id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_alarm_session ON alarms(account_id, session_id)
            """)
            conn.commit()

    # Ontology version

    def get_version(self, account_id: int) -> int | None:
        """Last committed ontology version of an account, if any."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT version FROM ontology_versions WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        return row[0] if row else None

    def set_version(self, account_id: int, version: int) -> None:
        """Commit a new ontology version for an account."""
        with self._lock:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO ontology_versions (account_id, version, updated_at) "
                    "VALUES (?, ?, ?)",
                    (account_id, version, time.time()),
                )
                conn.commit()
        logger.debug("Committed ontology version %d for account %d", version, account_id)

    def versions(self) -> dict[int, tuple[int, float]]:
        """Committed version and commit time of every account."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "SELECT account_id, version, updated_at FROM ontology_versions"
            )
            return {account_id: (version, updated_at) for account_id, version, updated_at in cursor}

    # Assets and datapoints

    def get_asset_id(self, account_id: int, project_id: str, global_asset_id: str) -> int | None:
        """Platform asset id created for a node in a project, if any."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT asset_id FROM assets "
                "WHERE account_id = ? AND project_id = ? AND global_asset_id = ?",
                (account_id, project_id, global_asset_id),
            ).fetchone()
        return row[0] if row else None

    def save_asset(
        self,
        account_id: int,
        project_id: str,
        global_asset_id: str,
        asset_id: int,
        provider_id: str,
        datapoints: Iterable[Datapoint] = (),
    ) -> None:
        """Record a platform asset and the datapoints writing to it.

        Datapoint mappings previously stored for the asset are replaced.
        """
        with self._lock:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO assets "
                    "(account_id, project_id, global_asset_id, asset_id, provider_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (account_id, project_id, global_asset_id, asset_id, provider_id),
                )
                conn.execute(
                    "DELETE FROM datapoints WHERE account_id = ? AND asset_id = ?",
                    (account_id, asset_id),
                )
                conn.execute(
                    "DELETE FROM datapoint_attributes WHERE asset_id = ?", (asset_id,)
                )
                for dp in datapoints:
                    conn.execute(
                        "INSERT OR REPLACE INTO datapoints "
                        "(account_id, provider_id, asset_id, subtype, prefix, attribute_names) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            account_id,
                            dp.provider_id,
                            asset_id,
                            dp.subtype.value,
                            dp.attribute_name_prefix,
                            json.dumps(dp.attribute_names),
                        ),
                    )
                    conn.executemany(
                        "INSERT OR REPLACE INTO datapoint_attributes "
                        "(asset_id, attribute, account_id, provider_id) VALUES (?, ?, ?, ?)",
                        [
                            (asset_id, name, account_id, dp.provider_id)
                            for name in dp.attribute_names
                        ],
                    )
                conn.commit()

    def asset_count(self, account_id: int) -> int:
        """Number of platform assets recorded for an account."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM assets WHERE account_id = ?", (account_id,)
            ).fetchone()
        return row[0]

    @staticmethod
    def _mapping(row: tuple) -> DatapointMapping:
        account_id, provider_id, asset_id, subtype, prefix, names = row
        return DatapointMapping(
            account_id=account_id,
            provider_id=provider_id,
            asset_id=asset_id,
            subtype=Subtype(subtype),
            attribute_name_prefix=prefix,
            attribute_names=tuple(json.loads(names)),
        )

    def datapoints_by_provider(self, account_id: int, provider_id: str) -> list[DatapointMapping]:
        """Every platform binding of a vendor datapoint, one per project asset."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "SELECT account_id, provider_id, asset_id, subtype, prefix, attribute_names "
                "FROM datapoints WHERE account_id = ? AND provider_id = ? ORDER BY asset_id",
                (account_id, provider_id),
            )
            return [self._mapping(row) for row in cursor]

    def datapoint_by_attribute(self, asset_id: int, attribute: str) -> DatapointMapping | None:
        """The datapoint writing a platform attribute, if any."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT d.account_id, d.provider_id, d.asset_id, d.subtype, d.prefix, "
                "d.attribute_names FROM datapoint_attributes a "
                "JOIN datapoints d ON d.account_id = a.account_id "
                "AND d.provider_id = a.provider_id AND d.asset_id = a.asset_id "
                "WHERE a.asset_id = ? AND a.attribute = ?",
                (asset_id, attribute),
            ).fetchone()
        return self._mapping(row) if row else None

    # Alarms

    def get_alarm_rule(self, account_id: int, asset_id: int, attribute: str) -> int | None:
        """Alarm rule previously created for an attribute, if any."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT rule_id FROM alarms "
                "WHERE account_id = ? AND asset_id = ? AND attribute = ? LIMIT 1",
                (account_id, asset_id, attribute),
            ).fetchone()
        return row[0] if row else None

    def save_alarm(
        self,
        account_id: int,
        asset_id: int,
        attribute: str,
        rule_id: int,
        session_id: str,
    ) -> None:
        """Link an alarm rule to a vendor alarm session."""
        with self._lock:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO alarms "
                    "(rule_id, session_id, account_id, asset_id, attribute, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (rule_id, session_id, account_id, asset_id, attribute, time.time()),
                )
                conn.commit()

    def rules_for_session(self, account_id: int, session_id: str) -> list[int]:
        """Alarm rules fired by a vendor alarm session."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "SELECT rule_id FROM alarms WHERE account_id = ? AND session_id = ? "
                "ORDER BY rule_id",
                (account_id, session_id),
            )
            return [row[0] for row in cursor]

    def alarm_by_rule(self, rule_id: int) -> AlarmMapping | None:
        """The most recent vendor alarm session of an alarm rule, if any."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT rule_id, account_id, session_id, asset_id, attribute FROM alarms "
                "WHERE rule_id = ? ORDER BY updated_at DESC, rowid DESC LIMIT 1",
                (rule_id,),
            ).fetchone()
        if row is None:
            return None
        return AlarmMapping(*row)
