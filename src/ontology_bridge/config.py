"""Configuration models for the Ontology Bridge."""

import re
from pathlib import Path
from typing import Literal, Self

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FilterRule(BaseModel):
    """Single asset filter rule."""

    parameter: str
    """Node field the rule addresses: id, name, templateID or is_master."""

    regex: str
    """Pattern searched in the field's string value."""

    @field_validator("regex")
    @classmethod
    def check_regex(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regex {value!r}: {e}") from e
        return value


class AccountConfig(BaseModel):
    """Connection to one vendor gateway.

    Each account is synchronized independently: its own ontology version
    marker, asset mapping and refresh schedule.
    """

    id: int
    """Account id; also the first path segment of its webhook URLs."""

    gateway_id: str
    """Vendor gateway the ontology is read from."""

    client_id: str
    client_secret: SecretStr

    enable: bool = True
    """Disabled accounts are validated but never synchronized."""

    refresh_interval_hours: float = Field(default=24.0, gt=0)
    """Interval between scheduled ontology version checks."""

    request_timeout_seconds: float = Field(default=120.0, gt=0)
    """Timeout of vendor requests made on behalf of this account."""

    project_ids: list[str] = Field(default_factory=list)
    """Platform projects the assets are created in."""

    user_id: str = ""
    """Platform user notified when new assets are created."""

    asset_filter: list[list[FilterRule]] = Field(default_factory=list)
    """OR-of-ANDs filter; a node is kept if all rules of any group match."""


class VendorConfig(BaseModel):
    """Vendor ontology API configuration."""

    base_url: str = "https://api.buildings.ability.abb/buildings/openbos/apiproxy/v1"
    token_url: str = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    scope: str = "api://openbos/.default"
    timeout_seconds: float = 10.0


class PlatformConfig(BaseModel):
    """Asset management platform API configuration."""

    base_url: str = "http://localhost:3000/v2"
    api_token: SecretStr | None = None
    timeout_seconds: float = 30.0
    asset_type_prefix: str = "open_bos_"
    """Prefix of asset type names and global asset ids created by the bridge."""

    client_reference: str = "ontology-bridge"
    """Client reference stamped on data written by the bridge."""

    poll_interval_seconds: float = 5.0
    """Interval between polls for output writes and alarm acknowledgements."""


class WebhookConfig(BaseModel):
    """Inbound webhook server and subscription configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8081
    public_base_url: str = "http://localhost:8081"
    """Base URL the vendor posts events to."""

    min_send_minutes: int = Field(default=5, ge=1)
    """Minimum time between two events of a subscription."""

    retries: int = 3
    retry_delay_seconds: int = 5
    lease_minutes: int = 5
    """Life span of a live data/alarm subscription while the webhook is down."""

    persist: bool = True
    """Keep subscriptions alive across gateway restarts."""


class StateConfig(BaseModel):
    """State persistence configuration."""

    db_path: Path = Path("./state/bridge.db")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"
    metrics_port: int = 9090
    health_port: int = 8080


class BridgeConfig(BaseModel):
    """Root configuration for the Ontology Bridge."""

    accounts: list[AccountConfig] = Field(default_factory=list)
    vendor: VendorConfig = Field(default_factory=VendorConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @model_validator(mode="after")
    def unique_account_ids(self) -> Self:
        ids = [account.id for account in self.accounts]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate account ids: {duplicates}")
        return self

    def account(self, account_id: int) -> AccountConfig | None:
        """Find an account by id."""
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    @property
    def enabled_accounts(self) -> list[AccountConfig]:
        return [account for account in self.accounts if account.enable]

    @classmethod
    def from_yaml(cls, path: Path) -> "BridgeConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})


class BridgeSettings(BaseSettings):
    """Environment-based settings that override config file values."""

    model_config = SettingsConfigDict(
        env_prefix="ONTOLOGY_BRIDGE_",
        env_nested_delimiter="__",
    )

    config_file: Path = Path("config/config.yaml")


def load_config(settings: BridgeSettings | None = None) -> BridgeConfig:
    """Load configuration from file, with environment overrides."""
    if settings is None:
        settings = BridgeSettings()

    if settings.config_file.exists():
        return BridgeConfig.from_yaml(settings.config_file)
    return BridgeConfig()
