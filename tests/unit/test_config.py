"""Unit tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ontology_bridge.config import BridgeConfig, BridgeSettings, load_config

CONFIG_YAML = """
accounts:
  - id: 1
    gateway_id: gw-1
    client_id: client
    client_secret: secret
    project_ids: ["p1", "p2"]
    asset_filter:
      - - parameter: templateID
          regex: "^st-"
      - - parameter: name
          regex: Valve
  - id: 2
    gateway_id: gw-2
    client_id: client
    client_secret: secret
    enable: false
platform:
  base_url: http://platform.local/v2
webhook:
  public_base_url: https://bridge.example.com
"""


class TestBridgeConfig:
    """Tests for the configuration models."""

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        cfg = BridgeConfig.from_yaml(path)

        assert [a.id for a in cfg.accounts] == [1, 2]
        assert [a.id for a in cfg.enabled_accounts] == [1]
        first = cfg.accounts[0]
        assert first.project_ids == ["p1", "p2"]
        assert first.client_secret.get_secret_value() == "secret"
        assert first.refresh_interval_hours == 24
        assert len(first.asset_filter) == 2
        assert first.asset_filter[1][0].regex == "Valve"
        assert cfg.platform.base_url == "http://platform.local/v2"
        assert cfg.webhook.public_base_url == "https://bridge.example.com"

    def test_account_lookup(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        cfg = BridgeConfig.from_yaml(path)

        assert cfg.account(2) is cfg.accounts[1]
        assert cfg.account(3) is None

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")

        cfg = BridgeConfig.from_yaml(path)

        assert cfg.accounts == []
        assert cfg.platform.asset_type_prefix == "open_bos_"
        assert cfg.observability.metrics_port == 9090

    def test_duplicate_account_ids_rejected(self) -> None:
        account = {"id": 1, "gateway_id": "gw", "client_id": "c", "client_secret": "s"}

        with pytest.raises(ValidationError):
            BridgeConfig.model_validate({"accounts": [account, account]})

    def test_refresh_interval_must_be_positive(self) -> None:
        account = {
            "id": 1,
            "gateway_id": "gw",
            "client_id": "c",
            "client_secret": "s",
            "refresh_interval_hours": 0,
        }

        with pytest.raises(ValidationError):
            BridgeConfig.model_validate({"accounts": [account]})

    def test_invalid_filter_regex_rejected(self) -> None:
        account = {
            "id": 1,
            "gateway_id": "gw",
            "client_id": "c",
            "client_secret": "s",
            "asset_filter": [[{"parameter": "name", "regex": "("}]],
        }

        with pytest.raises(ValidationError):
            BridgeConfig.model_validate({"accounts": [account]})


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(BridgeSettings(config_file=tmp_path / "missing.yaml"))

        assert cfg.accounts == []

    def test_config_file_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        monkeypatch.setenv("ONTOLOGY_BRIDGE_CONFIG_FILE", str(path))

        cfg = load_config()

        assert len(cfg.accounts) == 2
