"""Shared pytest fixtures for Ontology Bridge tests."""

from pathlib import Path

import pytest

from ontology_bridge.config import AccountConfig
from ontology_bridge.ontology.schema import Ontology
from ontology_bridge.state.registry import StateRegistry

# Test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers.

    Note: Markers are also defined in pyproject.toml [tool.pytest.ini_options].
    This function ensures they're registered even when running pytest directly.
    """
    config.addinivalue_line("markers", "integration: tests exercising several components together")
    config.addinivalue_line("markers", "slow: slow-running tests")


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    """Return the fixtures directory path."""
    return FIXTURES_DIR


@pytest.fixture
def sample_ontology(fixtures_dir: Path) -> Ontology:
    """Two asset templates, a building with one floor, and one unattached sensor."""
    return Ontology.from_json((fixtures_dir / "ontology.json").read_bytes())


@pytest.fixture
def registry(tmp_path: Path) -> StateRegistry:
    """Empty state registry in a temporary directory."""
    return StateRegistry(tmp_path / "state" / "bridge.db")


@pytest.fixture
def account() -> AccountConfig:
    """Enabled account with a single project."""
    return AccountConfig(
        id=1,
        gateway_id="gw-1",
        client_id="client",
        client_secret="secret",
        project_ids=["p1"],
    )
