"""Command-line interface for the Ontology Bridge."""

from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Optional

import typer

from ontology_bridge import __version__
from ontology_bridge.config import BridgeConfig, BridgeSettings, load_config

app = typer.Typer(
    name="ontology-bridge",
    help="Ontology Bridge: Mirror building ontologies into an asset management platform",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config.yaml"),
]


def _load(config: Path | None) -> BridgeConfig:
    settings = BridgeSettings(config_file=config) if config else BridgeSettings()
    return load_config(settings)


@app.callback()
def callback() -> None:
    """Ontology Bridge CLI."""
    pass


@app.command()
def run(config: ConfigOption = None) -> None:
    """Run the Ontology Bridge daemon."""
    from ontology_bridge.daemon import run_daemon

    run_daemon(_load(config))


@app.command()
def sync(
    account_id: Annotated[int, typer.Argument(help="Account to synchronize")],
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Rebuild even if the ontology version is unchanged"),
    ] = False,
    subscribe: Annotated[
        bool,
        typer.Option("--subscribe/--no-subscribe", help="Renew the webhook subscriptions"),
    ] = False,
) -> None:
    """Synchronize one account once and exit."""
    from ontology_bridge.observability.logging import setup_logging
    from ontology_bridge.platform.client import PlatformClient
    from ontology_bridge.state.registry import StateRegistry
    from ontology_bridge.sync.orchestrator import CollectOutcome, Orchestrator

    cfg = _load(config)
    account = cfg.account(account_id)
    if account is None:
        typer.echo(f"Unknown account: {account_id}", err=True)
        raise typer.Exit(1)

    setup_logging(
        level=cfg.observability.log_level,
        format_type=cfg.observability.log_format,
    )
    token = cfg.platform.api_token
    with PlatformClient(
        cfg.platform.base_url,
        api_token=token.get_secret_value() if token else None,
        timeout=cfg.platform.timeout_seconds,
        client_reference=cfg.platform.client_reference,
    ) as platform:
        orchestrator = Orchestrator(cfg, StateRegistry(cfg.state.db_path), platform)
        outcome = orchestrator.sync_account(account, subscribe=subscribe, force=force)

    typer.echo(f"Account {account_id}: {outcome.value}")
    if outcome not in (CollectOutcome.UPDATED, CollectOutcome.UNCHANGED):
        raise typer.Exit(1)


@app.command()
def validate(config: ConfigOption = None) -> None:
    """Validate the configuration file without starting the daemon."""
    settings = BridgeSettings(config_file=config) if config else BridgeSettings()

    try:
        cfg = load_config(settings)
        typer.echo(f"Configuration valid: {settings.config_file}")
        typer.echo(f"  Accounts: {len(cfg.accounts)} ({len(cfg.enabled_accounts)} enabled)")
        for account in cfg.accounts:
            typer.echo(
                f"    {account.id}: gateway {account.gateway_id}, "
                f"{len(account.asset_filter)} filter groups"
            )
        typer.echo(f"  Platform: {cfg.platform.base_url}")
        typer.echo(f"  Webhook enabled: {cfg.webhook.enabled}")
        typer.echo(f"  State: {cfg.state.db_path}")
    except Exception as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"ontology-bridge {__version__}")


@app.command()
def status(config: ConfigOption = None) -> None:
    """Show synchronized ontology versions and the health of a running bridge."""
    import httpx

    from ontology_bridge.state.registry import StateRegistry

    cfg = _load(config)

    if cfg.state.db_path.exists():
        registry = StateRegistry(cfg.state.db_path)
        versions = registry.versions()
        if not versions:
            typer.echo("No ontology synchronized yet")
        for account_id, (account_version, updated_at) in sorted(versions.items()):
            synced = datetime.fromtimestamp(updated_at, UTC).isoformat(timespec="seconds")
            typer.echo(f"Account {account_id}: ontology version {account_version} ({synced})")
    else:
        typer.echo(f"No state database at {cfg.state.db_path}")

    try:
        resp = httpx.get(f"http://localhost:{cfg.observability.health_port}/health", timeout=5.0)
        if resp.status_code == 200:
            data = resp.json()
            typer.echo(f"Status: {data.get('status', 'unknown')}")
        else:
            typer.echo(f"Health check returned {resp.status_code}", err=True)
            raise typer.Exit(1)
    except httpx.ConnectError:
        typer.echo("Bridge is not running or health endpoint unreachable", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
