"""Command line interface: run the gateway, validate configuration, dry-run payloads."""

from __future__ import annotations

import asyncio
import json
import shlex
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .change import extract_change
from .config import DEFAULT_CONFIG_PATH, ConfigurationManager, GatewayConfig
from .exceptions import (
    ConfigurationError,
    DisabledTargetError,
    PayloadValidationError,
    RepositoryConfigurationError,
)
from .gateway import WebhookGateway
from .jobs import JobQueue
from .logging_config import setup_logging
from .payload import GITHUB_EVENT_HEADER, GITLAB_EVENT_HEADER, Payload
from .resolver import RepositoryResolver
from .server import WebhookServer

app = typer.Typer(help="Mirror git repositories and send commit mail from GitHub/GitLab webhooks")
console = Console()


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _load_config(config_path: Path) -> GatewayConfig:
    try:
        return ConfigurationManager(config_path).load()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)


async def _serve(config: GatewayConfig) -> None:
    job_queue = JobQueue(workers=config.server.workers, queue_size=config.server.queue_size)
    gateway = WebhookGateway(RepositoryResolver(config.options), job_queue)
    server = WebhookServer(config=config.server, gateway=gateway, job_queue=job_queue)

    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


# ---------------------------------------------------------------------------
# CLI Commands
# ---------------------------------------------------------------------------


@app.command("serve")
def serve(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Configuration file (YAML)"
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Override server.listen_host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override server.listen_port"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="text or json"),
) -> None:
    """Run the webhook receiver until interrupted."""
    setup_logging(log_level, log_format)
    config = _load_config(config_path)

    overrides = {}
    if host is not None:
        overrides["listen_host"] = host
    if port is not None:
        overrides["listen_port"] = port
    if overrides:
        config = config.model_copy(
            update={"server": config.server.model_copy(update=overrides)}
        )

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        console.print("Stopped.")


@app.command("check-config")
def check_config(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Configuration file (YAML)"
    ),
) -> None:
    """Validate a configuration file."""
    errors = ConfigurationManager(config_path).validate()
    if errors:
        console.print(f"[red]✗[/red] {config_path} is invalid:")
        for error in errors:
            console.print(f"  • {error}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] {config_path} is valid")


@app.command("resolve")
def resolve(
    payload_file: Path = typer.Argument(..., help="Webhook body saved as JSON"),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Configuration file (YAML)"
    ),
    github_event: Optional[str] = typer.Option(
        None, "--event", "-e", help="X-GitHub-Event value (push, gollum, ...)"
    ),
    gitlab_event: Optional[str] = typer.Option(
        None, "--gitlab-event", help="X-Gitlab-Event value"
    ),
) -> None:
    """Show how a saved payload would be resolved, without running git."""
    config = _load_config(config_path)
    try:
        data = json.loads(payload_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]✗[/red] Cannot read payload: {e}")
        raise typer.Exit(code=1)

    payload = Payload(data, {GITHUB_EVENT_HEADER: github_event, GITLAB_EVENT_HEADER: gitlab_event})
    resolver = RepositoryResolver(config.options)
    try:
        repository = resolver.resolve(payload)
        change = extract_change(payload)
    except DisabledTargetError as e:
        console.print(f"[yellow]⚠[/yellow] {e}")
        return
    except (PayloadValidationError, RepositoryConfigurationError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"{payload.kind.value} payload")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Domain", repository.domain)
    table.add_row("Owner", repository.owner_name)
    table.add_row("Repository", repository.name)
    table.add_row("Mirror", str(repository.mirror_path))
    table.add_row("Mirror state", repository.state.value)
    table.add_row("Clone URL", repository.clone_url or "-")
    table.add_row("Change", str(change))
    table.add_row("Notifier", shlex.join(repository.notifier_command()))
    console.print(table)


def main() -> None:
    app()


__all__ = ["app", "main"]
