"""Typer CLI for the Kafka topic provisioner."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from kafka_provisioner.config.loader import load_provisioner_config
from kafka_provisioner.config.models import ProvisionerConfig
from kafka_provisioner.observability.logging import configure_logging
from kafka_provisioner.provisioning.handler import ProvisionerHandler
from kafka_provisioner.server.http import ProvisionerServer
from kafka_provisioner.streaming.topics import stream_topic_name

logger = structlog.get_logger()
console = Console(stderr=True)
app = typer.Typer(name="kafka-provisioner", help="Kafka topic provisioner")


def _load(config_path: str | None) -> ProvisionerConfig:
    path = Path(config_path) if config_path else None
    if path is not None and not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        config = load_provisioner_config(path)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(1) from exc
    configure_logging(config.log_level)
    return config


@app.command()
def serve(
    config_path: str | None = typer.Option(
        None, "--config", help="Provisioner YAML overriding the built-in defaults"
    ),
    port: int | None = typer.Option(None, "--port", help="Listen port"),
) -> None:
    """Serve PUT /<namespace>/<stream-name> requests."""
    config = _load(config_path)
    handler = ProvisionerHandler(config)
    server = ProvisionerServer(
        handler,
        host=config.server.host,
        port=port if port is not None else config.server.port,
        read_timeout=config.server.read_timeout_seconds,
    )
    logger.info(
        "provisioner.starting",
        broker=config.kafka.bootstrap_servers,
        gateway=config.gateway,
    )
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("provisioner.interrupted")


@app.command()
def ensure(
    namespace: str = typer.Argument(..., help="Stream namespace"),
    stream: str = typer.Argument(..., help="Stream name"),
    config_path: str | None = typer.Option(
        None, "--config", help="Provisioner YAML overriding the built-in defaults"
    ),
) -> None:
    """Provision the topic for one stream without starting the server."""
    config = _load(config_path)
    handler = ProvisionerHandler(config)
    response = handler.handle("PUT", f"/{namespace}/{stream}")
    body = response.body.decode().rstrip("\n")
    if response.status >= 400:
        console.print(f"[red]{response.status}[/red] {body}")
        raise typer.Exit(1)
    verb = "created" if response.status == 201 else "exists"
    console.print(
        f"[green]{verb}[/green] {stream_topic_name(namespace, stream)} "
        f"(gateway {config.gateway})"
    )
    typer.echo(body)


@app.command()
def validate(
    config_path: str | None = typer.Option(
        None, "--config", help="Provisioner YAML overriding the built-in defaults"
    ),
) -> None:
    """Validate configuration and print the resolved settings."""
    config = _load(config_path)

    table = Table(title="Provisioner Config")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("gateway", config.gateway)
    table.add_row("broker", config.kafka.bootstrap_servers)
    table.add_row("client id", config.kafka.client_id)
    table.add_row("auth", config.kafka.auth_mechanism.value)
    table.add_row("listen", f"{config.server.host}:{config.server.port}")
    table.add_row("log level", config.log_level)
    console.print(table)
