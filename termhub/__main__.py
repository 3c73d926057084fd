"""Command-line interface entrypoint for termhub."""

from __future__ import annotations

import asyncio
from typing import Optional

import click
import requests

from .api.models import SessionInfo
from .config import get_config
from .daemon.manager import TermhubDaemon
from .daemon.pidfile import is_broker_running, read_pidfile, stop_broker
from .utils.ports import find_available_port


def _base_url(host: Optional[str], port: Optional[int]) -> str:
    config = get_config()
    return f"http://{host or config.server.host}:{port or config.server.port}"


@click.group()
def cli() -> None:
    """termhub: shared terminal sessions over WebSocket."""


@cli.command()
@click.option("--host", default=None, help="Interface to bind.")
@click.option("--port", type=int, default=None, help="Port to bind (0 picks a free one).")
@click.option("--shared", is_flag=True, help="Serve one auto-restarting session to everyone.")
@click.option("--shell", default=None, help="Shell executable for new sessions.")
def serve(
    host: Optional[str], port: Optional[int], shared: bool, shell: Optional[str]
) -> None:
    """Run the broker in the foreground."""
    if is_broker_running():
        raise click.ClickException(
            f"A termhub broker is already running (pid {read_pidfile()})"
        )

    config = get_config()
    if host:
        config.server.host = host
    if port == 0:
        config.server.port = find_available_port(
            config.server.port, config.server.port + 100, config.server.host
        )
    elif port:
        config.server.port = port
    if shared:
        config.sessions.mode = "shared"
    if shell:
        config.sessions.shell = shell

    daemon = TermhubDaemon(config)
    click.echo(f"✨ termhub listening on ws://{config.server.host}:{config.server.port}/ws")
    click.echo(f"   Mode: {config.sessions.mode}")
    try:
        asyncio.run(daemon.start())
    except KeyboardInterrupt:
        pass
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command(name="sessions")
@click.option("--host", default=None)
@click.option("--port", type=int, default=None)
def list_sessions(host: Optional[str], port: Optional[int]) -> None:
    """List sessions held by a running broker."""
    try:
        resp = requests.get(f"{_base_url(host, port)}/sessions", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise click.ClickException(f"Broker unreachable: {exc}") from exc

    sessions = [SessionInfo.from_metadata(item) for item in resp.json()]
    if not sessions:
        click.echo("No sessions.")
        return
    for info in sessions:
        status = info.state if not info.exit_code else f"{info.state} ({info.exit_code})"
        click.echo(
            f"{info.id}  {status:<10} viewers={info.viewers} "
            f"{info.cols}x{info.rows} uptime={info.uptime:.0f}s"
        )


@cli.command()
@click.option("--timeout", default=5.0, help="Seconds to wait before forcing.")
def stop(timeout: float) -> None:
    """Stop the broker recorded in the PID file."""
    if not is_broker_running():
        click.echo("No termhub broker is running.")
        return
    if stop_broker(timeout=timeout):
        click.echo("termhub broker stopped.")
    else:
        click.echo("termhub broker was not running.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
