"""
Main CLI application
"""
import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from ...core.constants import DEFAULT_DYNAMIC, DEFAULT_SSH_PORT, DEFAULT_IDENTITY_FILE
from ...core.exceptions import ConfigError, SSHProxyError
from ...core.logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from ...domain.tunnel import ConnectionDispatcher, ConnectOptions, ProxyConfig, Session
from ...infrastructure.proxy import ProxyServer
from ...infrastructure.ssh import SSHConnectionFactory
from ..config import ConfigLoader, resolve_settings

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()

app = typer.Typer(
    name="sshproxy",
    add_completion=False,
    help="HTTP/SOCKS proxy server tunneling every connection through one SSH session",
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["--help"]},
)


def build_dispatcher(options: ConnectOptions, proxy_config: ProxyConfig) -> ConnectionDispatcher:
    """Wire session, paramiko transport factory and proxy server together"""
    session = Session(options, SSHConnectionFactory())
    return ConnectionDispatcher(session, proxy_config, ProxyServer)


@app.command()
def main(
    destination: Optional[str] = typer.Argument(
        None, help="SSH destination: [user@]host[:port]"
    ),
    dynamic: Optional[str] = typer.Option(
        None, "--dynamic", "-D",
        help=f"Proxy server [bind_address:]port (default: {DEFAULT_DYNAMIC})",
    ),
    host: Optional[str] = typer.Option(None, "--host", "-h", help="SSH server host"),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help=f"SSH server port (default: {DEFAULT_SSH_PORT})"
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH user"),
    password: Optional[str] = typer.Option(None, "--password", "-P", help="SSH password"),
    identity: Optional[Path] = typer.Option(
        None, "--identity", "-i",
        help=f"SSH identity (private key) file (default: {DEFAULT_IDENTITY_FILE})",
    ),
    keepalive: Optional[float] = typer.Option(
        None, "--keepalive", "-k",
        help="Close client connections idle for this many seconds (0 disables)",
    ),
    ssh_keepalive: Optional[int] = typer.Option(
        None, "--ssh-keepalive", help="SSH transport keepalive interval, seconds"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="SSH connect and channel open timeout, seconds"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file path (TOML)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Run with verbose logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Log file path"),
):
    """
    Start a local HTTP/SOCKS proxy that forwards through SSH

    Works like [cyan]ssh -D[/cyan] but also speaks HTTP CONNECT, so
    applications limited to HTTP proxies can use the tunnel.

    Examples:
        sshproxy -D 8080 user@example.com
        sshproxy -D 127.0.0.1:1080 -i ~/.ssh/id_ed25519 -k 300 example.com:2222
    """
    setup_logging(level="DEBUG" if verbose else "INFO", log_file=log_file)

    try:
        cfg = ConfigLoader().load(
            toml_path=config_file,
            cli_overrides={
                "destination": destination,
                "host": host,
                "port": port,
                "user": user,
                "password": password,
                "identity": str(identity) if identity else None,
                "timeout": timeout,
                "ssh_keepalive": ssh_keepalive,
                "proxy": {
                    "dynamic": dynamic,
                    "keepalive": keepalive,
                },
            },
        )
        options, proxy_config = resolve_settings(cfg)
    except ConfigError as e:
        stderr_console.print(f"[red]Config Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    logger.debug(f"Options: {options.to_dict()}")
    logger.debug(f"Proxy: {proxy_config.to_dict()}")

    if sys.platform == "win32":
        # channel reads rely on loop.add_reader
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    dispatcher = build_dispatcher(options, proxy_config)
    try:
        asyncio.run(dispatcher.run())
    except KeyboardInterrupt:
        stdout_console.print("\n[yellow]Stopping proxy...[/yellow]")
    except SSHProxyError as e:
        stderr_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def run():
    """CLI entry point"""
    app()


if __name__ == "__main__":
    run()
