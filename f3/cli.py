"""
CLI for f3.

Commands:
- serve: Start the FTP server
- check: Validate the configuration and check bucket access
- version: Print the version
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from f3 import __version__
from f3.auth import Credentials
from f3.config import Config
from f3.drivers.factory import DriverFactory
from f3.errors import F3Error

console = Console()

logger = logging.getLogger("f3")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_config(ctx: click.Context, overrides: Dict[str, Any]) -> Config:
    """Apply command line flags on top of the loaded configuration."""
    config: Config = ctx.obj["config"]
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        config = config.model_copy(update=updates)
    return config


def build_factory(config: Config) -> DriverFactory:
    try:
        factory = DriverFactory.build(config)
        factory.check_bucket()
    except F3Error as e:
        logger.debug("Storage backend setup failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    return factory


def backend_options(func):
    """Options shared by commands that talk to the storage backend."""
    options = [
        click.option("--features", default=None, help="Comma separated list of enabled operations: cd,ls,rmdir,rm,mv,mkdir,get,put"),
        click.option("--no-overwrite", is_flag=True, default=None, help="Prevent files from being overwritten"),
        click.option("--s3-credentials", default=None, help="AccessKey:SecretKey"),
        click.option("--s3-bucket", "bucket_url", default=None, help="URL of the S3 bucket, e.g. https://some-bucket.s3.amazonaws.com"),
        click.option("--s3-region", default=None, help="Region where the S3 bucket is located in"),
        click.option("--s3-path-style", is_flag=True, default=None, help="Use path style bucket addressing"),
        click.option("--disable-cloudwatch", is_flag=True, default=None, help="Disable CloudWatch metrics"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to a YAML config file")
@click.option("--verbose", "-v", is_flag=True, help="Print what is being done")
@click.pass_context
def main(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """f3 - a bridge between FTP and an S3 bucket.

    It maps FTP commands to S3 equivalents and stores uploaded files as
    objects in an S3 bucket. The feature set of the FTP server can be set
    very fine grained, e.g. you can only allow 'ls' and 'get' operations.
    Additionally, you can prevent objects from getting overwritten.
    """
    ctx.ensure_object(dict)
    
    if config:
        ctx.obj["config"] = Config.load(Path(config))
    else:
        ctx.obj["config"] = Config.load()
    
    configure_logging(verbose or ctx.obj["config"].verbose)


@main.command()
@click.argument("credentials_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--ftp-addr", default=None, help="Address of the FTP server interface, default: 127.0.0.1:21")
@click.option("--passive-ports", default=None, help="Passive port range, e.g. 60000-60100")
@backend_options
@click.pass_context
def serve(ctx: click.Context, credentials_file: str, **overrides: Any) -> None:
    """Start the FTP server using the credentials in CREDENTIALS_FILE."""
    config = build_config(ctx, overrides)
    
    try:
        credentials = Credentials.from_file(credentials_file)
        host, port = config.ftp_host_port
    except (F3Error, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    
    factory = build_factory(config)
    
    from f3.ftp import run_ftp_server
    
    console.print("[bold blue]Starting f3 FTP server...[/bold blue]")
    console.print(f"[dim]Listening on: {host}:{port}[/dim]")
    console.print(f"[dim]Features: {factory.features.to_spec()}[/dim]")
    console.print(f"[dim]Users: {len(credentials)}[/dim]")
    console.print("[green]Server running. Press Ctrl+C to stop.[/green]")
    
    try:
        run_ftp_server(config, factory, credentials)
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped.[/yellow]")


@main.command()
@backend_options
@click.pass_context
def check(ctx: click.Context, **overrides: Any) -> None:
    """Validate the configuration and check that the bucket is accessible."""
    config = build_config(ctx, overrides)
    factory = build_factory(config)
    
    table = Table(title="f3 configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    if factory.bucket is not None:
        table.add_row("Bucket", factory.bucket.name)
        table.add_row("Endpoint", factory.bucket.endpoint)
        table.add_row("Region", factory.bucket.region)
        table.add_row("Path style", str(factory.bucket.path_style))
    else:
        table.add_row("Root", str(factory.root))
    table.add_row("Features", factory.features.to_spec())
    table.add_row("No overwrite", str(factory.no_overwrite))
    table.add_row("Metrics", type(factory.metrics).__name__)
    console.print(table)
    console.print("[green]✓ Storage backend is accessible[/green]")


@main.command()
def version() -> None:
    """Print the version."""
    click.echo(f"f3 {__version__}")


if __name__ == "__main__":
    main()
