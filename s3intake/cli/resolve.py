"""s3intake resolve / check-config: exercise the message format resolver from the shell."""

from __future__ import annotations

import sys

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from s3intake.queue.config import load_sqs_input_config
from s3intake.queue.formats import ConfigError
from s3intake.queue.parsers import ParseError, build_parser

console = Console()


def resolve_command(message_format: str, expression: str | None = None, message: str | None = None) -> str:
    """Print the S3 path a single message resolves to."""
    try:
        parser = build_parser(message_format, expression)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(2) from e

    payload = message if message is not None else sys.stdin.read()
    try:
        path = parser.parse(payload)
    except ParseError as e:
        typer.echo(f"Parse error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(path)
    return path


def check_config_command(config: str) -> None:
    """Load an SQS input config file and show the effective settings."""
    try:
        loaded = load_sqs_input_config(config)
    except (ConfigError, FileNotFoundError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e

    compiled = loaded.compile_format()
    table = Table(title=f"SQS input config: {escape(config)}")
    table.add_column("Setting")
    table.add_column("Value", no_wrap=True)
    rows = {
        "message_format": compiled.message_format.value,
        "queue_prefixes": ", ".join(loaded.queue_prefixes) or "-",
        "aws_region": loaded.aws_region,
        "file_path_filter": loaded.file_path_filter or "-",
        "concurrency": str(loaded.concurrency),
        "ack_policy": loaded.ack_policy,
    }
    for key, value in rows.items():
        table.add_row(key, escape(value))
    console.print(table)
    typer.echo(f"expression: {compiled.expression or '-'}")
