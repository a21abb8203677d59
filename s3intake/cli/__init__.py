"""CLI tools: s3intake resolve, s3intake check-config."""

from importlib import metadata

import typer

from s3intake.cli.resolve import check_config_command, resolve_command

app = typer.Typer(
    name="s3intake",
    help="s3intake: resolve queue messages to S3 object paths.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        version = metadata.version("s3intake")
    except metadata.PackageNotFoundError:
        version = "unknown"
    typer.echo(f"s3intake {version}")
    raise typer.Exit(0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Resolve queue messages to S3 object paths."""


@app.command("resolve")
def resolve(
    message_format: str = typer.Option(..., "--format", "-f", help="plain, sns, json or s3::ObjectCreated"),
    expression: str = typer.Option("", "--expression", "-e", help="JMESPath expression for json formats"),
    message: str | None = typer.Option(None, "--message", "-m", help="Message body; read from stdin when omitted"),
) -> None:
    """Resolve one message body to its S3 path."""
    resolve_command(message_format=message_format, expression=expression or None, message=message)


@app.command("check-config")
def check_config(
    config: str = typer.Option(..., "--config", "-c", help="Path to the SQS input YAML config"),
) -> None:
    """Validate an SQS input config file."""
    check_config_command(config=config)


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        raise SystemExit(130)
