"""Typer CLI entrypoint for RGAA audits."""

from __future__ import annotations

import typer

from rgaa_audit import __version__
from cli.commands import audit as audit_command

app = typer.Typer(
    help="RGAA accessibility audit over pre-captured page snapshots.",
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
    add_completion=False,
)


@app.callback()
def root(
    ctx: typer.Context,
    version_flag: bool = typer.Option(
        False,
        "-v",
        "--version",
        help="Print the version and exit.",
    ),
) -> None:
    if version_flag:
        typer.echo(__version__)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


app.command(name="run", help="Audit pages and write the XLSX report.")(audit_command.run)


def main() -> None:
    app()


__all__ = ["app", "main"]
