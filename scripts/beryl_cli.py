#!/usr/bin/env python3
"""
Command-line tool for generating and inspecting Crystals.

Examples:
  PYTHONPATH=./src python scripts/beryl_cli.py generate --count 5
  PYTHONPATH=./src python scripts/beryl_cli.py generate --id 12 --text
  PYTHONPATH=./src python scripts/beryl_cli.py decode 0DQ8SAS2H8000
  PYTHONPATH=./src python scripts/beryl_cli.py decode --signed -- -1
  PYTHONPATH=./src python scripts/beryl_cli.py encode 42 0 1700000000000

Generator settings (producer id, epoch, strategy) come from config.toml / .env /
BERYL_* environment variables; command-line options override them.
"""
from __future__ import annotations

import click
import structlog

from beryl.config import Settings, load_settings
from beryl.crystal import TEXT_LENGTH, Crystal
from beryl.errors import BerylError, FieldOutOfBounds
from beryl.generator import Generator
from beryl.logging import settings_fields, setup_logging

log = structlog.get_logger()


def _settings(verbose: bool, **overrides) -> Settings:
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if not verbose:
        overrides.setdefault("logging_console", "WARNING")
    try:
        settings = load_settings(**overrides)
    except ValueError as exc:
        # pydantic ValidationError from config.toml, .env, BERYL_* or options
        raise click.UsageError(str(exc)) from exc
    setup_logging(settings)
    log.debug("cli.settings", **settings_fields(settings))
    return settings


def _describe(crystal: Crystal, settings: Settings) -> list[tuple[str, str]]:
    return [
        ("producer_id", str(crystal.producer_id)),
        ("sequence", str(crystal.sequence)),
        ("timestamp", str(crystal.timestamp)),
        ("time", crystal.timestamp_datetime(settings.epoch).isoformat()),
        ("unsigned", str(int(crystal))),
        ("signed", str(crystal.to_signed())),
        ("text", str(crystal)),
    ]


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Emit INFO logs to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Generate and inspect 64-bit Crystal identifiers."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("-n", "--count", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--id", "generator_id", type=int, default=None, help="Producer id (0..16383).")
@click.option(
    "--strategy",
    "blocking_strategy",
    type=click.Choice(["spin", "sleep"], case_sensitive=False),
    default=None,
)
@click.option("--signed", is_flag=True, help="Print the signed 64-bit form.")
@click.option("--text", is_flag=True, help="Print the base32 text form.")
@click.pass_context
def generate(ctx, count, generator_id, blocking_strategy, signed, text):
    """Generate COUNT Crystals, one per line."""
    if signed and text:
        raise click.UsageError("--signed and --text are mutually exclusive")
    settings = _settings(
        ctx.obj["verbose"],
        generator_id=generator_id,
        blocking_strategy=blocking_strategy,
    )
    try:
        gen = Generator.from_settings(settings)
    except BerylError as exc:
        raise click.UsageError(str(exc)) from exc
    for crystal in gen.generate_many(count):
        if text:
            click.echo(str(crystal))
        elif signed:
            click.echo(crystal.to_signed())
        else:
            click.echo(int(crystal))


@cli.command()
@click.argument("value")
@click.option(
    "--format",
    "value_format",
    type=click.Choice(["auto", "int", "text"], case_sensitive=False),
    default="auto",
    show_default=True,
    help="How to read VALUE; auto treats 13-character input as base32 text.",
)
@click.option("--signed", is_flag=True, help="Treat a numeric VALUE as signed 64-bit.")
@click.pass_context
def decode(ctx, value, value_format, signed):
    """Print the parts of VALUE (decimal integer or base32 text)."""
    value_format = value_format.lower()
    if value_format == "auto":
        value_format = "text" if len(value.strip()) == TEXT_LENGTH else "int"
    if signed and value_format == "text":
        raise click.UsageError("--signed only applies to numeric values")
    settings = _settings(ctx.obj["verbose"])
    try:
        if value_format == "text":
            crystal = Crystal.from_string(value)
        else:
            try:
                number = int(value, 10)
            except ValueError as exc:
                raise BerylError(f"Not a decimal integer: {value!r}") from exc
            crystal = Crystal.from_signed(number) if signed else Crystal.from_int(number)
    except BerylError as exc:
        raise click.BadParameter(str(exc), param_hint="VALUE") from exc
    for name, shown in _describe(crystal, settings):
        click.echo(f"{name:<12} {shown}")


@cli.command()
@click.argument("producer_id", type=int)
@click.argument("sequence", type=int)
@click.argument("timestamp", type=int)
@click.pass_context
def encode(ctx, producer_id, sequence, timestamp):
    """Pack PRODUCER_ID, SEQUENCE and TIMESTAMP into a Crystal."""
    settings = _settings(ctx.obj["verbose"])
    try:
        crystal = Crystal.from_parts(producer_id, sequence, timestamp)
    except FieldOutOfBounds as exc:
        raise click.BadParameter(str(exc), param_hint=exc.part.value.upper()) from exc
    for name, shown in _describe(crystal, settings):
        click.echo(f"{name:<12} {shown}")


if __name__ == "__main__":
    cli()
