"""CLI commands for the fetch-and-cache engine."""

import logging
from pathlib import Path

import click

from src.fetch.client import HttpFetcher
from src.fetch.config import FetchConfig
from src.observability.logging import (
    bind_command_context,
    clear_command_context,
    configure_logging,
)
from src.rom.models import RomAction
from src.rom.resolver import RomResolver
from src.settings.app import AppSettings, get_settings


def _build_fetcher(
    settings: AppSettings,
    cache_dir: Path | None,
    no_cache: bool,
) -> HttpFetcher:
    """Build a fetcher from settings and command-line overrides."""
    config = FetchConfig.from_settings(settings)
    overrides: dict[str, object] = {}
    if cache_dir is not None:
        overrides["base_dir"] = cache_dir
    if no_cache:
        overrides["cache_enabled"] = False
    if overrides:
        config = config.model_copy(update=overrides)
    return HttpFetcher(config=config)


def _setup_logging(settings: AppSettings, verbose: bool, json_logs: bool) -> None:
    level = logging.DEBUG if verbose else settings.log_level_value
    configure_logging(level=level, json_format=json_logs or settings.json_logs)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines.")
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Base cache directory (overrides JSON_FETCH_CACHE_DIR).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    json_logs: bool,
    cache_dir: Path | None,
) -> None:
    """Fetch remote JSON resources into a local, revalidated cache."""
    settings = get_settings()
    _setup_logging(settings, verbose, json_logs)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["cache_dir"] = cache_dir


@cli.command()
@click.argument("url")
@click.argument("post_vars", required=False)
@click.option("--cat", "show", is_flag=True, help="Print the fetched file.")
@click.option("--no-cache", is_flag=True, help="Fetch into a throwaway file.")
@click.pass_context
def fetch(
    ctx: click.Context,
    url: str,
    post_vars: str | None,
    show: bool,
    no_cache: bool,
) -> None:
    """Fetch URL (optionally POSTing POST_VARS) and report the local file."""
    fetcher = _build_fetcher(ctx.obj["settings"], ctx.obj["cache_dir"], no_cache)
    bind_command_context("fetch", str(fetcher.config.base_dir))

    result = fetcher.fetch(url, post_vars)
    try:
        path = str(result.local_path) if result.local_path else None
        status = "OK" if result.succeeded else "FAIL"
        click.echo(f"'{url}' --> '{path}' == {status}")

        if result.succeeded and show and result.local_path is not None:
            click.echo(result.local_path.read_bytes(), nl=False)
    finally:
        fetcher.release(result)
        clear_command_context()

    if not result.succeeded:
        ctx.exit(1)


@cli.command()
@click.argument("rom_url")
@click.argument("rom_path")
@click.option(
    "--action",
    type=click.Choice([action.value for action in RomAction]),
    default=RomAction.SELECT.value,
    show_default=True,
    help="Table operation to resolve.",
)
@click.pass_context
def rom(ctx: click.Context, rom_url: str, rom_path: str, action: str) -> None:
    """Resolve ROM_PATH through the ROM at ROM_URL."""
    fetcher = _build_fetcher(ctx.obj["settings"], ctx.obj["cache_dir"], False)
    bind_command_context("rom", str(fetcher.config.base_dir))

    try:
        context = RomResolver(fetcher).resolve(rom_url, rom_path, RomAction(action))
    finally:
        clear_command_context()

    if context is None:
        click.echo("rom fetch failed")
        ctx.exit(1)
        return

    click.echo(f"url '{context.url}' method '{context.method}'")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
