from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click

from .catalog import read_table
from .engine import LicenseEngine
from .errors import CatalogStoreError, ExpressionSyntaxError, RegistryLoadError
from .expression_parser import parse_expression
from .registry import KnownLicenseRegistry
from .reporting import write_report
from .tables import load_tables
from .types import (
    ArtifactSignals,
    Resolution,
    ResolutionReport,
    ResolverSettings,
    is_fully_identified,
    is_partially_identified,
    render,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_artifacts(path: Path) -> list[ArtifactSignals]:
    try:
        payload = json.loads(path.read_text())
    except ValueError as exc:
        raise click.ClickException(f"{path} is not valid JSON: {exc}") from exc
    entries = payload.get("artifacts", []) if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise click.ClickException(f"{path} must hold a list of artifacts")
    try:
        return [ArtifactSignals.from_dict(entry) for entry in entries]
    except (ValueError, AttributeError, TypeError) as exc:
        raise click.ClickException(f"Invalid artifact entry in {path}: {exc}") from exc


def _settings(
    cache_dir: Optional[str] = None,
    offline: Optional[bool] = None,
    workers: Optional[int] = None,
    timeout: Optional[float] = None,
    aliases: tuple[str, ...] = (),
    seeds: tuple[str, ...] = (),
    redirects: tuple[str, ...] = (),
) -> ResolverSettings:
    return ResolverSettings.from_env(
        cache_dir=Path(cache_dir) if cache_dir else None,
        offline=offline,
        workers=workers,
        timeout=timeout,
        alias_files=[Path(path) for path in aliases],
        seed_files=[Path(path) for path in seeds],
        redirect_files=[Path(path) for path in redirects],
    )


def _engine(settings: ResolverSettings) -> LicenseEngine:
    try:
        return LicenseEngine.from_settings(settings)
    except RegistryLoadError as exc:
        raise click.ClickException(str(exc)) from exc


def _registry(aliases: tuple[str, ...] = ()) -> KnownLicenseRegistry:
    try:
        return KnownLicenseRegistry.load(load_tables(alias_files=[Path(path) for path in aliases]))
    except RegistryLoadError as exc:
        raise click.ClickException(str(exc)) from exc


table_options = [
    click.option(
        "--aliases",
        multiple=True,
        type=click.Path(exists=True, dir_okay=False, path_type=str),
        help="Extra YAML alias table (name -> expression); may be repeated.",
    ),
    click.option(
        "--seeds",
        multiple=True,
        type=click.Path(exists=True, dir_okay=False, path_type=str),
        help="Extra YAML seed table (expression -> reference URLs); may be repeated.",
    ),
    click.option(
        "--redirects",
        multiple=True,
        type=click.Path(exists=True, dir_okay=False, path_type=str),
        help="Extra YAML redirect table (URL pattern -> replacement); may be repeated.",
    ),
]

network_options = [
    click.option(
        "--offline/--online",
        default=None,
        help="Skip remote fetches (defaults to LICENSE_RESOLVER_OFFLINE or online).",
    ),
    click.option(
        "--timeout",
        type=float,
        help="HTTP timeout (seconds) per fetch; defaults to LICENSE_RESOLVER_TIMEOUT or 8s.",
    ),
    click.option(
        "--cache-dir",
        type=click.Path(file_okay=False, path_type=str),
        help="Directory holding the artifact license catalog (defaults to LICENSE_RESOLVER_CACHE_DIR or ~/.license_resolver).",
    ),
]


def _apply(options):
    def decorator(func):
        for option in reversed(options):
            func = option(func)
        return func

    return decorator


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log resolution details to stderr.")
def main(verbose: bool) -> None:
    """License resolution CLI."""
    _configure_logging(verbose)


@main.command()
@click.argument("artifacts_file", type=click.Path(exists=True, dir_okay=False, path_type=str))
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "markdown", "md", "html"], case_sensitive=False),
    default="markdown",
    show_default=True,
    help="Output format for the report.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, writable=True, path_type=str),
    help="Write the report to a file instead of stdout.",
)
@click.option("--workers", type=int, help="Worker threads resolving artifacts in parallel (default 8).")
@_apply(network_options)
@_apply(table_options)
@click.option(
    "--fail-on-unresolved",
    is_flag=True,
    help="Exit non-zero when any artifact is not fully identified.",
)
def resolve(
    artifacts_file: str,
    fmt: str,
    output: Optional[str],
    workers: Optional[int],
    offline: Optional[bool],
    timeout: Optional[float],
    cache_dir: Optional[str],
    aliases: tuple[str, ...],
    seeds: tuple[str, ...],
    redirects: tuple[str, ...],
    fail_on_unresolved: bool,
) -> None:
    """Resolve the licenses of every artifact listed in ARTIFACTS_FILE."""
    artifacts = _load_artifacts(Path(artifacts_file))
    if not artifacts:
        click.echo("No artifacts listed; nothing to resolve.", err=True)

    settings = _settings(cache_dir, offline, workers, timeout, aliases, seeds, redirects)
    with _engine(settings) as engine:
        results = engine.resolve_all(artifacts)

    report = ResolutionReport(
        resolutions=[Resolution(key, expr) for key, expr in results.items()],
        generated_at=datetime.now(timezone.utc),
        settings=settings,
    )
    rendered = write_report(report, fmt, Path(output) if output else None)
    if not output:
        click.echo(rendered)

    if fail_on_unresolved and report.unresolved:
        raise SystemExit(1)


@main.command()
@click.argument("name")
@click.option(
    "--aliases",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=str),
    help="Extra YAML alias table; may be repeated.",
)
def lookup(name: str, aliases: tuple[str, ...]) -> None:
    """Print the canonical license id for NAME."""
    registry = _registry(aliases)
    expr = registry.resolve_name(name)
    if expr is None:
        click.echo(f"Unknown license: {name}", err=True)
        raise SystemExit(1)
    click.echo(render(expr))


@main.command()
@click.argument("expression")
def parse(expression: str) -> None:
    """Parse EXPRESSION and print its canonical form."""
    registry = _registry()
    try:
        expr = parse_expression(expression, registry)
    except ExpressionSyntaxError as exc:
        raise click.ClickException(str(exc)) from exc
    if expr is None:
        raise click.ClickException("Empty expression")
    click.echo(render(expr))
    click.echo(f"fully identified: {'yes' if is_fully_identified(expr) else 'no'}")
    click.echo(f"partially identified: {'yes' if is_partially_identified(expr) else 'no'}")


@main.command()
@click.argument("url")
@click.option("--name", "hint", help="License name declared alongside the URL.")
@_apply(network_options)
@_apply(table_options)
def url(
    url: str,
    hint: Optional[str],
    offline: Optional[bool],
    timeout: Optional[float],
    cache_dir: Optional[str],
    aliases: tuple[str, ...],
    seeds: tuple[str, ...],
    redirects: tuple[str, ...],
) -> None:
    """Resolve a single license URL."""
    settings = _settings(cache_dir, offline, None, timeout, aliases, seeds, redirects)
    with _engine(settings) as engine:
        expr = engine.url_resolver.resolve(url, hint)
    click.echo(render(expr))
    if not is_fully_identified(expr):
        raise SystemExit(1)


@main.command()
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=str),
    help="Directory holding the artifact license catalog.",
)
def catalog(cache_dir: Optional[str]) -> None:
    """List the persisted artifact license catalog."""
    settings = _settings(cache_dir)
    try:
        table = read_table(settings.catalog_path)
    except CatalogStoreError as exc:
        raise click.ClickException(str(exc)) from exc
    if not table:
        click.echo(f"No catalog entries in {settings.catalog_path}", err=True)
        return
    for key, value in sorted(table.items()):
        click.echo(f"{key}\t{value}")


if __name__ == "__main__":  # pragma: no cover
    main()
