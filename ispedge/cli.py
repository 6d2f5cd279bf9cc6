"""CLI entry point for ispedge."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from ispedge import __version__
from ispedge.config import HOP_LIMIT, ORG_DENYLIST, TRACE_TIMEOUT
from ispedge.errors import InvalidTarget
from ispedge.models import ResolutionResult, ResolveConfig


def _setup_logging(debug: bool) -> None:
    if debug:
        from rich.logging import RichHandler

        from ispedge.display import err_console

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s: %(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")


def _collect_targets(args: tuple[str, ...], targets_opt: str | None) -> list[str]:
    targets = list(args)
    if targets_opt:
        targets.extend(t.strip() for t in targets_opt.split(",") if t.strip())
    return targets


@click.command()
@click.argument("target", nargs=-1)
@click.option("--targets", "targets_opt", default=None, help="Comma-separated trace targets [default: public resolvers]")
@click.option("--allow-degraded", is_flag=True, help="Fall back to a non-Internet hop past the gateway")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("-o", "--output", default=None, help="Write JSON results to file")
@click.option("--remote/--no-remote", default=True, help="Use remote trace services as last resort", show_default=True)
@click.option("--hop-limit", default=HOP_LIMIT, type=click.IntRange(1, 64), help="Max hops per trace", show_default=True)
@click.option("-t", "--timeout", default=TRACE_TIMEOUT, type=click.FloatRange(min=1.0), help="Per-strategy timeout in seconds", show_default=True)
@click.option("--deny-org", multiple=True, help="Extra organisation name to reject (repeatable)")
@click.option("--no-deny-org", is_flag=True, help="Disable the built-in cloud/CDN organisation denylist")
@click.option("-v", "--verbose", is_flag=True, help="Show per-target hops and trace attempts")
@click.option("--debug", is_flag=True, help="Debug logging on stderr")
@click.version_option(version=__version__)
def main(
    target: tuple[str, ...],
    targets_opt: str | None,
    allow_degraded: bool,
    json_output: bool,
    output: str | None,
    remote: bool,
    hop_limit: int,
    timeout: float,
    deny_org: tuple[str, ...],
    no_deny_org: bool,
    verbose: bool,
    debug: bool,
) -> None:
    """ispedge: find your ISP's provider-edge router.

    Traces towards a few neutral destinations, picks the local gateway
    and the first hop that belongs to your ISP, and votes across targets.
    """
    _setup_logging(debug)

    from ispedge.resolver import validate_targets

    targets = _collect_targets(target, targets_opt)
    config = ResolveConfig(
        allow_degraded=allow_degraded,
        hop_limit=hop_limit,
        trace_timeout=timeout,
        org_denylist=tuple(deny_org) + (() if no_deny_org else ORG_DENYLIST),
        include_remote=remote,
    )
    if targets:
        try:
            config.targets = validate_targets(targets)
        except InvalidTarget as exc:
            raise click.BadParameter(str(exc), param_hint="TARGET") from exc

    if not json_output:
        from ispedge.display import console
        console.print(f"[bold]Tracing towards {', '.join(config.targets)}...[/bold]\n")

    try:
        result = asyncio.run(_run(config))
    except KeyboardInterrupt:
        if not json_output:
            from ispedge.display import console
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    _handle_output(result, json_output, output, verbose)
    sys.exit(0 if result.found else 1)


async def _run(config: ResolveConfig) -> ResolutionResult:
    from ispedge.resolver import ProviderEdgeResolver

    return await ProviderEdgeResolver(config).resolve()


def _is_terminal() -> bool:
    from ispedge.display import console

    return console.is_terminal


def _handle_output(
    result: ResolutionResult,
    json_output: bool,
    output_file: str | None,
    verbose: bool,
) -> None:
    """Handle output rendering and export."""
    from ispedge.display import console, render_result
    from ispedge.export import export_json, format_text, write_to_file

    if json_output:
        json_str = export_json(result)
        if output_file:
            write_to_file(json_str, output_file)
        else:
            click.echo(json_str)
        return

    # Plain lines when piped; tables only make sense on a terminal
    if verbose or _is_terminal():
        render_result(result, verbose=verbose)
    else:
        click.echo(format_text(result))

    if output_file:
        write_to_file(export_json(result), output_file)
        console.print(f"\n[dim]Results written to {output_file}[/dim]")


if __name__ == "__main__":
    main()
