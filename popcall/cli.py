"""CLI entry point for popcall."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

import click

from popcall import __version__
from popcall.config import AUTH_SERVER_URL, DEFAULT_PROBE_TIMEOUT_MS, FALLBACK_POP
from popcall.models import Credentials, Environment, ProbeResult, ProbeTarget


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__)
def main(verbose: bool) -> None:
    """popcall — POP latency probing and selection."""
    from rich.logging import RichHandler

    from popcall.display import console

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@main.command()
@click.option("-t", "--target", "targets", multiple=True, metavar="NAME=URL", help="POP to probe (repeatable)")
@click.option("--username", envvar="POPCALL_USERNAME", default=None, help="Auth service username")
@click.option("--key", envvar="POPCALL_KEY", default=None, help="Auth service key")
@click.option("--expires", type=int, default=None, help="Credential expiry (epoch seconds)")
@click.option("--auth-url", default=AUTH_SERVER_URL, help="Auth service URL", show_default=True)
@click.option("--timeout", default=DEFAULT_PROBE_TIMEOUT_MS, help="Probe timeout in ms", show_default=True)
@click.option("--fallback", default=FALLBACK_POP, help="POP used when none is reachable", show_default=True)
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("-o", "--output", default=None, help="Write JSON results to file")
@click.option("-q", "--quiet", is_flag=True, help="Print only the selected POP")
def probe(
    targets: tuple[str, ...],
    username: Optional[str],
    key: Optional[str],
    expires: Optional[int],
    auth_url: str,
    timeout: int,
    fallback: str,
    json_output: bool,
    output: Optional[str],
    quiet: bool,
) -> None:
    """Probe POPs and report the one with the lowest latency.

    POPs come from --target options, or from the authentication service
    when --username and --key are given.
    """
    from popcall.display import render_error

    try:
        probe_targets = [_parse_target(t) for t in targets]
    except click.BadParameter as exc:
        render_error(str(exc))
        sys.exit(1)

    credentials = None
    if not probe_targets:
        if not (username and key):
            render_error("Pass at least one --target or both --username and --key")
            sys.exit(1)
        credentials = Credentials(username=username, key=key, expires=expires)

    try:
        results, best = asyncio.run(_run(probe_targets, credentials, auth_url, timeout, fallback))
    except KeyboardInterrupt:
        sys.exit(130)

    _handle_output(results, best, json_output, output, quiet)


async def _run(
    targets: list[ProbeTarget],
    credentials: Optional[Credentials],
    auth_url: str,
    timeout: int,
    fallback: str,
) -> tuple[list[ProbeResult], ProbeResult]:
    from popcall.auth import AuthClient
    from popcall.display import render_error
    from popcall.exceptions import AuthenticationError
    from popcall.prober import ProbeRunner
    from popcall.selector import PopSelector

    if credentials is not None:
        try:
            auth = await AuthClient(url=auth_url).authenticate(credentials)
        except AuthenticationError as exc:
            render_error(str(exc))
            sys.exit(1)
        targets = auth.targets

    async with ProbeRunner(timeout_ms=timeout) as runner:
        selector = PopSelector(runner=runner, fallback_pop=fallback)
        results = await selector.probe_all(targets)
        return results, selector.get_best_pop()


def _parse_target(value: str) -> ProbeTarget:
    name, sep, url = value.partition("=")
    if not sep or not name.strip() or not url.strip():
        raise click.BadParameter(f"Invalid target {value!r}, expected NAME=URL")
    return ProbeTarget(name=name.strip(), endpoint=url.strip())


def _handle_output(
    results: list[ProbeResult],
    best: ProbeResult,
    json_output: bool,
    output: Optional[str],
    quiet: bool,
) -> None:
    from popcall.display import console, render_results
    from popcall.export import export_json, write_to_file

    if json_output:
        json_str = export_json(results, best)
        if output:
            write_to_file(json_str, output)
            if not quiet:
                console.print(f"[dim]Results written to {output}[/dim]")
        else:
            click.echo(json_str)
        return

    if quiet:
        click.echo(best.name)
    else:
        render_results(results, best)

    if output:
        write_to_file(export_json(results, best), output)
        if not quiet:
            console.print(f"\n[dim]Results written to {output}[/dim]")


@main.command()
@click.option("--user-agent", default="", help="Browser user agent string")
@click.option("--app-version", default="", help="Browser appVersion string")
@click.option("--no-media-capture", is_flag=True, help="Media capture API is absent")
@click.option("--opera", is_flag=True, help="Legacy Opera object is present")
@click.option("--chrome", is_flag=True, help="Chrome object is present")
def check(
    user_agent: str,
    app_version: str,
    no_media_capture: bool,
    opera: bool,
    chrome: bool,
) -> None:
    """Check whether a browser environment can place calls."""
    from popcall.display import render_support
    from popcall.support import is_supported

    env = Environment(
        user_agent=user_agent,
        app_version=app_version,
        has_media_capture=not no_media_capture,
        opera_object=opera,
        chrome_object=chrome,
    )
    supported = is_supported(env)
    render_support(supported)
    if not supported:
        sys.exit(1)


if __name__ == "__main__":
    main()
