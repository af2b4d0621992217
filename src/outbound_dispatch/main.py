"""CLI entrypoint for outbound-dispatch."""

import logging

import rich_click as click

from outbound_dispatch import __version__
from outbound_dispatch.controllers import DispatchCliController, ProbeCommand, SendCommand
from outbound_dispatch.dispatch.models import CachePolicy, Priority, Verb

click.rich_click.USE_MARKDOWN = True
DISPATCH_CONTROLLER = DispatchCliController()


@click.group()
@click.version_option(version=__version__, prog_name="outbound-dispatch")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def outbound_dispatch(log_level: str) -> None:
    """Priority-queued outbound request dispatcher."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@outbound_dispatch.command("send")
@click.option(
    "--target",
    required=True,
    help="Configured target name (see `targets`) or an absolute base URL.",
)
@click.option("--endpoint", default="", help="Endpoint path appended to the target URL.")
@click.option(
    "--method",
    "verb",
    type=click.Choice([verb.value for verb in Verb], case_sensitive=False),
    default=Verb.GET.value,
    show_default=True,
)
@click.option(
    "--priority",
    type=click.Choice([priority.value for priority in Priority], case_sensitive=False),
    default=Priority.LOW.value,
    show_default=True,
)
@click.option(
    "--param",
    "params",
    multiple=True,
    help="Request parameter as key=value. Can be repeated.",
)
@click.option(
    "--header",
    "headers",
    multiple=True,
    help="Request header as key=value. Can be repeated.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Request timeout in seconds. Defaults to OUTBOUND_DISPATCH_DEFAULT_TIMEOUT_SECONDS.",
)
@click.option(
    "--retries",
    "max_retries",
    type=int,
    default=None,
    help="Retries while offline. Negative values count as 0.",
)
@click.option(
    "--cache-policy",
    type=click.Choice([policy.value for policy in CachePolicy]),
    default=CachePolicy.IGNORE_LOCAL_AND_REMOTE.value,
    show_default=True,
)
def send(  # noqa: PLR0913
    target: str,
    endpoint: str,
    verb: str,
    priority: str,
    params: tuple[str, ...],
    headers: tuple[str, ...],
    timeout_seconds: float | None,
    max_retries: int | None,
    cache_policy: str,
) -> None:
    """Dispatch one request and print its lifecycle events."""

    try:
        result = DISPATCH_CONTROLLER.send(
            SendCommand(
                target=target,
                endpoint=endpoint,
                verb=verb,
                priority=priority,
                params=params,
                headers=headers,
                timeout_seconds=timeout_seconds,
                max_retries=max_retries,
                cache_policy=cache_policy,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Request failed.")


@outbound_dispatch.command("probe")
@click.option(
    "--host",
    default=None,
    help="Host to probe. Defaults to OUTBOUND_DISPATCH_PROBE_HOST.",
)
@click.option("--port", type=click.IntRange(min=1, max=65535), default=None, help="TCP port.")
def probe(host: str | None, port: int | None) -> None:
    """Check whether the network is reachable."""

    result = DISPATCH_CONTROLLER.probe(ProbeCommand(host=host, port=port))
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Network unreachable.")


@outbound_dispatch.command("targets")
def targets() -> None:
    """List configured named targets."""

    try:
        lines = DISPATCH_CONTROLLER.targets()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    outbound_dispatch()
