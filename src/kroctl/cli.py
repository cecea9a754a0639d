"""CLI entry point for kroctl."""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NoReturn

import click
import structlog
from oras.provider import Registry

from .collector import collect_files
from .config import CLIConfig
from .core import ArtifactPacker, ContentStore
from .errors import CancellationError, KroctlError
from .log import configure_logging
from .models import InspectReport, PushResult
from .output import Printer
from .registry import CredentialProvider, setup_repository
from .transfer import fetch, publish
from .version import VERSION, platform_string

logger = structlog.get_logger(__name__)

_BANNER = r"""
 __
|  | _________  ____
|  |/ /\_  __ \/  _ \
|    <  |  | \(  <_> )
|__|_ \ |__|   \____/
     \/
"""

_HELP = (
    "\b" + _BANNER + "\n"
    "kroctl is a CLI utility for working with kro ResourceGraphDefinitions "
    "(RGDs) and packaging them as OCI artifacts for distribution and reuse "
    "across Kubernetes clusters.\n\n"
    "With kroctl, you can package RGDs as OCI artifacts and publish them to "
    "OCI-compliant registries for sharing and distribution across teams and "
    "clusters.\n\n"
    "Learn more about kro at https://kro.run"
)


@dataclass
class Runtime:
    """Per-invocation state handed to every subcommand via ``ctx.obj``."""

    config: CLIConfig = field(default_factory=CLIConfig)
    printer: Printer = field(default_factory=Printer)
    credentials: CredentialProvider | None = None
    registry_factory: Callable[..., Any] = Registry

    def configure(self, json_output: bool, debug: bool) -> None:
        overrides: dict[str, Any] = {}
        if json_output:
            overrides["json_output"] = True
        if debug:
            overrides["debug"] = True
        if overrides:
            self.config = self.config.model_copy(update=overrides)
        self.printer = Printer(json_output=self.config.json_output, color=self.config.color)
        configure_logging(self.config.log_level, color=self.config.color)

    def fail(self, exc: KroctlError) -> NoReturn:
        self.printer.error(str(exc))
        sys.exit(exc.exit_code)


def _global_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Accept ``--json``/``--debug`` after the subcommand name as well."""
    func = click.option(
        "--debug", "debug", is_flag=True, default=False, help="Set log level to debug."
    )(func)
    func = click.option(
        "--json", "json_output", is_flag=True, default=False, help="Output in JSON format."
    )(func)
    return func


def _runtime(ctx: click.Context, json_output: bool, debug: bool) -> Runtime:
    runtime: Runtime = ctx.ensure_object(Runtime)
    if json_output or debug:
        runtime.configure(json_output, debug)
    return runtime


def _split_filenames(
    ctx: click.Context, param: click.Parameter, value: tuple[str, ...]
) -> list[str]:
    return [part for item in value for part in item.split(",") if part]


@click.group(invoke_without_command=True, help=_HELP)
@_global_options
@click.version_option(VERSION, prog_name="kroctl", message="%(version)s")
@click.pass_context
def main(ctx: click.Context, json_output: bool, debug: bool) -> None:
    """kroctl [global options] <subcommand> [args]"""
    runtime: Runtime = ctx.ensure_object(Runtime)
    runtime.configure(json_output, debug)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command("version")
@_global_options
@click.pass_context
def version_command(ctx: click.Context, json_output: bool, debug: bool) -> None:
    """Show the kroctl version and platform."""
    runtime = _runtime(ctx, json_output, debug)
    runtime.printer.version(VERSION, platform_string())


@main.command("push")
@click.argument("reference")
@click.option(
    "-f",
    "--filenames",
    multiple=True,
    required=True,
    callback=_split_filenames,
    help="RGD files or directories to push (repeatable, comma-separated).",
)
@_global_options
@click.pass_context
def push_command(
    ctx: click.Context,
    reference: str,
    filenames: list[str],
    json_output: bool,
    debug: bool,
) -> None:
    """Push ResourceGraphDefinitions to an OCI registry.

    Packages the RGD files as an OCI artifact and pushes it to REFERENCE.

    \b
    Examples:
      kroctl push localhost:5001/kro-stack-network:v1.0.0 \\
        -f stack.yaml -f subnet.yaml -f vpc.yaml
      kroctl push ghcr.io/myorg/kro-stack:latest -f ./rgds/
    """
    runtime = _runtime(ctx, json_output, debug)
    try:
        result = run_push(runtime, reference, filenames)
    except KeyboardInterrupt:
        runtime.fail(CancellationError("push"))
    except KroctlError as exc:
        runtime.fail(exc)
    runtime.printer.push_summary(result)


@main.command("inspect")
@click.argument("reference")
@_global_options
@click.pass_context
def inspect_command(
    ctx: click.Context, reference: str, json_output: bool, debug: bool
) -> None:
    """Inspect a ResourceGraphDefinition artifact in an OCI registry.

    Fetches the manifest of REFERENCE and lists the RGDs it contains.

    \b
    Examples:
      kroctl inspect localhost:5001/kro-stack-network:v1.0.0
      kroctl inspect ghcr.io/acme/kro-stack:latest
    """
    runtime = _runtime(ctx, json_output, debug)
    try:
        report = run_inspect(runtime, reference)
    except KeyboardInterrupt:
        runtime.fail(CancellationError("inspect"))
    except KroctlError as exc:
        runtime.fail(exc)
    runtime.printer.inspect_report(report)


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


def run_push(runtime: Runtime, reference: str, filenames: list[str]) -> PushResult:
    """Collect, pack and publish *filenames* as *reference*."""
    files = collect_files(filenames)
    logger.info("push_started", reference=reference, files=len(files))

    with ContentStore() as store:
        packed = ArtifactPacker().pack(store, files, reference)
        handle = setup_repository(
            reference,
            credentials=runtime.credentials,
            registry_factory=runtime.registry_factory,
        )
        logger.info("pushing_artifact", reference=reference, host=handle.reference.registry)
        descriptor = publish(store, packed, handle)

    return PushResult(
        reference=reference,
        files=len(files),
        digest=descriptor.digest,
        layers=packed.layers,
    )


def run_inspect(runtime: Runtime, reference: str) -> InspectReport:
    """Fetch the manifest of *reference* and build the inspect report."""
    logger.info("inspect_started", reference=reference)
    handle = setup_repository(
        reference,
        credentials=runtime.credentials,
        registry_factory=runtime.registry_factory,
    )
    fetched = fetch(handle)
    return InspectReport.build(handle.reference, fetched.descriptor, fetched.manifest())


if __name__ == "__main__":
    main()
