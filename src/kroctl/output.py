"""Human and JSON rendering of command results."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import click

from .models import InspectReport, PushResult

__all__ = [
    "HEADING_COLOR",
    "Printer",
]

HEADING_COLOR = (50, 108, 229)

_COLUMN_PADDING = 2
_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(_TIME_FORMAT)


class Printer:
    """Writes results to stdout and errors to stderr."""

    def __init__(self, json_output: bool = False, color: bool = True) -> None:
        self.json_output = json_output
        self.color = color

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def echo(self, message: str = "", err: bool = False) -> None:
        click.echo(message, err=err)

    def heading(self, text: str) -> str:
        if not self.color:
            return text
        return click.style(text, fg=HEADING_COLOR, bold=True)

    def emit_json(self, payload: dict[str, Any]) -> None:
        self.echo(json.dumps(payload, indent=2))

    def table(self, headers: tuple[str, str], rows: list[tuple[str, str]]) -> None:
        width = max(len(cell) for cell in [headers[0], *(row[0] for row in rows)])
        for left, right in [headers, *rows]:
            self.echo(f"{left:<{width + _COLUMN_PADDING}}{right}")

    # ------------------------------------------------------------------
    # Command output
    # ------------------------------------------------------------------

    def push_summary(self, result: PushResult) -> None:
        if self.json_output:
            self.emit_json(
                {
                    "reference": result.reference,
                    "files": result.files,
                    "digest": result.digest,
                    "layers": [
                        {"name": layer.title, "digest": layer.digest, "size": layer.size}
                        for layer in result.layers
                    ],
                }
            )
            return

        self.echo(f"Successfully pushed {result.files} RGD file(s) to {result.reference}")
        self.echo(f"Digest: {result.digest}")

    def inspect_report(self, report: InspectReport) -> None:
        created = _format_time(report.created) if report.created else None

        if self.json_output:
            self.emit_json(
                {
                    "artifact": report.artifact,
                    "registry": report.registry,
                    "digest": report.digest,
                    "created": created,
                    "layers": [layer.model_dump() for layer in report.layers],
                }
            )
            return

        self.echo(f"Artifact:  {report.artifact}")
        self.echo(f"Registry:  {report.registry}")
        self.echo(f"Digest:    {report.digest}")
        if created:
            self.echo(f"Created:   {created}")

        if not report.layers:
            self.echo("\nNo ResourceGraphDefinitions found in artifact")
            return

        self.echo("\n" + self.heading("ResourceGraphDefinitions:"))
        self.table(
            ("Name", "Digest"),
            [(layer.name, layer.digest) for layer in report.layers],
        )

    def version(self, version: str, platform: str) -> None:
        if self.json_output:
            self.emit_json({"version": version, "platform": platform})
            return
        self.echo(f"kroctl version {version}")
        self.echo(platform)

    def error(self, message: str) -> None:
        if self.json_output:
            self.echo(json.dumps({"error": message}), err=True)
            return
        self.echo(message, err=True)
