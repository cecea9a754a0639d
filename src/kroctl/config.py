"""Runtime configuration for a single kroctl invocation.

Settings come from command-line flags and ``KROCTL_*`` environment
variables. One :class:`CLIConfig` is built at CLI entry and handed to every
command through the click context, so nothing is shared between runs.

Examples
--------
Enable info logs for one run::

    KROCTL_LOG=info kroctl push ghcr.io/acme/stack:v1 -f ./rgds/

Disable coloured output::

    NO_COLOR=1 kroctl inspect ghcr.io/acme/stack:v1
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "CLIConfig",
    "LogLevel",
]

LogLevel = Literal["debug", "info", "silent"]


class CLIConfig(BaseSettings):
    """Options shared by every kroctl subcommand."""

    model_config = SettingsConfigDict(
        env_prefix="KROCTL_",
        populate_by_name=True,
        frozen=True,
    )

    # KROCTL_LOG: "debug" or "info", anything else keeps logs silent
    log: str = ""
    json_output: bool = False
    debug: bool = False
    # NO_COLOR disables colour whenever it is set, whatever its value
    no_color: str | None = Field(default=None, validation_alias="NO_COLOR")

    @property
    def log_level(self) -> LogLevel:
        """Effective log level; ``--debug`` overrides ``KROCTL_LOG``."""
        if self.debug:
            return "debug"
        value = self.log.strip().lower()
        if value == "debug":
            return "debug"
        if value == "info":
            return "info"
        return "silent"

    @property
    def color(self) -> bool:
        """Whether output may be coloured."""
        return self.no_color is None
