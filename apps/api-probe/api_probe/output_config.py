"""Console and log output format selection shared by the CLI and the server."""

import os
from enum import Enum
from typing import Literal


class OutputFormat(str, Enum):
    """Console output modes."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """
    Resolve the console output format: CLI option, then environment, then auto.

    Unknown values at either level are ignored rather than rejected.
    """
    for candidate in (cli_override, os.environ.get(ENV_VAR_NAME)):
        if not candidate:
            continue
        try:
            return OutputFormat(candidate.lower())
        except ValueError:
            continue
    return OutputFormat.AUTO


def get_log_format(output_format: OutputFormat) -> LogFormat:
    """
    Map a console output format onto a structlog renderer family.

    - auto/rich -> console (coloured)
    - plain -> plain (no colours)
    - json -> json
    """
    if output_format == OutputFormat.JSON:
        return "json"
    if output_format == OutputFormat.PLAIN:
        return "plain"
    return "console"
