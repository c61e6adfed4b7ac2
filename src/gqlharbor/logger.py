"""Package logger for gqlharbor with Rich console output and CLI helpers."""

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class HarborLogger(logging.Logger):
    """
    Logger used across gqlharbor.

    Regular levels (debug, info, warning, error, critical) go through a RichHandler.
    The extra methods are for CLI output that should not carry a log prefix.
    """

    def __init__(self, name: str, level: int = logging.INFO) -> None:
        super().__init__(name, level)
        self.console = Console(stderr=True)

        handler = RichHandler(
            console=self.console,
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.addHandler(handler)

    def print(self, message: str) -> None:
        """Print a message with Rich markup support."""
        self.console.print(message)

    def colored(self, message: str, style: str = "bold cyan") -> None:
        self.print(f"[{style}]{message}[/{style}]")

    def success(self, message: str) -> None:
        """Print a green check mark followed by the message."""
        self.print(f"[green]✓[/green] {message}")

    def hint(self, message: str) -> None:
        self.colored(message, "dim")

    def key_value(self, key: str, value: Any, key_style: str = "dim") -> None:
        """
        Print a "key: value" line, e.g. "Shutdown timeout: 60s".

        Args:
            key: The label
            value: The value shown after the label
            key_style: Rich style applied to the label
        """
        self.print(f"[{key_style}]{key}:[/{key_style}] {value}")

    def list_item(self, text: str, prefix: str = "-", style: str = "") -> None:
        if style:
            self.colored(f"{prefix} {text}", style)
        else:
            self.print(f"{prefix} {text}")


def get_logger(name: str = "gqlharbor") -> HarborLogger:
    """
    Get or create a HarborLogger.

    Child loggers (e.g. "gqlharbor.shutdown") are plain loggers propagating to it.

    Args:
        name: Logger name (default: "gqlharbor")

    Returns:
        HarborLogger instance
    """
    previous = logging.getLoggerClass()
    logging.setLoggerClass(HarborLogger)
    try:
        logger = logging.getLogger(name)
    finally:
        logging.setLoggerClass(previous)
    return logger  # type: ignore[return-value]
