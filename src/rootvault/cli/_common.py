"""Shared helpers for the CLI command modules."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from .. import ROOTVAULT_HOME
from ..client import RootVault
from ..config import load_config

console = Console()
logger = logging.getLogger("rootvault.cli")

__all__ = ["ROOTVAULT_HOME", "console", "logger", "open_vault", "read_key", "fail"]


def open_vault(home: str) -> RootVault:
    """Build a vault from the config under ``home``."""
    return RootVault.from_config(load_config(Path(home).expanduser()))


def read_key(path: Optional[str]) -> Optional[str]:
    """Read a PEM key file, or return None when no path was given."""
    if not path:
        return None
    return Path(path).expanduser().read_text(encoding="utf-8")


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[bold red]{escape(message)}[/]")
    raise SystemExit(1)
