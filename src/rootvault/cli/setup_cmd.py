"""Setup command: init."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel

from ..config import (
    LedgerBackendType,
    LedgerConfig,
    RootVaultConfig,
    StoreBackendType,
    StoreConfig,
    save_config,
)
from ._common import ROOTVAULT_HOME, console


def register_setup_commands(main: click.Group) -> None:
    """Register the init command."""

    @main.command("init")
    @click.option("--home", default=ROOTVAULT_HOME, type=click.Path(), help="Vault home directory.")
    @click.option(
        "--store",
        "store_backend",
        default=StoreBackendType.LOCAL.value,
        type=click.Choice([b.value for b in StoreBackendType]),
        help="Content store backend.",
    )
    @click.option("--api-url", default=None, help="IPFS RPC URL (ipfs store only).")
    @click.option("--token-env", default=None, help="Env var holding the IPFS bearer token.")
    @click.option("--strict", is_flag=True, help="Fail instead of returning an empty index when a root cannot be fetched.")
    def init(home: str, store_backend: str, api_url: str, token_env: str, strict: bool):
        """Write a config.yaml for a new vault.

        Examples:

            rootvault init

            rootvault init --store ipfs --api-url http://127.0.0.1:5001/api/v0
        """
        home_path = Path(home).expanduser()
        store = StoreConfig(backend=StoreBackendType(store_backend), token_env_var=token_env)
        if api_url:
            store.api_url = api_url

        config = RootVaultConfig(
            home=home_path,
            store=store,
            ledger=LedgerConfig(backend=LedgerBackendType.LOCAL),
            strict_index_fetch=strict,
        )
        path = save_config(config)

        console.print(Panel(
            f"Home: [cyan]{home_path}[/]\n"
            f"Store: [bold]{store.backend.value}[/]\n"
            f"Ledger: [bold]{config.ledger.backend.value}[/]\n"
            f"Strict index fetch: {'yes' if strict else 'no'}\n"
            f"Config: [dim]{path}[/]",
            title="rootvault initialized",
            border_style="green",
        ))
