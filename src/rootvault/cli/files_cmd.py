"""File commands: store, ls, fetch, status."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import click
from rich.panel import Panel
from rich.table import Table

from ..errors import RootVaultError
from ..models import IndexStatus, StoredFile
from ._common import ROOTVAULT_HOME, console, fail, open_vault, read_key


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def register_files_commands(main: click.Group) -> None:
    """Register the file commands."""

    @main.command("store")
    @click.argument("owner")
    @click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
    @click.option("--home", default=ROOTVAULT_HOME, type=click.Path(), help="Vault home directory.")
    @click.option("--key", "key_path", default=None, type=click.Path(exists=True), help="Owner's public key (PEM).")
    @click.option("--no-encrypt", is_flag=True, help="Store files in plaintext.")
    def store(owner: str, paths: tuple, home: str, key_path: str, no_encrypt: bool):
        """Encrypt and store files, then commit a new root for OWNER.

        Examples:

            rootvault store alice notes.txt photo.jpg --key alice.pub.pem
        """
        if not key_path and not no_encrypt:
            fail("Pass --key PUBLIC.pem, or --no-encrypt to store plaintext.")

        vault = open_vault(home)
        files = [StoredFile(name=Path(p).name, data=Path(p).read_bytes()) for p in paths]

        try:
            result = vault.store_files(
                owner,
                files,
                encrypt_key=None if no_encrypt else read_key(key_path),
                on_file_stored=lambda i, d: console.print(
                    f"  [green]stored[/] {d.name} [dim]{d.content_id}[/]"
                ),
            )
        except RootVaultError as exc:
            fail(str(exc))

        lines = [
            f"Owner: [cyan]{owner}[/]",
            f"Files: [bold]{len(result.descriptors)}[/]",
            f"Root: [bold]{result.root_id}[/]",
            f"Previous: {result.previous_root_id or '[dim]none[/]'}",
        ]
        if result.cleanup_error:
            lines.append(f"[yellow]Old root kept: {result.cleanup_error}[/]")
        console.print(Panel("\n".join(lines), title="Root committed", border_style="green"))

    @main.command("ls")
    @click.argument("owner")
    @click.option("--home", default=ROOTVAULT_HOME, type=click.Path(), help="Vault home directory.")
    def ls(owner: str, home: str):
        """List OWNER's files, newest first."""
        vault = open_vault(home)
        try:
            index = vault.list_files(owner)
        except RootVaultError as exc:
            fail(str(exc))

        if not index:
            console.print(f"[dim]No files for {owner}.[/]")
            return

        table = Table(title=f"{owner}: {len(index)} file(s)")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Stored (UTC)", no_wrap=True)
        table.add_column("Content ID", style="dim", overflow="fold")
        for d in index:
            table.add_row(d.name, _format_ms(d.last_modified), d.content_id)
        console.print(table)

    @main.command("fetch")
    @click.argument("owner")
    @click.option("--home", default=ROOTVAULT_HOME, type=click.Path(), help="Vault home directory.")
    @click.option("--key", "key_path", default=None, type=click.Path(exists=True), help="Owner's private key (PEM).")
    @click.option("--out", "-o", "out_dir", required=True, type=click.Path(file_okay=False), help="Output directory.")
    def fetch(owner: str, home: str, key_path: str, out_dir: str):
        """Download and decrypt OWNER's files into a directory.

        When a name appears more than once, the newest copy wins.
        """
        vault = open_vault(home)
        try:
            files = vault.load_files(owner, decrypt_key=read_key(key_path))
        except RootVaultError as exc:
            fail(str(exc))

        target = Path(out_dir).expanduser()
        target.mkdir(parents=True, exist_ok=True)

        written = set()
        for f in files:
            name = Path(f.name).name or "unnamed"
            if name in written:
                continue
            (target / name).write_bytes(f.data)
            written.add(name)
            console.print(f"  [green]wrote[/] {target / name} ({f.size} bytes)")

        console.print(f"\n[bold]{len(written)}[/] file(s) written to [cyan]{target}[/]")

    @main.command("status")
    @click.argument("owner")
    @click.option("--home", default=ROOTVAULT_HOME, type=click.Path(), help="Vault home directory.")
    def status(owner: str, home: str):
        """Show OWNER's pointer and whether its root resolves."""
        vault = open_vault(home)
        try:
            resolution = vault.resolve(owner)
        except RootVaultError as exc:
            fail(str(exc))

        state = {
            IndexStatus.UNSET: "[dim]unset[/]",
            IndexStatus.LOADED: "[bold green]loaded[/]",
            IndexStatus.UNAVAILABLE: "[bold yellow]unavailable[/]",
        }[resolution.status]

        console.print(Panel(
            f"Store: [cyan]{vault.store.name}[/]\n"
            f"Ledger: [cyan]{vault.ledger.name}[/]\n"
            f"Root: {resolution.root_id or '[dim]none[/]'}\n"
            f"Index: {state}\n"
            f"Entries: {len(resolution.index)}",
            title=f"rootvault: {owner}",
            border_style="magenta",
        ))
