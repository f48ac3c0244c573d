"""
rootvault CLI -- store, list, and fetch an owner's encrypted files.

Command groups live in their own modules and are attached to the
main Click group through register functions.

Entry point: rootvault.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="rootvault")
@click.option("--verbose", "-v", is_flag=True, help="Log protocol steps to stderr.")
def main(verbose: bool):
    """rootvault -- encrypted, versioned file roots.

    Every upload is encrypted per file, indexed, and committed
    through a single pointer per owner.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


from .setup_cmd import register_setup_commands
from .files_cmd import register_files_commands

register_setup_commands(main)
register_files_commands(main)
