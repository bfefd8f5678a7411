"""Subcommand modules for mategate.

register_commands() uses deferred imports to keep ``mategate --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register command groups and standalone commands on the root group."""
    # --- Groups ---
    from mategate.commands.code import code
    from mategate.commands.roundtrip import roundtrip

    cli.add_command(code)
    cli.add_command(roundtrip)

    # --- Standalone commands ---
    from mategate.commands.call import call
    from mategate.commands.domains import domains
    from mategate.commands.serve import serve

    cli.add_command(call)
    cli.add_command(domains)
    cli.add_command(serve)
