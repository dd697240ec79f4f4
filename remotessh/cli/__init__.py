# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""remotessh CLI package."""

import click

from remotessh import __version__
from remotessh.utils.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="remotessh")
@click.option("--debug", is_flag=True, help="Verbose output (also REMOTESSH_DEBUG=1).")
def cli(debug: bool):
    """remotessh - Remote development sessions over SSH."""
    configure_logging(debug=debug)


# Register commands
from remotessh.cli.commands import history  # noqa: E402,F401
from remotessh.cli.commands import session  # noqa: E402,F401
