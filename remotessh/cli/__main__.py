# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Entry point for ``python -m remotessh.cli``."""

from remotessh.cli import cli

if __name__ == "__main__":
    cli()
