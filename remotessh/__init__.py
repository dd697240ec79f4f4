# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""remotessh - Remote development sessions over the system ssh client."""

__version__ = "0.1.0"
