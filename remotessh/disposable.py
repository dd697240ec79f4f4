# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Helper for releasing groups of async resources."""

import asyncio
from typing import Awaitable, Callable, Iterable, List

from remotessh.utils.logging import get_logger

logger = get_logger(__name__)

Disposer = Callable[[], Awaitable[None]]


async def dispose_all(disposers: Iterable[Disposer]) -> List[BaseException]:
    """Run every disposer concurrently; never raises.

    Returns the exceptions that were raised (already logged) so callers can
    report them if they care.
    """
    results = await asyncio.gather(*(d() for d in disposers), return_exceptions=True)
    errors = []
    for result in results:
        if isinstance(result, BaseException):
            logger.error("Dispose failed", exc=result, console_output=False)
            errors.append(result)
    return errors
