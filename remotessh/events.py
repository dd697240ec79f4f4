# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Lifecycle events for SSH sessions and tunnels.

Every event is published under two topics: the bare channel (``"tunnel"``)
and the compound ``"<channel>:<phase>"`` (``"tunnel:connected"``), so a
subscriber can listen broadly or narrowly. Delivery is synchronous and
fire-and-forget; subscribers added later do not see earlier events.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Union

from remotessh.utils.logging import get_logger

logger = get_logger(__name__)


class Channel(str, enum.Enum):
    SSH = "ssh"
    TUNNEL = "tunnel"


class Phase(str, enum.Enum):
    BEFORE_CONNECT = "before_connect"
    CONNECTED = "connected"
    BEFORE_DISCONNECT = "before_disconnect"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class LifecycleEvent:
    """A single state transition of the ssh session or one tunnel."""

    channel: Channel
    phase: Phase
    client: Any
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def topic(self) -> str:
        return f"{self.channel.value}:{self.phase.value}"


Handler = Callable[[LifecycleEvent], None]


def topic_name(channel: Union[Channel, str], phase: Union[Phase, str, None] = None) -> str:
    """Build a topic name from enum members or plain strings."""
    name = channel.value if isinstance(channel, Channel) else channel
    if phase is None:
        return name
    return f"{name}:{phase.value if isinstance(phase, Phase) else phase}"


class EventBus:
    """Publish/subscribe for LifecycleEvent."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Subscribe to a topic. Returns a callable that unsubscribes."""
        self._handlers.setdefault(topic, []).append(handler)
        return lambda: self.off(topic, handler)

    def off(self, topic: str, handler: Handler) -> None:
        handlers = self._handlers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: LifecycleEvent) -> None:
        """Deliver to bare-channel subscribers, then compound-topic subscribers."""
        for topic in (event.channel.value, event.topic):
            # Copy so handlers may unsubscribe while being called
            for handler in list(self._handlers.get(topic, ())):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(f"Event handler error on {topic}", exc=e, console_output=False)
