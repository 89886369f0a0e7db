"""
Conversational Agent Channels

Where scene descriptions go once the scheduler decides the view has changed.
A channel is anything with ``is_open`` and ``send(text)``; the scheduler talks
to it through ``agent_update_handler``.

Usage:
    from scenecast.agent import ConsoleAgent, agent_update_handler

    scheduler.start(get_source, on_update=agent_update_handler(ConsoleAgent()))
"""

import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union, runtime_checkable

import aiohttp
from rich.console import Console

from .diagnostics import console as default_console

logger = logging.getLogger(__name__)


@runtime_checkable
class AgentChannel(Protocol):
    @property
    def is_open(self) -> bool:
        ...

    def send(self, text: str) -> Union[None, Awaitable[None]]:
        ...


def agent_update_handler(channel: AgentChannel) -> Callable[[str], Awaitable[None]]:
    """Build a scheduler ``on_update`` that forwards descriptions to ``channel``.

    Skips while the session is closed. Send failures are logged, not raised.
    """

    async def on_update(description: str):
        if not channel.is_open:
            logger.debug("Agent session closed, description not sent")
            return
        try:
            outcome = channel.send(description)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Failed to send description to agent: {e}")

    return on_update


class ConsoleAgent:
    """Prints descriptions to the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or default_console
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, text: str):
        stamp = datetime.now().strftime("%H:%M:%S")
        self.console.print(f"[dim]{stamp}[/dim] [bold cyan]👁[/bold cyan] {text}")

    def close(self):
        self._open = False


class WebhookAgent:
    """POSTs ``{"text": ...}`` to an HTTP endpoint (agent bridge, chat hook)."""

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.headers = {"Content-Type": "application/json"}
        if headers:
            self.headers.update(headers)
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return bool(self.url) and not self._closed

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def send(self, text: str) -> Dict[str, Any]:
        """Deliver one description.

        Raises:
            aiohttp.ClientError: on transport failure or non-2xx status
        """
        session = await self._get_session()
        async with session.post(self.url, json={"text": text}, headers=self.headers) as response:
            response.raise_for_status()
            try:
                return await response.json(content_type=None)
            except ValueError:
                return {"status": "ok", "code": response.status}

    async def close(self):
        self._closed = True
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
