"""HTTP transport used by the API client.

The client never talks to ``aiohttp`` directly; it awaits a transport
callable ``(url, method, headers, body, timeout) -> TransportResponse`` and
expects ``TransportError`` on network-level failure. Tests substitute a
plain coroutine function.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Protocol

import aiohttp

logger = logging.getLogger(__name__)

USER_AGENT = "EnrollBridge/1.0 (utility enrollment integration)"


class TransportError(Exception):
    """The request never produced an HTTP response (DNS, TLS, timeout...)."""


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: str


class Transport(Protocol):
    def __call__(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
        timeout: float,
    ) -> Awaitable[TransportResponse]: ...


class AiohttpTransport:
    """Transport backed by an ``aiohttp.ClientSession``.

    Args:
        session: Optional shared session. When omitted a short-lived session
            is opened per request.
    """

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self._session = session

    def _create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})

    async def __call__(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
        timeout: float,
    ) -> TransportResponse:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        try:
            if self._session is not None:
                return await self._send(self._session, url, method, headers, body, client_timeout)
            async with self._create_session() as session:
                return await self._send(session, url, method, headers, body, client_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

    @staticmethod
    async def _send(
        session: aiohttp.ClientSession,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
        timeout: aiohttp.ClientTimeout,
    ) -> TransportResponse:
        async with session.request(
            method, url, headers=headers, data=body, timeout=timeout
        ) as resp:
            text = await resp.text()
            return TransportResponse(status=resp.status, body=text)
