"""
Network fetch for the sign-in gateway.

Thin aiohttp wrapper used by the offline interceptor and the asset cache:
a request goes out as an OutgoingRequest, comes back as an
InterceptedResponse, and anything that prevents a response from arriving
is raised as TransportError.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """No response was received from the network."""


@dataclass
class OutgoingRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


@dataclass
class InterceptedResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return None

    @classmethod
    def json(cls, data: dict, status: int = 200) -> "InterceptedResponse":
        return cls(
            status=status,
            headers={"Content-Type": "application/json"},
            body=json.dumps(data).encode("utf-8")
        )


# Hop-by-hop and length headers are recomputed by whoever re-serves the body
_DROPPED_HEADERS = {"content-length", "content-encoding", "transfer-encoding", "connection"}


class Fetcher:
    """Async HTTP fetcher sharing one aiohttp session."""

    def __init__(self, timeout_seconds: float = 30):
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def fetch(self, request: OutgoingRequest) -> InterceptedResponse:
        """
        Send a request and read the whole response.

        Raises:
            TransportError: on connection failure or transport timeout
        """
        try:
            session = await self._get_session()
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body
            ) as response:
                body = await response.read()
                headers = {
                    k: v for k, v in response.headers.items()
                    if k.lower() not in _DROPPED_HEADERS
                }
                return InterceptedResponse(status=response.status, headers=headers, body=body)
        except asyncio.TimeoutError as e:
            logger.warning(f"Fetch timed out: {request.method} {request.url}")
            raise TransportError("Request timed out") from e
        except aiohttp.ClientError as e:
            logger.warning(f"Fetch failed: {request.method} {request.url}: {e}")
            raise TransportError(str(e)) from e
