"""
Backend Client for the Club Record API
=======================================
Client module connecting the kiosk gateway to the record API.

Every submission resolves to one of three outcomes instead of raising:
DELIVERED (structured body without an error field), REJECTED (a response
arrived but does not confirm success), or TRANSPORT_FAILED (no response).
"""

import aiohttp
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    DELIVERED = "DELIVERED"
    REJECTED = "REJECTED"
    TRANSPORT_FAILED = "TRANSPORT_FAILED"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of a single delivery attempt."""
    status: DeliveryStatus
    body: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @classmethod
    def from_body(cls, http_status: int, body: Any) -> "DeliveryOutcome":
        """Classify a parsed response body."""
        if not isinstance(body, dict):
            return cls(DeliveryStatus.REJECTED, error="Response is not a JSON object")
        if "error" in body:
            return cls(DeliveryStatus.REJECTED, body=body, error=str(body["error"]))
        if not 200 <= http_status < 300:
            return cls(DeliveryStatus.REJECTED, body=body, error=f"HTTP {http_status}")
        return cls(DeliveryStatus.DELIVERED, body=body)


class RecordApiClient:
    """
    Async client for the club record API.
    """

    def __init__(
        self,
        backend_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        timeout_seconds: float = 30
    ):
        self.backend_url = backend_url.rstrip('/')
        self.token = token
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
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def submit(self, payload: Dict[str, Any]) -> DeliveryOutcome:
        """
        Send one action-tagged submission to the record API.

        Args:
            payload: Submission body, e.g. {"action": "checkin", "firstName": ...}.
                     The shared token is added to the copy that is sent.

        Returns:
            DeliveryOutcome; this method does not raise for network problems
        """
        body = dict(payload)
        body["token"] = self.token

        try:
            session = await self._get_session()
            async with session.post(f"{self.backend_url}/", json=body) as response:
                try:
                    parsed = await response.json(content_type=None)
                except ValueError as e:
                    logger.warning(f"Unparseable response ({response.status}): {e}")
                    return DeliveryOutcome(DeliveryStatus.REJECTED, error="Unparseable response")

                outcome = DeliveryOutcome.from_body(response.status, parsed)
                if not outcome.delivered:
                    logger.warning(f"Submission rejected: {outcome.error}")
                return outcome

        except asyncio.TimeoutError:
            logger.error("Submission timed out")
            return DeliveryOutcome(DeliveryStatus.TRANSPORT_FAILED, error="Timeout")
        except aiohttp.ClientError as e:
            logger.error(f"Connection error: {e}")
            return DeliveryOutcome(DeliveryStatus.TRANSPORT_FAILED, error=str(e))

    async def get(self, action: str, **params) -> Dict[str, Any]:
        """
        Run a read action, e.g. get("attendance", date="2024-05-01").

        Network failures come back as {"error": "offline"} like the
        interceptor's synthesized responses.
        """
        query = {"action": action}
        query.update({k: v for k, v in params.items() if v is not None})
        try:
            session = await self._get_session()
            async with session.get(f"{self.backend_url}/", params=query) as response:
                return await response.json(content_type=None)
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.error(f"Read '{action}' failed: {e}")
            return {"error": "offline"}

    async def ping(self) -> bool:
        """True when the record API answers a ping."""
        result = await self.get("ping")
        return bool(result.get("ok")) if isinstance(result, dict) else False

