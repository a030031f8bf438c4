"""
Write-key gate for admin actions.

The deployment chooses explicitly whether a write key is required. In
``required`` mode a missing key locks every protected action; only
``optional`` mode lets an unconfigured deployment accept admin writes.
"""

import hmac
import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AuthMode(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"


class WriteKeyGate:
    """Compares the presented shared secret against the configured write key."""

    def __init__(self, write_key: Optional[str], mode: AuthMode = AuthMode.REQUIRED):
        self.write_key = write_key or None
        self.mode = AuthMode(mode)

    @property
    def open(self) -> bool:
        """True when protected actions are allowed without any key."""
        return self.write_key is None and self.mode is AuthMode.OPTIONAL

    def log_status(self):
        if self.write_key:
            logger.info(f"Write key: configured (mode={self.mode.value})")
        elif self.open:
            logger.warning("Write key: not configured - admin actions are UNAUTHENTICATED (mode=optional)")
        else:
            logger.error("Write key: not configured - admin actions are disabled (mode=required)")

    def verify(self, body: Dict[str, Any]) -> bool:
        """Check the ``token`` (or legacy ``key``) field of a request body."""
        if self.open:
            return True
        if self.write_key is None:
            return False

        presented = body.get("token")
        if presented is None:
            presented = body.get("key")
        if not isinstance(presented, str):
            return False
        return hmac.compare_digest(presented.encode(), self.write_key.encode())
