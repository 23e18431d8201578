"""Short-lived signed tokens that let a browser script tag fetch a preview bundle.

The app shell is requested with the caller's identity header, but the module
script it embeds is fetched by the browser without it. The shell route mints
a token bound to (project, revision, user) and appends it to the bundle URL.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


@dataclass(frozen=True)
class BundleGrant:
    project_id: str
    revision_number: int
    user_id: str


class PreviewTokenSigner:
    """Signs and verifies bundle access tokens with HMAC-SHA256."""

    def __init__(self, secret: str, ttl_seconds: int = 300, clock=time.time):
        self.secret = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, project_id: str, revision_number: int, user_id: str) -> str:
        payload = {
            "p": project_id,
            "r": revision_number,
            "u": user_id,
            "exp": int((self.clock() + self.ttl_seconds) * 1000),
        }
        payload_str = json.dumps(payload, separators=(",", ":"))
        return f"{_b64url_encode(payload_str.encode('utf-8'))}.{self._sign(payload_str)}"

    def verify(self, token: str, project_id: str, revision_number: int) -> BundleGrant | None:
        """Grant carried by a token, or None if it is forged, expired or for another bundle."""
        parts = token.split(".")
        if len(parts) != 2:
            return None
        payload_b64, signature = parts
        try:
            payload_str = _b64url_decode(payload_b64).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return None
        if not hmac.compare_digest(signature, self._sign(payload_str)):
            logger.warning(f"Rejected preview token with bad signature for {project_id}@{revision_number}")
            return None

        data = json.loads(payload_str)
        if data.get("exp", 0) < int(self.clock() * 1000):
            return None
        if data.get("p") != project_id or data.get("r") != revision_number:
            return None
        return BundleGrant(project_id=project_id, revision_number=revision_number, user_id=data["u"])
