"""
Vendor Import Job Queue

Publishing to and receiving from a QStash-compatible HTTP queue.

Publish:
- POST {QUEUE_API_URL}/v2/publish/{destination} with a bearer token
- Upstash-Retries bounds redelivery of failed deliveries

Receive:
- Every delivery carries an Upstash-Signature JWT (HS256)
- Verified against the current signing key, then the next one (key rotation)
- The "body" claim is the base64url SHA-256 of the raw request body
"""

import base64
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwt

from vendor_import.errors import UnauthorizedError, VendorImportError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Upstash-Signature"
RETRIED_HEADER = "Upstash-Retried"
SIGNATURE_ISSUER = "Upstash"


class QueuePublishError(VendorImportError):
    """Queue rejected or did not receive a publish."""


class QueuePublisher:
    """Publishes JSON jobs to the queue."""

    def __init__(
        self,
        api_url: str,
        token: str,
        retries: int = 2,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.api_url = api_url.rstrip("/")
        self.retries = retries
        self._token = token
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings) -> "QueuePublisher":
        return cls(
            api_url=settings.QUEUE_API_URL,
            token=settings.QUEUE_TOKEN,
            retries=settings.QUEUE_RETRIES,
            timeout=settings.QUEUE_TIMEOUT_SECONDS,
        )

    async def publish_json(self, destination_url: str, body: Dict[str, Any]) -> Optional[str]:
        """
        Publish a JSON body for delivery to destination_url.

        Returns:
            The queue's message id, when it reports one

        Raises:
            QueuePublishError: transport failure or non-2xx response
        """
        if not self._token:
            raise QueuePublishError("Queue unavailable: QUEUE_TOKEN not configured")

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "Upstash-Retries": str(self.retries),
        }
        url = f"{self.api_url}/v2/publish/{destination_url}"

        try:
            response = await self._client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise QueuePublishError("Queue publish timed out") from e
        except httpx.RequestError as e:
            raise QueuePublishError(f"Queue publish failed: {str(e)[:100]}") from e

        if not 200 <= response.status_code < 300:
            raise QueuePublishError(f"Queue HTTP {response.status_code}: {response.text[:200]}")

        try:
            message_id = response.json().get("messageId")
        except ValueError:
            message_id = None

        logger.info(
            f"Published job to queue (retries={self.retries})",
            extra={"message_id": message_id, "destination": destination_url}
        )
        return message_id

    async def aclose(self):
        await self._client.aclose()


def body_digest(body: bytes) -> str:
    """base64url SHA-256 of a request body, without padding."""
    digest = hashlib.sha256(body).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class QueueSignatureVerifier:
    """Verifies Upstash-Signature JWTs on queue deliveries."""

    def __init__(self, current_signing_key: str, next_signing_key: str = ""):
        self._keys = [k for k in (current_signing_key, next_signing_key) if k]

    @classmethod
    def from_settings(cls, settings) -> "QueueSignatureVerifier":
        return cls(settings.QUEUE_CURRENT_SIGNING_KEY, settings.QUEUE_NEXT_SIGNING_KEY)

    def verify(self, signature: Optional[str], body: bytes, url: Optional[str] = None) -> Dict[str, Any]:
        """
        Verify a delivery signature.

        Args:
            signature: Upstash-Signature header value
            body: raw request body
            url: expected destination (checked against the "sub" claim when given)

        Returns:
            Decoded claims

        Raises:
            UnauthorizedError: missing, invalid, expired or mismatched signature
        """
        if not signature:
            raise UnauthorizedError("Missing queue signature")
        if not self._keys:
            raise UnauthorizedError("Queue signing keys not configured")

        claims = None
        for key in self._keys:
            try:
                claims = jwt.decode(
                    signature,
                    key,
                    algorithms=["HS256"],
                    issuer=SIGNATURE_ISSUER,
                    options={"verify_aud": False},
                )
                break
            except JWTError as e:
                logger.debug(f"Queue signature rejected by a signing key: {e}")

        if claims is None:
            raise UnauthorizedError("Invalid queue signature")

        if url is not None and claims.get("sub") != url:
            raise UnauthorizedError("Queue signature destination mismatch")

        expected = body_digest(body)
        provided = str(claims.get("body", "")).rstrip("=")
        if not hmac.compare_digest(provided, expected):
            raise UnauthorizedError("Queue signature body mismatch")

        return claims
