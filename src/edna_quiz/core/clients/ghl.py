"""GoHighLevel inbound webhook client.

Posting to the webhook triggers a GHL workflow that emails the user their
time-limited download link.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..errors import NotificationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def build_payload(
    email: str,
    name: Optional[str],
    download_link: str,
    edna_type: Optional[str] = None,
    core_type: Optional[str] = None,
) -> dict:
    """Webhook body. Name falls back to the email's local part."""
    return {
        "email": email,
        "name": name or email.split("@")[0],
        "downloadLink": download_link,
        "ednaType": edna_type or "Unknown",
        "coreType": core_type or "Unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class GhlNotifier:
    """Sends download links to the marketing platform. Best effort."""

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def notify(
        self,
        email: str,
        name: Optional[str],
        download_link: str,
        edna_type: Optional[str] = None,
        core_type: Optional[str] = None,
    ) -> bool:
        """POST the download link to the inbound webhook.

        Returns False without sending when no webhook is configured.

        Raises:
            ValidationError: email or download link missing.
            NotificationError: the request failed or returned an error status.
        """
        if not email or not download_link:
            raise ValidationError("email and download link are required to notify GHL")
        if not self.enabled:
            logger.warning("GHL_INBOUND_WEBHOOK_URL not set, skipping notification for %s", email)
            return False

        payload = build_payload(email, name, download_link, edna_type, core_type)
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(
                f"GHL webhook returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationError(f"GHL webhook request failed: {exc}") from exc

        logger.info("GHL webhook notified for %s (status %d)", email, response.status_code)
        return True
