"""Outbound email for notifications via an SMTP2GO-style HTTP API."""

import logging
import os

import httpx

logger = logging.getLogger(__name__)


class EmailSender:
    """Posts plain-text messages to the provider's ``/email/send`` endpoint."""

    def __init__(self, api_key: str, base_url: str, sender: str, timeout: float = 10):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        self.timeout = timeout

    async def send(self, to_email: str, subject: str, body: str) -> None:
        payload = {
            "api_key": self.api_key,
            "sender": self.sender,
            "to": [to_email],
            "subject": subject,
            "text_body": body,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/email/send", json=payload
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Email provider rejected message to %s: %s %s",
                    to_email,
                    exc.response.status_code,
                    exc.response.text,
                )
                raise


def get_email_sender() -> EmailSender | None:
    """Build the sender from the environment, or ``None`` when unconfigured."""

    api_key = os.getenv("NOTIFY_EMAIL_API_KEY", "").strip()
    base_url = os.getenv("NOTIFY_EMAIL_BASE_URL", "").strip()
    sender = os.getenv("NOTIFY_EMAIL_SENDER", "").strip()
    if not (api_key and base_url and sender):
        return None
    return EmailSender(api_key, base_url, sender)
