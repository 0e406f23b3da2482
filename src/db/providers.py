"""
Outbound mail and SMS.

SendGrid and Twilio are called over their HTTP APIs with httpx. When no credentials
are configured the Log* senders are used instead, so the demo database stays usable
offline (codes end up in the log).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class ProviderError(Exception):
    """A mail or SMS provider rejected the request or could not be reached."""


@dataclass
class SentMessage:
    to: str
    subject: Optional[str]
    body: str


class SendGridMailer:
    def __init__(
        self,
        api_key: str,
        sender: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> None:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(SENDGRID_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"SendGrid unreachable: {e}") from e
        if response.status_code >= 400:
            _logger.warning(f"SendGrid rejected mail to {to}: {response.status_code}")
            raise ProviderError(f"SendGrid error {response.status_code}: {response.text}")
        _logger.info(f"Mail sent to {to}")


class TwilioSmsSender:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, body: str) -> None:
        url = TWILIO_URL.format(sid=self.account_sid)
        data = {"To": to, "From": self.from_number, "Body": body}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                auth=(self.account_sid, self.auth_token),
            ) as client:
                response = await client.post(url, data=data)
        except httpx.HTTPError as e:
            raise ProviderError(f"Twilio unreachable: {e}") from e
        if response.status_code >= 400:
            _logger.warning(f"Twilio rejected SMS to {to}: {response.status_code}")
            raise ProviderError(f"Twilio error {response.status_code}: {response.text}")
        _logger.info(f"SMS sent to {to}")


@dataclass
class LogMailer:
    """Writes mail to the log and keeps it in ``outbox``."""

    outbox: List[SentMessage] = field(default_factory=list)

    async def send(self, to: str, subject: str, html: str) -> None:
        self.outbox.append(SentMessage(to, subject, html))
        _logger.info(f"[mail:{to}] {subject}")


@dataclass
class LogSmsSender:
    outbox: List[SentMessage] = field(default_factory=list)

    async def send(self, to: str, body: str) -> None:
        self.outbox.append(SentMessage(to, None, body))
        _logger.info(f"[sms:{to}] {body}")


def get_mailer():
    if config.SENDGRID_API_KEY:
        return SendGridMailer(config.SENDGRID_API_KEY, config.SENDER_EMAIL)
    _logger.debug("SENDGRID_API_KEY not set, mail goes to the log.")
    return LogMailer()


def get_sms_sender():
    if config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN:
        return TwilioSmsSender(
            config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN, config.TWILIO_FROM_NUMBER
        )
    _logger.debug("Twilio credentials not set, SMS goes to the log.")
    return LogSmsSender()
