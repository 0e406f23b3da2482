import base64
import json
import os
import sys
import unittest
from unittest import mock
from urllib.parse import parse_qs

import httpx

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import providers  # noqa: E402
from db.providers import (  # noqa: E402
    SENDGRID_URL,
    LogMailer,
    LogSmsSender,
    ProviderError,
    SendGridMailer,
    TwilioSmsSender,
)


class RecordingTransport:
    """httpx.MockTransport that keeps the requests it saw."""

    def __init__(self, status_code=202, body=""):
        self.requests = []
        self.status_code = status_code
        self.body = body
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)


class SendGridTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_posts_mail(self):
        recorder = RecordingTransport()
        mailer = SendGridMailer("sg-key", "no-reply@templeconnect.lk", transport=recorder.transport)
        await mailer.send("devotee@example.com", "Hello", "<p>Hi</p>")

        request = recorder.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), SENDGRID_URL)
        self.assertEqual(request.headers["Authorization"], "Bearer sg-key")
        payload = json.loads(request.content)
        self.assertEqual(payload["personalizations"], [{"to": [{"email": "devotee@example.com"}]}])
        self.assertEqual(payload["from"], {"email": "no-reply@templeconnect.lk"})
        self.assertEqual(payload["subject"], "Hello")
        self.assertEqual(payload["content"], [{"type": "text/html", "value": "<p>Hi</p>"}])

    async def test_rejected_mail_raises(self):
        recorder = RecordingTransport(status_code=401, body="bad key")
        mailer = SendGridMailer("sg-key", "a@b.c", transport=recorder.transport)
        with self.assertRaises(ProviderError) as ctx:
            await mailer.send("devotee@example.com", "Hello", "<p>Hi</p>")
        self.assertIn("401", str(ctx.exception))

    async def test_unreachable_raises(self):
        def handler(request):
            raise httpx.ConnectError("no route", request=request)

        mailer = SendGridMailer("sg-key", "a@b.c", transport=httpx.MockTransport(handler))
        with self.assertRaises(ProviderError):
            await mailer.send("devotee@example.com", "Hello", "<p>Hi</p>")


class TwilioTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_posts_form(self):
        recorder = RecordingTransport(status_code=201, body="{}")
        sender = TwilioSmsSender("AC123", "secret", "+15005550006", transport=recorder.transport)
        await sender.send("+94771234567", "Your code is 123456")

        request = recorder.requests[0]
        self.assertEqual(
            str(request.url), "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        )
        expected_auth = "Basic " + base64.b64encode(b"AC123:secret").decode()
        self.assertEqual(request.headers["Authorization"], expected_auth)
        form = parse_qs(request.content.decode())
        self.assertEqual(form["To"], ["+94771234567"])
        self.assertEqual(form["From"], ["+15005550006"])
        self.assertEqual(form["Body"], ["Your code is 123456"])

    async def test_rejected_sms_raises(self):
        recorder = RecordingTransport(status_code=400, body="invalid number")
        sender = TwilioSmsSender("AC123", "secret", "+1", transport=recorder.transport)
        with self.assertRaises(ProviderError):
            await sender.send("+94", "x")


class ProviderSelectionTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_log_senders_keep_outbox(self):
        mailer = LogMailer()
        await mailer.send("a@b.c", "Subject", "<p>Body</p>")
        self.assertEqual(mailer.outbox[0].subject, "Subject")

        sms = LogSmsSender()
        await sms.send("+94771234567", "Body")
        self.assertIsNone(sms.outbox[0].subject)
        self.assertEqual(sms.outbox[0].body, "Body")

    def test_selection_follows_config(self):
        with mock.patch.object(providers.config, "SENDGRID_API_KEY", None):
            self.assertIsInstance(providers.get_mailer(), LogMailer)
        with mock.patch.object(providers.config, "SENDGRID_API_KEY", "sg-key"):
            self.assertIsInstance(providers.get_mailer(), SendGridMailer)

        with mock.patch.object(providers.config, "TWILIO_ACCOUNT_SID", None):
            self.assertIsInstance(providers.get_sms_sender(), LogSmsSender)
        with mock.patch.multiple(
            providers.config,
            TWILIO_ACCOUNT_SID="AC123",
            TWILIO_AUTH_TOKEN="secret",
            TWILIO_FROM_NUMBER="+1",
        ):
            self.assertIsInstance(providers.get_sms_sender(), TwilioSmsSender)


if __name__ == "__main__":
    unittest.main()
