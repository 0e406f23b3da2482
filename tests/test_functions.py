import unittest
from datetime import date, datetime, timedelta

from db_case import DatabaseTestCase

from db import crud
from db.functions import (
    OtpError,
    send_booking_email,
    send_otp,
    send_status_update_email,
    verify_otp,
)
from db.models import AuthUser, SiteSettings, TicketSelection
from db.providers import LogMailer, LogSmsSender

CUSTOMER = AuthUser(id="u-cust", email="devotee@example.com")


class OtpTestCase(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.now = datetime(2025, 11, 1, 12, 0, 0)
        self.mailer = LogMailer()
        self.sms = LogSmsSender()

    async def _send(self, otp_type="email", **kwargs):
        await send_otp(
            CUSTOMER,
            otp_type,
            "pre_submission",
            mailer=self.mailer,
            sms_sender=self.sms,
            now=self.now,
            **kwargs,
        )
        record = await crud.get_verification(CUSTOMER.id, "pre_submission")
        return record.email_otp if otp_type == "email" else record.phone_otp

    async def test_email_code_is_sent_and_verifies_once(self):
        code = await self._send("email")
        self.assertRegex(code, r"^\d{6}$")
        self.assertEqual(len(self.mailer.outbox), 1)
        sent = self.mailer.outbox[0]
        self.assertEqual(sent.to, "devotee@example.com")
        self.assertEqual(sent.subject, f"Your Verification Code: {code}")
        self.assertIn(f"<strong>{code}</strong>", sent.body)
        self.assertIn("The Temple Connect Team", sent.body)

        record = await crud.get_verification(CUSTOMER.id, "pre_submission")
        self.assertEqual(record.email_otp_expires_at, self.now + timedelta(minutes=10))

        with self.assertRaises(OtpError) as ctx:
            await verify_otp(CUSTOMER, "email", "000000" if code != "000000" else "111111",
                             now=self.now)
        self.assertEqual(str(ctx.exception), "Invalid email OTP")

        result = await verify_otp(CUSTOMER, "email", f" {code} ", now=self.now)
        self.assertTrue(result.success)
        self.assertEqual(result.message, "Email verified successfully")
        self.assertTrue(result.email_verified)
        self.assertFalse(result.phone_verified)
        self.assertFalse(result.fully_verified)

        # the code is burnt on success
        with self.assertRaises(OtpError):
            await verify_otp(CUSTOMER, "email", code, now=self.now)

    async def test_expired_code(self):
        code = await self._send("email")
        with self.assertRaises(OtpError) as ctx:
            await verify_otp(CUSTOMER, "email", code, now=self.now + timedelta(minutes=11))
        self.assertEqual(str(ctx.exception), "Email OTP has expired")
        record = await crud.get_verification(CUSTOMER.id, "pre_submission")
        self.assertFalse(record.email_verified)

    async def test_phone_code(self):
        with self.assertRaises(OtpError) as ctx:
            await self._send("phone")
        self.assertEqual(str(ctx.exception), "Phone number is required")

        code = await self._send("phone", phone="077 123 4567", country_code="+94")
        self.assertEqual(len(self.sms.outbox), 1)
        self.assertEqual(self.sms.outbox[0].to, "+94771234567")
        self.assertIn(code, self.sms.outbox[0].body)
        self.assertEqual(self.mailer.outbox, [])

        record = await crud.get_verification(CUSTOMER.id, "pre_submission")
        self.assertEqual(record.phone, "+94771234567")
        self.assertEqual(record.country_code, "+94")

        with self.assertRaises(OtpError) as ctx:
            await verify_otp(CUSTOMER, "phone", code, now=self.now + timedelta(minutes=20))
        self.assertEqual(str(ctx.exception), "Phone OTP has expired")
        result = await verify_otp(CUSTOMER, "phone", code, now=self.now)
        self.assertTrue(result.phone_verified)
        self.assertFalse(result.email_verified)

    async def test_unknown_type_and_missing_record(self):
        with self.assertRaises(OtpError):
            await send_otp(CUSTOMER, "fax", mailer=self.mailer, now=self.now)
        with self.assertRaises(OtpError) as ctx:
            await verify_otp(CUSTOMER, "email", "123456", now=self.now)
        self.assertEqual(str(ctx.exception), "No verification record found")

    async def test_custom_templates(self):
        settings = SiteSettings(
            site_name="Kovil Connect",
            otp_email_subject="{site_name} code {code}",
            otp_email_template="<p>{code} {unknown}</p>",
        )
        await send_otp(CUSTOMER, "email", mailer=self.mailer, settings=settings, now=self.now)
        record = await crud.get_verification(CUSTOMER.id, "pre_submission")
        sent = self.mailer.outbox[0]
        self.assertEqual(sent.subject, f"Kovil Connect code {record.email_otp}")
        self.assertEqual(sent.body, f"<p>{record.email_otp} {{unknown}}</p>")

    async def test_both_channels_mark_the_application(self):
        code = await self._send("email")
        await verify_otp(CUSTOMER, "email", code, now=self.now)
        application = await crud.submit_vendor_application(CUSTOMER.id, "Devi Flowers")
        self.assertFalse(application.phone_verified)

        code = await self._send("phone", phone="771234567", country_code="+94")
        result = await verify_otp(CUSTOMER, "phone", code, now=self.now)
        self.assertTrue(result.email_verified and result.phone_verified)
        self.assertTrue(result.fully_verified)

        application = await crud.get_vendor_application(CUSTOMER.id)
        self.assertTrue(application.email_verified)
        self.assertTrue(application.phone_verified)


class BookingEmailTestCase(DatabaseTestCase):
    async def test_booking_and_status_emails(self):
        temple = await crud.get_temple("t-nallur")
        booking = await crud.create_booking(
            temple.id,
            "Devi Raman",
            "devotee@example.com",
            date(2030, 1, 15),
            [TicketSelection("k-nallur-archana", "Archana", 2, 500.0)],
        )
        mailer = LogMailer()
        await send_booking_email(booking, temple, mailer=mailer, settings=SiteSettings())
        sent = mailer.outbox[0]
        self.assertEqual(sent.to, "devotee@example.com")
        self.assertEqual(sent.subject, f"Booking confirmed: {booking.booking_code}")
        self.assertIn(booking.booking_code, sent.body)
        self.assertIn("Nallur Kandaswamy Kovil", sent.body)
        self.assertIn("LKR 1,000.00", sent.body)

        await crud.update_booking_status(booking.id, "confirmed")
        confirmed = await crud.get_booking_by_code(booking.booking_code)
        await send_status_update_email(confirmed, temple.name, mailer=mailer)
        sent = mailer.outbox[1]
        self.assertEqual(sent.subject, f"Booking {booking.booking_code} is now confirmed")
        self.assertIn("<strong>confirmed</strong>", sent.body)

    async def test_booking_email_escapes_names(self):
        temple = await crud.get_temple("t-nallur")
        booking = await crud.create_booking(
            temple.id,
            "<b>Devi</b> & Co",
            "devotee@example.com",
            date(2030, 1, 15),
            [TicketSelection("k-nallur-archana", "Archana", 1, 500.0)],
        )
        mailer = LogMailer()
        await send_booking_email(booking, temple, mailer=mailer, settings=SiteSettings())
        body = mailer.outbox[0].body
        self.assertIn("Dear &lt;b&gt;Devi&lt;/b&gt; &amp; Co,", body)
        self.assertNotIn("<b>Devi</b>", body)

        await send_status_update_email(booking, "<i>Kovil</i>", mailer=mailer)
        body = mailer.outbox[1].body
        self.assertIn("&lt;i&gt;Kovil&lt;/i&gt;", body)
        self.assertNotIn("<b>Devi</b>", body)


if __name__ == "__main__":
    unittest.main()
