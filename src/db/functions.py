"""
Server-side functions: one-time codes for vendor verification and booking e-mails.
Callers receive OtpError for verification failures and ProviderError when mail/SMS
dispatch fails.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from db import crud
from db.models import (
    AuthUser,
    OtpChannel,
    SiteSettings,
    Temple,
    TempleBooking,
    VerificationStage,
)
from db.providers import get_mailer, get_sms_sender
from utils import config
from utils.logger import get_logger
from utils.pure import format_price, generate_markdown_table, generate_numeric_code

_logger = get_logger(__name__)


class OtpError(Exception):
    pass


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    message: str
    email_verified: bool
    phone_verified: bool
    fully_verified: bool


async def _settings(settings: Optional[SiteSettings]) -> SiteSettings:
    if settings is not None:
        return settings
    try:
        return await crud.get_site_settings() or SiteSettings()
    except Exception as e:
        _logger.warning(f"Using default e-mail templates: {e}")
        return SiteSettings()


def _fill(template: str, **values: str) -> str:
    # admins edit these strings; plain replacement tolerates stray braces
    for name, value in values.items():
        template = template.replace("{" + name + "}", value)
    return template


def _international(phone: str, country_code: Optional[str]) -> str:
    phone = phone.strip().replace(" ", "")
    if phone.startswith("+") or not country_code:
        return phone
    prefix = country_code if country_code.startswith("+") else "+" + country_code
    return prefix + phone.lstrip("0")


async def send_otp(
    user: AuthUser,
    otp_type: OtpChannel,
    stage: VerificationStage = "pre_submission",
    phone: Optional[str] = None,
    country_code: Optional[str] = None,
    *,
    mailer=None,
    sms_sender=None,
    settings: Optional[SiteSettings] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Generate a 6-digit code for one channel, store it against (user, stage) with a
    ten minute expiry and dispatch it. A new code replaces any earlier one.
    """
    if otp_type not in ("email", "phone"):
        raise OtpError(f"Unknown OTP type: {otp_type}")
    if otp_type == "phone" and not (phone or "").strip():
        raise OtpError("Phone number is required")

    code = generate_numeric_code(6)
    expires_at = (now or datetime.now()) + config.OTP_TTL
    await crud.store_otp(
        user.id,
        stage,
        otp_type,
        code,
        expires_at,
        phone=_international(phone, country_code) if phone else None,
        country_code=country_code,
    )

    site = await _settings(settings)
    if otp_type == "email":
        mailer = mailer or get_mailer()
        await mailer.send(
            user.email,
            _fill(site.otp_email_subject, code=code, site_name=site.site_name),
            _fill(site.otp_email_template, code=code, site_name=site.site_name),
        )
    else:
        sms_sender = sms_sender or get_sms_sender()
        await sms_sender.send(
            _international(phone, country_code),
            f"Your {site.site_name} verification code is {code}. "
            f"It expires in {int(config.OTP_TTL.total_seconds() // 60)} minutes.",
        )
    _logger.info(f"{otp_type} OTP sent to user {user.id} ({stage})")


async def verify_otp(
    user: AuthUser,
    otp_type: OtpChannel,
    otp: str,
    stage: VerificationStage = "pre_submission",
    *,
    now: Optional[datetime] = None,
) -> VerificationResult:
    """
    Check a code for one channel. A matching, unexpired code marks the channel
    verified and is cleared, so each code verifies once. When both channels are
    verified the flags are copied onto the linked vendor application.
    """
    record = await crud.get_verification(user.id, stage)
    if record is None:
        raise OtpError("No verification record found")

    if otp_type == "email":
        stored, expires_at = record.email_otp, record.email_otp_expires_at
    elif otp_type == "phone":
        stored, expires_at = record.phone_otp, record.phone_otp_expires_at
    else:
        raise OtpError(f"Unknown OTP type: {otp_type}")

    if not stored or stored != (otp or "").strip():
        raise OtpError(f"Invalid {otp_type} OTP")
    if expires_at is None or expires_at < (now or datetime.now()):
        raise OtpError(f"{otp_type.capitalize()} OTP has expired")

    updated = await crud.mark_channel_verified(record.id, otp_type)
    if updated.email_verified and updated.phone_verified and updated.application_id:
        await crud.mark_application_verified(updated.application_id, updated.country_code)
        _logger.info(f"Application {updated.application_id} fully verified")

    return VerificationResult(
        success=True,
        message=f"{otp_type.capitalize()} verified successfully",
        email_verified=updated.email_verified,
        phone_verified=updated.phone_verified,
        fully_verified=updated.email_verified and updated.phone_verified,
    )


async def send_booking_email(
    booking: TempleBooking,
    temple: Temple,
    *,
    mailer=None,
    settings: Optional[SiteSettings] = None,
) -> None:
    """Booking confirmation with the booking code and a ticket breakdown."""
    site = await _settings(settings)
    rows = [[t.name, t.quantity, format_price(t.subtotal)] for t in booking.tickets]
    total = sum(t.subtotal for t in booking.tickets)
    table = generate_markdown_table(["Ticket", "Qty", "Subtotal"], rows, ["l", "r", "r"])
    body = (
        f"<p>Dear {html.escape(booking.customer_name)},</p>"
        f"<p>Your visit to <strong>{html.escape(temple.name)}</strong> on "
        f"{booking.visit_date.isoformat()} is booked.</p>"
        f"<p>Booking code: <strong>{booking.booking_code}</strong></p>"
        f"<pre>{html.escape(table)}</pre>"
        f"<p>Total: {format_price(total)}</p>"
        f"<p>The {html.escape(site.site_name)} Team</p>"
    )
    mailer = mailer or get_mailer()
    await mailer.send(
        booking.customer_email,
        _fill(site.booking_email_subject, booking_code=booking.booking_code,
              site_name=site.site_name),
        body,
    )


async def send_status_update_email(
    booking: TempleBooking,
    temple_name: str,
    *,
    mailer=None,
    settings: Optional[SiteSettings] = None,
) -> None:
    site = await _settings(settings)
    mailer = mailer or get_mailer()
    await mailer.send(
        booking.customer_email,
        f"Booking {booking.booking_code} is now {booking.status}",
        f"<p>Dear {html.escape(booking.customer_name)},</p>"
        f"<p>Your booking at {html.escape(temple_name)} on {booking.visit_date.isoformat()} "
        f"is now <strong>{booking.status}</strong>.</p>"
        f"<p>The {html.escape(site.site_name)} Team</p>",
    )
