# provide dataclass models

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Literal, Optional

Role = Literal["admin", "vendor", "customer"]
VerificationStage = Literal["pre_submission", "post_approval"]
OtpChannel = Literal["email", "phone"]


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str


@dataclass(frozen=True)
class Session:
    access_token: str
    user: AuthUser
    expires_at: datetime


@dataclass(frozen=True)
class Profile:
    user_id: str
    email: str
    full_name: str
    country: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class Product:
    id: str
    vendor_id: str
    name: str
    category: Optional[str]
    description: Optional[str]
    price: float
    stock: int
    image_url: Optional[str] = None


@dataclass(frozen=True)
class ProductVariant:
    id: str
    product_id: str
    name: str
    price: float
    stock: int


@dataclass(frozen=True)
class Order:
    id: str
    customer_id: str
    vendor_id: str
    total_amount: float
    shipping_address: str
    notes: Optional[str]
    status: str
    created_at: datetime


@dataclass(frozen=True)
class OrderItem:
    order_id: str
    product_id: str
    variant_id: Optional[str]
    quantity: int
    unit_price: float
    product_name: Optional[str] = None


@dataclass(frozen=True)
class SiteSettings:
    site_name: str = "Temple Connect"
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    primary_color: str = "217 91% 60%"
    accent_color: str = "43 96% 56%"
    primary_font: str = "Outfit"
    display_font: str = "Playfair Display"
    footer_tagline: str = "Connecting devotees with Hindu temples across Sri Lanka."
    hero_title: str = "Discover Sacred Temples"
    hero_subtitle: str = (
        "Connect with Hindu temples across Sri Lanka and explore sacred traditions"
    )
    commission_rate: float = 10.0
    maintenance_mode: bool = False
    maintenance_message: str = (
        "We are performing scheduled maintenance. Please check back soon."
    )
    otp_email_subject: str = "Your Verification Code: {code}"
    otp_email_template: str = (
        "<p>Hello,</p>"
        "<p>Your verification code is: <strong>{code}</strong></p>"
        "<p>Please use this code to verify your email address.</p>"
        "<p>Thanks,</p><p>The {site_name} Team</p>"
    )
    booking_email_subject: str = "Booking confirmed: {booking_code}"


@dataclass(frozen=True)
class Temple:
    id: str
    name: str
    location: Optional[str]
    description: Optional[str]
    vendor_id: Optional[str] = None


@dataclass(frozen=True)
class TempleTicket:
    id: str
    temple_id: str
    name: str
    description: Optional[str]
    price: float
    is_active: bool = True
    display_order: int = 0


@dataclass(frozen=True)
class TicketSelection:
    id: str
    name: str
    quantity: int
    price: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class TempleBooking:
    id: int
    temple_id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    visit_date: date
    num_tickets: int
    booking_code: str
    notes: Optional[str]
    status: str
    tickets: List[TicketSelection] = field(default_factory=list)


@dataclass(frozen=True)
class VendorApplication:
    id: str
    user_id: str
    business_name: str
    phone: Optional[str]
    description: Optional[str]
    status: str
    email_verified: bool
    phone_verified: bool


@dataclass(frozen=True)
class VendorVerification:
    id: int
    user_id: str
    verification_stage: str
    email_otp: Optional[str]
    email_otp_expires_at: Optional[datetime]
    email_verified: bool
    phone: Optional[str]
    country_code: Optional[str]
    phone_otp: Optional[str]
    phone_otp_expires_at: Optional[datetime]
    phone_verified: bool
    application_id: Optional[str]


@dataclass(frozen=True)
class Notification:
    id: int
    user_id: str
    title: str
    message: Optional[str]
    is_read: bool
    created_at: datetime


@dataclass(frozen=True)
class Review:
    """A product or temple review; target_id is the product or temple id."""

    id: int
    target_id: str
    user_id: str
    rating: int
    title: Optional[str]
    comment: Optional[str]
    created_at: datetime
    reviewer_name: Optional[str] = None


@dataclass(frozen=True)
class ChatConversation:
    id: str
    user_id: str
    subject: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime
    user_email: Optional[str] = None
    unread: int = 0


@dataclass(frozen=True)
class ChatMessage:
    id: int
    conversation_id: str
    sender_id: str
    message: str
    is_read: bool
    created_at: datetime
