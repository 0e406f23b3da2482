# src/db/crud.py
# table CRUD surface; every read/write the screens make goes through here
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from db import models
from db.database import connect
from db.realtime import get_channel
from utils.logger import get_logger
from utils.pure import generate_booking_code

_logger = get_logger(__name__)


class CheckoutError(Exception):
    """Raised when a cart line can no longer be fulfilled; nothing is written."""


def _to_int(val) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def _ts(value: datetime) -> str:
    return value.isoformat(sep=" ", timespec="seconds")


def _parse_ts(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ---------------------------
# Roles & Profiles
# ---------------------------


async def get_user_roles(user_id: str) -> List[str]:
    """Granted roles of a user, oldest grant first."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT role FROM user_roles WHERE user_id = ? ORDER BY created_at, id;",
            (user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [row[0] for row in rows]


async def grant_role(user_id: str, role: models.Role) -> bool:
    """Grant a role; False if the user already held it."""
    async with connect() as conn:
        cur = await conn.execute(
            "INSERT OR IGNORE INTO user_roles(user_id, role) VALUES (?, ?);",
            (user_id, role),
        )
        await conn.commit()
        return cur.rowcount > 0


async def revoke_role(user_id: str, role: models.Role) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "DELETE FROM user_roles WHERE user_id = ? AND role = ?;", (user_id, role)
        )
        await conn.commit()
        return cur.rowcount > 0


def _row_to_profile(row) -> models.Profile:
    return models.Profile(
        user_id=row[0], email=row[1], full_name=row[2], country=row[3], phone=row[4]
    )


async def get_profile(user_id: str) -> Optional[models.Profile]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT u.id, u.email, COALESCE(p.full_name, ''), COALESCE(p.country, 'LK'), p.phone
            FROM users u LEFT JOIN profiles p ON p.user_id = u.id
            WHERE u.id = ?;
            """,
            (user_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_profile(row) if row else None


async def update_profile(
    user_id: str, full_name: str, phone: Optional[str] = None
) -> bool:
    full_name = (full_name or "").strip()
    if len(full_name) < 2:
        raise ValueError("Full name must be at least 2 characters.")
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE profiles SET full_name = ?, phone = ? WHERE user_id = ?;",
            (full_name, (phone or "").strip() or None, user_id),
        )
        await conn.commit()
        return cur.rowcount > 0


async def list_profiles_with_roles() -> List[Tuple[models.Profile, List[str]]]:
    """Every account with its granted roles, for the admin users screen."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT u.id, u.email, COALESCE(p.full_name, ''), COALESCE(p.country, 'LK'), p.phone,
                   (SELECT GROUP_CONCAT(r.role) FROM user_roles r WHERE r.user_id = u.id)
            FROM users u LEFT JOIN profiles p ON p.user_id = u.id
            ORDER BY u.email;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        (_row_to_profile(row), sorted(row[5].split(",")) if row[5] else [])
        for row in rows
    ]


# ---------------------------
# Products (Catalogue, Vendor inventory)
# ---------------------------

_PRODUCT_COLS = "id, vendor_id, name, category, description, price, stock, image_url"


def _row_to_product(row) -> models.Product:
    return models.Product(
        id=row[0],
        vendor_id=row[1],
        name=row[2],
        category=row[3],
        description=row[4],
        price=float(row[5]),
        stock=int(row[6]),
        image_url=row[7],
    )


async def search_products(
    keyword: str = "", category: Optional[str] = None
) -> List[models.Product]:
    """
    Case-insensitive catalogue search over name/description of active products.
    Multi-word input matches the whole phrase or any of its words.
    An empty keyword lists everything (optionally within a category).
    """
    phrase = (keyword or "").strip().lower()
    words = [w for w in phrase.split() if w]

    terms: List[str] = []
    if len(words) > 1:
        terms.append(phrase)
        seen = {phrase}
        for w in words:
            if w not in seen:
                terms.append(w)
                seen.add(w)
    elif phrase:
        terms = [phrase]

    conditions = ["is_active = 1"]
    params: List[str] = []
    if terms:
        cond_parts = ["(LOWER(name) LIKE ? OR LOWER(description) LIKE ?)"] * len(terms)
        conditions.append("(" + " OR ".join(cond_parts) + ")")
        for t in terms:
            like = f"%{t}%"
            params.extend([like, like])
    if category:
        conditions.append("category = ?")
        params.append(category)

    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLS}
            FROM products
            WHERE {" AND ".join(conditions)}
            ORDER BY name;
            """,
            tuple(params),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def get_product(product_id: str) -> Optional[models.Product]:
    """Fetch a product by id."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLS} FROM products WHERE id = ?;", (product_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_product(row) if row else None


async def list_product_variants(product_id: str) -> List[models.ProductVariant]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, product_id, name, price, stock
            FROM product_variants WHERE product_id = ? ORDER BY price, name;
            """,
            (product_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.ProductVariant(
            id=row[0], product_id=row[1], name=row[2], price=float(row[3]), stock=int(row[4])
        )
        for row in rows
    ]


async def list_vendor_products(vendor_id: str) -> List[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLS} FROM products WHERE vendor_id = ? ORDER BY name;",
            (vendor_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def update_product_price_stock(
    vendor_id: str,
    product_id: str,
    new_price: Optional[float],
    new_stock: Optional[int],
) -> bool:
    """
    Update price and/or stock (only provided fields) of a product the vendor owns.
    Return True if a row was updated.
    """
    if new_price is None and new_stock is None:
        return False
    if (new_price is not None and new_price < 0) or (new_stock is not None and new_stock < 0):
        raise ValueError("Price and stock cannot be negative.")
    async with connect() as conn:
        cur = await conn.execute(
            """
            UPDATE products
            SET price = COALESCE(?, price), stock = COALESCE(?, stock)
            WHERE id = ? AND vendor_id = ?;
            """,
            (new_price, new_stock, product_id, vendor_id),
        )
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Favourites
# ---------------------------


async def add_favorite(user_id: str, product_id: str) -> bool:
    """Save a product for later; False if it was already saved."""
    async with connect() as conn:
        cur = await conn.execute(
            "INSERT OR IGNORE INTO favorites(user_id, product_id) VALUES (?, ?);",
            (user_id, product_id),
        )
        await conn.commit()
        return cur.rowcount > 0


async def remove_favorite(user_id: str, product_id: str) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "DELETE FROM favorites WHERE user_id = ? AND product_id = ?;",
            (user_id, product_id),
        )
        await conn.commit()
        return cur.rowcount > 0


async def is_favorite(user_id: str, product_id: str) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM favorites WHERE user_id = ? AND product_id = ?;",
            (user_id, product_id),
        )
        row = await cur.fetchone()
        await cur.close()
    return row is not None


async def list_favorites(user_id: str) -> List[models.Product]:
    """Saved products, most recently saved first."""
    cols = ", ".join(f"p.{c.strip()}" for c in _PRODUCT_COLS.split(","))
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {cols}
            FROM favorites f JOIN products p ON p.id = f.product_id
            WHERE f.user_id = ?
            ORDER BY f.created_at DESC, f.id DESC;
            """,
            (user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


# ---------------------------
# Checkout & Orders
# ---------------------------


async def place_orders(
    customer_id: str,
    lines: Sequence,
    shipping_address: str,
    notes: Optional[str] = None,
    when: Optional[datetime] = None,
) -> List[str]:
    """
    Create one order per vendor from cart lines and return the order ids.

    Lines need ``id, variant_id, name, price, quantity, vendor_id``. Stock is
    decremented in the same transaction; if any line is short the whole checkout
    is rolled back and CheckoutError is raised.
    """
    if not lines:
        raise ValueError("Cart is empty.")
    if not shipping_address or not shipping_address.strip():
        raise ValueError("Shipping address is required.")
    when = when or datetime.now()

    by_vendor: Dict[str, list] = {}
    for line in lines:
        by_vendor.setdefault(line.vendor_id, []).append(line)

    order_ids: List[str] = []
    async with connect() as conn:
        try:
            for vendor_id, vendor_lines in by_vendor.items():
                order_id = _new_id("o")
                total = sum(line.price * line.quantity for line in vendor_lines)
                await conn.execute(
                    """
                    INSERT INTO orders(id, customer_id, vendor_id, total_amount,
                                       shipping_address, notes, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, 'pending', ?);
                    """,
                    (order_id, customer_id, vendor_id, total, shipping_address.strip(),
                     notes or None, _ts(when)),
                )
                for line in vendor_lines:
                    if line.variant_id:
                        cur = await conn.execute(
                            "UPDATE product_variants SET stock = stock - ? "
                            "WHERE id = ? AND product_id = ? AND stock >= ?;",
                            (line.quantity, line.variant_id, line.id, line.quantity),
                        )
                    else:
                        cur = await conn.execute(
                            "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?;",
                            (line.quantity, line.id, line.quantity),
                        )
                    if cur.rowcount == 0:
                        raise CheckoutError(
                            f"{line.name} no longer has {line.quantity} in stock."
                        )
                    await conn.execute(
                        """
                        INSERT INTO order_items(order_id, product_id, variant_id, quantity, unit_price)
                        VALUES (?, ?, ?, ?, ?);
                        """,
                        (order_id, line.id, line.variant_id, line.quantity, line.price),
                    )
                order_ids.append(order_id)
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    _logger.info(f"Customer {customer_id} placed {len(order_ids)} order(s).")
    for vendor_id in by_vendor:
        await create_notification(
            vendor_id, "New order", f"You have a new order to fulfil ({shipping_address.strip()})."
        )
    return order_ids


def _row_to_order(row) -> models.Order:
    return models.Order(
        id=row[0],
        customer_id=row[1],
        vendor_id=row[2],
        total_amount=float(row[3]),
        shipping_address=row[4],
        notes=row[5],
        status=row[6],
        created_at=_parse_ts(row[7]),
    )


_ORDER_COLS = "id, customer_id, vendor_id, total_amount, shipping_address, notes, status, created_at"


async def list_orders(
    customer_id: str, page: int, page_size: int = 5
) -> Tuple[List[models.Order], int]:
    """
    List a customer's orders in reverse chronological order, paginated.
    Return (orders_for_page, total_count).
    """
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT COUNT(*) FROM orders WHERE customer_id = ?;", (customer_id,)
        )
        total = (await cur.fetchone())[0]
        await cur.close()
        offset = max(page - 1, 0) * page_size
        cur = await conn.execute(
            f"""
            SELECT {_ORDER_COLS}
            FROM orders
            WHERE customer_id = ?
            ORDER BY created_at DESC, id
            LIMIT ? OFFSET ?;
            """,
            (customer_id, page_size, offset),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_order(row) for row in rows], total


async def list_vendor_orders(vendor_id: str, limit: int = 20) -> List[models.Order]:
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_ORDER_COLS} FROM orders
            WHERE vendor_id = ? ORDER BY created_at DESC, id LIMIT ?;
            """,
            (vendor_id, limit),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_order(row) for row in rows]


async def get_order_detail(
    order_id: str,
) -> Tuple[Optional[models.Order], List[models.OrderItem]]:
    """
    Return (order, items) for a specific order, or (None, []) if it does not exist.
    """
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLS} FROM orders WHERE id = ?;", (order_id,)
        )
        order_row = await cur.fetchone()
        await cur.close()
        if not order_row:
            return None, []
        cur = await conn.execute(
            """
            SELECT oi.order_id, oi.product_id, oi.variant_id, oi.quantity, oi.unit_price,
                   p.name || COALESCE(' (' || v.name || ')', '')
            FROM order_items oi
            LEFT JOIN products p ON p.id = oi.product_id
            LEFT JOIN product_variants v ON v.id = oi.variant_id
            WHERE oi.order_id = ?
            ORDER BY oi.id;
            """,
            (order_id,),
        )
        item_rows = await cur.fetchall()
        await cur.close()
    items = [
        models.OrderItem(
            order_id=row[0],
            product_id=row[1],
            variant_id=row[2],
            quantity=int(row[3]),
            unit_price=float(row[4]),
            product_name=row[5],
        )
        for row in item_rows
    ]
    return _row_to_order(order_row), items


async def update_order_status(vendor_id: str, order_id: str, status: str) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE orders SET status = ? WHERE id = ? AND vendor_id = ?;",
            (status, order_id, vendor_id),
        )
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Site Settings
# ---------------------------

SETTINGS_FIELDS = (
    "site_name",
    "logo_url",
    "favicon_url",
    "primary_color",
    "accent_color",
    "primary_font",
    "display_font",
    "footer_tagline",
    "hero_title",
    "hero_subtitle",
    "commission_rate",
    "maintenance_mode",
    "maintenance_message",
    "otp_email_subject",
    "otp_email_template",
    "booking_email_subject",
)


async def get_site_settings() -> Optional[models.SiteSettings]:
    """The singleton settings row with blanks filled from defaults; None if absent."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {', '.join(SETTINGS_FIELDS)} FROM site_settings WHERE id = 1;"
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None

    defaults = models.SiteSettings()
    values = {}
    for name, value in zip(SETTINGS_FIELDS, row):
        if name in ("logo_url", "favicon_url"):
            values[name] = value
        elif name == "maintenance_mode":
            values[name] = bool(value)
        elif name == "commission_rate":
            values[name] = float(value) if value else defaults.commission_rate
        else:
            values[name] = value or getattr(defaults, name)
    return models.SiteSettings(**values)


async def update_site_settings(**fields) -> None:
    """Admin write of selected settings columns."""
    unknown = set(fields) - set(SETTINGS_FIELDS)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
    if not fields:
        return
    if "maintenance_mode" in fields:
        fields["maintenance_mode"] = 1 if fields["maintenance_mode"] else 0

    assignments = ", ".join(f"{name} = ?" for name in fields)
    async with connect() as conn:
        await conn.execute("INSERT OR IGNORE INTO site_settings(id) VALUES (1);")
        await conn.execute(
            f"UPDATE site_settings SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = 1;",
            tuple(fields.values()),
        )
        await conn.commit()
    _logger.info(f"Site settings updated: {', '.join(fields)}")


# ---------------------------
# Temples & Bookings
# ---------------------------


async def list_temples() -> List[models.Temple]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, name, location, description, vendor_id FROM temples ORDER BY name;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Temple(id=r[0], name=r[1], location=r[2], description=r[3], vendor_id=r[4])
        for r in rows
    ]


async def get_temple(temple_id: str) -> Optional[models.Temple]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, name, location, description, vendor_id FROM temples WHERE id = ?;",
            (temple_id,),
        )
        r = await cur.fetchone()
        await cur.close()
    if not r:
        return None
    return models.Temple(id=r[0], name=r[1], location=r[2], description=r[3], vendor_id=r[4])


def _row_to_ticket(r) -> models.TempleTicket:
    return models.TempleTicket(
        id=r[0],
        temple_id=r[1],
        name=r[2],
        description=r[3],
        price=float(r[4]),
        is_active=bool(r[5]),
        display_order=int(r[6]),
    )


async def list_temple_tickets(
    temple_id: str, include_inactive: bool = False
) -> List[models.TempleTicket]:
    """Ticket types of a temple; bookings only see the active ones."""
    sql = (
        "SELECT id, temple_id, name, description, price, is_active, display_order "
        "FROM temple_tickets WHERE temple_id = ?"
    )
    if not include_inactive:
        sql += " AND is_active = 1"
    async with connect() as conn:
        cur = await conn.execute(sql + " ORDER BY display_order, price, name;", (temple_id,))
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_ticket(r) for r in rows]


async def list_vendor_temples(vendor_id: str) -> List[models.Temple]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, name, location, description, vendor_id FROM temples "
            "WHERE vendor_id = ? ORDER BY name;",
            (vendor_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Temple(id=r[0], name=r[1], location=r[2], description=r[3], vendor_id=r[4])
        for r in rows
    ]


def _check_ticket(name: Optional[str], price: Optional[float]) -> None:
    if name is not None and not name.strip():
        raise ValueError("Ticket name is required.")
    if price is not None and price < 0:
        raise ValueError("Ticket price cannot be negative.")


async def create_temple_ticket(
    vendor_id: str,
    temple_id: str,
    name: str,
    price: float,
    description: Optional[str] = None,
    display_order: int = 0,
) -> Optional[models.TempleTicket]:
    """Add a ticket type to a temple the vendor manages. None if the vendor does not."""
    _check_ticket(name, price)
    ticket_id = _new_id("k")
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO temple_tickets(id, temple_id, name, description, price, display_order)
            SELECT ?, id, ?, ?, ?, ? FROM temples WHERE id = ? AND vendor_id = ?;
            """,
            (ticket_id, name.strip(), description or None, price, display_order,
             temple_id, vendor_id),
        )
        await conn.commit()
        if cur.rowcount == 0:
            return None
    return models.TempleTicket(
        id=ticket_id,
        temple_id=temple_id,
        name=name.strip(),
        description=description or None,
        price=float(price),
        display_order=display_order,
    )


async def update_temple_ticket(
    vendor_id: str,
    ticket_id: str,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    price: Optional[float] = None,
    is_active: Optional[bool] = None,
    display_order: Optional[int] = None,
) -> bool:
    """Update the provided fields of a ticket on one of the vendor's temples."""
    _check_ticket(name, price)
    async with connect() as conn:
        cur = await conn.execute(
            """
            UPDATE temple_tickets
            SET name = COALESCE(?, name),
                description = COALESCE(?, description),
                price = COALESCE(?, price),
                is_active = COALESCE(?, is_active),
                display_order = COALESCE(?, display_order)
            WHERE id = ?
              AND temple_id IN (SELECT id FROM temples WHERE vendor_id = ?);
            """,
            (
                name.strip() if name is not None else None,
                description,
                price,
                None if is_active is None else int(is_active),
                display_order,
                ticket_id,
                vendor_id,
            ),
        )
        await conn.commit()
        return cur.rowcount > 0


async def delete_temple_ticket(vendor_id: str, ticket_id: str) -> bool:
    # past bookings keep their own copy of the ticket lines
    async with connect() as conn:
        cur = await conn.execute(
            """
            DELETE FROM temple_tickets
            WHERE id = ? AND temple_id IN (SELECT id FROM temples WHERE vendor_id = ?);
            """,
            (ticket_id, vendor_id),
        )
        await conn.commit()
        return cur.rowcount > 0


def _row_to_booking(row) -> models.TempleBooking:
    tickets = [
        models.TicketSelection(
            id=t["id"], name=t["name"], quantity=int(t["quantity"]), price=float(t["price"])
        )
        for t in json.loads(row[10] or "[]")
    ]
    return models.TempleBooking(
        id=row[0],
        temple_id=row[1],
        customer_name=row[2],
        customer_email=row[3],
        customer_phone=row[4],
        visit_date=date.fromisoformat(str(row[5])),
        num_tickets=int(row[6]),
        booking_code=row[7],
        notes=row[8],
        status=row[9],
        tickets=tickets,
    )


_BOOKING_COLS = (
    "id, temple_id, customer_name, customer_email, customer_phone, visit_date, "
    "num_tickets, booking_code, notes, status, ticket_details"
)


async def create_booking(
    temple_id: str,
    customer_name: str,
    customer_email: str,
    visit_date: date,
    tickets: Sequence[models.TicketSelection],
    customer_phone: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.TempleBooking:
    """Insert a temple booking with a fresh unique booking code."""
    selected = [t for t in tickets if t.quantity > 0]
    if not selected:
        raise ValueError("Please select at least one ticket.")
    details = [
        {"id": t.id, "name": t.name, "quantity": t.quantity, "price": t.price,
         "subtotal": t.subtotal}
        for t in selected
    ]
    async with connect() as conn:
        while True:
            code = generate_booking_code()
            cur = await conn.execute(
                "SELECT 1 FROM temple_bookings WHERE booking_code = ?;", (code,)
            )
            exists = await cur.fetchone()
            await cur.close()
            if not exists:
                break
        cur = await conn.execute(
            """
            INSERT INTO temple_bookings(temple_id, customer_name, customer_email, customer_phone,
                                        visit_date, num_tickets, booking_code, notes, ticket_details)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                temple_id,
                customer_name,
                customer_email,
                customer_phone or None,
                visit_date.isoformat(),
                sum(t.quantity for t in selected),
                code,
                notes or None,
                json.dumps(details),
            ),
        )
        booking_id = cur.lastrowid
        await conn.commit()
    return models.TempleBooking(
        id=booking_id,
        temple_id=temple_id,
        customer_name=customer_name,
        customer_email=customer_email,
        customer_phone=customer_phone or None,
        visit_date=visit_date,
        num_tickets=sum(t.quantity for t in selected),
        booking_code=code,
        notes=notes or None,
        status="pending",
        tickets=list(selected),
    )


async def get_booking_by_code(code: str) -> Optional[models.TempleBooking]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_BOOKING_COLS} FROM temple_bookings WHERE booking_code = ?;",
            ((code or "").strip().upper(),),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_booking(row) if row else None


async def list_vendor_bookings(vendor_id: str) -> List[models.TempleBooking]:
    """Bookings for the temples a vendor manages, upcoming visits first."""
    cols = ", ".join(f"b.{c.strip()}" for c in _BOOKING_COLS.split(","))
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {cols}
            FROM temple_bookings b JOIN temples t ON t.id = b.temple_id
            WHERE t.vendor_id = ?
            ORDER BY b.visit_date, b.id;
            """,
            (vendor_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_booking(row) for row in rows]


async def update_booking_status(booking_id: int, status: str) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE temple_bookings SET status = ? WHERE id = ?;", (status, booking_id)
        )
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Vendor applications & verification
# ---------------------------

_APPLICATION_COLS = (
    "id, user_id, business_name, phone, description, status, email_verified, phone_verified"
)


def _row_to_application(row) -> models.VendorApplication:
    return models.VendorApplication(
        id=row[0],
        user_id=row[1],
        business_name=row[2],
        phone=row[3],
        description=row[4],
        status=row[5],
        email_verified=bool(row[6]),
        phone_verified=bool(row[7]),
    )


_VERIFICATION_COLS = (
    "id, user_id, verification_stage, email_otp, email_otp_expires_at, email_verified, "
    "phone, country_code, phone_otp, phone_otp_expires_at, phone_verified, application_id"
)


def _row_to_verification(row) -> models.VendorVerification:
    return models.VendorVerification(
        id=row[0],
        user_id=row[1],
        verification_stage=row[2],
        email_otp=row[3],
        email_otp_expires_at=_parse_ts(row[4]),
        email_verified=bool(row[5]),
        phone=row[6],
        country_code=row[7],
        phone_otp=row[8],
        phone_otp_expires_at=_parse_ts(row[9]),
        phone_verified=bool(row[10]),
        application_id=row[11],
    )


async def get_verification(
    user_id: str, stage: models.VerificationStage
) -> Optional[models.VendorVerification]:
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_VERIFICATION_COLS} FROM vendor_verifications
            WHERE user_id = ? AND verification_stage = ?;
            """,
            (user_id, stage),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_verification(row) if row else None


async def store_otp(
    user_id: str,
    stage: models.VerificationStage,
    channel: models.OtpChannel,
    code: str,
    expires_at: datetime,
    phone: Optional[str] = None,
    country_code: Optional[str] = None,
) -> None:
    """Upsert the (user, stage) verification row with a fresh code for one channel."""
    if channel == "email":
        sql = """
            INSERT INTO vendor_verifications(user_id, verification_stage, email_otp, email_otp_expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, verification_stage) DO UPDATE SET
                email_otp = excluded.email_otp,
                email_otp_expires_at = excluded.email_otp_expires_at;
        """
        params = (user_id, stage, code, _ts(expires_at))
    elif channel == "phone":
        sql = """
            INSERT INTO vendor_verifications(user_id, verification_stage, phone, country_code,
                                             phone_otp, phone_otp_expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, verification_stage) DO UPDATE SET
                phone = excluded.phone,
                country_code = excluded.country_code,
                phone_otp = excluded.phone_otp,
                phone_otp_expires_at = excluded.phone_otp_expires_at;
        """
        params = (user_id, stage, phone, country_code, code, _ts(expires_at))
    else:
        raise ValueError(f"Unknown OTP channel: {channel}")
    async with connect() as conn:
        await conn.execute(sql, params)
        await conn.commit()


async def mark_channel_verified(
    verification_id: int, channel: models.OtpChannel
) -> Optional[models.VendorVerification]:
    """Flag one channel as verified and burn its code; returns the updated row."""
    if channel not in ("email", "phone"):
        raise ValueError(f"Unknown OTP channel: {channel}")
    async with connect() as conn:
        await conn.execute(
            f"UPDATE vendor_verifications SET {channel}_verified = 1, {channel}_otp = NULL "
            f"WHERE id = ?;",
            (verification_id,),
        )
        await conn.commit()
        cur = await conn.execute(
            f"SELECT {_VERIFICATION_COLS} FROM vendor_verifications WHERE id = ?;",
            (verification_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_verification(row) if row else None


async def mark_application_verified(
    application_id: str, country_code: Optional[str] = None
) -> None:
    async with connect() as conn:
        await conn.execute(
            """
            UPDATE vendor_applications
            SET email_verified = 1, phone_verified = 1,
                phone_country_code = COALESCE(?, phone_country_code)
            WHERE id = ?;
            """,
            (country_code, application_id),
        )
        await conn.commit()


async def submit_vendor_application(
    user_id: str,
    business_name: str,
    phone: Optional[str] = None,
    description: Optional[str] = None,
) -> models.VendorApplication:
    """
    File a vendor application. Requires the pre-submission e-mail verification to be
    complete and no other open or approved application.
    """
    if not business_name or not business_name.strip():
        raise ValueError("Business name is required.")
    verification = await get_verification(user_id, "pre_submission")
    if not verification or not verification.email_verified:
        raise ValueError("Verify your email before applying.")
    existing = await get_vendor_application(user_id)
    if existing and existing.status in ("pending", "approved"):
        raise ValueError(f"You already have an application ({existing.status}).")

    application_id = _new_id("a")
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO vendor_applications(id, user_id, business_name, phone, description,
                                            email_verified, phone_verified)
            VALUES (?, ?, ?, ?, ?, 1, ?);
            """,
            (application_id, user_id, business_name.strip(), phone or None,
             description or None, 1 if verification.phone_verified else 0),
        )
        await conn.execute(
            "UPDATE vendor_verifications SET application_id = ? WHERE id = ?;",
            (application_id, verification.id),
        )
        await conn.commit()
    return await get_vendor_application(user_id)


async def get_vendor_application(user_id: str) -> Optional[models.VendorApplication]:
    """The user's most recent application."""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_APPLICATION_COLS} FROM vendor_applications
            WHERE user_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1;
            """,
            (user_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_application(row) if row else None


async def list_vendor_applications(
    status: Optional[str] = "pending",
) -> List[models.VendorApplication]:
    async with connect() as conn:
        if status:
            cur = await conn.execute(
                f"SELECT {_APPLICATION_COLS} FROM vendor_applications "
                f"WHERE status = ? ORDER BY created_at;",
                (status,),
            )
        else:
            cur = await conn.execute(
                f"SELECT {_APPLICATION_COLS} FROM vendor_applications ORDER BY created_at;"
            )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_application(row) for row in rows]


async def review_vendor_application(
    application_id: str, approve: bool
) -> Optional[models.VendorApplication]:
    """Approve (granting the vendor role) or reject a pending application."""
    status = "approved" if approve else "rejected"
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE vendor_applications SET status = ? WHERE id = ? AND status = 'pending';",
            (status, application_id),
        )
        updated = cur.rowcount > 0
        cur = await conn.execute(
            f"SELECT {_APPLICATION_COLS} FROM vendor_applications WHERE id = ?;",
            (application_id,),
        )
        row = await cur.fetchone()
        await cur.close()
        await conn.commit()
    if not row or not updated:
        return None

    application = _row_to_application(row)
    if approve:
        await grant_role(application.user_id, "vendor")
    await create_notification(
        application.user_id,
        f"Vendor application {status}",
        f"Your application for {application.business_name} was {status}.",
    )
    return application


# ---------------------------
# Notifications
# ---------------------------


async def create_notification(
    user_id: str, title: str, message: Optional[str] = None
) -> models.Notification:
    """Insert a notification and push it on the realtime channel."""
    now = datetime.now()
    async with connect() as conn:
        cur = await conn.execute(
            "INSERT INTO notifications(user_id, title, message, created_at) VALUES (?, ?, ?, ?);",
            (user_id, title, message, _ts(now)),
        )
        notification_id = cur.lastrowid
        await conn.commit()
    notification = models.Notification(
        id=notification_id,
        user_id=user_id,
        title=title,
        message=message,
        is_read=False,
        created_at=now.replace(microsecond=0),
    )
    get_channel().publish_insert(
        "notifications",
        {"id": notification_id, "user_id": user_id, "title": title, "message": message},
    )
    return notification


async def list_notifications(
    user_id: str, unread_only: bool = False
) -> List[models.Notification]:
    sql = (
        "SELECT id, user_id, title, message, is_read, created_at FROM notifications "
        "WHERE user_id = ?"
    )
    if unread_only:
        sql += " AND is_read = 0"
    async with connect() as conn:
        cur = await conn.execute(sql + " ORDER BY created_at DESC, id DESC;", (user_id,))
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Notification(
            id=r[0], user_id=r[1], title=r[2], message=r[3], is_read=bool(r[4]),
            created_at=_parse_ts(r[5]),
        )
        for r in rows
    ]


async def mark_notifications_read(user_id: str) -> int:
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0;",
            (user_id,),
        )
        await conn.commit()
        return cur.rowcount


# ---------------------------
# Reviews
# ---------------------------

ReviewKind = Literal["product", "temple"]

# table and target column per review kind
_REVIEW_TABLES: Dict[str, Tuple[str, str]] = {
    "product": ("product_reviews", "product_id"),
    "temple": ("temple_reviews", "temple_id"),
}


def _review_table(kind: ReviewKind) -> Tuple[str, str]:
    try:
        return _REVIEW_TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown review kind: {kind}") from None


def _check_rating(rating: int) -> None:
    if not 1 <= int(rating) <= 5:
        raise ValueError("Rating must be between 1 and 5.")


def _row_to_review(row) -> models.Review:
    return models.Review(
        id=row[0],
        target_id=row[1],
        user_id=row[2],
        rating=int(row[3]),
        title=row[4],
        comment=row[5],
        created_at=_parse_ts(row[6]),
        reviewer_name=row[7] if len(row) > 7 else None,
    )


async def list_reviews(kind: ReviewKind, target_id: str) -> List[models.Review]:
    """Reviews of a product or temple with the reviewer's name, newest first."""
    table, column = _review_table(kind)
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT r.id, r.{column}, r.user_id, r.rating, r.title, r.comment, r.created_at,
                   p.full_name
            FROM {table} r LEFT JOIN profiles p ON p.user_id = r.user_id
            WHERE r.{column} = ?
            ORDER BY r.created_at DESC, r.id DESC;
            """,
            (target_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_review(row) for row in rows]


async def get_user_review(
    kind: ReviewKind, target_id: str, user_id: str
) -> Optional[models.Review]:
    table, column = _review_table(kind)
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT id, {column}, user_id, rating, title, comment, created_at
            FROM {table} WHERE {column} = ? AND user_id = ?;
            """,
            (target_id, user_id),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_review(row) if row else None


async def create_review(
    kind: ReviewKind,
    target_id: str,
    user_id: str,
    rating: int,
    title: Optional[str] = None,
    comment: Optional[str] = None,
    when: Optional[datetime] = None,
) -> models.Review:
    """One review per user and target; a second one raises ValueError."""
    table, column = _review_table(kind)
    _check_rating(rating)
    created = (when or datetime.now()).replace(microsecond=0)
    async with connect() as conn:
        try:
            cur = await conn.execute(
                f"""
                INSERT INTO {table}({column}, user_id, rating, title, comment, created_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (target_id, user_id, int(rating), title or None, comment or None, _ts(created)),
            )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise ValueError(f"You have already reviewed this {kind}") from e
            raise
        review_id = cur.lastrowid
        await conn.commit()
    return models.Review(
        id=review_id,
        target_id=target_id,
        user_id=user_id,
        rating=int(rating),
        title=title or None,
        comment=comment or None,
        created_at=created,
    )


async def update_review(
    kind: ReviewKind,
    review_id: int,
    user_id: str,
    rating: int,
    title: Optional[str] = None,
    comment: Optional[str] = None,
) -> bool:
    """Edit the author's own review."""
    table, _ = _review_table(kind)
    _check_rating(rating)
    async with connect() as conn:
        cur = await conn.execute(
            f"UPDATE {table} SET rating = ?, title = ?, comment = ? WHERE id = ? AND user_id = ?;",
            (int(rating), title or None, comment or None, review_id, user_id),
        )
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Support chat
# ---------------------------


def _row_to_conversation(row) -> models.ChatConversation:
    return models.ChatConversation(
        id=row[0],
        user_id=row[1],
        subject=row[2],
        status=row[3],
        created_at=_parse_ts(row[4]),
        updated_at=_parse_ts(row[5]),
        user_email=row[6],
        unread=int(row[7] or 0),
    )


async def create_conversation(
    user_id: str, subject: str, when: Optional[datetime] = None
) -> models.ChatConversation:
    subject = (subject or "").strip()
    if not subject:
        raise ValueError("Please enter a subject.")
    conversation_id = _new_id("c")
    now = (when or datetime.now()).replace(microsecond=0)
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO chat_conversations(id, user_id, subject, status, created_at, updated_at)
            VALUES (?, ?, ?, 'open', ?, ?);
            """,
            (conversation_id, user_id, subject, _ts(now), _ts(now)),
        )
        await conn.commit()
    return models.ChatConversation(
        id=conversation_id,
        user_id=user_id,
        subject=subject,
        status="open",
        created_at=now,
        updated_at=now,
    )


async def list_conversations(
    reader_id: str, user_id: Optional[str] = None
) -> List[models.ChatConversation]:
    """
    Conversations, most recently active first, with the number of messages
    reader_id has not read yet. Pass user_id to restrict to one customer's
    conversations; admins list them all.
    """
    sql = """
        SELECT c.id, c.user_id, c.subject, c.status, c.created_at, c.updated_at, u.email,
               (SELECT COUNT(*) FROM chat_messages m
                WHERE m.conversation_id = c.id AND m.is_read = 0 AND m.sender_id != ?)
        FROM chat_conversations c JOIN users u ON u.id = c.user_id
    """
    params: List[str] = [reader_id]
    if user_id is not None:
        sql += " WHERE c.user_id = ?"
        params.append(user_id)
    async with connect() as conn:
        cur = await conn.execute(sql + " ORDER BY c.updated_at DESC, c.rowid DESC;", params)
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_conversation(row) for row in rows]


async def list_chat_messages(
    conversation_id: str, reader_id: Optional[str] = None
) -> List[models.ChatMessage]:
    """Messages oldest first. Messages from others are marked read for reader_id."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, conversation_id, sender_id, message, is_read, created_at
            FROM chat_messages WHERE conversation_id = ? ORDER BY created_at, id;
            """,
            (conversation_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
        if reader_id is not None:
            await conn.execute(
                """
                UPDATE chat_messages SET is_read = 1
                WHERE conversation_id = ? AND sender_id != ? AND is_read = 0;
                """,
                (conversation_id, reader_id),
            )
            await conn.commit()
    return [
        models.ChatMessage(
            id=r[0], conversation_id=r[1], sender_id=r[2], message=r[3], is_read=bool(r[4]),
            created_at=_parse_ts(r[5]),
        )
        for r in rows
    ]


async def send_chat_message(
    conversation_id: str, sender_id: str, message: str, when: Optional[datetime] = None
) -> models.ChatMessage:
    """Append to an open conversation and push the row on the realtime channel."""
    message = (message or "").strip()
    if not message:
        raise ValueError("Message cannot be empty.")
    now = (when or datetime.now()).replace(microsecond=0)
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT user_id, status FROM chat_conversations WHERE id = ?;", (conversation_id,)
        )
        conversation = await cur.fetchone()
        await cur.close()
        if conversation is None:
            raise ValueError("Conversation not found.")
        if conversation[1] != "open":
            raise ValueError("This conversation has been closed.")
        cur = await conn.execute(
            """
            INSERT INTO chat_messages(conversation_id, sender_id, message, created_at)
            VALUES (?, ?, ?, ?);
            """,
            (conversation_id, sender_id, message, _ts(now)),
        )
        message_id = cur.lastrowid
        await conn.execute(
            "UPDATE chat_conversations SET updated_at = ? WHERE id = ?;",
            (_ts(now), conversation_id),
        )
        await conn.commit()
    get_channel().publish_insert(
        "chat_messages",
        {
            "id": message_id,
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "user_id": conversation[0],
            "message": message,
        },
    )
    return models.ChatMessage(
        id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        message=message,
        is_read=False,
        created_at=now,
    )


async def close_conversation(conversation_id: str) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE chat_conversations SET status = 'closed' WHERE id = ? AND status = 'open';",
            (conversation_id,),
        )
        await conn.commit()
        return cur.rowcount > 0
