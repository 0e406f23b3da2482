import unittest
from datetime import date, datetime, timedelta

from db_case import DatabaseTestCase, db_database

from contexts.cart import CartLine
from db import crud
from db.models import TicketSelection
from db.realtime import get_channel


def _line(pid, name, price, qty, vendor_id, stock, variant_id=None, variant_name=None):
    return CartLine(
        id=pid,
        name=name,
        price=price,
        quantity=qty,
        vendor_id=vendor_id,
        stock=stock,
        variant_id=variant_id,
        variant_name=variant_name,
    )


class CrudTestCase(DatabaseTestCase):
    # ---------- Roles & profiles ----------

    async def test_roles_in_grant_order_and_grant_revoke(self):
        # explicit grants are dated in the seed, the trigger's customer grant is "now"
        self.assertEqual(await crud.get_user_roles("u-admin"), ["vendor", "admin", "customer"])
        self.assertEqual(await crud.get_user_roles("u-cust"), ["customer"])
        self.assertEqual(await crud.get_user_roles("nobody"), [])

        self.assertFalse(await crud.grant_role("u-cust", "customer"))
        self.assertTrue(await crud.grant_role("u-cust", "vendor"))
        self.assertIn("vendor", await crud.get_user_roles("u-cust"))

        self.assertTrue(await crud.revoke_role("u-cust", "vendor"))
        self.assertFalse(await crud.revoke_role("u-cust", "vendor"))
        self.assertEqual(await crud.get_user_roles("u-cust"), ["customer"])

    async def test_profiles(self):
        profile = await crud.get_profile("u-cust")
        self.assertEqual(profile.email, "devotee@example.com")
        self.assertEqual(profile.full_name, "Devi Raman")
        self.assertEqual(profile.country, "LK")
        self.assertIsNone(await crud.get_profile("nobody"))

        listed = dict((p.user_id, roles) for p, roles in await crud.list_profiles_with_roles())
        self.assertEqual(listed["u-admin"], ["admin", "customer", "vendor"])
        self.assertEqual(listed["u-cust"], ["customer"])

    # ---------- Products ----------

    async def test_search_products(self):
        names = [p.name for p in await crud.search_products("lamp")]
        self.assertEqual(names, ["Brass Oil Lamp"])

        # Multi-word: whole phrase or any word, case-insensitive and trimmed
        names = [p.name for p in await crud.search_products("  BRASS veshti ")]
        self.assertEqual(names, ["Brass Oil Lamp", "Silk Veshti"])

        names = [p.name for p in await crud.search_products("", category="pooja")]
        self.assertEqual(
            names, ["Brass Oil Lamp", "Camphor Tablets", "Copper Kalasam", "Sandalwood Incense"]
        )
        self.assertEqual(len(await crud.search_products()), 6)
        self.assertEqual(await crud.search_products("lamp", category="clothing"), [])

        # inactive products are hidden from the catalogue
        async with db_database.connect() as conn:
            await conn.execute("UPDATE products SET is_active = 0 WHERE id = 'p-1001';")
            await conn.commit()
        self.assertEqual(await crud.search_products("lamp"), [])

    async def test_get_product_and_variants(self):
        prod = await crud.get_product("p-1004")
        self.assertEqual(prod.name, "Silk Veshti")
        self.assertEqual(prod.vendor_id, "u-vendor2")
        self.assertIsNone(await crud.get_product("p-nope"))

        variants = await crud.list_product_variants("p-1004")
        self.assertEqual([v.name for v in variants], ["3.6 m", "4.0 m"])
        self.assertEqual(await crud.list_product_variants("p-1001"), [])

        own = [p.id for p in await crud.list_vendor_products("u-vendor")]
        self.assertEqual(sorted(own), ["p-1001", "p-1002", "p-1003"])

    async def test_update_product_price_stock(self):
        self.assertFalse(await crud.update_product_price_stock("u-vendor", "p-1001", None, None))
        # another vendor's product is not touched
        self.assertFalse(await crud.update_product_price_stock("u-vendor2", "p-1001", 1.0, None))
        with self.assertRaises(ValueError):
            await crud.update_product_price_stock("u-vendor", "p-1001", -1.0, None)

        self.assertTrue(await crud.update_product_price_stock("u-vendor", "p-1001", 4999.0, None))
        self.assertTrue(await crud.update_product_price_stock("u-vendor", "p-1001", None, 3))
        prod = await crud.get_product("p-1001")
        self.assertEqual(prod.price, 4999.0)
        self.assertEqual(prod.stock, 3)

    # ---------- Checkout & orders ----------

    async def test_place_orders_splits_by_vendor_and_decrements_stock(self):
        lines = [
            _line("p-1001", "Brass Oil Lamp", 4500.0, 2, "u-vendor", 12),
            _line("p-1004", "Silk Veshti", 7800.0, 1, "u-vendor2", 4, "v-1004-s", "3.6 m"),
        ]
        when = datetime(2025, 11, 1, 12, 0, 0)
        order_ids = await crud.place_orders("u-cust", lines, " 12 Temple Rd, Jaffna ", when=when)
        self.assertEqual(len(order_ids), 2)

        self.assertEqual((await crud.get_product("p-1001")).stock, 10)
        variants = {v.id: v for v in await crud.list_product_variants("p-1004")}
        self.assertEqual(variants["v-1004-s"].stock, 3)
        # variant stock is tracked separately from the parent product
        self.assertEqual((await crud.get_product("p-1004")).stock, 6)

        orders, total = await crud.list_orders("u-cust", page=1)
        self.assertEqual(total, 2)
        self.assertEqual({o.vendor_id for o in orders}, {"u-vendor", "u-vendor2"})
        self.assertTrue(all(o.status == "pending" for o in orders))
        self.assertTrue(all(o.shipping_address == "12 Temple Rd, Jaffna" for o in orders))

        by_vendor = {o.vendor_id: o for o in orders}
        order, items = await crud.get_order_detail(by_vendor["u-vendor2"].id)
        self.assertEqual(order.total_amount, 7800.0)
        self.assertEqual(order.created_at, when)
        self.assertEqual([i.product_name for i in items], ["Silk Veshti (3.6 m)"])
        order, items = await crud.get_order_detail(by_vendor["u-vendor"].id)
        self.assertEqual(order.total_amount, 9000.0)
        self.assertEqual([(i.product_name, i.quantity) for i in items], [("Brass Oil Lamp", 2)])

        self.assertEqual(len(await crud.list_vendor_orders("u-vendor")), 1)
        self.assertEqual(
            [n.title for n in await crud.list_notifications("u-vendor2")], ["New order"]
        )

    async def test_place_orders_rolls_back_when_short(self):
        lines = [
            _line("p-1001", "Brass Oil Lamp", 4500.0, 2, "u-vendor", 12),
            _line("p-1003", "Sandalwood Incense", 600.0, 41, "u-vendor", 40),
        ]
        with self.assertRaises(crud.CheckoutError) as ctx:
            await crud.place_orders("u-cust", lines, "Somewhere")
        self.assertIn("Sandalwood Incense", str(ctx.exception))

        self.assertEqual((await crud.get_product("p-1001")).stock, 12)
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM orders;"), 0)
        self.assertEqual(await self.scalar("SELECT COUNT(*) FROM order_items;"), 0)
        self.assertEqual(await crud.list_notifications("u-vendor"), [])

    async def test_place_orders_validation(self):
        with self.assertRaises(ValueError):
            await crud.place_orders("u-cust", [], "Somewhere")
        with self.assertRaises(ValueError):
            await crud.place_orders(
                "u-cust", [_line("p-1002", "Camphor Tablets", 350.0, 1, "u-vendor", 80)], "   "
            )

    async def test_list_orders_pagination_and_status(self):
        base = datetime(2025, 11, 1, 9, 0, 0)
        for i in range(3):
            await crud.place_orders(
                "u-cust",
                [_line("p-1002", "Camphor Tablets", 350.0, 1, "u-vendor", 80)],
                "Addr",
                when=base + timedelta(days=i),
            )
        page1, total = await crud.list_orders("u-cust", page=1, page_size=2)
        page2, _ = await crud.list_orders("u-cust", page=2, page_size=2)
        self.assertEqual(total, 3)
        self.assertEqual(len(page1), 2)
        self.assertEqual(len(page2), 1)
        # newest first
        self.assertEqual(page1[0].created_at, base + timedelta(days=2))
        self.assertEqual(page2[0].created_at, base)

        self.assertFalse(await crud.update_order_status("u-vendor2", page1[0].id, "shipped"))
        self.assertTrue(await crud.update_order_status("u-vendor", page1[0].id, "shipped"))
        order, _ = await crud.get_order_detail(page1[0].id)
        self.assertEqual(order.status, "shipped")

        order_none, items_none = await crud.get_order_detail("o-missing")
        self.assertIsNone(order_none)
        self.assertEqual(items_none, [])

    # ---------- Site settings ----------

    async def test_site_settings(self):
        settings = await crud.get_site_settings()
        self.assertEqual(settings.site_name, "Temple Connect")
        self.assertEqual(settings.commission_rate, 10.0)
        self.assertFalse(settings.maintenance_mode)
        # blank columns fall back to defaults
        self.assertEqual(settings.otp_email_subject, "Your Verification Code: {code}")

        await crud.update_site_settings(site_name="Kovil Connect", maintenance_mode=True)
        settings = await crud.get_site_settings()
        self.assertEqual(settings.site_name, "Kovil Connect")
        self.assertTrue(settings.maintenance_mode)

        with self.assertRaises(ValueError):
            await crud.update_site_settings(not_a_column="x")

        async with db_database.connect() as conn:
            await conn.execute("DELETE FROM site_settings;")
            await conn.commit()
        self.assertIsNone(await crud.get_site_settings())

        # the row is recreated on the next write
        await crud.update_site_settings(commission_rate=12.5)
        settings = await crud.get_site_settings()
        self.assertEqual(settings.commission_rate, 12.5)
        self.assertEqual(settings.hero_title, "Discover Sacred Temples")

    # ---------- Temples & bookings ----------

    async def test_temples_and_tickets(self):
        temples = await crud.list_temples()
        self.assertEqual(len(temples), 3)
        self.assertEqual((await crud.get_temple("t-nallur")).vendor_id, "u-vendor")
        self.assertIsNone(await crud.get_temple("t-none"))
        tickets = await crud.list_temple_tickets("t-nallur")
        self.assertEqual([t.name for t in tickets], ["General entry", "Archana"])

    async def test_create_and_find_booking(self):
        booking = await crud.create_booking(
            "t-nallur",
            "Devi Raman",
            "devotee@example.com",
            date(2030, 1, 15),
            [
                TicketSelection("k-nallur-archana", "Archana", 2, 500.0),
                TicketSelection("k-nallur-gen", "General entry", 0, 0.0),
            ],
            customer_phone="",
        )
        self.assertEqual(booking.status, "pending")
        self.assertEqual(booking.num_tickets, 2)
        self.assertEqual(len(booking.booking_code), 8)
        self.assertIsNone(booking.customer_phone)

        found = await crud.get_booking_by_code(f"  {booking.booking_code.lower()} ")
        self.assertEqual(found.id, booking.id)
        self.assertEqual(found.visit_date, date(2030, 1, 15))
        self.assertEqual([(t.name, t.quantity) for t in found.tickets], [("Archana", 2)])
        self.assertEqual(found.tickets[0].subtotal, 1000.0)
        self.assertIsNone(await crud.get_booking_by_code("ZZZZZZZZ"))

        vendor_bookings = await crud.list_vendor_bookings("u-vendor")
        self.assertEqual([b.booking_code for b in vendor_bookings], [booking.booking_code])
        self.assertEqual(await crud.list_vendor_bookings("u-vendor2"), [])

        self.assertTrue(await crud.update_booking_status(booking.id, "confirmed"))
        self.assertEqual((await crud.get_booking_by_code(booking.booking_code)).status, "confirmed")

    async def test_create_booking_needs_tickets(self):
        with self.assertRaises(ValueError):
            await crud.create_booking(
                "t-nallur",
                "Devi Raman",
                "devotee@example.com",
                date(2030, 1, 15),
                [TicketSelection("k-nallur-gen", "General entry", 0, 0.0)],
            )

    # ---------- Vendor applications ----------

    async def _verify_email(self, user_id):
        await crud.store_otp(
            user_id, "pre_submission", "email", "123456", datetime.now() + timedelta(minutes=10)
        )
        record = await crud.get_verification(user_id, "pre_submission")
        return await crud.mark_channel_verified(record.id, "email")

    async def test_store_otp_and_mark_verified(self):
        expires = datetime(2025, 11, 1, 12, 10, 0)
        await crud.store_otp("u-cust", "pre_submission", "phone", "654321", expires,
                             phone="+94771234567", country_code="+94")
        record = await crud.get_verification("u-cust", "pre_submission")
        self.assertEqual(record.phone_otp, "654321")
        self.assertEqual(record.phone_otp_expires_at, expires)
        self.assertEqual(record.phone, "+94771234567")
        self.assertFalse(record.phone_verified)

        # a second code for the same stage updates the one row
        await crud.store_otp("u-cust", "pre_submission", "email", "111111", expires)
        record = await crud.get_verification("u-cust", "pre_submission")
        self.assertEqual(record.email_otp, "111111")
        self.assertEqual(record.phone_otp, "654321")
        self.assertEqual(
            await self.scalar("SELECT COUNT(*) FROM vendor_verifications WHERE user_id = 'u-cust';"),
            1,
        )

        updated = await crud.mark_channel_verified(record.id, "phone")
        self.assertTrue(updated.phone_verified)
        self.assertIsNone(updated.phone_otp)
        self.assertEqual(updated.email_otp, "111111")

        with self.assertRaises(ValueError):
            await crud.store_otp("u-cust", "pre_submission", "fax", "1", expires)
        with self.assertRaises(ValueError):
            await crud.mark_channel_verified(record.id, "fax")
        self.assertIsNone(await crud.get_verification("u-cust", "post_approval"))

    async def test_vendor_application_flow(self):
        with self.assertRaises(ValueError):
            await crud.submit_vendor_application("u-cust", "Devi Flowers")

        await self._verify_email("u-cust")
        with self.assertRaises(ValueError):
            await crud.submit_vendor_application("u-cust", "   ")

        application = await crud.submit_vendor_application(
            "u-cust", " Devi Flowers ", phone="0771234567", description="Garlands"
        )
        self.assertEqual(application.business_name, "Devi Flowers")
        self.assertEqual(application.status, "pending")
        self.assertTrue(application.email_verified)
        self.assertFalse(application.phone_verified)
        record = await crud.get_verification("u-cust", "pre_submission")
        self.assertEqual(record.application_id, application.id)

        with self.assertRaises(ValueError):
            await crud.submit_vendor_application("u-cust", "Second Shop")

        pending = await crud.list_vendor_applications()
        self.assertEqual([a.id for a in pending], [application.id])

        reviewed = await crud.review_vendor_application(application.id, approve=True)
        self.assertEqual(reviewed.status, "approved")
        self.assertIn("vendor", await crud.get_user_roles("u-cust"))
        self.assertEqual(await crud.list_vendor_applications(), [])
        self.assertEqual(len(await crud.list_vendor_applications(None)), 1)
        self.assertEqual(
            [n.title for n in await crud.list_notifications("u-cust")],
            ["Vendor application approved"],
        )

        # only pending applications can be reviewed
        self.assertIsNone(await crud.review_vendor_application(application.id, approve=False))
        self.assertIsNone(await crud.review_vendor_application("a-missing", approve=True))

    async def test_rejected_application_can_reapply(self):
        await self._verify_email("u-cust")
        first = await crud.submit_vendor_application("u-cust", "Devi Flowers")
        reviewed = await crud.review_vendor_application(first.id, approve=False)
        self.assertEqual(reviewed.status, "rejected")
        self.assertNotIn("vendor", await crud.get_user_roles("u-cust"))

        second = await crud.submit_vendor_application("u-cust", "Devi Garlands")
        self.assertNotEqual(second.id, first.id)
        self.assertEqual((await crud.get_vendor_application("u-cust")).id, second.id)

    async def test_mark_application_verified(self):
        await self._verify_email("u-cust")
        application = await crud.submit_vendor_application("u-cust", "Devi Flowers")
        await crud.mark_application_verified(application.id, "+94")
        application = await crud.get_vendor_application("u-cust")
        self.assertTrue(application.email_verified)
        self.assertTrue(application.phone_verified)
        self.assertEqual(
            await self.scalar(
                "SELECT phone_country_code FROM vendor_applications WHERE id = ?;",
                (application.id,),
            ),
            "+94",
        )

    # ---------- Notifications ----------

    async def test_notifications_and_realtime(self):
        received = []
        sub = get_channel().on_insert("notifications", received.append, user_id="u-cust")
        try:
            await crud.create_notification("u-vendor", "Not for you")
            note = await crud.create_notification("u-cust", "Order shipped", "On its way")
        finally:
            sub.unsubscribe()
        await crud.create_notification("u-cust", "After unsubscribe")

        self.assertEqual([r["title"] for r in received], ["Order shipped"])
        self.assertEqual(received[0]["id"], note.id)
        self.assertFalse(note.is_read)

        unread = await crud.list_notifications("u-cust", unread_only=True)
        self.assertEqual(len(unread), 2)
        self.assertEqual(await crud.mark_notifications_read("u-cust"), 2)
        self.assertEqual(await crud.mark_notifications_read("u-cust"), 0)
        self.assertEqual(await crud.list_notifications("u-cust", unread_only=True), [])
        self.assertTrue(all(n.is_read for n in await crud.list_notifications("u-cust")))

    # ---------- Profile editing ----------

    async def test_update_profile(self):
        self.assertTrue(await crud.update_profile("u-cust", "  Devi R. Raman ", " +94771234567 "))
        profile = await crud.get_profile("u-cust")
        self.assertEqual(profile.full_name, "Devi R. Raman")
        self.assertEqual(profile.phone, "+94771234567")

        # a blank phone clears it
        self.assertTrue(await crud.update_profile("u-cust", "Devi Raman", "  "))
        self.assertIsNone((await crud.get_profile("u-cust")).phone)

        with self.assertRaises(ValueError):
            await crud.update_profile("u-cust", " D ")
        self.assertEqual((await crud.get_profile("u-cust")).full_name, "Devi Raman")
        self.assertFalse(await crud.update_profile("nobody", "Some Name"))

    # ---------- Favourites ----------

    async def test_favorites(self):
        self.assertEqual(await crud.list_favorites("u-cust"), [])
        self.assertFalse(await crud.is_favorite("u-cust", "p-1001"))

        self.assertTrue(await crud.add_favorite("u-cust", "p-1001"))
        self.assertTrue(await crud.add_favorite("u-cust", "p-1004"))
        self.assertFalse(await crud.add_favorite("u-cust", "p-1001"))

        self.assertTrue(await crud.is_favorite("u-cust", "p-1001"))
        self.assertFalse(await crud.is_favorite("u-vendor", "p-1001"))
        # most recently saved first
        self.assertEqual([p.id for p in await crud.list_favorites("u-cust")], ["p-1004", "p-1001"])

        self.assertTrue(await crud.remove_favorite("u-cust", "p-1004"))
        self.assertFalse(await crud.remove_favorite("u-cust", "p-1004"))
        self.assertEqual([p.id for p in await crud.list_favorites("u-cust")], ["p-1001"])

    # ---------- Ticket management ----------

    async def test_vendor_ticket_management(self):
        self.assertEqual([t.id for t in await crud.list_vendor_temples("u-vendor")], ["t-nallur"])
        self.assertEqual(await crud.list_vendor_temples("u-cust"), [])

        ticket = await crud.create_temple_ticket(
            "u-vendor", "t-nallur", " Festival pass ", 1200.0, "Evening procession", 5
        )
        self.assertEqual(ticket.name, "Festival pass")
        self.assertEqual(ticket.temple_id, "t-nallur")
        names = [t.name for t in await crud.list_temple_tickets("t-nallur")]
        self.assertEqual(names, ["General entry", "Archana", "Festival pass"])

        # another vendor's temple
        self.assertIsNone(await crud.create_temple_ticket("u-vendor2", "t-nallur", "Sneaky", 10.0))
        self.assertFalse(await crud.update_temple_ticket("u-vendor2", ticket.id, price=1.0))
        self.assertFalse(await crud.delete_temple_ticket("u-vendor2", ticket.id))

        self.assertTrue(
            await crud.update_temple_ticket("u-vendor", ticket.id, price=1500.0, display_order=-1)
        )
        tickets = await crud.list_temple_tickets("t-nallur")
        self.assertEqual(tickets[0].name, "Festival pass")
        self.assertEqual(tickets[0].price, 1500.0)
        self.assertEqual(tickets[0].description, "Evening procession")

        # inactive tickets are hidden from bookings but still listed for the vendor
        self.assertTrue(await crud.update_temple_ticket("u-vendor", ticket.id, is_active=False))
        self.assertNotIn(ticket.id, [t.id for t in await crud.list_temple_tickets("t-nallur")])
        everything = await crud.list_temple_tickets("t-nallur", include_inactive=True)
        self.assertFalse(next(t for t in everything if t.id == ticket.id).is_active)

        with self.assertRaises(ValueError):
            await crud.create_temple_ticket("u-vendor", "t-nallur", "Bad", -1.0)
        with self.assertRaises(ValueError):
            await crud.update_temple_ticket("u-vendor", ticket.id, name="   ")

        self.assertTrue(await crud.delete_temple_ticket("u-vendor", ticket.id))
        everything = await crud.list_temple_tickets("t-nallur", include_inactive=True)
        self.assertEqual(len(everything), 2)

    # ---------- Reviews ----------

    async def test_reviews(self):
        reviews = await crud.list_reviews("product", "p-1001")
        self.assertEqual(len(reviews), 1)
        self.assertEqual(reviews[0].reviewer_name, "Devi Raman")
        self.assertEqual(reviews[0].rating, 5)
        self.assertEqual(reviews[0].created_at, datetime(2024, 1, 10, 9, 0, 0))

        with self.assertRaisesRegex(ValueError, "already reviewed this product"):
            await crud.create_review("product", "p-1001", "u-cust", 4)
        with self.assertRaises(ValueError):
            await crud.create_review("product", "p-1002", "u-cust", 6)
        with self.assertRaises(ValueError):
            await crud.create_review("shop", "p-1002", "u-cust", 3)

        review = await crud.create_review(
            "temple", "t-nallur", "u-vendor2", 3, "Crowded", None, datetime(2024, 3, 1, 8, 0)
        )
        self.assertIsNone(await crud.get_user_review("temple", "t-nallur", "u-cust"))
        mine = await crud.get_user_review("temple", "t-nallur", "u-vendor2")
        self.assertEqual(mine.id, review.id)
        self.assertEqual(mine.title, "Crowded")

        # only the author can edit
        self.assertFalse(await crud.update_review("temple", review.id, "u-cust", 1))
        self.assertTrue(
            await crud.update_review("temple", review.id, "u-vendor2", 5, "Worth it", "Go early")
        )
        edited = (await crud.list_reviews("temple", "t-nallur"))[0]
        self.assertEqual((edited.rating, edited.title, edited.comment), (5, "Worth it", "Go early"))

        # the seeded temple review is untouched
        self.assertEqual(len(await crud.list_reviews("temple", "t-koneswaram")), 1)

    # ---------- Support chat ----------

    async def test_support_chat(self):
        with self.assertRaises(ValueError):
            await crud.create_conversation("u-cust", "   ")
        conversation = await crud.create_conversation(
            "u-cust", "Missing lamp", datetime(2024, 5, 1, 10, 0)
        )
        self.assertEqual(conversation.status, "open")

        received = []
        sub = get_channel().on_insert("chat_messages", received.append, user_id="u-cust")
        try:
            await crud.send_chat_message(
                conversation.id, "u-cust", "Where is my order?", datetime(2024, 5, 1, 10, 1)
            )
            await crud.send_chat_message(
                conversation.id, "u-admin", "Looking into it.", datetime(2024, 5, 1, 10, 5)
            )
        finally:
            sub.unsubscribe()
        # both sides of the customer's conversation reach the customer
        self.assertEqual([r["message"] for r in received], ["Where is my order?", "Looking into it."])
        self.assertEqual(received[1]["sender_id"], "u-admin")

        with self.assertRaises(ValueError):
            await crud.send_chat_message(conversation.id, "u-cust", "  ")
        with self.assertRaises(ValueError):
            await crud.send_chat_message("c-none", "u-cust", "Hello")

        listed = await crud.list_conversations("u-cust", "u-cust")
        self.assertEqual([c.id for c in listed], [conversation.id])
        self.assertEqual(listed[0].user_email, "devotee@example.com")
        self.assertEqual(listed[0].unread, 1)
        self.assertEqual(listed[0].updated_at, datetime(2024, 5, 1, 10, 5))
        self.assertEqual((await crud.list_conversations("u-admin"))[0].unread, 1)
        self.assertEqual(await crud.list_conversations("u-vendor", "u-vendor"), [])

        # reading marks the other side's messages read
        messages = await crud.list_chat_messages(conversation.id, reader_id="u-cust")
        self.assertEqual([m.sender_id for m in messages], ["u-cust", "u-admin"])
        self.assertEqual((await crud.list_conversations("u-cust", "u-cust"))[0].unread, 0)
        self.assertEqual((await crud.list_conversations("u-admin"))[0].unread, 1)

        self.assertTrue(await crud.close_conversation(conversation.id))
        self.assertFalse(await crud.close_conversation(conversation.id))
        with self.assertRaisesRegex(ValueError, "closed"):
            await crud.send_chat_message(conversation.id, "u-cust", "One more thing")

    # ---------- tiny helper coverage ----------

    def test__to_int_helper(self):
        self.assertEqual(crud._to_int("3"), 3)
        self.assertIsNone(crud._to_int("nan"))
        self.assertIsNone(crud._to_int(None))


if __name__ == "__main__":
    unittest.main()
