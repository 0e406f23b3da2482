# demo accounts; inserted before seed.sql, which grants the extra roles
import aiosqlite

from utils.pure import hash_password

SEED_USERS = [
    # (id, email, password, full name, country)
    ("u-admin", "admin@templeconnect.lk", "admin123", "Site Admin", "LK"),
    ("u-vendor", "vendor@templeconnect.lk", "vendor123", "Nallur Pooja Stores", "LK"),
    ("u-vendor2", "crafts@templeconnect.lk", "vendor123", "Jaffna Brass Crafts", "LK"),
    ("u-cust", "devotee@example.com", "customer123", "Devi Raman", "LK"),
]


async def seed_users(conn: aiosqlite.Connection) -> None:
    for uid, email, pwd, full_name, country in SEED_USERS:
        await conn.execute(
            "INSERT INTO users(id, email, password_hash) VALUES (?, ?, ?);",
            (uid, email, hash_password(pwd)),
        )
        await conn.execute(
            "INSERT INTO profiles(user_id, full_name, country) VALUES (?, ?, ?);",
            (uid, full_name, country),
        )
