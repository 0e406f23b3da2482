import secrets
from typing import Iterable, List, Literal, Optional

import bcrypt

from utils import config

BOOKING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [list(map(str, row)) for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(row) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


def format_price(amount: float, currency: str = "LKR") -> str:
    return f"{currency} {amount:,.2f}"


def hash_password(password: str) -> str:
    """bcrypt hash, stored as text."""
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), encoded.encode("utf-8"))
    except (AttributeError, ValueError):
        return False


def generate_numeric_code(digits: int = 6) -> str:
    """Zero-padded random numeric code, e.g. an OTP."""
    return str(secrets.randbelow(10**digits)).zfill(digits)


def generate_booking_code(length: int = 8) -> str:
    # no 0/O, 1/I: codes get read out over the phone
    return "".join(secrets.choice(BOOKING_CODE_ALPHABET) for _ in range(length))


def hsl_triplet_to_css(value: str) -> str:
    """
    Turn a stored HSL triplet such as ``"217 91% 60%"`` into ``"hsl(217,91%,60%)"``.
    Anything that is not a triplet is returned untouched.
    """
    parts = (value or "").replace(",", " ").split()
    if len(parts) != 3:
        return value
    return f"hsl({parts[0]},{parts[1]},{parts[2]})"


def average_rating(ratings: Iterable[int]) -> float:
    """Mean of the ratings, 0.0 when there are none."""
    ratings = list(ratings)
    return sum(ratings) / len(ratings) if ratings else 0.0


def rating_stars(rating: float, scale: int = 5) -> str:
    filled = int(round(rating))
    return "★" * filled + "☆" * (scale - filled)
