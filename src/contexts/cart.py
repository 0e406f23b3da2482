"""
Cart context: lines keyed by product (and variant), kept within each line's stock.

Adding more than is in stock is rejected outright; setting a quantity above stock
is clamped to the stock instead. The cart is persisted to local storage after
every change under a schema version, and a stored cart from any other version is
discarded whole on load.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Callable, Dict, List, Literal, Optional

from utils.logger import get_logger
from utils.storage import LocalStorage

_logger = get_logger(__name__)

CART_STORAGE_KEY = "temple-connect-cart"
CART_SCHEMA_VERSION = 2

Severity = Literal["information", "warning", "error"]
Notifier = Callable[[str, Severity], None]


@dataclass
class CartLine:
    id: str
    name: str
    price: float
    quantity: int
    vendor_id: str
    stock: int
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.id}-{self.variant_id}" if self.variant_id else self.id

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.variant_name})" if self.variant_name else self.name

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            price=float(data["price"]),
            quantity=int(data["quantity"]),
            vendor_id=str(data["vendor_id"]),
            stock=int(data["stock"]),
            variant_id=data.get("variant_id"),
            variant_name=data.get("variant_name"),
            image_url=data.get("image_url"),
            category=data.get("category"),
        )


class CartContext:
    def __init__(self, storage: LocalStorage, notify: Optional[Notifier] = None) -> None:
        self.storage = storage
        self._notify = notify
        self.lines: List[CartLine] = []
        self.is_open = False
        self._listeners: List[Callable[[], None]] = []
        self.hydrate()

    def set_notifier(self, notify: Optional[Notifier]) -> None:
        self._notify = notify

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _say(self, message: str, severity: Severity = "information") -> None:
        if self._notify:
            self._notify(message, severity)

    # ---------------------------
    # Persistence
    # ---------------------------

    def hydrate(self) -> None:
        data = self.storage.read_versioned(CART_STORAGE_KEY, CART_SCHEMA_VERSION)
        if data is None:
            self.lines = []
            return
        try:
            if not isinstance(data, list) or not all(
                isinstance(entry, dict) and entry.get("id") for entry in data
            ):
                raise ValueError("cart entries without identity")
            lines = [CartLine.from_dict(entry) for entry in data]
            if not all(0 < line.quantity <= line.stock for line in lines):
                raise ValueError("cart entries outside their stock")
            self.lines = lines
        except (KeyError, TypeError, ValueError) as e:
            _logger.info(f"Discarding stored cart: {e}")
            self.storage.remove_item(CART_STORAGE_KEY)
            self.lines = []

    def _persist(self) -> None:
        self.storage.write_versioned(
            CART_STORAGE_KEY, CART_SCHEMA_VERSION, [asdict(line) for line in self.lines]
        )
        for listener in list(self._listeners):
            listener()

    # ---------------------------
    # Mutations
    # ---------------------------

    def find(self, key: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == key:
                return line
        return None

    def add_to_cart(self, item: CartLine, quantity: int = 1) -> bool:
        """Add quantity of item. Returns False (and warns) when stock does not allow it."""
        if quantity <= 0:
            self._say("Quantity must be at least 1.", "warning")
            return False
        if item.stock <= 0:
            self._say(f"Out of stock: {item.display_name} is currently out of stock.", "error")
            return False

        existing = self.find(item.key)
        if existing:
            new_quantity = existing.quantity + quantity
            if new_quantity > item.stock:
                self._say(
                    f"Stock limit reached: you can only add up to {item.stock} of "
                    f"{item.display_name}.",
                    "warning",
                )
                return False
            existing.quantity = new_quantity
            existing.stock = item.stock
            existing.price = item.price
        else:
            if quantity > item.stock:
                self._say(
                    f"Stock limit reached: you can only add up to {item.stock} of "
                    f"{item.display_name}.",
                    "warning",
                )
                return False
            self.lines.append(replace(item, quantity=quantity))

        self.is_open = True
        self._persist()
        self._say(f"{item.display_name} added to cart.")
        return True

    def update_quantity(self, key: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes it, above stock clamps to stock."""
        line = self.find(key)
        if line is None:
            return
        if quantity > line.stock:
            self._say(
                f"Stock limit reached: you can only add up to {line.stock} of "
                f"{line.display_name}.",
                "warning",
            )
            quantity = line.stock
        if quantity <= 0:
            self.remove_from_cart(key)
            return
        line.quantity = quantity
        self._persist()

    def remove_from_cart(self, key: str) -> None:
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.key != key]
        if len(self.lines) != before:
            self._persist()

    def clear_cart(self) -> None:
        self.lines = []
        self._persist()

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    # ---------------------------
    # Derived
    # ---------------------------

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total_price(self) -> float:
        return sum(line.subtotal for line in self.lines)

    def lines_by_vendor(self) -> Dict[str, List[CartLine]]:
        grouped: Dict[str, List[CartLine]] = {}
        for line in self.lines:
            grouped.setdefault(line.vendor_id, []).append(line)
        return grouped
