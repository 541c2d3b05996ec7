"""The persistence gateway contract and the order change channel."""

from __future__ import annotations

import abc
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..domain import EarningStat, Order, OrderStatus, Product, Shop, User

logger = logging.getLogger(__name__)

OrdersCallback = Callable[[List[Order]], None]
PendingRow = Dict[str, Any]


def filter_orders(orders: Iterable[Order], shop_id: Optional[str] = None,
                  customer_id: Optional[str] = None) -> List[Order]:
    rows = list(orders)
    if shop_id:
        rows = [order for order in rows if order.shop_id == shop_id]
    if customer_id:
        rows = [order for order in rows if order.customer_id == customer_id]
    return rows


def compute_earnings(orders: Iterable[Order], shop_id: str) -> List[EarningStat]:
    """Delivered subtotals per UTC calendar day, oldest first.

    Only ``total`` counts; platform and delivery charges are not retailer income.
    """
    per_day: Dict[str, float] = defaultdict(float)
    for order in orders:
        if order.shop_id != shop_id or order.status != OrderStatus.DELIVERED:
            continue
        per_day[order.created_at.date().isoformat()] += order.total
    return [EarningStat(date=day, amount=amount) for day, amount in sorted(per_day.items())]


class Subscription:
    """Handle returned by ``subscribe_orders``; cancelling twice is harmless."""

    def __init__(self, feed: Optional['OrderFeed'] = None, listener: Optional[Callable[[], None]] = None) -> None:
        self._feed = feed
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._feed is not None

    def cancel(self) -> None:
        if self._feed is not None and self._listener is not None:
            self._feed.remove(self._listener)
        self._feed = None
        self._listener = None

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class OrderFeed:
    """In-process change notifications for the orders table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add(self, listener: Callable[[], None]) -> Subscription:
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def remove(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception('Order subscriber failed; it stays subscribed')


class Store(abc.ABC):
    """CRUD over users, shops, products and orders plus an order change stream.

    Reads return whole tables (products may be narrowed to one shop); writes are
    upserts by id or single-field updates, last write wins.
    """

    mode: str = ''

    @property
    def supports_realtime(self) -> bool:
        return False

    @abc.abstractmethod
    def get_users(self) -> List[User]: ...

    @abc.abstractmethod
    def add_user(self, user: User) -> None: ...

    @abc.abstractmethod
    def verify_email(self, user_id: str) -> None: ...

    @abc.abstractmethod
    def get_shops(self) -> List[Shop]: ...

    @abc.abstractmethod
    def add_shop(self, shop: Shop) -> None: ...

    @abc.abstractmethod
    def toggle_shop_status(self, shop_id: str) -> None: ...

    @abc.abstractmethod
    def get_products(self, shop_id: Optional[str] = None) -> List[Product]: ...

    @abc.abstractmethod
    def add_product(self, product: Product) -> None: ...

    @abc.abstractmethod
    def update_product_stock(self, product_id: str, in_stock: bool) -> None: ...

    @abc.abstractmethod
    def get_orders(self) -> List[Order]: ...

    @abc.abstractmethod
    def add_order(self, order: Order) -> None: ...

    @abc.abstractmethod
    def update_order_status(self, order_id: str, status: OrderStatus) -> None: ...

    @abc.abstractmethod
    def subscribe_orders(self, callback: OrdersCallback, shop_id: Optional[str] = None,
                         customer_id: Optional[str] = None) -> Subscription: ...

    def get_earnings(self, shop_id: str) -> List[EarningStat]:
        return compute_earnings(self.get_orders(), shop_id)

    # Pending email verifications.  Rows are JSON-safe dicts keyed by ``id``;
    # the attempt counter is only ever changed here, never by the client.

    @abc.abstractmethod
    def add_pending_verification(self, row: PendingRow) -> None: ...

    @abc.abstractmethod
    def get_pending_verification(self, pending_id: str) -> Optional[PendingRow]: ...

    @abc.abstractmethod
    def record_failed_attempt(self, pending_id: str) -> Optional[int]:
        """Bump the attempt counter and return the new value, or None if the row is gone."""

    @abc.abstractmethod
    def delete_pending_verification(self, pending_id: str) -> None: ...

    def close(self) -> None:
        """Release background resources; the default gateway holds none."""
