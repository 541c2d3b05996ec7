"""Local fallback: each table is a JSON array stored under a fixed key.

Every operation loads the whole array, mutates it and writes it back.  There
is no change feed in this mode.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..domain import Order, OrderStatus, Product, Shop, User
from .base import OrdersCallback, PendingRow, Store, Subscription

USERS_KEY = 'g_users'
SHOPS_KEY = 'g_shops'
PRODUCTS_KEY = 'g_products'
ORDERS_KEY = 'g_orders'
PENDING_KEY = 'g_pending'

Row = Dict[str, Any]


class LocalStore(Store):
    mode = 'local'

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.directory / f'{key}.json'

    def _read(self, key: str) -> List[Row]:
        path = self._path(key)
        if not path.exists():
            return []
        raw = path.read_text(encoding='utf-8')
        return json.loads(raw or '[]')

    def _write(self, key: str, rows: List[Row]) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f'.{key}.', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(rows, fh)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _upsert(self, key: str, row: Row) -> None:
        with self._lock:
            rows = self._read(key)
            index = next((i for i, existing in enumerate(rows) if existing.get('id') == row['id']), None)
            if index is None:
                rows.append(row)
            else:
                rows[index] = row
            self._write(key, rows)

    def _modify(self, key: str, row_id: str, change: Callable[[Row], None]) -> None:
        with self._lock:
            rows = self._read(key)
            found = next((row for row in rows if row.get('id') == row_id), None)
            if found is not None:
                change(found)
            self._write(key, rows)

    def get_users(self) -> List[User]:
        return [User.from_dict(row) for row in self._read(USERS_KEY)]

    def add_user(self, user: User) -> None:
        self._upsert(USERS_KEY, user.to_dict())

    def verify_email(self, user_id: str) -> None:
        self._modify(USERS_KEY, user_id, lambda row: row.update(is_email_verified=True))

    def get_shops(self) -> List[Shop]:
        return [Shop.from_dict(row) for row in self._read(SHOPS_KEY)]

    def add_shop(self, shop: Shop) -> None:
        self._upsert(SHOPS_KEY, shop.to_dict())

    def toggle_shop_status(self, shop_id: str) -> None:
        self._modify(SHOPS_KEY, shop_id, lambda row: row.update(is_open=not row.get('is_open')))

    def get_products(self, shop_id: Optional[str] = None) -> List[Product]:
        rows = self._read(PRODUCTS_KEY)
        if shop_id:
            rows = [row for row in rows if row.get('shop_id') == shop_id]
        return [Product.from_dict(row) for row in rows]

    def add_product(self, product: Product) -> None:
        self._upsert(PRODUCTS_KEY, product.to_dict())

    def update_product_stock(self, product_id: str, in_stock: bool) -> None:
        self._modify(PRODUCTS_KEY, product_id, lambda row: row.update(in_stock=bool(in_stock)))

    def get_orders(self) -> List[Order]:
        return [Order.from_dict(row) for row in self._read(ORDERS_KEY)]

    def add_order(self, order: Order) -> None:
        self._upsert(ORDERS_KEY, order.to_dict())

    def update_order_status(self, order_id: str, status: OrderStatus) -> None:
        value = OrderStatus(status).value
        self._modify(ORDERS_KEY, order_id, lambda row: row.update(status=value))

    def subscribe_orders(self, callback: OrdersCallback, shop_id: Optional[str] = None,
                         customer_id: Optional[str] = None) -> Subscription:
        return Subscription()

    def add_pending_verification(self, row: PendingRow) -> None:
        self._upsert(PENDING_KEY, dict(row))

    def get_pending_verification(self, pending_id: str) -> Optional[PendingRow]:
        return next((row for row in self._read(PENDING_KEY) if row.get('id') == pending_id), None)

    def record_failed_attempt(self, pending_id: str) -> Optional[int]:
        with self._lock:
            self._modify(PENDING_KEY, pending_id, lambda row: row.update(attempts=int(row.get('attempts', 0)) + 1))
            row = self.get_pending_verification(pending_id)
        return None if row is None else row['attempts']

    def delete_pending_verification(self, pending_id: str) -> None:
        with self._lock:
            rows = self._read(PENDING_KEY)
            remaining = [row for row in rows if row.get('id') != pending_id]
            if len(remaining) != len(rows):
                self._write(PENDING_KEY, remaining)
