from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional
from urllib.parse import quote

from ..domain import EarningStat, Order, OrderStatus, Product, Shop, utcnow
from ..errors import InvalidProduct, TransitionRejected
from ..ordering import OrderAction, next_status
from ..store import Store, filter_orders


@dataclass
class RetailerStats:
    today_earnings: float
    pending_orders: int


def find_owned_shop(store: Store, owner_id: str) -> Optional[Shop]:
    return next((shop for shop in store.get_shops() if shop.owner_id == owner_id), None)


def shop_orders(orders: Iterable[Order], shop_id: str) -> List[Order]:
    rows = filter_orders(orders, shop_id=shop_id)
    return sorted(rows, key=lambda order: order.created_at, reverse=True)


def retailer_stats(orders: Iterable[Order], earnings: Iterable[EarningStat],
                   today: Optional[date] = None) -> RetailerStats:
    day = (today or utcnow().date()).isoformat()
    today_earnings = next((stat.amount for stat in earnings if stat.date == day), 0.0)
    pending = sum(1 for order in orders if order.status == OrderStatus.ORDERED)
    return RetailerStats(today_earnings=today_earnings, pending_orders=pending)


def toggle_shop(store: Store, shop: Shop) -> Optional[Shop]:
    store.toggle_shop_status(shop.id)
    return next((row for row in store.get_shops() if row.id == shop.id), None)


def product_image(name: str) -> str:
    return f'https://picsum.photos/seed/{quote(name, safe="")}/200'


def add_product(store: Store, shop: Shop, name: str, price_raw, quantity: str) -> Product:
    name = (name or '').strip()
    if not name:
        raise InvalidProduct('Give the product a name.')
    try:
        price = float(price_raw)
    except (TypeError, ValueError) as exc:
        raise InvalidProduct('Price must be a number.') from exc
    if price < 0:
        raise InvalidProduct('Price cannot be negative.')

    product = Product(
        id=secrets.token_hex(6),
        shop_id=shop.id,
        name=name,
        price=price,
        quantity=(quantity or '').strip(),
        image=product_image(name),
        in_stock=True,
    )
    store.add_product(product)
    return product


def set_stock(store: Store, shop: Shop, product_id: str, in_stock: bool) -> None:
    if not any(product.id == product_id for product in store.get_products(shop.id)):
        raise InvalidProduct('That product is not in your catalog.')
    store.update_product_stock(product_id, in_stock)


def advance_order(store: Store, shop: Shop, order_id: str, action: OrderAction | str) -> OrderStatus:
    order = next((row for row in filter_orders(store.get_orders(), shop_id=shop.id) if row.id == order_id), None)
    if order is None:
        raise TransitionRejected('Order not found for this shop.')
    status = next_status(order.status, action)
    store.update_order_status(order.id, status)
    return status
