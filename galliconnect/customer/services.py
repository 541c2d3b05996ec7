from __future__ import annotations

import secrets
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..domain import Order, OrderStatus, Product, Shop, User, utcnow
from ..errors import CheckoutError
from ..ordering import Cart
from ..store import Store, filter_orders
from ..utils.geo import Coordinates, distance_to, sort_by_distance


def find_shop(store: Store, shop_id: str) -> Optional[Shop]:
    return next((shop for shop in store.get_shops() if shop.id == shop_id), None)


def nearby_shops(store: Store, origin: Optional[Coordinates]) -> List[Tuple[Shop, Optional[float]]]:
    """Open shops, nearest first when a position is known, with their distance in km."""
    shops = [shop for shop in store.get_shops() if shop.is_open]
    return [(shop, distance_to(shop, origin)) for shop in sort_by_distance(shops, origin)]


def shop_catalog(store: Store, shop_id: str) -> List[Product]:
    return [product for product in store.get_products(shop_id) if product.in_stock]


def order_history(store: Store, customer_id: str) -> List[Order]:
    orders = filter_orders(store.get_orders(), customer_id=customer_id)
    return sorted(orders, key=lambda order: order.created_at, reverse=True)


def pick_slot(requested: Optional[str], slots: Sequence[str]) -> str:
    if requested in slots:
        return requested
    return slots[0]


def build_order(customer: User, shop: Shop, cart: Cart, slot: str, platform_percent: float,
                delivery_charge: float, now: Optional[datetime] = None) -> Order:
    """Snapshot the cart, its totals and the customer's contact details."""
    if not cart:
        raise CheckoutError('Your cart is empty.')
    summary = cart.summary(platform_percent, delivery_charge)
    return Order(
        id=secrets.token_hex(6),
        customer_id=customer.id,
        customer_name=customer.name,
        customer_address=customer.address,
        customer_contact=customer.contact,
        shop_id=shop.id,
        shop_name=shop.name,
        items=cart.snapshot(),
        status=OrderStatus.ORDERED,
        total=summary.subtotal,
        platform_charge=summary.platform,
        delivery_charge=summary.delivery,
        grand_total=summary.grand_total,
        delivery_slot=slot,
        created_at=now or utcnow(),
    )


def place_order(store: Store, customer: User, shop_id: Optional[str], cart: Cart, slot: str,
                platform_percent: float, delivery_charge: float) -> Order:
    # No stock is reserved or decremented here.
    if not shop_id:
        raise CheckoutError('Pick a shop before checking out.')
    shop = find_shop(store, shop_id)
    if shop is None:
        raise CheckoutError('That shop is no longer available.')
    order = build_order(customer, shop, cart, slot, platform_percent, delivery_charge)
    store.add_order(order)
    cart.clear()
    return order
