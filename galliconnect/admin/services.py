from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from ..domain import Order, OrderStatus, Shop, User, UserRole


@dataclass
class ShopRevenue:
    name: str
    revenue: float
    commission: float


@dataclass
class PlatformSummary:
    total_retailers: int
    total_orders: int
    gmv: float
    commission: float
    shops: List[ShopRevenue] = field(default_factory=list)
    retailers: List[User] = field(default_factory=list)


def delivered_total(orders: Iterable[Order]) -> float:
    return sum(order.total for order in orders if order.status == OrderStatus.DELIVERED)


def shop_revenue(shops: Iterable[Shop], orders: List[Order], platform_percent: float) -> List[ShopRevenue]:
    rows = []
    for shop in shops:
        revenue = delivered_total(order for order in orders if order.shop_id == shop.id)
        rows.append(ShopRevenue(name=shop.label, revenue=revenue, commission=revenue * platform_percent))
    return rows


def summarize_platform(users: Iterable[User], shops: Iterable[Shop], orders: Iterable[Order],
                       platform_percent: float, limit: int = 5,
                       rank_by_revenue: bool = False) -> PlatformSummary:
    """Platform totals plus a per-shop breakdown cut to ``limit`` rows.

    By default the breakdown keeps the order the gateway returned shops in;
    ``rank_by_revenue`` sorts highest revenue first before cutting.
    """
    orders = list(orders)
    retailers = [user for user in users if user.role == UserRole.RETAILER]
    gmv = delivered_total(orders)

    breakdown = shop_revenue(shops, orders, platform_percent)
    if rank_by_revenue:
        breakdown.sort(key=lambda row: row.revenue, reverse=True)

    return PlatformSummary(
        total_retailers=len(retailers),
        total_orders=len(orders),
        gmv=gmv,
        commission=gmv * platform_percent,
        shops=breakdown[:limit] if limit > 0 else breakdown,
        retailers=retailers,
    )
