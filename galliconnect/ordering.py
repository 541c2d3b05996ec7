from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .domain import OrderItem, OrderStatus, Product
from .errors import TransitionRejected


@dataclass(frozen=True)
class CartSummary:
    subtotal: float
    platform: float
    delivery: float
    grand_total: float


def price_items(items: Iterable[OrderItem], platform_percent: float, delivery_charge: float) -> CartSummary:
    """Totals for a set of line items. Nothing is rounded here."""
    subtotal = sum(item.price * item.quantity for item in items)
    platform = subtotal * platform_percent
    return CartSummary(
        subtotal=subtotal,
        platform=platform,
        delivery=delivery_charge,
        grand_total=subtotal + platform + delivery_charge,
    )


class Cart:
    """Line items in first-add order, one per product, quantities moved by one."""

    def __init__(self, lines: Optional[Iterable[OrderItem]] = None) -> None:
        self._lines: List[OrderItem] = list(lines or [])

    def __iter__(self) -> Iterator[OrderItem]:
        return iter(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __bool__(self) -> bool:
        return bool(self._lines)

    def _find(self, product_id: str) -> Optional[OrderItem]:
        return next((line for line in self._lines if line.product_id == product_id), None)

    def quantity_of(self, product_id: str) -> int:
        line = self._find(product_id)
        return line.quantity if line else 0

    def add(self, product: Product) -> OrderItem:
        line = self._find(product.id)
        if line:
            line.quantity += 1
            return line
        line = OrderItem(product_id=product.id, name=product.name, price=product.price, quantity=1)
        self._lines.append(line)
        return line

    def remove(self, product_id: str) -> None:
        line = self._find(product_id)
        if not line:
            return
        if line.quantity > 1:
            line.quantity -= 1
        else:
            self._lines.remove(line)

    def clear(self) -> None:
        self._lines = []

    def snapshot(self) -> List[OrderItem]:
        return [OrderItem.from_dict(line.to_dict()) for line in self._lines]

    def summary(self, platform_percent: float, delivery_charge: float) -> CartSummary:
        return price_items(self._lines, platform_percent, delivery_charge)

    def to_list(self) -> List[Dict[str, object]]:
        return [line.to_dict() for line in self._lines]

    @classmethod
    def from_list(cls, rows: Optional[Iterable[Mapping[str, object]]]) -> 'Cart':
        return cls(OrderItem.from_dict(row) for row in rows or [])


class OrderAction(str, enum.Enum):
    CONFIRM = "confirm"
    DISPATCH = "dispatch"


ORDER_TRANSITIONS: Dict[tuple, OrderStatus] = {
    (OrderStatus.ORDERED, OrderAction.CONFIRM): OrderStatus.ACCEPTED,
    (OrderStatus.ACCEPTED, OrderAction.DISPATCH): OrderStatus.DELIVERED,
}

ACTION_LABELS = {
    OrderAction.CONFIRM: "Confirm Order",
    OrderAction.DISPATCH: "Dispatch Done",
}


def next_status(current: OrderStatus | str, action: OrderAction | str) -> OrderStatus:
    try:
        current = OrderStatus(current)
        action = OrderAction(action)
    except ValueError as exc:
        raise TransitionRejected(str(exc)) from exc
    target = ORDER_TRANSITIONS.get((current, action))
    if target is None:
        raise TransitionRejected(f"Cannot {action.value} an order that is {current.value}.")
    return target


def available_actions(status: OrderStatus | str) -> List[OrderAction]:
    status = OrderStatus(status)
    return [action for (source, action) in ORDER_TRANSITIONS if source == status]
