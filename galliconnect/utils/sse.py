"""Server-Sent Events bridge for order subscriptions."""

from __future__ import annotations

import json
import queue
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..domain import Order
from ..store import Store

Snapshot = Callable[[List[Order]], Dict[str, Any]]


def format_event(data: Dict[str, Any], event: str = 'orders') -> str:
    return f'event: {event}\ndata: {json.dumps(data)}\n\n'


def order_events(store: Store, render: Snapshot, keepalive: float, shop_id: Optional[str] = None,
                 customer_id: Optional[str] = None) -> Iterator[str]:
    """Yield one event per pushed snapshot until the client goes away."""
    pending: 'queue.Queue[Dict[str, Any]]' = queue.Queue()
    subscription = store.subscribe_orders(
        lambda orders: pending.put(render(orders)),
        shop_id=shop_id,
        customer_id=customer_id,
    )
    try:
        while True:
            try:
                snapshot = pending.get(timeout=keepalive)
            except queue.Empty:
                yield ': keep-alive\n\n'
                continue
            yield format_event(snapshot)
    finally:
        subscription.cancel()
