"""Hosted relational backend on Flask-SQLAlchemy.

Reads scan whole tables and writes upsert by primary key.  Every committed
order write reaches subscribers in all processes sharing the database; see
``changes`` for how each database delivers it.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..domain import Order, OrderStatus, Product, Shop, User
from ..errors import BackendFailure
from ..extensions import db
from ..models import (OrderFeedState, OrderRecord, PendingVerificationRecord, ProductRecord, ShopRecord,
                      UserRecord)
from .base import OrderFeed, OrdersCallback, PendingRow, Store, Subscription, filter_orders
from .changes import ORDERS_CHANNEL, ChangeMode, ChangeWatcher, NotifyListener, VersionPoller, change_mode_for

logger = logging.getLogger(__name__)

FEED_STATE_ID = 1


class HostedStore(Store):
    mode = 'hosted'

    def __init__(self, feed: Optional[OrderFeed] = None) -> None:
        self.feed = feed or OrderFeed()
        self.app = None
        self.change_mode = ChangeMode.IN_PROCESS
        self.poll_interval = 1.0
        self.watcher: Optional[ChangeWatcher] = None
        self._watcher_lock = threading.Lock()

    @property
    def supports_realtime(self) -> bool:
        return True

    def bind(self, app) -> None:
        self.app = app
        self.change_mode = change_mode_for(app.config['DATABASE_URL'])
        self.poll_interval = float(app.config.get('ORDER_FEED_POLL_SECONDS', 1.0))
        logger.info('Order changes delivered %s', self.change_mode.value)

    def prepare(self) -> None:
        """Create the order version row once; every app sharing the database calls this."""
        try:
            if db.session.get(OrderFeedState, FEED_STATE_ID) is None:
                db.session.add(OrderFeedState(id=FEED_STATE_ID, version=0))
                db.session.commit()
        except IntegrityError:
            db.session.rollback()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Preparing the order feed failed')
            raise BackendFailure() from exc

    def close(self) -> None:
        with self._watcher_lock:
            watcher, self.watcher = self.watcher, None
        if watcher is not None:
            watcher.stop()

    def _select(self, model, **filters) -> list:
        try:
            query = model.query
            if filters:
                query = query.filter_by(**filters)
            return [row.to_domain() for row in query.all()]
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Hosted read from %s failed', model.__tablename__)
            raise BackendFailure() from exc

    def _upsert(self, model, obj, before_commit: Optional[Callable[[], None]] = None) -> None:
        try:
            db.session.merge(model.from_domain(obj))
            if before_commit:
                before_commit()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Hosted upsert into %s failed', model.__tablename__)
            raise BackendFailure() from exc

    def _update(self, model, row_id: str, before_commit: Optional[Callable[[], None]] = None, **values) -> None:
        try:
            model.query.filter_by(id=row_id).update(values)
            if before_commit:
                before_commit()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Hosted update of %s %s failed', model.__tablename__, row_id)
            raise BackendFailure() from exc

    def get_users(self) -> List[User]:
        return self._select(UserRecord)

    def add_user(self, user: User) -> None:
        self._upsert(UserRecord, user)

    def verify_email(self, user_id: str) -> None:
        self._update(UserRecord, user_id, is_email_verified=True)

    def get_shops(self) -> List[Shop]:
        return self._select(ShopRecord)

    def add_shop(self, shop: Shop) -> None:
        self._upsert(ShopRecord, shop)

    def toggle_shop_status(self, shop_id: str) -> None:
        try:
            row = db.session.get(ShopRecord, shop_id)
            if row is None:
                return
            row.is_open = not row.is_open
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Hosted toggle of shop %s failed', shop_id)
            raise BackendFailure() from exc

    def get_products(self, shop_id: Optional[str] = None) -> List[Product]:
        if shop_id:
            return self._select(ProductRecord, shop_id=shop_id)
        return self._select(ProductRecord)

    def add_product(self, product: Product) -> None:
        self._upsert(ProductRecord, product)

    def update_product_stock(self, product_id: str, in_stock: bool) -> None:
        self._update(ProductRecord, product_id, in_stock=bool(in_stock))

    # Orders

    def _signal_order_change(self, order_id: str) -> Callable[[], None]:
        """Statement run inside the order write's transaction so others see it on commit."""
        def signal() -> None:
            if self.change_mode == ChangeMode.NOTIFY:
                db.session.execute(text('SELECT pg_notify(:channel, :payload)'),
                                   {'channel': ORDERS_CHANNEL, 'payload': order_id})
            elif self.change_mode == ChangeMode.POLL:
                db.session.execute(
                    update(OrderFeedState)
                    .where(OrderFeedState.id == FEED_STATE_ID)
                    .values(version=OrderFeedState.version + 1)
                )
        return signal

    def _published(self) -> None:
        if self.change_mode == ChangeMode.IN_PROCESS:
            self.feed.publish()

    def get_orders(self) -> List[Order]:
        return self._select(OrderRecord)

    def add_order(self, order: Order) -> None:
        self._upsert(OrderRecord, order, before_commit=self._signal_order_change(order.id))
        self._published()

    def update_order_status(self, order_id: str, status: OrderStatus) -> None:
        self._update(OrderRecord, order_id, before_commit=self._signal_order_change(order_id),
                     status=OrderStatus(status))
        self._published()

    def read_order_version(self) -> int:
        try:
            version = db.session.execute(
                select(OrderFeedState.version).where(OrderFeedState.id == FEED_STATE_ID)
            ).scalar()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise BackendFailure() from exc
        return version or 0

    def _listener_connection(self):
        pooled = db.engine.raw_connection()
        pooled.detach()
        return pooled

    def _ensure_watcher(self) -> None:
        if self.change_mode == ChangeMode.IN_PROCESS or self.app is None:
            return
        with self._watcher_lock:
            if self.watcher is not None and self.watcher.is_alive():
                return
            if self.change_mode == ChangeMode.NOTIFY:
                app = self.app

                def connect():
                    with app.app_context():
                        return self._listener_connection()

                watcher: ChangeWatcher = NotifyListener(self.app, self.feed.publish, self.poll_interval, connect)
            else:
                watcher = VersionPoller(self.app, self.feed.publish, self.poll_interval,
                                        self.read_order_version, baseline=self.read_order_version())
            watcher.start()
            self.watcher = watcher

    def subscribe_orders(self, callback: OrdersCallback, shop_id: Optional[str] = None,
                         customer_id: Optional[str] = None) -> Subscription:
        def refresh() -> None:
            callback(filter_orders(self.get_orders(), shop_id=shop_id, customer_id=customer_id))

        self._ensure_watcher()
        subscription = self.feed.add(refresh)
        refresh()
        return subscription

    # Pending verifications

    def add_pending_verification(self, row: PendingRow) -> None:
        try:
            db.session.merge(PendingVerificationRecord.from_dict(row))
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Saving pending verification failed')
            raise BackendFailure() from exc

    def get_pending_verification(self, pending_id: str) -> Optional[PendingRow]:
        try:
            row = db.session.execute(
                select(PendingVerificationRecord).where(PendingVerificationRecord.id == pending_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Reading pending verification failed')
            raise BackendFailure() from exc
        return None if row is None else row.to_dict()

    def record_failed_attempt(self, pending_id: str) -> Optional[int]:
        # Incremented in SQL so concurrent submissions cannot both read the old count.
        try:
            db.session.execute(
                update(PendingVerificationRecord)
                .where(PendingVerificationRecord.id == pending_id)
                .values(attempts=PendingVerificationRecord.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            return db.session.execute(
                select(PendingVerificationRecord.attempts).where(PendingVerificationRecord.id == pending_id)
            ).scalar()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Counting failed verification attempt failed')
            raise BackendFailure() from exc

    def delete_pending_verification(self, pending_id: str) -> None:
        try:
            PendingVerificationRecord.query.filter_by(id=pending_id).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('Removing pending verification failed')
            raise BackendFailure() from exc
