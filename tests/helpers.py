"""Shared fixtures: app factories for both persistence modes and sample records."""

import shutil
import tempfile
from datetime import datetime, timezone

from galliconnect import create_app
from galliconnect.config import TestConfig
from galliconnect.domain import Order, OrderItem, OrderStatus, Product, Shop, ShopType, User, UserRole
from galliconnect.store import get_store


def make_app(hosted=False, **overrides):
    """Build an app on a throwaway store. Returns ``(app, cleanup)``."""
    store_dir = tempfile.mkdtemp(prefix='galliconnect-test-')
    settings = {'LOCAL_STORE_DIR': store_dir, 'DATABASE_URL': 'sqlite://' if hosted else ''}
    settings.update(overrides)
    config = type('IsolatedTestConfig', (TestConfig,), settings)
    app = create_app(config)

    def cleanup():
        if hosted:
            from galliconnect.extensions import db
            with app.app_context():
                get_store().close()
                db.session.remove()
                db.drop_all()
        shutil.rmtree(store_dir, ignore_errors=True)

    return app, cleanup


def when(day, hour=12):
    return datetime(2024, 5, day, hour, 0, tzinfo=timezone.utc)


def customer(user_id='c1', email='asha@example.com', **extra):
    values = dict(id=user_id, email=email, name='Asha', role=UserRole.CUSTOMER, contact='98450',
                  address='7 Temple St', is_verified=True, is_email_verified=True)
    values.update(extra)
    return User(**values)


def retailer(user_id='r1', email='ravi@example.com', **extra):
    values = dict(id=user_id, email=email, name='Ravi', role=UserRole.RETAILER, contact='98451',
                  address='1 Market Rd', is_verified=False, is_email_verified=True)
    values.update(extra)
    return User(**values)


def shop(shop_id='shop-r1', owner_id='r1', name="Ravi's Store", is_open=True, **extra):
    values = dict(id=shop_id, owner_id=owner_id, name=name, type=ShopType.GROCERIES, area='Central',
                  address='1 Market Rd', is_open=is_open)
    values.update(extra)
    return Shop(**values)


def product(product_id='p1', shop_id='shop-r1', name='Rice', price=60.0, in_stock=True):
    return Product(id=product_id, shop_id=shop_id, name=name, price=price, quantity='1 kg',
                   image='', in_stock=in_stock)


def order(order_id='o1', shop_id='shop-r1', customer_id='c1', total=100.0,
          status=OrderStatus.ORDERED, created_at=None):
    return Order(
        id=order_id,
        customer_id=customer_id,
        customer_name='Asha',
        customer_address='7 Temple St',
        customer_contact='98450',
        shop_id=shop_id,
        shop_name="Ravi's Store",
        items=[OrderItem(product_id='p1', name='Rice', price=total, quantity=1)],
        status=status,
        total=total,
        platform_charge=total * 0.05,
        delivery_charge=20.0,
        grand_total=total * 1.05 + 20.0,
        delivery_slot='Morning (8 AM - 11 AM)',
        created_at=created_at or when(1),
    )
