from __future__ import annotations

from flask import Flask, current_app

from ..config import DATABASE_URL_PLACEHOLDERS
from .base import OrderFeed, Store, Subscription, compute_earnings, filter_orders
from .changes import ChangeMode, change_mode_for
from .hosted import HostedStore
from .local import LocalStore


EXTENSION_KEY = 'galliconnect.store'


def hosted_configured(config) -> bool:
    url = (config.get('DATABASE_URL') or '').strip()
    return url not in DATABASE_URL_PLACEHOLDERS


def init_store(app: Flask) -> Store:
    """Pick the persistence mode once for the lifetime of the app."""
    if hosted_configured(app.config):
        hosted = HostedStore()
        hosted.bind(app)
        store: Store = hosted
    else:
        store = LocalStore(app.config['LOCAL_STORE_DIR'])
    app.extensions[EXTENSION_KEY] = store
    app.logger.info('Persistence mode: %s', store.mode)
    return store


def get_store() -> Store:
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    'ChangeMode',
    'HostedStore',
    'LocalStore',
    'OrderFeed',
    'Store',
    'Subscription',
    'change_mode_for',
    'compute_earnings',
    'filter_orders',
    'get_store',
    'hosted_configured',
    'init_store',
]
