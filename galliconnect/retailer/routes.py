from __future__ import annotations

from flask import (Blueprint, Response, current_app, flash, redirect, render_template, request,
                   stream_with_context, url_for)

from ..domain import UserRole
from ..errors import InvalidProduct, TransitionRejected
from ..ordering import ACTION_LABELS, available_actions
from ..session import current_user
from ..store import compute_earnings, get_store
from ..utils.decorators import roles_required
from ..utils.sse import order_events
from .services import (add_product, advance_order, find_owned_shop, retailer_stats, set_stock,
                       shop_orders, toggle_shop)

retailer_bp = Blueprint('retailer', __name__, url_prefix='/retailer')

TABS = ('orders', 'catalog', 'earnings')


def _owned_shop():
    return find_owned_shop(get_store(), current_user().id)


def _no_shop():
    flash('No shop is registered for this account.', 'warning')
    return render_template('retailer/no_shop.html'), 404


@retailer_bp.route('/')
@roles_required(UserRole.RETAILER)
def dashboard():
    store = get_store()
    shop = _owned_shop()
    if shop is None:
        return _no_shop()

    tab = request.args.get('tab', 'orders')
    if tab not in TABS:
        tab = 'orders'

    all_orders = store.get_orders()
    orders = shop_orders(all_orders, shop.id)
    earnings = compute_earnings(all_orders, shop.id)
    return render_template(
        'retailer/dashboard.html',
        shop=shop,
        tab=tab,
        tabs=TABS,
        orders=orders,
        earnings=earnings,
        stats=retailer_stats(orders, earnings),
        products=store.get_products(shop.id),
        available_actions=available_actions,
        action_labels=ACTION_LABELS,
        live=store.supports_realtime,
    )


@retailer_bp.route('/shop/toggle', methods=['POST'])
@roles_required(UserRole.RETAILER)
def toggle():
    shop = _owned_shop()
    if shop is None:
        return _no_shop()
    updated = toggle_shop(get_store(), shop)
    if updated is not None:
        flash('Shop is now online.' if updated.is_open else 'Shop is now offline.', 'success')
    return redirect(url_for('retailer.dashboard', tab=request.form.get('tab', 'orders')))


@retailer_bp.route('/products', methods=['POST'])
@roles_required(UserRole.RETAILER)
def products_add():
    shop = _owned_shop()
    if shop is None:
        return _no_shop()
    try:
        product = add_product(get_store(), shop, request.form.get('name'), request.form.get('price'),
                              request.form.get('quantity'))
    except InvalidProduct as exc:
        flash(str(exc), 'warning')
    else:
        flash(f'{product.name} added.', 'success')
    return redirect(url_for('retailer.dashboard', tab='catalog'))


@retailer_bp.route('/products/<product_id>/stock', methods=['POST'])
@roles_required(UserRole.RETAILER)
def products_stock(product_id):
    shop = _owned_shop()
    if shop is None:
        return _no_shop()
    in_stock = request.form.get('in_stock') == '1'
    try:
        set_stock(get_store(), shop, product_id, in_stock)
    except InvalidProduct as exc:
        flash(str(exc), 'warning')
    return redirect(url_for('retailer.dashboard', tab='catalog'))


@retailer_bp.route('/orders/<order_id>/<action>', methods=['POST'])
@roles_required(UserRole.RETAILER)
def orders_advance(order_id, action):
    shop = _owned_shop()
    if shop is None:
        return _no_shop()
    try:
        status = advance_order(get_store(), shop, order_id, action)
    except TransitionRejected as exc:
        flash(str(exc), 'warning')
    else:
        current_app.logger.info('Order %s moved to %s', order_id, status.value)
    return redirect(url_for('retailer.dashboard', tab='orders'))


@retailer_bp.route('/orders/stream')
@roles_required(UserRole.RETAILER)
def orders_stream():
    store = get_store()
    shop = _owned_shop()
    if shop is None:
        return _no_shop()
    if not store.supports_realtime:
        return Response(status=204)

    def render(rows):
        return {
            'orders': [order.to_dict() for order in shop_orders(rows, shop.id)],
            'earnings': [stat.to_dict() for stat in compute_earnings(rows, shop.id)],
        }

    events = order_events(store, render, current_app.config['STREAM_KEEPALIVE_SECONDS'], shop_id=shop.id)
    return Response(stream_with_context(events), mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache'})
