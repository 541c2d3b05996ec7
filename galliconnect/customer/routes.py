from __future__ import annotations

from flask import (Blueprint, Response, abort, current_app, flash, redirect, render_template, request,
                   session, stream_with_context, url_for)

from ..domain import UserRole
from ..errors import CheckoutError
from ..ordering import Cart
from ..session import current_user
from ..store import get_store
from ..utils.decorators import roles_required
from ..utils.geo import parse_coordinates
from ..utils.sse import order_events
from .services import find_shop, nearby_shops, order_history, pick_slot, place_order, shop_catalog

customer_bp = Blueprint('customer', __name__)

CART_KEY = 'cart'
SELECTED_SHOP_KEY = 'selected_shop_id'


def _load_cart() -> Cart:
    return Cart.from_list(session.get(CART_KEY))


def _save_cart(cart: Cart) -> None:
    session[CART_KEY] = cart.to_list()


def _pricing() -> tuple[float, float]:
    cfg = current_app.config
    return cfg['PLATFORM_CHARGE_PERCENT'], cfg['DELIVERY_CHARGE']


@customer_bp.route('/shops')
@roles_required(UserRole.CUSTOMER)
def shops():
    origin = None
    if 'lat' in request.args or 'lng' in request.args:
        origin = parse_coordinates(request.args.get('lat'), request.args.get('lng'), 'shop list')
    rows = nearby_shops(get_store(), origin)
    return render_template(
        'customer/shops.html',
        shops=rows,
        located=origin is not None,
        cart_count=len(_load_cart()),
    )


@customer_bp.route('/shops/<shop_id>')
@roles_required(UserRole.CUSTOMER)
def catalog(shop_id):
    store = get_store()
    shop = find_shop(store, shop_id)
    if shop is None:
        abort(404)
    session[SELECTED_SHOP_KEY] = shop.id
    return render_template(
        'customer/catalog.html',
        shop=shop,
        products=shop_catalog(store, shop.id),
        cart=_load_cart(),
    )


@customer_bp.route('/shops/<shop_id>/cart/<product_id>', methods=['POST'])
@roles_required(UserRole.CUSTOMER)
def add_to_cart(shop_id, product_id):
    products = shop_catalog(get_store(), shop_id)
    product = next((row for row in products if row.id == product_id), None)
    if product is None:
        flash('That item is no longer available.', 'warning')
        return redirect(url_for('customer.catalog', shop_id=shop_id))

    cart = _load_cart()
    cart.add(product)
    _save_cart(cart)
    session[SELECTED_SHOP_KEY] = shop_id
    if request.form.get('back') == 'cart':
        return redirect(url_for('customer.cart'))
    return redirect(url_for('customer.catalog', shop_id=shop_id))


@customer_bp.route('/cart/<product_id>/remove', methods=['POST'])
@roles_required(UserRole.CUSTOMER)
def remove_from_cart(product_id):
    cart = _load_cart()
    cart.remove(product_id)
    _save_cart(cart)
    shop_id = session.get(SELECTED_SHOP_KEY)
    if request.form.get('back') == 'catalog' and shop_id:
        return redirect(url_for('customer.catalog', shop_id=shop_id))
    return redirect(url_for('customer.cart'))


@customer_bp.route('/cart')
@roles_required(UserRole.CUSTOMER)
def cart():
    items = _load_cart()
    percent, delivery = _pricing()
    shop_id = session.get(SELECTED_SHOP_KEY)
    return render_template(
        'customer/cart.html',
        cart=items,
        summary=items.summary(percent, delivery),
        slots=current_app.config['DELIVERY_SLOTS'],
        shop=find_shop(get_store(), shop_id) if shop_id else None,
        user=current_user(),
    )


@customer_bp.route('/cart/checkout', methods=['POST'])
@roles_required(UserRole.CUSTOMER)
def checkout():
    items = _load_cart()
    percent, delivery = _pricing()
    slot = pick_slot(request.form.get('slot'), current_app.config['DELIVERY_SLOTS'])
    try:
        order = place_order(get_store(), current_user(), session.get(SELECTED_SHOP_KEY), items, slot,
                            percent, delivery)
    except CheckoutError as exc:
        flash(str(exc), 'warning')
        return redirect(url_for('customer.cart'))

    _save_cart(items)
    current_app.logger.info('Order %s placed with %s', order.id, order.shop_id)
    flash('Order placed! Real-time tracking enabled.', 'success')
    return redirect(url_for('customer.orders'))


@customer_bp.route('/orders')
@roles_required(UserRole.CUSTOMER)
def orders():
    store = get_store()
    return render_template(
        'customer/orders.html',
        orders=order_history(store, current_user().id),
        live=store.supports_realtime,
    )


@customer_bp.route('/orders/stream')
@roles_required(UserRole.CUSTOMER)
def orders_stream():
    store = get_store()
    if not store.supports_realtime:
        return Response(status=204)

    def render(rows):
        ordered = sorted(rows, key=lambda order: order.created_at, reverse=True)
        return {'orders': [order.to_dict() for order in ordered]}

    events = order_events(store, render, current_app.config['STREAM_KEEPALIVE_SECONDS'],
                          customer_id=current_user().id)
    return Response(stream_with_context(events), mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache'})
