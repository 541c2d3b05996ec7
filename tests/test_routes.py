import json
import unittest
from unittest import mock

from galliconnect.auth.routes import PENDING_KEY
from galliconnect.domain import OrderStatus, UserRole
from galliconnect.store import get_store

from helpers import customer, make_app, order, product, retailer, shop

CODE = '483920'


class WebTestCase(unittest.TestCase):
    hosted = False

    def setUp(self):
        self.app, cleanup = make_app(hosted=self.hosted)
        self.addCleanup(cleanup)
        self.client = self.app.test_client()
        patcher = mock.patch('galliconnect.auth.routes.generate_otp', return_value=CODE)
        patcher.start()
        self.addCleanup(patcher.stop)

    def seed(self, *records):
        with self.app.app_context():
            store = get_store()
            for record in records:
                {
                    'User': store.add_user,
                    'Shop': store.add_shop,
                    'Product': store.add_product,
                    'Order': store.add_order,
                }[type(record).__name__](record)

    def login(self, email, role, password=''):
        return self.client.post('/login', data={'email': email, 'password': password, 'role': role.value})

    def register_retailer(self):
        return self.client.post('/register?role=RETAILER', data={
            'name': 'Ravi',
            'email': 'ravi@example.com',
            'password': 'pw',
            'contact': '98451',
            'address': '1 Market Rd',
            'shop_type': 'Groceries',
            'area': 'Central',
            'latitude': '12.97',
            'longitude': '77.59',
        })


class AuthRouteTests(WebTestCase):
    def test_anonymous_index_goes_to_login(self):
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 302)
        self.assertIn('/login', resp.headers['Location'])

    def test_register_verify_and_land_on_dashboard(self):
        resp = self.register_retailer()
        self.assertEqual(resp.status_code, 302)
        self.assertIn('/verify', resp.headers['Location'])

        page = self.client.get('/verify')
        self.assertIn(b'ravi@example.com', page.data)
        self.assertIn(CODE.encode(), page.data)  # dev notice flashed without mail credentials

        wrong = self.client.post('/verify', data={'otp': '000000'})
        self.assertEqual(wrong.status_code, 200)
        self.assertIn(b'Invalid code.', wrong.data)

        resp = self.client.post('/verify', data={'otp': CODE})
        self.assertEqual(resp.status_code, 302)
        resp = self.client.get('/')
        self.assertIn('/retailer/', resp.headers['Location'])

        with self.app.app_context():
            users = get_store().get_users()
        self.assertTrue(users[0].is_email_verified)

    def test_session_holds_only_the_verification_id(self):
        self.register_retailer()
        with self.client.session_transaction() as sess:
            pending_id = sess[PENDING_KEY]
            held = json.dumps(dict(sess), default=str)
        with self.app.app_context():
            stored = get_store().get_pending_verification(pending_id)
        self.assertNotIn(stored['code_hash'], held)
        self.assertNotIn('attempts', held)
        self.assertEqual(stored['user']['email'], 'ravi@example.com')
        self.assertEqual(stored['attempts'], 0)

    def test_replayed_session_cookie_cannot_reset_attempts(self):
        self.register_retailer()
        cookie_name = self.app.config['SESSION_COOKIE_NAME']
        issued = self.client.get_cookie(cookie_name).value
        limit = self.app.config['OTP_MAX_ATTEMPTS']

        for _ in range(limit - 1):
            self.client.set_cookie(cookie_name, issued)
            resp = self.client.post('/verify', data={'otp': '000000'})
            self.assertIn(b'Invalid code.', resp.data)

        self.client.set_cookie(cookie_name, issued)
        resp = self.client.post('/verify', data={'otp': '000000'}, follow_redirects=True)
        self.assertIn(b'Too many wrong codes.', resp.data)

        # Even the right code is refused once the verification is used up.
        self.client.set_cookie(cookie_name, issued)
        resp = self.client.post('/verify', data={'otp': CODE})
        self.assertIn('/login', resp.headers['Location'])
        self.assertIn('/login', self.client.get('/').headers['Location'])
        with self.app.app_context():
            self.assertFalse(get_store().get_users()[0].is_email_verified)

    def test_cancel_discards_the_pending_code(self):
        self.register_retailer()
        with self.client.session_transaction() as sess:
            pending_id = sess[PENDING_KEY]
        self.client.post('/verify/cancel')
        with self.app.app_context():
            self.assertIsNone(get_store().get_pending_verification(pending_id))
        self.assertIn('/login', self.client.get('/verify').headers['Location'])

    def test_admin_cannot_register(self):
        resp = self.client.get('/register?role=ADMIN')
        self.assertEqual(resp.status_code, 302)
        self.assertIn('role=ADMIN', resp.headers['Location'])

    def test_admin_sign_in(self):
        resp = self.login('admin@galliconnect.local', UserRole.ADMIN, 'admin123')
        self.assertEqual(resp.status_code, 302)
        page = self.client.get('/admin/')
        self.assertEqual(page.status_code, 200)
        self.assertIn(b'System Admin', page.data)
        self.assertIn(b'Review', page.data)

    def test_bad_login_re_renders_with_message(self):
        resp = self.login('ghost@example.com', UserRole.CUSTOMER)
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'No account found with these credentials.', resp.data)

    def test_logout_clears_session(self):
        self.seed(customer())
        self.login('asha@example.com', UserRole.CUSTOMER)
        self.assertEqual(self.client.get('/shops').status_code, 200)

        self.client.get('/logout')

        resp = self.client.get('/shops')
        self.assertEqual(resp.status_code, 302)
        self.assertIn('/login', resp.headers['Location'])

    def test_wrong_role_is_forbidden(self):
        self.seed(customer())
        self.login('asha@example.com', UserRole.CUSTOMER)
        self.assertEqual(self.client.get('/retailer/').status_code, 403)
        self.assertEqual(self.client.get('/admin/').status_code, 403)


class CustomerRouteTests(WebTestCase):
    def setUp(self):
        super().setUp()
        self.seed(
            retailer(),
            customer(),
            shop('shop-r1', is_open=True, latitude=12.97, longitude=77.59),
            shop('shop-r2', owner_id='r2', name='Closed Mart', is_open=False),
            product('p1', name='Basmati Rice', price=100.0),
            product('p2', name='Hidden Item', in_stock=False),
        )
        self.login('asha@example.com', UserRole.CUSTOMER)

    def test_shop_list_shows_open_shops_with_distance(self):
        page = self.client.get('/shops?lat=12.975&lng=77.59')
        self.assertIn(b'Ravi', page.data)
        self.assertNotIn(b'Closed Mart', page.data)
        self.assertIn(b'556m away', page.data)

    def test_catalog_hides_out_of_stock(self):
        page = self.client.get('/shops/shop-r1')
        self.assertIn(b'Basmati Rice', page.data)
        self.assertNotIn(b'Hidden Item', page.data)

    def test_unknown_shop_is_404(self):
        self.assertEqual(self.client.get('/shops/nope').status_code, 404)

    def test_checkout_places_order_and_clears_cart(self):
        self.client.get('/shops/shop-r1')
        self.client.post('/shops/shop-r1/cart/p1')
        self.client.post('/shops/shop-r1/cart/p1')

        cart = self.client.get('/cart')
        self.assertIn('₹230.00'.encode(), cart.data)  # 200 + 5% + 20 delivery

        resp = self.client.post('/cart/checkout', data={'slot': 'Evening (5 PM - 8 PM)'}, follow_redirects=True)
        self.assertIn(b'Order placed! Real-time tracking enabled.', resp.data)

        with self.app.app_context():
            placed = get_store().get_orders()
        self.assertEqual(len(placed), 1)
        self.assertEqual(placed[0].status, OrderStatus.ORDERED)
        self.assertEqual(placed[0].total, 200.0)
        self.assertAlmostEqual(placed[0].grand_total, 230.0)
        self.assertEqual(placed[0].delivery_slot, 'Evening (5 PM - 8 PM)')
        self.assertEqual(placed[0].customer_address, '7 Temple St')
        with self.client.session_transaction() as sess:
            self.assertEqual(sess['cart'], [])

    def test_empty_cart_checkout_is_refused(self):
        self.client.get('/shops/shop-r1')
        resp = self.client.post('/cart/checkout', follow_redirects=True)
        self.assertIn(b'Your cart is empty.', resp.data)
        with self.app.app_context():
            self.assertEqual(get_store().get_orders(), [])

    def test_unknown_slot_falls_back_to_first(self):
        self.client.get('/shops/shop-r1')
        self.client.post('/shops/shop-r1/cart/p1')
        self.client.post('/cart/checkout', data={'slot': 'Midnight'})
        with self.app.app_context():
            self.assertEqual(get_store().get_orders()[0].delivery_slot, 'Morning (8 AM - 11 AM)')

    def test_stream_is_empty_in_local_mode(self):
        self.assertEqual(self.client.get('/orders/stream').status_code, 204)


class RetailerRouteTests(WebTestCase):
    def setUp(self):
        super().setUp()
        self.seed(retailer(), shop(is_open=False), order('o1'))
        self.login('ravi@example.com', UserRole.RETAILER)

    def test_ordered_offers_confirm_only(self):
        page = self.client.get('/retailer/')
        self.assertIn(b'Confirm Order', page.data)
        self.assertNotIn(b'Dispatch Done', page.data)

    def test_confirm_then_dispatch(self):
        self.client.post('/retailer/orders/o1/confirm')
        page = self.client.get('/retailer/')
        self.assertIn(b'Dispatch Done', page.data)
        self.assertNotIn(b'Confirm Order', page.data)

        self.client.post('/retailer/orders/o1/dispatch')
        with self.app.app_context():
            self.assertEqual(get_store().get_orders()[0].status, OrderStatus.DELIVERED)
        earnings = self.client.get('/retailer/?tab=earnings')
        self.assertIn(b'2024-05-01', earnings.data)

    def test_skipping_confirm_is_flashed(self):
        resp = self.client.post('/retailer/orders/o1/dispatch', follow_redirects=True)
        self.assertIn(b'Cannot dispatch an order that is Ordered.', resp.data)

    def test_toggle_and_add_product(self):
        self.client.post('/retailer/shop/toggle')
        self.client.post('/retailer/products', data={'name': 'Milk', 'price': '30', 'quantity': '500 ml'})
        with self.app.app_context():
            store = get_store()
            self.assertTrue(store.get_shops()[0].is_open)
            added = store.get_products('shop-r1')
        self.assertEqual([p.name for p in added], ['Milk'])

        self.client.post(f'/retailer/products/{added[0].id}/stock', data={'in_stock': '0'})
        with self.app.app_context():
            self.assertFalse(get_store().get_products('shop-r1')[0].in_stock)

    def test_retailer_without_shop(self):
        self.client.get('/logout')
        self.seed(retailer('r9', email='noshop@example.com'))
        self.login('noshop@example.com', UserRole.RETAILER)
        self.assertEqual(self.client.get('/retailer/').status_code, 404)


class HostedAuthRouteTests(AuthRouteTests):
    hosted = True


class HostedRouteTests(WebTestCase):
    hosted = True

    def test_retailer_stream_sends_current_orders(self):
        self.seed(retailer(), shop(), order('o1', status=OrderStatus.DELIVERED))
        self.login('ravi@example.com', UserRole.RETAILER)

        resp = self.client.get('/retailer/orders/stream')
        try:
            self.assertEqual(resp.mimetype, 'text/event-stream')
            first = next(iter(resp.response))
        finally:
            resp.close()

        if isinstance(first, bytes):
            first = first.decode('utf-8')
        self.assertTrue(first.startswith('event: orders\n'))
        payload = json.loads(first.split('data: ', 1)[1])
        self.assertEqual([row['id'] for row in payload['orders']], ['o1'])
        self.assertEqual(payload['earnings'], [{'date': '2024-05-01', 'amount': 100.0}])

    def test_checkout_in_hosted_mode(self):
        self.seed(customer(), shop(), product('p1', price=100.0))
        self.login('asha@example.com', UserRole.CUSTOMER)
        self.client.get('/shops/shop-r1')
        self.client.post('/shops/shop-r1/cart/p1')
        self.client.post('/cart/checkout')

        with self.app.app_context():
            placed = get_store().get_orders()
        self.assertEqual(len(placed), 1)
        self.assertEqual(placed[0].items[0].name, 'Rice')


if __name__ == '__main__':
    unittest.main()
