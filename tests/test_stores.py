import shutil
import tempfile
import unittest

from galliconnect.config import TestConfig
from galliconnect.domain import OrderStatus
from galliconnect.store import LocalStore, OrderFeed, Subscription, get_store, hosted_configured

from helpers import customer, make_app, order, product, retailer, shop, when


class StoreContract:
    """Behaviour both gateways share; subclasses provide ``self.store``."""

    def test_users_round_trip_and_verify(self):
        self.store.add_user(retailer(is_email_verified=False))
        self.store.add_user(customer())

        self.store.verify_email('r1')

        users = {user.id: user for user in self.store.get_users()}
        self.assertEqual(set(users), {'r1', 'c1'})
        self.assertTrue(users['r1'].is_email_verified)
        self.assertEqual(users['c1'].address, '7 Temple St')

    def test_verify_unknown_user_changes_nothing(self):
        self.store.add_user(customer(is_email_verified=False))
        self.store.verify_email('nobody')
        self.assertFalse(self.store.get_users()[0].is_email_verified)

    def test_adding_same_id_twice_keeps_one_row(self):
        self.store.add_user(customer())
        self.store.add_user(customer(name='Asha K'))
        users = self.store.get_users()
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].name, 'Asha K')

    def test_toggle_shop_flips_open_flag(self):
        self.store.add_shop(shop(is_open=False, latitude=12.9, longitude=77.6))

        self.store.toggle_shop_status('shop-r1')
        self.assertTrue(self.store.get_shops()[0].is_open)
        self.store.toggle_shop_status('shop-r1')
        stored = self.store.get_shops()[0]
        self.assertFalse(stored.is_open)
        self.assertEqual((stored.latitude, stored.longitude), (12.9, 77.6))

    def test_repeated_reads_agree(self):
        self.store.add_shop(shop('shop-r1'))
        self.store.add_shop(shop('shop-r2', owner_id='r2'))
        self.assertEqual(self.store.get_shops(), self.store.get_shops())

    def test_products_filtered_by_shop(self):
        self.store.add_product(product('p1', shop_id='shop-r1'))
        self.store.add_product(product('p2', shop_id='shop-r2'))

        self.assertEqual({p.id for p in self.store.get_products()}, {'p1', 'p2'})
        self.assertEqual([p.id for p in self.store.get_products('shop-r2')], ['p2'])

    def test_stock_flag_update(self):
        self.store.add_product(product('p1'))
        self.store.update_product_stock('p1', False)
        self.assertFalse(self.store.get_products('shop-r1')[0].in_stock)

    def test_orders_keep_items_and_timestamps(self):
        placed = order('o1', created_at=when(3, hour=9))
        self.store.add_order(placed)

        stored = self.store.get_orders()[0]
        self.assertEqual(stored.items[0].name, 'Rice')
        self.assertEqual(stored.items[0].quantity, 1)
        self.assertEqual(stored.created_at, placed.created_at)
        self.assertEqual(stored.status, OrderStatus.ORDERED)

    def test_status_update(self):
        self.store.add_order(order('o1'))
        self.store.update_order_status('o1', OrderStatus.ACCEPTED)
        self.assertEqual(self.store.get_orders()[0].status, OrderStatus.ACCEPTED)

    def test_earnings_count_delivered_subtotals_per_day(self):
        self.store.add_order(order('o1', total=100.0, status=OrderStatus.DELIVERED, created_at=when(1, 9)))
        self.store.add_order(order('o2', total=250.0, status=OrderStatus.DELIVERED, created_at=when(1, 18)))
        self.store.add_order(order('o3', total=80.0, status=OrderStatus.ACCEPTED, created_at=when(1, 19)))
        self.store.add_order(order('o4', total=40.0, status=OrderStatus.DELIVERED, created_at=when(2)))
        self.store.add_order(order('o5', shop_id='other', total=999.0, status=OrderStatus.DELIVERED))

        earnings = self.store.get_earnings('shop-r1')

        self.assertEqual([(e.date, e.amount) for e in earnings], [('2024-05-01', 350.0), ('2024-05-02', 40.0)])

    def test_pending_verification_lifecycle(self):
        row = {'id': 'pv1', 'user': customer().public_dict(), 'code_hash': 'not-a-code',
               'issued_at': when(1).isoformat(), 'attempts': 0}
        self.store.add_pending_verification(row)
        self.assertEqual(self.store.get_pending_verification('pv1'), row)

        self.assertEqual(self.store.record_failed_attempt('pv1'), 1)
        self.assertEqual(self.store.record_failed_attempt('pv1'), 2)
        self.assertEqual(self.store.get_pending_verification('pv1')['attempts'], 2)

        self.store.delete_pending_verification('pv1')
        self.assertIsNone(self.store.get_pending_verification('pv1'))
        self.assertIsNone(self.store.record_failed_attempt('pv1'))
        self.store.delete_pending_verification('pv1')


class LocalStoreTests(StoreContract, unittest.TestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp(prefix='galliconnect-local-')
        self.store = LocalStore(self.directory)

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def test_tables_live_under_fixed_keys(self):
        self.store.add_user(customer())
        self.store.add_order(order())
        names = sorted(path.name for path in self.store.directory.glob('*.json'))
        self.assertEqual(names, ['g_orders.json', 'g_users.json'])

    def test_data_survives_a_new_gateway(self):
        self.store.add_shop(shop())
        self.assertEqual(LocalStore(self.directory).get_shops()[0].name, "Ravi's Store")

    def test_subscription_never_fires(self):
        calls = []
        subscription = self.store.subscribe_orders(calls.append, shop_id='shop-r1')
        self.store.add_order(order())

        self.assertEqual(calls, [])
        self.assertFalse(subscription.active)
        self.assertFalse(self.store.supports_realtime)
        subscription.cancel()


class HostedStoreTests(StoreContract, unittest.TestCase):
    def setUp(self):
        self.app, self.cleanup = make_app(hosted=True)
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.store = get_store()

    def tearDown(self):
        self.ctx.pop()
        self.cleanup()

    def test_mode(self):
        self.assertEqual(self.store.mode, 'hosted')
        self.assertTrue(self.store.supports_realtime)

    def test_subscriber_gets_snapshot_then_updates(self):
        self.store.add_order(order('o1', shop_id='shop-r1'))
        self.store.add_order(order('o2', shop_id='shop-r2'))
        seen = []

        subscription = self.store.subscribe_orders(lambda rows: seen.append([o.id for o in rows]),
                                                   shop_id='shop-r1')
        self.assertEqual(seen, [['o1']])

        self.store.update_order_status('o1', OrderStatus.ACCEPTED)
        self.store.add_order(order('o3', shop_id='shop-r2'))
        self.assertEqual(len(seen), 3)
        self.assertEqual(seen[-1], ['o1'])

        subscription.cancel()
        subscription.cancel()
        self.store.add_order(order('o4', shop_id='shop-r1'))
        self.assertEqual(len(seen), 3)

    def test_customer_filter(self):
        self.store.add_order(order('o1', customer_id='c1'))
        self.store.add_order(order('o2', customer_id='c2'))
        seen = []
        with self.store.subscribe_orders(lambda rows: seen.append(rows), customer_id='c2'):
            pass
        self.assertEqual([o.id for o in seen[0]], ['o2'])


class OrderFeedTests(unittest.TestCase):
    def test_failing_listener_does_not_block_others(self):
        feed = OrderFeed()
        calls = []

        def broken():
            raise RuntimeError('boom')

        feed.add(broken)
        feed.add(lambda: calls.append(1))
        with self.assertLogs('galliconnect.store.base', level='ERROR'):
            feed.publish()

        self.assertEqual(calls, [1])
        self.assertEqual(len(feed), 2)

    def test_cancel_removes_listener(self):
        feed = OrderFeed()
        subscription = feed.add(lambda: None)
        self.assertTrue(subscription.active)
        subscription.cancel()
        self.assertEqual(len(feed), 0)
        self.assertIsInstance(subscription, Subscription)


class ModeSelectionTests(unittest.TestCase):
    def test_blank_or_placeholder_url_selects_local(self):
        self.assertFalse(hosted_configured({'DATABASE_URL': ''}))
        self.assertFalse(hosted_configured({'DATABASE_URL': '  '}))
        self.assertFalse(hosted_configured({'DATABASE_URL': 'changeme'}))
        self.assertTrue(hosted_configured({'DATABASE_URL': 'sqlite://'}))

    def test_local_app_installs_local_store(self):
        app, cleanup = make_app()
        self.addCleanup(cleanup)
        with app.app_context():
            self.assertEqual(get_store().mode, 'local')
        self.assertEqual(TestConfig.DATABASE_URL, '')


if __name__ == '__main__':
    unittest.main()
