import unittest

from galliconnect.admin.services import summarize_platform
from galliconnect.domain import OrderStatus

from helpers import customer, order, retailer, shop


class SummaryTests(unittest.TestCase):
    def setUp(self):
        self.users = [retailer('r1'), retailer('r2', email='b@example.com'), customer()]
        self.shops = [shop(f'shop-{i}', owner_id=f'o{i}', name=f"Owner{i}'s Store") for i in range(7)]
        self.orders = [
            order('a', shop_id='shop-6', total=500.0, status=OrderStatus.DELIVERED),
            order('b', shop_id='shop-0', total=100.0, status=OrderStatus.DELIVERED),
            order('c', shop_id='shop-0', total=900.0, status=OrderStatus.ACCEPTED),
            order('d', shop_id='shop-1', total=50.0, status=OrderStatus.ORDERED),
        ]

    def test_totals(self):
        summary = summarize_platform(self.users, self.shops, self.orders, 0.05)

        self.assertEqual(summary.total_retailers, 2)
        self.assertEqual(summary.total_orders, 4)
        self.assertEqual(summary.gmv, 600.0)
        self.assertAlmostEqual(summary.commission, 30.0)
        self.assertEqual([user.id for user in summary.retailers], ['r1', 'r2'])

    def test_breakdown_keeps_insertion_order_by_default(self):
        summary = summarize_platform(self.users, self.shops, self.orders, 0.05)

        self.assertEqual([row.name for row in summary.shops], ['Owner0', 'Owner1', 'Owner2', 'Owner3', 'Owner4'])
        self.assertEqual(summary.shops[0].revenue, 100.0)
        self.assertAlmostEqual(summary.shops[0].commission, 5.0)

    def test_ranked_breakdown(self):
        summary = summarize_platform(self.users, self.shops, self.orders, 0.05, limit=2, rank_by_revenue=True)
        self.assertEqual([row.name for row in summary.shops], ['Owner6', 'Owner0'])

    def test_empty_platform(self):
        summary = summarize_platform([], [], [], 0.05)
        self.assertEqual((summary.total_retailers, summary.total_orders, summary.gmv), (0, 0, 0))
        self.assertEqual(summary.shops, [])


if __name__ == '__main__':
    unittest.main()
