import os
import sys
import unittest

# Add project root to Python path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from inventory.models import Record
from inventory.threshold import (
    classify, deficit, is_low_stock, is_out_of_stock, render_status_report, stock_status, summarize,
)


def make(product_id, quantity, threshold=5, name=None):
    return Record.build(
        id=product_id, name=name or f"Product {product_id}", price="1.00",
        quantity=quantity, threshold_limit=threshold,
    )


class TestClassification(unittest.TestCase):

    def test_quantity_equal_to_threshold_is_low_stock(self):
        record = make(1, quantity=5, threshold=5)
        self.assertTrue(is_low_stock(record))
        self.assertEqual(classify([record]), [record])

    def test_quantity_above_threshold_is_not_low_stock(self):
        record = make(1, quantity=6, threshold=5)
        self.assertFalse(is_low_stock(record))
        self.assertEqual(classify([record]), [])

    def test_out_of_stock_is_a_subset_of_low_stock(self):
        record = make(1, quantity=0, threshold=1)
        self.assertTrue(is_out_of_stock(record))
        self.assertTrue(is_low_stock(record))
        self.assertFalse(is_out_of_stock(make(2, quantity=1)))

    def test_classify_keeps_input_order(self):
        records = [make(3, 1), make(1, 10), make(2, 0), make(4, 5)]
        self.assertEqual([r.id for r in classify(records)], [3, 2, 4])

    def test_classify_accepts_any_iterable(self):
        self.assertEqual(len(classify(make(i, 0) for i in range(1, 4))), 3)

    def test_deficit(self):
        self.assertEqual(deficit(make(1, quantity=2, threshold=5)), 4)
        self.assertEqual(deficit(make(1, quantity=5, threshold=5)), 1)
        self.assertEqual(deficit(make(1, quantity=0, threshold=5)), 6)
        self.assertEqual(deficit(make(1, quantity=9, threshold=5)), 0)

    def test_stock_status(self):
        self.assertEqual(stock_status(make(1, 0)), "OUT OF STOCK")
        self.assertEqual(stock_status(make(1, 3)), "LOW STOCK")
        self.assertEqual(stock_status(make(1, 30)), "OK")


class TestStatusReport(unittest.TestCase):

    def test_summarize(self):
        summary = summarize([make(1, 0), make(2, 3), make(3, 50), make(4, 60)])

        self.assertEqual(summary.total, 4)
        self.assertEqual(summary.low_stock, 2)
        self.assertEqual(summary.out_of_stock, 1)
        self.assertEqual(summary.healthy, 2)
        self.assertEqual(summary.percent(summary.low_stock), 50.0)

    def test_summarize_empty_inventory(self):
        summary = summarize([])
        self.assertEqual(summary.total, 0)
        self.assertEqual(summary.percent(summary.healthy), 0.0)

    def test_report_lists_products_requiring_attention(self):
        report = render_status_report([make(1, 2, name="Widget"), make(2, 40, name="Gadget")], monitoring_active=True)

        self.assertIn("Total Products: 2", report)
        self.assertIn("Low Stock: 1 (50.0%)", report)
        self.assertIn("Monitoring Status: ACTIVE", report)
        self.assertIn("Widget (ID: 1) | Qty: 2/5 | LOW STOCK", report)
        self.assertNotIn("Gadget (ID: 2)", report)

    def test_report_when_everything_is_stocked(self):
        report = render_status_report([make(1, 40)])
        self.assertIn("All products are sufficiently stocked!", report)
        self.assertIn("Monitoring Status: INACTIVE", report)


if __name__ == '__main__':
    unittest.main()
