from __future__ import annotations

import unittest
from decimal import Decimal

from myzo.services.pricing_service import compute_totals


class PricingTotalsTestCase(unittest.TestCase):
    def test_flat_shipping_below_threshold(self):
        totals = compute_totals(Decimal("480.00"))
        self.assertEqual(totals["shipping"], Decimal("25.00"))
        self.assertEqual(totals["tax"], Decimal("38.40"))
        self.assertEqual(totals["total"], Decimal("543.40"))

    def test_threshold_itself_still_pays_shipping(self):
        self.assertEqual(compute_totals("500.00")["shipping"], Decimal("25.00"))

    def test_free_shipping_above_threshold(self):
        totals = compute_totals("500.01")
        self.assertEqual(totals["shipping"], Decimal("0.00"))
        self.assertEqual(totals["total"], Decimal("540.01"))


if __name__ == "__main__":
    unittest.main()
