"""Tests for checkout totals."""

from decimal import Decimal

from conftest import line

from checkout_service.pricing import compute_totals

THRESHOLD = Decimal("100.00")
FLAT = Decimal("10.00")


def test_shipping_charged_below_threshold():
    """Scenario A: 2 x 10.00 pays the flat fee."""
    totals = compute_totals([line(1, "USB-C Charger", "10.00", 2)], THRESHOLD, FLAT)
    assert totals.subtotal == Decimal("20.00")
    assert totals.shipping == Decimal("10.00")
    assert totals.total == Decimal("30.00")


def test_shipping_waived_above_threshold():
    """Scenario C: 120.00 ships free."""
    totals = compute_totals([line(3, "27in Monitor", "120.00", 1)], THRESHOLD, FLAT)
    assert totals.shipping == Decimal("0.00")
    assert totals.total == Decimal("120.00")


def test_subtotal_exactly_at_threshold_still_pays_shipping():
    totals = compute_totals([line(1, "USB-C Charger", "50.00", 2)], THRESHOLD, FLAT)
    assert totals.subtotal == THRESHOLD
    assert totals.total == Decimal("110.00")


def test_defaults_come_from_settings():
    totals = compute_totals([line(2, "Wireless Headset", "45.50", 1)])
    assert totals.total == totals.subtotal + totals.shipping
    assert totals.shipping == Decimal("10.00")
