"""Tests for stock re-validation."""

from conftest import line, product

from checkout_service.validator import build_snapshot, validate


def test_valid_when_every_line_fits_stock(catalog):
    """Scenario A: two chargers against a stock of five."""
    result = validate([line(1, "USB-C Charger", "10.00", 2)], build_snapshot(catalog))
    assert result.valid
    assert result.faults == []


def test_quantity_equal_to_stock_is_valid(catalog):
    result = validate([line(2, "Wireless Headset", "45.50", 3)], build_snapshot(catalog))
    assert result.valid


def test_insufficient_stock_cites_available_and_requested():
    """Scenario B: two chargers against a stock of one."""
    snapshot = build_snapshot([product(1, "USB-C Charger", "10.00", 1)])
    result = validate([line(1, "USB-C Charger", "10.00", 2)], snapshot)
    assert not result.valid
    assert len(result.faults) == 1
    assert "available: 1, in cart: 2" in result.faults[0]
    assert "USB-C Charger" in result.faults[0]


def test_missing_product_is_reported_regardless_of_other_lines(catalog):
    cart = [line(1, "USB-C Charger", "10.00", 1), line(99, "Discontinued Cable", "3.00", 1)]
    result = validate(cart, build_snapshot(catalog))
    assert not result.valid
    assert result.faults == ['The product "Discontinued Cable" is no longer available.']


def test_all_faults_collected_in_cart_order(catalog):
    cart = [
        line(3, "27in Monitor", "120.00", 2),
        line(1, "USB-C Charger", "10.00", 1),
        line(42, "Old Tablet", "80.00", 1),
        line(2, "Wireless Headset", "45.50", 4),
    ]
    result = validate(cart, build_snapshot(catalog))
    assert len(result.faults) == 3
    assert "27in Monitor" in result.faults[0]
    assert "Old Tablet" in result.faults[1]
    assert "Wireless Headset" in result.faults[2]


def test_validate_is_deterministic(catalog):
    cart = [line(3, "27in Monitor", "120.00", 5), line(77, "Ghost", "1.00", 1)]
    snapshot = build_snapshot(catalog)
    assert validate(cart, snapshot) == validate(cart, snapshot)


def test_build_snapshot_indexes_by_product_id(catalog):
    snapshot = build_snapshot(catalog)
    assert set(snapshot) == {1, 2, 3}
    assert snapshot[2].name == "Wireless Headset"
