import pytest

from price_tracker.catalog.formatting import format_date, format_price, location_label
from price_tracker.catalog.models import Location


@pytest.mark.parametrize(
    "price, currency, expected",
    [
        (12.5, "UAH", "12.50 ₴"),
        (12.5, "pln", "12.50 zł"),
        (12.5, "USD", "$12.50"),
        (3, "EUR", "EUR3.00"),
        (None, "USD", "Price not available"),
    ],
)
def test_format_price(price, currency, expected):
    assert format_price(price, currency) == expected


def test_format_date():
    assert format_date("2025-01-05T10:00:00.000Z") == "Jan 5, 2025"
    assert format_date("yesterday") == "yesterday"
    assert format_date(None) == ""


def test_location_label():
    assert location_label(None) == "Unknown location"
    assert location_label(Location(name="Silpo", address="Kyiv")) == "Silpo"
    assert location_label(Location(address="50.4,30.5")) == "50.4,30.5"
