"""Property-based tests for price conversion and base price derivation."""

from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from catalog_sync.schemas.catalog import CatalogCabinPrice
from catalog_sync.services.tour_upserter import derive_base_price_cents, to_cents

# Strategies for generating test data
cents_values = st.integers(min_value=0, max_value=10_000_000)
prices = st.decimals(min_value=0, max_value=100_000, places=2, allow_nan=False, allow_infinity=False)


def _cabin(price):
    return CatalogCabinPrice.model_validate({"CabinCategory": "Standard", "Price": float(price)})


@given(cents=cents_values)
def test_whole_cents_convert_exactly(cents):
    """Amounts with two decimals map to exactly their minor units."""
    amount = float(Decimal(cents) / 100)
    assert to_cents(amount) == cents


@given(amount=st.floats(min_value=0, max_value=1_000_000, allow_nan=False, allow_infinity=False))
def test_to_cents_stays_within_half_a_cent(amount):
    cents = to_cents(amount)
    assert cents >= 0
    assert abs(Decimal(cents) - Decimal(str(amount)) * 100) <= Decimal("0.5")


@given(amounts=st.lists(prices, min_size=1, max_size=12))
def test_base_price_is_lowest_cabin(amounts):
    cabins = [_cabin(a) for a in amounts]

    base = derive_base_price_cents(cabins)

    assert base == min(to_cents(float(a)) for a in amounts)
    assert all(base <= to_cents(c.price) for c in cabins)


@given(amounts=st.lists(prices, min_size=1, max_size=12))
def test_base_price_ignores_cabin_order(amounts):
    cabins = [_cabin(a) for a in amounts]
    assert derive_base_price_cents(cabins) == derive_base_price_cents(list(reversed(cabins)))


def test_no_cabins_has_no_base_price():
    assert derive_base_price_cents([]) is None
