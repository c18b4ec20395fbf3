from __future__ import annotations

import logging

import pytest
from spendsort.errors import TaxonomyError
from spendsort.taxonomy import (
    FALLBACK_PAIR,
    CategoryPair,
    MainCategory,
    SubCategory,
    coerce_pair,
    is_valid_pair,
    iter_pairs,
    subcategories_of,
    to_display,
    to_storage,
)


def test_every_pair_round_trips_through_display() -> None:
    pairs = list(iter_pairs())
    assert len(pairs) == sum(len(subcategories_of(m)) for m in MainCategory)
    for pair in pairs:
        main_d, sub_d = to_display(pair.main, pair.sub)
        assert to_storage(main_d, sub_d) == pair
        assert to_display(*to_storage(main_d, sub_d)) == (main_d, sub_d)


def test_display_spellings() -> None:
    assert to_display("FoodAndGroceries", "TakeawayDelivery") == (
        "Food & Groceries",
        "Takeaway/Delivery",
    )
    assert to_display("Travel", "Transportation") == ("Travel", "Transportation")
    assert str(CategoryPair(MainCategory.TRANSPORTATION, SubCategory.RIDE_SHARING_SERVICES)) == (
        "Transportation -> Ride-Sharing Services"
    )


def test_to_storage_accepts_storage_spelling_and_case() -> None:
    assert to_storage("foodandgroceries", "groceries") == CategoryPair(
        MainCategory.FOOD_AND_GROCERIES, SubCategory.GROCERIES
    )
    assert to_storage(" Personal Care & Health ", "Pharmacy / Medications") == CategoryPair(
        MainCategory.PERSONAL_CARE_AND_HEALTH, SubCategory.PHARMACY_MEDICATIONS
    )


def test_mismatched_pair_substitutes_fallback(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="spendsort"):
        pair = to_storage("Housing", "Groceries")
    assert pair == FALLBACK_PAIR
    assert "taxonomy:pair_substituted" in caplog.text


def test_every_mismatched_combination_substitutes() -> None:
    for main in MainCategory:
        for sub in SubCategory:
            if sub in subcategories_of(main):
                continue
            assert to_storage(main.value, sub.value) == FALLBACK_PAIR


def test_unknown_spelling_raises() -> None:
    with pytest.raises(TaxonomyError):
        to_storage("Groceries & Stuff", "Groceries")
    with pytest.raises(TaxonomyError):
        to_display("Housing", "Castle")


def test_travel_transportation_is_scoped_to_travel() -> None:
    assert is_valid_pair("Travel", "Transportation")
    assert not is_valid_pair("Transportation", "Transportation")
    assert not is_valid_pair("Nope", "Other")


def test_coerce_pair() -> None:
    assert coerce_pair("Income", "Salary") == CategoryPair(MainCategory.INCOME, SubCategory.SALARY)
    assert coerce_pair("Income", "Groceries") == FALLBACK_PAIR
    assert coerce_pair(None, None) == FALLBACK_PAIR
