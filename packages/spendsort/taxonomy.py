"""Two-level category taxonomy and its display/storage spellings.

The taxonomy is fixed: every main category owns an ordered set of
subcategories. Each value has two spellings:

- a *storage* spelling (``FoodAndGroceries``), alphanumeric and used for the
  enum values and database columns;
- a *display* spelling (``Food & Groceries``) used in prompts, the CLI and by
  people.

:func:`to_storage` and :func:`to_display` are the only conversion boundary;
everything else in the package works on :class:`MainCategory` /
:class:`SubCategory` members.

Exports
-------
- ``MainCategory`` / ``SubCategory``: closed enums (storage spelling values).
- ``CategoryPair``: ``(main, sub)`` named tuple.
- ``subcategories_of``, ``is_valid_pair``, ``iter_pairs``.
- ``to_storage`` (lenient on pairing, strict on vocabulary) and
  ``to_display`` (strict).
- ``resolve_main`` / ``resolve_sub``: strict single-name lookups.
- ``FALLBACK_PAIR`` (Miscellaneous/Other) and ``INCOME_DEFAULT_PAIR``
  (Income/OtherIncome).
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from enum import StrEnum
from typing import NamedTuple, TypeVar

from .errors import TaxonomyError
from .logging_setup import get_logger

_logger = get_logger("spendsort.taxonomy")


class MainCategory(StrEnum):
    HOUSING = "Housing"
    TRANSPORTATION = "Transportation"
    FOOD_AND_GROCERIES = "FoodAndGroceries"
    PERSONAL_CARE_AND_HEALTH = "PersonalCareAndHealth"
    KIDS_AND_FAMILY = "KidsAndFamily"
    ENTERTAINMENT_AND_LEISURE = "EntertainmentAndLeisure"
    SHOPPING = "Shopping"
    EDUCATION = "Education"
    FINANCIAL_EXPENSES = "FinancialExpenses"
    INCOME = "Income"
    GIFTS_AND_DONATIONS = "GiftsAndDonations"
    TRAVEL = "Travel"
    MISCELLANEOUS = "Miscellaneous"


class SubCategory(StrEnum):
    # Housing
    MORTGAGE = "Mortgage"
    RENT = "Rent"
    UTILITIES = "Utilities"
    HOME_INSURANCE = "HomeInsurance"
    PROPERTY_TAXES = "PropertyTaxes"
    HOME_MAINTENANCE_AND_REPAIRS = "HomeMaintenanceAndRepairs"
    # Transportation
    PUBLIC_TRANSPORTATION = "PublicTransportation"
    FUEL = "Fuel"
    CAR_INSURANCE = "CarInsurance"
    CAR_MAINTENANCE_AND_REPAIRS = "CarMaintenanceAndRepairs"
    PARKING = "Parking"
    ROAD_TAX = "RoadTax"
    TOLLS = "Tolls"
    RIDE_SHARING_SERVICES = "RideSharingServices"
    OV_CHIPKAART_RECHARGES = "OVChipkaartRecharges"
    # Food & Groceries
    GROCERIES = "Groceries"
    RESTAURANTS_AND_DINING_OUT = "RestaurantsAndDiningOut"
    TAKEAWAY_DELIVERY = "TakeawayDelivery"
    COFFEE_SNACKS = "CoffeeSnacks"
    # Personal Care & Health
    HEALTH_INSURANCE = "HealthInsurance"
    PHARMACY_MEDICATIONS = "PharmacyMedications"
    GYM_AND_FITNESS = "GymAndFitness"
    PERSONAL_CARE_PRODUCTS = "PersonalCareProducts"
    DOCTOR_SPECIALIST_VISITS = "DoctorSpecialistVisits"
    # Kids & Family
    CHILDCARE = "Childcare"
    KIDS_ACTIVITIES_AND_ENTERTAINMENT = "KidsActivitiesAndEntertainment"
    # Entertainment & Leisure
    MOVIES_CINEMA = "MoviesCinema"
    EVENTS_CONCERTS_ATTRACTIONS = "EventsConcertsAttractions"
    HOBBIES_AND_RECREATION = "HobbiesAndRecreation"
    LOTTERY_GAMBLING = "LotteryGambling"
    # Shopping
    CLOTHING = "Clothing"
    ELECTRONICS_AND_APPLIANCES = "ElectronicsAndAppliances"
    HOME_GOODS_AND_FURNITURE = "HomeGoodsAndFurniture"
    BOOKS_AND_STATIONERY = "BooksAndStationery"
    # Education
    TUITION_SCHOOL_FEES = "TuitionSchoolFees"
    BOOKS_AND_SUPPLIES = "BooksAndSupplies"
    LANGUAGE_CLASSES = "LanguageClasses"
    # Financial Expenses
    BANK_FEES = "BankFees"
    CREDIT_CARD_PAYMENTS = "CreditCardPayments"
    LOAN_PAYMENTS = "LoanPayments"
    TRANSFER_FEES = "TransferFees"
    # Income
    SALARY = "Salary"
    OTHER_INCOME = "OtherIncome"
    COMPENSATION = "Compensation"
    # Gifts & Donations
    GIFTS = "Gifts"
    CHARITABLE_DONATIONS = "CharitableDonations"
    # Travel
    ACCOMMODATION = "Accommodation"
    ACTIVITIES = "Activities"
    FOOD = "Food"
    TRAVEL_TRANSPORTATION = "Transportation"
    # Miscellaneous
    OTHER = "Other"


class CategoryPair(NamedTuple):
    main: MainCategory
    sub: SubCategory

    def display(self) -> tuple[str, str]:
        return to_display(self.main, self.sub)

    def __str__(self) -> str:
        main_d, sub_d = self.display()
        return f"{main_d} -> {sub_d}"


_M = MainCategory
_S = SubCategory

# Main category -> ordered subcategories. Order drives prompts and listings.
_TREE: dict[MainCategory, tuple[SubCategory, ...]] = {
    _M.HOUSING: (
        _S.MORTGAGE,
        _S.RENT,
        _S.UTILITIES,
        _S.HOME_INSURANCE,
        _S.PROPERTY_TAXES,
        _S.HOME_MAINTENANCE_AND_REPAIRS,
    ),
    _M.TRANSPORTATION: (
        _S.PUBLIC_TRANSPORTATION,
        _S.FUEL,
        _S.CAR_INSURANCE,
        _S.CAR_MAINTENANCE_AND_REPAIRS,
        _S.PARKING,
        _S.ROAD_TAX,
        _S.TOLLS,
        _S.RIDE_SHARING_SERVICES,
        _S.OV_CHIPKAART_RECHARGES,
    ),
    _M.FOOD_AND_GROCERIES: (
        _S.GROCERIES,
        _S.RESTAURANTS_AND_DINING_OUT,
        _S.TAKEAWAY_DELIVERY,
        _S.COFFEE_SNACKS,
    ),
    _M.PERSONAL_CARE_AND_HEALTH: (
        _S.HEALTH_INSURANCE,
        _S.PHARMACY_MEDICATIONS,
        _S.GYM_AND_FITNESS,
        _S.PERSONAL_CARE_PRODUCTS,
        _S.DOCTOR_SPECIALIST_VISITS,
    ),
    _M.KIDS_AND_FAMILY: (_S.CHILDCARE, _S.KIDS_ACTIVITIES_AND_ENTERTAINMENT),
    _M.ENTERTAINMENT_AND_LEISURE: (
        _S.MOVIES_CINEMA,
        _S.EVENTS_CONCERTS_ATTRACTIONS,
        _S.HOBBIES_AND_RECREATION,
        _S.LOTTERY_GAMBLING,
    ),
    _M.SHOPPING: (
        _S.CLOTHING,
        _S.ELECTRONICS_AND_APPLIANCES,
        _S.HOME_GOODS_AND_FURNITURE,
        _S.BOOKS_AND_STATIONERY,
    ),
    _M.EDUCATION: (_S.TUITION_SCHOOL_FEES, _S.BOOKS_AND_SUPPLIES, _S.LANGUAGE_CLASSES),
    _M.FINANCIAL_EXPENSES: (
        _S.BANK_FEES,
        _S.CREDIT_CARD_PAYMENTS,
        _S.LOAN_PAYMENTS,
        _S.TRANSFER_FEES,
    ),
    _M.INCOME: (_S.SALARY, _S.OTHER_INCOME, _S.COMPENSATION),
    _M.GIFTS_AND_DONATIONS: (_S.GIFTS, _S.CHARITABLE_DONATIONS),
    _M.TRAVEL: (_S.ACCOMMODATION, _S.ACTIVITIES, _S.FOOD, _S.TRAVEL_TRANSPORTATION),
    _M.MISCELLANEOUS: (_S.OTHER,),
}

_MAIN_DISPLAY: dict[MainCategory, str] = {
    _M.HOUSING: "Housing",
    _M.TRANSPORTATION: "Transportation",
    _M.FOOD_AND_GROCERIES: "Food & Groceries",
    _M.PERSONAL_CARE_AND_HEALTH: "Personal Care & Health",
    _M.KIDS_AND_FAMILY: "Kids & Family",
    _M.ENTERTAINMENT_AND_LEISURE: "Entertainment & Leisure",
    _M.SHOPPING: "Shopping",
    _M.EDUCATION: "Education",
    _M.FINANCIAL_EXPENSES: "Financial Expenses",
    _M.INCOME: "Income",
    _M.GIFTS_AND_DONATIONS: "Gifts & Donations",
    _M.TRAVEL: "Travel",
    _M.MISCELLANEOUS: "Miscellaneous",
}

_SUB_DISPLAY: dict[SubCategory, str] = {
    _S.MORTGAGE: "Mortgage",
    _S.RENT: "Rent",
    _S.UTILITIES: "Utilities",
    _S.HOME_INSURANCE: "Home Insurance",
    _S.PROPERTY_TAXES: "Property Taxes",
    _S.HOME_MAINTENANCE_AND_REPAIRS: "Home Maintenance & Repairs",
    _S.PUBLIC_TRANSPORTATION: "Public Transportation",
    _S.FUEL: "Fuel",
    _S.CAR_INSURANCE: "Car Insurance",
    _S.CAR_MAINTENANCE_AND_REPAIRS: "Car Maintenance & Repairs",
    _S.PARKING: "Parking",
    _S.ROAD_TAX: "Road Tax",
    _S.TOLLS: "Tolls",
    _S.RIDE_SHARING_SERVICES: "Ride-Sharing Services",
    _S.OV_CHIPKAART_RECHARGES: "OV-chipkaart Recharges",
    _S.GROCERIES: "Groceries",
    _S.RESTAURANTS_AND_DINING_OUT: "Restaurants & Dining Out",
    _S.TAKEAWAY_DELIVERY: "Takeaway/Delivery",
    _S.COFFEE_SNACKS: "Coffee/Snacks",
    _S.HEALTH_INSURANCE: "Health Insurance",
    _S.PHARMACY_MEDICATIONS: "Pharmacy/Medications",
    _S.GYM_AND_FITNESS: "Gym & Fitness",
    _S.PERSONAL_CARE_PRODUCTS: "Personal Care Products",
    _S.DOCTOR_SPECIALIST_VISITS: "Doctor/Specialist Visits",
    _S.CHILDCARE: "Childcare",
    _S.KIDS_ACTIVITIES_AND_ENTERTAINMENT: "Kids Activities & Entertainment",
    _S.MOVIES_CINEMA: "Movies/Cinema",
    _S.EVENTS_CONCERTS_ATTRACTIONS: "Events/Concerts/Attractions",
    _S.HOBBIES_AND_RECREATION: "Hobbies & Recreation",
    _S.LOTTERY_GAMBLING: "Lottery/Gambling",
    _S.CLOTHING: "Clothing",
    _S.ELECTRONICS_AND_APPLIANCES: "Electronics & Appliances",
    _S.HOME_GOODS_AND_FURNITURE: "Home Goods & Furniture",
    _S.BOOKS_AND_STATIONERY: "Books & Stationery",
    _S.TUITION_SCHOOL_FEES: "Tuition/School Fees",
    _S.BOOKS_AND_SUPPLIES: "Books & Supplies",
    _S.LANGUAGE_CLASSES: "Language Classes",
    _S.BANK_FEES: "Bank Fees",
    _S.CREDIT_CARD_PAYMENTS: "Credit Card Payments",
    _S.LOAN_PAYMENTS: "Loan Payments",
    _S.TRANSFER_FEES: "Transfer Fees",
    _S.SALARY: "Salary",
    _S.OTHER_INCOME: "Other Income",
    _S.COMPENSATION: "Compensation",
    _S.GIFTS: "Gifts",
    _S.CHARITABLE_DONATIONS: "Charitable Donations",
    _S.ACCOMMODATION: "Accommodation",
    _S.ACTIVITIES: "Activities",
    _S.FOOD: "Food",
    _S.TRAVEL_TRANSPORTATION: "Transportation",
    _S.OTHER: "Other",
}

FALLBACK_PAIR = CategoryPair(_M.MISCELLANEOUS, _S.OTHER)
INCOME_DEFAULT_PAIR = CategoryPair(_M.INCOME, _S.OTHER_INCOME)


# ---------------------------------------------------------------------------
# Spelling normalization
# ---------------------------------------------------------------------------

_AMP_RE = re.compile(r"\s*&\s*")
_SEP_RE = re.compile(r"[\s/\-]+")


def _spelling_key(text: str) -> str:
    """Collapse a display or storage spelling to a comparison key.

    ``&`` becomes ``And``; whitespace, ``/`` and ``-`` are removed; the result
    is casefolded. ``"Food & Groceries"`` and ``"FoodAndGroceries"`` share a key.
    """

    s = _AMP_RE.sub("And", text.strip())
    return _SEP_RE.sub("", s).casefold()


E = TypeVar("E", bound=StrEnum)


def _build_index(members: type[E]) -> dict[str, E]:
    index: dict[str, E] = {}
    for m in members:
        key = _spelling_key(m.value)
        if key in index:  # pragma: no cover - guards edits to the tables above
            raise RuntimeError(f"taxonomy spelling collision: {m.value!r}")
        index[key] = m
    return index


_MAIN_INDEX: dict[str, MainCategory] = _build_index(MainCategory)
_SUB_INDEX: dict[str, SubCategory] = _build_index(SubCategory)


def _check_tables() -> None:
    # Every enum member must be displayable and display keys must land on the
    # same member, otherwise round-trips break.
    for m in MainCategory:
        if _MAIN_INDEX.get(_spelling_key(_MAIN_DISPLAY[m])) is not m:
            raise RuntimeError(f"display spelling does not round-trip: {m.value!r}")
    for s in SubCategory:
        if _SUB_INDEX.get(_spelling_key(_SUB_DISPLAY[s])) is not s:
            raise RuntimeError(f"display spelling does not round-trip: {s.value!r}")
    if set(_TREE) != set(MainCategory):
        raise RuntimeError("taxonomy tree does not cover every main category")


_check_tables()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def subcategories_of(main: MainCategory) -> tuple[SubCategory, ...]:
    """Return the ordered subcategories permitted under ``main``."""

    return _TREE[MainCategory(main)]


def is_valid_pair(main: object, sub: object) -> bool:
    """Return True when ``sub`` is a permitted subcategory of ``main``.

    Accepts enum members or their storage strings; anything else is invalid.
    """

    try:
        m = MainCategory(main)
        s = SubCategory(sub)
    except ValueError:
        return False
    return s in _TREE[m]


def iter_pairs() -> Iterator[CategoryPair]:
    """Yield every valid pair in taxonomy order."""

    for main, subs in _TREE.items():
        for sub in subs:
            yield CategoryPair(main, sub)


def resolve_main(text: str) -> MainCategory:
    """Look up a main category by display or storage spelling (strict)."""

    found = _MAIN_INDEX.get(_spelling_key(text))
    if found is None:
        raise TaxonomyError(f"Unknown main category: {text!r}")
    return found


def resolve_sub(text: str) -> SubCategory:
    """Look up a subcategory by display or storage spelling (strict)."""

    found = _SUB_INDEX.get(_spelling_key(text))
    if found is None:
        raise TaxonomyError(f"Unknown subcategory: {text!r}")
    return found


def to_storage(display_main: str, display_sub: str) -> CategoryPair:
    """Convert display spellings to a storage pair.

    Unknown spellings raise :class:`TaxonomyError`. A known main and a known
    sub that do not belong together do **not** raise: the fallback pair
    (Miscellaneous, Other) is returned and the substitution is logged, since
    such mismatches come from untrusted sources and must not block ingestion.
    """

    main = resolve_main(display_main)
    sub = resolve_sub(display_sub)
    if sub not in _TREE[main]:
        _logger.warning(
            "taxonomy:pair_substituted main=%s sub=%s fallback=%s/%s",
            main.value,
            sub.value,
            FALLBACK_PAIR.main.value,
            FALLBACK_PAIR.sub.value,
        )
        return FALLBACK_PAIR
    return CategoryPair(main, sub)


def to_display(storage_main: str, storage_sub: str) -> tuple[str, str]:
    """Convert storage spellings to display spellings (strict).

    Storage values originate only from this module, so anything unknown is a
    hard error rather than a substitution.
    """

    try:
        main = MainCategory(storage_main)
        sub = SubCategory(storage_sub)
    except ValueError as exc:
        raise TaxonomyError(
            f"Unknown storage category: {storage_main!r}/{storage_sub!r}"
        ) from exc
    return _MAIN_DISPLAY[main], _SUB_DISPLAY[sub]


def display_main(main: MainCategory) -> str:
    return _MAIN_DISPLAY[MainCategory(main)]


def display_sub(sub: SubCategory) -> str:
    return _SUB_DISPLAY[SubCategory(sub)]


def coerce_pair(main: object, sub: object) -> CategoryPair:
    """Return ``(main, sub)`` as a valid pair, substituting the fallback pair.

    Used at write boundaries where values arrive as strings (store rows, user
    corrections) and an invalid combination must never be persisted.
    """

    if is_valid_pair(main, sub):
        return CategoryPair(MainCategory(main), SubCategory(sub))
    _logger.warning(
        "taxonomy:pair_substituted main=%s sub=%s fallback=%s/%s",
        main,
        sub,
        FALLBACK_PAIR.main.value,
        FALLBACK_PAIR.sub.value,
    )
    return FALLBACK_PAIR


__all__ = [
    "CategoryPair",
    "FALLBACK_PAIR",
    "INCOME_DEFAULT_PAIR",
    "MainCategory",
    "SubCategory",
    "coerce_pair",
    "display_main",
    "display_sub",
    "is_valid_pair",
    "iter_pairs",
    "resolve_main",
    "resolve_sub",
    "subcategories_of",
    "to_display",
    "to_storage",
]
