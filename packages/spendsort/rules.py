"""Deterministic keyword rules (first classifier tier).

Rules are evaluated in table order and the first match wins. Matching is
case-insensitive and anchored at word starts: a keyword must not be preceded
by a letter or digit, and keywords of three characters or fewer must also end
at a word boundary (``bp`` matches ``BP Station`` but not ``bpost``).

Credit and debit use separate tables. Credit descriptions that match nothing
are left to the classifier's default; they never reach the remote tier.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from .models import Direction
from .taxonomy import CategoryPair, MainCategory, SubCategory

_M = MainCategory
_S = SubCategory

_SHORT_KEYWORD_MAX = 3


def _keyword_pattern(keyword: str) -> str:
    kw = re.escape(keyword.lower())
    if len(keyword) <= _SHORT_KEYWORD_MAX:
        return rf"(?<!\w){kw}(?!\w)"
    return rf"(?<!\w){kw}"


def _compile(keywords: Sequence[str]) -> re.Pattern[str] | None:
    if not keywords:
        return None
    return re.compile("|".join(_keyword_pattern(k) for k in keywords))


@dataclass(frozen=True, slots=True)
class KeywordRule:
    """``pair`` applies when any ``any_of`` keyword and every ``all_of`` keyword occur."""

    pair: CategoryPair
    any_of: tuple[str, ...] = ()
    all_of: tuple[str, ...] = ()
    _any_re: re.Pattern[str] | None = field(init=False, repr=False, compare=False)
    _all_res: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.any_of and not self.all_of:
            raise ValueError("KeywordRule needs at least one keyword")
        object.__setattr__(self, "_any_re", _compile(self.any_of))
        object.__setattr__(
            self, "_all_res", tuple(re.compile(_keyword_pattern(k)) for k in self.all_of)
        )

    def matches(self, lowered: str) -> bool:
        if self._any_re is not None and self._any_re.search(lowered) is None:
            return False
        return all(r.search(lowered) is not None for r in self._all_res)


def _rule(
    main: MainCategory, sub: SubCategory, *any_of: str, all_of: tuple[str, ...] = ()
) -> KeywordRule:
    return KeywordRule(CategoryPair(main, sub), tuple(any_of), all_of)


CREDIT_RULES: tuple[KeywordRule, ...] = (
    _rule(
        _M.INCOME,
        _S.SALARY,
        "salary",
        "payroll",
        "salaris",
        "loon",
        "wages",
        "bonus",
        "payout",
        "abn amro",
        "payment from",
        "ing bank",
        "deposit",
        "ebay marketplaces",
        "connexie",
    ),
    _rule(
        _M.INCOME,
        _S.OTHER_INCOME,
        "interest",
        "dividend",
        "investment",
        "earnings",
        "rente",
        "spaarrekening",
    ),
    _rule(
        _M.INCOME,
        _S.COMPENSATION,
        "refund",
        "rebate",
        "compensation",
        "cashback",
        "teruggave",
        "terugbetaling",
        "return",
        "correction",
    ),
)

DEBIT_RULES: tuple[KeywordRule, ...] = (
    # Housing
    _rule(_M.HOUSING, _S.MORTGAGE, "hypotheek", "mortgage"),
    _rule(_M.HOUSING, _S.RENT, "huur", "rent"),
    _rule(
        _M.HOUSING,
        _S.UTILITIES,
        "vitens",
        "oxxio",
        "eneco",
        "vattenfall",
        "essent",
        "greenchoice",
        "water",
        "gas",
        "electricity",
    ),
    _rule(_M.HOUSING, _S.HOME_INSURANCE, "woonverzekering", "home insurance"),
    _rule(_M.HOUSING, _S.PROPERTY_TAXES, "aanslag", "tax", all_of=("gemeente",)),
    _rule(_M.HOUSING, _S.HOME_MAINTENANCE_AND_REPAIRS, "vve", "home maintenance", "repair"),
    # Transportation
    _rule(_M.TRANSPORTATION, _S.OV_CHIPKAART_RECHARGES, all_of=("ov-chipkaart", "recharge")),
    _rule(
        _M.TRANSPORTATION,
        _S.PUBLIC_TRANSPORTATION,
        "ns.nl",
        "ov-chipkaart",
        "ovpay",
        "gvb",
        "ret",
        "htm",
        "connexxion",
        "arriva",
    ),
    _rule(
        _M.TRANSPORTATION,
        _S.FUEL,
        "shell",
        "bp",
        "esso",
        "fuel",
        "tango",
        "tinq",
        "texaco",
        "gas station",
    ),
    _rule(_M.TRANSPORTATION, _S.CAR_INSURANCE, "car insurance", "autoverzekering"),
    _rule(
        _M.TRANSPORTATION, _S.CAR_MAINTENANCE_AND_REPAIRS, "car maintenance", "car repair", "garage"
    ),
    _rule(_M.TRANSPORTATION, _S.PARKING, "parking", "parkeren", "q-park", "p+r"),
    _rule(_M.TRANSPORTATION, _S.ROAD_TAX, "wegenbelasting", "road tax"),
    _rule(_M.TRANSPORTATION, _S.TOLLS, "toll", "tol"),
    _rule(_M.FOOD_AND_GROCERIES, _S.TAKEAWAY_DELIVERY, "uber eats"),
    _rule(_M.TRANSPORTATION, _S.RIDE_SHARING_SERVICES, "uber", "bolt.eu"),
    # Food & Groceries
    _rule(
        _M.FOOD_AND_GROCERIES,
        _S.GROCERIES,
        "albert heijn",
        "jumbo",
        "lidl",
        "aldi",
        "plus",
        "dirk",
        "ah to go",
        "ah bezorgservice",
        "dekamarkt",
    ),
    _rule(
        _M.FOOD_AND_GROCERIES,
        _S.RESTAURANTS_AND_DINING_OUT,
        "restaurant",
        "dining",
        "cafe",
        "bar",
        "eetcafe",
        "iens",
        "dinner",
        "lunch",
        "bistro",
        "brasserie",
        "mcdonalds",
        "burger king",
        "kfc",
    ),
    _rule(
        _M.FOOD_AND_GROCERIES,
        _S.TAKEAWAY_DELIVERY,
        "thuisbezorgd",
        "deliveroo",
        "uber eats",
        "dominos",
        "new york pizza",
        "takeaway",
        "pizza",
        "bezorg",
    ),
    _rule(_M.FOOD_AND_GROCERIES, _S.COFFEE_SNACKS, "coffee", "koffie", "snack"),
    # Personal Care & Health
    _rule(
        _M.PERSONAL_CARE_AND_HEALTH,
        _S.HEALTH_INSURANCE,
        "zilveren kruis",
        "health insurance",
        "zorgverzekering",
    ),
    _rule(
        _M.PERSONAL_CARE_AND_HEALTH,
        _S.PHARMACY_MEDICATIONS,
        "apotheek",
        "pharmacy",
        "etos",
        "kruidvat",
        "da",
        "medicine",
        "medicijn",
        "drug",
        "prescription",
        "recept",
    ),
    _rule(_M.PERSONAL_CARE_AND_HEALTH, _S.GYM_AND_FITNESS, "gym", "fitness", "sport"),
    _rule(
        _M.PERSONAL_CARE_AND_HEALTH,
        _S.PERSONAL_CARE_PRODUCTS,
        "personal care",
        "toiletries",
        "cosmetics",
    ),
    _rule(
        _M.PERSONAL_CARE_AND_HEALTH,
        _S.DOCTOR_SPECIALIST_VISITS,
        "doctor",
        "hospital",
        "medical",
        "huisarts",
        "tandarts",
        "fysio",
        "ziekenhuis",
    ),
    # Kids & Family
    _rule(_M.KIDS_AND_FAMILY, _S.CHILDCARE, "childcare", "kinderopvang"),
    _rule(
        _M.KIDS_AND_FAMILY,
        _S.KIDS_ACTIVITIES_AND_ENTERTAINMENT,
        "kids",
        "children",
        "toys",
        "intertoys",
        "funky jungle",
    ),
    # Entertainment & Leisure
    _rule(
        _M.ENTERTAINMENT_AND_LEISURE,
        _S.MOVIES_CINEMA,
        "cinema",
        "movie",
        "vue",
        "pathe",
        "kinepolis",
        "bioscoop",
    ),
    _rule(
        _M.ENTERTAINMENT_AND_LEISURE,
        _S.EVENTS_CONCERTS_ATTRACTIONS,
        "event",
        "concert",
        "attraction",
        "theater",
        "theatre",
    ),
    _rule(
        _M.ENTERTAINMENT_AND_LEISURE,
        _S.HOBBIES_AND_RECREATION,
        "hobby",
        "recreation",
        "netflix",
        "spotify",
        "disney+",
        "videoland",
        "prime video",
        "hbo",
    ),
    _rule(_M.ENTERTAINMENT_AND_LEISURE, _S.LOTTERY_GAMBLING, "lottery", "gambling", "loterij"),
    # Shopping
    _rule(
        _M.SHOPPING,
        _S.CLOTHING,
        "h&m",
        "zara",
        "uniqlo",
        "primark",
        "c&a",
        "we fashion",
        "only",
        "vero moda",
        "jack & jones",
        "nike",
        "adidas",
        "puma",
        "clothing",
        "kleding",
        "fashion",
    ),
    _rule(
        _M.SHOPPING,
        _S.ELECTRONICS_AND_APPLIANCES,
        "electronics",
        "appliances",
        "mediamarkt",
        "coolblue",
    ),
    _rule(
        _M.SHOPPING,
        _S.HOME_GOODS_AND_FURNITURE,
        "ikea",
        "furniture",
        "home goods",
        "praxis",
        "gamma",
        "karwei",
        "hornbach",
        "home depot",
        "lamp",
        "decoration",
        "home improvement",
    ),
    # Education (school books before the generic books rule below)
    _rule(_M.EDUCATION, _S.TUITION_SCHOOL_FEES, "tuition", "school fees"),
    _rule(_M.EDUCATION, _S.BOOKS_AND_SUPPLIES, all_of=("books", "school")),
    _rule(
        _M.EDUCATION,
        _S.LANGUAGE_CLASSES,
        "mark de jong",
        "aulas de holandes",
        "language",
        "dutch",
        "holandes",
        "taalcursus",
    ),
    _rule(_M.SHOPPING, _S.BOOKS_AND_STATIONERY, "books", "stationery"),
    # Financial Expenses
    _rule(
        _M.FINANCIAL_EXPENSES,
        _S.BANK_FEES,
        "bank fees",
        "kosten oranjepakket",
        "kosten tweede rekeninghouder",
    ),
    _rule(_M.FINANCIAL_EXPENSES, _S.CREDIT_CARD_PAYMENTS, "credit card", "creditcard"),
    _rule(_M.FINANCIAL_EXPENSES, _S.LOAN_PAYMENTS, "loan", "lening"),
    _rule(_M.FINANCIAL_EXPENSES, _S.TRANSFER_FEES, "transfer fee", "transfer provisie"),
    # Gifts & Donations
    _rule(_M.GIFTS_AND_DONATIONS, _S.GIFTS, "gift"),
    _rule(
        _M.GIFTS_AND_DONATIONS,
        _S.CHARITABLE_DONATIONS,
        "donation",
        "stg care nederland",
        "charity",
    ),
    # Travel
    _rule(_M.TRAVEL, _S.ACCOMMODATION, "hotel", "airbnb", "accommodation"),
    _rule(_M.TRAVEL, _S.ACTIVITIES, all_of=("activities", "vacation")),
    _rule(_M.TRAVEL, _S.FOOD, all_of=("food", "vacation")),
    _rule(_M.TRAVEL, _S.TRAVEL_TRANSPORTATION, all_of=("transportation", "vacation")),
)


def match_rules(
    description: str,
    direction: Direction,
    *,
    credit_rules: Sequence[KeywordRule] = CREDIT_RULES,
    debit_rules: Sequence[KeywordRule] = DEBIT_RULES,
) -> CategoryPair | None:
    """Return the first matching rule's pair, or ``None``."""

    lowered = description.lower()
    rules = credit_rules if Direction(direction) is Direction.CREDIT else debit_rules
    for rule in rules:
        if rule.matches(lowered):
            return rule.pair
    return None


__all__ = ["CREDIT_RULES", "DEBIT_RULES", "KeywordRule", "match_rules"]
