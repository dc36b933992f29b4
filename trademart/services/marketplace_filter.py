"""Marketplace lead filter.

Pure functions that narrow candidate leads to the ones matching a vendor's
preferred categories, locations and budget range. Nothing here touches the
database; preferences are loaded by the marketplace service.

Matching is deliberately loose: text is lower-cased and trimmed, and a lead
token matches a preference when either string contains the other
("steel" matches "stainless steel pipes" and vice versa).
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, TypeVar

T = TypeVar("T")

CATEGORY_FIELDS = (
    "title",
    "product_name",
    "category",
    "sub_category",
    "service_name",
    "description",
    "message",
)

_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")


@dataclass(frozen=True)
class MarketplacePreferences:
    """Normalized filter context for one vendor."""

    categories: frozenset[str] = field(default_factory=frozenset)
    cities: frozenset[str] = field(default_factory=frozenset)
    states: frozenset[str] = field(default_factory=frozenset)
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    auto_lead_filter: bool = True

    @classmethod
    def build(
        cls,
        categories: Iterable[str] = (),
        cities: Iterable[str] = (),
        states: Iterable[str] = (),
        min_budget: Optional[float] = None,
        max_budget: Optional[float] = None,
        auto_lead_filter: Optional[bool] = True,
    ) -> "MarketplacePreferences":
        return cls(
            categories=_text_set(categories),
            cities=_text_set(cities),
            states=_text_set(states),
            min_budget=_finite(min_budget),
            max_budget=_finite(max_budget),
            auto_lead_filter=auto_lead_filter is not False,
        )

    @property
    def is_empty(self) -> bool:
        return (
            not self.categories
            and not self.cities
            and not self.states
            and self.min_budget is None
            and self.max_budget is None
        )


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _text_set(values: Iterable[str]) -> frozenset[str]:
    return frozenset(v for v in (normalize_text(value) for value in values or ()) if v)


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def decode_name_list(raw: Optional[str]) -> list[str]:
    """Read a preference list column (JSON array, or comma separated in old rows)."""
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = raw.split(",")
    if isinstance(parsed, str):
        parsed = [parsed]
    if not isinstance(parsed, list):
        return []
    return [str(item).strip() for item in parsed if str(item or "").strip()]


def _get(lead: Any, name: str) -> Any:
    if isinstance(lead, Mapping):
        return lead.get(name)
    return getattr(lead, name, None)


def fuzzy_match(left: str, right: str) -> bool:
    if not left or not right:
        return False
    return left in right or right in left


def matches_any(tokens: Iterable[str], wanted: frozenset[str]) -> bool:
    if not wanted:
        return True
    return any(fuzzy_match(token, item) for token in tokens for item in wanted)


def lead_tokens(lead: Any) -> list[str]:
    tokens: list[str] = []
    for name in CATEGORY_FIELDS:
        token = normalize_text(_get(lead, name))
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def extract_city_state(lead: Any) -> tuple[str, str]:
    """City and state columns, or the first and remaining parts of `location`."""
    city = str(_get(lead, "city") or "").strip()
    state = str(_get(lead, "state") or "").strip()
    if city or state:
        return city, state

    location = str(_get(lead, "location") or "").strip()
    parts = [part.strip() for part in location.split(",") if part.strip()]
    if len(parts) >= 2:
        return parts[0], ", ".join(parts[1:])
    if len(parts) == 1:
        return parts[0], ""
    return "", ""


def parse_budget(value: Any) -> Optional[float]:
    """Leading numeric value of a budget string ("50,000 INR" -> 50000.0); None when absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    text = str(value).replace(",", "").replace(" ", "")
    match = _LEADING_NUMBER.match(text)
    if not match:
        return None
    return _finite(match.group(0))


def _category_ok(lead: Any, prefs: MarketplacePreferences) -> bool:
    return matches_any(lead_tokens(lead), prefs.categories)


def _location_ok(lead: Any, prefs: MarketplacePreferences) -> bool:
    city, state = extract_city_state(lead)
    location_text = normalize_text(_get(lead, "location"))
    city_ok = matches_any([normalize_text(city), location_text], prefs.cities)
    state_ok = matches_any([normalize_text(state), location_text], prefs.states)
    return city_ok and state_ok


def _budget_ok(lead: Any, prefs: MarketplacePreferences) -> bool:
    budget = parse_budget(_get(lead, "budget"))
    if budget is None:
        return True
    if prefs.min_budget is not None and budget < prefs.min_budget:
        return False
    if prefs.max_budget is not None and budget > prefs.max_budget:
        return False
    return True


def lead_matches(lead: Any, prefs: MarketplacePreferences) -> bool:
    return _category_ok(lead, prefs) and _location_ok(lead, prefs) and _budget_ok(lead, prefs)


def filter_leads(leads: Sequence[T], prefs: Optional[MarketplacePreferences]) -> list[T]:
    """Return the leads matching every configured axis, preserving input order."""
    if prefs is None or not prefs.auto_lead_filter or prefs.is_empty:
        return list(leads)
    return [lead for lead in leads if lead_matches(lead, prefs)]
