from trademart.services.marketplace_filter import (
    MarketplacePreferences,
    decode_name_list,
    extract_city_state,
    filter_leads,
    fuzzy_match,
    parse_budget,
)


LEADS = [
    {"id": 1, "title": "Stainless steel pipes", "category": "Metals", "city": "Pune", "state": "Maharashtra", "budget": "75000"},
    {"id": 2, "product_name": "Cotton bedsheet", "category": "Home Textiles", "location": "Jaipur, Rajasthan", "budget": "20,000 INR"},
    {"id": 3, "title": "Office chairs", "category": "Furniture", "city": "Chennai", "state": "Tamil Nadu", "budget": "on request"},
]


def _ids(leads):
    return [lead["id"] for lead in leads]


def test_empty_preferences_return_input_unchanged():
    assert filter_leads(LEADS, MarketplacePreferences.build()) == LEADS
    assert filter_leads(LEADS, None) == LEADS


def test_auto_filter_off_disables_filtering():
    prefs = MarketplacePreferences.build(categories=["metals"], auto_lead_filter=False)
    assert _ids(filter_leads(LEADS, prefs)) == [1, 2, 3]


def test_category_matches_by_substring_either_way():
    assert _ids(filter_leads(LEADS, MarketplacePreferences.build(categories=["steel"]))) == [1]
    assert _ids(filter_leads(LEADS, MarketplacePreferences.build(categories=["  TEXTILES "]))) == [2]
    assert _ids(filter_leads(LEADS, MarketplacePreferences.build(categories=["office chairs and desks"]))) == [3]


def test_location_uses_location_text_when_city_state_missing():
    assert _ids(filter_leads(LEADS, MarketplacePreferences.build(states=["rajasthan"]))) == [2]
    assert _ids(filter_leads(LEADS, MarketplacePreferences.build(cities=["pune", "chennai"]))) == [1, 3]


def test_city_and_state_are_both_required():
    prefs = MarketplacePreferences.build(cities=["Pune"], states=["Rajasthan"])
    assert filter_leads(LEADS, prefs) == []


def test_budget_bounds_are_inclusive_and_unparseable_budget_passes():
    prefs = MarketplacePreferences.build(min_budget=20000, max_budget=75000)
    assert _ids(filter_leads(LEADS, prefs)) == [1, 2, 3]

    prefs = MarketplacePreferences.build(min_budget=30000)
    assert _ids(filter_leads(LEADS, prefs)) == [1, 3]


def test_axes_combine_with_and():
    prefs = MarketplacePreferences.build(categories=["textiles", "metals"], max_budget=50000)
    assert _ids(filter_leads(LEADS, prefs)) == [2]


def test_filter_works_on_objects():
    class Row:
        def __init__(self, **kw):
            self.__dict__.update(kw)

    rows = [Row(id=1, category="Metals", city="Pune", state=None, budget=None, location=None)]
    assert filter_leads(rows, MarketplacePreferences.build(categories=["metal"])) == rows


def test_helpers():
    assert fuzzy_match("steel", "stainless steel")
    assert not fuzzy_match("", "steel")
    assert parse_budget("1,50,000") == 150000.0
    assert parse_budget("abc") is None
    assert parse_budget(True) is None
    assert extract_city_state({"location": "Surat, Gujarat, India"}) == ("Surat", "Gujarat, India")
    assert extract_city_state({"location": ""}) == ("", "")
    assert decode_name_list('["Pune", " ", "Nashik"]') == ["Pune", "Nashik"]
    assert decode_name_list("Pune, Nashik") == ["Pune", "Nashik"]
    assert decode_name_list(None) == []
