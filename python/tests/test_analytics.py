from dishscout.analytics import AnalyticsResult, analyze, compare_menu_price, top_rated
from dishscout.cards import extract_cards, map_card, map_cards
from dishscout.config import IMAGE_CDN_PREFIX
from factories import dish_card, scenario_cards, search_response


def records_for(*cards):
    return [map_card(card) for card in cards]


def test_analyze_empty_input():
    result = analyze([])
    assert result.min is None
    assert result.max is None
    assert result.avg_price == 0
    assert result.price_vs_rating == []
    assert result.price_vs_distance == []
    assert result.to_dict() == {
        "min": None,
        "max": None,
        "avgPrice": 0,
        "priceVSrating": [],
        "priceVSdistance": [],
    }


def test_analyze_ignores_records_without_positive_price():
    result = analyze(records_for(dish_card("Free", 0, "4.0"), dish_card("Unknown", None, "4.2")))
    assert result.min is None
    assert result.max is None
    assert result.avg_price == 0
    assert result.price_vs_distance == []


def test_scenario_three_dishes():
    records = map_cards(extract_cards(search_response(scenario_cards())))
    result = analyze(records)

    assert result.min.price == 100
    assert result.min.name == "Biryani House"
    assert result.max.price == 300
    assert result.max.name == "Kebab Corner"
    assert result.avg_price == 200
    assert result.price_vs_rating == [
        {"price": 100, "rating": 4.5},
        {"price": 200, "rating": 4.0},
        {"price": 300, "rating": 3.5},
    ]
    assert result.price_vs_distance[0] == {"price": 100, "distance": 2.5}

    cards = top_rated(records)
    assert [card.rating for card in cards] == [4.5, 4.0, 3.5]


def test_min_max_keep_first_record_on_equal_prices():
    result = analyze(records_for(
        dish_card("First", 150, "4.0"),
        dish_card("Second", 150, "4.4"),
    ))
    assert result.min.name == "First"
    assert result.max.name == "First"


def test_average_sits_between_extremes():
    prices = [129, 349, 99, 560, 210, 210, 1]
    result = analyze(records_for(*(dish_card(f"R{i}", p, "4.0") for i, p in enumerate(prices))))
    assert result.min.price <= result.avg_price <= result.max.price
    assert result.avg_price == sum(prices) / len(prices)


def test_price_point_wire_format():
    result = analyze(records_for(dish_card("Only", 180, "4.1", delivery_time=25, avg_rating=4.3)))
    assert result.to_dict()["min"] == {
        "name": "Only",
        "price": 180,
        "locality": "Karol Bagh",
        "deliveryTime": "25",
        "avgRating": "4.3",
    }


def test_top_rated_limits_and_orders():
    records = records_for(*(dish_card(f"R{i}", 100 + i, str(3.0 + i / 10)) for i in range(8)))
    cards = top_rated(records, n=5)
    assert len(cards) == 5
    assert [card.name for card in cards] == ["R7", "R6", "R5", "R4", "R3"]


def test_top_rated_keeps_encounter_order_on_ties():
    records = records_for(
        dish_card("Early", 100, "4.2"),
        dish_card("Best", 100, "4.8"),
        dish_card("Late", 100, "4.2"),
    )
    assert [card.name for card in top_rated(records)] == ["Best", "Early", "Late"]


def test_top_rated_builds_image_url():
    card = top_rated(records_for(dish_card("A", 100, "4.0", image_id="xyz789")))[0]
    assert card.image_url == IMAGE_CDN_PREFIX + "xyz789"
    assert card.to_dict() == {
        "name": "A",
        "imageUrl": IMAGE_CDN_PREFIX + "xyz789",
        "price": 100,
        "ratings": {"rating": 4.0, "ratingCount": 100, "ratingCountV2": 120},
    }


def test_compare_menu_price_converts_paise():
    analytics = AnalyticsResult(avg_price=20000)
    comparison = compare_menu_price("250", analytics)
    assert comparison.competitor_avg_price == 200
    assert comparison.price_difference == 50
    assert comparison.percentage_difference == "25.00"
    assert comparison.is_more_expensive
    assert not comparison.is_less_expensive
    assert not comparison.is_price_match


def test_compare_menu_price_without_competitor_average():
    comparison = compare_menu_price(120, AnalyticsResult())
    assert comparison.competitor_avg_price == 0
    assert comparison.percentage_difference == "0.00"


def test_compare_menu_price_match():
    comparison = compare_menu_price(199.995, AnalyticsResult(avg_price=20000))
    assert comparison.is_price_match
