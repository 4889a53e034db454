"""Builders for search responses shaped like the platform's v3 search API."""

import json

from dishscout.capture import CapturedRequestTemplate

DISH_TYPE = "type.googleapis.com/swiggy.presentation.food.v2.Dish"
BANNER_TYPE = "type.googleapis.com/swiggy.gandalf.widgets.v2.GridWidget"

TEMPLATE = CapturedRequestTemplate(
    url=(
        "https://www.swiggy.com/dapi/restaurants/search/v3?"
        "lat=12.97&lng=77.59&str=Biryani&trackingId=abc&submitAction=ENTER"
    ),
    method="GET",
    headers={
        "accept": "*/*",
        "user-agent": "HeadlessChrome/123.0",
        "cookie": "_session_tid=xyz",
    },
)


def dish_card(
    name,
    price,
    rating,
    *,
    rating_count="100+ ratings",
    rating_count_v2="120",
    image_id=None,
    locality="Karol Bagh",
    delivery_time=30,
    last_mile=2.5,
    avg_rating=4.2,
):
    return {
        "card": {
            "card": {
                "@type": DISH_TYPE,
                "info": {
                    "name": "Chicken Biryani",
                    "imageId": image_id or f"img-{name.lower().replace(' ', '-')}",
                    "price": price,
                    "ratings": {
                        "aggregatedRating": {
                            "rating": rating,
                            "ratingCount": rating_count,
                            "ratingCountV2": rating_count_v2,
                        }
                    },
                },
                "restaurant": {
                    "info": {
                        "name": name,
                        "locality": locality,
                        "avgRating": avg_rating,
                        "sla": {
                            "deliveryTime": delivery_time,
                            "lastMileTravel": last_mile,
                        },
                    }
                },
            }
        }
    }


def banner_card():
    return {"card": {"card": {"@type": BANNER_TYPE, "gridElements": {}}}}


def filler_group():
    return {"card": {"card": {"@type": "type.googleapis.com/swiggy.gandalf.widgets.v2.Navigation"}}}


def search_response(cards, *, group_index=1):
    groups = [filler_group() for _ in range(group_index)]
    groups.append({"groupedCard": {"cardGroupMap": {"DISH": {"cards": cards}}}})
    return {"statusCode": 0, "data": {"cards": groups}}


def scenario_cards():
    return [
        dish_card("Biryani House", 100, "4.5"),
        dish_card("Dum Pukht", 200, "4.0"),
        dish_card("Kebab Corner", 300, "3.5"),
    ]


class FakeResponse:
    def __init__(self, payload=None, *, text=None, status_code=200):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)
        self.content = self.text.encode("utf-8")

    @property
    def ok(self):
        return 200 <= self.status_code < 400


class FakeSession:
    """Stands in for requests.Session; records calls and returns canned responses."""

    def __init__(self, response=None, *, error=None, responder=None):
        self.response = response
        self.error = error
        self.responder = responder
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(url)
        return self.response
