"""
Locate dish cards in a search response and flatten them into records.

The response layout is unversioned. Every lookup here walks the JSON
defensively: a missing branch yields ``None`` instead of raising, and a card
that does not look like a dish is classified as ``CardKind.OTHER`` before any
of its fields are read.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger("dishscout.cards")

DISH_TYPE_MARKER = "Dish"
PRIMARY_GROUP_INDEX = 1
COUNT_PATTERN = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*([kK])?")


class CardKind(Enum):
    DISH = "dish"
    OTHER = "other"


@dataclass(frozen=True)
class CanonicalRecord:
    restaurant_name: str
    image_id: str
    price: float
    locality: str
    delivery_time: str
    restaurant_avg_rating: str
    aggregated_rating: float
    rating_count: float
    rating_count_v2: float
    last_mile_travel: float

    def to_dict(self, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        payload = {
            "restaurantName": self.restaurant_name,
            "imageId": self.image_id,
            "price": self.price,
            "locality": self.locality,
            "deliveryTime": self.delivery_time,
            "restaurantAvgRating": self.restaurant_avg_rating,
            "aggregatedRating": self.aggregated_rating,
            "ratingCount": self.rating_count,
            "ratingCountV2": self.rating_count_v2,
            "lastMileTravel": self.last_mile_travel,
        }
        if fields is None:
            return payload
        return {name: payload[name] for name in fields}


RECORD_FIELDS = (
    "restaurantName",
    "imageId",
    "price",
    "locality",
    "deliveryTime",
    "restaurantAvgRating",
    "aggregatedRating",
    "ratingCount",
    "ratingCountV2",
    "lastMileTravel",
)


def unknown_fields(requested: Iterable[str]) -> List[str]:
    return [name for name in requested if name not in RECORD_FIELDS]


@dataclass
class CardTally:
    kept: int = 0
    not_dish: int = 0
    malformed: int = 0
    low_signal: int = 0

    @property
    def dropped(self) -> int:
        return self.not_dish + self.malformed + self.low_signal

    @property
    def total(self) -> int:
        return self.kept + self.dropped


def dig(node: Any, *path: Any) -> Any:
    """Follow ``path`` through nested dicts/lists, returning None on any miss."""
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or not -len(node) <= key < len(node):
                return None
            node = node[key]
        else:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        if node is None:
            return None
    return node


def _dish_collection(group: Any) -> Optional[List[Any]]:
    cards = dig(group, "groupedCard", "cardGroupMap", "DISH", "cards")
    return cards if isinstance(cards, list) else None


def extract_cards(raw: Any) -> List[Any]:
    groups = dig(raw, "data", "cards")
    if not isinstance(groups, list):
        return []

    primary = _dish_collection(dig(groups, PRIMARY_GROUP_INDEX))
    if primary is not None:
        return list(primary)

    for index, group in enumerate(groups):
        found = _dish_collection(group)
        if found is not None:
            logger.info("dish cards found at fallback group %s", index)
            return list(found)
    return []


def dish_body(raw: Any) -> Optional[Dict[str, Any]]:
    body = dig(raw, "card", "card")
    if not isinstance(body, dict):
        return None
    card_type = body.get("@type")
    if not isinstance(card_type, str) or DISH_TYPE_MARKER not in card_type:
        return None
    if not isinstance(body.get("info"), dict):
        return None
    if not isinstance(dig(body, "restaurant", "info"), dict):
        return None
    return body


def classify_card(raw: Any) -> CardKind:
    return CardKind.DISH if dish_body(raw) is not None else CardKind.OTHER


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def _number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return 0
        return parsed if math.isfinite(parsed) else 0
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _count(value: Any) -> float:
    """Numeric rating counts, including display strings such as ``"1.2K+ ratings"``."""
    if isinstance(value, str):
        match = COUNT_PATTERN.search(value)
        if not match:
            return 0
        count = float(match.group(1))
        if match.group(2):
            count *= 1000
        return int(count) if count.is_integer() else count
    return _number(value)


def map_card(raw: Any) -> Optional[CanonicalRecord]:
    body = dish_body(raw)
    if body is None:
        return None
    info = body["info"]
    restaurant = body["restaurant"]["info"]
    sla = restaurant.get("sla") or {}
    aggregated = dig(info, "ratings", "aggregatedRating") or {}

    price = _number(info.get("price"))
    return CanonicalRecord(
        restaurant_name=_text(restaurant.get("name")),
        image_id=_text(info.get("imageId")),
        price=price if price > 0 else 0,
        locality=_text(restaurant.get("locality")),
        delivery_time=_text(sla.get("deliveryTime")),
        restaurant_avg_rating=_text(restaurant.get("avgRating")),
        aggregated_rating=_number(aggregated.get("rating")),
        rating_count=_count(aggregated.get("ratingCount")),
        rating_count_v2=_count(aggregated.get("ratingCountV2")),
        last_mile_travel=_number(sla.get("lastMileTravel")),
    )


def passes_quality_gate(record: CanonicalRecord) -> bool:
    return (
        record.aggregated_rating != 0
        and record.rating_count != 0
        and record.rating_count_v2 != 0
    )


def map_cards(
    cards: Iterable[Any],
    *,
    quality_gate: bool = True,
    tally: Optional[CardTally] = None,
) -> List[CanonicalRecord]:
    tally = tally if tally is not None else CardTally()
    records: List[CanonicalRecord] = []

    for raw in cards:
        if classify_card(raw) is CardKind.OTHER:
            tally.not_dish += 1
            continue
        try:
            record = map_card(raw)
        except (AttributeError, TypeError, ValueError, KeyError) as exc:
            tally.malformed += 1
            logger.debug("dropping malformed dish card: %s", exc)
            continue
        if quality_gate and not passes_quality_gate(record):
            tally.low_signal += 1
            continue
        tally.kept += 1
        records.append(record)

    logger.info(
        "mapped %s records (not dish=%s, malformed=%s, low signal=%s)",
        tally.kept,
        tally.not_dish,
        tally.malformed,
        tally.low_signal,
    )
    return records
