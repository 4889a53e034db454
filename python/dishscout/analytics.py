from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .cards import CanonicalRecord
from .config import IMAGE_CDN_PREFIX, PRICE_MINOR_UNITS, TOP_N


@dataclass(frozen=True)
class PricePoint:
    name: str
    price: float
    locality: str
    delivery_time: str
    avg_rating: str

    @classmethod
    def from_record(cls, record: CanonicalRecord) -> "PricePoint":
        return cls(
            name=record.restaurant_name,
            price=record.price,
            locality=record.locality,
            delivery_time=record.delivery_time,
            avg_rating=record.restaurant_avg_rating,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "locality": self.locality,
            "deliveryTime": self.delivery_time,
            "avgRating": self.avg_rating,
        }


@dataclass(frozen=True)
class AnalyticsResult:
    min: Optional[PricePoint] = None
    max: Optional[PricePoint] = None
    avg_price: float = 0
    price_vs_rating: List[Dict[str, float]] = field(default_factory=list)
    price_vs_distance: List[Dict[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min.to_dict() if self.min else None,
            "max": self.max.to_dict() if self.max else None,
            "avgPrice": self.avg_price,
            "priceVSrating": list(self.price_vs_rating),
            "priceVSdistance": list(self.price_vs_distance),
        }


@dataclass(frozen=True)
class TopRatedCard:
    name: str
    image_url: str
    price: float
    rating: float
    rating_count: float
    rating_count_v2: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "imageUrl": self.image_url,
            "price": self.price,
            "ratings": {
                "rating": self.rating,
                "ratingCount": self.rating_count,
                "ratingCountV2": self.rating_count_v2,
            },
        }


@dataclass(frozen=True)
class PriceComparison:
    menu_price: float
    competitor_avg_price: float
    price_difference: float
    percentage_difference: str
    is_more_expensive: bool
    is_less_expensive: bool
    is_price_match: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "menuPrice": self.menu_price,
            "competitorAvgPrice": self.competitor_avg_price,
            "priceDifference": self.price_difference,
            "percentageDifference": self.percentage_difference,
            "isMoreExpensive": self.is_more_expensive,
            "isLessExpensive": self.is_less_expensive,
            "isPriceMatch": self.is_price_match,
        }


def _positive_price(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _as_float(value: Any) -> Optional[float]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def analyze(records: Iterable[CanonicalRecord]) -> AnalyticsResult:
    """
    Price extremes, mean price and the two scatter series over records with
    a positive price. On equal prices the first record seen stays min/max.
    """
    low: Optional[CanonicalRecord] = None
    high: Optional[CanonicalRecord] = None
    total = 0.0
    count = 0
    price_vs_rating: List[Dict[str, float]] = []
    price_vs_distance: List[Dict[str, float]] = []

    for record in records:
        price = _positive_price(record.price)
        if price is None:
            continue
        if low is None or price < low.price:
            low = record
        if high is None or price > high.price:
            high = record
        total += price
        count += 1

        rating = _as_float(record.aggregated_rating)
        if rating is not None:
            price_vs_rating.append({"price": price, "rating": rating})
        price_vs_distance.append({"price": price, "distance": record.last_mile_travel})

    return AnalyticsResult(
        min=PricePoint.from_record(low) if low is not None else None,
        max=PricePoint.from_record(high) if high is not None else None,
        avg_price=total / count if count else 0,
        price_vs_rating=price_vs_rating,
        price_vs_distance=price_vs_distance,
    )


def rating_value(record: CanonicalRecord) -> float:
    parsed = _as_float(record.aggregated_rating)
    return parsed if parsed is not None else 0.0


def top_rated(
    records: Iterable[CanonicalRecord],
    n: int = TOP_N,
    *,
    image_prefix: str = IMAGE_CDN_PREFIX,
) -> List[TopRatedCard]:
    # sorted() is stable under reverse=True, so equal ratings keep input order.
    ranked = sorted(records, key=rating_value, reverse=True)
    return [
        TopRatedCard(
            name=record.restaurant_name,
            image_url=f"{image_prefix}{record.image_id}",
            price=record.price,
            rating=record.aggregated_rating,
            rating_count=record.rating_count,
            rating_count_v2=record.rating_count_v2,
        )
        for record in ranked[:max(n, 0)]
    ]


def compare_menu_price(menu_price: Any, analytics: AnalyticsResult) -> PriceComparison:
    """Compare a menu price in rupees with the competitor average reported in paise."""
    price = _as_float(menu_price) or 0.0
    competitor_avg = (analytics.avg_price or 0) / PRICE_MINOR_UNITS
    difference = price - competitor_avg
    if competitor_avg > 0:
        percentage = f"{difference / competitor_avg * 100:.2f}"
    else:
        percentage = "0.00"
    return PriceComparison(
        menu_price=price,
        competitor_avg_price=competitor_avg,
        price_difference=difference,
        percentage_difference=percentage,
        is_more_expensive=difference > 0,
        is_less_expensive=difference < 0,
        is_price_match=abs(difference) < 0.01,
    )
