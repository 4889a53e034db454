"""
Capture -> replay -> normalize -> analyze, for one item or a whole menu.

A single scrape walks ``capturing -> replaying -> normalizing -> analyzing``.
It returns None when the search page never issued the API call (not found),
an empty ScrapeResult when no card survives filtering, and raises a
ScrapeError subclass for stage failures. Nothing is retried here.

Menu batches fan out one scrape per item. A failing item becomes an
ItemAnalysis with ``analytics=None`` and never aborts its siblings.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import requests

from .analytics import (
    AnalyticsResult,
    PriceComparison,
    TopRatedCard,
    analyze,
    compare_menu_price,
    top_rated,
)
from .browser import BrowserSessionManager
from .capture import CapturedRequestTemplate, capture_search_request
from .cards import CanonicalRecord, CardTally, extract_cards, map_cards
from .config import (
    BATCH_TIMEOUT_SEC,
    CAPTURE_TIMEOUT_MS,
    HEADLESS,
    MAX_CONCURRENT_ITEMS,
    REPLAY_TIMEOUT_SEC,
    SCRAPER_MODE,
    TOP_N,
)
from .errors import CaptureError, ScrapeError
from .replay import replay_search_request

logger = logging.getLogger("dishscout.pipeline")

# Extra time allowed on top of the navigation timeout for page setup/teardown.
CAPTURE_GRACE_SEC = 15

STATUS_OK = "ok"
STATUS_NOT_FOUND = "not_found"
STATUS_EMPTY = "empty"
STATUS_ERROR = "error"
STATUS_TIMEOUT = "timeout"


class PipelineMode(Enum):
    SHARED_SESSION = "shared"
    FRESH_BROWSER = "fresh"


@dataclass(frozen=True)
class PipelineOptions:
    mode: PipelineMode = PipelineMode.SHARED_SESSION
    quality_gate: bool = True
    top_n: int = TOP_N
    capture_timeout_ms: int = CAPTURE_TIMEOUT_MS
    replay_timeout_sec: float = REPLAY_TIMEOUT_SEC

    @classmethod
    def from_env(cls) -> "PipelineOptions":
        try:
            mode = PipelineMode(SCRAPER_MODE)
        except ValueError:
            logger.warning("unknown SCRAPER_MODE %r, using shared session", SCRAPER_MODE)
            mode = PipelineMode.SHARED_SESSION
        return cls(mode=mode)


@dataclass
class ScrapeResult:
    item: str
    records: List[CanonicalRecord]
    analytics: AnalyticsResult
    top_rated: List[TopRatedCard]
    tally: CardTally = field(default_factory=CardTally)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def to_dict(self, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        if self.is_empty:
            payload: Dict[str, Any] = {"analytics": {}, "cards": []}
        else:
            payload = {
                "analytics": self.analytics.to_dict(),
                "cards": [card.to_dict() for card in self.top_rated],
            }
        if fields is not None:
            payload["records"] = [record.to_dict(fields) for record in self.records]
        return payload


@dataclass(frozen=True)
class MenuItem:
    name: str
    price: Any = 0


@dataclass
class ItemAnalysis:
    item: MenuItem
    status: str
    analytics: Optional[AnalyticsResult] = None
    comparison: Optional[PriceComparison] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        analysis = None
        if self.analytics is not None:
            analysis = self.analytics.to_dict()
            if self.comparison is not None:
                analysis["comparison"] = self.comparison.to_dict()
        return {
            "itemName": self.item.name,
            "menuPrice": self.item.price,
            "status": self.status,
            "analysis": analysis,
            "error": self.error,
        }


def summarize_menu(analyses: Sequence[ItemAnalysis]) -> Dict[str, Any]:
    valid = [a for a in analyses if a.analytics is not None and a.comparison is not None]
    return {
        "total": len(analyses),
        "analysed": len(valid),
        "failed": len(analyses) - len(valid),
        "moreExpensive": sum(1 for a in valid if a.comparison.is_more_expensive),
        "lessExpensive": sum(1 for a in valid if a.comparison.is_less_expensive),
        "priceMatch": sum(1 for a in valid if a.comparison.is_price_match),
    }


class CompetitorScraper:
    def __init__(
        self,
        manager: Optional[BrowserSessionManager] = None,
        options: Optional[PipelineOptions] = None,
        *,
        http_session: Optional[requests.Session] = None,
    ):
        self.options = options or PipelineOptions()
        if manager is None and self.options.mode is PipelineMode.SHARED_SESSION:
            manager = BrowserSessionManager()
        self.manager = manager
        self.http_session = http_session

    def _run_capture(self, manager: BrowserSessionManager, item: str) -> Optional[CapturedRequestTemplate]:
        timeout_ms = self.options.capture_timeout_ms
        try:
            return manager.run(
                capture_search_request(manager, item, timeout_ms=timeout_ms),
                timeout=timeout_ms / 1000 + CAPTURE_GRACE_SEC,
            )
        except concurrent.futures.TimeoutError as exc:
            raise CaptureError(f"capture for {item!r} exceeded {timeout_ms}ms") from exc

    def capture(self, item: str) -> Optional[CapturedRequestTemplate]:
        if self.options.mode is PipelineMode.SHARED_SESSION:
            return self._run_capture(self.manager, item)
        headless = self.manager.headless if self.manager is not None else HEADLESS
        private = BrowserSessionManager(headless=headless)
        try:
            return self._run_capture(private, item)
        finally:
            private.shutdown()

    def scrape(self, item: str, lat: str, lng: str) -> Optional[ScrapeResult]:
        started = time.perf_counter()
        logger.info("capturing search request for %r", item)
        template = self.capture(item)
        if template is None:
            logger.info("no search request captured for %r", item)
            return None

        logger.info("replaying search request for %r", item)
        raw = replay_search_request(
            template,
            lat,
            lng,
            item,
            timeout=self.options.replay_timeout_sec,
            session=self.http_session,
        )

        cards = extract_cards(raw)
        tally = CardTally()
        records = map_cards(cards, quality_gate=self.options.quality_gate, tally=tally)

        result = ScrapeResult(
            item=item,
            records=records,
            analytics=analyze(records),
            top_rated=top_rated(records, self.options.top_n),
            tally=tally,
        )
        logger.info(
            "scraped %r: %s cards, %s records in %.2fs",
            item,
            len(cards),
            len(records),
            time.perf_counter() - started,
        )
        return result

    def analyze_item(self, item: MenuItem, lat: str, lng: str) -> ItemAnalysis:
        try:
            result = self.scrape(item.name, lat, lng)
        except ScrapeError as exc:
            logger.warning("%s failed for %r: %s", exc.stage, item.name, exc)
            return ItemAnalysis(item=item, status=STATUS_ERROR, error=f"{exc.stage}: {exc}")
        except Exception as exc:
            logger.exception("unexpected failure for %r", item.name)
            return ItemAnalysis(item=item, status=STATUS_ERROR, error=str(exc))

        if result is None:
            return ItemAnalysis(item=item, status=STATUS_NOT_FOUND)
        if result.is_empty:
            return ItemAnalysis(item=item, status=STATUS_EMPTY)
        return ItemAnalysis(
            item=item,
            status=STATUS_OK,
            analytics=result.analytics,
            comparison=compare_menu_price(item.price, result.analytics),
        )

    def iter_menu_analyses(
        self,
        items: Sequence[MenuItem],
        lat: str,
        lng: str,
        *,
        timeout: float = BATCH_TIMEOUT_SEC,
        max_workers: int = MAX_CONCURRENT_ITEMS,
    ) -> Iterator[Tuple[int, ItemAnalysis]]:
        """Yield ``(index, analysis)`` in completion order; unfinished items time out."""
        if not items:
            return
        pending = set(range(len(items)))
        executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items))))
        try:
            futures = {
                executor.submit(self.analyze_item, item, lat, lng): index
                for index, item in enumerate(items)
            }
            try:
                for future in as_completed(futures, timeout=timeout):
                    index = futures[future]
                    pending.discard(index)
                    yield index, future.result()
            except concurrent.futures.TimeoutError:
                logger.warning("menu batch hit %.0fs deadline with %s items pending", timeout, len(pending))
        finally:
            # Running scrapes cannot be interrupted; they finish in the background.
            executor.shutdown(wait=False, cancel_futures=True)

        for index in sorted(pending):
            yield index, ItemAnalysis(
                item=items[index],
                status=STATUS_TIMEOUT,
                error=f"no result within {timeout:.0f}s",
            )

    def analyze_menu(
        self,
        items: Sequence[MenuItem],
        lat: str,
        lng: str,
        *,
        timeout: float = BATCH_TIMEOUT_SEC,
        max_workers: int = MAX_CONCURRENT_ITEMS,
    ) -> List[ItemAnalysis]:
        results: List[Optional[ItemAnalysis]] = [None] * len(items)
        for index, analysis in self.iter_menu_analyses(
            items, lat, lng, timeout=timeout, max_workers=max_workers
        ):
            results[index] = analysis
        return [analysis for analysis in results if analysis is not None]

    def stream_menu_events(
        self,
        items: Sequence[MenuItem],
        lat: str,
        lng: str,
        *,
        timeout: float = BATCH_TIMEOUT_SEC,
        max_workers: int = MAX_CONCURRENT_ITEMS,
    ) -> Iterator[Dict[str, Any]]:
        total = len(items)
        results: List[Optional[ItemAnalysis]] = [None] * total
        started = time.perf_counter()

        completed = 0
        for index, analysis in self.iter_menu_analyses(
            items, lat, lng, timeout=timeout, max_workers=max_workers
        ):
            results[index] = analysis
            completed += 1
            yield {
                "type": "progress",
                "item": analysis.item.name,
                "completed": completed,
                "total": total,
                "status": analysis.status,
            }

        analyses = [analysis for analysis in results if analysis is not None]
        yield {
            "type": "done",
            "elapsed": round(time.perf_counter() - started, 2),
            "items": [analysis.to_dict() for analysis in analyses],
            "summary": summarize_menu(analyses),
        }

    def close(self) -> None:
        if self.manager is not None:
            self.manager.shutdown()
