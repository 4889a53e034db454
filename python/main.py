from __future__ import annotations

import atexit
import json
import logging
import math
import os
import re
import signal
import sys
import threading
import time
from functools import partial
from typing import Any, List, Optional, Tuple

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request

load_dotenv()

from dishscout.cards import unknown_fields  # noqa: E402
from dishscout.config import (  # noqa: E402
    DEFAULT_ITEM,
    DEFAULT_LAT,
    DEFAULT_LNG,
    MAX_ITEM_LENGTH,
    env_int,
)
from dishscout.errors import ScrapeError  # noqa: E402
from dishscout.pipeline import (  # noqa: E402
    CompetitorScraper,
    MenuItem,
    PipelineOptions,
    summarize_menu,
)

app = Flask(__name__)
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("dishscout")

START_TIME = time.time()
MAX_MENU_ITEMS = env_int("MAX_MENU_ITEMS", 40, min_value=1, max_value=200)

scraper = CompetitorScraper(options=PipelineOptions.from_env())
atexit.register(scraper.close)


def normalize_item(raw: str) -> str:
    normalized = re.sub(r"\s+", " ", raw).strip()
    return normalized[:MAX_ITEM_LENGTH]


def is_coordinate(raw: Any) -> bool:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value)


def coordinate_or_default(raw: Any, default: str) -> str:
    if raw is None:
        return default
    value = str(raw).strip()
    return value if value else default


def parse_fields(raw_value: str | None) -> Optional[List[str]]:
    if raw_value is None:
        return None
    names = [name.strip() for name in raw_value.split(",") if name.strip()]
    return names or None


def parse_menu_body(payload: Any) -> Tuple[List[MenuItem], str, str]:
    if not isinstance(payload, dict):
        raise ValueError("JSON object body is required")
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValueError("items must be a non-empty list")
    if len(raw_items) > MAX_MENU_ITEMS:
        raise ValueError(f"at most {MAX_MENU_ITEMS} items per request")

    items: List[MenuItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValueError("each item must be an object with a name")
        name = normalize_item(str(raw.get("name") or ""))
        if not name:
            raise ValueError("each item needs a name")
        items.append(MenuItem(name=name, price=raw.get("price", 0)))

    lat = coordinate_or_default(payload.get("lat"), DEFAULT_LAT)
    lng = coordinate_or_default(payload.get("long"), DEFAULT_LNG)
    if not (is_coordinate(lat) and is_coordinate(lng)):
        raise ValueError("lat and long must be numeric")
    return items, lat, lng


@app.after_request
def add_security_headers(response):
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Cross-Origin-Resource-Policy", "same-site")
    return response


@app.route("/api/scrape")
def api_scrape():
    item = normalize_item(request.args.get("item") or "") or DEFAULT_ITEM
    lat = (request.args.get("lat") or DEFAULT_LAT).strip()
    lng = (request.args.get("long") or DEFAULT_LNG).strip()
    if not (is_coordinate(lat) and is_coordinate(lng)):
        return jsonify({"error": "lat and long must be numeric"}), 400

    fields = parse_fields(request.args.get("fields"))
    if fields is not None:
        unknown = unknown_fields(fields)
        if unknown:
            return jsonify({"error": f"unknown fields: {', '.join(unknown)}"}), 400

    try:
        result = scraper.scrape(item, lat, lng)
    except ScrapeError as exc:
        logger.error("scrape failed for %r at stage %s: %s", item, exc.stage, exc)
        return jsonify({
            "error": f"{type(exc).__name__}: {exc}",
            "stage": exc.stage,
        }), 500

    if result is None:
        return jsonify({"error": "search API request not found"}), 404
    return jsonify(result.to_dict(fields))


@app.route("/api/menu/analyze", methods=["POST"])
def api_menu_analyze():
    try:
        items, lat, lng = parse_menu_body(request.get_json(silent=True))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    analyses = scraper.analyze_menu(items, lat, lng)
    if not any(analysis.analytics is not None for analysis in analyses):
        logger.warning("competitor analysis failed for all %s menu items", len(items))
    return jsonify({
        "items": [analysis.to_dict() for analysis in analyses],
        "summary": summarize_menu(analyses),
    })


@app.route("/api/menu/analyze/stream", methods=["POST"])
def api_menu_analyze_stream():
    try:
        items, lat, lng = parse_menu_body(request.get_json(silent=True))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    def event_stream():
        for event in scraper.stream_menu_events(items, lat, lng):
            yield f"data: {json.dumps(event)}\n\n"

    return Response(
        event_stream(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.route("/health")
def health():
    return {
        "status": "ok",
        "uptime_sec": int(time.time() - START_TIME),
        "browser": scraper.manager.state if scraper.manager is not None else "per-call",
        "mode": scraper.options.mode.value,
    }


def handle_termination(signum, frame, previous=None):
    logger.info("received signal %s, closing browser before exit", signum)
    scraper.close()
    if callable(previous):
        previous(signum, frame)
        return
    sys.exit(0)


def install_signal_handlers() -> None:
    """Close the browser on SIGINT/SIGTERM, then defer to whatever handler was there."""
    if threading.current_thread() is not threading.main_thread():
        return
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous = signal.getsignal(signum)
        signal.signal(signum, partial(handle_termination, previous=previous))


install_signal_handlers()


if __name__ == "__main__":
    host = os.getenv("APP_HOST", "0.0.0.0")
    port = env_int("PORT", 5000, min_value=1, max_value=65535)
    debug = os.getenv("APP_DEBUG", "0") == "1"
    app.run(host=host, port=port, debug=debug, threaded=True)
