from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from .capture import CapturedRequestTemplate
from .config import LAT_PARAM, LNG_PARAM, REPLAY_TIMEOUT_SEC, TERM_PARAM, USER_AGENT
from .errors import NetworkError, ResponseParseError

logger = logging.getLogger("dishscout.replay")

# requests negotiates its own content encoding; the browser's value may ask
# for codecs it cannot decode.
DROPPED_HEADERS = {"user-agent", "accept-encoding", "content-length", "host"}


def substitute_query(url: str, overrides: Mapping[str, str]) -> str:
    """Overwrite ``overrides`` in the query string, keeping every other parameter in place."""
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    remaining = dict(overrides)
    replaced = []
    for key, value in pairs:
        if key in overrides:
            if key in remaining:
                replaced.append((key, remaining.pop(key)))
            continue
        replaced.append((key, value))
    replaced.extend(remaining.items())
    return urlunsplit(parts._replace(query=urlencode(replaced)))


def replay_headers(headers: Mapping[str, str], user_agent: str = USER_AGENT) -> Dict[str, str]:
    cleaned = {
        name: value
        for name, value in headers.items()
        if not name.startswith(":") and name.lower() not in DROPPED_HEADERS
    }
    cleaned["User-Agent"] = user_agent
    return cleaned


def replay_search_request(
    template: CapturedRequestTemplate,
    lat: str,
    lng: str,
    term: str,
    *,
    timeout: float = REPLAY_TIMEOUT_SEC,
    session: Optional[requests.Session] = None,
    user_agent: str = USER_AGENT,
) -> Any:
    url = substitute_query(template.url, {
        LAT_PARAM: str(lat),
        LNG_PARAM: str(lng),
        TERM_PARAM: term,
    })
    headers = replay_headers(template.headers, user_agent)
    http = session or requests

    logger.info("replaying search request for %r at (%s, %s)", term, lat, lng)
    try:
        response = http.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise NetworkError(f"replay request failed: {exc}") from exc

    if not response.ok and not response.content:
        raise NetworkError(f"replay request returned HTTP {response.status_code} with an empty body")

    try:
        return json.loads(response.text)
    except ValueError as exc:
        raise ResponseParseError(f"Failed to parse API response: {exc}") from exc
