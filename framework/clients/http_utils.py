"""Minimal HTTP JSON helper for provider clients."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import ExternalServiceError

logger = logging.getLogger(__name__)


def post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout_sec: float = 60.0) -> dict[str, Any]:
    """POST a JSON payload and decode the JSON response."""
    request = Request(url=url, data=json.dumps(payload).encode("utf-8"), method="POST")
    request.add_header("Content-Type", "application/json")
    for key, value in headers.items():
        request.add_header(key, value)

    # Query strings may carry API keys; never log them.
    safe_url = url.split("?", 1)[0]
    logger.debug("POST %s", safe_url)
    try:
        with urlopen(request, timeout=timeout_sec) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise ExternalServiceError(f"HTTP {exc.code} from {safe_url}: {detail}") from exc
    except URLError as exc:
        raise ExternalServiceError(f"Network error calling {safe_url}: {exc.reason}") from exc
    except TimeoutError as exc:
        raise ExternalServiceError(f"Timed out after {timeout_sec}s calling {safe_url}") from exc

    try:
        return json.loads(raw) if raw else {}
    except json.JSONDecodeError as exc:
        raise ExternalServiceError(f"Non-JSON response from {safe_url}: {exc}") from exc
