"""
Container health check for the Spreadsheet Datasets API.

Exits 0 when ``GET /health`` answers ``{"status": "ok"}``, 1 otherwise.
"""

from __future__ import annotations

import json
import os
import sys
from urllib.error import URLError
from urllib.request import urlopen


def probe(base_url: str, *, timeout: float = 2.0) -> bool:
    try:
        with urlopen(f"{base_url.rstrip('/')}/health", timeout=timeout) as response:
            if response.status != 200:
                return False
            body = json.loads(response.read().decode("utf-8"))
    except (URLError, TimeoutError, ValueError):
        return False
    return isinstance(body, dict) and body.get("status") == "ok"


def main() -> int:
    base_url = os.getenv("HEALTHCHECK_URL") or f"http://127.0.0.1:{os.getenv('PORT', '8000')}"
    healthy = probe(base_url)
    if not healthy:
        print(f"Health check failed for {base_url}", file=sys.stderr)
    return 0 if healthy else 1


if __name__ == "__main__":
    raise SystemExit(main())
