# securescan/scanner/engines/http_engine.py
"""
HTTP header collection engine.

Sends a single HEAD request to the target URL and records the response
headers. Redirects are not followed: the headers graded are the ones the
target itself sends. Certificate verification is off so a bad certificate
does not hide the headers.

Header names are lowercased. A header sent more than once arrives as a
single ", "-joined value.

Output data structure (stored in EngineResult.data):
    {
        "url": "https://example.com/",
        "status_code": 200,
        "headers": {"strict-transport-security": "max-age=63072000", ...}
    }

Config options:
    url:      str  : URL to request (default: the target URL)
    timeout:  float: request timeout in seconds (default: 10)
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests
import urllib3

from securescan.scanner.base import BaseEngine, EngineResult, ScanTarget

logger = logging.getLogger(__name__)

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

DEFAULT_HEADER_TIMEOUT = 10.0
USER_AGENT = "SecureScan Security Headers Analyzer"


class HTTPEngine(BaseEngine):

    @property
    def name(self) -> str:
        return "http"

    def execute(self, target: ScanTarget, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)

        url = config.get("url") or target.url
        timeout = float(config.get("timeout", DEFAULT_HEADER_TIMEOUT))

        try:
            resp = requests.head(
                url,
                timeout=timeout,
                allow_redirects=False,
                verify=False,
                headers={"User-Agent": USER_AGENT},
            )
        except requests.Timeout:
            return result.fail(f"Request timeout fetching {url}")
        except requests.RequestException as e:
            return result.fail(f"Request to {url} failed: {e}")

        result.data = {
            "url": url,
            "status_code": resp.status_code,
            "headers": {k.lower(): v for k, v in resp.headers.items()},
        }
        result.metadata = {"timeout": timeout, "header_count": len(resp.headers)}
        logger.debug(f"HEAD {url} -> {resp.status_code} ({len(resp.headers)} headers)")
        return result
