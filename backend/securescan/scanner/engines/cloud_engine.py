# securescan/scanner/engines/cloud_engine.py
"""
Cloud provider fingerprinting engine.

Matches the target hostname against CLOUD_PROVIDERS, in table order,
first match wins. When the hostname itself matches nothing, resolves it
forward, takes the PTR names of the first address and matches those
instead.

DNS failures are not errors: they just mean no provider was detected.

Output data structure (stored in EngineResult.data):
    {
        "hostname": "mybucket.s3.amazonaws.com",
        "detection": {                       # None when nothing matched
            "provider": "aws",
            "matched_hostname": "mybucket.s3.amazonaws.com",
            "source": "hostname"             # or "reverse_dns"
        },
        "address": "52.216.0.1",             # only when DNS was consulted
        "reverse_hostnames": [...]
    }

Config options:
    dns_timeout:  float: per-query resolver timeout in seconds (default: 5)
"""

from __future__ import annotations

import logging
import re
import socket
from typing import Any, Dict, List, Optional, Pattern, Tuple

import dns.exception
import dns.resolver
import dns.reversename

from securescan.scanner.base import BaseEngine, EngineResult, ScanTarget

logger = logging.getLogger(__name__)

DEFAULT_DNS_TIMEOUT = 5.0


def _patterns(*expressions: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(expr) for expr in expressions)


# Order matters: the first provider with a matching pattern wins.
CLOUD_PROVIDERS: Tuple[Tuple[str, Tuple[Pattern[str], ...]], ...] = (
    ("aws", _patterns(
        r"\.amazonaws\.com$",
        r"\.aws\.com$",
        r".*\.elasticbeanstalk\.com$",
        r".*\.elb\.amazonaws\.com$",
        r".*\.s3\.amazonaws\.com$",
        r".*\.cloudfront\.net$",
        r".*\.execute-api\..*\.amazonaws\.com$",
    )),
    ("azure", _patterns(
        r"\.azure\.com$",
        r"\.azurewebsites\.net$",
        r"\.windows\.net$",
        r"\.cloudapp\.net$",
        r"\.azureedge\.net$",
        r"\.azurecontainer\.io$",
        r"\.database\.windows\.net$",
    )),
    ("gcp", _patterns(
        r"\.googleapis\.com$",
        r"\.googleusercontent\.com$",
        r"\.appspot\.com$",
        r"\.cloudfunctions\.net$",
        r"\.run\.app$",
        r"\.storage\.googleapis\.com$",
        r".*\.googlehosted\.com$",
    )),
    ("digitalocean", _patterns(
        r"\.digitaloceanspaces\.com$",
        r".*\.ondigitalocean\.app$",
        r".*\.do\.dev$",
    )),
    ("cloudflare", _patterns(
        r"\.cloudflare\.com$",
        r".*\.workers\.dev$",
        r".*\.pages\.dev$",
    )),
    ("vercel", _patterns(
        r".*\.vercel\.app$",
        r".*\.now\.sh$",
    )),
    ("netlify", _patterns(
        r".*\.netlify\.app$",
        r".*\.netlify\.com$",
    )),
)


def match_provider(hostname: str) -> Optional[str]:
    """Name of the first provider whose patterns match, else None."""
    hostname = hostname.lower().rstrip(".")
    for provider, patterns in CLOUD_PROVIDERS:
        if any(p.search(hostname) for p in patterns):
            return provider
    return None


class CloudEngine(BaseEngine):

    @property
    def name(self) -> str:
        return "cloud"

    def execute(self, target: ScanTarget, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)
        hostname = target.hostname
        timeout = float(config.get("dns_timeout", DEFAULT_DNS_TIMEOUT))

        data: Dict[str, Any] = {"hostname": hostname, "detection": None}
        result.data = data

        provider = match_provider(hostname)
        if provider:
            data["detection"] = {
                "provider": provider,
                "matched_hostname": hostname,
                "source": "hostname",
            }
            return result

        # --- Fall back to reverse DNS ---
        address = self._resolve(hostname)
        data["address"] = address
        if not address:
            return result

        reverse_names = self._reverse_lookup(address, timeout)
        data["reverse_hostnames"] = reverse_names
        for name in reverse_names:
            provider = match_provider(name)
            if provider:
                data["detection"] = {
                    "provider": provider,
                    "matched_hostname": name,
                    "source": "reverse_dns",
                }
                break

        if data["detection"] is None:
            logger.debug(f"No cloud provider detected for {hostname}")
        return result

    def _resolve(self, hostname: str) -> Optional[str]:
        try:
            results = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (socket.gaierror, socket.herror, OSError):
            return None
        return results[0][4][0] if results else None

    def _reverse_lookup(self, ip: str, timeout: float) -> List[str]:
        names = self._query_ptr(ip, timeout)
        if names:
            return names
        try:
            primary, aliases, _ = socket.gethostbyaddr(ip)
        except (socket.herror, socket.gaierror, OSError):
            return []
        return [primary] + [a for a in aliases if a != primary]

    def _query_ptr(self, ip: str, timeout: float) -> List[str]:
        """PTR records via dnspython."""
        try:
            rev_name = dns.reversename.from_address(ip)
            resolver = dns.resolver.Resolver()
            resolver.timeout = timeout
            resolver.lifetime = timeout * 2
            answers = resolver.resolve(rev_name, "PTR")
        except (dns.exception.DNSException, ValueError, OSError) as e:
            logger.debug(f"PTR query failed for {ip}: {e}")
            return []
        return [str(rdata).rstrip(".") for rdata in answers]
