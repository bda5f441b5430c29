#!/usr/bin/env python3
"""
RPKI Origin Validation for BGP Validator

Queries a Routinator-style validity endpoint for (origin AS, prefix) pairs:

    GET <scheme>://<host>/<path>?asn=<ASN>&prefix=<CIDR>
    -> {"validated_route": {"validity": {"state": "valid" | "invalid" | ...}}}

Design:
- Tri-state verdicts (VALID/INVALID/UNKNOWN); lookups never raise
- UNKNOWN covers transport errors, non-2xx responses and malformed bodies
- Liveness check at construction; a warming-up endpoint is rejected
- Bounded LRU cache of definitive verdicts
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple, Union

import requests

from bgp_validator.models import Verdict
from bgp_validator.utils.error_handling import ValidatorUnavailableError
from bgp_validator.utils.timeout_config import TimeoutType, get_timeout

WARMING_UP_MESSAGE = "Initial validation ongoing. Please wait."


def build_validator_url(scheme: str, host: str, path: str) -> str:
    """Join scheme, host and path into the endpoint base URL."""
    return f"{scheme}://{host}/{path.lstrip('/')}"


def parse_verdict(body: Any) -> Verdict:
    """
    Map a decoded response body to a verdict.

    "invalid" is INVALID, any other non-empty state is VALID, and a body
    without a usable state is UNKNOWN.
    """
    try:
        state = body["validated_route"]["validity"]["state"]
    except (KeyError, TypeError):
        return Verdict.UNKNOWN

    if not isinstance(state, str) or not state:
        return Verdict.UNKNOWN
    if state.lower() == "invalid":
        return Verdict.INVALID
    return Verdict.VALID


class RoutinatorValidator:
    """
    Client for a remote RPKI validity oracle.

    Thread-safe: the verdict cache and counters are guarded by a lock, and
    requests.Session may be shared across threads for simple GETs.
    """

    def __init__(self,
                 scheme: str,
                 host: str,
                 path: str,
                 timeout: Optional[float] = None,
                 check_url: bool = True,
                 cache_size: int = 10000,
                 session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the validator and optionally check the endpoint

        Args:
            scheme: URL scheme (http or https)
            host: Host and optional port (e.g. "127.0.0.1:8323")
            path: Endpoint path (e.g. "/validity")
            timeout: Per-request timeout in seconds
            check_url: Run the liveness check before returning
            cache_size: Maximum cached verdicts (0 disables caching)
            session: Optional pre-built requests session

        Raises:
            ValidatorUnavailableError: check failed or endpoint still warming up
        """
        self.logger = logger or logging.getLogger(__name__)
        self.url = build_validator_url(scheme, host, path)
        self.timeout = timeout if timeout is not None else get_timeout(TimeoutType.VALIDATOR_REQUEST)
        self.cache_size = max(0, cache_size)
        self.session = session or requests.Session()

        self._lock = threading.Lock()
        self._cache: "OrderedDict[Tuple[str, str], Verdict]" = OrderedDict()
        self._stats = {
            'requests': 0,
            'cache_hits': 0,
            'cache_misses': 0,
            'valid': 0,
            'invalid': 0,
            'unknown': 0,
        }

        if check_url:
            self.check_url()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Release pooled HTTP connections"""
        self.session.close()

    def check_url(self) -> None:
        """
        Check the endpoint with an empty query.

        Raises:
            ValidatorUnavailableError: endpoint unreachable or still warming up
        """
        try:
            response = self.session.get(
                self.url, params={'asn': '', 'prefix': ''}, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ValidatorUnavailableError(
                f"RPKI validity endpoint {self.url} is unreachable",
                guidance="Check validator.host and that the validator is running",
                technical_details=str(e),
            )

        if response.text.strip() == WARMING_UP_MESSAGE:
            self.logger.error(f"RPKI validity endpoint {self.url} is still running initial validation")
            raise ValidatorUnavailableError(
                f"RPKI validity endpoint {self.url} is not ready yet",
                guidance="Wait for the validator to finish its initial validation run",
            )

        self.logger.info(f"RPKI validity endpoint {self.url} is ready")

    def validate(self, origin_asn: Union[int, str], prefix: str) -> Verdict:
        """
        Look up the RPKI verdict for an origin AS and prefix.

        Never raises; failures are logged and return Verdict.UNKNOWN.
        """
        key = (str(origin_asn), prefix)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self._stats['cache_hits'] += 1
                self._stats[cached.value] += 1
                return cached
            self._stats['cache_misses'] += 1
            self._stats['requests'] += 1

        verdict = self._query(key[0], prefix)

        with self._lock:
            self._stats[verdict.value] += 1
            if verdict is not Verdict.UNKNOWN and self.cache_size > 0:
                self._cache[key] = verdict
                if len(self._cache) > self.cache_size:
                    self._cache.popitem(last=False)

        return verdict

    def _query(self, origin_asn: str, prefix: str) -> Verdict:
        try:
            response = self.session.get(
                self.url, params={'asn': origin_asn, 'prefix': prefix}, timeout=self.timeout
            )
        except requests.RequestException as e:
            self.logger.error(f"Validity request failed for AS{origin_asn} {prefix}: {e}")
            return Verdict.UNKNOWN

        if not 200 <= response.status_code < 300:
            self.logger.error(
                f"Validity request for AS{origin_asn} {prefix} returned HTTP {response.status_code}"
            )
            return Verdict.UNKNOWN

        try:
            body = response.json()
        except ValueError as e:
            self.logger.error(f"Malformed validity response for AS{origin_asn} {prefix}: {e}")
            return Verdict.UNKNOWN

        verdict = parse_verdict(body)
        if verdict is Verdict.UNKNOWN:
            self.logger.warning(f"Validity response for AS{origin_asn} {prefix} has no state")
        else:
            self.logger.debug(f"AS{origin_asn} {prefix}: {verdict.value}")
        return verdict

    def get_stats(self) -> Dict[str, Any]:
        """Request, cache and verdict counters"""
        with self._lock:
            stats = dict(self._stats)
            stats['cache_size'] = len(self._cache)
        lookups = stats['cache_hits'] + stats['cache_misses']
        stats['cache_hit_rate'] = (stats['cache_hits'] / lookups * 100) if lookups > 0 else 0.0
        return stats
