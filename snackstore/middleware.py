"""Request rate limiting and request logging."""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Protocol

from flask import Flask, Response, g, got_request_exception, request

from snackstore import constants

_PERIODS = {
    "S": timedelta(seconds=1),
    "M": timedelta(minutes=1),
    "H": timedelta(hours=1),
    "D": timedelta(days=1),
}
_LIMIT = re.compile(r"[+-]?[0-9]+")
_FALLBACK_RATE_LIMIT = 60
_STORE_PREFIX = "rate_limiter"


@dataclass(frozen=True)
class Rate:
    """At most `limit` requests per `period`."""

    limit: int
    period: timedelta
    formatted: str = ""


@dataclass(frozen=True)
class RateLimitContext:
    """Outcome of counting one request; reset is a Unix time in seconds."""

    limit: int
    remaining: int
    reset: int
    reached: bool


def _rate_from_formatted(text: str) -> Rate:
    parts = text.split("-")
    if len(parts) != 2 or not _LIMIT.fullmatch(parts[0]):
        raise ValueError(f"incorrect rate format {text!r}")
    period = _PERIODS.get(parts[1].upper())
    if period is None:
        raise ValueError(f"incorrect period {parts[1]!r}")
    return Rate(limit=int(parts[0]), period=period, formatted=text)


def parse_rate(rate_str: str | None) -> Rate:
    """Parse "<limit>-<S|M|H|D>"; empty means the default, invalid means 60 per minute."""
    trimmed = (rate_str or "").strip() or constants.DEFAULT_RATE_LIMIT
    try:
        return _rate_from_formatted(trimmed)
    except ValueError:
        return Rate(limit=_FALLBACK_RATE_LIMIT, period=timedelta(minutes=1))


def normalize_client_ip(ip: str) -> str:
    """Treat the IPv6 loopback as the IPv4 one so both share a counter."""
    return "127.0.0.1" if ip == "::1" else ip


class RateStore(Protocol):
    def increment(self, key: str, period: timedelta) -> tuple[int, float]: ...


class MemoryRateStore:
    """Fixed-window counters held in process memory."""

    def __init__(self, prefix: str = _STORE_PREFIX, clock: Callable[[], float] = time.time):
        self.prefix = prefix
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, period: timedelta) -> tuple[int, float]:
        """Count one hit; return the count in the window and when the window ends."""
        name = f"{self.prefix}:{key}"
        now = self._clock()
        with self._lock:
            count, expires = self._windows.get(name, (0, 0.0))
            if now >= expires:
                count, expires = 0, now + period.total_seconds()
            count += 1
            self._windows[name] = (count, expires)
        return count, expires


class RedisRateStore:
    """Fixed-window counters kept in Redis so several servers share them."""

    def __init__(
        self,
        client: Any,
        prefix: str = _STORE_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.prefix = prefix
        self._clock = clock

    def increment(self, key: str, period: timedelta) -> tuple[int, float]:
        """Count one hit; return the count in the window and when the window ends."""
        name = f"{self.prefix}:{key}"
        period_ms = max(1, int(period.total_seconds() * 1000))
        count = int(self.client.incr(name))
        ttl_ms = period_ms
        if count == 1:
            self.client.pexpire(name, period_ms)
        else:
            ttl_ms = int(self.client.pttl(name))
            if ttl_ms < 0:
                self.client.pexpire(name, period_ms)
                ttl_ms = period_ms
        return count, self._clock() + ttl_ms / 1000


class RateLimiter:
    """Counts requests per key against a rate."""

    def __init__(self, store: RateStore, rate: Rate):
        self.store = store
        self.rate = rate

    def get(self, key: str) -> RateLimitContext:
        """Count one request for the key and report whether the limit is passed."""
        count, expires = self.store.increment(key, self.rate.period)
        limit = self.rate.limit
        if count <= limit:
            remaining, reached = limit - count, False
        else:
            remaining, reached = 0, True
        return RateLimitContext(limit=limit, remaining=remaining, reset=int(expires), reached=reached)


def _seconds(threshold: timedelta | float | None) -> float:
    if threshold is None:
        return 0.0
    if isinstance(threshold, timedelta):
        return threshold.total_seconds()
    return float(threshold)


def install_request_logger(
    app: Flask,
    logger: logging.Logger | None = None,
    slow_threshold: timedelta | float | None = timedelta(seconds=2),
) -> None:
    """Log every request with its status and latency; slow ones as warnings."""
    log = logger if logger is not None else logging.getLogger(__name__)
    threshold = _seconds(slow_threshold)

    @app.before_request
    def _start_timer() -> None:
        g._request_started = time.perf_counter()
        g._request_error = None

    def _record_error(sender: Any, exception: BaseException, **extra: Any) -> None:
        g._request_error = exception

    got_request_exception.connect(_record_error, app, weak=False)

    @app.after_request
    def _log_request(response: Response) -> Response:
        started = g.get("_request_started", time.perf_counter())
        latency = time.perf_counter() - started
        fields: dict[str, Any] = {
            "status": response.status_code,
            "method": request.method,
            "path": request.path,
            "latency_ms": int(latency * 1000),
            "client_ip": request.remote_addr or "",
            "user_agent": request.headers.get("User-Agent", ""),
        }
        error = g.get("_request_error")
        if error is not None:
            fields["errors"] = f"Error #01: {error}"

        if threshold > 0 and latency >= threshold:
            log.warning("slow request", extra={"fields": fields})
        else:
            log.info("request", extra={"fields": fields})
        return response