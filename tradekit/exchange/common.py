from __future__ import annotations

"""
Exchange.Common: Shared primitives
===================================

Primitives shared by exchange clients (Kraken/...):
- Error hierarchy separating local validation from network-facing failures
- Data models (pairs, orders, tickers, coins, deposit and market info)
- Nonce generation and a simple token-bucket rate limiter
- HTTP transport protocol and the abstract market contract

This module **does not** perform network I/O; concrete clients receive an
HTTP client (protocol) at construction.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Protocol, Sequence


# --------------------------- Errors ---------------------------


class ExchangeError(RuntimeError):
    pass


class ValidationError(ExchangeError):
    """Raised locally, before any network call. Retrying never helps."""


class ConfigurationError(ValidationError):
    pass


class PairParseError(ValidationError):
    pass


class RateLimitError(ExchangeError):
    pass


class ServerError(ExchangeError):
    """The HTTP layer failed: non-200 status, or no response at all (status_code None)."""

    def __init__(self, status_code: Optional[int], message: str = "") -> None:
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else "transport failure"
        super().__init__(f"{detail}: {message}" if message else detail)


class ResponseError(ExchangeError):
    """The exchange answered with a non-empty error list."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = [str(e) for e in errors]
        super().__init__("; ".join(self.errors))


# --------------------------- Models ---------------------------


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop-loss"
    TAKE_PROFIT = "take-profit"
    STOP_LOSS_LIMIT = "stop-loss-limit"
    TAKE_PROFIT_LIMIT = "take-profit-limit"


@dataclass
class CurrencyPair:
    base: str
    quote: str

    def __str__(self) -> str:
        return f"{self.base}{self.quote}"


@dataclass
class Order:
    """Order as seen by the caller.

    Only the trading fields are set before placement; `order_id`, `status`
    and the timestamps are filled by the exchange client.
    """

    pair: CurrencyPair
    side: Side
    type: OrderType
    quantity: float
    price: Optional[float] = None
    order_id: str = ""
    status: str = ""
    open_time: Optional[float] = None
    close_time: Optional[float] = None
    executed_quantity: float = 0.0


@dataclass
class Ticker:
    pair: CurrencyPair
    bid: Optional[float]
    ask: Optional[float]
    last: Optional[float] = None
    bid_volume: Optional[float] = None
    ask_volume: Optional[float] = None
    time: Optional[float] = None


@dataclass
class Coin:
    symbol: str
    code: str
    status: str
    precision: int
    display_precision: int


@dataclass
class DepositInfo:
    currency: str
    method: str
    address: str
    fee: float = 0.0
    limit: Optional[float] = None
    expire_time: Optional[float] = None


@dataclass
class MarketInfo:
    pair: CurrencyPair
    rate: Optional[float]
    order_min: Optional[float]
    min_limit: Optional[float]
    fee: Optional[float]


# --------------------------- Nonce ---------------------------


class NonceGenerator:
    """Strictly increasing 19-digit nonces: 10-digit seconds || 9-digit nanoseconds.

    Safe to share between threads. When the clock does not move past the
    previously issued value, the previous value + 1 is issued instead.
    """

    WIDTH = 19

    def __init__(self, clock_ns=time.time_ns) -> None:
        self._clock_ns = clock_ns
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            # seconds * 10**9 + nanos is exactly the 10 || 9 digit concatenation
            value = int(self._clock_ns())
            if value <= self._last:
                value = self._last + 1
            self._last = value
            return f"{value:0{self.WIDTH}d}"


# --------------------------- Rate Limiter ---------------------------


class TokenBucket:
    """Simple token-bucket rate limiter.

    capacity: max tokens; refill_rate: tokens per second.
    call `acquire(tokens=1)` before making a request; raises RateLimitError if
    the bucket is empty (non-blocking).
    """

    def __init__(self, *, capacity: int, refill_rate: float) -> None:
        self.capacity = int(capacity)
        self.refill_rate = float(refill_rate)
        self._tokens = float(capacity)
        self._last = time.perf_counter()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = time.perf_counter()
        dt = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(self.capacity, self._tokens + dt * self.refill_rate)

    def acquire(self, tokens: float = 1.0) -> None:
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return
            raise RateLimitError("rate limit exceeded")


# --------------------------- HTTP Protocol ---------------------------


@dataclass
class HttpResponse:
    status_code: int
    body: bytes


class HttpClient(Protocol):
    def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, object]] = None,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[str] = None,
    ) -> HttpResponse: ...


# --------------------------- Abstract Market ---------------------------


class AbstractMarket:
    """Uniform market contract implemented by every exchange client."""

    name: str = "abstract"

    def __init__(self, *, http: Optional[HttpClient] = None) -> None:
        self._http = http

    def symbols(self) -> set:  # pragma: no cover (interface)
        raise NotImplementedError

    def parse_pair(self, raw: str) -> CurrencyPair:  # pragma: no cover
        raise NotImplementedError

    def time(self) -> int:  # pragma: no cover
        raise NotImplementedError

    def coins(self) -> Dict[str, Coin]:  # pragma: no cover
        raise NotImplementedError

    def deposit_info(self, currency: str) -> DepositInfo:  # pragma: no cover
        raise NotImplementedError

    def info(self, pair: Optional[CurrencyPair] = None):  # pragma: no cover
        """All markets as a list of MarketInfo, or the MarketInfo of one pair."""
        raise NotImplementedError

    def balance(self, currency: Optional[str] = None):  # pragma: no cover
        """Every balance as a dict, or the float balance of one currency."""
        raise NotImplementedError

    def ticker(self, pair: CurrencyPair) -> Ticker:  # pragma: no cover
        raise NotImplementedError

    def order_book(self, pair: CurrencyPair) -> List[Ticker]:  # pragma: no cover
        raise NotImplementedError

    def closed_orders(self) -> List[Order]:  # pragma: no cover
        raise NotImplementedError

    def open_orders(self) -> List[Order]:  # pragma: no cover
        raise NotImplementedError

    def place(self, order: Order) -> None:  # pragma: no cover
        raise NotImplementedError

    def cancel(self, order: Order) -> None:  # pragma: no cover
        raise NotImplementedError


__all__ = [
    "ExchangeError",
    "ValidationError",
    "ConfigurationError",
    "PairParseError",
    "RateLimitError",
    "ServerError",
    "ResponseError",
    "Side",
    "OrderType",
    "CurrencyPair",
    "Order",
    "Ticker",
    "Coin",
    "DepositInfo",
    "MarketInfo",
    "NonceGenerator",
    "TokenBucket",
    "HttpResponse",
    "HttpClient",
    "AbstractMarket",
]
