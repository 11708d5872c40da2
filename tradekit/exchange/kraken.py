from __future__ import annotations

"""
Exchange Client: Kraken (Spot)
===============================

Kraken REST client (API version "0") built on the common market primitives.
It focuses on:
- Private request signing: base64(HMAC-SHA512(b64decode(secret), path + SHA256(nonce + postdata)))
- Strictly increasing 19-digit nonces
- Symbol normalization (BTC -> XBT, raw asset codes -> altnames)
- Fail-closed minimum order sizes checked before any network call

Notes
-----
- Every call is a single request/response; nothing is retried here. Use
  `error_handling.ExchangeRetryHandler` for a caller-side retry policy.
- A non-200 status raises `ServerError`, a non-empty `error` list raises
  `ResponseError`, local checks raise `ValidationError` subclasses.
- Margin trading is not supported and is rejected before reaching the wire.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import threading
import time
from dataclasses import dataclass
from itertools import zip_longest
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from tradekit.decimal_utils import below, str_decimal
from tradekit.exchange.common import (
    AbstractMarket,
    Coin,
    ConfigurationError,
    CurrencyPair,
    DepositInfo,
    HttpClient,
    HttpResponse,
    MarketInfo,
    NonceGenerator,
    Order,
    OrderType,
    PairParseError,
    ResponseError,
    ServerError,
    Side,
    Ticker,
    TokenBucket,
    ValidationError,
)
from tradekit.exchange.error_handling import exchange_operation_context
from tradekit.exchange.symbol_codec import KrakenCodec

logger = logging.getLogger(__name__)

# https://support.kraken.com/hc/en-us/articles/205893708-What-is-the-minimum-order-size-
MINIMUM_LIMITS: Mapping[str, float] = MappingProxyType({
    "REP": 0.3, "XBT": 0.002, "BTC": 0.002, "BCH": 0.002,
    "DASH": 0.03, "DOGE": 3000, "EOS": 3, "ETH": 0.02,
    "ETC": 0.3, "GNO": 0.03, "ICN": 2, "LTC": 0.1,
    "MLN": 0.1, "XMR": 0.1, "XRP": 30, "XLM": 300,
    "ZEC": 0.03, "USDT": 5,
})

MARGIN_PARAMS = frozenset({"leverage", "reduce_only", "margin"})
MARGIN_METHODS = frozenset({"OpenPositions", "ClosePosition", "TradeBalance"})


@dataclass(frozen=True)
class _Creds:
    key: str
    secret: str


@dataclass(frozen=True)
class _AssetSnapshot:
    """One consistent view of the Assets endpoint."""

    altnames: Mapping[str, str]  # asset code -> altname
    entries: Mapping[str, Mapping[str, Any]]  # asset code -> raw entry
    symbols: FrozenSet[str]
    fetched_at: float

    @classmethod
    def from_assets(cls, result: Mapping[str, Any], fetched_at: float) -> "_AssetSnapshot":
        altnames = {code: str(entry.get("altname", code)) for code, entry in (result or {}).items()}
        return cls(
            altnames=MappingProxyType(altnames),
            entries=MappingProxyType(dict(result or {})),
            symbols=frozenset(altnames.values()),
            fetched_at=fetched_at,
        )

    def knows(self, symbol: str) -> bool:
        return symbol in self.symbols or symbol in self.altnames

    def canonical(self, symbol: str) -> str:
        return self.altnames.get(symbol, symbol)


def _opt_float(v: Any) -> Optional[float]:
    if v is None or v is False or v == "":
        return None
    return float(v)


def _nonzero(v: Any) -> Optional[float]:
    f = _opt_float(v)
    return f if f else None


class KrakenSigner:
    """Credentials, nonce source and signing for private requests.

    Key and secret are fixed at construction; only the OTP may change.
    """

    def __init__(self, api_key: str, api_secret: str, otp: Optional[str] = None,
                 nonce: Optional[NonceGenerator] = None) -> None:
        self._creds = _Creds(api_key, api_secret)
        self.otp = otp
        self._nonces = nonce or NonceGenerator()

    def has_credentials(self) -> bool:
        return bool(self._creds.key and self._creds.secret)

    def sign(self, path: str, nonce: str, postdata: str) -> str:
        try:
            secret = base64.b64decode(self._creds.secret, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError("API secret is not valid base64") from e
        digest = hashlib.sha256((nonce + postdata).encode("utf-8")).digest()
        mac = hmac.new(secret, path.encode("utf-8") + digest, hashlib.sha512)
        return base64.b64encode(mac.digest()).decode("ascii")

    def build(self, path: str, params: Mapping[str, object]) -> Tuple[str, str, Mapping[str, str]]:
        """Return (nonce, postdata, headers) for one private call."""
        if "nonce" in params:
            raise ValidationError("nonce is set by the client, not by callers")
        nonce = self._nonces.next()
        body: Dict[str, object] = {"nonce": nonce, **params}
        if self.otp:
            body["otp"] = self.otp
        postdata = urlencode(body)
        headers = {
            "API-Key": self._creds.key,
            "API-Sign": self.sign(path, nonce, postdata),
            "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
        }
        return nonce, postdata, headers


class KrakenExchange(AbstractMarket):
    name = "kraken"
    CODEC = KrakenCodec()

    def __init__(
        self,
        *,
        api_key: str = "",
        api_secret: str = "",
        otp: Optional[str] = None,
        http: Optional[HttpClient] = None,
        base_url: str = "https://api.kraken.com",
        version: str = "0",
        rate_limiter: Optional[TokenBucket] = None,
        symbols_ttl_s: float = 300.0,
        nonce: Optional[NonceGenerator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(http=http)
        self._signer = KrakenSigner(api_key, api_secret, otp=otp, nonce=nonce)
        self._base = base_url.rstrip("/")
        self._version = version
        self._rate_limiter = rate_limiter
        self._symbols_ttl_s = float(symbols_ttl_s)
        self._clock = clock
        self._minimum_limits = MINIMUM_LIMITS
        self._snapshot: Optional[_AssetSnapshot] = None
        self._snapshot_lock = threading.Lock()

    def set_otp(self, otp: Optional[str]) -> None:
        """Set/update the one-time password sent with private requests (2FA)."""
        self._signer.otp = otp

    # ------------- endpoints -------------

    def _ep(self, path: str) -> str:
        return f"{self._base}{path}"

    def _path(self, kind: str, method: str) -> str:
        return f"/{self._version}/{kind}/{method}"

    def _sign(self, path: str, nonce: str, postdata: str) -> str:
        return self._signer.sign(path, nonce, postdata)

    # ------------- transport -------------

    def _transport(self) -> HttpClient:
        if self._http is None:
            raise ConfigurationError("No HttpClient provided for KrakenExchange")
        return self._http

    @staticmethod
    def _reject_margin(method: str, params: Mapping[str, object]) -> None:
        if method in MARGIN_METHODS:
            raise ValidationError(f"Margin trading is not supported ({method})")
        margin_keys = MARGIN_PARAMS.intersection(params)
        if margin_keys:
            raise ValidationError(f"Margin trading is not supported ({', '.join(sorted(margin_keys))})")

    def _decode(self, method: str, resp: HttpResponse) -> Any:
        if resp.status_code != 200:
            raise ServerError(resp.status_code, method)
        try:
            payload = json.loads(resp.body)
        except ValueError as e:
            raise ServerError(resp.status_code, f"{method}: malformed JSON body") from e
        if not isinstance(payload, dict):
            raise ServerError(resp.status_code, f"{method}: unexpected body")
        errors = payload.get("error") or []
        if errors:
            raise ResponseError(errors)
        return payload.get("result")

    def _public(self, method: str, params: Optional[Mapping[str, object]] = None) -> Any:
        http = self._transport()
        path = self._path("public", method)
        logger.debug(f"GET {path} params={dict(params or {})}")
        return self._decode(method, http.request("GET", self._ep(path), params=dict(params or {})))

    def _request(self, method: str, params: Optional[Mapping[str, object]] = None) -> Any:
        """Authenticated POST to /<version>/private/<method>; returns the `result` field."""
        params = dict(params or {})
        self._reject_margin(method, params)
        if not self._signer.has_credentials():
            raise ConfigurationError(f"API key and secret are required for {method}")
        http = self._transport()
        if self._rate_limiter is not None:
            self._rate_limiter.acquire()
        path = self._path("private", method)
        nonce, postdata, headers = self._signer.build(path, params)
        logger.debug(f"POST {path} nonce={nonce} params={sorted(params)}")
        return self._decode(method, http.request("POST", self._ep(path), headers=headers, data=postdata))

    # ------------- symbols -------------

    def _assets(self) -> _AssetSnapshot:
        snap = self._snapshot
        if snap is not None and self._clock() - snap.fetched_at < self._symbols_ttl_s:
            return snap
        with self._snapshot_lock:
            snap = self._snapshot
            if snap is None or self._clock() - snap.fetched_at >= self._symbols_ttl_s:
                snap = _AssetSnapshot.from_assets(self._public("Assets"), self._clock())
                self._snapshot = snap
                logger.debug(f"Asset snapshot refreshed: {len(snap.symbols)} symbols")
            return snap

    def refresh_symbols(self) -> None:
        """Drop the cached asset list; the next lookup fetches a fresh one."""
        with self._snapshot_lock:
            self._snapshot = None

    def symbols(self) -> set:
        return set(self._assets().symbols)

    def sanitize_pair(self, pair: CurrencyPair) -> CurrencyPair:
        return self.CODEC.sanitize(pair)

    def parse_pair(self, raw: str) -> CurrencyPair:
        snap = self._assets()
        sanitize = self.CODEC.sanitize_symbol
        return self.CODEC.decode(
            raw,
            lambda s: snap.knows(sanitize(s)),
            lambda s: snap.canonical(sanitize(s)),
        )

    def _normalize(self, pair: CurrencyPair, snap: Optional[_AssetSnapshot] = None) -> CurrencyPair:
        p = self.sanitize_pair(CurrencyPair(pair.base, pair.quote))
        snap = snap or self._assets()
        for symbol in (p.base, p.quote):
            if not snap.knows(symbol):
                raise PairParseError(f"Unknown symbol {symbol} in pair {pair.base}/{pair.quote}")
        return CurrencyPair(snap.canonical(p.base), snap.canonical(p.quote))

    # ------------- limits -------------

    def min_tradable(self, symbol: str) -> float:
        sym = self.CODEC.sanitize_symbol(symbol)
        limit = self._minimum_limits.get(sym)
        if limit is None:
            raise ValidationError(f"No known minimum order size for {sym}")
        return limit

    # ------------- public API -------------

    def time(self) -> int:
        with exchange_operation_context(self.name, "time"):
            return int(self._public("Time")["unixtime"])

    def coins(self) -> Dict[str, Coin]:
        with exchange_operation_context(self.name, "coins"):
            snap = self._assets()
            return {
                snap.altnames[code]: Coin(
                    symbol=snap.altnames[code],
                    code=code,
                    status=str(entry.get("status", "enabled")),
                    precision=int(entry.get("decimals", 0)),
                    display_precision=int(entry.get("display_decimals", 0)),
                )
                for code, entry in snap.entries.items()
            }

    def info(self, pair: Optional[CurrencyPair] = None):
        with exchange_operation_context(self.name, "info", symbol=str(pair) if pair else None):
            snap = self._assets()
            params: Dict[str, object] = {}
            if pair is not None:
                params["pair"] = str(self._normalize(pair, snap))
            pairs = self._public("AssetPairs", params) or {}
            tickers = self._public("Ticker", params) or {}
            markets: List[MarketInfo] = []
            for key, entry in pairs.items():
                if key.endswith(".d"):
                    continue
                cp = CurrencyPair(snap.canonical(entry["base"]), snap.canonical(entry["quote"]))
                last = (tickers.get(key) or {}).get("c")
                fees = entry.get("fees") or []
                markets.append(MarketInfo(
                    pair=cp,
                    rate=float(last[0]) if last else None,
                    order_min=_opt_float(entry.get("ordermin")),
                    min_limit=self._minimum_limits.get(cp.base),
                    fee=float(fees[0][1]) if fees else None,
                ))
            if pair is None:
                return markets
            if not markets:
                raise ResponseError([f"No market for {pair}"])
            return markets[0]

    def ticker(self, pair: CurrencyPair) -> Ticker:
        with exchange_operation_context(self.name, "ticker", symbol=str(pair)):
            p = self._normalize(pair)
            entry = self._single(self._public("Ticker", {"pair": str(p)}), p)
            return Ticker(
                pair=p,
                bid=float(entry["b"][0]),
                ask=float(entry["a"][0]),
                last=float(entry["c"][0]),
                bid_volume=float(entry["b"][2]),
                ask_volume=float(entry["a"][2]),
                time=self._clock(),
            )

    def order_book(self, pair: CurrencyPair, count: Optional[int] = None) -> List[Ticker]:
        """Price levels best first; level i pairs the i-th bid with the i-th ask, None once a side runs out."""
        with exchange_operation_context(self.name, "order_book", symbol=str(pair)):
            p = self._normalize(pair)
            params: Dict[str, object] = {"pair": str(p)}
            if count:
                params["count"] = int(count)
            entry = self._single(self._public("Depth", params), p)
            levels = []
            for bid, ask in zip_longest(entry.get("bids") or [], entry.get("asks") or []):
                levels.append(Ticker(
                    pair=p,
                    bid=float(bid[0]) if bid else None,
                    ask=float(ask[0]) if ask else None,
                    bid_volume=float(bid[1]) if bid else None,
                    ask_volume=float(ask[1]) if ask else None,
                    time=float(max(level[2] for level in (bid, ask) if level)),
                ))
            return levels

    @staticmethod
    def _single(result: Optional[Mapping[str, Any]], pair: CurrencyPair) -> Mapping[str, Any]:
        if not result:
            raise ResponseError([f"No data for {pair}"])
        return next(iter(result.values()))

    # ------------- private API -------------

    def deposit_info(self, currency: str) -> DepositInfo:
        with exchange_operation_context(self.name, "deposit_info", symbol=currency):
            snap = self._assets()
            sym = self.CODEC.sanitize_symbol(currency)
            if not snap.knows(sym):
                raise ValidationError(f"Unknown currency {currency}")
            asset = snap.canonical(sym)
            methods = self._request("DepositMethods", {"asset": asset}) or []
            if not methods:
                raise ResponseError([f"No deposit method available for {asset}"])
            method = methods[0]
            addresses = self._request("DepositAddresses", {"asset": asset, "method": method["method"]}) or []
            address = addresses[0] if addresses else {}
            return DepositInfo(
                currency=asset,
                method=str(method["method"]),
                address=str(address.get("address", "")),
                fee=_opt_float(method.get("fee")) or 0.0,
                limit=_opt_float(method.get("limit")),
                expire_time=_nonzero(address.get("expiretm")),
            )

    def balance(self, currency: Optional[str] = None):
        with exchange_operation_context(self.name, "balance", symbol=currency):
            snap = self._assets()
            balances: Dict[str, float] = {}
            for code, amount in (self._request("Balance") or {}).items():
                sym = snap.canonical(code)
                balances[sym] = balances.get(sym, 0.0) + float(amount)
            if currency is None:
                return balances
            return balances.get(snap.canonical(self.CODEC.sanitize_symbol(currency)), 0.0)

    def _decode_order(self, txid: str, entry: Mapping[str, Any], snap: _AssetSnapshot) -> Optional[Order]:
        descr = entry.get("descr") or {}
        try:
            order_type = OrderType(descr.get("ordertype", ""))
        except ValueError:
            logger.warning(f"Skipping order {txid}: unsupported order type {descr.get('ordertype')!r}")
            return None
        sanitize = self.CODEC.sanitize_symbol
        try:
            pair = self.CODEC.decode(
                str(descr.get("pair", "")),
                lambda s: snap.knows(sanitize(s)),
                lambda s: snap.canonical(sanitize(s)),
            )
        except PairParseError:
            logger.warning(f"Skipping order {txid}: unknown pair {descr.get('pair')!r}")
            return None
        return Order(
            pair=pair,
            side=Side(descr.get("type", "buy")),
            type=order_type,
            quantity=float(entry.get("vol", 0.0)),
            price=_nonzero(descr.get("price")) or _nonzero(entry.get("price")),
            order_id=txid,
            status=str(entry.get("status", "")),
            open_time=_opt_float(entry.get("opentm")),
            close_time=_nonzero(entry.get("closetm")),
            executed_quantity=float(entry.get("vol_exec", 0.0)),
        )

    def _decode_orders(self, entries: Mapping[str, Any], snap: _AssetSnapshot) -> List[Order]:
        orders = (self._decode_order(txid, entry, snap) for txid, entry in entries.items())
        return [o for o in orders if o is not None]

    def open_orders(self) -> List[Order]:
        with exchange_operation_context(self.name, "open_orders"):
            snap = self._assets()
            result = self._request("OpenOrders") or {}
            return self._decode_orders(result.get("open") or {}, snap)

    def closed_orders(self) -> List[Order]:
        """Every closed order, following the exchange's result pages."""
        with exchange_operation_context(self.name, "closed_orders"):
            snap = self._assets()
            orders: List[Order] = []
            offset = 0
            while True:
                result = self._request("ClosedOrders", {"ofs": offset}) or {}
                closed = result.get("closed") or {}
                orders.extend(self._decode_orders(closed, snap))
                offset += len(closed)
                if not closed or offset >= int(result.get("count", 0)):
                    return orders

    def place(self, order: Order) -> None:
        """Place `order` and fill in its id, status and open time."""
        with exchange_operation_context(self.name, "place", symbol=str(order.pair)):
            self.sanitize_pair(order.pair)
            minimum = self.min_tradable(order.pair.base)
            if below(order.quantity, minimum):
                raise ValidationError(
                    f"Order quantity {order.quantity} {order.pair.base} is below the minimum {minimum}"
                )
            order_type = OrderType(order.type)
            params: Dict[str, object] = {
                "type": Side(order.side).value,
                "ordertype": order_type.value,
                "volume": str_decimal(order.quantity),
            }
            if order_type != OrderType.MARKET:
                if order.price is None:
                    raise ValidationError(f"{order_type.value} order requires price")
                params["price"] = str_decimal(order.price)
            pair = self._normalize(order.pair)
            order.pair.base, order.pair.quote = pair.base, pair.quote
            params["pair"] = str(pair)

            result = self._request("AddOrder", params) or {}
            txids = result.get("txid") or []
            if not txids:
                raise ResponseError(["AddOrder returned no transaction id"])
            order.order_id = str(txids[0])
            order.status = "pending"
            order.open_time = self._clock()
            order.close_time = None
            order.executed_quantity = 0.0
            logger.info(f"Order placed: {order.order_id} ({(result.get('descr') or {}).get('order', '')})")

    def cancel(self, order: Order) -> None:
        """Cancel `order` by id and mark it canceled."""
        with exchange_operation_context(self.name, "cancel", symbol=str(order.pair), order_id=order.order_id or None):
            if not order.order_id:
                raise ValidationError("Order has no id: it was never placed")
            result = self._request("CancelOrder", {"txid": order.order_id}) or {}
            if int(result.get("count", 0)) < 1:
                raise ResponseError([f"EOrder:Order {order.order_id} was not canceled"])
            order.status = "canceled"
            order.close_time = self._clock()
            logger.info(f"Order cancelled: {order.order_id}")


__all__ = ["KrakenExchange", "KrakenSigner", "MINIMUM_LIMITS", "MARGIN_PARAMS", "MARGIN_METHODS"]
