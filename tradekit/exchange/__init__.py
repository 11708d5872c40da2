# Exchange clients for tradekit
# Provides the uniform market contract and its Kraken implementation

from .common import (
    AbstractMarket,
    Coin,
    ConfigurationError,
    CurrencyPair,
    DepositInfo,
    ExchangeError,
    HttpClient,
    HttpResponse,
    MarketInfo,
    NonceGenerator,
    Order,
    OrderType,
    PairParseError,
    RateLimitError,
    ResponseError,
    ServerError,
    Side,
    Ticker,
    TokenBucket,
    ValidationError,
)
from .kraken import KrakenExchange, KrakenSigner

__all__ = [
    # Common primitives
    "AbstractMarket",
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
    "HttpClient",
    "HttpResponse",
    # Exchange clients
    "KrakenExchange",
    "KrakenSigner",
]
