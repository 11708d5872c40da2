#!/usr/bin/env python3
from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Optional

import typer
import yaml

from tradekit.env import EnvConfig, load_env
from tradekit.exchange.common import (
    AbstractMarket,
    CurrencyPair,
    ExchangeError,
    Order,
    OrderType,
    Side,
    ValidationError,
)
from tradekit.exchange.config import ExchangeConfig, ExchangeType, create_market


app = typer.Typer(add_completion=False, help="Kraken market client CLI")


def _exit(code: int, msg: str):
    typer.echo(msg, err=True)
    raise typer.Exit(code)


def _build_market(env: EnvConfig) -> AbstractMarket:
    if env.TRADEKIT_CONFIG:
        config = ExchangeConfig.from_yaml(Path(env.TRADEKIT_CONFIG))
    else:
        config = ExchangeConfig.create(
            "kraken",
            ExchangeType.KRAKEN,
            api_key=env.KRAKEN_API_KEY or "",
            api_secret=env.KRAKEN_API_SECRET or "",
            otp=env.KRAKEN_OTP,
            base_url=env.KRAKEN_BASE_URL,
            timeout_ms=env.KRAKEN_HTTP_TIMEOUT_MS,
            enable_rate_limit=env.KRAKEN_RATE_LIMIT,
        )
    return create_market(config)


def _run(ctx: typer.Context, fn) -> None:
    """Build the market, run fn(market) and print its result as JSON."""
    try:
        out = fn(_build_market(ctx.obj))
    except ValidationError as e:
        _exit(2, f"rejected: {e}")
    except (OSError, yaml.YAMLError) as e:
        _exit(2, f"bad config: {e}")
    except ExchangeError as e:
        _exit(1, f"failed: {e}")
    typer.echo(json.dumps(_plain(out), indent=2, default=str))


def _plain(obj: Any) -> Any:
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    return obj


@app.callback()
def _load_env(
    ctx: typer.Context,
    dotenv: bool = typer.Option(True, help="Load .env from the working directory"),
):
    env = load_env(dotenv=dotenv, path=Path.cwd() / ".env" if dotenv else None)
    logging.basicConfig(
        level=getattr(logging, env.TRADEKIT_LOG_LEVEL, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = env


@app.command()
def time(ctx: typer.Context):
    """Exchange server time (unix seconds)."""
    _run(ctx, lambda m: {"unixtime": m.time()})


@app.command()
def coins(ctx: typer.Context):
    """Assets listed by the exchange."""
    _run(ctx, lambda m: m.coins())


@app.command()
def info(ctx: typer.Context, pair: Optional[str] = typer.Argument(None, help="e.g. XBTUSD")):
    """Market info for every pair, or one pair."""
    _run(ctx, lambda m: m.info(m.parse_pair(pair)) if pair else m.info())


@app.command()
def ticker(ctx: typer.Context, pair: str = typer.Argument(..., help="e.g. XBTUSD or BTC/USD")):
    """Best bid/ask and last trade."""
    _run(ctx, lambda m: m.ticker(m.parse_pair(pair)))


@app.command()
def book(ctx: typer.Context, pair: str = typer.Argument(...), count: int = typer.Option(10, help="Levels per side")):
    """Order book levels, best first."""
    _run(ctx, lambda m: m.order_book(m.parse_pair(pair), count=count))


@app.command()
def balance(ctx: typer.Context, currency: Optional[str] = typer.Argument(None)):
    """Account balances (private)."""
    _run(ctx, lambda m: m.balance(currency) if currency else m.balance())


@app.command()
def deposit(ctx: typer.Context, currency: str = typer.Argument(...)):
    """Deposit method and address for a currency (private)."""
    _run(ctx, lambda m: m.deposit_info(currency))


@app.command("open-orders")
def open_orders(ctx: typer.Context):
    """Open orders (private)."""
    _run(ctx, lambda m: m.open_orders())


@app.command("closed-orders")
def closed_orders(ctx: typer.Context):
    """Closed orders (private)."""
    _run(ctx, lambda m: m.closed_orders())


@app.command()
def place(
    ctx: typer.Context,
    side: Side = typer.Argument(...),
    order_type: OrderType = typer.Argument(..., metavar="TYPE"),
    pair: str = typer.Argument(...),
    quantity: float = typer.Argument(...),
    price: Optional[float] = typer.Option(None, help="Limit/trigger price"),
):
    """Place an order (private)."""
    def _place(m: AbstractMarket) -> Order:
        order = Order(pair=m.parse_pair(pair), side=side, type=order_type, quantity=quantity, price=price)
        m.place(order)
        return order

    _run(ctx, _place)


@app.command()
def cancel(ctx: typer.Context, order_id: str = typer.Argument(...)):
    """Cancel an order by id (private)."""
    def _cancel(m: AbstractMarket) -> dict:
        # only the id matters to the exchange
        order = Order(pair=CurrencyPair("", ""), side=Side.BUY, type=OrderType.LIMIT, quantity=0.0, order_id=order_id)
        m.cancel(order)
        return {"order_id": order.order_id, "status": order.status}

    _run(ctx, _cancel)


def main():
    app()


if __name__ == "__main__":
    main()
