from __future__ import annotations

"""
Symbol Codec utilities

Kraken names assets with its own codes (XBT instead of BTC) and concatenates
pairs without a separator, sometimes in the raw asset-code form ("XXBTZUSD").
The codec rewrites public aliases and splits concatenated pairs against a set
of known symbols.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from tradekit.exchange.common import CurrencyPair, PairParseError

logger = logging.getLogger(__name__)

FIAT = frozenset({"USD", "EUR", "GBP", "JPY", "CAD", "CHF", "AUD"})


@dataclass(frozen=True)
class KrakenCodec:
    aliases: Dict[str, str] = field(default_factory=lambda: {"BTC": "XBT"})
    fiat: FrozenSet[str] = FIAT

    def sanitize_symbol(self, symbol: str) -> str:
        s = symbol.upper()
        return self.aliases.get(s, s)

    def sanitize(self, pair: CurrencyPair) -> CurrencyPair:
        """Rewrite aliased symbols of `pair` in place and return it."""
        pair.base = self.sanitize_symbol(pair.base)
        pair.quote = self.sanitize_symbol(pair.quote)
        return pair

    def candidates(self, raw: str, is_known: Callable[[str], bool]) -> List[Tuple[str, str]]:
        """Every (base, quote) split of raw where both halves are known, best first.

        Ranking: longest base prefix first, then splits with a fiat quote.
        """
        s = raw.replace("/", "").replace("-", "").replace("_", "").upper()
        splits = []
        for i in range(len(s) - 1, 0, -1):
            base, quote = s[:i], s[i:]
            if is_known(base) and is_known(quote):
                splits.append((base, quote))
        splits.sort(key=lambda bq: (len(bq[0]), bq[1] in self.fiat), reverse=True)
        return splits

    def decode(
        self,
        raw: str,
        is_known: Callable[[str], bool],
        canonical: Optional[Callable[[str], str]] = None,
    ) -> CurrencyPair:
        """Split raw into a CurrencyPair; raise PairParseError if no split works."""
        if "/" in raw:
            base, _, quote = raw.upper().partition("/")
            base, quote = self.sanitize_symbol(base), self.sanitize_symbol(quote)
            if not (is_known(base) and is_known(quote)):
                raise PairParseError(f"Cannot decode pair: {raw}")
            splits = [(base, quote)]
        else:
            splits = self.candidates(raw, is_known)
        if not splits:
            raise PairParseError(f"Cannot decode pair: {raw}")
        if len(splits) > 1:
            logger.warning(f"Ambiguous pair {raw}: using {splits[0]}, alternatives {splits[1:]}")
        base, quote = splits[0]
        if canonical is not None:
            base, quote = canonical(base), canonical(quote)
        return CurrencyPair(base, quote)


__all__ = [
    "FIAT",
    "KrakenCodec",
]
