# tests/conftest.py
import pytest

from tests.fixtures.kraken_fakes import FIXED_NOW, KRAKEN_DOC_SECRET, FakeHttpClient
from tradekit.exchange.common import NonceGenerator
from tradekit.exchange.kraken import KrakenExchange


@pytest.fixture
def fake_http():
    """Fake transport serving the default asset list."""
    return FakeHttpClient()


@pytest.fixture
def make_kraken():
    """Factory for a Kraken client wired to a fake transport and a fixed clock."""

    def _make(http=None, **kwargs):
        kwargs.setdefault("api_key", "test-key")
        kwargs.setdefault("api_secret", KRAKEN_DOC_SECRET)
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        kwargs.setdefault("nonce", NonceGenerator())
        return KrakenExchange(http=http if http is not None else FakeHttpClient(), **kwargs)

    return _make


@pytest.fixture
def kraken(make_kraken, fake_http):
    return make_kraken(fake_http)
