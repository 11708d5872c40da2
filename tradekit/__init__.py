# tradekit package
"""
Exchange client toolkit.

This package contains the market abstraction shared by exchange clients,
the Kraken REST client built on it, and the configuration helpers used to
wire them up.
"""

__version__ = "0.1.0"
