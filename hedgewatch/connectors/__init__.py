"""
Connectors — outbound integrations used by the service.

Currently a single read-only integration: the Polymarket Gamma + CLOB
market metadata resolver.
"""

from hedgewatch.connectors.market_info import (
    MarketInfo,
    MarketInfoResolver,
    TokenInfo,
    close_market_info_resolver,
    detect_crypto_symbol,
    get_market_info_resolver,
)

__all__ = [
    "MarketInfo",
    "MarketInfoResolver",
    "TokenInfo",
    "close_market_info_resolver",
    "detect_crypto_symbol",
    "get_market_info_resolver",
]
