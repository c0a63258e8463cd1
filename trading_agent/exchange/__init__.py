"""
交易所抽象層
"""

from .base import (
    MarketService,
    PositionService,
    AccountService,
    OrderService,
    TradingService,
    ExchangeService,
)
from .guard import AccountGuard

__all__ = [
    'MarketService',
    'PositionService',
    'AccountService',
    'OrderService',
    'TradingService',
    'ExchangeService',
    'AccountGuard',
]
