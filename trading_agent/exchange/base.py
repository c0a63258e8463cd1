"""
交易所抽象接口

核心只依賴這些協議；實盤客戶端和回測模擬器各自實現同一組方法，
不需要繼承關係。所有方法都是協程，K 線訂閱返回異步迭代器。
"""

from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, List, Optional, Protocol, Sequence, runtime_checkable

from trading_agent.models.market_data import TradingPair, Interval, Candle
from trading_agent.models.trading import (
    PositionSide,
    Position,
    PositionHistory,
    PositionHistoryFilter,
    AccountInfo,
    OrderRef,
)


# ── 行情 ──────────────────────────────────────────────────────────────────

@runtime_checkable
class MarketService(Protocol):
    """行情服務"""

    async def ticker(self, pair: TradingPair) -> Decimal: ...

    async def get_klines(self, pair: TradingPair, interval: Interval,
                         start_time: Optional[datetime] = None,
                         end_time: Optional[datetime] = None) -> List[Candle]: ...

    def subscribe_kline(self, pair: TradingPair, interval: Interval) -> AsyncIterator[Candle]:
        """訂閱 K 線；取消或回放數據結束時迭代器結束"""
        ...


# ── 持倉 ──────────────────────────────────────────────────────────────────

@runtime_checkable
class PositionService(Protocol):
    """持倉服務"""

    async def get_active_positions(
        self, pairs: Optional[Sequence[TradingPair]] = None
    ) -> List[Position]:
        """pairs 為空時返回全部持倉"""
        ...

    async def get_history_positions(self, query: PositionHistoryFilter) -> List[PositionHistory]: ...

    async def set_leverage(self, pair: TradingPair, leverage: int) -> None: ...


# ── 帳戶 ──────────────────────────────────────────────────────────────────

@runtime_checkable
class AccountService(Protocol):
    """帳戶服務"""

    async def get_account_info(self) -> AccountInfo: ...


# ── 訂單 / 交易 ───────────────────────────────────────────────────────────

@runtime_checkable
class OrderService(Protocol):
    """訂單服務"""

    async def cancel_orders(self, pair: TradingPair) -> None:
        """撤銷該交易對的所有未成交訂單（包括止盈止損單）"""
        ...


@runtime_checkable
class TradingService(Protocol):
    """交易服務"""

    async def open_position(self, pair: TradingPair, side: PositionSide, quantity: Decimal,
                            take_profit: Optional[Decimal] = None,
                            stop_loss: Optional[Decimal] = None,
                            timestamp: Optional[datetime] = None) -> OrderRef:
        """開倉或加倉，止盈止損作為附帶條件單提交"""
        ...

    async def close_position(self, pair: TradingPair, side: PositionSide,
                             close_all: bool = True) -> OrderRef: ...


# ── 聚合 ──────────────────────────────────────────────────────────────────

@runtime_checkable
class ExchangeService(Protocol):
    """同一個帳戶的全部服務

    多個決策循環共享同一個實例；並發下單和讀餘額的安全性由實現方保證，
    否則應開啟 EngineConfig.serialize_decisions。
    """

    @property
    def market(self) -> MarketService: ...

    @property
    def positions(self) -> PositionService: ...

    @property
    def account(self) -> AccountService: ...

    @property
    def orders(self) -> OrderService: ...

    @property
    def trading(self) -> TradingService: ...
