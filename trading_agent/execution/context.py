"""
策略上下文和邏輯時鐘
"""

from datetime import datetime, timezone
from typing import List, Optional

from trading_agent.exchange.base import ExchangeService
from trading_agent.execution.strategy import StrategyContext, KlineRequest
from trading_agent.models.market_data import TradingPair, Interval, Candle
from trading_agent.models.trading import Position


class LogicalClock:
    """單個決策循環的邏輯時鐘

    回放模式下由 K 線收盤時間推進；實盤模式下返回系統時間。
    每個循環持有自己的實例，不使用全局時間。
    """

    def __init__(self, start: Optional[datetime] = None, live: bool = False):
        self._now = start
        self.live = live

    def now(self) -> datetime:
        if self.live:
            return datetime.now(timezone.utc)
        if self._now is None:
            raise RuntimeError("邏輯時鐘尚未設置")
        return self._now

    def advance(self, t: datetime) -> None:
        """推進時鐘（實盤模式下同樣記錄，供日誌使用）"""
        self._now = t

    @property
    def last_tick(self) -> Optional[datetime]:
        return self._now


class EngineContext(StrategyContext):
    """引擎提供給策略的上下文實現"""

    def __init__(
        self,
        pair: TradingPair,
        interval: Interval,
        exchange: ExchangeService,
        clock: LogicalClock
    ):
        """初始化策略上下文

        Args:
            pair: 綁定的交易對
            interval: 策略默認週期
            exchange: 交易所服務
            clock: 該循環的邏輯時鐘
        """
        self._pair = pair
        self._interval = interval
        self._exchange = exchange
        self.clock = clock

    async def get_klines(self, request: KlineRequest) -> List[Candle]:
        now = self.clock.now()
        end_time = request.end_time
        # 不允許查詢邏輯時間之後的數據
        if end_time is None or end_time > now:
            end_time = now

        return await self._exchange.market.get_klines(
            self._pair,
            request.interval or self._interval,
            request.start_time,
            end_time,
        )

    async def get_positions(self) -> List[Position]:
        return await self._exchange.positions.get_active_positions([self._pair])

    def now(self) -> datetime:
        return self.clock.now()

    def trading_pair(self) -> TradingPair:
        return self._pair
