"""
策略基類和接口定義
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from trading_agent.models.market_data import TradingPair, Interval, Candle
from trading_agent.models.trading import Signal, Position


@dataclass(frozen=True)
class KlineRequest:
    """策略查詢歷史 K 線的請求"""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    interval: Optional[Interval] = None  # 為 None 時使用策略自身的週期


class StrategyContext(ABC):
    """引擎提供給策略的上下文

    綁定到策略的交易對，並提供邏輯時間 now()。回測時 now() 是當前 K 線的收盤時間，
    策略不應讀取系統時間。
    """

    @abstractmethod
    async def get_klines(self, request: KlineRequest) -> List[Candle]:
        """獲取歷史 K 線（結束時間不會超過邏輯時間）"""

    @abstractmethod
    async def get_positions(self) -> List[Position]:
        """獲取本交易對的當前持倉"""

    @abstractmethod
    def now(self) -> datetime:
        """邏輯當前時間"""

    @abstractmethod
    def trading_pair(self) -> TradingPair:
        """綁定的交易對"""


class Strategy(ABC):
    """策略抽象基類

    所有交易策略必須繼承此類並實現所有抽象方法。
    引擎為每個策略啟動一個獨立的決策循環，策略只負責給出方向信號，
    倉位大小由風險管理器計算。
    """

    @abstractmethod
    def name(self) -> str:
        """策略名稱"""

    @abstractmethod
    def trading_pair(self) -> TradingPair:
        """策略交易的交易對"""

    @abstractmethod
    def interval(self) -> Interval:
        """策略運行的 K 線週期"""

    @abstractmethod
    async def initialize(self, context: StrategyContext) -> None:
        """初始化策略

        在訂閱 K 線之前調用一次，通常用於載入歷史數據預熱指標。

        Args:
            context: 策略上下文
        """

    @abstractmethod
    async def on_candle(self, candle: Candle) -> Signal:
        """處理一根已完成的 K 線並生成交易信號

        Args:
            candle: K 線

        Returns:
            Signal: 交易信號（LONG / SHORT / HOLD）

        Example:
            >>> signal = await strategy.on_candle(candle)
            >>> if signal.action == SignalAction.LONG:
            >>>     print(f"做多信號：止損 {signal.stop_loss}")
        """

    async def shutdown(self) -> None:
        """關閉策略，釋放資源

        initialize() 失敗時不會調用。
        """

    def __repr__(self) -> str:
        return f"Strategy(name={self.name()}, pair={self.trading_pair()}, interval={self.interval().value})"
