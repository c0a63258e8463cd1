"""
雙均線交叉策略

短期均線上穿長期均線做多，下穿做空。作為示例策略使用。
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from trading_agent.execution.strategy import Strategy, StrategyContext, KlineRequest
from trading_agent.models.market_data import TradingPair, Interval, Candle, candles_to_dataframe
from trading_agent.models.trading import Signal, SignalAction


logger = logging.getLogger(__name__)


class MovingAverageCrossStrategy(Strategy):
    """
    雙均線交叉策略

    進場條件：
    1. 金叉：前一根短期均線 <= 長期均線，當前短期均線 > 長期均線（做多）
    2. 死叉：前一根短期均線 >= 長期均線，當前短期均線 < 長期均線（做空）
    3. 與上一個信號同向時改為觀望，避免重複開倉

    止盈止損：
    - 做多：止盈 close * (1 + take_profit_pct)，止損 close * (1 - stop_loss_pct)
    - 做空：止盈 close * (1 - take_profit_pct)，止損 close * (1 + stop_loss_pct)
    """

    def __init__(
        self,
        trading_pair: TradingPair,
        interval: Interval = Interval.H1,
        short_period: int = 5,
        long_period: int = 20,
        take_profit_pct: float = 0.02,
        stop_loss_pct: float = 0.01,
        confidence: float = 70.0,
        name: str = "ma_cross_strategy"
    ):
        if short_period < 1 or long_period <= short_period:
            raise ValueError(f"均線週期無效：short={short_period}, long={long_period}")

        self._name = name
        self._pair = trading_pair
        self._interval = interval
        self.short_period = short_period
        self.long_period = long_period
        self.take_profit_pct = Decimal(str(take_profit_pct))
        self.stop_loss_pct = Decimal(str(stop_loss_pct))
        self.confidence = confidence

        self.candles: List[Candle] = []
        self.last_action = SignalAction.HOLD
        self.context: Optional[StrategyContext] = None

    def name(self) -> str:
        return self._name

    def trading_pair(self) -> TradingPair:
        return self._pair

    def interval(self) -> Interval:
        return self._interval

    async def initialize(self, context: StrategyContext) -> None:
        """載入足夠計算長期均線的歷史 K 線"""
        self.context = context
        end_time = context.now()
        start_time = end_time - self._interval.to_timedelta() * (self.long_period * 2)

        self.candles = await context.get_klines(KlineRequest(start_time=start_time, end_time=end_time))
        logger.info(f"{self._name} 載入 {len(self.candles)} 根歷史 K 線")

    async def on_candle(self, candle: Candle) -> Signal:
        self.candles.append(candle)

        # 只保留需要的數量
        max_len = self.long_period * 2
        if len(self.candles) > max_len:
            self.candles = self.candles[-max_len:]

        # 需要多一根來判斷交叉
        if len(self.candles) < self.long_period + 1:
            return Signal.hold(self._pair, candle.open_time, "數據不足，無法計算均線")

        indicators = self._calculate_indicators()
        action, reason = self._check_cross(indicators)

        confidence = self.confidence
        if action != SignalAction.HOLD and action == self.last_action:
            action = SignalAction.HOLD
            reason = "重複信號，觀望"
            confidence = 0.0

        if action != SignalAction.HOLD:
            self.last_action = action

        if action == SignalAction.HOLD:
            return Signal(
                trading_pair=self._pair,
                action=SignalAction.HOLD,
                timestamp=candle.open_time,
                confidence=confidence,
                reason=reason,
                metadata=indicators,
            )

        price = candle.close
        if action == SignalAction.LONG:
            take_profit = price * (1 + self.take_profit_pct)
            stop_loss = price * (1 - self.stop_loss_pct)
        else:
            take_profit = price * (1 - self.take_profit_pct)
            stop_loss = price * (1 + self.stop_loss_pct)

        return Signal(
            trading_pair=self._pair,
            action=action,
            timestamp=candle.open_time,
            confidence=confidence,
            take_profit=take_profit,
            stop_loss=stop_loss,
            reason=reason,
            metadata=indicators,
        )

    async def shutdown(self) -> None:
        self.candles = []
        self.context = None

    def _calculate_indicators(self) -> Dict[str, Any]:
        """計算當前和前一根的短期 / 長期均線"""
        df = candles_to_dataframe(self.candles)
        short_ma = df['close'].rolling(window=self.short_period).mean()
        long_ma = df['close'].rolling(window=self.long_period).mean()

        return {
            'short_ma': float(short_ma.iloc[-1]),
            'long_ma': float(long_ma.iloc[-1]),
            'prev_short_ma': float(short_ma.iloc[-2]),
            'prev_long_ma': float(long_ma.iloc[-2]),
            'close_price': float(df['close'].iloc[-1]),
        }

    def _check_cross(self, indicators: Dict[str, Any]) -> Tuple[SignalAction, str]:
        short_ma = indicators['short_ma']
        long_ma = indicators['long_ma']
        prev_short = indicators['prev_short_ma']
        prev_long = indicators['prev_long_ma']

        if any(pd.isna(v) for v in (short_ma, long_ma, prev_short, prev_long)):
            return SignalAction.HOLD, "均線尚未形成"

        # 用 np.sign 比較前後兩根的均線相對位置
        prev_diff = np.sign(prev_short - prev_long)
        diff = np.sign(short_ma - long_ma)

        if prev_diff <= 0 and diff > 0:
            return SignalAction.LONG, f"金叉：短期均線 {short_ma:.2f} 上穿長期均線 {long_ma:.2f}"
        if prev_diff >= 0 and diff < 0:
            return SignalAction.SHORT, f"死叉：短期均線 {short_ma:.2f} 下穿長期均線 {long_ma:.2f}"

        return SignalAction.HOLD, f"無交叉：短期均線 {short_ma:.2f}，長期均線 {long_ma:.2f}"
