"""
市場數據模型
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, List, Sequence

import pandas as pd


@dataclass(frozen=True)
class TradingPair:
    """交易對（不可變，以 base/quote 判斷相等）"""
    base: str
    quote: str

    def is_zero(self) -> bool:
        """是否為空交易對"""
        return not self.base or not self.quote

    @property
    def symbol(self) -> str:
        return f"{self.base}{self.quote}"

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"


class Interval(str, Enum):
    """K 線週期"""
    M1 = '1m'
    M3 = '3m'
    M5 = '5m'
    M15 = '15m'
    M30 = '30m'
    H1 = '1h'
    H2 = '2h'
    H4 = '4h'
    H6 = '6h'
    H8 = '8h'
    H12 = '12h'
    D1 = '1d'
    D3 = '3d'
    W1 = '1w'

    def to_timedelta(self) -> timedelta:
        """週期長度"""
        unit = self.value[-1]
        amount = int(self.value[:-1])
        if unit == 'm':
            return timedelta(minutes=amount)
        if unit == 'h':
            return timedelta(hours=amount)
        if unit == 'd':
            return timedelta(days=amount)
        return timedelta(weeks=amount)


@dataclass(frozen=True)
class Candle:
    """單根 K 線（發出後不可變）"""
    trading_pair: TradingPair
    interval: Interval
    open_time: datetime
    close_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    quote_volume: Decimal = Decimal('0')
    trade_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典"""
        return {
            'symbol': self.trading_pair.symbol,
            'interval': self.interval.value,
            'open_time': self.open_time.isoformat(),
            'close_time': self.close_time.isoformat(),
            'open': str(self.open),
            'high': str(self.high),
            'low': str(self.low),
            'close': str(self.close),
            'volume': str(self.volume),
            'quote_volume': str(self.quote_volume),
            'trade_count': self.trade_count,
        }


def candles_to_dataframe(candles: Sequence[Candle]) -> pd.DataFrame:
    """將 K 線列表轉換為 OHLCV DataFrame

    價格欄位轉為 float，只用於指標計算；下單相關數值仍以 Decimal 為準。

    Args:
        candles: K 線列表（按開盤時間排序）

    Returns:
        pd.DataFrame: 欄位為 timestamp, open, high, low, close, volume
    """
    columns = ['timestamp', 'open', 'high', 'low', 'close', 'volume']
    if not candles:
        return pd.DataFrame(columns=columns)

    rows: List[Dict[str, Any]] = [
        {
            'timestamp': c.open_time,
            'open': float(c.open),
            'high': float(c.high),
            'low': float(c.low),
            'close': float(c.close),
            'volume': float(c.volume),
        }
        for c in candles
    ]
    return pd.DataFrame(rows, columns=columns)
