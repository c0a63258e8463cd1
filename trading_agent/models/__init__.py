"""
數據模型模塊
"""

from .market_data import TradingPair, Interval, Candle, candles_to_dataframe
from .trading import (
    SignalAction,
    PositionSide,
    Signal,
    Position,
    PositionHistory,
    PositionHistoryFilter,
    AccountInfo,
    OrderRef,
)
from .risk import RiskConfig, EnhancedSignal, HandleSignalResult
from .state import LoopState, OutcomeKind, CandleOutcome, LoopStats
from .config import EngineConfig

__all__ = [
    # 市場數據
    'TradingPair',
    'Interval',
    'Candle',
    'candles_to_dataframe',
    # 交易
    'SignalAction',
    'PositionSide',
    'Signal',
    'Position',
    'PositionHistory',
    'PositionHistoryFilter',
    'AccountInfo',
    'OrderRef',
    # 風險
    'RiskConfig',
    'EnhancedSignal',
    'HandleSignalResult',
    # 配置
    'EngineConfig',
    # 狀態
    'LoopState',
    'OutcomeKind',
    'CandleOutcome',
    'LoopStats',
]
