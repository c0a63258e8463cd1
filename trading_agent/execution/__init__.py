"""
執行層模塊
"""

from .strategy import Strategy, StrategyContext, KlineRequest
from .context import EngineContext, LogicalClock
from .executor import Executor, ExecutionAction, ExecutionReport
from .engine import DecisionLoop, TradingEngine

__all__ = [
    'Strategy',
    'StrategyContext',
    'KlineRequest',
    'EngineContext',
    'LogicalClock',
    'Executor',
    'ExecutionAction',
    'ExecutionReport',
    'DecisionLoop',
    'TradingEngine',
]
