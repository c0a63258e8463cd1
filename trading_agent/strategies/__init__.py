"""
策略模塊

包含示例交易策略實現。
"""

from trading_agent.strategies.ma_cross_strategy import MovingAverageCrossStrategy

__all__ = ['MovingAverageCrossStrategy']
