"""
管理層模塊
"""

from .risk_manager import RiskManager

__all__ = ['RiskManager']
