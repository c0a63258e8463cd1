"""
錯誤類型

- 風控拒絕不是錯誤，由 HandleSignalResult.validated = False 表示
- InfrastructureError：讀取行情 / 帳戶 / 持倉失敗
- ExecutionError：平倉 / 撤單 / 開倉失敗
- RiskConfigError：風險配置無效
"""

from typing import Optional

from trading_agent.models.market_data import TradingPair


class TradingAgentError(Exception):
    """所有自定義錯誤的基類"""


class RiskConfigError(TradingAgentError, ValueError):
    """風險配置無效"""


class InfrastructureError(TradingAgentError):
    """交易所讀取失敗（網絡、認證、限流等）"""


class MarketDataError(InfrastructureError):
    """獲取市場價格失敗"""


class AccountDataError(InfrastructureError):
    """獲取帳戶信息失敗"""


class PositionDataError(InfrastructureError):
    """獲取持倉信息失敗"""


class ExecutionError(TradingAgentError):
    """執行失敗

    Attributes:
        stage: 失敗的步驟（'positions', 'close', 'cancel', 'open', 'side'）
        trading_pair: 交易對
    """

    def __init__(self, stage: str, message: str, trading_pair: Optional[TradingPair] = None):
        super().__init__(message)
        self.stage = stage
        self.trading_pair = trading_pair
