"""
風險管理數據模型
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional, Tuple

from trading_agent.models.market_data import TradingPair
from trading_agent.models.trading import PositionSide


@dataclass(frozen=True)
class RiskConfig:
    """風險配置

    初始化後不可變；重新初始化必須再次通過 validate()。
    """
    max_stop_loss_ratio: float = 0.05  # 止損觸發時最多虧損總資金的比例
    max_leverage: int = 10  # 全帳戶最大槓桿（總名義價值 / 總權益）
    min_profit_loss_ratio: float = 1.5  # 最小盈虧比（僅在設置止盈時檢查）
    confidence_threshold: float = 60.0  # 最低置信度（0-100 刻度）
    floor_current_leverage: bool = False  # 是否將當前總槓桿向下取整

    def validate(self) -> Tuple[bool, str]:
        """驗證風險配置

        Returns:
            Tuple[bool, str]: (是否有效, 錯誤訊息)
        """
        for name in ('max_stop_loss_ratio', 'min_profit_loss_ratio', 'confidence_threshold'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                return False, f"{name} 必須是有限數值，當前值：{value!r}"

        if not 0 < self.max_stop_loss_ratio < 1:
            return False, f"max_stop_loss_ratio 必須在 (0, 1) 範圍內，當前值：{self.max_stop_loss_ratio}"

        if isinstance(self.max_leverage, bool) or not isinstance(self.max_leverage, int):
            return False, f"max_leverage 必須是整數，當前值：{self.max_leverage!r}"

        if self.max_leverage <= 0:
            return False, f"max_leverage 必須 > 0，當前值：{self.max_leverage}"

        if self.min_profit_loss_ratio < 0:
            return False, f"min_profit_loss_ratio 必須 >= 0，當前值：{self.min_profit_loss_ratio}"

        if not 50 < self.confidence_threshold <= 100:
            return False, f"confidence_threshold 必須在 (50, 100] 範圍內，當前值：{self.confidence_threshold}"

        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典"""
        return {
            'max_stop_loss_ratio': self.max_stop_loss_ratio,
            'max_leverage': self.max_leverage,
            'min_profit_loss_ratio': self.min_profit_loss_ratio,
            'confidence_threshold': self.confidence_threshold,
            'floor_current_leverage': self.floor_current_leverage,
        }


@dataclass(frozen=True)
class EnhancedSignal:
    """經過風控和倉位計算後的信號"""
    trading_pair: TradingPair
    position_side: PositionSide
    quantity: Decimal  # 開倉數量（幣數），通過風控時一定 > 0
    stop_loss: Decimal  # 止損價格，不可為 0
    take_profit: Optional[Decimal]
    timestamp: datetime
    leverage: Decimal = Decimal('0')  # 本次使用的倉位槓桿

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典"""
        return {
            'symbol': self.trading_pair.symbol,
            'position_side': self.position_side.value,
            'quantity': str(self.quantity),
            'stop_loss': str(self.stop_loss),
            'take_profit': str(self.take_profit) if self.take_profit is not None else None,
            'timestamp': self.timestamp.isoformat(),
            'leverage': str(self.leverage),
        }


@dataclass(frozen=True)
class HandleSignalResult:
    """風控處理結果（不持久化）"""
    validated: bool  # 是否通過風控
    reason: str  # 通過或拒絕的原因
    enhanced_signal: Optional[EnhancedSignal] = None

    @classmethod
    def rejected(cls, reason: str) -> 'HandleSignalResult':
        return cls(validated=False, reason=reason)

    @classmethod
    def accepted(cls, signal: EnhancedSignal, reason: str) -> 'HandleSignalResult':
        return cls(validated=True, reason=reason, enhanced_signal=signal)
