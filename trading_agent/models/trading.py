"""
交易相關數據模型
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Optional

from trading_agent.models.market_data import TradingPair


class SignalAction(str, Enum):
    """信號動作"""
    LONG = 'LONG'
    SHORT = 'SHORT'
    HOLD = 'HOLD'


class PositionSide(str, Enum):
    """持倉方向"""
    LONG = 'LONG'
    SHORT = 'SHORT'

    def opposite(self) -> 'PositionSide':
        return PositionSide.SHORT if self is PositionSide.LONG else PositionSide.LONG


@dataclass(frozen=True)
class Signal:
    """交易信號

    策略每根 K 線產生一個，產生後不再修改。
    置信度一律使用 0-100 刻度，與 RiskConfig.confidence_threshold 一致。
    """
    trading_pair: TradingPair  # 交易對
    action: SignalAction  # 'LONG', 'SHORT', 'HOLD'
    timestamp: datetime  # 時間戳
    confidence: float = 0.0  # 信號置信度（0-100）
    take_profit: Optional[Decimal] = None  # 目標價格（可選）
    stop_loss: Optional[Decimal] = None  # 止損價格
    reason: str = ""  # 信號原因
    metadata: Dict[str, Any] = field(default_factory=dict)  # 額外信息

    @classmethod
    def hold(cls, trading_pair: TradingPair, timestamp: datetime, reason: str = "") -> 'Signal':
        """創建持有信號

        Args:
            trading_pair: 交易對
            timestamp: 時間戳
            reason: 原因

        Returns:
            Signal: 持有信號
        """
        return cls(
            trading_pair=trading_pair,
            action=SignalAction.HOLD,
            timestamp=timestamp,
            confidence=0.0,
            reason=reason,
        )

    def is_hold(self) -> bool:
        return self.action == SignalAction.HOLD

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典"""
        return {
            'symbol': self.trading_pair.symbol,
            'action': self.action.value if isinstance(self.action, SignalAction) else str(self.action),
            'timestamp': self.timestamp.isoformat(),
            'confidence': self.confidence,
            'take_profit': str(self.take_profit) if self.take_profit is not None else None,
            'stop_loss': str(self.stop_loss) if self.stop_loss is not None else None,
            'reason': self.reason,
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class Position:
    """持倉（由交易所抽象層提供，核心只讀）"""
    trading_pair: TradingPair  # 交易對
    side: PositionSide  # 'LONG' or 'SHORT'
    quantity: Decimal  # 持倉數量（幣數，可能帶符號）
    entry_price: Decimal  # 進場價格
    mark_price: Decimal  # 標記價格
    leverage: int = 1  # 槓桿倍數
    margin: Decimal = Decimal('0')  # 保證金
    unrealized_pnl: Decimal = Decimal('0')  # 未實現損益
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def notional(self) -> Decimal:
        """持倉名義價值 = |數量| * 標記價格"""
        return abs(self.quantity) * self.mark_price

    def is_empty(self) -> bool:
        return self.quantity == 0

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典"""
        return {
            'symbol': self.trading_pair.symbol,
            'side': self.side.value,
            'quantity': str(self.quantity),
            'entry_price': str(self.entry_price),
            'mark_price': str(self.mark_price),
            'leverage': self.leverage,
            'margin': str(self.margin),
            'unrealized_pnl': str(self.unrealized_pnl),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class PositionHistory:
    """已平倉持倉記錄"""
    trading_pair: TradingPair
    side: PositionSide
    quantity: Decimal
    entry_price: Decimal
    close_price: Decimal
    realized_pnl: Decimal
    opened_at: datetime
    closed_at: datetime


@dataclass(frozen=True)
class PositionHistoryFilter:
    """歷史持倉查詢條件"""
    trading_pair: Optional[TradingPair] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: int = 100


@dataclass(frozen=True)
class AccountInfo:
    """帳戶快照（每次風控檢查都重新讀取，不跨調用緩存）"""
    total_balance: Decimal  # 總餘額
    available_balance: Decimal  # 可用餘額
    used_margin: Decimal = Decimal('0')  # 已用保證金
    unrealized_pnl: Decimal = Decimal('0')  # 未實現損益


@dataclass(frozen=True)
class OrderRef:
    """交易所返回的訂單引用"""
    order_id: str
    take_profit_id: Optional[str] = None
    stop_loss_id: Optional[str] = None

    def __str__(self) -> str:
        return self.order_id
