"""
決策循環狀態數據模型
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class LoopState(str, Enum):
    """決策循環狀態

    Created -> Initialized -> Running -> (Evaluating -> Holding | Executing) -> Stopped
    """
    CREATED = 'created'
    INITIALIZED = 'initialized'
    RUNNING = 'running'
    EVALUATING = 'evaluating'
    HOLDING = 'holding'
    EXECUTING = 'executing'
    STOPPED = 'stopped'


class OutcomeKind(str, Enum):
    """單根 K 線的處理結果"""
    EXECUTED = 'executed'  # 已下單
    REJECTED = 'rejected'  # 風控拒絕
    HOLDING = 'holding'  # 策略觀望
    SKIPPED = 'skipped'  # 出錯跳過


@dataclass(frozen=True)
class CandleOutcome:
    """單根 K 線的處理結果記錄"""
    kind: OutcomeKind
    candle_time: datetime
    reason: str = ""
    stage: str = ""  # 'strategy', 'risk', 'execution', 'candle'
    error: Optional[BaseException] = None

    @classmethod
    def executed(cls, candle_time: datetime, reason: str = "") -> 'CandleOutcome':
        return cls(OutcomeKind.EXECUTED, candle_time, reason, 'execution')

    @classmethod
    def rejected(cls, candle_time: datetime, reason: str) -> 'CandleOutcome':
        return cls(OutcomeKind.REJECTED, candle_time, reason, 'risk')

    @classmethod
    def holding(cls, candle_time: datetime, reason: str = "") -> 'CandleOutcome':
        return cls(OutcomeKind.HOLDING, candle_time, reason, 'strategy')

    @classmethod
    def skipped(cls, candle_time: datetime, stage: str, error: Optional[BaseException] = None,
                reason: str = "") -> 'CandleOutcome':
        if not reason and error is not None:
            reason = str(error)
        return cls(OutcomeKind.SKIPPED, candle_time, reason, stage, error)


@dataclass
class LoopStats:
    """單個策略循環的統計"""
    strategy_name: str
    state: LoopState = LoopState.CREATED
    candles_processed: int = 0
    executed: int = 0
    rejected: int = 0
    holding: int = 0
    skipped: int = 0
    last_outcome: Optional[CandleOutcome] = None
    last_update: datetime = field(default_factory=datetime.now)

    def record(self, outcome: CandleOutcome) -> None:
        """記錄一次 K 線處理結果

        Args:
            outcome: 處理結果
        """
        self.candles_processed += 1
        if outcome.kind == OutcomeKind.EXECUTED:
            self.executed += 1
        elif outcome.kind == OutcomeKind.REJECTED:
            self.rejected += 1
        elif outcome.kind == OutcomeKind.HOLDING:
            self.holding += 1
        else:
            self.skipped += 1

        self.last_outcome = outcome
        self.last_update = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典

        Returns:
            Dict[str, Any]: 狀態字典
        """
        return {
            'strategy_name': self.strategy_name,
            'state': self.state.value,
            'candles_processed': self.candles_processed,
            'executed': self.executed,
            'rejected': self.rejected,
            'holding': self.holding,
            'skipped': self.skipped,
            'last_outcome': self.last_outcome.kind.value if self.last_outcome else None,
            'last_update': self.last_update.isoformat(),
        }
