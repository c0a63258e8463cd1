"""
引擎配置數據模型
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Dict, Any


@dataclass
class EngineConfig:
    """決策引擎配置"""
    start_time: Optional[datetime] = None  # 回放起點（邏輯時鐘初始值）
    end_time: Optional[datetime] = None  # 回放終點；K 線收盤時間超過後結束循環
    live: bool = True  # 實盤模式：邏輯時鐘返回系統時間；False 為回放模式
    serialize_decisions: bool = False  # 是否在帳戶鎖內執行風控和下單
    outcome_history: int = 1000  # 每個循環保留的處理結果數量

    def validate(self) -> Tuple[bool, str]:
        """驗證引擎配置

        Returns:
            Tuple[bool, str]: (是否有效, 錯誤訊息)
        """
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            return False, f"end_time ({self.end_time}) 必須晚於 start_time ({self.start_time})"

        if self.live and self.end_time is not None:
            return False, "實盤模式不能設置 end_time"

        if not self.live and self.start_time is None:
            return False, "回放模式必須設置 start_time"

        if self.outcome_history < 1:
            return False, f"outcome_history 必須 >= 1，當前值：{self.outcome_history}"

        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        """轉換為字典"""
        return {
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'live': self.live,
            'serialize_decisions': self.serialize_decisions,
            'outcome_history': self.outcome_history,
        }
