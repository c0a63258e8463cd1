"""
帳戶級單寫者鎖

多個決策循環共用一個帳戶時，風控讀取快照到下單完成之間若被其他循環插入，
兩邊都會以交易前的槓桿計算倉位，合計可能超過 max_leverage。
AccountGuard 把這一段串行化。
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional


logger = logging.getLogger(__name__)


class AccountGuard:
    """帳戶決策鎖

    enabled 為 False 時不加鎖，行為等同於直接交給交易所抽象層處理並發。
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._lock: Optional[asyncio.Lock] = None
        self.acquisitions = 0

    def _get_lock(self) -> asyncio.Lock:
        # 延遲創建，確保綁定到正在運行的事件循環
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @asynccontextmanager
    async def hold(self, owner: str = "") -> AsyncIterator[None]:
        """在鎖內執行風控和下單

        Args:
            owner: 持鎖者名稱（僅用於日誌）
        """
        if not self.enabled:
            yield
            return

        lock = self._get_lock()
        if lock.locked():
            logger.debug(f"{owner} 等待帳戶鎖")
        async with lock:
            self.acquisitions += 1
            yield

    def locked(self) -> bool:
        return self._lock is not None and self._lock.locked()
