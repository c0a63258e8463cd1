"""
持倉執行器

把 EnhancedSignal 轉換為撤單 / 平倉 / 開倉操作序列，
確保同一交易對不會同時持有多空兩個方向。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, List

from trading_agent.errors import ExecutionError
from trading_agent.exchange.base import TradingService, OrderService, PositionService
from trading_agent.models.risk import EnhancedSignal
from trading_agent.models.trading import Position, PositionSide, OrderRef


logger = logging.getLogger(__name__)


class ExecutionAction(str, Enum):
    """執行動作"""
    OPEN = 'open'  # 無持倉，新開倉
    ADD = 'add'  # 同向加倉
    REVERSE = 'reverse'  # 平掉反向持倉後開倉


@dataclass(frozen=True)
class ExecutionReport:
    """執行結果"""
    action: ExecutionAction
    position_side: PositionSide
    order_ref: OrderRef
    closed_side: Optional[PositionSide] = None
    close_ref: Optional[OrderRef] = None


class Executor:
    """持倉執行器

    狀態轉換（按交易對）：
    - 信號做多、已有空單：全部平空 -> 撤銷該交易對所有訂單 -> 開多
    - 信號做空、已有多單：全部平多 -> 撤銷所有訂單 -> 開空
    - 信號與已有持倉同向：加倉
    - 無持倉：開倉

    平倉或撤單失敗時不會繼續開倉；開倉失敗時已完成的平倉不回滾，
    帳戶保持空倉。
    """

    def __init__(
        self,
        trading: TradingService,
        orders: OrderService,
        positions: PositionService
    ):
        """初始化執行器

        Args:
            trading: 交易服務（開倉 / 平倉）
            orders: 訂單服務（撤單）
            positions: 持倉服務
        """
        self.trading = trading
        self.orders = orders
        self.positions = positions

    async def execute(self, signal: EnhancedSignal) -> ExecutionReport:
        """執行信號

        Args:
            signal: 經過風控的信號

        Returns:
            ExecutionReport: 執行結果

        Raises:
            ExecutionError: 任一步驟失敗，stage 標明失敗的步驟
        """
        pair = signal.trading_pair
        side = signal.position_side

        if side not in (PositionSide.LONG, PositionSide.SHORT):
            raise ExecutionError('side', f"不支持的持倉方向：{side}", pair)

        # 1. 獲取當前持倉
        try:
            active = await self.positions.get_active_positions([pair])
        except Exception as e:
            raise ExecutionError('positions', f"獲取 {pair} 持倉失敗：{e}", pair) from e

        long_position, short_position = self._split_positions(active, signal)
        same_side = long_position if side == PositionSide.LONG else short_position
        opposite = short_position if side == PositionSide.LONG else long_position

        close_ref: Optional[OrderRef] = None
        closed_side: Optional[PositionSide] = None

        # 2. 有反向持倉時，先全部平倉再撤單
        if opposite is not None:
            closed_side = side.opposite()
            logger.info(f"{pair} 檢測到{_side_name(closed_side)}，先平倉再開{_side_name(side)}")

            try:
                close_ref = await self.trading.close_position(pair, closed_side, close_all=True)
            except Exception as e:
                raise ExecutionError('close', f"平{_side_name(closed_side)}失敗：{e}", pair) from e

            # 反向持倉的止盈止損單不能留在新持倉上
            try:
                await self.orders.cancel_orders(pair)
            except Exception as e:
                raise ExecutionError('cancel', f"平倉後撤銷 {pair} 訂單失敗：{e}", pair) from e

        if opposite is not None:
            action = ExecutionAction.REVERSE
        elif same_side is not None:
            action = ExecutionAction.ADD
        else:
            action = ExecutionAction.OPEN

        # 3. 開倉或加倉
        try:
            order_ref = await self.trading.open_position(
                pair,
                side,
                signal.quantity,
                take_profit=signal.take_profit,
                stop_loss=signal.stop_loss,
                timestamp=signal.timestamp,
            )
        except Exception as e:
            raise ExecutionError('open', f"開{_side_name(side)}失敗：{e}", pair) from e

        logger.info(
            f"{pair} {'加倉' if action == ExecutionAction.ADD else '開倉'}：{_side_name(side)}，"
            f"數量 {signal.quantity}，止損 {signal.stop_loss}，止盈 {signal.take_profit}，訂單 {order_ref}"
        )

        return ExecutionReport(
            action=action,
            position_side=side,
            order_ref=order_ref,
            closed_side=closed_side,
            close_ref=close_ref,
        )

    @staticmethod
    def _split_positions(
        positions: List[Position],
        signal: EnhancedSignal
    ) -> Tuple[Optional[Position], Optional[Position]]:
        """找出該交易對的多單和空單，忽略數量為 0 的持倉"""
        long_position = None
        short_position = None

        for position in positions:
            if position.trading_pair != signal.trading_pair or position.is_empty():
                continue
            if position.side == PositionSide.LONG:
                long_position = position
            elif position.side == PositionSide.SHORT:
                short_position = position

        return long_position, short_position


def _side_name(side: PositionSide) -> str:
    return '多單' if side == PositionSide.LONG else '空單'
