"""
風險管理器
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Tuple, Optional, List

from trading_agent.errors import (
    RiskConfigError,
    MarketDataError,
    AccountDataError,
    PositionDataError,
)
from trading_agent.exchange.base import ExchangeService
from trading_agent.models.market_data import TradingPair
from trading_agent.models.risk import RiskConfig, EnhancedSignal, HandleSignalResult
from trading_agent.models.trading import Signal, SignalAction, PositionSide, AccountInfo, Position


logger = logging.getLogger(__name__)

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')


def to_decimal(value: float) -> Decimal:
    """把策略參數（float）轉換為 Decimal，避免二進制浮點誤差"""
    return Decimal(str(value))


class RiskManager:
    """風險管理器

    把策略信號轉換為拒絕（附原因）或已計算倉位的 EnhancedSignal：
    - 信號類型和置信度檢查
    - 止損方向和距離檢查
    - 盈虧比檢查（設置止盈時）
    - 全帳戶槓桿上限
    - 以止損風險預算計算倉位，而非固定資金比例

    只讀取行情、帳戶和持倉，不修改任何狀態。
    """

    def __init__(self, exchange: ExchangeService, config: Optional[RiskConfig] = None):
        """初始化風險管理器

        Args:
            exchange: 交易所服務
            config: 風險配置；為 None 時需在處理信號前調用 initialize()
        """
        self.exchange = exchange
        self._config: Optional[RiskConfig] = None

        if config is not None:
            self.initialize(config)

    def initialize(self, config: RiskConfig) -> None:
        """驗證並設置風險配置

        Args:
            config: 風險配置

        Raises:
            RiskConfigError: 配置無效，錯誤訊息包含出錯的字段名
        """
        valid, error_msg = config.validate()
        if not valid:
            raise RiskConfigError(error_msg)

        self._config = config
        logger.info(f"風險管理器已初始化：{config.to_dict()}")

    @property
    def config(self) -> RiskConfig:
        if self._config is None:
            raise RuntimeError("風險管理器未初始化，請先調用 initialize()")
        return self._config

    async def handle_signal(self, signal: Signal) -> HandleSignalResult:
        """處理策略信號，進行風控檢查並計算倉位

        Args:
            signal: 策略信號

        Returns:
            HandleSignalResult: 風控結果；validated 為 False 時 reason 說明拒絕原因

        Raises:
            RuntimeError: 尚未初始化
            MarketDataError: 獲取市場價格失敗
            AccountDataError: 獲取帳戶信息失敗
            PositionDataError: 獲取持倉信息失敗
        """
        config = self.config

        # 1. 檢查信號類型
        if signal.trading_pair.is_zero():
            return HandleSignalResult.rejected("信號未指定交易對")

        if signal.action == SignalAction.HOLD:
            return HandleSignalResult.rejected("信號為觀望，無需開倉")

        if signal.action not in (SignalAction.LONG, SignalAction.SHORT):
            return HandleSignalResult.rejected(f"不支持的信號類型：{signal.action}")

        # 2. 檢查置信度
        if not 0 <= signal.confidence <= 100:
            return HandleSignalResult.rejected(
                f"置信度 {signal.confidence:.2f} 超出 [0, 100] 範圍"
            )

        if signal.confidence < config.confidence_threshold:
            return HandleSignalResult.rejected(
                f"置信度 {signal.confidence:.2f} 低於閾值 {config.confidence_threshold:.2f}"
            )

        # 3. 檢查止損價格
        if signal.stop_loss is None or signal.stop_loss == 0:
            return HandleSignalResult.rejected("止損價格未設置")

        if signal.stop_loss < 0:
            return HandleSignalResult.rejected(f"止損價格 {signal.stop_loss} 無效")

        # 4. 獲取當前市場價格
        current_price = await self._fetch_price(signal.trading_pair)
        if current_price <= 0:
            return HandleSignalResult.rejected(f"當前價格 {current_price} 無效")

        # 5. 計算止損距離比例
        stop_loss_ratio, reason = self.calculate_stop_loss_ratio(
            signal.action, current_price, signal.stop_loss
        )
        if reason:
            return HandleSignalResult.rejected(reason)

        # 6. 檢查盈虧比（設置了止盈時）
        take_profit = signal.take_profit if signal.take_profit else None
        if take_profit is not None:
            profit_loss_ratio, reason = self.calculate_profit_loss_ratio(
                signal.action, current_price, take_profit, signal.stop_loss
            )
            if reason:
                return HandleSignalResult.rejected(reason)

            min_ratio = to_decimal(config.min_profit_loss_ratio)
            if profit_loss_ratio < min_ratio:
                return HandleSignalResult.rejected(
                    f"盈虧比 {profit_loss_ratio:.2f} 低於最小值 {min_ratio:.2f}"
                )

        # 7. 獲取帳戶快照（每次重新讀取）
        account = await self._fetch_account()

        # 8. 計算當前總槓桿和可用槓桿
        current_leverage = await self.calculate_current_leverage(account)
        available_leverage = Decimal(config.max_leverage) - current_leverage
        if available_leverage <= 0:
            return HandleSignalResult.rejected(
                f"當前總槓桿 {current_leverage:.2f} 已達到或超過最大槓桿 {config.max_leverage}"
            )

        # 9. 止損觸發時虧損不超過 max_stop_loss_ratio：
        #    倉位槓桿 = 最大止損資金比例 / 止損距離比例
        theoretical_leverage = to_decimal(config.max_stop_loss_ratio) / stop_loss_ratio

        # 10. 按置信度調整，最低使用理論槓桿的 50%
        leverage_multiplier = self.calculate_leverage_multiplier(signal.confidence)
        adjusted_leverage = min(theoretical_leverage * leverage_multiplier, available_leverage)

        if adjusted_leverage < ONE:
            return HandleSignalResult.rejected(
                f"計算出的槓桿 {adjusted_leverage:.2f} 小於 1，無法開倉"
            )

        # 11. 開倉數量 = 可用餘額 * 倉位槓桿 / 當前價格
        quantity = account.available_balance * adjusted_leverage / current_price
        if quantity <= 0:
            return HandleSignalResult.rejected(
                f"可用餘額 {account.available_balance} 不足，無法開倉"
            )

        position_side = PositionSide.LONG if signal.action == SignalAction.LONG else PositionSide.SHORT

        enhanced = EnhancedSignal(
            trading_pair=signal.trading_pair,
            position_side=position_side,
            quantity=quantity,
            stop_loss=signal.stop_loss,
            take_profit=take_profit,
            timestamp=signal.timestamp,
            leverage=adjusted_leverage,
        )

        reason = (
            f"通過風控檢查 - 置信度：{signal.confidence:.2f}，"
            f"止損比例：{stop_loss_ratio * HUNDRED:.2f}%，"
            f"倉位槓桿：{adjusted_leverage:.2f}x"
        )
        logger.debug(f"{signal.trading_pair} {reason}，數量 {quantity}")

        return HandleSignalResult.accepted(enhanced, reason)

    def calculate_stop_loss_ratio(
        self,
        action: SignalAction,
        current_price: Decimal,
        stop_loss: Decimal
    ) -> Tuple[Decimal, str]:
        """計算止損距離比例

        做多時止損必須低於當前價，做空時必須高於當前價。

        Args:
            action: 信號動作
            current_price: 當前價格
            stop_loss: 止損價格

        Returns:
            Tuple[Decimal, str]: (止損比例, 拒絕原因；有效時為空字符串)
        """
        if current_price == 0:
            return ZERO, "當前價格為 0"

        if action == SignalAction.LONG:
            if stop_loss >= current_price:
                return ZERO, f"做多止損價 {stop_loss} 應低於當前價 {current_price}"
            distance = current_price - stop_loss
        else:
            if stop_loss <= current_price:
                return ZERO, f"做空止損價 {stop_loss} 應高於當前價 {current_price}"
            distance = stop_loss - current_price

        return distance / current_price, ""

    def calculate_profit_loss_ratio(
        self,
        action: SignalAction,
        current_price: Decimal,
        take_profit: Decimal,
        stop_loss: Decimal
    ) -> Tuple[Decimal, str]:
        """計算盈虧比 = 盈利距離 / 虧損距離

        Args:
            action: 信號動作
            current_price: 當前價格
            take_profit: 止盈價格
            stop_loss: 止損價格

        Returns:
            Tuple[Decimal, str]: (盈虧比, 拒絕原因；有效時為空字符串)
        """
        if current_price == 0:
            return ZERO, "當前價格為 0"

        if action == SignalAction.LONG:
            if take_profit <= current_price:
                return ZERO, f"做多止盈價 {take_profit} 應高於當前價 {current_price}"
            profit_distance = take_profit - current_price
            loss_distance = current_price - stop_loss
        else:
            if take_profit >= current_price:
                return ZERO, f"做空止盈價 {take_profit} 應低於當前價 {current_price}"
            profit_distance = current_price - take_profit
            loss_distance = stop_loss - current_price

        if loss_distance == 0:
            return ZERO, "止損距離為 0"

        return profit_distance / loss_distance, ""

    def calculate_leverage_multiplier(self, confidence: float) -> Decimal:
        """置信度對應的槓桿系數，範圍 [0.5, 1.0]

        Args:
            confidence: 信號置信度（0-100）

        Returns:
            Decimal: 槓桿系數
        """
        threshold = self.config.confidence_threshold
        if threshold >= 100:
            adjustment = 1.0
        else:
            adjustment = (confidence - threshold) / (100 - threshold)
            adjustment = min(1.0, max(0.0, adjustment))

        return to_decimal(0.5 + 0.5 * adjustment)

    async def calculate_current_leverage(self, account: AccountInfo) -> Decimal:
        """計算帳戶當前總槓桿 = Σ(|數量| * 標記價格) / 總餘額

        Args:
            account: 帳戶快照

        Returns:
            Decimal: 當前總槓桿；配置 floor_current_leverage 時向下取整

        Raises:
            PositionDataError: 獲取持倉信息失敗
        """
        positions = await self._fetch_positions()
        if not positions:
            return ZERO

        if account.total_balance <= 0:
            return ZERO

        total_notional = sum((p.notional() for p in positions), ZERO)
        current_leverage = total_notional / account.total_balance

        if self.config.floor_current_leverage:
            current_leverage = current_leverage.to_integral_value(rounding=ROUND_FLOOR)

        return current_leverage

    async def _fetch_price(self, pair: TradingPair) -> Decimal:
        try:
            return await self.exchange.market.ticker(pair)
        except Exception as e:
            raise MarketDataError(f"獲取 {pair} 市場價格失敗：{e}") from e

    async def _fetch_account(self) -> AccountInfo:
        try:
            return await self.exchange.account.get_account_info()
        except Exception as e:
            raise AccountDataError(f"獲取帳戶信息失敗：{e}") from e

    async def _fetch_positions(self) -> List[Position]:
        try:
            return await self.exchange.positions.get_active_positions(None)
        except Exception as e:
            raise PositionDataError(f"獲取持倉信息失敗：{e}") from e
