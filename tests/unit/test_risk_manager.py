"""
RiskManager 單元測試

測試風控檢查順序、倉位計算和錯誤處理。
"""

import asyncio
from decimal import Decimal

import pytest

from trading_agent.errors import (
    RiskConfigError,
    MarketDataError,
    AccountDataError,
    PositionDataError,
    InfrastructureError,
)
from trading_agent.managers.risk_manager import RiskManager
from trading_agent.models.risk import RiskConfig
from trading_agent.models.market_data import TradingPair
from trading_agent.models.trading import Signal, SignalAction, PositionSide, AccountInfo

from tests.fakes import FakeExchange, BTC, ETH, T0


def make_signal(action=SignalAction.LONG, confidence=80.0, stop_loss='49500', take_profit='51500'):
    """以 BTC 50000 為基準的信號"""
    return Signal(
        trading_pair=BTC,
        action=action,
        timestamp=T0,
        confidence=confidence,
        take_profit=Decimal(take_profit) if take_profit is not None else None,
        stop_loss=Decimal(stop_loss) if stop_loss is not None else None,
    )


@pytest.fixture
def exchange():
    """餘額 10000、BTC 價格 50000 的交易所"""
    ex = FakeExchange(balance=Decimal('10000'))
    ex.market.prices[BTC] = Decimal('50000')
    ex.market.prices[ETH] = Decimal('3000')
    return ex


@pytest.fixture
def risk_manager(exchange):
    return RiskManager(exchange, RiskConfig(
        max_stop_loss_ratio=0.05,
        max_leverage=10,
        min_profit_loss_ratio=1.5,
        confidence_threshold=60.0,
    ))


def handle(risk_manager, signal):
    return asyncio.run(risk_manager.handle_signal(signal))


# ============================================================================
# 配置驗證
# ============================================================================

class TestInitialize:
    """測試 initialize 配置驗證"""

    def test_default_config_is_valid(self, exchange):
        rm = RiskManager(exchange)
        rm.initialize(RiskConfig())
        assert rm.config.max_leverage == 10

    @pytest.mark.parametrize("kwargs, field_name", [
        ({'max_stop_loss_ratio': 0}, 'max_stop_loss_ratio'),
        ({'max_stop_loss_ratio': 1}, 'max_stop_loss_ratio'),
        ({'max_stop_loss_ratio': -0.1}, 'max_stop_loss_ratio'),
        ({'max_leverage': 0}, 'max_leverage'),
        ({'max_leverage': 2.5}, 'max_leverage'),
        ({'max_leverage': True}, 'max_leverage'),
        ({'min_profit_loss_ratio': -1}, 'min_profit_loss_ratio'),
        ({'confidence_threshold': 50}, 'confidence_threshold'),
        ({'confidence_threshold': 100.5}, 'confidence_threshold'),
        ({'max_stop_loss_ratio': float('nan')}, 'max_stop_loss_ratio'),
        ({'min_profit_loss_ratio': float('nan')}, 'min_profit_loss_ratio'),
        ({'min_profit_loss_ratio': float('inf')}, 'min_profit_loss_ratio'),
        ({'confidence_threshold': float('nan')}, 'confidence_threshold'),
    ])
    def test_invalid_config_names_field(self, exchange, kwargs, field_name):
        """無效配置的錯誤訊息包含出錯的字段名"""
        rm = RiskManager(exchange)
        with pytest.raises(RiskConfigError, match=field_name):
            rm.initialize(RiskConfig(**kwargs))

    def test_invalid_config_is_value_error(self, exchange):
        with pytest.raises(ValueError):
            RiskManager(exchange, RiskConfig(max_leverage=-1))

    def test_reinitialize_replaces_config(self, risk_manager):
        risk_manager.initialize(RiskConfig(max_leverage=3))
        assert risk_manager.config.max_leverage == 3

    def test_failed_reinitialize_keeps_old_config(self, risk_manager):
        with pytest.raises(RiskConfigError):
            risk_manager.initialize(RiskConfig(max_leverage=0))
        assert risk_manager.config.max_leverage == 10

    def test_handle_signal_before_initialize(self, exchange):
        rm = RiskManager(exchange)
        with pytest.raises(RuntimeError):
            handle(rm, make_signal())


# ============================================================================
# 倉位計算
# ============================================================================

class TestPositionSizing:
    """測試倉位大小計算"""

    def test_round_trip_example(self, risk_manager):
        """50000 做多、止損 49500、止盈 51500、置信度 80 -> 數量 0.75"""
        result = handle(risk_manager, make_signal())

        assert result.validated, result.reason
        enhanced = result.enhanced_signal
        assert enhanced.position_side == PositionSide.LONG
        assert enhanced.trading_pair == BTC
        assert enhanced.leverage == Decimal('3.75')
        assert enhanced.quantity == Decimal('0.75')
        assert enhanced.stop_loss == Decimal('49500')
        assert enhanced.take_profit == Decimal('51500')
        assert enhanced.timestamp == T0
        assert "通過風控檢查" in result.reason

    def test_short_full_confidence(self, risk_manager):
        """做空、置信度 100 時使用完整理論槓桿 5x"""
        signal = make_signal(SignalAction.SHORT, confidence=100.0, stop_loss='50500', take_profit='48500')
        result = handle(risk_manager, signal)

        assert result.validated, result.reason
        assert result.enhanced_signal.position_side == PositionSide.SHORT
        assert result.enhanced_signal.leverage == Decimal('5')
        assert result.enhanced_signal.quantity == Decimal('1')

    def test_threshold_confidence_uses_half_leverage(self, risk_manager):
        result = handle(risk_manager, make_signal(confidence=60.0))
        assert result.validated
        assert result.enhanced_signal.leverage == Decimal('2.5')

    def test_capped_by_available_leverage(self, exchange, risk_manager):
        """已用 9x、上限 10x 時只剩 1x 可用"""
        exchange.add_position(ETH, PositionSide.LONG, 30, 3000)  # 名義價值 90000

        result = handle(risk_manager, make_signal())

        assert result.validated, result.reason
        assert result.enhanced_signal.leverage == Decimal('1')
        assert result.enhanced_signal.quantity <= Decimal('10000') / Decimal('50000')

    def test_max_leverage_reached(self, exchange, risk_manager):
        exchange.add_position(ETH, PositionSide.SHORT, -100, 1000)  # 名義價值 100000

        result = handle(risk_manager, make_signal())

        assert not result.validated
        assert "最大槓桿" in result.reason

    def test_current_leverage_counts_all_pairs(self, exchange, risk_manager):
        exchange.add_position(BTC, PositionSide.LONG, '0.4', 50000)
        exchange.add_position(ETH, PositionSide.SHORT, 10, 3000)

        current = asyncio.run(risk_manager.calculate_current_leverage(exchange.account.info))

        assert current == Decimal('5')

    def test_exact_current_leverage_by_default(self, exchange, risk_manager):
        """9.5x 已用時只剩 0.5x，低於 1 拒絕"""
        exchange.add_position(ETH, PositionSide.LONG, 95, 1000)

        result = handle(risk_manager, make_signal())

        assert not result.validated
        assert "小於 1" in result.reason

    def test_floor_current_leverage(self, exchange):
        """向下取整時 9.5x 視為 9x"""
        exchange.market.prices[BTC] = Decimal('50000')
        exchange.add_position(ETH, PositionSide.LONG, 95, 1000)
        rm = RiskManager(exchange, RiskConfig(floor_current_leverage=True))

        result = handle(rm, make_signal())

        assert result.validated, result.reason
        assert result.enhanced_signal.leverage == Decimal('1')

    def test_wide_stop_rejected(self, risk_manager):
        """止損距離 20% 時理論槓桿 0.25x，無法開倉"""
        result = handle(risk_manager, make_signal(stop_loss='40000', take_profit='70000'))
        assert not result.validated
        assert "小於 1" in result.reason

    def test_zero_balance_rejected(self, exchange, risk_manager):
        exchange.account.info = AccountInfo(
            total_balance=Decimal('0'), available_balance=Decimal('0')
        )
        result = handle(risk_manager, make_signal())
        assert not result.validated
        assert "可用餘額" in result.reason

    def test_threshold_100(self, exchange):
        """閾值 100 時置信度系數為 1"""
        rm = RiskManager(exchange, RiskConfig(confidence_threshold=100))
        result = handle(rm, make_signal(confidence=100.0))
        assert result.validated
        assert result.enhanced_signal.leverage == Decimal('5')

    def test_leverage_multiplier_range(self, risk_manager):
        assert risk_manager.calculate_leverage_multiplier(60.0) == Decimal('0.5')
        assert risk_manager.calculate_leverage_multiplier(80.0) == Decimal('0.75')
        assert risk_manager.calculate_leverage_multiplier(100.0) == Decimal('1.0')

    def test_read_only(self, exchange, risk_manager):
        """風控只讀取，不下單"""
        handle(risk_manager, make_signal())

        assert exchange.calls('open', 'close', 'cancel') == []
        assert [c[0] for c in exchange.log] == ['ticker', 'account', 'positions']
        assert exchange.calls('positions') == [('positions', None)]


# ============================================================================
# 拒絕條件
# ============================================================================

class TestRejections:
    """測試各項拒絕條件"""

    def test_hold_rejected_without_reads(self, exchange, risk_manager):
        result = handle(risk_manager, Signal.hold(BTC, T0))

        assert not result.validated
        assert result.enhanced_signal is None
        assert exchange.log == []

    def test_missing_trading_pair(self, exchange, risk_manager):
        signal = Signal(TradingPair("", ""), SignalAction.LONG, T0, confidence=80.0, stop_loss=Decimal('49500'))

        result = handle(risk_manager, signal)

        assert not result.validated
        assert "交易對" in result.reason
        assert exchange.log == []

    def test_low_confidence(self, exchange, risk_manager):
        result = handle(risk_manager, make_signal(confidence=59.9))

        assert not result.validated
        assert "低於閾值" in result.reason
        assert exchange.log == []

    @pytest.mark.parametrize("confidence", [-1.0, 100.1, 150.0])
    def test_confidence_out_of_scale(self, risk_manager, confidence):
        result = handle(risk_manager, make_signal(confidence=confidence))
        assert not result.validated
        assert "超出" in result.reason

    @pytest.mark.parametrize("stop_loss", [None, '0'])
    def test_stop_loss_not_set(self, exchange, risk_manager, stop_loss):
        result = handle(risk_manager, make_signal(stop_loss=stop_loss))

        assert not result.validated
        assert result.reason == "止損價格未設置"
        assert exchange.log == []

    def test_long_stop_above_price(self, risk_manager):
        result = handle(risk_manager, make_signal(stop_loss='50500'))
        assert not result.validated
        assert "應低於當前價" in result.reason

    def test_long_stop_equal_price(self, risk_manager):
        result = handle(risk_manager, make_signal(stop_loss='50000'))
        assert not result.validated

    def test_short_stop_below_price(self, risk_manager):
        signal = make_signal(SignalAction.SHORT, stop_loss='49500', take_profit='48500')
        result = handle(risk_manager, signal)
        assert not result.validated
        assert "應高於當前價" in result.reason

    def test_long_take_profit_below_price(self, risk_manager):
        result = handle(risk_manager, make_signal(take_profit='49000'))
        assert not result.validated
        assert "止盈" in result.reason

    def test_short_take_profit_above_price(self, risk_manager):
        signal = make_signal(SignalAction.SHORT, stop_loss='50500', take_profit='51000')
        result = handle(risk_manager, signal)
        assert not result.validated
        assert "止盈" in result.reason

    def test_profit_loss_ratio_too_low(self, exchange, risk_manager):
        result = handle(risk_manager, make_signal(take_profit='50500'))

        assert not result.validated
        assert "盈虧比" in result.reason
        # 盈虧比不通過時不讀取帳戶
        assert exchange.calls('account', 'positions') == []

    @pytest.mark.parametrize("take_profit", [None, '0'])
    def test_take_profit_optional(self, risk_manager, take_profit):
        """未設置止盈時跳過盈虧比檢查"""
        result = handle(risk_manager, make_signal(take_profit=take_profit))

        assert result.validated, result.reason
        assert result.enhanced_signal.take_profit is None

    def test_zero_price_rejected(self, exchange, risk_manager):
        exchange.market.prices[BTC] = Decimal('0')
        result = handle(risk_manager, make_signal())
        assert not result.validated
        assert "價格" in result.reason


# ============================================================================
# 基礎設施錯誤
# ============================================================================

class TestInfrastructureErrors:
    """讀取失敗時拋出錯誤，而不是返回拒絕"""

    def test_market_data_error(self, exchange, risk_manager):
        exchange.market.fail_ticker = True

        with pytest.raises(MarketDataError) as exc_info:
            handle(risk_manager, make_signal())

        assert isinstance(exc_info.value, InfrastructureError)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_account_data_error(self, exchange, risk_manager):
        exchange.account.fail = True

        with pytest.raises(AccountDataError):
            handle(risk_manager, make_signal())

    def test_position_data_error(self, exchange, risk_manager):
        exchange.positions.fail_reads = 1

        with pytest.raises(PositionDataError):
            handle(risk_manager, make_signal())
