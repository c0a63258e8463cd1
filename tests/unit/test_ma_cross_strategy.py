"""
MovingAverageCrossStrategy 單元測試

測試雙均線交叉信號、止盈止損計算和歷史數據載入。
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from trading_agent.execution.context import EngineContext, LogicalClock
from trading_agent.models.market_data import Interval
from trading_agent.models.trading import SignalAction
from trading_agent.strategies import MovingAverageCrossStrategy

from tests.fakes import FakeExchange, make_candle, BTC, T0


@pytest.fixture
def strategy():
    return MovingAverageCrossStrategy(BTC, Interval.H1, short_period=2, long_period=3)


def feed(strategy, closes, start_index=0):
    async def run():
        signals = []
        for i, close in enumerate(closes, start=start_index):
            signals.append(await strategy.on_candle(make_candle(BTC, i, close)))
        return signals
    return asyncio.run(run())


class TestParameters:
    """測試參數驗證"""

    @pytest.mark.parametrize("short_period, long_period", [(0, 3), (3, 3), (5, 2)])
    def test_invalid_periods(self, short_period, long_period):
        with pytest.raises(ValueError):
            MovingAverageCrossStrategy(BTC, short_period=short_period, long_period=long_period)

    def test_identity(self, strategy):
        assert strategy.name() == "ma_cross_strategy"
        assert strategy.trading_pair() == BTC
        assert strategy.interval() == Interval.H1


class TestSignals:
    """測試交叉信號"""

    def test_insufficient_data_holds(self, strategy):
        signals = feed(strategy, [10, 10, 10])

        assert all(s.action == SignalAction.HOLD for s in signals)
        assert "數據不足" in signals[-1].reason

    def test_golden_cross_long(self, strategy):
        signals = feed(strategy, [10, 10, 10, 10, 13])

        assert signals[3].action == SignalAction.HOLD
        long = signals[4]
        assert long.action == SignalAction.LONG
        assert long.confidence == 70.0
        assert long.take_profit == Decimal('13.26')
        assert long.stop_loss == Decimal('12.87')
        assert long.timestamp == T0 + timedelta(hours=4)
        assert long.metadata['short_ma'] == pytest.approx(11.5)
        assert long.metadata['long_ma'] == pytest.approx(11.0)

    def test_death_cross_short(self, strategy):
        signals = feed(strategy, [10, 10, 10, 10, 13, 13, 5])

        assert signals[5].action == SignalAction.HOLD
        short = signals[6]
        assert short.action == SignalAction.SHORT
        assert short.take_profit == Decimal('4.9')
        assert short.stop_loss == Decimal('5.05')
        assert short.stop_loss > Decimal('5') > short.take_profit

    def test_repeated_signal_becomes_hold(self, strategy):
        strategy.last_action = SignalAction.LONG

        signals = feed(strategy, [10, 10, 10, 10, 13])

        assert signals[4].action == SignalAction.HOLD
        assert signals[4].confidence == 0.0
        assert "重複信號" in signals[4].reason

    def test_keeps_bounded_history(self, strategy):
        feed(strategy, [10] * 20)
        assert len(strategy.candles) == 6


class TestInitialize:
    """測試歷史 K 線預熱"""

    def test_loads_history_up_to_now(self, strategy):
        exchange = FakeExchange()
        exchange.market.history[BTC] = [make_candle(BTC, i, 10) for i in range(60)]
        now = T0 + timedelta(hours=40)
        context = EngineContext(BTC, Interval.H1, exchange, LogicalClock(start=now))

        asyncio.run(strategy.initialize(context))

        assert exchange.market.klines_requests == [
            (BTC, Interval.H1, now - timedelta(hours=6), now)
        ]
        assert len(strategy.candles) == 6
        assert all(c.close_time <= now for c in strategy.candles)

    def test_shutdown_clears_state(self, strategy):
        feed(strategy, [10, 10, 10, 10])
        asyncio.run(strategy.shutdown())
        assert strategy.candles == []
