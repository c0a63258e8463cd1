"""
決策引擎

每個策略一個獨立的決策循環（asyncio 任務）：
K 線 -> 策略信號 -> 風控 -> 執行。出錯時記錄並跳到下一根 K 線，
不重試、不中斷循環。
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from trading_agent.exchange.base import ExchangeService
from trading_agent.exchange.guard import AccountGuard
from trading_agent.execution.context import EngineContext, LogicalClock
from trading_agent.execution.executor import Executor
from trading_agent.execution.strategy import Strategy
from trading_agent.managers.risk_manager import RiskManager
from trading_agent.models.config import EngineConfig
from trading_agent.models.market_data import Candle
from trading_agent.models.state import LoopState, CandleOutcome, LoopStats


logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[str, Candle, CandleOutcome], None]


class DecisionLoop:
    """單個策略的決策循環

    狀態：CREATED -> INITIALIZED -> RUNNING -> (EVALUATING -> HOLDING | EXECUTING) -> STOPPED
    同一交易對的 K 線按到達順序逐根處理。
    """

    def __init__(
        self,
        strategy: Strategy,
        exchange: ExchangeService,
        risk_manager: RiskManager,
        executor: Executor,
        config: Optional[EngineConfig] = None,
        guard: Optional[AccountGuard] = None,
        on_outcome: Optional[OutcomeCallback] = None
    ):
        """初始化決策循環

        Args:
            strategy: 策略實例
            exchange: 交易所服務
            risk_manager: 風險管理器
            executor: 執行器
            config: 引擎配置
            guard: 帳戶鎖（多個循環共用同一個實例）
            on_outcome: 每根 K 線處理完成後的回調
        """
        self.strategy = strategy
        self.exchange = exchange
        self.risk_manager = risk_manager
        self.executor = executor
        self.config = config or EngineConfig()
        self.guard = guard or AccountGuard(enabled=self.config.serialize_decisions)
        self.on_outcome = on_outcome

        self.name = strategy.name()
        self.pair = strategy.trading_pair()
        self.interval = strategy.interval()

        self.clock = LogicalClock(start=self.config.start_time, live=self.config.live)
        self.context = EngineContext(self.pair, self.interval, exchange, self.clock)

        self.stats = LoopStats(strategy_name=self.name)
        self.outcomes: Deque[CandleOutcome] = deque(maxlen=self.config.outcome_history)
        self.finished = asyncio.Event()
        self._last_open_time: Optional[datetime] = None

    @property
    def state(self) -> LoopState:
        return self.stats.state

    def _set_state(self, state: LoopState) -> None:
        self.stats.state = state

    async def run(self) -> LoopStats:
        """運行決策循環直到訂閱結束或被取消

        只有初始化成功的策略才會在結束時調用 shutdown()。

        Returns:
            LoopStats: 循環統計
        """
        initialized = False
        try:
            try:
                await self.strategy.initialize(self.context)
            except Exception as e:
                logger.error(f"策略 {self.name} 初始化失敗：{e}", exc_info=True)
                return self.stats

            initialized = True
            self._set_state(LoopState.INITIALIZED)
            logger.info(f"策略 {self.name} 已初始化，訂閱 {self.pair} {self.interval.value} K 線")

            stream = self.exchange.market.subscribe_kline(self.pair, self.interval)
            self._set_state(LoopState.RUNNING)
            try:
                async for candle in stream:
                    outcome = await self.process_candle(candle)
                    if outcome is None:
                        logger.info(f"策略 {self.name} 已到達結束時間 {self.config.end_time}，停止循環")
                        break
            except Exception as e:
                logger.error(f"策略 {self.name} K 線訂閱中斷：{e}", exc_info=True)
            finally:
                aclose = getattr(stream, 'aclose', None)
                if aclose is not None:
                    await aclose()

        except asyncio.CancelledError:
            logger.info(f"策略 {self.name} 決策循環已取消")
            raise

        finally:
            if initialized:
                await self._shutdown_strategy()
            self._set_state(LoopState.STOPPED)
            self.finished.set()
            logger.info(f"策略 {self.name} 決策循環結束：{self.stats.to_dict()}")

        return self.stats

    async def process_candle(self, candle: Candle) -> Optional[CandleOutcome]:
        """處理一根 K 線

        Args:
            candle: K 線

        Returns:
            Optional[CandleOutcome]: 處理結果；K 線收盤時間超過 end_time 時返回 None，
            表示循環應該結束
        """
        if self._last_open_time is not None and candle.open_time <= self._last_open_time:
            outcome = CandleOutcome.skipped(
                candle.close_time,
                'candle',
                reason=f"K 線開盤時間 {candle.open_time} 未晚於上一根 {self._last_open_time}",
            )
            self._record(candle, outcome)
            return outcome

        self._last_open_time = candle.open_time
        self.clock.advance(candle.close_time)

        if self.config.end_time is not None and candle.close_time > self.config.end_time:
            return None

        self._set_state(LoopState.EVALUATING)
        try:
            outcome = await self._evaluate(candle)
        finally:
            self._set_state(LoopState.RUNNING)

        self._record(candle, outcome)
        return outcome

    async def _evaluate(self, candle: Candle) -> CandleOutcome:
        candle_time = candle.close_time

        # 1. 策略信號
        try:
            signal = await self.strategy.on_candle(candle)
        except Exception as e:
            logger.error(f"策略 {self.name} 生成信號時出錯：{e}", exc_info=True)
            return CandleOutcome.skipped(candle_time, 'strategy', e)

        if signal.is_hold():
            self._set_state(LoopState.HOLDING)
            return CandleOutcome.holding(candle_time, signal.reason)

        logger.info(
            f"策略 {self.name} 生成信號：{signal.action.value} {signal.trading_pair}，"
            f"置信度 {signal.confidence:.2f}，{signal.reason}"
        )

        async with self.guard.hold(self.name):
            # 2. 風控
            try:
                result = await self.risk_manager.handle_signal(signal)
            except Exception as e:
                logger.error(f"策略 {self.name} 風控檢查出錯：{e}")
                return CandleOutcome.skipped(candle_time, 'risk', e)

            if not result.validated:
                logger.warning(f"策略 {self.name} 風險檢查未通過：{result.reason}")
                return CandleOutcome.rejected(candle_time, result.reason)

            # 3. 執行
            self._set_state(LoopState.EXECUTING)
            try:
                report = await self.executor.execute(result.enhanced_signal)
            except Exception as e:
                logger.error(f"策略 {self.name} 執行信號失敗：{e}")
                return CandleOutcome.skipped(candle_time, 'execution', e)

        return CandleOutcome.executed(candle_time, f"{report.action.value}：{result.reason}")

    def _record(self, candle: Candle, outcome: CandleOutcome) -> None:
        self.stats.record(outcome)
        self.outcomes.append(outcome)

        if self.on_outcome is not None:
            try:
                self.on_outcome(self.name, candle, outcome)
            except Exception as e:
                logger.error(f"處理結果回調失敗：{e}")

    async def _shutdown_strategy(self) -> None:
        try:
            await self.strategy.shutdown()
        except Exception as e:
            logger.error(f"策略 {self.name} 關閉時出錯：{e}")


class TradingEngine:
    """決策引擎

    負責：
    1. 管理多個策略，每個策略一個決策循環
    2. 所有循環共用同一個風險管理器、執行器和帳戶
    3. 取消時通知所有循環退出

    核心不對帳戶加鎖（serialize_decisions 默認為 False）：兩個循環可能同時讀到
    交易前的快照，合計槓桿超過 max_leverage。只有當交易所一側也強制保證金上限時
    才可以接受，否則應開啟 serialize_decisions。
    """

    def __init__(
        self,
        exchange: ExchangeService,
        risk_manager: RiskManager,
        config: Optional[EngineConfig] = None,
        executor: Optional[Executor] = None,
        on_outcome: Optional[OutcomeCallback] = None
    ):
        """初始化決策引擎

        Args:
            exchange: 交易所服務
            risk_manager: 已初始化的風險管理器
            config: 引擎配置
            executor: 執行器，為 None 時從 exchange 創建
            on_outcome: 每根 K 線處理完成後的回調

        Raises:
            ValueError: 引擎配置無效
        """
        self.config = config or EngineConfig()
        valid, error_msg = self.config.validate()
        if not valid:
            raise ValueError(f"引擎配置驗證失敗：{error_msg}")

        self.exchange = exchange
        self.risk_manager = risk_manager
        self.executor = executor or Executor(exchange.trading, exchange.orders, exchange.positions)
        self.guard = AccountGuard(enabled=self.config.serialize_decisions)
        self.on_outcome = on_outcome

        self.strategies: Dict[str, Strategy] = {}
        self.loops: Dict[str, DecisionLoop] = {}
        self._tasks: List[asyncio.Task] = []
        self._running = False

        logger.info(f"決策引擎初始化完成：{self.config.to_dict()}")

    def add_strategy(self, strategy: Strategy) -> None:
        """添加策略

        Args:
            strategy: 策略實例

        Raises:
            RuntimeError: 引擎運行中
        """
        if self._running:
            raise RuntimeError("引擎運行中，無法添加策略")

        name = strategy.name()
        if name in self.strategies:
            logger.warning(f"策略 {name} 已存在，將被覆蓋")

        self.strategies[name] = strategy
        logger.info(f"添加策略：{name}（{strategy.trading_pair()} {strategy.interval().value}）")

    async def run(self) -> Dict[str, LoopStats]:
        """啟動所有策略的決策循環，等待全部結束

        Returns:
            Dict[str, LoopStats]: 策略名稱 -> 循環統計

        Raises:
            RuntimeError: 引擎已在運行
        """
        if self._running:
            raise RuntimeError("引擎已在運行")

        if not self.strategies:
            logger.warning("沒有可運行的策略")
            return {}

        self._running = True
        self.loops = {
            name: DecisionLoop(
                strategy,
                self.exchange,
                self.risk_manager,
                self.executor,
                config=self.config,
                guard=self.guard,
                on_outcome=self.on_outcome,
            )
            for name, strategy in self.strategies.items()
        }

        self._tasks = [
            asyncio.create_task(loop.run(), name=f"decision-loop-{name}")
            for name, loop in self.loops.items()
        ]
        logger.info(f"啟動 {len(self._tasks)} 個決策循環")

        try:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for name, result in zip(self.loops, results):
                if isinstance(result, Exception):
                    logger.error(f"策略 {name} 決策循環異常結束：{result}")
        finally:
            self._running = False
            self._tasks = []

        return {name: loop.stats for name, loop in self.loops.items()}

    async def stop(self) -> None:
        """取消所有決策循環並等待它們退出"""
        tasks = [task for task in self._tasks if not task.done()]
        if not tasks:
            return

        logger.info(f"停止 {len(tasks)} 個決策循環")
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

    def get_stats(self) -> Dict[str, LoopStats]:
        """獲取所有循環的統計

        Returns:
            Dict[str, LoopStats]: 策略名稱 -> 循環統計
        """
        return {name: loop.stats for name, loop in self.loops.items()}
