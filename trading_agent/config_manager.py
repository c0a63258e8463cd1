"""
系統配置管理器

從 YAML 文件載入風控、引擎和日誌配置，環境變數可覆蓋文件中的值。
"""

import os
import logging
import logging.handlers
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Dict, List, Any, Tuple, Optional, Callable, Type, TypeVar

import yaml

from trading_agent.models.config import EngineConfig
from trading_agent.models.risk import RiskConfig


logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

T = TypeVar('T')


@dataclass
class SystemInfo:
    """系統信息"""
    name: str = "Trading Agent"
    version: str = "0.1.0"
    environment: str = "development"


@dataclass
class LoggingConfig:
    """日誌配置"""
    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT
    file: Optional[str] = "logs/trading_agent.log"  # 為空時只輸出到終端
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class SystemConfig:
    """完整的系統配置"""
    system: SystemInfo = field(default_factory=SystemInfo)
    risk: RiskConfig = field(default_factory=RiskConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> Tuple[bool, str]:
        """依次驗證各段配置

        Returns:
            Tuple[bool, str]: (是否有效, 錯誤訊息)
        """
        for section in (self.risk, self.engine):
            valid, error_msg = section.validate()
            if not valid:
                return False, error_msg

        if self.logging.level not in VALID_LOG_LEVELS:
            return False, f"logging.level 必須是 {list(VALID_LOG_LEVELS)} 之一，當前值：{self.logging.level}"

        if self.logging.max_bytes <= 0:
            return False, f"logging.max_bytes 必須 > 0，當前值：{self.logging.max_bytes}"

        if self.logging.backup_count < 0:
            return False, f"logging.backup_count 必須 >= 0，當前值：{self.logging.backup_count}"

        return True, ""


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """根據日誌配置初始化根 logger

    終端輸出加上按大小滾動的日誌文件。重複調用會替換之前安裝的處理器。

    Args:
        config: 日誌配置

    Returns:
        logging.Logger: 根 logger
    """
    root = logging.getLogger()
    root.setLevel(config.level)

    for handler in list(root.handlers):
        if getattr(handler, '_trading_agent', False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(config.format)
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding='utf-8',
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._trading_agent = True
        root.addHandler(handler)

    return root


def _parse_datetime(value: Any) -> Optional[datetime]:
    """解析時間配置，無時區時視為 UTC"""
    if value is None or value == "":
        return None

    dt = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _upper(value: Any) -> str:
    return str(value).upper()


# 各段落中需要類型轉換的字段；其餘字段原樣傳入 dataclass
SECTION_CONVERTERS: Dict[str, Dict[str, Callable[[Any], Any]]] = {
    'system': {
        'version': str,
    },
    'risk': {
        'max_stop_loss_ratio': float,
        'max_leverage': int,
        'min_profit_loss_ratio': float,
        'confidence_threshold': float,
        'floor_current_leverage': _parse_bool,
    },
    'engine': {
        'start_time': _parse_datetime,
        'end_time': _parse_datetime,
        'live': _parse_bool,
        'serialize_decisions': _parse_bool,
        'outcome_history': int,
    },
    'logging': {
        'level': _upper,
        'max_bytes': int,
        'backup_count': int,
    },
}

# (環境變數, 段落, 字段, 轉換函數)
ENV_OVERRIDES: List[Tuple[str, str, str, Callable[[str], Any]]] = [
    ('SYSTEM_ENVIRONMENT', 'system', 'environment', str),
    ('RISK_MAX_STOP_LOSS_RATIO', 'risk', 'max_stop_loss_ratio', float),
    ('RISK_MAX_LEVERAGE', 'risk', 'max_leverage', int),
    ('RISK_MIN_PROFIT_LOSS_RATIO', 'risk', 'min_profit_loss_ratio', float),
    ('RISK_CONFIDENCE_THRESHOLD', 'risk', 'confidence_threshold', float),
    ('ENGINE_SERIALIZE_DECISIONS', 'engine', 'serialize_decisions', _parse_bool),
    ('LOG_LEVEL', 'logging', 'level', _upper),
]


class ConfigManager:
    """配置管理器

    優先級：環境變數 > 配置文件 > 默認值。
    載入後的配置必須通過驗證，否則不會替換當前配置。
    """

    def __init__(self, config_path: str = "system_config.yaml"):
        self.config_path = config_path
        self.config: Optional[SystemConfig] = None
        self._watchers: List[Callable[[Optional[SystemConfig], SystemConfig], None]] = []

    def load_config(self) -> SystemConfig:
        """載入並驗證配置

        Returns:
            SystemConfig: 系統配置

        Raises:
            yaml.YAMLError: YAML 格式錯誤
            ValueError: 字段類型錯誤或配置驗證失敗
        """
        path = Path(self.config_path)
        raw: Dict[str, Any] = {}

        if path.exists():
            with path.open('r', encoding='utf-8') as f:
                raw = self._substitute_env_vars(yaml.safe_load(f) or {})
        else:
            logger.warning(f"配置文件不存在：{self.config_path}，使用默認配置")

        config = self._apply_env_overrides(self._parse_config(raw))

        valid, error_msg = config.validate()
        if not valid:
            raise ValueError(f"配置驗證失敗：{error_msg}")

        self.config = config
        logger.info(f"配置載入成功：{self.config_path}")
        return config

    def _substitute_env_vars(self, data: Any) -> Any:
        """遞歸替換字符串中的 ${VAR_NAME}，未定義的變數保持原樣"""
        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        if isinstance(data, str):
            return Template(data).safe_substitute(os.environ)
        return data

    def _parse_config(self, raw: Dict[str, Any]) -> SystemConfig:
        return SystemConfig(
            system=self._parse_section(SystemInfo, 'system', raw),
            risk=self._parse_section(RiskConfig, 'risk', raw),
            engine=self._parse_section(EngineConfig, 'engine', raw),
            logging=self._parse_section(LoggingConfig, 'logging', raw),
        )

    def _parse_section(self, cls: Type[T], section: str, raw: Dict[str, Any]) -> T:
        """按 dataclass 字段解析一個配置段落

        缺少的字段使用 dataclass 默認值，未知字段記錄警告後忽略。

        Args:
            cls: 段落對應的 dataclass
            section: 段落名稱
            raw: 整個配置文件的數據

        Returns:
            段落配置對象

        Raises:
            ValueError: 字段無法轉換為目標類型
        """
        data = raw.get(section) or {}
        known = {f.name for f in fields(cls)}
        converters = SECTION_CONVERTERS.get(section, {})

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"忽略未知配置項：{section}.{key}")
                continue
            convert = converters.get(key)
            kwargs[key] = convert(value) if convert else value

        return cls(**kwargs)

    def _apply_env_overrides(self, config: SystemConfig) -> SystemConfig:
        """用環境變數覆蓋配置（見 ENV_OVERRIDES）

        無法轉換的值記錄警告後忽略。段落以 dataclasses.replace 整體替換，
        因此同樣適用於不可變的 RiskConfig。
        """
        overrides: Dict[str, Dict[str, Any]] = {}

        for env_name, section, field_name, convert in ENV_OVERRIDES:
            if env_name not in os.environ:
                continue
            try:
                value = convert(os.environ[env_name])
            except ValueError:
                logger.warning(f"無效的 {env_name} 值：{os.environ[env_name]}")
                continue
            overrides.setdefault(section, {})[field_name] = value

        for section, values in overrides.items():
            setattr(config, section, replace(getattr(config, section), **values))

        return config

    def get_config(self) -> SystemConfig:
        """獲取當前配置

        Raises:
            RuntimeError: 配置未載入
        """
        if self.config is None:
            raise RuntimeError("配置未載入，請先調用 load_config()")
        return self.config

    def reload_config(self) -> SystemConfig:
        """重新載入配置並通知監聽者

        運行中的風險管理器不會自動更新，需要用新的 RiskConfig 重新 initialize()。

        Returns:
            SystemConfig: 新配置
        """
        logger.info("重新載入配置...")
        previous = self.config
        current = self.load_config()

        for watcher in self._watchers:
            try:
                watcher(previous, current)
            except Exception as e:
                logger.error(f"配置變更通知失敗：{e}")

        return current

    def watch_config_changes(self, callback: Callable[[Optional[SystemConfig], SystemConfig], None]) -> None:
        """註冊配置變更回調，參數為 (舊配置, 新配置)"""
        self._watchers.append(callback)
