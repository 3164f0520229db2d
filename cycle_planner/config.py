"""
設定とロガーの初期化
"""
import logging
import os
from dataclasses import dataclass
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .store import MemoryStore, RecordStore

logger = logging.getLogger(__name__)

# 環境変数を読み込み
load_dotenv()

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


class LogLevel(Enum):
    """ログレベル"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class PlannerConfig:
    """アプリケーション設定"""
    supabase_url: str = ""
    supabase_key: str = ""
    secret_key: str = "cycle-planner-dev-key"
    port: int = 8080
    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[str] = None

    @property
    def supabase_configured(self) -> bool:
        """Supabaseが設定されているか"""
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        try:
            log_level = LogLevel(level_name)
        except ValueError:
            log_level = LogLevel.INFO
        return cls(
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_KEY", ""),
            secret_key=os.getenv("SECRET_KEY", cls.secret_key),
            port=int(os.getenv("PORT", "8080")),
            debug=os.getenv("FLASK_DEBUG", "false").lower() == "true",
            log_level=log_level,
            log_file=os.getenv("LOG_FILE") or None,
        )


# setup_logger が追加したハンドラ（再設定時に差し替える）
_installed_handlers: List[logging.Handler] = []


def setup_logger(level: LogLevel = LogLevel.INFO, log_file: Optional[str] = None,
                 max_bytes: int = 10_000_000, backup_count: int = 5) -> logging.Logger:
    """
    ルートロガーにコンソール（と任意でファイル）出力を設定

    何度呼んでも前回追加したハンドラを外してから付け直す。
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.value))
    formatter = logging.Formatter(LOG_FORMAT)

    while _installed_handlers:
        old = _installed_handlers.pop()
        root.removeHandler(old)
        old.close()

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    _installed_handlers.append(console)

    if log_file:
        Path(log_file).parent.mkdir(exist_ok=True, parents=True)
        handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        handler.setFormatter(formatter)
        _installed_handlers.append(handler)

    for handler in _installed_handlers:
        root.addHandler(handler)
    return root


def build_store(config: PlannerConfig) -> RecordStore:
    """Supabaseが設定されていればクラウド、なければメモリ"""
    if config.supabase_configured:
        from .cloud.supabase_store import SupabaseStore
        return SupabaseStore(config.supabase_url, config.supabase_key)
    logger.warning("Supabase未設定のためメモリストアを使用します")
    return MemoryStore()
