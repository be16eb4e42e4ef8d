"""Merkezi yapılandırma. .env dosyası ve environment variable'lardan okunur."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from botocore.config import Config
from dotenv import load_dotenv

# Proje kokundeki .env dosyasini bul ve yukle
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

BOTO_CONFIG = Config(retries={"max_attempts": 3})


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


@dataclass
class Settings:
    region: str = "us-west-2"
    endpoint_url: Optional[str] = None
    table_prefix: str = ""
    txn_max_attempts: int = 5
    txn_base_delay: float = 0.05
    bill_window_days: int = 7
    stream_poll_interval: float = 1.0
    notifier_workers: int = 4
    reconcile_interval: float = 0.0
    bill_check_interval: float = 3600.0
    alert_topic_arn: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            region=os.environ.get("AWS_DEFAULT_REGION", "us-west-2"),
            endpoint_url=os.environ.get("DYNAMODB_ENDPOINT_URL") or None,
            table_prefix=os.environ.get("BATTERY_TABLE_PREFIX", ""),
            txn_max_attempts=_env_int("BATTERY_TXN_MAX_ATTEMPTS", 5),
            txn_base_delay=_env_float("BATTERY_TXN_BASE_DELAY", 0.05),
            bill_window_days=_env_int("BATTERY_BILL_WINDOW_DAYS", 7),
            stream_poll_interval=_env_float("BATTERY_STREAM_POLL_INTERVAL", 1.0),
            notifier_workers=_env_int("BATTERY_NOTIFIER_WORKERS", 4),
            reconcile_interval=_env_float("BATTERY_RECONCILE_INTERVAL", 0.0),
            bill_check_interval=_env_float("BATTERY_BILL_CHECK_INTERVAL", 3600.0),
            alert_topic_arn=os.environ.get("BATTERY_ALERT_TOPIC_ARN") or None,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )

    def table_name(self, base: str) -> str:
        """Prefix uygulanmış fiziksel tablo adını döndürür."""
        return f"{self.table_prefix}{base}"


def configure_logging(level: str = "INFO") -> None:
    """Script'ler ve MCP sunucusu için kök logger'ı ayarlar."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
