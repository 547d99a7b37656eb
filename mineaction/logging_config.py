"""ロギング設定モジュール

Cloud Run / Cloud Logging 環境ではJSON形式、ローカルではテキスト形式でログを出力する。

使い方:
    from mineaction.logging_config import setup_logging
    setup_logging()

    logger.info("Evidence added: action_id=%s", action_id, extra=log_fields(action_id=action_id))

環境変数:
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL) デフォルト: INFO
    LOG_FORMAT: "json" | "text" を指定すると自動判定より優先する
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run 環境判定（自動設定される）
"""

import json
import logging
import os
from datetime import date, datetime
from enum import Enum

# google-cloud-* / firebase_admin の詳細ログは WARNING 以上に抑える
_NOISY_LOGGERS = ("google.auth", "google.api_core", "urllib3", "grpc")


def log_fields(**fields) -> dict:
    """logger.*(..., extra=...) に渡す構造化フィールドを作る"""
    return {"extra_fields": fields}


def _json_default(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class CloudLoggingFormatter(logging.Formatter):
    """Cloud Logging互換のJSONフォーマッタ

    Cloud Run の stdout は Cloud Logging に転送されるが、
    JSON形式で `severity` フィールドを含めることで
    ログレベルが正しくマッピングされる。
    extra=log_fields(...) で渡したフィールドはトップレベルに展開する。
    """

    LEVEL_TO_SEVERITY = {
        "DEBUG": "DEBUG",
        "INFO": "INFO",
        "WARNING": "WARNING",
        "ERROR": "ERROR",
        "CRITICAL": "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "severity": self.LEVEL_TO_SEVERITY.get(record.levelname, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)
        return json.dumps(log_entry, ensure_ascii=False, default=_json_default)


class TextFormatter(logging.Formatter):
    """ローカル用テキストフォーマッタ。extra_fields は key=value で末尾に付与する"""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = getattr(record, "extra_fields", None)
        if not fields:
            return base
        suffix = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{base} [{suffix}]"


def _use_json() -> bool:
    fmt = os.getenv("LOG_FORMAT", "").lower()
    if fmt in ("json", "text"):
        return fmt == "json"
    # Cloud Run 環境判定（K_SERVICE: Cloud Run Services, CLOUD_RUN_JOB: Cloud Run Jobs）
    return bool(os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB"))


def setup_logging() -> None:
    """ログ設定を初期化する

    Cloud Run 環境では Cloud Logging 互換の JSON フォーマットを使用し、
    ローカルではテキスト形式を使用する。
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    handler = logging.StreamHandler()
    if _use_json():
        handler.setFormatter(CloudLoggingFormatter())
    else:
        handler.setFormatter(
            TextFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
