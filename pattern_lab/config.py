"""
設定 — 環境変数から読み込む

各値はプロセス起動時に一度だけ読む。
"""

import logging
import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./pattern_lab.db")
REDIS_URL = os.environ.get("REDIS_URL")

# ポーリング間隔 (秒)
OUTBOX_POLL_INTERVAL = float(os.environ.get("OUTBOX_POLL_INTERVAL", "5.0"))
PROJECTION_POLL_INTERVAL = float(os.environ.get("PROJECTION_POLL_INTERVAL", "5.0"))

# 処理済みアウトボックスイベントの保持日数と掃除する時刻
OUTBOX_RETENTION_DAYS = int(os.environ.get("OUTBOX_RETENTION_DAYS", "7"))
OUTBOX_CLEANUP_HOUR = int(os.environ.get("OUTBOX_CLEANUP_HOUR", "2"))

# メッセージブローカーのネットワーク遅延シミュレーション (秒)
PUBLISH_LATENCY = float(os.environ.get("PUBLISH_LATENCY", "0.1"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))


def setup_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
