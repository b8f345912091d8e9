"""
Observer パターン — ニュース配信

Subject (NewsAgency) が購読者 (Observer) の一覧を持ち、
ニュースを発行すると全員の update() を呼ぶ。

    NewsAgency ──publish_news()──┬─▶ NewsChannel
                                 ├─▶ EmailSubscriber
                                 └─▶ MobileApp

1人の購読者で例外が起きても、残りの購読者への配信は続ける。
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime

logger = logging.getLogger(__name__)


class Observer(ABC):
    """Subject から通知を受け取る購読者"""

    @abstractmethod
    def update(self, message: str) -> None:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...


class NewsAgency:
    """ニュースを発行して購読者に通知する Subject"""

    def __init__(self) -> None:
        self._observers: list[Observer] = []
        self.latest_news: str | None = None

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)
        logger.info("Observer registered: %s", observer.name)

    def remove_observer(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)
            logger.info("Observer removed: %s", observer.name)

    def notify_observers(self, message: str) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        formatted = f"[{timestamp}] {message}"
        logger.info("Publishing news: %s (observers=%d)", message, len(self._observers))

        # 通知中の登録解除に備えてコピーを回す
        for observer in list(self._observers):
            try:
                observer.update(formatted)
            except Exception:
                logger.exception("Failed to notify observer %s", observer.name)

    def publish_news(self, news: str) -> None:
        self.latest_news = news
        self.notify_observers(news)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def observer_names(self) -> list[str]:
        return [o.name for o in self._observers]


# ── 購読者の実装 ─────────────────────────────────


class NewsChannel(Observer):
    """受信したニュースを放送する TV チャンネル"""

    def __init__(self, channel_name: str) -> None:
        self.channel_name = channel_name
        self.news_history: list[str] = []

    @property
    def name(self) -> str:
        return self.channel_name

    def update(self, message: str) -> None:
        self.news_history.append(message)
        logger.info("[%s] broadcasting: %s", self.channel_name, message)

    @property
    def latest_news(self) -> str | None:
        return self.news_history[-1] if self.news_history else None


class EmailSubscriber(Observer):
    """メールでニュースを受け取る購読者"""

    def __init__(self, subscriber_name: str, email: str) -> None:
        self.subscriber_name = subscriber_name
        self.email = email
        self.email_history: list[str] = []

    @property
    def name(self) -> str:
        return f"{self.subscriber_name} ({self.email})"

    def update(self, message: str) -> None:
        content = (
            f"Hello {self.subscriber_name},\n\n"
            f"New news has arrived:\n{message}\n\n"
            "Visit our website for more news.\n"
        )
        self.email_history.append(content)
        logger.info("[email] sent to %s", self.email)

    @property
    def latest_email(self) -> str | None:
        return self.email_history[-1] if self.email_history else None


class MobileApp(Observer):
    """
    プッシュ通知でニュースを受け取るモバイルアプリ

    通知は 50 文字を超えると 47 文字 + "..." に切り詰める。
    push_enabled が False の間は通知を捨てる。
    """

    MAX_LENGTH = 50

    def __init__(self, app_name: str, device_id: str) -> None:
        self.app_name = app_name
        self.device_id = device_id
        self.notifications: list[str] = []
        self.push_enabled = True

    @property
    def name(self) -> str:
        return f"{self.app_name} (Device: {self.device_id})"

    def update(self, message: str) -> None:
        if not self.push_enabled:
            logger.info("[%s] push notifications disabled", self.app_name)
            return

        notification = "Breaking: " + self.shorten(message)
        self.notifications.append(notification)
        logger.info("[%s] push to %s: %s", self.app_name, self.device_id, notification)

    @classmethod
    def shorten(cls, news: str) -> str:
        if len(news) > cls.MAX_LENGTH:
            return news[: cls.MAX_LENGTH - 3] + "..."
        return news

    @property
    def latest_notification(self) -> str | None:
        return self.notifications[-1] if self.notifications else None
