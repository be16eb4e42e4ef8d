"""Bildirim teslim yüzeyi. Gönder-unut; teslim garantisi yoktur."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from battery_ledger.config import Settings
from battery_ledger.store.clients import sns_client as build_sns_client

logger = logging.getLogger(__name__)


@dataclass
class SentNotification:
    title: str
    body: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())


class Notifier(ABC):
    @abstractmethod
    def notify(self, title: str, body: str) -> None:
        ...


class LogNotifier(Notifier):
    """Bildirimleri loglar ve geçmişte tutar."""

    def __init__(self) -> None:
        self.history: list[SentNotification] = []

    def notify(self, title: str, body: str) -> None:
        self.history.append(SentNotification(title=title, body=body))
        logger.info("Bildirim: %s - %s", title, body)


class SnsNotifier(Notifier):
    """Amazon SNS konusuna yayınlar. Hatalar loglanır, yukarı taşınmaz."""

    def __init__(self, topic_arn: str, sns_client: Any) -> None:
        self.topic_arn = topic_arn
        self.sns = sns_client

    def notify(self, title: str, body: str) -> None:
        try:
            # SNS Subject en fazla 100 karakter
            self.sns.publish(TopicArn=self.topic_arn, Subject=title[:100], Message=body)
        except (ClientError, BotoCoreError) as e:
            logger.warning("SNS bildirim hatası: %s", e)


def build_notifier(settings: Settings, sns_client: Optional[Any] = None) -> Notifier:
    if settings.alert_topic_arn:
        return SnsNotifier(settings.alert_topic_arn, sns_client or build_sns_client(settings))
    return LogNotifier()
