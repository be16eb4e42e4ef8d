"""Bildirim teslim katmanı ve ayar testleri."""

from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from battery_ledger.config import Settings
from battery_ledger.notifications.notifier import LogNotifier, SnsNotifier, build_notifier
from battery_ledger.notifications.state import NotificationState, Transition


class TestNotifiers:
    def test_log_notifier_keeps_history(self):
        notifier = LogNotifier()
        notifier.notify("Başlık", "Mesaj")
        assert [(n.title, n.body) for n in notifier.history] == [("Başlık", "Mesaj")]

    def test_sns_subject_is_truncated(self):
        sns = MagicMock()
        SnsNotifier("arn:topic", sns).notify("x" * 150, "gövde")
        kwargs = sns.publish.call_args.kwargs
        assert kwargs["TopicArn"] == "arn:topic"
        assert len(kwargs["Subject"]) == 100

    def test_sns_errors_are_not_raised(self):
        sns = MagicMock()
        sns.publish.side_effect = ClientError({"Error": {"Code": "NotFound", "Message": "x"}}, "Publish")
        SnsNotifier("arn:topic", sns).notify("Başlık", "Mesaj")

    def test_build_notifier_picks_sns_when_topic_configured(self):
        assert isinstance(build_notifier(Settings()), LogNotifier)
        assert isinstance(build_notifier(Settings(alert_topic_arn="arn:topic"), MagicMock()), SnsNotifier)


class TestNotificationState:
    def test_breach_then_recover(self):
        state = NotificationState()
        key = ("V1", "WH1")
        assert state.evaluate(key, 3, 5) == Transition.BREACHED
        assert state.evaluate(key, 5, 5) == Transition.NONE
        assert state.evaluate(key, 6, 5) == Transition.RECOVERED
        assert state.evaluate(key, 6, 5) == Transition.NONE

    def test_exempt_clears_key(self):
        state = NotificationState()
        key = ("V1", "WH1")
        state.evaluate(key, 0, 5)
        assert state.evaluate(key, 0, 0) == Transition.EXEMPT
        assert not state.is_breached(key)

    def test_bill_marked_once(self):
        state = NotificationState()
        assert state.mark_bill("B1") is True
        assert state.mark_bill("B1") is False
        state.forget_bill("B1")
        assert state.mark_bill("B1") is True


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BATTERY_TABLE_PREFIX", "test_")
        monkeypatch.setenv("BATTERY_BILL_WINDOW_DAYS", "10")
        monkeypatch.setenv("BATTERY_RECONCILE_INTERVAL", "30")
        monkeypatch.setenv("BATTERY_BILL_CHECK_INTERVAL", "600")
        settings = Settings.from_env()

        assert settings.table_name("bills") == "test_bills"
        assert settings.bill_window_days == 10
        assert settings.reconcile_interval == 30.0
        assert settings.bill_check_interval == 600.0

    def test_defaults_when_unset(self, monkeypatch):
        monkeypatch.delenv("BATTERY_TXN_MAX_ATTEMPTS", raising=False)
        monkeypatch.delenv("BATTERY_TABLE_PREFIX", raising=False)
        settings = Settings.from_env()
        assert settings.txn_max_attempts == 5
        assert settings.table_name("bills") == "bills"
