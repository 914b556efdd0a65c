"""Tests for the fraud check orchestrator."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from redeem_guard.db.time import utcnow_naive
from redeem_guard.models import FraudLog, FraudReason
from redeem_guard.repositories import FraudLogEntry
from redeem_guard.services.alerts import AlertDispatcher
from redeem_guard.services.fraud_detection import (
    FraudDetectionService,
    RedemptionAttemptContext,
)
from redeem_guard.services.guard import FraudGuard


def _ctx(ip: str, user_agent: str = "scanner/1.0") -> RedemptionAttemptContext:
    return RedemptionAttemptContext(ip_address=ip, user_agent=user_agent, device_fingerprint="fp")


def _fraud_logs(db_session, reason: FraudReason | None = None) -> list[FraudLog]:
    query = db_session.query(FraudLog)
    if reason is not None:
        query = query.filter(FraudLog.reason == reason.value)
    return query.all()


def test_fresh_redemption_is_allowed(fraud_service, make_gift_card, db_session) -> None:
    card = make_gift_card()
    result = fraud_service.check_redemption_fraud(_ctx("192.0.2.1"), card.gan, "merchant-1")

    assert not result.is_blocked
    assert result.risk_level == "low"
    assert result.reason is None
    assert _fraud_logs(db_session) == []


def test_fourth_attempt_from_one_ip_is_rate_limited(
    fraud_service, make_gift_card, db_session, fake_clock
) -> None:
    cards = [make_gift_card() for _ in range(4)]
    results = []
    for card in cards:
        results.append(fraud_service.check_redemption_fraud(_ctx("192.0.2.2"), card.gan))
        fake_clock.advance(5)

    assert [r.is_blocked for r in results] == [False, False, False, True]
    blocked = results[-1]
    assert blocked.code == FraudReason.RATE_LIMIT_IP.value
    assert blocked.risk_level == "high"
    assert blocked.retry_after is not None and blocked.retry_after > 0
    logs = _fraud_logs(db_session)
    assert len(logs) == 1
    assert logs[0].reason == FraudReason.RATE_LIMIT_IP.value
    assert logs[0].gan == cards[-1].gan


def test_redeemed_card_is_blocked_from_any_ip(
    fraud_service, repo, make_gift_card, db_session
) -> None:
    card = make_gift_card()
    assert not fraud_service.check_redemption_fraud(_ctx("192.0.2.3"), card.gan).is_blocked
    repo.redeem_gift_card(card)

    result = fraud_service.check_redemption_fraud(_ctx("192.0.2.99"), card.gan)

    assert result.is_blocked
    assert result.code == FraudReason.REUSED_CODE.value
    assert "already been redeemed" in result.reason
    assert result.risk_level == "high"
    assert len(_fraud_logs(db_session, FraudReason.REUSED_CODE)) == 1


def test_fourth_distinct_ip_on_one_gan_is_blocked(
    fraud_service, make_gift_card, db_session
) -> None:
    card = make_gift_card()
    for ip in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
        result = fraud_service.check_redemption_fraud(_ctx(ip), card.gan)
        assert not result.is_blocked
        fraud_service.log_redemption_failure(_ctx(ip), card.gan, reason=FraudReason.INVALID_CODE)

    result = fraud_service.check_redemption_fraud(_ctx("10.0.0.4"), card.gan)

    assert result.is_blocked
    assert result.code == FraudReason.MULTIPLE_IPS.value
    assert result.risk_level == "high"
    assert len(_fraud_logs(db_session, FraudReason.MULTIPLE_IPS)) == 1


def test_repeated_failures_from_one_device_are_blocked(fraud_service, db_session) -> None:
    ctx = _ctx("192.0.2.10", user_agent="bad-scanner/2.0")
    for i in range(5):
        reason = FraudReason.INVALID_CODE if i % 2 else FraudReason.REDEMPTION_FAILED
        fraud_service.log_redemption_failure(ctx, "GAN-X", reason=reason)

    other_device = fraud_service.check_redemption_fraud(_ctx("192.0.2.10"), "GAN-Y")
    assert not other_device.is_blocked

    result = fraud_service.check_redemption_fraud(ctx, "GAN-Z")
    assert result.is_blocked
    assert result.code == FraudReason.DEVICE_FINGERPRINT.value


def test_other_failure_reasons_do_not_count_toward_device_check(fraud_service) -> None:
    ctx = _ctx("192.0.2.11")
    for _ in range(6):
        fraud_service.log_redemption_failure(ctx, "GAN-X", reason=FraudReason.INACTIVE_CARD)
    assert not fraud_service.check_redemption_fraud(ctx, "GAN-Y").is_blocked


def test_merchant_rate_limit(fraud_service) -> None:
    results = [
        fraud_service.check_redemption_fraud(_ctx(f"172.16.0.{i}"), f"GAN-{i}", "merchant-9")
        for i in range(11)
    ]
    assert not any(r.is_blocked for r in results[:10])
    assert results[10].is_blocked
    assert results[10].code == FraudReason.RATE_LIMIT_MERCHANT.value
    assert results[10].retry_after is not None


def test_blocks_feed_the_signal_aggregator(fraud_service, guard, repo, make_gift_card) -> None:
    card = make_gift_card(redeemed=True)
    fraud_service.check_redemption_fraud(_ctx("192.0.2.20"), card.gan)
    record = guard.aggregator.get("192.0.2.20")
    assert record is not None and record.failed_attempts == 1


def test_block_alerts_are_emitted_when_enabled(
    guard_settings, fake_clock, repo, make_gift_card
) -> None:
    dispatcher = MagicMock(spec=AlertDispatcher)
    guard = FraudGuard.build(
        guard_settings, dispatcher=dispatcher, clock=fake_clock, alert_on_block=True
    )
    service = FraudDetectionService(guard, repo)
    card = make_gift_card(redeemed=True)

    service.check_redemption_fraud(_ctx("192.0.2.21"), card.gan, "merchant-1")

    alert = dispatcher.emit.call_args.args[0]
    assert alert.type == "redemption-blocked"
    assert alert.severity == "high"
    assert alert.reason == FraudReason.REUSED_CODE.value
    assert alert.gan == card.gan
    assert alert.merchant_id == "merchant-1"


def test_storage_errors_fail_open(fraud_service, repo, mocker) -> None:
    error = OperationalError("SELECT", {}, Exception("database unavailable"))
    mocker.patch.object(repo, "find_gift_card_by_identifier", side_effect=error)
    mocker.patch.object(repo, "query_fraud_events", side_effect=error)

    result = fraud_service.check_redemption_fraud(_ctx("192.0.2.30"), "GAN-1")

    assert not result.is_blocked
    assert result.risk_level == "low"


def test_failed_fraud_log_write_still_blocks(fraud_service, repo, mocker, make_gift_card) -> None:
    card = make_gift_card(redeemed=True)
    mocker.patch.object(
        repo,
        "record_fraud_event",
        side_effect=OperationalError("INSERT", {}, Exception("disk full")),
    )
    result = fraud_service.check_redemption_fraud(_ctx("192.0.2.31"), card.gan)
    assert result.is_blocked


def test_recent_fraud_logs_newest_first(fraud_service, repo) -> None:
    now = utcnow_naive()
    for minutes, gan in ((30, "GAN-OLD"), (10, "GAN-MID"), (1, "GAN-NEW")):
        repo.record_fraud_event(
            FraudLogEntry(
                gan=gan,
                ip_address="192.0.2.40",
                reason=FraudReason.INVALID_CODE,
                created_at=now - timedelta(minutes=minutes),
            )
        )

    logs = fraud_service.get_recent_fraud_logs(limit=2)
    assert [log.gan for log in logs] == ["GAN-NEW", "GAN-MID"]


def test_fraud_statistics(fraud_service, repo) -> None:
    now = utcnow_naive()
    entries = [
        ("192.0.2.50", FraudReason.INVALID_CODE, 5),
        ("192.0.2.50", FraudReason.INVALID_CODE, 10),
        ("192.0.2.51", FraudReason.RATE_LIMIT_IP, 15),
        ("192.0.2.52", FraudReason.REUSED_CODE, 60 * 30),  # older than a day
    ]
    for ip, reason, minutes_ago in entries:
        repo.record_fraud_event(
            FraudLogEntry(
                gan="GAN-S",
                ip_address=ip,
                reason=reason,
                created_at=now - timedelta(minutes=minutes_ago),
            )
        )

    stats = fraud_service.get_fraud_statistics()

    assert stats["total_attempts"] == 4
    assert stats["last_24_hours"] == 3
    assert stats["unique_ips"] == 2
    assert stats["top_reasons"][0] == {"reason": "invalid_code", "count": 2}
    assert {"reason": "rate_limit_ip_violation", "count": 1} in stats["top_reasons"]


@pytest.mark.parametrize("reason", [FraudReason.REDEMPTION_FAILED, "system_error"])
def test_log_redemption_failure_accepts_enum_or_string(fraud_service, db_session, reason) -> None:
    log = fraud_service.log_redemption_failure(_ctx("192.0.2.60"), "GAN-L", "merchant-2", reason)
    assert log is not None
    stored = db_session.query(FraudLog).one()
    assert stored.reason == (reason.value if isinstance(reason, FraudReason) else reason)
    assert stored.merchant_id == "merchant-2"
    assert stored.user_agent == "scanner/1.0"
